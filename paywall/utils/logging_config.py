"""Logging configuration for the application."""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from paywall.config import LOGS_DIR, LoggingSettings, settings

logger = logging.getLogger(__name__)

# Loggers whose records are also kept in payments.log
PAYMENT_LOGGERS = (
    "paywall.domains.subscriptions",
    "paywall.domains.checkout",
    "paywall.services.payment_provider",
    "paywall.routers.payments",
)


def _prune_rotated_logs(log_dir: Path, base_name: str, keep: int) -> int:
    """Delete rotated copies of ``base_name`` beyond the newest ``keep``.

    Returns:
        Number of files removed
    """
    rotated = sorted(
        (f for f in log_dir.glob(f"{base_name}.*") if f.is_file()),
        key=lambda f: f.stat().st_mtime,
        reverse=True,
    )
    removed = 0
    for old_file in rotated[keep:]:
        try:
            old_file.unlink()
            removed += 1
        except OSError as e:
            logger.error(f"Failed to delete old log file {old_file}: {e}")
    return removed


def _file_handler(log_dir: Path, name: str, config: LoggingSettings) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        log_dir / name,
        when="midnight",
        backupCount=config.backup_count,
        encoding="utf-8",
        delay=True,
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(config.file_log_level)
    handler.setFormatter(logging.Formatter(config.file_format))
    return handler


def setup_logging(config: Optional[LoggingSettings] = None, log_dir: Path = LOGS_DIR) -> None:
    """Configure the root logger.

    Console output always; with file logging enabled, a daily rotated
    ``app.log`` plus ``payments.log`` holding only checkout, webhook and
    subscription records.

    Args:
        config: Logging settings, defaults to the global ones
        log_dir: Directory for log files
    """
    config = config or settings.logging
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Handlers filter

    # Drop handlers from an earlier call so records are not duplicated
    root_logger.handlers.clear()
    for name in PAYMENT_LOGGERS:
        payment_logger = logging.getLogger(name)
        for handler in list(payment_logger.handlers):
            payment_logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(config.log_level)
    console_handler.setFormatter(logging.Formatter(config.format))
    root_logger.addHandler(console_handler)

    if config.enable_file_logging:
        log_dir.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(_file_handler(log_dir, "app.log", config))

        payments_handler = _file_handler(log_dir, "payments.log", config)
        payments_handler.setLevel(logging.INFO)
        for name in PAYMENT_LOGGERS:
            logging.getLogger(name).addHandler(payments_handler)

        for base_name in ("app.log", "payments.log"):
            removed = _prune_rotated_logs(log_dir, base_name, config.backup_count)
            if removed:
                logger.info(f"Deleted {removed} old {base_name} files")

    for logger_name, level in config.noisy_loggers.items():
        logging.getLogger(logger_name).setLevel(level)
