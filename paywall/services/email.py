"""Outgoing mail."""

import asyncio
import logging
import smtplib
from email.message import EmailMessage

from paywall.config import MailSettings, settings
from paywall.utils.errors import ConfigurationError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


def _send(config: MailSettings, message: EmailMessage) -> None:
    with smtplib.SMTP(config.host, config.port, timeout=config.timeout) as smtp:
        if config.use_tls:
            smtp.starttls()
        smtp.login(config.username, config.password.get_secret_value())
        smtp.send_message(message)


async def send_email(to: str, subject: str, html: str, config: MailSettings | None = None) -> None:
    """Send an HTML email through the configured SMTP relay.

    Raises:
        ConfigurationError: If host or credentials are missing
        UpstreamUnavailableError: If the relay refuses or cannot be reached
    """
    config = config or settings.mail
    if not config.host or not config.username or not config.password:
        raise ConfigurationError("Email environment variables are not properly set")

    message = EmailMessage()
    message["From"] = config.sender or config.username
    message["To"] = to
    message["Subject"] = subject
    message.set_content("This message requires an HTML capable mail client.")
    message.add_alternative(html, subtype="html")

    try:
        await asyncio.to_thread(_send, config, message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send '{subject}' to {to}: {e}")
        raise UpstreamUnavailableError(f"Failed to send email: {e}")
    logger.info(f"Sent '{subject}' to {to}")
