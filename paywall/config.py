"""Application-wide configuration settings."""

from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables
load_dotenv(override=False)

# Base paths
BASE_DIR = Path(__file__).parent
LOGS_DIR = BASE_DIR / "logs"


class APISettings(BaseSettings):
    """API-related settings."""

    api_key: SecretStr = Field(default=SecretStr(""), validation_alias="API_KEY")
    cors_origins: list[str] = Field(default=["*"])
    cors_allow_credentials: bool = Field(default=False)
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")

    model_config = SettingsConfigDict(env_file=".env", extra="allow")


class DatabaseSettings(BaseSettings):
    """Database-related settings."""

    mongodb_uri: str = Field(default="mongodb://localhost:27017", validation_alias="MONGODB_URI")
    database_name: str = Field(default="paywall", validation_alias="DATABASE_NAME")

    @property
    def uri(self) -> str:
        """Get the MongoDB connection URI."""
        return self.mongodb_uri

    model_config = SettingsConfigDict(env_file=".env", extra="allow")


class AuthSettings(BaseSettings):
    """Authentication-related settings."""

    secret_key: SecretStr = Field(default=SecretStr(""), validation_alias="AUTH_SECRET_KEY")
    jwt_lifetime_seconds: int = Field(default=7 * 24 * 3600, validation_alias="JWT_LIFETIME_SECONDS")
    reset_token_lifetime_seconds: int = Field(default=3600, validation_alias="RESET_TOKEN_LIFETIME_SECONDS")

    model_config = SettingsConfigDict(env_file=".env", extra="allow")


class RetrySettings(BaseModel):
    max_attempts: int = 3
    initial_delay: float = 0.5
    backoff_factor: float = 2.0


class StripeSettings(BaseSettings):
    """Payment provider settings."""

    secret_key: Optional[SecretStr] = Field(default=None, validation_alias="STRIPE_SECRET_KEY")
    webhook_secret: Optional[SecretStr] = Field(default=None, validation_alias="STRIPE_WEBHOOK_SECRET")
    frontend_url: str = Field(default="http://localhost:3000", validation_alias="FRONTEND_URL")
    product_name: str = Field(default="Premium Subscription")
    product_description: str = Field(default="Premium account access")
    session_retries: RetrySettings = Field(default_factory=RetrySettings)

    model_config = SettingsConfigDict(env_file=".env", extra="allow")


class SubscriptionSettings(BaseSettings):
    """Subscription lifecycle settings."""

    period_years: int = Field(default=1, validation_alias="SUBSCRIPTION_PERIOD_YEARS")
    persist_expiry_on_read: bool = Field(default=True, validation_alias="PERSIST_EXPIRY_ON_READ")
    max_payment_refs: int = Field(default=50)  # Applied session ids remembered per user

    model_config = SettingsConfigDict(env_file=".env", extra="allow", populate_by_name=True)


class MailSettings(BaseSettings):
    """Outgoing mail settings."""

    host: Optional[str] = Field(default=None, validation_alias="EMAIL_HOST")
    port: int = Field(default=587, validation_alias="EMAIL_PORT")
    username: Optional[str] = Field(default=None, validation_alias="EMAIL_USERNAME")
    password: Optional[SecretStr] = Field(default=None, validation_alias="EMAIL_PASSWORD")
    sender: Optional[str] = Field(default=None, validation_alias="EMAIL_FROM")
    use_tls: bool = Field(default=True, validation_alias="EMAIL_USE_TLS")
    timeout: int = Field(default=20)

    model_config = SettingsConfigDict(env_file=".env", extra="allow")


class LoggingSettings(BaseSettings):
    """Logging-related settings."""

    log_level: str = Field(default="INFO")
    file_log_level: str = Field(default="DEBUG")
    backup_count: int = Field(default=9)
    format: str = Field(default="%(name)s - %(levelname)s - %(message)s")
    file_format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    enable_file_logging: bool = Field(default=True, validation_alias="ENABLE_FILE_LOGGING")
    enable_endpoint_logging: bool = Field(default=False, validation_alias="ENABLE_ENDPOINT_LOGGING")
    noisy_loggers: Dict[str, str] = Field(
        default={
            "urllib3": "WARNING",
            "uvicorn": "WARNING",
            "pymongo": "WARNING",
            "pymongo.topology": "WARNING",  # Suppress MongoDB topology logs
            "pymongo.server": "WARNING",
            "pymongo.connection": "WARNING",
            "pymongo.monitoring": "WARNING",
            "stripe": "WARNING",
            "watchfiles": "WARNING",
        }
    )

    model_config = SettingsConfigDict(env_file=".env", extra="allow")


class Settings(BaseSettings):
    """Global settings container."""

    api: APISettings = Field(default_factory=APISettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)
    subscription: SubscriptionSettings = Field(default_factory=SubscriptionSettings)
    mail: MailSettings = Field(default_factory=MailSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(env_file=".env", extra="allow")


# Create global settings instance
settings = Settings()
