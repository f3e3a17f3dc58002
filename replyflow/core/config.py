"""Application configuration with environment variables."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.1.0"

    # Database
    DATABASE_URL: str

    # Secret for /internal/* endpoints
    INTERNAL_SECRET: str = ""

    # Sentry (optional error tracking)
    SENTRY_DSN: str = ""

    # AI reply generation
    OPENAI_API_KEY: str = ""
    AI_MODEL: str = "gpt-4o-mini"
    AI_TEMPERATURE: float = 0.4
    AI_MAX_TOKENS: int = 400
    AI_HISTORY_MESSAGES: int = 10

    # WhatsApp Cloud API (empty token = dry run)
    WHATSAPP_ACCESS_TOKEN: str = ""
    WHATSAPP_PHONE_NUMBER_ID: str = ""
    WHATSAPP_API_VERSION: str = "v21.0"
    WHATSAPP_TEMPLATE_LANGUAGE: str = "en"

    # Business calendar
    BUSINESS_TIMEZONE: str = "Asia/Dubai"
    BUSINESS_HOURS_START: int = 9
    BUSINESS_HOURS_END: int = 21
    BUSINESS_HOLIDAY_COUNTRY: str = "AE"  # Empty disables holiday checks
    DEFAULT_COUNTRY_CODE: str = "971"

    # Outbound queue
    SESSION_WINDOW_HOURS: int = 24
    JOB_LEASE_MINUTES: int = 5
    JOB_MAX_ATTEMPTS: int = 5

    # Inbound resolution
    LEAD_REOPEN_WINDOW_DAYS: int = 30
    AUTO_REPLY_CHANNELS: str = "whatsapp"

    # Renewals
    RENEWAL_STAGE_THRESHOLDS: list[int] = [90, 60, 30, 7]
    RENEWAL_MIN_INTERVAL_HOURS: int = 24
    RENEWAL_EXPIRED_LOOKBACK_DAYS: int = 30
    RENEWAL_TEMPLATES: dict[str, dict[str, str]] = {}  # Overrides, keyed by item type then stage

    # Qualifiers
    MAX_QUALIFIER_QUESTIONS: int = 4

    # Worker
    WORKER_POLL_INTERVAL: int = 10
    WORKER_BATCH_SIZE: int = 10
    RENEWAL_SWEEP_INTERVAL: int = 3600

    @field_validator("RENEWAL_STAGE_THRESHOLDS")
    @classmethod
    def _validate_stage_thresholds(cls, value: list[int]) -> list[int]:
        ordered = sorted(value, reverse=True)
        if any(day <= 0 for day in ordered):
            raise ValueError("Renewal stage thresholds must be positive")
        if len(set(ordered)) != len(ordered):
            raise ValueError("Renewal stage thresholds must be distinct")
        return ordered

    @property
    def auto_reply_channels_list(self) -> list[str]:
        """Parse AUTO_REPLY_CHANNELS into a lowercase list."""
        return [c.strip().lower() for c in self.AUTO_REPLY_CHANNELS.split(",") if c.strip()]

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.WHATSAPP_ACCESS_TOKEN and self.WHATSAPP_PHONE_NUMBER_ID)


settings = Settings()
