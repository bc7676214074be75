from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    FLOW_TOKEN_SECRET: str = "change-me-in-production"
    FLOW_TOKEN_TTL_MINUTES: int = 120
    PLACEHOLDER_TTL_MINUTES: int = 15

    GOOGLE_CALENDAR_BASE_URL: str = "https://www.googleapis.com/calendar/v3"
    GOOGLE_CALENDAR_ACCESS_TOKEN: str | None = None
    SESSION_CALENDAR_ID: str | None = None
    PERSONAL_CALENDAR_ID: str | None = None

    AVAILABILITY_RULE_PATH: str = "./data/availability_rule.json"
    SESSION_TYPES_PATH: str = "./data/session_types.json"
    DATA_DIR: str = "./data/bookings"
    BOOKING_STORE: str = "json"  # "json" or "memory" (dev/local only)

    REDIS_URL: str | None = None

    TELEGRAM_BOT_TOKEN: str | None = None
    TELEGRAM_API_BASE_URL: str = "https://api.telegram.org"
    ADMIN_CHAT_IDS: list[str] = []

    WEBAPP_BASE_URL: str = ""

    @property
    def is_dev(self) -> bool:
        return self.ENV.lower() in {"dev", "local"}


settings = Settings()
