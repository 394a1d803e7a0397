from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./recovery_match.db"
    REDIS_URL: str = "redis://localhost:6379/0"
    LOG_LEVEL: str = "INFO"

    # Matching scheduler
    SCHEDULER_ENABLED: int = 1
    SCHEDULER_TIMEZONE: str = "America/New_York"
    MATCHING_INTERVAL_MINUTES: int = 30
    MATCHING_RUN_ON_START: int = 1
    # Redis lock shared by the web app, Celery workers and scripts
    MATCHING_SHARED_LOCK: int = 1
    MATCHING_LOCK_TIMEOUT_SECONDS: int = 3600

    # Transactional email (Brevo-style JSON API)
    EMAIL_API_URL: str = "https://api.brevo.com/v3/smtp/email"
    EMAIL_API_KEY: str | None = None
    EMAIL_SENDER: str = "noreply@normalrestored.com"
    EMAIL_SENDER_NAME: str = "Normal Restored"
    EMAIL_DRY_RUN: int = 0
    EMAIL_TIMEOUT_SECONDS: float = 20.0

    class Config:
        env_file = ".env"

settings = Settings()
