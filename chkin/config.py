import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CRON_SECRET: str = os.getenv("CRON_SECRET", "")
    APP_BASE_URL: str = os.getenv("APP_BASE_URL", "http://localhost:3000")

    # Consent lifecycle windows (days / months)
    DEFAULT_GRACE_PERIOD_DAYS: int = int(os.getenv("DEFAULT_GRACE_PERIOD_DAYS", "30"))
    EXPIRING_WARNING_DAYS: int = int(os.getenv("EXPIRING_WARNING_DAYS", "30"))
    DEFAULT_CONSENT_DURATION_MONTHS: int = int(
        os.getenv("DEFAULT_CONSENT_DURATION_MONTHS", "12")
    )


settings = Settings()
