"""
Application Configuration
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Magic Code Server"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./magic_codes.db"

    # Google OAuth client used to refresh already-issued user tokens.
    # The authorization-code exchange happens in the login layer.
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_TOKEN_URI: str = "https://oauth2.googleapis.com/token"

    # Extraction oracle (Anthropic Claude)
    ANTHROPIC_API_KEY: Optional[str] = None
    ORACLE_MODEL: str = "claude-3-haiku-20240307"
    ORACLE_MAX_TOKENS: int = 1000
    ORACLE_BODY_CHAR_LIMIT: int = 4000
    ORACLE_MAX_CODE_LENGTH: int = 100

    # Polling
    EMAIL_POLL_INTERVAL_SECONDS: int = 20
    MAILBOX_LOOKBACK_HOURS: int = 24
    MAILBOX_MAX_RESULTS: int = 10
    MESSAGE_FRESHNESS_MINUTES: int = 10
    TOKEN_REFRESH_INTERVAL_MINUTES: int = 45

    # Start polling for every stored user on startup
    EMAIL_MONITOR_AUTO_START: bool = True

    # Checked-email retention
    CHECKED_EMAIL_RETENTION_DAYS: int = 30
    RETENTION_SWEEP_INTERVAL_HOURS: int = 24
    RETENTION_SWEEP_INITIAL_DELAY_SECONDS: int = 3600

    # API Settings
    CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
