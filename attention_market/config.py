from decimal import Decimal
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False

    # Storage
    DATABASE_URL: str
    REDIS_URL: str
    REDIS_MAX_CONNECTIONS: int = 20

    # Valuation model (OpenAI)
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_MAX_TOKENS: int = 300
    OPENAI_TEMPERATURE: float = 0.2
    VALUATION_TIMEOUT_SECONDS: float = 10.0
    VALUATION_MAX_ATTEMPTS: int = 2  # first call + one retry

    # Admission defaults
    DEFAULT_MINIMUM_NOTIFY_PRICE: Decimal = Decimal("1.00")

    # Batch processing
    PROCESS_BATCH_SIZE: int = 10
    PROCESS_INTERVAL_SECONDS: float = 30.0
    MAX_CONCURRENT_RECIPIENTS: int = 10
    PROCESSING_STALE_MINUTES: int = 15
    REAPER_INTERVAL_SECONDS: float = 300.0

    # Debounce
    DEBOUNCE_DELAY_SECONDS: float = 1.0
    DEBOUNCE_KEY_TTL_SECONDS: int = 3600

    # Outbound channel / response pipeline collaborators
    CHANNEL_SEND_URL: str | None = None
    CHANNEL_API_KEY: str | None = None
    CHANNEL_TIMEOUT_SECONDS: float = 15.0
    RESPONSE_PIPELINE_URL: str | None = None

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 12
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour
    DB_STATEMENT_TIMEOUT_SECONDS: int = 60

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update(
                {
                    "min_size": min(self.DB_POOL_MIN_SIZE, 2),
                    "max_size": min(self.DB_POOL_MAX_SIZE, 8),
                    "timeout": 15.0,
                }
            )

        return config


settings = Settings()
