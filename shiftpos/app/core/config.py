from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite:///./shiftpos.db"
    DB_ECHO: bool = False
    SECRET_KEY: str = "dev-insecure-key-change-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    LOG_LEVEL: str = "INFO"

    # Allowed CORS origins, JSON list in the environment
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Shift reconciliation (major currency units)
    SHIFT_CASH_DIFF_TOLERANCE: Decimal = Decimal("0")
    SHIFT_CASH_DIFF_LARGE_THRESHOLD: Decimal = Decimal("100000")
    SHIFT_BIG_DISCOUNT_THRESHOLD: Decimal = Decimal("100000")

    # Invoice / return number generation
    DOCUMENT_NUMBER_ATTEMPTS: int = 5


settings = Settings()
