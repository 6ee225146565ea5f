# app/core/config.py

from pathlib import Path
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the project root directory (where .env should be located)
BASE_DIR = Path(__file__).resolve().parent.parent.parent

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra="ignore"
    )

    # App Configuration
    APP_NAME: str = "UMoney Ledger API"
    DEBUG: bool = False
    VERSION: str = "0.1.0"

    # Database Configuration
    DATABASE_URL: str
    # Upper bound for a single store round trip, in seconds
    STORE_TIMEOUT_SECONDS: float = 10.0

    # JWT / Security Configuration
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080

    # CORS Configuration
    FRONTEND_URL: str = "http://localhost:3000"

    # Ledger defaults
    DEFAULT_CURRENCY: str = "INR"
    DEFAULT_NEEDS_PERCENTAGE: float = 50.0
    DEFAULT_WANTS_PERCENTAGE: float = 30.0
    DEFAULT_SAVINGS_PERCENTAGE: float = 20.0
    RECIPIENT_SUGGESTION_WINDOW: int = 20

    # Optional: Environment
    ENVIRONMENT: str = "development"

    @field_validator("DEFAULT_CURRENCY")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def is_supabase(self) -> bool:
        """Check if we're using Supabase database"""
        return any(d in self.DATABASE_URL for d in [
            "supabase.co",
            "supabase.com",
            "pooler.supabase",
        ])

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

# Create a global settings instance
settings = Settings()
