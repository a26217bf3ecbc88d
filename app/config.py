from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./fulfillment.db"

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # JWT Settings (tokens are issued by the identity service)
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"

    # App Settings
    APP_NAME: str = "Warehouse Fulfillment Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # SLA budgets
    WAVE_SLA_HOURS: int = 24
    PACKING_SLA_MINUTES: int = 120
    EXCEPTION_SLA_MINUTES: int = 120
    MAX_ORDERS_PER_WAVE: int = 20
    MAX_WAVES_PER_PICKER: int = 3

    # LMS (Logistics Management System) Integration
    LMS_BASE_URL: str = "https://lms.example.com/api"
    LMS_API_KEY: str = ""
    LMS_TIMEOUT: float = 30.0  # Seconds
    LMS_RETRY_ATTEMPTS: int = 3  # Transport-level retries on 5xx
    LMS_RETRY_DELAY: int = 1000  # Milliseconds, doubled per attempt

    # Persisted LMS retry ledger
    LMS_RETRY_WORKER_ENABLED: bool = False
    LMS_RETRY_INTERVAL_SECONDS: int = 60
    LMS_RETRY_MAX_ATTEMPTS: int = 5
    LMS_RETRY_BATCH_SIZE: int = 50

    # Seal integrity
    SEAL_SECRET: str = "default-secret"

    # Supabase Storage Settings (packing photo evidence)
    SUPABASE_URL: str = ""  # e.g., "https://xxxx.supabase.co"
    SUPABASE_SERVICE_KEY: str = ""  # Service role key (NOT anon key)
    SUPABASE_STORAGE_BUCKET: str = "packing-photos"

    # Optional override for the LMS shipment origin label
    WAREHOUSE_NAME: Optional[str] = None

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return self.CORS_ORIGINS

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
