# backend/app/core/settings.py
"""
FruFresco Ops - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Calculate path to .env in project root (4 levels up from this file)
# backend/app/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "FruFresco Ops"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")

    # ===================
    # Database Settings
    # ===================
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: int = Field(default=5432, description="PostgreSQL port")
    DB_NAME: str = Field(default="frufresco", description="Database name")
    DB_USER: str = Field(default="postgres", description="Database user")
    DB_PASSWORD: str = Field(default="postgres", description="Database password")
    DATABASE_URL: Optional[str] = Field(
        default=None, description="Full database URL (overrides DB_* settings)"
    )

    @property
    def database_url(self) -> str:
        """Build PostgreSQL database URL from components or use explicit URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # ===================
    # CORS Settings
    # ===================
    ALLOWED_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        description="Allowed CORS origins",
    )

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # ===================
    # Procurement Shift
    # ===================
    DISTRIBUTION_CENTER_TIMEZONE: str = Field(
        default="America/Bogota", description="Local time zone of the distribution center"
    )
    PROCUREMENT_CUTOFF_HOUR: int = Field(
        default=18, ge=0, le=23, description="Hour at which the buying shift rolls to the next delivery day"
    )
    CONSOLIDATION_FILTER_BY_DELIVERY_DATE: bool = Field(
        default=False, description="Restrict consolidation to the target delivery date"
    )
    DEFAULT_PROCUREMENT_UNIT: str = Field(
        default="kg", description="Unit used for tasks whose product has no unit on file"
    )
    ALLOW_STANDARD_UNIT_CONVERSIONS: bool = Field(
        default=False,
        description="Resolve g/kg/lb and ml/l conversions without a product-specific factor",
    )

    @field_validator("DISTRIBUTION_CENTER_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone: {v}") from e
        return v

    # ===================
    # Purchase Evidence Storage
    # ===================
    EVIDENCE_STORAGE_BACKEND: str = Field(default="local", description="local or gdrive")
    EVIDENCE_UPLOAD_DIR: str = Field(default="./uploads/vouchers", description="Local voucher dir")
    EVIDENCE_PUBLIC_BASE_URL: Optional[str] = Field(
        default=None, description="Public URL prefix for locally stored vouchers"
    )
    EVIDENCE_MAX_FILE_SIZE_MB: int = Field(default=15, description="Max voucher size (MB)")
    EVIDENCE_ALLOWED_EXTENSIONS: List[str] = Field(
        default=[".jpg", ".jpeg", ".png", ".webp", ".heic", ".pdf"],
        description="Allowed voucher extensions",
    )
    EVIDENCE_UPLOAD_TIMEOUT_SECONDS: float = Field(default=30.0, description="Upload timeout")

    @field_validator("EVIDENCE_ALLOWED_EXTENSIONS", mode="before")
    @classmethod
    def parse_evidence_extensions(cls, v):
        if isinstance(v, str):
            return [ext.strip().lower() for ext in v.split(",") if ext.strip()]
        return v

    # ==============================
    # Optional Google Drive switch
    # ==============================
    ENABLE_GOOGLE_DRIVE: bool = Field(
        default=False, validation_alias="ENABLE_GOOGLE_DRIVE"
    )
    GDRIVE_TOKEN: Optional[str] = Field(default=None)
    GDRIVE_FOLDER_ID: Optional[str] = Field(default=None)

    # ===================
    # Provider Quick-Add
    # ===================
    PROVIDER_DEFAULT_LOCATION: str = "General"
    PROVIDER_DEFAULT_CATEGORY: str = "Varios"

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text
    LOG_FILE: Optional[str] = None

    @property
    def distribution_center_tz(self) -> ZoneInfo:
        return ZoneInfo(self.DISTRIBUTION_CENTER_TIMEZONE)

    @property
    def evidence_max_bytes(self) -> int:
        return self.EVIDENCE_MAX_FILE_SIZE_MB * 1024 * 1024

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings loader (cached)."""
    return Settings()


# Convenience alias for modules that read settings at import time
settings = get_settings()
