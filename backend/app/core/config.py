"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./data/app.db"

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None  # Defaults to backend/data/logs

    # API
    API_V1_PREFIX: str = "/api/v1"
    # Stored as string to avoid pydantic-settings JSON parsing; use cors_origins_list property
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS_ORIGINS from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Object storage (captured frames)
    AWS_REGION: str = "ap-south-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    S3_BUCKET: str = "apm-captured-images"
    S3_ENDPOINT_URL: Optional[str] = None  # For S3-compatible stores (MinIO, localstack)

    # Labeling / display
    DISPLAY_TIMEZONE: str = "UTC"  # Timezone used for segment date/begin fields
    REPORT_TIMEZONE: str = "UTC"  # Timezone defining a report "day"
    SEGMENT_MERGE_WINDOW_SECONDS: int = 60  # Adjacency window for display grouping

    # Pagination
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 500

    @field_validator('DISPLAY_TIMEZONE', 'REPORT_TIMEZONE', mode='after')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate that timezone names resolve in the tz database."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator('SEGMENT_MERGE_WINDOW_SECONDS', mode='after')
    @classmethod
    def validate_merge_window(cls, v: int) -> int:
        if v < 0:
            raise ValueError("SEGMENT_MERGE_WINDOW_SECONDS must be >= 0")
        return v

    @property
    def display_tz(self) -> ZoneInfo:
        return ZoneInfo(self.DISPLAY_TIMEZONE)

    @property
    def report_tz(self) -> ZoneInfo:
        return ZoneInfo(self.REPORT_TIMEZONE)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


# Global settings instance
settings = Settings()
