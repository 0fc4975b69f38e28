"""
Configuration module - environment variables and an optional .env file.
"""
import json
import logging
from functools import lru_cache
from typing import Any, List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = {"127.0.0.1", "localhost", "::1"}


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # App
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8765, alias="PORT")
    max_upload_bytes: int = Field(
        default=50 * 1024 * 1024,
        alias="MAX_UPLOAD_BYTES",
        description="Largest PDF accepted for loading (default 50 MB)",
    )

    # Rendering
    render_backend: str = Field(
        default="pdf",
        alias="RENDER_BACKEND",
        description="'pdf' decodes and rasterizes the PDF, 'images' uses pre-rendered page images",
    )
    display_render_scale: float = Field(default=1.5, gt=0, alias="DISPLAY_RENDER_SCALE")
    export_render_scale: float = Field(
        default=2.0,
        gt=0,
        alias="EXPORT_RENDER_SCALE",
        description="Rasterization scale used when exporting, independent of display scale",
    )
    thumbnail_scale: float = Field(default=0.25, gt=0, alias="THUMBNAIL_SCALE")

    # Upload endpoint (external collaborator)
    upload_endpoint_url: str = Field(default="", alias="UPLOAD_ENDPOINT_URL")
    upload_api_key: str = Field(default="", alias="UPLOAD_API_KEY")
    metadata_callback_url: str = Field(default="", alias="METADATA_CALLBACK_URL")
    upload_timeout_seconds: float = Field(default=60.0, gt=0, alias="UPLOAD_TIMEOUT_SECONDS")

    # Signing UX timing
    auto_apply_indicator_ms: int = Field(
        default=300,
        ge=0,
        alias="AUTO_APPLY_INDICATOR_MS",
        description="Minimum time the processing indicator stays up after an auto-apply",
    )
    highlight_ms: int = Field(
        default=1500,
        ge=0,
        alias="HIGHLIGHT_MS",
        description="How long the next field stays highlighted",
    )

    # CORS
    allowed_origins: List[str] = Field(default=[], alias="ALLOWED_ORIGINS")

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _parse_allowed_origins(cls, v: Any) -> List[str]:
        """Parse ALLOWED_ORIGINS from JSON list, CSV, semicolon-separated string, or list."""
        if v is None:
            return []
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    return json.loads(s)
                except json.JSONDecodeError:
                    pass  # Fall through to delimiter parsing
            parts = [p.strip() for p in s.replace(",", ";").split(";")]
            return [p for p in parts if p]
        return []

    @field_validator("render_backend")
    @classmethod
    def _validate_render_backend(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("pdf", "images"):
            raise ValueError(f"Unsupported render backend: {v}")
        return v

    @model_validator(mode="after")
    def validate_binding(self) -> "Settings":
        """Warn when the signing session would be reachable from other machines."""
        if self.host not in LOOPBACK_HOSTS:
            logger.warning(
                f"Configuration Warning: HOST ('{self.host}') is not a loopback address. "
                "The signing session holds one signer's document and is meant to be local."
            )
        if self.upload_endpoint_url and not self.upload_endpoint_url.startswith("https://"):
            if self.environment == "production":
                logger.error(
                    f"CRITICAL: UPLOAD_ENDPOINT_URL ('{self.upload_endpoint_url}') must use HTTPS in production!"
                )
        return self

    @property
    def upload_configured(self) -> bool:
        return bool(self.upload_endpoint_url)

    def get_metadata_callback_url(self) -> Optional[str]:
        return self.metadata_callback_url.rstrip("/") or None


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Development origins for the Vite/React front-end (only in non-production)
DEV_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://localhost:8080",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]


def get_cors_origins() -> List[str]:
    """
    Get list of allowed CORS origins.

    Combines:
    1. Origins from ALLOWED_ORIGINS env variable
    2. Development origins (if not in production)
    """
    settings = get_settings()
    origins = set(settings.allowed_origins)
    if settings.environment != "production":
        origins.update(DEV_CORS_ORIGINS)
    return sorted(origins)
