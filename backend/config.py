"""
Configuration management for the Order Desk backend.

Loads settings from .env via pydantic-settings.

Notes:
    - region_fallback is the token used when an order has no usable
      state/division/city on its shipping address
    - validate_production_settings() enforces strict CORS and storage
      credentials in production
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/orders.db"

    # ── Order identifiers ───────────────────────────────────────────
    region_fallback: str = "GEN"
    order_sequence_width: int = 4  # minimum width, never a cap

    # ── Pinata IPFS (image uploads) ─────────────────────────────────
    pinata_api_key: str = ""
    pinata_secret: str = ""
    pinata_gateway: str = "https://gateway.pinata.cloud/ipfs"

    # ── Uploads ─────────────────────────────────────────────────────
    upload_max_files: int = 5
    upload_allowed_formats: str = "jpg,jpeg,png,webp"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def upload_allowed_formats_list(self) -> List[str]:
        return [fmt.strip().lower() for fmt in self.upload_allowed_formats.split(",") if fmt.strip()]

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.pinata_api_key or not self.pinata_secret:
                raise ValueError(
                    "PINATA_API_KEY and PINATA_SECRET must be set in production. "
                    "They are used to store uploaded product images."
                )
            if self.order_sequence_width < 1:
                raise ValueError("ORDER_SEQUENCE_WIDTH must be at least 1.")
            logger.info("✅ Production settings validated")
        else:
            warnings = []
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            if not self.pinata_api_key:
                warnings.append("PINATA_API_KEY not set (uploads will fail)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()
