"""Environment-based configuration for AIBirdie."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from AIBIRDIE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="AIBIRDIE_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8082

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "gpu"] = "cpu"
    num_threads: int = Field(default=1, ge=1)

    # Model selection
    model_variant: str = "efficientnet_b4"
    models_dir: str = "models"
    model_repo: str | None = None

    # Results
    max_results: int = Field(default=20, ge=1, le=20)

    # Queueing
    queue_timeout: float = Field(default=5.0, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
