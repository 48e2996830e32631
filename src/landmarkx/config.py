"""Environment-based configuration for LandmarkX."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from LANDMARKX_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LANDMARKX_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection
    face_detection_model: str = "scrfd_500m_kps"
    landmark_model: str = "2d106det"
    accept_insightface_license: bool = False

    # Model input geometry
    detection_size: int = Field(default=120, ge=32)
    landmark_size: int = Field(default=192, ge=1)

    # Default thresholds, overridable per request
    prob_threshold: float = Field(default=0.5, gt=0.0, le=1.0)
    nms_threshold: float = Field(default=0.45, gt=0.0, le=1.0)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=52_428_800, ge=1)

    # Model management
    models_dir: str = "models"
    model_repo: str | None = None
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
