"""Environment-based configuration for KnnSense."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from KNNSENSE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="KNNSENSE_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Embedding model
    embedding_model: str = "mobilenet_v2_100"
    # Checked for the model file before downloading; may be pre-populated for offline use.
    models_dir: str = "models"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Classifier
    num_classes: int = Field(default=6, ge=1, le=26)
    k: int = Field(default=1, ge=1)
    distance_metric: Literal["cosine", "euclidean"] = "cosine"

    # Sampling
    sample_interval: float = Field(default=0.8, gt=0.0)
    frame_width: int = Field(default=480, ge=1)
    frame_height: int = Field(default=360, ge=1)
    max_frame_bytes: int = Field(default=16_777_216, ge=1)

    # Video session defaults
    initial_video_state: Literal["off", "on", "on-flipped"] = "on"
    video_transparency: float = Field(default=50.0, ge=0.0, le=100.0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
