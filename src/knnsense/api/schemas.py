"""Pydantic request/response schemas for the KnnSense API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from knnsense.video import VideoState


class VideoStateRequest(BaseModel):
    """Turn classification on or off."""

    state: VideoState


class TransparencyRequest(BaseModel):
    """Preview transparency, clamped to 0-100."""

    transparency: float


class VideoResponse(BaseModel):
    state: VideoState
    transparency: float = Field(ge=0.0, le=100.0)


class FrameResponse(BaseModel):
    width: int
    height: int


class TrainRequest(BaseModel):
    """Display label to give the trained slot."""

    label: str = Field(min_length=1)


class TrainResponse(BaseModel):
    slot: int
    label: str
    samples: int = Field(ge=0)


class ClassInfo(BaseModel):
    """A class slot with its label and exemplar count."""

    slot: int
    label: str
    samples: int = Field(ge=0)


class ClassesResponse(BaseModel):
    classes: list[ClassInfo]


class SampleCountResponse(BaseModel):
    label: str
    samples: int = Field(ge=0)


class ConfidenceResponse(BaseModel):
    label: str
    confidence: float = Field(ge=0.0, le=1.0)


class PredictionResponse(BaseModel):
    """Latest sampled prediction. ``label`` is null until a cycle has completed."""

    label: str | None
    confidences: dict[str, float]


class MatchResponse(BaseModel):
    label: str
    matches: bool


class ReadyResponse(BaseModel):
    ready: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    ready: bool
    models_loaded: list[str]
    sampler_running: bool
    cycles_completed: int
    concurrent_requests: int
    queue_depth: int
    model_error: str | None = None


class ModelInfo(BaseModel):
    """Information about an available embedding model."""

    name: str
    embedding_dim: int
    input_size: int
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
