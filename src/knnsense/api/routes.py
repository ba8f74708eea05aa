"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from knnsense.api.middleware import verify_api_key
from knnsense.api.schemas import (
    ClassesResponse,
    ClassInfo,
    ConfidenceResponse,
    ErrorResponse,
    FrameResponse,
    HealthResponse,
    MatchResponse,
    ModelInfo,
    ModelsResponse,
    PredictionResponse,
    ReadyResponse,
    SampleCountResponse,
    TrainRequest,
    TrainResponse,
    TransparencyRequest,
    VideoResponse,
    VideoStateRequest,
)
from knnsense.ml.model_manager import MODEL_REGISTRY
from knnsense.ml.preprocessing import decode_rgb_frame

if TYPE_CHECKING:
    from knnsense.config import Settings
    from knnsense.controller import TrainingController
    from knnsense.ml.inference import InferencePool
    from knnsense.ml.model_manager import ModelManager
    from knnsense.scheduler import SamplingScheduler
    from knnsense.session import SessionContext
    from knnsense.video import LatestFrameSource

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_ERROR = {"model": ErrorResponse}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_controller(request: Request) -> TrainingController:
    controller: TrainingController = request.app.state.controller
    return controller


def _get_session(request: Request) -> SessionContext:
    session: SessionContext = request.app.state.session
    return session


# -- Video ------------------------------------------------------------------


@router.put("/video", response_model=VideoResponse, summary="Turn video on or off")
async def set_video(body: VideoStateRequest, request: Request) -> VideoResponse:
    """Enable or disable classification. ``on`` mirrors frames, ``on-flipped`` does not."""
    controller = _get_controller(request)
    controller.set_video_state(body.state)
    return VideoResponse(state=controller.video_state, transparency=controller.transparency)


@router.put("/video/transparency", response_model=VideoResponse, summary="Set preview transparency")
async def set_transparency(body: TransparencyRequest, request: Request) -> VideoResponse:
    controller = _get_controller(request)
    controller.set_transparency(body.transparency)
    return VideoResponse(state=controller.video_state, transparency=controller.transparency)


@router.put(
    "/frame",
    response_model=FrameResponse,
    responses={
        413: _ERROR,
        422: _ERROR,
    },
    summary="Push the latest camera frame",
)
async def push_frame(
    request: Request,
    width: Annotated[int, Query(gt=0)],
    height: Annotated[int, Query(gt=0)],
) -> FrameResponse | JSONResponse:
    """Replace the current frame with a packed RGB24 body of ``width * height * 3`` bytes."""
    settings = _get_settings(request)
    too_large = JSONResponse(
        status_code=413,
        content={"detail": f"Frame exceeds {settings.max_frame_bytes} bytes"},
    )
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > settings.max_frame_bytes:
        return too_large

    # Chunked uploads carry no Content-Length, so the limit is also enforced while reading.
    data = bytearray()
    async for chunk in request.stream():
        data.extend(chunk)
        if len(data) > settings.max_frame_bytes:
            return too_large
    try:
        frame = decode_rgb_frame(bytes(data), width, height)
    except ValueError as exc:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    device: LatestFrameSource = request.app.state.device
    device.push_frame(frame)
    return FrameResponse(width=width, height=height)


# -- Classes ----------------------------------------------------------------


@router.get("/classes", response_model=ClassesResponse, summary="List classes and sample counts")
async def list_classes(request: Request) -> ClassesResponse:
    controller = _get_controller(request)
    return ClassesResponse(
        classes=[
            ClassInfo(slot=slot, label=label, samples=count)
            for slot, (label, count) in enumerate(controller.example_counts())
        ]
    )


@router.post(
    "/classes/{slot}/train",
    response_model=TrainResponse,
    responses={
        status.HTTP_409_CONFLICT: _ERROR,
        status.HTTP_503_SERVICE_UNAVAILABLE: _ERROR,
    },
    summary="Train a class with the current frame",
)
async def train_class(slot: int, body: TrainRequest, request: Request) -> TrainResponse:
    """Add the current frame as an exemplar of ``slot`` and label the slot."""
    controller = _get_controller(request)
    samples = await controller.train(slot, body.label)
    return TrainResponse(slot=slot, label=body.label, samples=samples)


@router.delete(
    "/classes/{label:path}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={status.HTTP_409_CONFLICT: _ERROR},
    summary="Clear a class's training data",
)
async def reset_class(label: str, request: Request) -> None:
    _get_controller(request).reset(label)


@router.get(
    "/classes/samples/{label:path}",
    response_model=SampleCountResponse,
    summary="Sample count for a class",
)
async def sample_count(label: str, request: Request) -> SampleCountResponse:
    return SampleCountResponse(label=label, samples=_get_controller(request).sample_count(label))


@router.get(
    "/classes/confidence/{label:path}",
    response_model=ConfidenceResponse,
    summary="Latest confidence for a class",
)
async def confidence(label: str, request: Request) -> ConfidenceResponse:
    return ConfidenceResponse(label=label, confidence=_get_controller(request).confidence(label))


# -- Prediction ---------------------------------------------------------------


@router.get("/prediction", response_model=PredictionResponse, summary="Latest prediction")
async def prediction(request: Request) -> PredictionResponse:
    """Return the latest sampled label and the confidence of every class."""
    controller = _get_controller(request)
    confidences: dict[str, float] = {}
    for label in controller.labels():
        confidences.setdefault(label, controller.confidence(label))
    return PredictionResponse(label=controller.current_prediction(), confidences=confidences)


@router.get(
    "/prediction/matches/{label:path}",
    response_model=MatchResponse,
    summary="Does the prediction equal a label",
)
async def matches(label: str, request: Request) -> MatchResponse:
    return MatchResponse(label=label, matches=_get_controller(request).matches(label))


# -- Session ----------------------------------------------------------------


@router.post("/session/reset", status_code=status.HTTP_204_NO_CONTENT, summary="Restart the session")
async def reset_session(request: Request) -> None:
    """Clear all training data, labels and the latest prediction."""
    _get_controller(request).reset_session()


@router.get("/ready", response_model=ReadyResponse, summary="Is the embedding model loaded")
async def ready(request: Request) -> ReadyResponse:
    return ReadyResponse(ready=_get_controller(request).is_ready())


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool: InferencePool = request.app.state.inference_pool
    model_manager: ModelManager = request.app.state.model_manager
    scheduler: SamplingScheduler = request.app.state.scheduler
    model_error: str | None = request.app.state.model_load_error
    return HealthResponse(
        status="degraded" if model_error else "ok",
        gpu=settings.device == "cuda",
        ready=_get_controller(request).is_ready(),
        models_loaded=model_manager.get_loaded_models(),
        sampler_running=scheduler.running,
        cycles_completed=_get_session(request).state.cycles_completed,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
        model_error=model_error,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available embedding models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return the registered embedding models, marking the configured one active."""
    settings = _get_settings(request)
    return ModelsResponse(
        models=[
            ModelInfo(
                name=spec.name,
                embedding_dim=spec.embedding_dim,
                input_size=spec.input_size,
                status="active" if spec.name == settings.embedding_model else "available",
                license=spec.license,
            )
            for spec in MODEL_REGISTRY.values()
        ]
    )
