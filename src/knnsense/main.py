"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from knnsense.ml.embedding import EmbeddingExtractor
    from knnsense.ml.model_manager import ModelManager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from knnsense.api.middleware import install_error_handlers
from knnsense.api.routes import router
from knnsense.classifier.knn import NearestNeighborClassifier
from knnsense.config import Settings, get_settings
from knnsense.controller import TrainingController
from knnsense.ml.embedding import OnnxEmbeddingExtractor
from knnsense.ml.inference import InferencePool
from knnsense.ml.model_manager import OnnxModelManager
from knnsense.scheduler import SamplingScheduler
from knnsense.session import SessionContext
from knnsense.video import LatestFrameSource, VideoState

logger = logging.getLogger(__name__)


def init_app_state(
    app: FastAPI,
    settings: Settings,
    *,
    model_manager: ModelManager | None = None,
    extractor: EmbeddingExtractor | None = None,
) -> None:
    """Wire the session, device, model and sampler onto ``app.state``."""
    app.state.settings = settings

    pool = InferencePool(settings)
    app.state.inference_pool = pool

    if model_manager is None:
        model_manager = OnnxModelManager(settings)
    app.state.model_manager = model_manager

    if extractor is None:
        extractor = OnnxEmbeddingExtractor(settings.embedding_model, model_manager, pool)
    app.state.extractor = extractor
    app.state.model_load_error = None

    dimensions = (settings.frame_width, settings.frame_height)
    device = LatestFrameSource()
    session = SessionContext(settings.num_classes, transparency=settings.video_transparency)
    controller = TrainingController(session, device, extractor, dimensions)
    controller.set_video_state(VideoState(settings.initial_video_state))
    controller.set_transparency(settings.video_transparency)

    app.state.device = device
    app.state.session = session
    app.state.controller = controller
    app.state.scheduler = SamplingScheduler(
        session,
        device,
        extractor,
        NearestNeighborClassifier(k=settings.k, metric=settings.distance_metric),
        interval=settings.sample_interval,
        dimensions=dimensions,
    )


async def _load_extractor(app: FastAPI) -> None:
    extractor: EmbeddingExtractor = app.state.extractor
    try:
        await extractor.load()
    except Exception as exc:
        logger.exception("Failed to load embedding model %s", extractor.model_name)
        app.state.model_load_error = f"{type(exc).__name__}: {exc}"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting KnnSense (device=%s, model=%s, classes=%d, k=%d, metric=%s, interval=%.2fs)",
        settings.device,
        settings.embedding_model,
        settings.num_classes,
        settings.k,
        settings.distance_metric,
        settings.sample_interval,
    )

    init_app_state(app, settings)

    # Queries report "not ready" until this finishes.
    load_task = asyncio.create_task(_load_extractor(app))
    scheduler: SamplingScheduler = app.state.scheduler
    scheduler.start()

    logger.info("KnnSense ready")
    yield

    logger.info("Shutting down KnnSense")
    await scheduler.stop()
    load_task.cancel()
    await asyncio.gather(load_task, return_exceptions=True)
    app.state.inference_pool.shutdown()
    app.state.model_manager.shutdown()
    logger.info("KnnSense shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="KnnSense",
        description="Teach and classify visual categories from a live video feed",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(application)
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("knnsense.main:app", host=settings.host, port=settings.port)
