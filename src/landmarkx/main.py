"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from landmarkx.api.routes import router
from landmarkx.config import get_settings
from landmarkx.ml.inference import InferencePool
from landmarkx.ml.model_manager import OnnxModelManager
from landmarkx.ml.pipeline import build_pipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load models on startup, release them on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting LandmarkX (device=%s, max_concurrent=%s, detection=%s, landmarks=%s)",
        settings.device,
        settings.max_concurrent,
        settings.face_detection_model,
        settings.landmark_model,
    )

    model_manager = OnnxModelManager(settings)
    app.state.model_manager = model_manager
    # Loading failures abort startup.
    app.state.pipeline = build_pipeline(settings, model_manager)

    inference_pool = InferencePool(settings)
    app.state.inference_pool = inference_pool

    logger.info("LandmarkX ready")
    yield

    logger.info("Shutting down LandmarkX")
    inference_pool.shutdown()
    app.state.pipeline = None
    model_manager.shutdown()
    logger.info("LandmarkX shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="LandmarkX",
        description="Face detection and 106-point facial landmark inference API",
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

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run("landmarkx.main:app", host=settings.host, port=settings.port)
