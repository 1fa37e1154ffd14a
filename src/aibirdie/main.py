"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aibirdie.api.routes import router
from aibirdie.config import get_settings
from aibirdie.ml.classifier import create_classifier
from aibirdie.ml.inference import InferencePool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load the classifier on startup, release it on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting AIBirdie (variant=%s, device=%s, threads=%s, max_results=%s)",
        settings.model_variant,
        settings.device,
        settings.num_threads,
        settings.max_results,
    )

    classifier = create_classifier(settings)
    inference_pool = InferencePool(classifier, queue_timeout=settings.queue_timeout)
    app.state.inference_pool = inference_pool

    logger.info("AIBirdie ready")
    yield

    logger.info("Shutting down AIBirdie")
    inference_pool.shutdown()
    logger.info("AIBirdie shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="AIBirdie",
        description="On-device style photo classification with a fixed-label ONNX model",
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
