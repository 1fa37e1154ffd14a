"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status

from aibirdie.api.middleware import verify_api_key
from aibirdie.api.schemas import (
    ClassifyImageResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    RecognitionItem,
)
from aibirdie.errors import ImageLoadError, InferenceError, SessionClosedError
from aibirdie.ml.topk import to_response
from aibirdie.ml.variants import MODEL_VARIANTS

if TYPE_CHECKING:
    from aibirdie.config import Settings
    from aibirdie.ml.inference import InferencePool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify an image",
)
async def classify_image(request: Request, file: UploadFile) -> ClassifyImageResponse:
    """Classify an uploaded image and return the ranked labels."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)

    data = await file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        logger.warning("Rejected upload %s: larger than %d bytes", file.filename, settings.max_file_size)
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )

    try:
        recognitions = await pool.classify_bytes(data, settings.max_image_pixels)
    except ImageLoadError as e:
        logger.warning("Rejected upload %s: %s", file.filename, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except (TimeoutError, SessionClosedError) as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Classifier is busy or unavailable",
        ) from e
    except InferenceError as e:
        logger.exception("Inference failed for %s", file.filename)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)) from e

    payload = to_response(recognitions)
    return ClassifyImageResponse(
        id=payload["id"],
        probabilities=payload["probabilities"],
        recognitions=[
            RecognitionItem(id=int(r.id), title=r.title, confidence=r.confidence)
            for r in recognitions
            if r.id is not None and r.title is not None and r.confidence is not None
        ],
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    classifier = pool.classifier
    return HealthResponse(
        status="ok" if classifier.state == "open" else "closed",
        gpu=settings.device == "gpu",
        model_variant=classifier.variant.name,
        input_width=classifier.input_width,
        input_height=classifier.input_height,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return the known model variants and which one is active."""
    settings = _get_settings(request)
    models = [
        ModelInfo(
            name=variant.name,
            model_file=variant.model_file,
            label_file=variant.label_file,
            status="active" if variant.name == settings.model_variant else "available",
        )
        for variant in MODEL_VARIANTS.values()
    ]
    return ModelsResponse(models=models)
