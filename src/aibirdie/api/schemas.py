"""Pydantic request/response schemas for the AIBirdie API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RecognitionItem(BaseModel):
    """A single ranked classification result."""

    id: int = Field(description="Class id (output slot index)")
    title: str
    confidence: float


class ClassifyImageResponse(BaseModel):
    """Response for image classification endpoint.

    ``id`` and ``probabilities`` are aligned by index and sorted by
    descending confidence.
    """

    id: list[int]
    probabilities: list[float]
    recognitions: list[RecognitionItem]


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(protected_namespaces=())

    status: str = "ok"
    gpu: bool
    model_variant: str
    input_width: int
    input_height: int
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available model variant."""

    name: str
    model_file: str
    label_file: str
    status: str = Field(description="Model status: 'active' or 'available'")


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
