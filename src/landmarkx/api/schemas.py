"""Pydantic request/response schemas for the LandmarkX API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PointModel(BaseModel):
    """A point in original image pixel coordinates."""

    x: float
    y: float


class DetectedFace(BaseModel):
    """A single detected face with bounding box, score, keypoints, and landmarks."""

    x: float = Field(description="Bounding box left edge in pixels")
    y: float = Field(description="Bounding box top edge in pixels")
    width: float = Field(ge=0.0, description="Bounding box width in pixels")
    height: float = Field(ge=0.0, description="Bounding box height in pixels")
    score: float = Field(description="Detection confidence (0.0-1.0)")
    keypoints: list[PointModel] | None = Field(
        default=None,
        description="5 detector keypoints, present only for keypoint-capable detector variants",
    )
    landmarks: list[PointModel] = Field(description="106 facial landmarks")


class DetectFacesResponse(BaseModel):
    """Response for the face detection endpoint."""

    image_width: int
    image_height: int
    faces: list[DetectedFace]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    task: str = Field(description="Model task: 'face_detection' or 'face_landmarks'")
    status: str = Field(description="Model status: 'active', 'available', or 'requires_license'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
