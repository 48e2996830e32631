"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, status

from landmarkx.api.middleware import (
    enforce_upload_limit,
    get_app_settings,
    get_inference_pool,
    get_model_manager,
    get_pipeline,
    verify_api_key,
)
from landmarkx.api.schemas import (
    DetectedFace,
    DetectFacesResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    PointModel,
)
from landmarkx.config import Settings
from landmarkx.ml.inference import InferenceError, InferencePool
from landmarkx.ml.model_manager import MODEL_REGISTRY, ModelManager
from landmarkx.ml.pipeline import FaceLandmarkPipeline
from landmarkx.ml.preprocessing import decode_image

if TYPE_CHECKING:
    from landmarkx.ml.pipeline import DetectionResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

Threshold = Annotated[float | None, Query(gt=0.0, le=1.0)]


def _to_response(result: DetectionResult, width: int, height: int) -> DetectFacesResponse:
    faces: list[DetectedFace] = []
    for face, landmarks in zip(result.faces, result.landmarks, strict=True):
        keypoints = None
        if face.keypoints is not None:
            keypoints = [PointModel(x=p.x, y=p.y) for p in face.keypoints]
        faces.append(
            DetectedFace(
                x=face.rect.x,
                y=face.rect.y,
                width=face.rect.width,
                height=face.rect.height,
                score=face.prob,
                keypoints=keypoints,
                landmarks=[PointModel(x=float(x), y=float(y)) for x, y in landmarks],
            )
        )
    return DetectFacesResponse(image_width=width, image_height=height, faces=faces)


@router.post(
    "/detect-faces",
    response_model=DetectFacesResponse,
    dependencies=[Depends(enforce_upload_limit)],
    responses={
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Detect faces and 106-point landmarks in an image",
)
async def detect_faces(
    file: UploadFile,
    settings: Annotated[Settings, Depends(get_app_settings)],
    pool: Annotated[InferencePool, Depends(get_inference_pool)],
    pipeline: Annotated[FaceLandmarkPipeline, Depends(get_pipeline)],
    prob_threshold: Threshold = None,
    nms_threshold: Threshold = None,
) -> DetectFacesResponse:
    """Detect faces in an uploaded image and regress landmarks for each one."""
    data = await file.read()
    if len(data) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload exceeds {settings.max_file_size} bytes",
        )

    try:
        image = decode_image(data, settings.max_image_pixels)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    prob = prob_threshold if prob_threshold is not None else settings.prob_threshold
    nms = nms_threshold if nms_threshold is not None else settings.nms_threshold

    try:
        result = await pool.run(pipeline.detect, image, prob, nms)
    except TimeoutError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inference queue is full, retry later",
        ) from exc
    except InferenceError as exc:
        logger.exception("Face detection failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    height, width = image.shape[:2]
    return _to_response(result, width, height)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(
    settings: Annotated[Settings, Depends(get_app_settings)],
    pool: Annotated[InferencePool, Depends(get_inference_pool)],
    model_manager: Annotated[ModelManager, Depends(get_model_manager)],
) -> HealthResponse:
    """Return service health status."""
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        models_loaded=model_manager.get_loaded_models(),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(settings: Annotated[Settings, Depends(get_app_settings)]) -> ModelsResponse:
    """Return available models and their status based on current configuration."""
    active_models = {settings.face_detection_model, settings.landmark_model}

    models: list[ModelInfo] = []
    for spec in MODEL_REGISTRY.values():
        if spec.insightface and not settings.accept_insightface_license:
            model_status = "requires_license"
        elif spec.name in active_models:
            model_status = "active"
        else:
            model_status = "available"

        models.append(
            ModelInfo(
                name=spec.name,
                task=spec.task,
                status=model_status,
                license=spec.license,
            )
        )

    return ModelsResponse(models=models)
