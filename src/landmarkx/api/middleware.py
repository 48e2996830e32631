"""Request dependencies: API key authentication, upload limits, app state access."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from landmarkx.config import Settings
    from landmarkx.ml.inference import InferencePool
    from landmarkx.ml.model_manager import ModelManager
    from landmarkx.ml.pipeline import FaceLandmarkPipeline

_bearer_scheme = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def get_model_manager(request: Request) -> ModelManager:
    manager: ModelManager = request.app.state.model_manager
    return manager


def get_pipeline(request: Request) -> FaceLandmarkPipeline:
    """Return the loaded pipeline, or 503 while models are unavailable."""
    pipeline: FaceLandmarkPipeline | None = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Models are not loaded",
        )
    return pipeline


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against the configured API key.

    If no API key is configured (LANDMARKX_API_KEY not set), all requests pass.
    If configured, requests must include 'Authorization: Bearer <key>'.
    """
    api_key = get_app_settings(request).api_key
    if api_key is None:
        return

    if credentials is None or not secrets.compare_digest(credentials.credentials.encode(), api_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def enforce_upload_limit(request: Request) -> None:
    """Reject requests whose declared body size exceeds LANDMARKX_MAX_FILE_SIZE."""
    declared = request.headers.get("content-length")
    if declared is None or not declared.isdigit():
        return
    limit = get_app_settings(request).max_file_size
    if int(declared) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload exceeds {limit} bytes",
        )
