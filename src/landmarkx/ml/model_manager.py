"""Model manager: resolve, download, load, and cache ONNX models.

Model names map to files through a static registry. Files are looked up in
the local models directory first and fetched from a HuggingFace repository
only when one is configured. Sessions are created once and shared read-only.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from landmarkx.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def get_spec(self, model_name: str) -> ModelSpec:
        """Return registry metadata for a model."""
        ...

    def ensure_downloaded(self, model_name: str) -> Path:
        """Ensure a model is available locally and return its file path."""
        ...

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached or newly created InferenceSession."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return names of currently loaded models."""
        ...

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


class ModelTask(StrEnum):
    FACE_DETECTION = "face_detection"
    FACE_LANDMARKS = "face_landmarks"


INSIGHTFACE_LICENSE = "Non-commercial (InsightFace)"

SCRFD_VARIANTS: tuple[str, ...] = (
    "500m",
    "500m_kps",
    "1g",
    "2.5g",
    "2.5g_kps",
    "10g",
    "10g_kps",
    "34g",
)


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX model."""

    name: str
    filename: str
    task: ModelTask
    license: str
    insightface: bool

    @property
    def has_keypoints(self) -> bool:
        """Whether a detector variant also predicts 5-point keypoints."""
        return self.task == ModelTask.FACE_DETECTION and "_kps" in self.name


def _scrfd_spec(variant: str) -> ModelSpec:
    return ModelSpec(
        name=f"scrfd_{variant}",
        filename=f"scrfd_{variant}.onnx",
        task=ModelTask.FACE_DETECTION,
        license=INSIGHTFACE_LICENSE,
        insightface=True,
    )


MODEL_REGISTRY: dict[str, ModelSpec] = {
    **{spec.name: spec for spec in map(_scrfd_spec, SCRFD_VARIANTS)},
    "2d106det": ModelSpec(
        name="2d106det",
        filename="2d106det.onnx",
        task=ModelTask.FACE_LANDMARKS,
        license=INSIGHTFACE_LICENSE,
        insightface=True,
    ),
}


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Resolves model files and caches ONNX inference sessions."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)

        self._lock = threading.Lock()
        self._sessions: dict[str, InferenceSession] = {}
        self._model_paths: dict[str, Path] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    @staticmethod
    def get_spec(model_name: str) -> ModelSpec:
        try:
            return MODEL_REGISTRY[model_name]
        except KeyError:
            raise KeyError(f"Unknown model: {model_name}") from None

    def ensure_downloaded(self, model_name: str) -> Path:
        """Return the local path of a model, downloading it if a repo is configured."""
        spec = self.get_spec(model_name)
        self._check_license(spec)

        cached = self._model_paths.get(model_name)
        if cached is not None and cached.exists():
            return cached

        local = self._models_dir / spec.filename
        if local.exists():
            self._model_paths[model_name] = local
            return local

        repo_id = self._settings.model_repo
        if repo_id is None:
            raise FileNotFoundError(f"Model file {local} not found and LANDMARKX_MODEL_REPO is not set")

        self._models_dir.mkdir(parents=True, exist_ok=True)
        downloaded = Path(
            hf_hub_download(
                repo_id=repo_id,
                filename=spec.filename,
                local_dir=str(self._models_dir),
            )
        )
        self._model_paths[model_name] = downloaded
        logger.info("Downloaded %s to %s", model_name, downloaded)
        return downloaded

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached InferenceSession, creating one if needed."""
        with self._lock:
            cached = self._sessions.get(model_name)
            if cached is not None:
                return cached

        model_path = self.ensure_downloaded(model_name)
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )

        with self._lock:
            # Double-check: another thread may have created it while we loaded.
            existing = self._sessions.get(model_name)
            if existing is not None:
                return existing
            self._sessions[model_name] = session
            logger.info("Loaded session for %s", model_name)
            return session

    def get_loaded_models(self) -> list[str]:
        """Return names of models with active sessions."""
        with self._lock:
            return list(self._sessions.keys())

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        with self._lock:
            self._sessions.clear()
            logger.info("All model sessions cleared")

    # -- Internal -----------------------------------------------------------

    def _check_license(self, spec: ModelSpec) -> None:
        if spec.insightface and not self._settings.accept_insightface_license:
            raise RuntimeError(f"Model '{spec.name}' requires LANDMARKX_ACCEPT_INSIGHTFACE_LICENSE=true")

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
