"""Detection plus landmark pipeline.

Architecture:
    image -> ScrfdDetector (letterbox, decode, NMS, un-letterbox)
          -> per face: FaceLandmarker (align, infer, un-align)

Each call works only on values it creates, so one pipeline may serve
concurrent callers as long as its model sessions allow concurrent runs.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from landmarkx.ml.face_detector import ScrfdDetector
from landmarkx.ml.face_landmarker import FaceLandmarker
from landmarkx.ml.model_manager import ModelTask

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from landmarkx.config import Settings
    from landmarkx.ml.face_detector import FaceDetector
    from landmarkx.ml.geometry import FaceObject
    from landmarkx.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionResult:
    """Index-aligned faces and their 106-point landmark sets."""

    faces: list[FaceObject] = field(default_factory=list)
    landmarks: list[NDArray[np.float32]] = field(default_factory=list)


def validate_threshold(name: str, value: float) -> float:
    """Return ``value`` if it lies in (0, 1], otherwise raise ValueError."""
    if math.isnan(value) or not 0.0 < value <= 1.0:
        raise ValueError(f"{name} must be in (0, 1], got {value}")
    return value


def _validate_image(image: NDArray[np.uint8]) -> None:
    if not isinstance(image, np.ndarray) or image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected an HxWx3 image, got shape {getattr(image, 'shape', None)}")
    if image.dtype != np.uint8:
        raise ValueError(f"Expected a uint8 image, got {image.dtype}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise ValueError("Image is empty")


class FaceLandmarkPipeline:
    """Runs face detection followed by 106-point landmark regression."""

    def __init__(self, detector: FaceDetector, landmarker: FaceLandmarker) -> None:
        self._detector = detector
        self._landmarker = landmarker

    def detect(
        self,
        image: NDArray[np.uint8],
        prob_threshold: float = 0.5,
        nms_threshold: float = 0.45,
    ) -> DetectionResult:
        """Detect faces and their landmarks in an RGB image.

        Raises:
            ValueError: If the thresholds are outside (0, 1] or the image is malformed.
            InferenceError: If either model fails; no partial result is returned.
        """
        validate_threshold("prob_threshold", prob_threshold)
        validate_threshold("nms_threshold", nms_threshold)
        _validate_image(image)

        faces: list[FaceObject] = []
        landmarks: list[NDArray[np.float32]] = []

        for face in self._detector.detect(image, prob_threshold, nms_threshold):
            if face.rect.width <= 0 or face.rect.height <= 0:
                logger.debug("Dropping face with degenerate rect after clamping: %s", face.rect)
                continue
            faces.append(face)
            landmarks.append(self._landmarker.predict(image, face))

        return DetectionResult(faces=faces, landmarks=landmarks)


def build_pipeline(settings: Settings, model_manager: ModelManager) -> FaceLandmarkPipeline:
    """Load both models through ``model_manager`` and wire them into a pipeline."""
    detector_spec = model_manager.get_spec(settings.face_detection_model)
    if detector_spec.task != ModelTask.FACE_DETECTION:
        raise ValueError(f"{detector_spec.name} is not a face detection model")
    landmark_spec = model_manager.get_spec(settings.landmark_model)
    if landmark_spec.task != ModelTask.FACE_LANDMARKS:
        raise ValueError(f"{landmark_spec.name} is not a landmark model")

    detector = ScrfdDetector(
        model_manager.get_session(settings.face_detection_model),
        has_keypoints=detector_spec.has_keypoints,
        target_size=settings.detection_size,
    )
    landmarker = FaceLandmarker(
        model_manager.get_session(settings.landmark_model),
        input_size=settings.landmark_size,
    )
    logger.info(
        "Pipeline ready (detector=%s, keypoints=%s, landmarks=%s)",
        settings.face_detection_model,
        detector_spec.has_keypoints,
        settings.landmark_model,
    )
    return FaceLandmarkPipeline(detector, landmarker)
