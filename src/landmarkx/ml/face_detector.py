"""SCRFD face detection.

The detector letterboxes the image, runs the model once, decodes the three
stride levels, suppresses overlaps, and returns faces in original image
coordinates.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from landmarkx.ml.anchors import ANCHOR_RATIOS, ANCHOR_SCALES, STRIDE_LEVELS, generate_anchors
from landmarkx.ml.inference import run_model
from landmarkx.ml.letterbox import compute_letterbox
from landmarkx.ml.nms import non_max_suppression
from landmarkx.ml.preprocessing import to_detector_tensor
from landmarkx.ml.proposals import generate_proposals

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from landmarkx.ml.geometry import FaceObject
    from landmarkx.ml.inference import InferenceModel

logger = logging.getLogger(__name__)

DETECTOR_INPUT_NAME = "input.1"


class FaceDetector(Protocol):
    """Protocol for face detection models."""

    def detect(self, image: NDArray[np.uint8], prob_threshold: float, nms_threshold: float) -> list[FaceObject]:
        """Detect faces in an image.

        Args:
            image: HxWx3 RGB uint8 array.
            prob_threshold: Minimum face score.
            nms_threshold: IoU above which the weaker of two faces is dropped.

        Returns:
            Detections in original image coordinates, highest score first.
        """
        ...


def _squeeze_batch(blob: NDArray[np.float32]) -> NDArray[np.float32]:
    if blob.ndim == 4 and blob.shape[0] == 1:
        return blob[0]
    return blob


class ScrfdDetector:
    """Anchor-based SCRFD detector over strides 8, 16 and 32."""

    def __init__(self, session: InferenceModel, *, has_keypoints: bool, target_size: int = 120) -> None:
        self._session = session
        self._has_keypoints = has_keypoints
        self._target_size = target_size
        self._anchors = {
            level.stride: generate_anchors(level.base_size, ANCHOR_RATIOS, ANCHOR_SCALES) for level in STRIDE_LEVELS
        }
        self._output_names = self._build_output_names()

    @property
    def has_keypoints(self) -> bool:
        return self._has_keypoints

    def detect(self, image: NDArray[np.uint8], prob_threshold: float, nms_threshold: float) -> list[FaceObject]:
        height, width = image.shape[:2]
        letterbox = compute_letterbox(width, height, self._target_size)
        tensor = to_detector_tensor(letterbox.apply(image))

        outputs = dict(
            zip(
                self._output_names,
                run_model(self._session, self._output_names, {DETECTOR_INPUT_NAME: tensor}),
                strict=True,
            )
        )

        proposals: list[FaceObject] = []
        for level in STRIDE_LEVELS:
            stride = level.stride
            kps_blob = _squeeze_batch(outputs[f"kps_{stride}"]) if self._has_keypoints else None
            proposals.extend(
                generate_proposals(
                    self._anchors[stride],
                    stride,
                    _squeeze_batch(outputs[f"score_{stride}"]),
                    _squeeze_batch(outputs[f"bbox_{stride}"]),
                    kps_blob,
                    prob_threshold,
                )
            )

        kept = non_max_suppression(proposals, nms_threshold)
        logger.debug(
            "Detected %d faces from %d proposals (image=%dx%d, input=%dx%d)",
            len(kept),
            len(proposals),
            width,
            height,
            letterbox.padded_width,
            letterbox.padded_height,
        )
        return [letterbox.face_to_image(face) for face in kept]

    def _build_output_names(self) -> list[str]:
        names: list[str] = []
        for level in STRIDE_LEVELS:
            names.append(f"score_{level.stride}")
            names.append(f"bbox_{level.stride}")
            if self._has_keypoints:
                names.append(f"kps_{level.stride}")
        return names
