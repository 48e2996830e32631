"""106-point facial landmark model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from landmarkx.ml.alignment import FACE_MARGIN, align_face, decode_landmarks, warp_face
from landmarkx.ml.inference import run_model
from landmarkx.ml.preprocessing import to_landmark_tensor

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from landmarkx.ml.geometry import FaceObject
    from landmarkx.ml.inference import InferenceModel

LANDMARK_INPUT_NAME = "data"
LANDMARK_OUTPUT_NAME = "fc1"


class FaceLandmarker:
    """Crops each face into a canonical square and regresses 106 landmarks."""

    def __init__(self, session: InferenceModel, input_size: int = 192, margin: float = FACE_MARGIN) -> None:
        self._session = session
        self._input_size = input_size
        self._margin = margin

    @property
    def input_size(self) -> int:
        return self._input_size

    def predict(self, image: NDArray[np.uint8], face: FaceObject) -> NDArray[np.float32]:
        """Return ``(106, 2)`` landmark coordinates for ``face`` in original image coordinates.

        Raises:
            ValueError: If the face rect is degenerate or not in the image frame.
            InferenceError: If the landmark model fails.
        """
        transform = align_face(face.rect, self._input_size, self._margin)
        crop = warp_face(image, transform, self._input_size)
        (raw,) = run_model(
            self._session,
            [LANDMARK_OUTPUT_NAME],
            {LANDMARK_INPUT_NAME: to_landmark_tensor(crop)},
        )
        return decode_landmarks(raw, transform, self._input_size)
