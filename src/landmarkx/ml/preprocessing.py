"""Image decoding and model input tensors.

Decoding turns uploaded bytes into an RGB uint8 array; the tensor helpers
produce the NCHW float32 inputs of the detector and landmark models.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

DETECTOR_MEAN: float = 127.5
DETECTOR_NORM: float = 1 / 128.0


def decode_image(image_bytes: bytes, max_pixels: int) -> NDArray[np.uint8]:
    """Decode raw image bytes into an RGB uint8 numpy array.

    Args:
        image_bytes: Raw file bytes (any format OpenCV can read).
        max_pixels: Upper bound on width * height.

    Returns:
        HxWx3 RGB uint8 numpy array.

    Raises:
        ValueError: If the image cannot be decoded or exceeds size limits.
    """
    buffer = np.frombuffer(image_bytes, dtype=np.uint8)
    if buffer.size == 0:
        raise ValueError("Empty image payload")

    bgr = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if bgr is None:
        raise ValueError("Could not decode image")

    height, width = bgr.shape[:2]
    if height * width > max_pixels:
        raise ValueError(f"Image has {height * width} pixels, limit is {max_pixels}")

    rgb: NDArray[np.uint8] = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
    return rgb


def to_detector_tensor(padded: NDArray[np.uint8]) -> NDArray[np.float32]:
    """Normalize a letterboxed HxWx3 image to a (1, 3, H, W) detector input."""
    normalized = (padded.astype(np.float32) - DETECTOR_MEAN) * DETECTOR_NORM
    return np.ascontiguousarray(normalized.transpose(2, 0, 1)[np.newaxis, ...])


def to_landmark_tensor(crop: NDArray[np.uint8]) -> NDArray[np.float32]:
    """Convert an aligned HxWx3 crop to a (1, 3, H, W) landmark input; pixel values are kept as-is."""
    return np.ascontiguousarray(crop.astype(np.float32).transpose(2, 0, 1)[np.newaxis, ...])
