"""Face alignment for the landmark model.

A detected face is cropped into a fixed ``S x S`` square by a scale plus
translate affine transform; the landmark model's normalized output is mapped
back to the original image through the inverse of that same transform.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import cv2
import numpy as np

from landmarkx.ml.geometry import Frame, Point, Rect, require_frame

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

NUM_LANDMARKS = 106
FACE_MARGIN = 1.5


@dataclass(frozen=True)
class AffineTransform:
    """A 2x3 affine matrix mapping points from ``source`` to ``target`` frame."""

    matrix: NDArray[np.float64]
    source: Frame
    target: Frame

    def inverse(self) -> AffineTransform:
        inverted = cv2.invertAffineTransform(self.matrix)
        return AffineTransform(matrix=inverted, source=self.target, target=self.source)

    def apply(self, points: ArrayLike) -> NDArray[np.float64]:
        """Transform an ``(n, 2)`` array of points assumed to be in the source frame."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        return pts @ self.matrix[:, :2].T + self.matrix[:, 2]

    def apply_point(self, point: Point) -> Point:
        require_frame(point.frame, self.source)
        x, y = self.apply([[point.x, point.y]])[0]
        return Point(float(x), float(y), self.target)


def align_face(rect: Rect, output_size: int = 192, margin: float = FACE_MARGIN) -> AffineTransform:
    """Build the IMAGE -> CROP transform centering ``rect`` in an ``output_size`` square.

    The longer side of the face, enlarged by ``margin``, spans the crop.
    """
    require_frame(rect.frame, Frame.IMAGE)
    extent = max(rect.width, rect.height)
    if extent <= 0:
        raise ValueError(f"Cannot align a degenerate face rect {rect}")

    center = rect.center
    scale = output_size / (extent * margin)
    half = output_size / 2

    matrix = np.array(
        [
            [scale, 0.0, -center.x * scale + half],
            [0.0, scale, -center.y * scale + half],
        ],
        dtype=np.float64,
    )
    return AffineTransform(matrix=matrix, source=Frame.IMAGE, target=Frame.CROP)


def warp_face(image: NDArray[np.uint8], transform: AffineTransform, output_size: int = 192) -> NDArray[np.uint8]:
    """Crop the aligned face out of ``image`` as an ``output_size`` square."""
    if transform.source != Frame.IMAGE or transform.target != Frame.CROP:
        raise ValueError("warp_face expects an IMAGE -> CROP transform")
    crop: NDArray[np.uint8] = cv2.warpAffine(image, transform.matrix, (output_size, output_size))
    return crop


def decode_landmarks(raw: ArrayLike, transform: AffineTransform, output_size: int = 192) -> NDArray[np.float32]:
    """Map the landmark model output back onto the original image.

    Args:
        raw: 212 floats, 106 ``(x, y)`` pairs normalized to roughly ``[-1, 1]``
            over the crop.
        transform: The IMAGE -> CROP transform the crop was produced with.
        output_size: Side length of the crop in pixels.

    Returns:
        ``(106, 2)`` float32 landmark coordinates in the IMAGE frame.
    """
    require_frame(transform.target, Frame.CROP)
    flat = np.asarray(raw, dtype=np.float32).reshape(-1)
    if flat.size != NUM_LANDMARKS * 2:
        raise ValueError(f"Expected {NUM_LANDMARKS * 2} landmark values, got {flat.size}")

    crop_points = (flat.reshape(NUM_LANDMARKS, 2).astype(np.float64) + 1.0) * (output_size / 2)
    inverse = transform.inverse()
    return inverse.apply(crop_points).astype(np.float32)
