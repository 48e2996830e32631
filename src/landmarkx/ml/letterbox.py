"""Aspect-preserving resize plus padding to a multiple of 32, and its inverse."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

import cv2
import numpy as np

from landmarkx.ml.geometry import FaceObject, Frame, Point, Rect, require_frame

if TYPE_CHECKING:
    from numpy.typing import NDArray

PAD_MULTIPLE = 32


@dataclass(frozen=True)
class Letterbox:
    """Geometry of one letterboxed image.

    ``width``/``height`` describe the original image, ``resized_*`` the image
    after scaling, and ``wpad``/``hpad`` the total padding on each axis.
    """

    width: int
    height: int
    scale: float
    resized_width: int
    resized_height: int
    wpad: int
    hpad: int

    @property
    def pad_left(self) -> int:
        return self.wpad // 2

    @property
    def pad_top(self) -> int:
        return self.hpad // 2

    @property
    def padded_width(self) -> int:
        return self.resized_width + self.wpad

    @property
    def padded_height(self) -> int:
        return self.resized_height + self.hpad

    def apply(self, image: NDArray[np.uint8]) -> NDArray[np.uint8]:
        """Resize and pad an HxWx3 image into the detector input canvas."""
        if image.shape[:2] != (self.height, self.width):
            raise ValueError(
                f"Image shape {image.shape[:2]} does not match letterbox source {(self.height, self.width)}"
            )
        resized = cv2.resize(image, (self.resized_width, self.resized_height), interpolation=cv2.INTER_LINEAR)
        padded: NDArray[np.uint8] = cv2.copyMakeBorder(
            resized,
            self.pad_top,
            self.hpad - self.pad_top,
            self.pad_left,
            self.wpad - self.pad_left,
            cv2.BORDER_CONSTANT,
            value=0,
        )
        return padded

    def to_padded(self, point: Point) -> Point:
        """Map an original-image point into the padded detector frame."""
        require_frame(point.frame, Frame.IMAGE)
        return Point(
            point.x * self.scale + self.pad_left,
            point.y * self.scale + self.pad_top,
            Frame.PADDED,
        )

    def to_image(self, point: Point) -> Point:
        """Map a padded-frame point back onto the original image, clamped to its bounds."""
        require_frame(point.frame, Frame.PADDED)
        x = (point.x - self.pad_left) / self.scale
        y = (point.y - self.pad_top) / self.scale
        return Point(self._clamp_x(x), self._clamp_y(y), Frame.IMAGE)

    def face_to_image(self, face: FaceObject) -> FaceObject:
        """Move a detection from the padded frame to the original image frame."""
        require_frame(face.frame, Frame.PADDED)
        rect = face.rect
        top_left = self.to_image(Point(rect.x, rect.y, Frame.PADDED))
        bottom_right = self.to_image(Point(rect.right, rect.bottom, Frame.PADDED))

        image_rect = Rect(
            x=top_left.x,
            y=top_left.y,
            width=max(bottom_right.x - top_left.x, 0.0),
            height=max(bottom_right.y - top_left.y, 0.0),
            frame=Frame.IMAGE,
        )
        keypoints = None
        if face.keypoints is not None:
            keypoints = tuple(self.to_image(p) for p in face.keypoints)

        return replace(face, rect=image_rect, keypoints=keypoints)

    def _clamp_x(self, x: float) -> float:
        return max(min(x, float(self.width - 1)), 0.0)

    def _clamp_y(self, y: float) -> float:
        return max(min(y, float(self.height - 1)), 0.0)


def compute_letterbox(width: int, height: int, target_size: int) -> Letterbox:
    """Scale the longer side to ``target_size`` and pad both sides up to a multiple of 32.

    Odd padding puts the extra pixel on the trailing (right/bottom) side.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image size must be positive, got {width}x{height}")
    if target_size <= 0:
        raise ValueError(f"target_size must be positive, got {target_size}")

    if width > height:
        scale = target_size / width
        resized_width = target_size
        resized_height = max(int(height * scale), 1)
    else:
        scale = target_size / height
        resized_height = target_size
        resized_width = max(int(width * scale), 1)

    wpad = (resized_width + PAD_MULTIPLE - 1) // PAD_MULTIPLE * PAD_MULTIPLE - resized_width
    hpad = (resized_height + PAD_MULTIPLE - 1) // PAD_MULTIPLE * PAD_MULTIPLE - resized_height

    return Letterbox(
        width=width,
        height=height,
        scale=scale,
        resized_width=resized_width,
        resized_height=resized_height,
        wpad=wpad,
        hpad=hpad,
    )
