"""Frame-tagged geometry primitives shared by the detection pipeline.

Every point and rectangle records the coordinate frame it lives in. Only the
letterbox mapping and the alignment transform move values between frames,
and both refuse input tagged with the wrong frame.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Frame(StrEnum):
    PADDED = "padded"
    IMAGE = "image"
    CROP = "crop"


@dataclass(frozen=True)
class Point:
    """A 2D point in a specific coordinate frame."""

    x: float
    y: float
    frame: Frame


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle as origin plus size."""

    x: float
    y: float
    width: float
    height: float
    frame: Frame

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2, self.frame)

    def area(self) -> float:
        return self.width * self.height

    def intersection_area(self, other: Rect) -> float:
        """Area of the overlap with ``other``; 0 when they do not overlap."""
        require_frame(other.frame, self.frame)
        inter_w = min(self.right, other.right) - max(self.x, other.x)
        inter_h = min(self.bottom, other.bottom) - max(self.y, other.y)
        if inter_w <= 0 or inter_h <= 0:
            return 0.0
        return inter_w * inter_h

    def iou(self, other: Rect) -> float:
        """Intersection over union. Zero-area boxes overlap nothing."""
        area_a = self.area()
        area_b = other.area()
        if area_a <= 0 or area_b <= 0:
            return 0.0
        inter = self.intersection_area(other)
        union = area_a + area_b - inter
        if union <= 0:
            return 0.0
        return inter / union


@dataclass(frozen=True)
class FaceObject:
    """A detected face: bounding box, confidence, and optional 5-point keypoints."""

    rect: Rect
    prob: float
    keypoints: tuple[Point, ...] | None = None

    @property
    def frame(self) -> Frame:
        return self.rect.frame


def require_frame(actual: Frame, expected: Frame) -> None:
    """Raise ValueError if ``actual`` is not ``expected``."""
    if actual != expected:
        raise ValueError(f"Expected coordinates in the {expected} frame, got {actual}")
