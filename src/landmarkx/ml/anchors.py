"""Reference anchor boxes for the SCRFD feature pyramid."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray


@dataclass(frozen=True)
class StrideLevel:
    """One pyramid level: feature-map stride and anchor base size in pixels."""

    stride: int
    base_size: int


STRIDE_LEVELS: tuple[StrideLevel, ...] = (
    StrideLevel(stride=8, base_size=16),
    StrideLevel(stride=16, base_size=64),
    StrideLevel(stride=32, base_size=256),
)
ANCHOR_RATIOS: tuple[float, ...] = (1.0,)
ANCHOR_SCALES: tuple[float, ...] = (1.0, 2.0)


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def generate_anchors(
    base_size: int,
    ratios: Sequence[float],
    scales: Sequence[float],
) -> NDArray[np.float32]:
    """Build anchors centered on the origin.

    Rows are ``(x0, y0, x1, y1)`` ordered ratio-major, scale-minor, which is
    the channel order of the score and bbox heads.

    Returns:
        Array of shape ``(len(ratios) * len(scales), 4)``.
    """
    anchors = np.empty((len(ratios) * len(scales), 4), dtype=np.float32)

    for i, ratio in enumerate(ratios):
        r_w = _round_half_away(base_size / math.sqrt(ratio))
        r_h = _round_half_away(r_w * ratio)

        for j, scale in enumerate(scales):
            rs_w = r_w * scale
            rs_h = r_h * scale
            anchors[i * len(scales) + j] = (-rs_w * 0.5, -rs_h * 0.5, rs_w * 0.5, rs_h * 0.5)

    return anchors
