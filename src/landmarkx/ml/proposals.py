"""Decode per-stride SCRFD head outputs into face proposals.

Bounding-box channels are distances from the anchor center to the left, top,
right, and bottom edges, in units of the stride. Keypoint channels are
``(dx, dy)`` offsets from the same center. All outputs are in the padded
detector-input frame.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from landmarkx.ml.geometry import FaceObject, Frame, Point, Rect

if TYPE_CHECKING:
    from numpy.typing import NDArray

NUM_KEYPOINTS = 5


def _check_channels(name: str, blob: NDArray[np.float32], expected: int, spatial: tuple[int, int]) -> None:
    if blob.ndim != 3:
        raise ValueError(f"{name} blob must be (C, H, W), got shape {blob.shape}")
    if blob.shape[0] != expected:
        raise ValueError(f"{name} blob has {blob.shape[0]} channels, expected {expected}")
    if blob.shape[1:] != spatial:
        raise ValueError(f"{name} blob spatial size {blob.shape[1:]} does not match score map {spatial}")


def generate_proposals(
    anchors: NDArray[np.float32],
    feat_stride: int,
    score_blob: NDArray[np.float32],
    bbox_blob: NDArray[np.float32],
    kps_blob: NDArray[np.float32] | None,
    prob_threshold: float,
) -> list[FaceObject]:
    """Turn the raw heads of one stride into candidate faces.

    Args:
        anchors: ``(num_anchors, 4)`` origin-centered anchors for this stride.
        feat_stride: Downsampling factor of the feature map.
        score_blob: ``(num_anchors, H, W)`` face scores.
        bbox_blob: ``(4 * num_anchors, H, W)`` edge distances.
        kps_blob: ``(10 * num_anchors, H, W)`` keypoint offsets, or None.
        prob_threshold: Minimum score (inclusive) for a cell to be kept.

    Returns:
        Proposals in the PADDED frame, anchor-major then row-major.
    """
    num_anchors = anchors.shape[0]
    if score_blob.ndim != 3:
        raise ValueError(f"score blob must be (C, H, W), got shape {score_blob.shape}")
    spatial = (score_blob.shape[1], score_blob.shape[2])
    _check_channels("score", score_blob, num_anchors, spatial)
    _check_channels("bbox", bbox_blob, 4 * num_anchors, spatial)
    if kps_blob is not None:
        _check_channels("kps", kps_blob, 2 * NUM_KEYPOINTS * num_anchors, spatial)

    proposals: list[FaceObject] = []

    for q in range(num_anchors):
        anchor = anchors[q]
        anchor_w = float(anchor[2] - anchor[0])
        anchor_h = float(anchor[3] - anchor[1])

        rows, cols = np.nonzero(score_blob[q] >= prob_threshold)
        if rows.size == 0:
            continue

        probs = score_blob[q, rows, cols]
        cx = float(anchor[0]) + cols.astype(np.float64) * feat_stride + anchor_w * 0.5
        cy = float(anchor[1]) + rows.astype(np.float64) * feat_stride + anchor_h * 0.5

        distances = bbox_blob[q * 4 : q * 4 + 4, rows, cols].astype(np.float64) * feat_stride
        x0 = cx - distances[0]
        y0 = cy - distances[1]
        x1 = cx + distances[2]
        y1 = cy + distances[3]

        kps_x = kps_y = None
        if kps_blob is not None:
            offsets = kps_blob[q * 10 : q * 10 + 10, rows, cols].astype(np.float64) * feat_stride
            kps_x = cx + offsets[0::2]
            kps_y = cy + offsets[1::2]

        for n in range(rows.size):
            keypoints = None
            if kps_x is not None and kps_y is not None:
                keypoints = tuple(
                    Point(float(kps_x[k, n]), float(kps_y[k, n]), Frame.PADDED) for k in range(NUM_KEYPOINTS)
                )
            rect = Rect(
                x=float(x0[n]),
                y=float(y0[n]),
                width=float(x1[n] - x0[n] + 1),
                height=float(y1[n] - y0[n] + 1),
                frame=Frame.PADDED,
            )
            proposals.append(FaceObject(rect=rect, prob=float(probs[n]), keypoints=keypoints))

    return proposals
