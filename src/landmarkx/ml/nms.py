"""Greedy non-maximum suppression over face proposals."""

from __future__ import annotations

from operator import attrgetter
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from landmarkx.ml.geometry import FaceObject


def sort_by_confidence(faces: Sequence[FaceObject]) -> list[FaceObject]:
    """Return faces in non-increasing probability order.

    The relative order of equal-probability faces is not part of the contract.
    """
    return sorted(faces, key=attrgetter("prob"), reverse=True)


def nms_sorted_bboxes(faces: Sequence[FaceObject], nms_threshold: float) -> list[int]:
    """Pick indices of faces to keep from an already sorted sequence.

    A face is dropped when its IoU with any previously kept face is strictly
    greater than ``nms_threshold``.
    """
    picked: list[int] = []

    for i, face in enumerate(faces):
        keep = True
        for j in picked:
            if face.rect.iou(faces[j].rect) > nms_threshold:
                keep = False
                break
        if keep:
            picked.append(i)

    return picked


def non_max_suppression(faces: Sequence[FaceObject], nms_threshold: float) -> list[FaceObject]:
    """Sort by confidence and suppress overlapping faces."""
    ordered = sort_by_confidence(faces)
    return [ordered[i] for i in nms_sorted_bboxes(ordered, nms_threshold)]
