from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, TypeVar

import numpy as np

from .geometry import iou_one_to_many


T = TypeVar("T")


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.4
    # Only suppress overlaps between items of the same class.
    class_aware: bool = True
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1 when set")


def nms_indices(
    boxes: np.ndarray,
    scores: np.ndarray,
    class_ids: Optional[np.ndarray],
    cfg: NMSConfig,
) -> np.ndarray:
    """
    Greedy NMS. Expects boxes shape (N,4) in xyxy, scores (N,) and class_ids (N,).
    Returns indices of kept boxes, highest score first.

    Ties in score keep their input order. A later box is suppressed when its IoU
    with a kept box is strictly greater than `cfg.iou_threshold` (and, when
    `cfg.class_aware`, it has the same class id).
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores).reshape(-1)
    if boxes.shape[0] == 0:
        return np.empty((0,), dtype=np.int64)
    if scores.shape[0] != boxes.shape[0]:
        raise ValueError(f"boxes/scores length mismatch: {boxes.shape[0]} vs {scores.shape[0]}")

    use_classes = cfg.class_aware and class_ids is not None
    if use_classes:
        class_ids = np.asarray(class_ids).reshape(-1)

    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = int(order[0])
        keep.append(i)

        rest = order[1:]
        overlap = iou_one_to_many(boxes[i], boxes[rest]) > cfg.iou_threshold
        if use_classes:
            overlap &= class_ids[rest] == class_ids[i]
        order = rest[~overlap]

    return np.array(keep, dtype=np.int64)


def nms(items: Sequence[T], cfg: NMSConfig) -> List[T]:
    """
    NMS over result objects exposing `bbox`, `confidence` and `class_id`.
    """

    if not items:
        return []

    boxes = np.array([item.bbox.as_xyxy() for item in items], dtype=np.float64)
    scores = np.array([item.confidence for item in items], dtype=np.float64)
    class_ids = np.array([item.class_id for item in items], dtype=np.int64)

    keep = nms_indices(boxes, scores, class_ids, cfg)
    return [items[int(i)] for i in keep]
