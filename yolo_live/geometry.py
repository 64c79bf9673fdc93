from __future__ import annotations

from typing import Tuple

import numpy as np

from .types import BoundingBox


# Scaled boxes narrower or shorter than this (in original frame pixels) are
# dropped; they show up mostly along the image borders.
MIN_BOX_SIZE = 20.0

Size = Tuple[int, int]  # (width, height)


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """
    Intersection over union of two boxes in the same coordinate space.
    """

    inter_w = max(0.0, min(a.x2, b.x2) - max(a.x1, b.x1))
    inter_h = max(0.0, min(a.y2, b.y2) - max(a.y1, b.y1))
    inter = inter_w * inter_h
    union = a.area + b.area - inter
    if union <= 0.0:
        return 0.0
    return inter / union


def iou_one_to_many(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    Vectorised IoU of one xyxy box (4,) against boxes (N, 4).
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.float64)

    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    w = np.maximum(0.0, xx2 - xx1)
    h = np.maximum(0.0, yy2 - yy1)
    inter = w * h
    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (boxes[:, 2] - boxes[:, 0]) * (boxes[:, 3] - boxes[:, 1])
    union = area + areas - inter

    out = np.zeros_like(inter, dtype=np.float64)
    np.divide(inter, union, out=out, where=union > 0)
    return out


def cxcywh_to_xyxy(boxes: np.ndarray) -> np.ndarray:
    cx, cy, w, h = boxes.T
    return np.stack([cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2], axis=1)


def scale_factors(model_size: Size, original_size: Size) -> Tuple[float, float]:
    model_w, model_h = model_size
    orig_w, orig_h = original_size
    if model_w <= 0 or model_h <= 0:
        raise ValueError(f"model_size must be positive, got {model_size}")
    return orig_w / model_w, orig_h / model_h


def scale_boxes(boxes: np.ndarray, model_size: Size, original_size: Size) -> np.ndarray:
    """
    Map xyxy boxes (N, 4) from model input space to the original frame.

    X and Y are scaled independently (the frame was stretched, not
    letterboxed), then clamped to [0, width] / [0, height].
    """

    sx, sy = scale_factors(model_size, original_size)
    orig_w, orig_h = original_size

    out = np.asarray(boxes, dtype=np.float64).copy()
    out[:, [0, 2]] = np.clip(out[:, [0, 2]] * sx, 0, orig_w)
    out[:, [1, 3]] = np.clip(out[:, [1, 3]] * sy, 0, orig_h)
    return out


def scale_box(box: BoundingBox, model_size: Size, original_size: Size) -> BoundingBox:
    x1, y1, x2, y2 = scale_boxes(np.array([box.as_xyxy()]), model_size, original_size)[0]
    return BoundingBox(float(x1), float(y1), float(x2), float(y2))


def meets_min_size(box: BoundingBox, min_size: float = MIN_BOX_SIZE) -> bool:
    return box.width >= min_size and box.height >= min_size


def min_size_mask(boxes: np.ndarray, min_size: float) -> np.ndarray:
    """
    Boolean keep-mask over xyxy boxes (N, 4) for the minimum-size floor.
    """

    if min_size <= 0:
        return np.ones((boxes.shape[0],), dtype=bool)
    w = boxes[:, 2] - boxes[:, 0]
    h = boxes[:, 3] - boxes[:, 1]
    return (w >= min_size) & (h >= min_size)
