from __future__ import annotations

from typing import Iterable, Optional, Tuple

import numpy as np

from .metadata import POSE_SKELETON_EDGES
from .types import Detection, PoseResult, SegmentationResult


def _color_for_class_id(class_id: Optional[int]) -> Tuple[int, int, int]:
    """
    Deterministic BGR color for a class id (OpenCV expects BGR).
    """

    if class_id is None:
        return (0, 255, 255)

    palette = [
        (255, 56, 56),
        (255, 157, 151),
        (255, 112, 31),
        (255, 178, 29),
        (207, 210, 49),
        (72, 249, 10),
        (146, 204, 23),
        (61, 219, 134),
        (26, 147, 52),
        (0, 212, 187),
        (44, 153, 168),
        (0, 194, 255),
        (52, 69, 147),
        (100, 115, 255),
        (0, 24, 236),
        (132, 56, 255),
        (82, 0, 133),
        (203, 56, 255),
        (255, 149, 200),
        (255, 55, 199),
    ]
    if 0 <= class_id < len(palette):
        return palette[class_id]

    rng = np.random.default_rng(int(class_id))
    bgr = rng.integers(0, 256, size=3, dtype=np.uint8)
    return int(bgr[0]), int(bgr[1]), int(bgr[2])


def draw_results(
    image_bgr: np.ndarray,
    results: Iterable[Detection],
    *,
    show_score: bool = True,
    mask_alpha: float = 0.4,
    box_thickness: int = 2,
    keypoint_radius: int = 3,
    font_scale: float = 0.5,
) -> np.ndarray:
    """
    Draw boxes, labels, instance masks and pose skeletons on a BGR image copy.

    Results must be in the image's own coordinates (the frame they were
    decoded for).
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_results(). Install with `pip install opencv-python`.") from e

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    h, w = out.shape[:2]

    for res in results:
        color = _color_for_class_id(res.class_id)

        if isinstance(res, SegmentationResult) and res.mask is not None and res.mask.shape == (h, w):
            region = out[res.mask]
            out[res.mask] = (region * (1.0 - mask_alpha) + np.array(color) * mask_alpha).astype(np.uint8)

        x1, y1, x2, y2 = res.as_xyxy()
        x1i = int(np.clip(round(x1), 0, w - 1))
        y1i = int(np.clip(round(y1), 0, h - 1))
        x2i = int(np.clip(round(x2), 0, w - 1))
        y2i = int(np.clip(round(y2), 0, h - 1))
        cv2.rectangle(out, (x1i, y1i), (x2i, y2i), color, thickness=box_thickness)

        label = res.class_name
        if show_score:
            label = f"{label} {res.confidence:.2f}"
        (tw, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, 1)
        # Place label above the box if possible, else inside.
        y_text_top = y1i - th - baseline
        if y_text_top < 0:
            y_text_top = y1i
        cv2.rectangle(
            out,
            (x1i, y_text_top),
            (min(x1i + tw, w - 1), min(y_text_top + th + baseline, h - 1)),
            color,
            thickness=-1,
        )
        cv2.putText(
            out,
            label,
            (x1i, min(y_text_top + th, h - 1)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            (255, 255, 255),
            thickness=1,
            lineType=cv2.LINE_AA,
        )

        if isinstance(res, PoseResult) and res.keypoints:
            kps = res.keypoints
            for a, b in POSE_SKELETON_EDGES:
                if a < len(kps) and b < len(kps) and kps[a].visible and kps[b].visible:
                    pa = (int(round(kps[a].x)), int(round(kps[a].y)))
                    pb = (int(round(kps[b].x)), int(round(kps[b].y)))
                    cv2.line(out, pa, pb, (0, 255, 0), thickness=2, lineType=cv2.LINE_AA)
            for kp in kps:
                if kp.visible:
                    center = (int(round(kp.x)), int(round(kp.y)))
                    cv2.circle(out, center, keypoint_radius, (0, 0, 255), thickness=-1, lineType=cv2.LINE_AA)

    return out
