from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Optional, Tuple

import numpy as np


class ModelType(str, Enum):
    DETECTION = "detection"
    SEGMENTATION = "segmentation"
    POSE = "pose"


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in corner form (x1, y1, x2, y2).
    """

    x1: float
    y1: float
    x2: float
    y2: float

    def __post_init__(self) -> None:
        if self.x2 < self.x1 or self.y2 < self.y1:
            raise ValueError(f"Invalid box corners: {self.as_xyxy()}")

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return self.width * self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2


@dataclass(frozen=True)
class Detection:
    """
    Base result shared by every model type, in original frame coordinates.
    """

    kind: ClassVar[ModelType] = ModelType.DETECTION

    bbox: BoundingBox
    confidence: float
    class_id: int
    class_name: str = "unknown"

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.bbox.as_xyxy()


@dataclass(frozen=True)
class SegmentationResult(Detection):
    kind: ClassVar[ModelType] = ModelType.SEGMENTATION

    # Boolean (orig_h, orig_w) array; always False outside `bbox`.
    mask: Optional[np.ndarray] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class PoseKeypoint:
    x: float
    y: float
    confidence: float
    visible: bool


@dataclass(frozen=True)
class PoseResult(Detection):
    kind: ClassVar[ModelType] = ModelType.POSE

    # 17 keypoints in COCO order.
    keypoints: Tuple[PoseKeypoint, ...] = ()
