from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple, Union

from .types import ModelType


@dataclass(frozen=True)
class ModelSpec:
    """
    Declared properties of one exported YOLO model.

    `input_shape` is NCHW: (batch, channels, height, width).
    """

    id: str
    name: str
    file: str
    type: ModelType
    input_shape: Tuple[int, int, int, int] = (1, 3, 640, 640)
    description: str = ""
    output_format: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("model id must be non-empty")
        # Accept plain strings for `type` (e.g. from JSON).
        object.__setattr__(self, "type", ModelType(self.type))
        shape = tuple(self.input_shape)
        if len(shape) != 4 or any(not isinstance(v, int) or isinstance(v, bool) or v <= 0 for v in shape):
            raise ValueError(f"input_shape must be 4 positive ints (N, C, H, W), got {self.input_shape!r}")
        if shape[0] != 1:
            raise ValueError("only batch size 1 is supported")
        if shape[1] != 3:
            raise ValueError("input_shape must have 3 channels")
        object.__setattr__(self, "input_shape", shape)

    @property
    def target_size(self) -> Tuple[int, int]:
        """(width, height) frames are resized to."""
        return self.input_shape[3], self.input_shape[2]


DEFAULT_MODELS: Tuple[ModelSpec, ...] = (
    ModelSpec(
        id="yolo11n",
        name="YOLOv11n Detection",
        description="General object detection (80 classes)",
        file="models/yolo11n.onnx",
        type=ModelType.DETECTION,
        output_format="[1, 84, 8400]",  # 4 bbox + 80 classes
    ),
    ModelSpec(
        id="yolo11n-seg",
        name="YOLOv11n Segmentation",
        description="Instance segmentation with masks",
        file="models/yolo11n-seg.onnx",
        type=ModelType.SEGMENTATION,
        output_format="[1, 116, 8400]",  # 4 bbox + 80 classes + 32 mask coeffs
    ),
    ModelSpec(
        id="yolo11n-pose",
        name="YOLOv11n Pose",
        description="Human pose estimation (17 keypoints)",
        file="models/yolo11n-pose.onnx",
        type=ModelType.POSE,
        output_format="[1, 56, 8400]",  # 4 bbox + 1 conf + 17 * 3 keypoints
    ),
)


def get_model(model_id: str, models: Sequence[ModelSpec] = DEFAULT_MODELS) -> ModelSpec:
    for spec in models:
        if spec.id == model_id:
            return spec
    known = ", ".join(s.id for s in models)
    raise KeyError(f"Unknown model id {model_id!r} (known: {known})")


_ALLOWED_KEYS = {"id", "name", "file", "type", "input_shape", "description", "output_format"}
_REQUIRED_KEYS = ("id", "name", "file", "type")


def _spec_from_payload(payload: Dict[str, Any], where: str) -> ModelSpec:
    if not isinstance(payload, dict):
        raise ValueError(f"{where} must be a JSON object")
    unknown = sorted(set(payload.keys()) - _ALLOWED_KEYS)
    if unknown:
        raise ValueError(f"Unknown model keys in {where}: {unknown}")
    for key in _REQUIRED_KEYS:
        if key not in payload:
            raise ValueError(f"Missing required key in {where}: {key}")
        if not isinstance(payload[key], str):
            raise ValueError(f"{key} must be a string in {where}")

    input_shape = payload.get("input_shape", [1, 3, 640, 640])
    if not isinstance(input_shape, list):
        raise ValueError(f"input_shape must be a list in {where}")

    return ModelSpec(
        id=payload["id"],
        name=payload["name"],
        file=payload["file"],
        type=ModelType(payload["type"]),
        input_shape=tuple(input_shape),
        description=str(payload.get("description", "")),
        output_format=str(payload.get("output_format", "")),
    )


def load_model_specs(path: Union[str, Path]) -> List[ModelSpec]:
    """
    Load a model registry from JSON: either a list of model objects or
    {"models": [...]}.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model registry not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid model registry JSON: {path}") from exc

    if isinstance(payload, dict):
        if set(payload.keys()) != {"models"}:
            raise ValueError("Model registry object must only contain 'models'")
        payload = payload["models"]
    if not isinstance(payload, list):
        raise ValueError("Model registry must be a JSON list of models")

    specs = [_spec_from_payload(item, f"models[{i}]") for i, item in enumerate(payload)]
    ids = [s.id for s in specs]
    dupes = sorted({i for i in ids if ids.count(i) > 1})
    if dupes:
        raise ValueError(f"Duplicate model ids: {dupes}")
    return specs
