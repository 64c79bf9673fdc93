from __future__ import annotations

import ast
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union


COCO_CLASSES: Tuple[str, ...] = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck",
    "boat", "traffic light", "fire hydrant", "stop sign", "parking meter", "bench",
    "bird", "cat", "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra",
    "giraffe", "backpack", "umbrella", "handbag", "tie", "suitcase", "frisbee",
    "skis", "snowboard", "sports ball", "kite", "baseball bat", "baseball glove",
    "skateboard", "surfboard", "tennis racket", "bottle", "wine glass", "cup",
    "fork", "knife", "spoon", "bowl", "banana", "apple", "sandwich", "orange",
    "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair", "couch",
    "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse",
    "remote", "keyboard", "cell phone", "microwave", "oven", "toaster", "sink",
    "refrigerator", "book", "clock", "vase", "scissors", "teddy bear",
    "hair drier", "toothbrush",
)

POSE_KEYPOINT_NAMES: Tuple[str, ...] = (
    "nose",
    "left_eye",
    "right_eye",
    "left_ear",
    "right_ear",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
)

NUM_KEYPOINTS = len(POSE_KEYPOINT_NAMES)

# COCO skeleton, one-based keypoint numbers (legs, hips/shoulders, arms, face).
POSE_SKELETON: Tuple[Tuple[int, int], ...] = (
    (16, 14), (14, 12), (17, 15), (15, 13), (12, 13),
    (6, 12), (7, 13), (6, 7),
    (6, 8), (7, 9), (8, 10), (9, 11),
    (2, 3), (1, 2), (1, 3), (2, 4), (3, 5), (4, 6), (5, 7),
)

POSE_SKELETON_EDGES: Tuple[Tuple[int, int], ...] = tuple((a - 1, b - 1) for a, b in POSE_SKELETON)

ClassNames = Union[Sequence[str], Mapping[int, str]]


def class_name(class_id: int, names: Optional[ClassNames] = None) -> str:
    """
    Look up a class label, falling back to "unknown".
    """

    if names is None:
        names = COCO_CLASSES
    if isinstance(names, Mapping):
        return names.get(class_id, "unknown")
    if 0 <= class_id < len(names):
        return names[class_id]
    return "unknown"


def load_class_names(metadata_path: str) -> Dict[int, str]:
    """
    Load class names from an Ultralytics-style `metadata.yaml`.

    Only the `names:` block is read:

        names:
          0: person
          1: bicycle
          ...

    Parsed line by line so no YAML dependency is needed.
    """

    names: Dict[int, str] = {}
    in_names = False

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue

            # Another top-level key ends the block.
            if not raw[:1].isspace() and not line[:1].isdigit():
                break
            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                continue
            names[int(left)] = right

    return names


def parse_names_metadata(raw: str) -> Dict[int, str]:
    """
    Parse the `names` entry Ultralytics writes into ONNX custom metadata,
    e.g. "{0: 'person', 1: 'bicycle'}".
    """

    try:
        value = ast.literal_eval(raw)
    except (ValueError, SyntaxError) as exc:
        raise ValueError(f"Could not parse class names metadata: {raw[:80]!r}") from exc

    if isinstance(value, dict):
        return {int(k): str(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return {i: str(v) for i, v in enumerate(value)}
    raise ValueError(f"Unexpected class names metadata type: {type(value).__name__}")

