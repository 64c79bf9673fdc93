"""
Real-time YOLO detection, segmentation and pose post-processing.

Turns raw YOLO output tensors (NumPy arrays from ONNX Runtime or any other
engine) into boxes, class labels, instance masks and COCO keypoints, with a
small scheduler for running one inference cycle at a time on a live stream.
"""

from .types import BoundingBox, Detection, ModelType, PoseKeypoint, PoseResult, SegmentationResult
from .geometry import MIN_BOX_SIZE, iou, meets_min_size, scale_box
from .nms import NMSConfig, nms, nms_indices
from .preprocess import FrameBuffer, FrameError, PreprocessResult, preprocess
from .postprocess import (
    DecoderConfig,
    DetectionDecoder,
    PoseDecoder,
    SegmentationDecoder,
    TensorShapeError,
    build_decoder,
    default_decoder_config,
)
from .models import DEFAULT_MODELS, ModelSpec, get_model, load_model_specs
from .metadata import COCO_CLASSES, POSE_KEYPOINT_NAMES, POSE_SKELETON, load_class_names
from .runtime import CycleScheduler, CycleToken, InferencePipeline, load_pipeline, resolve_path
from .visualize import draw_results

__all__ = [
    "BoundingBox",
    "Detection",
    "ModelType",
    "PoseKeypoint",
    "PoseResult",
    "SegmentationResult",
    "MIN_BOX_SIZE",
    "iou",
    "meets_min_size",
    "scale_box",
    "NMSConfig",
    "nms",
    "nms_indices",
    "FrameBuffer",
    "FrameError",
    "PreprocessResult",
    "preprocess",
    "DecoderConfig",
    "DetectionDecoder",
    "PoseDecoder",
    "SegmentationDecoder",
    "TensorShapeError",
    "build_decoder",
    "default_decoder_config",
    "DEFAULT_MODELS",
    "ModelSpec",
    "get_model",
    "load_model_specs",
    "COCO_CLASSES",
    "POSE_KEYPOINT_NAMES",
    "POSE_SKELETON",
    "load_class_names",
    "CycleScheduler",
    "CycleToken",
    "InferencePipeline",
    "load_pipeline",
    "resolve_path",
    "draw_results",
]
