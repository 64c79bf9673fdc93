from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from .geometry import MIN_BOX_SIZE, cxcywh_to_xyxy, min_size_mask, scale_boxes, scale_factors
from .metadata import COCO_CLASSES, NUM_KEYPOINTS, ClassNames, class_name
from .nms import NMSConfig, nms_indices
from .types import BoundingBox, Detection, ModelType, PoseKeypoint, PoseResult, SegmentationResult


logger = logging.getLogger(__name__)

Size = Tuple[int, int]  # (width, height)

# A keypoint counts as visible above this confidence.
KEYPOINT_VISIBLE_THRESHOLD = 0.5


class TensorShapeError(ValueError):
    """Raised when a raw output tensor does not match the declared model type."""


@dataclass(frozen=True)
class DecoderConfig:
    """
    Thresholds shared by the detection, segmentation and pose decoders.
    """

    conf_threshold: float = 0.5
    iou_threshold: float = 0.4
    # Floor on scaled box width/height in original pixels; 0 disables it.
    min_box_size: float = MIN_BOX_SIZE
    # Expected class count; None derives it from the tensor shape.
    num_classes: Optional[int] = None
    # If False, skip NMS and only order by score (and cap at max_detections).
    apply_nms: bool = True
    max_detections: Optional[int] = None
    # Segmentation only.
    build_masks: bool = True
    mask_threshold: float = 0.5
    mask_upsample: str = "nearest"

    def __post_init__(self) -> None:
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be in [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")
        if self.min_box_size < 0:
            raise ValueError("min_box_size must be >= 0")
        if self.num_classes is not None and self.num_classes < 1:
            raise ValueError("num_classes must be >= 1 when set")
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1 when set")
        if self.mask_upsample not in ("nearest", "linear"):
            raise ValueError("mask_upsample must be 'nearest' or 'linear'")


def default_decoder_config(model_type: Union[ModelType, str]) -> DecoderConfig:
    # Pose boxes are often small (distant people), so no size floor there.
    if ModelType(model_type) is ModelType.POSE:
        return DecoderConfig(min_box_size=0.0)
    return DecoderConfig()


def _as_candidates(output: np.ndarray, name: str = "output") -> np.ndarray:
    """
    Drop the batch axis of a (1, F, N) tensor and return the (F, N) view.
    """

    p = np.asarray(output)
    if p.ndim == 3:
        if p.shape[0] != 1:
            raise TensorShapeError(f"Batch > 1 is not supported (got {name} shape {p.shape}).")
        p = p[0]
    if p.ndim != 2:
        raise TensorShapeError(f"Expected {name} shape (1, F, N), got {p.shape}")
    return p


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(x, -50.0, 50.0)))


class _YoloDecoder:
    model_type: ModelType = ModelType.DETECTION
    num_outputs: int = 1

    def __init__(self, cfg: Optional[DecoderConfig] = None, class_names: Optional[ClassNames] = None):
        self.cfg = cfg if cfg is not None else default_decoder_config(self.model_type)
        self.class_names = class_names

    def decode_outputs(self, outputs: Sequence[np.ndarray], orig_size: Size, model_size: Size) -> list:
        if len(outputs) < self.num_outputs:
            raise TensorShapeError(
                f"{self.model_type.value} decoder needs {self.num_outputs} output tensor(s), got {len(outputs)}"
            )
        return self._decode_outputs(outputs, orig_size, model_size)

    def _decode_outputs(self, outputs: Sequence[np.ndarray], orig_size: Size, model_size: Size) -> list:
        raise NotImplementedError

    # ------------------------------------------------------------------ #
    # Shared candidate filtering
    # ------------------------------------------------------------------ #
    def _select(
        self,
        boxes_cxcywh: np.ndarray,
        scores: np.ndarray,
        class_ids: Optional[np.ndarray],
        orig_size: Size,
        model_size: Size,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Filter candidates and run NMS.

        Returns (indices into the candidate axis, scaled xyxy boxes), highest
        score first.
        """

        w = boxes_cxcywh[:, 2]
        h = boxes_cxcywh[:, 3]
        valid = (scores >= self.cfg.conf_threshold) & (w > 0) & (h > 0)
        valid &= np.isfinite(boxes_cxcywh).all(axis=1)
        idx = np.nonzero(valid)[0]
        if idx.size == 0:
            return idx, np.empty((0, 4), dtype=np.float64)

        boxes = scale_boxes(cxcywh_to_xyxy(boxes_cxcywh[idx]), model_size, orig_size)
        size_ok = min_size_mask(boxes, self.cfg.min_box_size)
        idx, boxes = idx[size_ok], boxes[size_ok]
        if idx.size == 0:
            return idx, boxes

        if self.cfg.apply_nms:
            nms_cfg = NMSConfig(
                iou_threshold=self.cfg.iou_threshold,
                class_aware=class_ids is not None,
                max_detections=self.cfg.max_detections,
            )
            order = nms_indices(boxes, scores[idx], class_ids[idx] if class_ids is not None else None, nms_cfg)
        else:
            order = np.argsort(-scores[idx], kind="stable")
            if self.cfg.max_detections is not None:
                order = order[: self.cfg.max_detections]

        return idx[order], boxes[order]

    def _class_scores(self, p: np.ndarray, num_classes: int) -> Tuple[np.ndarray, np.ndarray]:
        class_scores = p[4 : 4 + num_classes, :]
        class_ids = np.argmax(class_scores, axis=0)
        scores = class_scores[class_ids, np.arange(class_scores.shape[1])]
        return scores, class_ids

    def _check_num_classes(self, num_classes: int, shape: Tuple[int, ...]) -> None:
        if num_classes < 1:
            raise TensorShapeError(f"No class score rows in {self.model_type.value} output of shape {shape}")
        if self.cfg.num_classes is not None and num_classes != self.cfg.num_classes:
            raise TensorShapeError(
                f"Expected {self.cfg.num_classes} classes for {self.model_type.value} output, "
                f"shape {shape} implies {num_classes}"
            )

    @staticmethod
    def _bbox(row: np.ndarray) -> BoundingBox:
        x1, y1, x2, y2 = (float(v) for v in row)
        return BoundingBox(x1, y1, x2, y2)


class DetectionDecoder(_YoloDecoder):
    """
    Decode a (1, 4 + C, N) detection tensor.

    Rows 0-3 are (cx, cy, w, h) in model input pixels, rows 4.. are activated
    per-class scores.
    """

    model_type = ModelType.DETECTION

    def decode(self, output: np.ndarray, orig_size: Size, model_size: Size = (640, 640)) -> List[Detection]:
        p = _as_candidates(output)
        num_classes = p.shape[0] - 4
        self._check_num_classes(num_classes, np.shape(output))

        scores, class_ids = self._class_scores(p, num_classes)
        idx, boxes = self._select(p[0:4, :].T, scores, class_ids, orig_size, model_size)
        logger.debug("detection: %d candidates, %d kept", p.shape[1], idx.size)

        return [
            Detection(
                bbox=self._bbox(box),
                confidence=float(scores[i]),
                class_id=int(class_ids[i]),
                class_name=class_name(int(class_ids[i]), self.class_names),
            )
            for i, box in zip(idx, boxes)
        ]

    def _decode_outputs(self, outputs: Sequence[np.ndarray], orig_size: Size, model_size: Size) -> list:
        return self.decode(outputs[0], orig_size, model_size)


class SegmentationDecoder(_YoloDecoder):
    """
    Decode a (1, 4 + C + M, N) detection tensor plus (1, M, Hp, Wp) prototypes.

    Each instance mask is sigmoid(coeffs @ protos) thresholded at proto
    resolution, upscaled to the original frame and cleared outside the
    instance's box. Masks are only built for boxes that survive NMS.
    """

    model_type = ModelType.SEGMENTATION
    num_outputs = 2

    def decode(
        self,
        det_output: np.ndarray,
        proto_output: np.ndarray,
        orig_size: Size,
        model_size: Size = (640, 640),
    ) -> List[SegmentationResult]:
        p = _as_candidates(det_output, "detection")
        protos = np.asarray(proto_output)
        if protos.ndim == 4:
            if protos.shape[0] != 1:
                raise TensorShapeError(f"Batch > 1 is not supported (got proto shape {protos.shape}).")
            protos = protos[0]
        if protos.ndim != 3:
            raise TensorShapeError(f"Expected proto shape (1, M, H, W), got {np.shape(proto_output)}")

        num_coeffs = protos.shape[0]
        num_classes = p.shape[0] - 4 - num_coeffs
        self._check_num_classes(num_classes, np.shape(det_output))

        scores, class_ids = self._class_scores(p, num_classes)
        idx, boxes = self._select(p[0:4, :].T, scores, class_ids, orig_size, model_size)
        logger.debug("segmentation: %d candidates, %d kept", p.shape[1], idx.size)

        if self.cfg.build_masks and idx.size:
            coeffs = p[4 + num_classes :, idx].T  # (K, M)
            masks: List[Optional[np.ndarray]] = list(self._build_masks(coeffs, protos, boxes, orig_size))
        else:
            masks = [None] * idx.size

        return [
            SegmentationResult(
                bbox=self._bbox(box),
                confidence=float(scores[i]),
                class_id=int(class_ids[i]),
                class_name=class_name(int(class_ids[i]), self.class_names),
                mask=mask,
            )
            for i, box, mask in zip(idx, boxes, masks)
        ]

    def _decode_outputs(self, outputs: Sequence[np.ndarray], orig_size: Size, model_size: Size) -> list:
        return self.decode(outputs[0], outputs[1], orig_size, model_size)

    def _build_masks(
        self,
        coeffs: np.ndarray,
        protos: np.ndarray,
        boxes: np.ndarray,
        orig_size: Size,
    ) -> List[np.ndarray]:
        num_coeffs, proto_h, proto_w = protos.shape
        orig_w, orig_h = orig_size

        activations = _sigmoid(coeffs.astype(np.float32) @ protos.reshape(num_coeffs, -1).astype(np.float32))
        binary = (activations > self.cfg.mask_threshold).reshape(-1, proto_h, proto_w)

        xs = np.arange(orig_w)
        ys = np.arange(orig_h)
        masks = []
        for small, (x1, y1, x2, y2) in zip(binary, boxes):
            if self.cfg.mask_upsample == "nearest":
                full = cv2.resize(small.astype(np.uint8), (orig_w, orig_h), interpolation=cv2.INTER_NEAREST) > 0
            else:
                full = cv2.resize(small.astype(np.float32), (orig_w, orig_h), interpolation=cv2.INTER_LINEAR) >= 0.5

            inside = ((ys >= y1) & (ys <= y2))[:, None] & ((xs >= x1) & (xs <= x2))[None, :]
            masks.append(full & inside)
        return masks


class PoseDecoder(_YoloDecoder):
    """
    Decode a (1, 5 + 17 * 3, N) pose tensor.

    Rows 0-3 are the person box, row 4 the person confidence, then 17
    (x, y, conf) keypoint triples. Keypoints are scaled with the same per-axis
    factors as the box but are not clamped to it.
    """

    model_type = ModelType.POSE

    def decode(self, output: np.ndarray, orig_size: Size, model_size: Size = (640, 640)) -> List[PoseResult]:
        p = _as_candidates(output)
        expected = 5 + NUM_KEYPOINTS * 3
        if p.shape[0] != expected:
            raise TensorShapeError(f"Expected {expected} pose features, got shape {np.shape(output)}")

        scores = p[4, :]
        idx, boxes = self._select(p[0:4, :].T, scores, None, orig_size, model_size)
        logger.debug("pose: %d candidates, %d kept", p.shape[1], idx.size)
        if idx.size == 0:
            return []

        sx, sy = scale_factors(model_size, orig_size)
        kpts = p[5:expected, idx].reshape(NUM_KEYPOINTS, 3, idx.size)

        results = []
        for k, (i, box) in enumerate(zip(idx, boxes)):
            keypoints = tuple(
                PoseKeypoint(
                    x=float(kpts[j, 0, k] * sx),
                    y=float(kpts[j, 1, k] * sy),
                    confidence=float(kpts[j, 2, k]),
                    visible=bool(kpts[j, 2, k] > KEYPOINT_VISIBLE_THRESHOLD),
                )
                for j in range(NUM_KEYPOINTS)
            )
            results.append(
                PoseResult(
                    bbox=self._bbox(box),
                    confidence=float(scores[i]),
                    class_id=0,
                    class_name="person",
                    keypoints=keypoints,
                )
            )
        return results

    def _decode_outputs(self, outputs: Sequence[np.ndarray], orig_size: Size, model_size: Size) -> list:
        return self.decode(outputs[0], orig_size, model_size)


_DECODERS = {
    ModelType.DETECTION: DetectionDecoder,
    ModelType.SEGMENTATION: SegmentationDecoder,
    ModelType.POSE: PoseDecoder,
}


def build_decoder(
    model_type: Union[ModelType, str],
    cfg: Optional[DecoderConfig] = None,
    class_names: Optional[ClassNames] = None,
) -> _YoloDecoder:
    """
    Build the decoder for `model_type`.

    Detection and segmentation decoders get `num_classes` pinned to the class
    vocabulary (the given names, else COCO) when the config leaves it unset,
    so a tensor of another model type fails with TensorShapeError instead of
    being read as extra classes.
    """

    mt = ModelType(model_type)
    if cfg is None:
        cfg = default_decoder_config(mt)
    if mt is not ModelType.POSE and cfg.num_classes is None:
        cfg = replace(cfg, num_classes=len(class_names) if class_names else len(COCO_CLASSES))
    return _DECODERS[mt](cfg, class_names)


def with_thresholds(cfg: DecoderConfig, conf: Optional[float] = None, iou: Optional[float] = None) -> DecoderConfig:
    changes = {}
    if conf is not None:
        changes["conf_threshold"] = conf
    if iou is not None:
        changes["iou_threshold"] = iou
    return replace(cfg, **changes) if changes else cfg
