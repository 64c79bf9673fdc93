from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np


class FrameError(ValueError):
    """Raised when a frame cannot be turned into a model input tensor."""


class FrameBuffer:
    """
    Scratch buffers owned by one inference cycle at a time.

    Holds the resampled frame and the planar float tensor so consecutive frames
    of the same target size do not reallocate. Buffers are recreated whenever
    the target size or channel count changes.
    """

    def __init__(self) -> None:
        self.resized: Optional[np.ndarray] = None
        self.tensor: Optional[np.ndarray] = None

    def acquire(self, width: int, height: int, channels: int) -> Tuple[np.ndarray, np.ndarray]:
        if self.resized is None or self.resized.shape != (height, width, channels):
            self.resized = np.empty((height, width, channels), dtype=np.uint8)
        if self.tensor is None or self.tensor.shape != (1, 3, height, width):
            self.tensor = np.empty((1, 3, height, width), dtype=np.float32)
        return self.resized, self.tensor

    def reset(self) -> None:
        self.resized = None
        self.tensor = None


@dataclass(frozen=True)
class PreprocessResult:
    tensor: np.ndarray
    buffer: FrameBuffer
    # (width, height) of the source frame; used to scale boxes back.
    orig_size: Tuple[int, int]


_CHANNEL_INDEX = {
    # R, G, B positions inside the source pixel.
    "bgr": (2, 1, 0),
    "rgb": (0, 1, 2),
}


def preprocess(
    frame: np.ndarray,
    target_size: Tuple[int, int] = (640, 640),
    buffer: Optional[FrameBuffer] = None,
    color_order: str = "bgr",
) -> PreprocessResult:
    """
    Stretch a frame to `target_size` and lay it out as a (1, 3, H, W) float tensor.

    No aspect-ratio preservation: the frame is resized directly to
    (target_width, target_height). Channels are written planar R, G, B and
    scaled to [0, 1]; an alpha channel, if present, is dropped.

    Args:
        frame: uint8 image (H, W, 3) or (H, W, 4).
        target_size: (width, height) the model expects.
        buffer: reusable scratch buffers; a fresh one is created if omitted.
        color_order: "bgr" for OpenCV captures, "rgb" for RGB(A) sources.
    """

    if frame is None or not hasattr(frame, "shape"):
        raise FrameError("frame must be a NumPy array.")
    if frame.ndim != 3 or frame.shape[2] not in (3, 4):
        raise FrameError(f"Expected frame shape (H, W, 3|4), got {frame.shape}")
    orig_h, orig_w = frame.shape[:2]
    if orig_h == 0 or orig_w == 0:
        raise FrameError(f"Empty frame {frame.shape}")

    order = color_order.lower()
    if order not in _CHANNEL_INDEX:
        raise ValueError(f"Unsupported color_order {color_order!r}; expected 'bgr' or 'rgb'.")

    target_w, target_h = target_size
    if target_w <= 0 or target_h <= 0:
        raise ValueError(f"target_size must be positive, got {target_size}")

    if buffer is None:
        buffer = FrameBuffer()

    channels = frame.shape[2]
    resized, tensor = buffer.acquire(target_w, target_h, channels)

    src = frame if frame.dtype == np.uint8 else np.clip(frame, 0, 255).astype(np.uint8)
    src = np.ascontiguousarray(src)
    if (orig_w, orig_h) == (target_w, target_h):
        resized[...] = src
    else:
        out = cv2.resize(src, (target_w, target_h), dst=resized, interpolation=cv2.INTER_LINEAR)
        if out is not resized:
            resized[...] = out

    for plane, idx in enumerate(_CHANNEL_INDEX[order]):
        tensor[0, plane] = resized[:, :, idx]
    tensor /= np.float32(255.0)

    return PreprocessResult(tensor=tensor, buffer=buffer, orig_size=(orig_w, orig_h))
