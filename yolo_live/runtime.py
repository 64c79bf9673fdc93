from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

import numpy as np

from .metadata import ClassNames
from .models import DEFAULT_MODELS, ModelSpec, get_model
from .postprocess import DecoderConfig, build_decoder
from .preprocess import FrameBuffer, preprocess
from .types import ModelType


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Input name used by Ultralytics ONNX exports.
DEFAULT_INPUT_NAME = "images"


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery, used to resolve model files such as
    `models/yolo11n.onnx`.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    Absolute paths are returned as-is; relative ones resolve against `root`,
    or the project root when `root` is "auto" or None.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


class InferencePipeline:
    """
    One inference cycle: preprocess -> engine -> decode (with NMS).

    `engine` is any object with `run(feed) -> {output_name: array}`; an
    `input_name` / `output_names` attribute is used when present. Failures
    inside a cycle are logged and reported as an empty result list so a
    capture loop never stops on a bad frame or engine error.
    """

    def __init__(
        self,
        engine: Any,
        spec: ModelSpec,
        *,
        decoder_cfg: Optional[DecoderConfig] = None,
        class_names: Optional[ClassNames] = None,
        color_order: str = "bgr",
        input_name: Optional[str] = None,
    ):
        self.engine = engine
        self.spec = spec
        self.decoder = build_decoder(spec.type, decoder_cfg, class_names)
        self.buffer = FrameBuffer()
        self.color_order = color_order
        self.input_name = input_name or getattr(engine, "input_name", None) or DEFAULT_INPUT_NAME

    @property
    def model_type(self) -> ModelType:
        return self.spec.type

    def run_cycle(self, frame: np.ndarray) -> list:
        try:
            return self._run(frame)
        except Exception:
            logger.exception("Inference cycle failed (model=%s)", self.spec.id)
            return []

    __call__ = run_cycle

    def _run(self, frame: np.ndarray) -> list:
        prep = preprocess(frame, self.spec.target_size, self.buffer, self.color_order)
        outputs = self.engine.run({self.input_name: prep.tensor})
        arrays = self._select_outputs(outputs)
        results = self.decoder.decode_outputs(arrays, prep.orig_size, self.spec.target_size)
        logger.debug("%s: %d results", self.spec.id, len(results))
        return results

    def _select_outputs(self, outputs: Mapping[str, np.ndarray]) -> List[np.ndarray]:
        if not outputs:
            raise ValueError("Engine returned no outputs")
        declared = [n for n in (getattr(self.engine, "output_names", None) or ()) if n in outputs]
        names = declared or list(outputs.keys())

        if self.spec.type is not ModelType.SEGMENTATION:
            return [np.asarray(outputs[names[0]])]

        if "output0" in outputs and "output1" in outputs:
            return [np.asarray(outputs["output0"]), np.asarray(outputs["output1"])]
        arrays = [np.asarray(outputs[n]) for n in names]
        dets = [a for a in arrays if a.ndim == 3]
        protos = [a for a in arrays if a.ndim == 4]
        if dets and protos:
            return [dets[0], protos[0]]
        return arrays

    def close(self) -> None:
        self.buffer.reset()
        close = getattr(self.engine, "close", None)
        if callable(close):
            close()


@dataclass(frozen=True)
class CycleToken:
    generation: int
    sequence: int


@dataclass
class SchedulerStats:
    submitted: int = 0
    dropped: int = 0
    completed: int = 0
    discarded: int = 0


ResultCallback = Callable[[CycleToken, list], None]


class CycleScheduler:
    """
    Runs at most one inference cycle at a time on a worker thread.

    - `submit` drops the frame (returns None) while a cycle is in flight
      instead of queueing it.
    - `cancel` (model switch, teardown) invalidates the in-flight cycle: its
      results are discarded when it completes and the callback is not called.
    - The callback runs on the worker thread without the scheduler lock held;
      the cycle stays busy until it returns, so frames keep being dropped.
    - No timeout: a cycle runs until the engine returns or fails.
    """

    def __init__(self, pipeline: InferencePipeline):
        self._pipeline = pipeline
        self._lock = threading.RLock()
        self._idle = threading.Event()
        self._idle.set()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="yolo-live-cycle")
        self._generation = 0
        self._sequence = 0
        self._busy = False
        self._closed = False
        self._latest: list = []
        self.stats = SchedulerStats()

    @property
    def pipeline(self) -> InferencePipeline:
        return self._pipeline

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    @property
    def latest_results(self) -> list:
        with self._lock:
            return list(self._latest)

    def is_current(self, token: CycleToken) -> bool:
        with self._lock:
            return token.generation == self._generation

    def submit(self, frame: np.ndarray, callback: Optional[ResultCallback] = None) -> Optional[CycleToken]:
        with self._lock:
            if self._closed:
                raise RuntimeError("CycleScheduler is closed")
            if self._busy:
                self.stats.dropped += 1
                return None
            self._busy = True
            self._idle.clear()
            self._sequence += 1
            token = CycleToken(generation=self._generation, sequence=self._sequence)
            pipeline = self._pipeline
            self.stats.submitted += 1

        self._executor.submit(self._run, pipeline, frame, token, callback)
        return token

    def _run(
        self,
        pipeline: InferencePipeline,
        frame: np.ndarray,
        token: CycleToken,
        callback: Optional[ResultCallback],
    ) -> None:
        try:
            results = pipeline.run_cycle(frame)
            with self._lock:
                if token.generation != self._generation:
                    self.stats.discarded += 1
                    logger.debug("Discarding results of cancelled cycle %d", token.sequence)
                    return
                self.stats.completed += 1
                self._latest = results
            # Called unlocked so a slow consumer never blocks submit().
            if callback is not None:
                callback(token, results)
        except Exception:
            logger.exception("Result callback failed for cycle %d", token.sequence)
        finally:
            with self._lock:
                self._busy = False
                self._idle.set()

    def cancel(self) -> None:
        """
        Invalidate any in-flight cycle and clear the latest results.
        """

        with self._lock:
            self._generation += 1
            self._latest = []

    def set_pipeline(self, pipeline: InferencePipeline) -> None:
        # A cycle already running keeps the old pipeline; its results are dropped.
        with self._lock:
            self.cancel()
            self._pipeline = pipeline

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.cancel()
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "CycleScheduler":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def load_pipeline(
    model: Union[str, ModelSpec],
    *,
    model_path: Optional[PathLike] = None,
    root: Optional[PathLike] = "auto",
    models: Sequence[ModelSpec] = DEFAULT_MODELS,
    decoder_cfg: Optional[DecoderConfig] = None,
    class_names: Optional[ClassNames] = None,
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    color_order: str = "bgr",
) -> InferencePipeline:
    """
    Create a pipeline for a registered model (by id) or an explicit ModelSpec.

        pipe = load_pipeline("yolo11n-seg")  # resolves models/yolo11n-seg.onnx from the project root

    Args:
        model: model id from `models` or a ModelSpec
        model_path: override the registered model file path
        root: base directory for relative model paths ("auto" uses the project root)
        class_names: override names; otherwise taken from the ONNX metadata, then COCO
    """

    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    spec = model if isinstance(model, ModelSpec) else get_model(model, models)
    resolved = resolve_path(model_path if model_path is not None else spec.file, root=root)

    backend = OnnxRuntimeBackend(
        resolved,
        OnnxRuntimeBackendConfig(providers=onnx_providers, input_name=onnx_input_name),
    )

    names: Optional[ClassNames] = class_names
    if names is None and spec.type is not ModelType.POSE:
        names = backend.class_names()

    shape = backend.input_shape
    if len(shape) == 4 and all(isinstance(v, int) for v in shape[2:]) and tuple(shape[2:]) != spec.input_shape[2:]:
        logger.warning(
            "Model %s declares input %s but the registry says %s; using the registry shape",
            spec.id,
            list(shape),
            list(spec.input_shape),
        )

    return InferencePipeline(
        backend,
        spec,
        decoder_cfg=decoder_cfg,
        class_names=names,
        color_order=color_order,
    )
