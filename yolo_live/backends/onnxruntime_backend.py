from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np

from ..metadata import parse_names_metadata


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# GPU first, CPU fallback; providers missing from this onnxruntime build are skipped.
DEFAULT_PROVIDERS: Tuple[str, ...] = ("CUDAExecutionProvider", "CPUExecutionProvider")


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers in priority order
    - input_name: override the auto-selected input name if needed
    - graph_optimization: "all", "extended", "basic" or "disable"
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    graph_optimization: str = "all"
    intra_op_num_threads: int = 0


class OnnxRuntimeBackend:
    """
    ONNX Runtime engine.

    `run` takes {input_name: NCHW float32 blob} and returns every model output
    by name, in the order the model declares them.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        levels = {
            "all": ort.GraphOptimizationLevel.ORT_ENABLE_ALL,
            "extended": ort.GraphOptimizationLevel.ORT_ENABLE_EXTENDED,
            "basic": ort.GraphOptimizationLevel.ORT_ENABLE_BASIC,
            "disable": ort.GraphOptimizationLevel.ORT_DISABLE_ALL,
        }
        if cfg.graph_optimization not in levels:
            raise ValueError(f"Unknown graph_optimization {cfg.graph_optimization!r}")

        sess_opts = ort.SessionOptions()
        sess_opts.graph_optimization_level = levels[cfg.graph_optimization]
        if cfg.intra_op_num_threads > 0:
            sess_opts.intra_op_num_threads = cfg.intra_op_num_threads

        requested = list(cfg.providers) if cfg.providers is not None else list(DEFAULT_PROVIDERS)
        available = set(ort.get_available_providers())
        providers = [p for p in requested if p in available] or ["CPUExecutionProvider"]

        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        self.input_name = cfg.input_name or self.session.get_inputs()[0].name
        self.output_names = tuple(o.name for o in self.session.get_outputs())

        logger.info(
            "Loaded %s (inputs=%s, outputs=%s, providers=%s)",
            self.model_path.name,
            [i.name for i in self.session.get_inputs()],
            list(self.output_names),
            list(self.providers_in_use),
        )

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    @property
    def input_shape(self) -> Tuple[Union[int, str, None], ...]:
        for inp in self.session.get_inputs():
            if inp.name == self.input_name:
                return tuple(inp.shape)
        return ()

    def class_names(self) -> Optional[Dict[int, str]]:
        """
        Class names embedded by Ultralytics exports, if any.
        """

        meta = self.session.get_modelmeta().custom_metadata_map
        raw = meta.get("names")
        if not raw:
            return None
        try:
            return parse_names_metadata(raw)
        except ValueError:
            logger.warning("Ignoring unparsable class names metadata in %s", self.model_path.name)
            return None

    def run(self, feed: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        outputs = self.session.run(list(self.output_names), feed)
        return dict(zip(self.output_names, outputs))

    def close(self) -> None:
        # Dropping the session releases its memory.
        self.session = None
