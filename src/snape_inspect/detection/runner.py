"""Inference execution and raw-output normalization."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from time import perf_counter
from typing import Any, Protocol

import numpy as np

from .errors import InferenceShapeError

LOG = logging.getLogger(__name__)

_OUTPUT_KEYS = ("Identity", "output", "outputs")


class SupportsPredict(Protocol):
    """Protocol for a loaded model handle."""

    def predict(self, tensor: np.ndarray) -> Any:
        """Run the model and return its raw output."""
        ...


def _release(obj: Any) -> None:
    """Free a runtime-owned tensor if it exposes `dispose()` or `close()`."""
    for name in ("dispose", "close"):
        fn = getattr(obj, name, None)
        if callable(fn):
            fn()
            return


def _is_tensor_like(obj: Any) -> bool:
    return isinstance(obj, np.ndarray) or callable(getattr(obj, "numpy", None))


def _unwrap(result: Any) -> Any:
    """Pick the output tensor out of a keyed, listed or bare runtime result."""
    if isinstance(result, Mapping):
        for key in _OUTPUT_KEYS:
            if result.get(key) is not None:
                return result[key]
        if not result:
            raise InferenceShapeError("Runtime returned an empty output mapping")
        return next(iter(result.values()))
    if isinstance(result, (list, tuple)) and result and _is_tensor_like(result[0]):
        return result[0]
    return result


def _materialize(tensor: Any) -> np.ndarray:
    if not isinstance(tensor, np.ndarray) and callable(getattr(tensor, "numpy", None)):
        tensor = tensor.numpy()
    try:
        return np.asarray(tensor, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise InferenceShapeError(f"Unexpected output format: {type(tensor).__name__}") from e


def coerce_output(data: np.ndarray, *, channels: int, anchors: int) -> np.ndarray:
    """Coerce a raw output array to shape [1, channels, anchors].

    Accepts [1, C, A], [C, A] (batch axis added) and flat C*A arrays.

    Raises:
        InferenceShapeError: If the array cannot be coerced.
    """
    expected = (1, channels, anchors)
    if data.shape == expected:
        return data
    if data.shape == (channels, anchors):
        return data[np.newaxis, ...]
    if data.ndim == 1 and data.size == channels * anchors:
        return data.reshape(expected)
    raise InferenceShapeError(f"Invalid output shape: {list(data.shape)}, expected {list(expected)}")


class InferenceRunner:
    """Run the loaded model and hand the decoder a canonical [1, C, A] array."""

    def __init__(self, model: SupportsPredict, *, channels: int = 59, anchors: int = 8400) -> None:
        self.model = model
        self.channels = channels
        self.anchors = anchors

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        """Execute the model on a preprocessed [1, S, S, 3] tensor.

        Raises:
            InferenceShapeError: If the output cannot be coerced to [1, C, A].
        """
        start = perf_counter()
        result: Any = None
        output: Any = None
        try:
            result = self.model.predict(tensor)
            output = _unwrap(result)
            data = coerce_output(_materialize(output), channels=self.channels, anchors=self.anchors)
        finally:
            if output is not None:
                _release(output)
            if result is not None and result is not output:
                _release(result)
        LOG.debug(
            "Inference time: %.2fms, output shape: %s",
            (perf_counter() - start) * 1000.0,
            list(data.shape),
        )
        return data
