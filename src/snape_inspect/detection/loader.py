"""Model loading for on-device car-part detection.

The loader owns the single shared model handle. It is lifecycle-scoped: the
capture pipeline constructs one, awaits `load()`, and calls `dispose()` when
the capture screen goes away.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from collections.abc import Callable
from pathlib import Path
from time import monotonic
from types import ModuleType
from typing import Any

import httpx
import numpy as np

from .errors import ModelLoadError

LOG = logging.getLogger(__name__)

RuntimeProbe = Callable[[], ModuleType | None]
SessionFactory = Callable[[ModuleType, bytes, tuple[str, ...]], Any]

_POLL_INTERVAL_S = 0.1


def probe_onnxruntime() -> ModuleType | None:
    """Return the `onnxruntime` module, or None if it cannot be imported."""
    try:
        return importlib.import_module("onnxruntime")
    except ImportError:
        return None


def _ort_session(runtime: ModuleType, model_bytes: bytes, providers: tuple[str, ...]) -> Any:
    return runtime.InferenceSession(model_bytes, providers=list(providers))


class ModelHandle:
    """Loaded model plus the runtime session backing it."""

    def __init__(self, session: Any, *, source: str) -> None:
        self._session: Any | None = session
        self.source = source
        inputs = session.get_inputs()
        self.input_name: str = inputs[0].name
        shape = list(getattr(inputs[0], "shape", []) or [])
        # Ultralytics ONNX exports take NCHW; channels-last exports take NHWC.
        self.channels_first = len(shape) == 4 and shape[1] == 3

    @property
    def closed(self) -> bool:
        return self._session is None

    def predict(self, tensor: np.ndarray) -> Any:
        """Run the model on an NHWC float tensor and return the raw runtime output."""
        if self._session is None:
            raise RuntimeError(f"Model handle for {self.source} has been disposed")
        feed = np.transpose(tensor, (0, 3, 1, 2)) if self.channels_first else tensor
        feed = np.ascontiguousarray(feed, dtype=np.float32)
        return self._session.run(None, {self.input_name: feed})

    def close(self) -> None:
        """Drop the runtime session so its native buffers can be released."""
        session, self._session = self._session, None
        release = getattr(session, "close", None) if session is not None else None
        if callable(release):
            release()


class ModelLoader:
    """Fetch and instantiate the detection model exactly once.

    Concurrent `load()` callers share the same in-flight task; after success
    the cached handle is returned immediately.
    """

    def __init__(
        self,
        *,
        runtime_probe: RuntimeProbe = probe_onnxruntime,
        session_factory: SessionFactory = _ort_session,
        client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
        providers: tuple[str, ...] = ("CPUExecutionProvider",),
        runtime_wait_s: float = 10.0,
        fetch_timeout_s: float = 30.0,
    ) -> None:
        self._runtime_probe = runtime_probe
        self._session_factory = session_factory
        self._client_factory = client_factory
        self._providers = providers
        self._runtime_wait_s = runtime_wait_s
        self._fetch_timeout_s = fetch_timeout_s
        self._handle: ModelHandle | None = None
        self._task: asyncio.Task[ModelHandle] | None = None

    def is_ready(self) -> bool:
        """Return True if a model is loaded and not disposed."""
        return self._handle is not None and not self._handle.closed

    @property
    def handle(self) -> ModelHandle | None:
        return self._handle if self.is_ready() else None

    @property
    def loading(self) -> bool:
        """True while a load task is in flight."""
        return self._task is not None and not self._task.done()

    async def load(self, model_path: str | Path) -> ModelHandle:
        """Load the model at `model_path` (local path or http(s) URL).

        Raises:
            ModelLoadError: If the runtime is unavailable after the bounded wait,
                or if the model bytes cannot be fetched or parsed.
        """
        if self._handle is not None and not self._handle.closed:
            return self._handle
        if self._task is None:
            self._task = asyncio.ensure_future(self._load(str(model_path)))
        task = self._task
        try:
            return await asyncio.shield(task)
        except BaseException:
            if task.done() and self._task is task:
                # Allow an explicit retry after a failed load.
                self._task = None
            raise

    async def _load(self, model_path: str) -> ModelHandle:
        runtime = await self._wait_for_runtime()
        model_bytes = await self._fetch_bytes(model_path)
        LOG.info("Model bytes loaded from %s (%d bytes)", model_path, len(model_bytes))
        try:
            # Session construction parses the whole graph; keep it off the event loop.
            session = await asyncio.to_thread(
                self._session_factory, runtime, model_bytes, self._providers
            )
            handle = ModelHandle(session, source=model_path)
        except Exception as e:
            LOG.error("Model parsing failed for %s: %s", model_path, e)
            raise ModelLoadError(f"Could not parse model {model_path}: {e}") from e
        self._handle = handle
        LOG.info("Model loaded: %s (input=%s)", model_path, handle.input_name)
        return handle

    async def _wait_for_runtime(self) -> ModuleType:
        deadline = monotonic() + self._runtime_wait_s
        runtime = self._runtime_probe()
        if runtime is None:
            LOG.info("Waiting up to %.1fs for the inference runtime", self._runtime_wait_s)
        while runtime is None:
            if monotonic() >= deadline:
                raise ModelLoadError(
                    f"Inference runtime unavailable after {self._runtime_wait_s:.1f}s"
                )
            await asyncio.sleep(_POLL_INTERVAL_S)
            runtime = self._runtime_probe()
        return runtime

    async def _fetch_bytes(self, model_path: str) -> bytes:
        """Read the whole model into memory (no ranged requests)."""
        if model_path.startswith(("http://", "https://")):
            try:
                async with self._client_factory(
                    timeout=self._fetch_timeout_s, follow_redirects=True
                ) as client:
                    resp = await client.get(model_path)
                    resp.raise_for_status()
                    data = resp.content
            except httpx.HTTPError as e:
                raise ModelLoadError(f"Failed to fetch model {model_path}: {e}") from e
        else:
            try:
                data = await asyncio.to_thread(Path(model_path).expanduser().read_bytes)
            except OSError as e:
                raise ModelLoadError(f"Failed to read model {model_path}: {e}") from e
        if not data:
            raise ModelLoadError(f"Model file is empty: {model_path}")
        return data

    def dispose(self) -> None:
        """Release the model handle; later `load()` calls start from scratch."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if self._handle is not None:
            self._handle.close()
            LOG.info("Model disposed: %s", self._handle.source)
        self._handle = None
