from __future__ import annotations

import asyncio
import time
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import httpx
import numpy as np
import pytest

from snape_inspect.detection.errors import ModelLoadError
from snape_inspect.detection.loader import ModelHandle, ModelLoader


class _FakeSession:
    def __init__(self, model_bytes: bytes, *, input_shape: list[Any] | None = None) -> None:
        self.model_bytes = model_bytes
        self.input_shape = input_shape or [1, 3, 640, 640]
        self.feeds: list[dict[str, np.ndarray]] = []
        self.closed = False

    def get_inputs(self) -> list[SimpleNamespace]:
        return [SimpleNamespace(name="images", shape=self.input_shape)]

    def run(self, output_names: Any, feed: dict[str, np.ndarray]) -> list[np.ndarray]:
        self.feeds.append(feed)
        return [np.zeros((1, 59, 8400), dtype=np.float32)]

    def close(self) -> None:
        self.closed = True


class _Factory:
    def __init__(self) -> None:
        self.calls: list[tuple[bytes, tuple[str, ...]]] = []
        self.sessions: list[_FakeSession] = []

    def __call__(self, runtime: Any, model_bytes: bytes, providers: tuple[str, ...]) -> _FakeSession:
        self.calls.append((model_bytes, providers))
        s = _FakeSession(model_bytes)
        self.sessions.append(s)
        return s


_RUNTIME = SimpleNamespace(__name__="fake_runtime")


def _model_file(tmp_path: Path) -> Path:
    p = tmp_path / "model.onnx"
    p.write_bytes(b"onnx-bytes")
    return p


def test_concurrent_loads_share_one_session(tmp_path: Path) -> None:
    factory = _Factory()
    loader = ModelLoader(runtime_probe=lambda: _RUNTIME, session_factory=factory)
    model = _model_file(tmp_path)

    async def main() -> tuple[ModelHandle, ModelHandle, ModelHandle]:
        a, b = await asyncio.gather(loader.load(model), loader.load(model))
        c = await loader.load(model)
        return a, b, c

    a, b, c = asyncio.run(main())

    assert a is b is c
    assert len(factory.calls) == 1
    assert factory.calls[0] == (b"onnx-bytes", ("CPUExecutionProvider",))
    assert loader.is_ready()
    assert loader.handle is a


def test_runtime_wait_times_out() -> None:
    probes = {"n": 0}

    def never() -> None:
        probes["n"] += 1
        return None

    loader = ModelLoader(runtime_probe=never, session_factory=_Factory(), runtime_wait_s=0.05)

    with pytest.raises(ModelLoadError, match="runtime unavailable"):
        asyncio.run(loader.load("model.onnx"))
    assert probes["n"] >= 2
    assert not loader.is_ready()


def test_runtime_that_appears_late_is_used(tmp_path: Path) -> None:
    answers = iter([None, None, _RUNTIME])
    factory = _Factory()
    loader = ModelLoader(runtime_probe=lambda: next(answers), session_factory=factory, runtime_wait_s=5)

    asyncio.run(loader.load(_model_file(tmp_path)))

    assert loader.is_ready()


def test_model_fetched_over_http() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.path == "/models/best.onnx":
            return httpx.Response(200, content=b"remote-model")
        return httpx.Response(404)

    transport = httpx.MockTransport(handler)
    factory = _Factory()
    loader = ModelLoader(
        runtime_probe=lambda: _RUNTIME,
        session_factory=factory,
        client_factory=lambda **kw: httpx.AsyncClient(transport=transport, **kw),
    )

    handle = asyncio.run(loader.load("https://cdn.example/models/best.onnx"))

    assert seen == ["https://cdn.example/models/best.onnx"]
    assert factory.calls[0][0] == b"remote-model"
    assert handle.source == "https://cdn.example/models/best.onnx"


def test_http_error_becomes_model_load_error_and_allows_retry() -> None:
    state = {"calls": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        state["calls"] += 1
        if state["calls"] == 1:
            return httpx.Response(404)
        return httpx.Response(200, content=b"ok")

    transport = httpx.MockTransport(handler)
    loader = ModelLoader(
        runtime_probe=lambda: _RUNTIME,
        session_factory=_Factory(),
        client_factory=lambda **kw: httpx.AsyncClient(transport=transport, **kw),
    )

    with pytest.raises(ModelLoadError, match="Failed to fetch"):
        asyncio.run(loader.load("https://cdn.example/m.onnx"))
    assert not loader.is_ready()

    asyncio.run(loader.load("https://cdn.example/m.onnx"))
    assert loader.is_ready()


def test_missing_or_empty_or_unparseable_model(tmp_path: Path) -> None:
    loader = ModelLoader(runtime_probe=lambda: _RUNTIME, session_factory=_Factory())
    with pytest.raises(ModelLoadError, match="Failed to read"):
        asyncio.run(loader.load(tmp_path / "missing.onnx"))

    empty = tmp_path / "empty.onnx"
    empty.write_bytes(b"")
    with pytest.raises(ModelLoadError, match="empty"):
        asyncio.run(loader.load(empty))

    def broken(runtime: Any, model_bytes: bytes, providers: tuple[str, ...]) -> Any:
        raise RuntimeError("bad protobuf")

    loader = ModelLoader(runtime_probe=lambda: _RUNTIME, session_factory=broken)
    with pytest.raises(ModelLoadError, match="bad protobuf"):
        asyncio.run(loader.load(_model_file(tmp_path)))


def test_handle_feeds_nchw_and_dispose_releases_session(tmp_path: Path) -> None:
    factory = _Factory()
    loader = ModelLoader(runtime_probe=lambda: _RUNTIME, session_factory=factory)
    handle = asyncio.run(loader.load(_model_file(tmp_path)))

    assert handle.channels_first
    handle.predict(np.zeros((1, 640, 640, 3), dtype=np.float32))
    assert factory.sessions[0].feeds[0]["images"].shape == (1, 3, 640, 640)

    loader.dispose()

    assert factory.sessions[0].closed
    assert not loader.is_ready()
    assert loader.handle is None
    with pytest.raises(RuntimeError, match="disposed"):
        handle.predict(np.zeros((1, 640, 640, 3), dtype=np.float32))


def test_handle_keeps_nhwc_for_channels_last_models() -> None:
    session = _FakeSession(b"x", input_shape=[1, 640, 640, 3])
    handle = ModelHandle(session, source="mem")

    handle.predict(np.zeros((1, 640, 640, 3), dtype=np.float32))

    assert not handle.channels_first
    assert session.feeds[0]["images"].shape == (1, 640, 640, 3)


def test_session_is_built_off_the_event_loop(tmp_path: Path) -> None:
    def slow_factory(runtime: Any, model_bytes: bytes, providers: tuple[str, ...]) -> _FakeSession:
        time.sleep(0.4)
        return _FakeSession(model_bytes)

    loader = ModelLoader(runtime_probe=lambda: _RUNTIME, session_factory=slow_factory)
    model = _model_file(tmp_path)

    async def main() -> float:
        gaps: list[float] = []
        stop = asyncio.Event()

        async def heartbeat() -> None:
            last = time.perf_counter()
            while not stop.is_set():
                await asyncio.sleep(0.02)
                now = time.perf_counter()
                gaps.append(now - last)
                last = now

        beat = asyncio.create_task(heartbeat())
        await loader.load(model)
        stop.set()
        await beat
        return max(gaps)

    assert asyncio.run(main()) < 0.2
    assert loader.is_ready()


def test_dispose_during_load_cancels_the_waiters() -> None:
    loader = ModelLoader(runtime_probe=lambda: None, session_factory=_Factory(), runtime_wait_s=30)

    async def main() -> None:
        task = asyncio.create_task(loader.load("model.onnx"))
        await asyncio.sleep(0.05)
        assert loader.loading
        loader.dispose()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(main())
    assert not loader.loading
    assert not loader.is_ready()
