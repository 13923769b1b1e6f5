"""Capture-screen detection pipeline: preprocess → infer → decode → NMS → validate.

`CarPartDetector` owns the model for the lifetime of one capture screen and
runs single detection cycles. `DetectionLoop` drives it from a fixed-interval
timer, never overlapping cycles.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

from snape_inspect.config import DetectorConfig
from snape_inspect.detection.decoder import decode
from snape_inspect.detection.errors import ModelLoadError
from snape_inspect.detection.loader import ModelLoader
from snape_inspect.detection.preprocess import Frame, frame_size, preprocess
from snape_inspect.detection.runner import InferenceRunner
from snape_inspect.detection.suppression import suppress
from snape_inspect.detection.validator import validate_part
from snape_inspect.vision.types import Detection, ValidationResult

LOG = logging.getLogger(__name__)

ModelStatus = Literal["idle", "loading", "ready", "failed", "disposed"]


@dataclass(frozen=True)
class DetectionOutcome:
    """Result of one detection cycle."""

    success: bool
    detections: tuple[Detection, ...]
    validation: ValidationResult
    timestamp: float
    error: str | None = None


class CarPartDetector:
    """Lifecycle-scoped owner of the detection model."""

    def __init__(self, config: DetectorConfig | None = None, *, loader: ModelLoader | None = None):
        self.config = config or DetectorConfig()
        self.loader = loader or ModelLoader(
            providers=self.config.providers,
            runtime_wait_s=self.config.runtime_wait_s,
            fetch_timeout_s=self.config.fetch_timeout_s,
        )
        self.status: ModelStatus = "idle"
        self.load_error: str | None = None

    def is_ready(self) -> bool:
        return self.status == "ready" and self.loader.is_ready()

    async def load(self) -> None:
        """Load the configured model.

        Raises:
            ModelLoadError: Propagated after the status is set to "failed".
            asyncio.CancelledError: If the load is cancelled or the loader is
                disposed mid-load; the status leaves "loading" first.
        """
        self.status = "loading"
        try:
            await self.loader.load(self.config.model_path)
        except asyncio.CancelledError:
            if self.status == "loading":
                # A disposed loader has no task left; a cancelled caller leaves it running.
                self.status = "idle" if self.loader.loading else "disposed"
            raise
        except ModelLoadError as e:
            self.status = "failed"
            self.load_error = str(e)
            LOG.error("Model failed to load: %s", e)
            raise
        self.status = "ready"
        self.load_error = None

    def run_cycle(self, frame: Frame) -> list[Detection]:
        """Run preprocessing, inference, decoding and suppression on one frame."""
        handle = self.loader.handle
        if handle is None:
            raise RuntimeError("Model not loaded. Call load() first.")
        cfg = self.config
        width, height = frame_size(frame)
        tensor = preprocess(frame, size=cfg.input_size)
        runner = InferenceRunner(handle, channels=cfg.num_channels, anchors=cfg.num_anchors)
        raw = runner.infer(tensor)
        candidates = decode(
            raw,
            width,
            height,
            input_size=cfg.input_size,
            num_classes=cfg.num_classes,
            threshold=cfg.confidence_threshold,
        )
        kept = suppress(
            candidates,
            iou_threshold=cfg.iou_threshold,
            max_boxes=cfg.max_boxes,
            score_threshold=cfg.nms_score_threshold,
        )
        LOG.debug("Decoded %d candidates, kept %d after NMS", len(candidates), len(kept))
        return kept

    async def detect(self, frame: Frame, position: str) -> DetectionOutcome:
        """Run one full cycle and validate it for `position`.

        Per-cycle failures are logged and reported as an unsuccessful outcome
        with no detections; they never propagate.
        """
        try:
            detections = await asyncio.to_thread(self.run_cycle, frame)
        except Exception as e:
            LOG.exception("Detection cycle failed for position=%s", position)
            return DetectionOutcome(
                success=False,
                detections=(),
                validation=ValidationResult(
                    position=position,
                    is_valid=False,
                    detected_parts=(),
                    message="Detection error occurred",
                ),
                timestamp=time.time(),
                error=f"{type(e).__name__}: {e}",
            )
        return DetectionOutcome(
            success=True,
            detections=tuple(detections),
            validation=validate_part(detections, position),
            timestamp=time.time(),
        )

    def dispose(self) -> None:
        """Release the model; the detector reports not-ready afterwards."""
        self.loader.dispose()
        self.status = "disposed"


FrameSource = Callable[[], Frame | None]
ResultCallback = Callable[[DetectionOutcome], Awaitable[None] | None]


class DetectionLoop:
    """Periodic inference while a capture screen is active.

    A tick is skipped when the detector is not ready, when the frame source
    has no frame yet, or when the previous cycle is still in flight.
    """

    def __init__(
        self,
        detector: CarPartDetector,
        *,
        frame_source: FrameSource,
        position: Callable[[], str],
        on_result: ResultCallback,
        interval_s: float | None = None,
    ) -> None:
        self.detector = detector
        self.frame_source = frame_source
        self.position = position
        self.on_result = on_result
        self.interval_s = detector.config.interval_s if interval_s is None else interval_s
        self.in_flight = False
        self.cycles = 0
        self.skipped = 0
        self._timer: asyncio.Task[None] | None = None
        self._cycle: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def start(self) -> None:
        """Load the model (if needed) and start the timer.

        A `ModelLoadError` leaves the detector in the "failed" state and the
        timer is not started; the load is not retried automatically.
        """
        if self.running:
            return
        if not self.detector.is_ready():
            try:
                await self.detector.load()
            except ModelLoadError:
                return
        self._timer = asyncio.create_task(self._tick_forever())

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            self.tick()

    def tick(self) -> None:
        """Start a cycle unless one is running or the detector is unusable."""
        if self.in_flight or not self.detector.is_ready():
            self.skipped += 1
            return
        frame = self.frame_source()
        if frame is None:
            self.skipped += 1
            return
        self.in_flight = True
        self._cycle = asyncio.create_task(self._run(frame))

    async def _run(self, frame: Frame) -> None:
        try:
            outcome = await self.detector.detect(frame, self.position())
            self.cycles += 1
            maybe = self.on_result(outcome)
            if maybe is not None:
                await maybe
        except asyncio.CancelledError:
            raise
        except Exception:
            LOG.exception("Detection result handler failed")
        finally:
            self.in_flight = False

    async def stop(self) -> None:
        """Cancel the timer and any pending cycle, then dispose the model."""
        for task in (self._timer, self._cycle):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._timer = None
        self._cycle = None
        self.in_flight = False
        self.detector.dispose()
