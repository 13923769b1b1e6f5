"""Configuration objects for detection and annotation review."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

LOG = logging.getLogger(__name__)

DEFAULT_MODEL_PATH = "./best_float16.onnx"


@dataclass(frozen=True, slots=True, kw_only=True)
class DetectorConfig:
    """Parameters of the car-part detection pipeline.

    Attributes:
        model_path: Local path or http(s) URL of the model artifact.
        input_size: Square model input size `S`.
        num_classes: Number of class-score rows in the model head.
        num_channels: Rows in the raw output (box params + class scores + extras).
        num_anchors: Anchor columns in the raw output.
        confidence_threshold: Decoder keeps anchors scoring strictly above this.
        iou_threshold: NMS discards boxes overlapping a kept box above this IoU.
        max_boxes: Maximum detections kept by NMS.
        nms_score_threshold: Secondary NMS score filter.
        interval_s: Period of the capture-screen inference timer.
        runtime_wait_s: Bounded wait for the inference runtime to become available.
        fetch_timeout_s: Timeout for fetching model bytes over HTTP.
        providers: ONNX Runtime execution providers, in priority order.
    """

    model_path: str = DEFAULT_MODEL_PATH
    input_size: int = 640
    num_classes: int = 23
    num_channels: int = 59
    num_anchors: int = 8400
    confidence_threshold: float = 0.30
    iou_threshold: float = 0.45
    max_boxes: int = 20
    nms_score_threshold: float = 0.30
    interval_s: float = 1.5
    runtime_wait_s: float = 10.0
    fetch_timeout_s: float = 30.0
    providers: tuple[str, ...] = ("CPUExecutionProvider",)

    def __post_init__(self) -> None:
        if self.input_size <= 0:
            raise ValueError(f"input_size must be positive, got {self.input_size}")
        if self.num_channels < 4 + self.num_classes:
            raise ValueError(
                f"num_channels={self.num_channels} cannot hold 4 box rows "
                f"+ {self.num_classes} class rows"
            )
        if self.max_boxes < 1:
            raise ValueError(f"max_boxes must be >= 1, got {self.max_boxes}")

    @classmethod
    def from_yaml(cls, path: Path) -> DetectorConfig:
        """Load a config from a YAML mapping; missing keys keep their defaults.

        A top-level `detector:` section is used when present.
        """
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {path}, got {type(data).__name__}")
        section = data.get("detector", data)
        return cls().with_overrides(section)

    def with_overrides(self, overrides: dict[str, Any]) -> DetectorConfig:
        """Return a copy with known keys replaced; unknown keys are logged and ignored."""
        known = {f.name for f in fields(self)}
        updates: dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in known:
                LOG.warning("Ignoring unknown detector config key: %s", key)
                continue
            updates[key] = tuple(value) if key == "providers" else value
        return replace(self, **updates)


@dataclass(frozen=True, slots=True, kw_only=True)
class AnnotationStyle:
    """Defaults applied to new annotations and to raster export."""

    color: str = "#FF0000"
    line_width: float = 2.0
    font_size: float = 16.0
    jpeg_quality: int = 95
    arrow_head_length: float = 15.0
