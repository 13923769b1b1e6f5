"""Decode raw per-anchor model output into car-part detections."""

from __future__ import annotations

import numpy as np

from snape_inspect.vision.labels import CAR_PART_LABELS
from snape_inspect.vision.types import Detection


def decode(
    raw: np.ndarray,
    original_width: float,
    original_height: float,
    *,
    input_size: int = 640,
    num_classes: int = 23,
    threshold: float = 0.30,
    labels: tuple[str, ...] = CAR_PART_LABELS,
) -> list[Detection]:
    """Convert a [1, C, A] output into detections in original-image pixels.

    Rows 0-3 hold (cx, cy, w, h) in model-input pixels and rows
    4..4+num_classes-1 hold class scores. For each anchor the best class is
    kept (lowest index on ties) and anchors scoring `<= threshold` are
    dropped. Every anchor is scanned; output follows anchor order.
    """
    if len(labels) < num_classes:
        raise ValueError(f"{len(labels)} labels for {num_classes} classes")
    rows = np.asarray(raw, dtype=np.float32)[0]
    scores = rows[4 : 4 + num_classes]
    if scores.shape[0] != num_classes:
        raise ValueError(f"Output has {rows.shape[0]} rows, need {4 + num_classes}")

    best_class = np.argmax(scores, axis=0)
    best_score = scores[best_class, np.arange(scores.shape[1])]

    s = float(input_size)
    out: list[Detection] = []
    for i in np.flatnonzero(best_score > threshold):
        cx, cy, w, h = (float(v) for v in rows[0:4, i])
        x_norm = (cx - w / 2.0) / s
        y_norm = (cy - h / 2.0) / s
        w_norm = w / s
        h_norm = h / s
        cls = int(best_class[i])
        out.append(
            Detection(
                label=labels[cls],
                label_index=cls,
                confidence=float(best_score[i]),
                box=(
                    x_norm * original_width,
                    y_norm * original_height,
                    w_norm * original_width,
                    h_norm * original_height,
                ),
                box_normalized=(x_norm, y_norm, w_norm, h_norm),
            )
        )
    return out
