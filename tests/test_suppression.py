from __future__ import annotations

import logging

import pytest

from snape_inspect.detection.suppression import suppress
from snape_inspect.vision.geometry import iou, nms_indices
from snape_inspect.vision.types import Detection


def _det(x: float, y: float, w: float, h: float, score: float, label: str = "hood") -> Detection:
    return Detection(
        label=label,
        label_index=16,
        confidence=score,
        box=(x, y, w, h),
        box_normalized=(x / 640, y / 640, w / 640, h / 640),
    )


def test_iou_on_corner_boxes() -> None:
    a = (0.0, 0.0, 10.0, 10.0)
    b = (5.0, 5.0, 15.0, 15.0)
    assert iou(a, b) == pytest.approx(25 / (100 + 100 - 25))
    assert iou(a, (20.0, 20.0, 30.0, 30.0)) == 0.0
    # swapped corners are normalized
    assert iou((10.0, 10.0, 0.0, 0.0), a) == pytest.approx(1.0)


def test_nms_indices_filters_scores_and_rejects_length_mismatch() -> None:
    boxes = [(0.0, 0.0, 10.0, 10.0), (100.0, 100.0, 110.0, 110.0)]
    assert nms_indices(boxes, [0.9, 0.30], max_boxes=20, iou_thr=0.45, score_thr=0.30) == [0]
    with pytest.raises(ValueError):
        nms_indices(boxes, [0.9], max_boxes=20, iou_thr=0.45, score_thr=0.30)


def test_overlapping_duplicates_are_removed_highest_first() -> None:
    low = _det(0, 0, 100, 100, 0.6)
    high = _det(5, 5, 100, 100, 0.9)
    apart = _det(300, 300, 50, 50, 0.7, label="wheel")

    kept = suppress([low, high, apart])

    assert kept == [high, apart]


def test_suppression_is_idempotent() -> None:
    dets = [_det(i * 7.0, i * 5.0, 80, 80, 0.4 + i * 0.05) for i in range(10)]

    once = suppress(dets)
    twice = suppress(once)

    assert twice == once


def test_suppression_caps_at_twenty_boxes() -> None:
    dets = [_det(i * 100.0, 0, 50, 50, 0.5 + i * 0.01) for i in range(30)]

    kept = suppress(dets)

    assert len(kept) == 20
    assert kept[0].confidence == pytest.approx(0.79)


def test_equal_scores_keep_input_order() -> None:
    a = _det(0, 0, 50, 50, 0.8)
    b = _det(200, 0, 50, 50, 0.8)
    c = _det(400, 0, 50, 50, 0.8)

    assert suppress([a, b, c]) == [a, b, c]


def test_suppression_fails_open(caplog: pytest.LogCaptureFixture) -> None:
    dets = [_det(0, 0, 50, 50, 0.9), _det(0, 0, float("nan"), 50, 0.8)]

    with caplog.at_level(logging.ERROR):
        kept = suppress(dets)

    assert kept == dets
    assert "NMS failed" in caplog.text


def test_empty_input() -> None:
    assert suppress([]) == []
