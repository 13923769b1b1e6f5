from __future__ import annotations

import numpy as np
import pytest

from snape_inspect.detection.decoder import decode
from snape_inspect.vision.labels import CAR_PART_LABELS

HOOD = CAR_PART_LABELS.index("hood")


def _raw(anchors: int = 8, channels: int = 59) -> np.ndarray:
    return np.zeros((1, channels, anchors), dtype=np.float32)


def _set_anchor(raw: np.ndarray, i: int, box: tuple[float, float, float, float], cls: int, score: float) -> None:
    raw[0, 0:4, i] = box
    raw[0, 4 + cls, i] = score


def test_hood_anchor_maps_back_to_original_image_pixels() -> None:
    raw = _raw(anchors=8400)
    _set_anchor(raw, 17, (320, 320, 200, 150), HOOD, 0.81)

    dets = decode(raw, 1280, 960)

    assert len(dets) == 1
    d = dets[0]
    assert HOOD == 16
    assert d.label == "hood"
    assert d.label_index == 16
    assert d.confidence == pytest.approx(0.81, abs=1e-6)
    assert d.box == pytest.approx((440.0, 367.5, 400.0, 225.0))
    assert d.box_normalized == pytest.approx((220 / 640, 245 / 640, 200 / 640, 150 / 640))


def test_threshold_is_strict_and_all_anchors_are_scanned() -> None:
    raw = _raw(anchors=6)
    _set_anchor(raw, 0, (100, 100, 20, 20), 0, 0.5)  # exactly at threshold: dropped
    _set_anchor(raw, 2, (200, 200, 20, 20), 22, 0.75)
    _set_anchor(raw, 5, (300, 300, 20, 20), 3, 0.95)  # last anchor still visited

    dets = decode(raw, 640, 640, threshold=0.5)

    assert [d.label for d in dets] == ["wheel", "back_left_door"]
    assert all(d.confidence > 0.5 for d in dets)


def test_best_class_wins_and_ties_take_lowest_index() -> None:
    raw = _raw(anchors=2)
    raw[0, 0:4, 0] = (50, 50, 10, 10)
    raw[0, 4 + 3, 0] = 0.5
    raw[0, 4 + 7, 0] = 0.9
    raw[0, 0:4, 1] = (60, 60, 10, 10)
    raw[0, 4 + 5, 1] = 0.6
    raw[0, 4 + 2, 1] = 0.6

    dets = decode(raw, 640, 640)

    assert [d.label_index for d in dets] == [7, 2]
    assert dets[0].confidence == pytest.approx(0.9)


def test_decoder_is_deterministic_and_follows_anchor_order() -> None:
    rng = np.random.default_rng(0)
    raw = rng.random((1, 59, 64), dtype=np.float32)

    first = decode(raw, 1920, 1080)
    second = decode(raw.copy(), 1920, 1080)

    assert first == second
    assert len(first) > 0


def test_decoder_rejects_output_without_enough_rows() -> None:
    with pytest.raises(ValueError):
        decode(np.zeros((1, 10, 4), dtype=np.float32), 640, 640)
