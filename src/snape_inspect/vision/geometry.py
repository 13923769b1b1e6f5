"""Geometry helpers (IoU, greedy NMS) on (y1, x1, y2, x2) corner boxes."""

from __future__ import annotations

from collections.abc import Sequence

BoxYXYX = tuple[float, float, float, float]


def _area(b: BoxYXYX) -> float:
    y1, x1, y2, x2 = b
    return max(0.0, y2 - y1) * max(0.0, x2 - x1)


def iou(a: BoxYXYX, b: BoxYXYX) -> float:
    """Compute intersection-over-union (IoU) between two corner boxes.

    Corners may be given in either order; they are normalized first.
    """
    ay1, ax1, ay2, ax2 = min(a[0], a[2]), min(a[1], a[3]), max(a[0], a[2]), max(a[1], a[3])
    by1, bx1, by2, bx2 = min(b[0], b[2]), min(b[1], b[3]), max(b[0], b[2]), max(b[1], b[3])
    iy1 = max(ay1, by1)
    ix1 = max(ax1, bx1)
    iy2 = min(ay2, by2)
    ix2 = min(ax2, bx2)
    inter = max(0.0, iy2 - iy1) * max(0.0, ix2 - ix1)
    if inter <= 0.0:
        return 0.0
    union = _area((ay1, ax1, ay2, ax2)) + _area((by1, bx1, by2, bx2)) - inter
    return float(inter / union) if union > 0 else 0.0


def nms_indices(
    boxes: Sequence[BoxYXYX],
    scores: Sequence[float],
    *,
    max_boxes: int,
    iou_thr: float,
    score_thr: float,
) -> list[int]:
    """Greedy non-maximum suppression, returning kept indices in selection order.

    Candidates with `score <= score_thr` are dropped up front. The remaining
    ones are visited by decreasing score (stable, so equal scores keep input
    order); a candidate is kept unless its IoU with an already kept box
    exceeds `iou_thr`. Selection stops after `max_boxes` boxes.
    """
    if len(boxes) != len(scores):
        raise ValueError(f"boxes/scores length mismatch: {len(boxes)} != {len(scores)}")
    order = sorted(
        (i for i, s in enumerate(scores) if s > score_thr),
        key=lambda i: scores[i],
        reverse=True,
    )
    kept: list[int] = []
    for i in order:
        if len(kept) >= max_boxes:
            break
        if all(iou(boxes[i], boxes[k]) <= iou_thr for k in kept):
            kept.append(i)
    return kept
