"""Non-max suppression over decoded detections (fail-open)."""

from __future__ import annotations

import logging
import math

from snape_inspect.vision.geometry import nms_indices
from snape_inspect.vision.types import Detection

from .errors import SuppressionError

LOG = logging.getLogger(__name__)

IOU_THRESHOLD = 0.45
MAX_BOXES = 20
# Same value as the decoder's confidence threshold; kept as a second filter.
SCORE_THRESHOLD = 0.30


def _run_nms(
    detections: list[Detection],
    *,
    iou_threshold: float,
    max_boxes: int,
    score_threshold: float,
) -> list[Detection]:
    boxes = [d.to_yxyx() for d in detections]
    scores = [d.confidence for d in detections]
    for b, s in zip(boxes, scores, strict=True):
        if not (math.isfinite(s) and all(math.isfinite(v) for v in b)):
            raise SuppressionError(f"Non-finite box or score: box={b} score={s}")
    keep = nms_indices(
        boxes,
        scores,
        max_boxes=max_boxes,
        iou_thr=iou_threshold,
        score_thr=score_threshold,
    )
    return [detections[i] for i in keep]


def suppress(
    detections: list[Detection],
    *,
    iou_threshold: float = IOU_THRESHOLD,
    max_boxes: int = MAX_BOXES,
    score_threshold: float = SCORE_THRESHOLD,
) -> list[Detection]:
    """Remove overlapping duplicates, keeping the highest-confidence set.

    Returns detections in selection order (highest confidence first; equal
    confidences keep their input order). If suppression fails for any reason
    the full, unsuppressed list is returned.
    """
    if not detections:
        return []
    try:
        return _run_nms(
            detections,
            iou_threshold=iou_threshold,
            max_boxes=max_boxes,
            score_threshold=score_threshold,
        )
    except Exception:
        LOG.exception("NMS failed; returning %d unsuppressed detections", len(detections))
        return list(detections)
