"""Offline runner: detect and validate car parts on a folder of still images."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path

import yaml

from snape_inspect.pipelines.capture import CarPartDetector, DetectionOutcome
from snape_inspect.vision.image import ensure_dir, read_image
from snape_inspect.vision.vis import draw_detections

LOG = logging.getLogger(__name__)


def outcome_to_dict(outcome: DetectionOutcome) -> dict[str, object]:
    """JSON-friendly view of a detection outcome."""
    v = outcome.validation
    return {
        "success": outcome.success,
        "error": outcome.error,
        "timestamp": outcome.timestamp,
        "detections": [asdict(d) for d in outcome.detections],
        "validation": {
            "position": v.position,
            "is_valid": v.is_valid,
            "message": v.message,
            "detected_parts": list(v.detected_parts),
            "expected_parts": list(v.expected_parts),
            "matched_parts": list(v.matched_parts),
        },
    }


async def run_detection_batch(
    *,
    images: list[Path],
    out_root: Path,
    detector: CarPartDetector,
    position: str,
    overwrite: bool = False,
) -> tuple[list[dict[str, object]], int]:
    """Run one detection cycle per image and write `summary.yaml` in `out_root`.

    Each image gets `<out_root>/<stem>/detections.json` and `overlay.jpg`.
    The detector must already be loaded.

    Returns:
        (summary_images, failures)
    """
    ensure_dir(out_root)
    summary: list[dict[str, object]] = []
    failures = 0

    for image_path in images:
        per_outdir = out_root / image_path.stem
        det_path = per_outdir / "detections.json"
        if det_path.exists() and not overwrite:
            LOG.info("Skipping %s (exists, use overwrite)", image_path.name)
            continue
        try:
            img = read_image(image_path)
            outcome = await detector.detect(img, position)
            if not outcome.success:
                raise RuntimeError(outcome.error or "detection failed")
            ensure_dir(per_outdir)
            payload = outcome_to_dict(outcome)
            det_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            draw_detections(
                img,
                list(outcome.detections),
                per_outdir / "overlay.jpg",
                expected=outcome.validation.expected_parts,
            )
            LOG.info("%s: %s", image_path.name, outcome.validation.message)
            summary.append(
                {
                    "image": str(image_path),
                    "outdir": str(per_outdir),
                    "position": position,
                    "is_valid": outcome.validation.is_valid,
                    "message": outcome.validation.message,
                    "detected_parts": list(outcome.validation.detected_parts),
                }
            )
        except Exception as e:
            failures += 1
            LOG.exception("Detection failed for image=%s", image_path)
            summary.append(
                {
                    "image": str(image_path),
                    "outdir": str(per_outdir),
                    "position": position,
                    "error": f"{type(e).__name__}: {e}",
                }
            )

    dumped = yaml.safe_dump({"images": summary}, sort_keys=False, allow_unicode=True)
    (out_root / "summary.yaml").write_text(dumped, encoding="utf-8")
    return summary, failures
