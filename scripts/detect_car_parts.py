#!/usr/bin/env python3
"""Batch runner: car-part detection + capture-position validation on still images.

Core logic lives in `snape_inspect.pipelines`. Thresholds can be overridden
with a YAML config (`--config`) and then with environment variables.
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from snape_inspect.config import DetectorConfig
from snape_inspect.detection.errors import ModelLoadError
from snape_inspect.detection.validator import expected_parts, known_positions
from snape_inspect.pipelines.batch import run_detection_batch
from snape_inspect.pipelines.capture import CarPartDetector


def _iter_images(images_dir: Path) -> list[Path]:
    exts = {".jpg", ".jpeg", ".png"}
    return sorted(p for p in images_dir.iterdir() if p.is_file() and p.suffix.lower() in exts)


def _env_overrides() -> dict[str, object]:
    overrides: dict[str, object] = {}
    if "CONF_THR" in os.environ:
        overrides["confidence_threshold"] = float(os.environ["CONF_THR"])
    if "NMS_IOU" in os.environ:
        overrides["iou_threshold"] = float(os.environ["NMS_IOU"])
    if "MAX_BOXES" in os.environ:
        overrides["max_boxes"] = int(os.environ["MAX_BOXES"])
    if "ORT_PROVIDERS" in os.environ:
        overrides["providers"] = [p.strip() for p in os.environ["ORT_PROVIDERS"].split(",") if p.strip()]
    return overrides


async def _run(args: argparse.Namespace, config: DetectorConfig, images: list[Path]) -> int:
    detector = CarPartDetector(config)
    try:
        await detector.load()
    except ModelLoadError as e:
        logging.error("Cannot load model %s: %s", config.model_path, e)
        return 2
    try:
        _, failures = await run_detection_batch(
            images=images,
            out_root=Path(args.out_root).expanduser().resolve(),
            detector=detector,
            position=args.position,
            overwrite=bool(args.overwrite),
        )
    finally:
        detector.dispose()
    return 1 if failures else 0


def main(argv: list[str]) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--images_dir", type=str, default="assets/images")
    ap.add_argument("--position", type=str, default="front", help="Capture position, e.g. 'Front View'")
    ap.add_argument("--config", type=str, default=None, help="YAML file with a `detector:` section")
    ap.add_argument("--model", type=str, default=None, help="Model path or URL (overrides config)")
    ap.add_argument("--out_root", type=str, default="outputs/car_parts")
    ap.add_argument("--overwrite", action="store_true")
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )

    if not expected_parts(args.position):
        logging.warning(
            "Unknown capture position %r (known: %s); every image will fail validation",
            args.position,
            ", ".join(known_positions()),
        )

    images_dir = Path(args.images_dir).expanduser().resolve()
    if not images_dir.is_dir():
        raise SystemExit(f"--images_dir is not a directory: {images_dir}")
    images = _iter_images(images_dir)
    if not images:
        raise SystemExit(f"No JPG/PNG images found under: {images_dir}")

    config = DetectorConfig.from_yaml(Path(args.config)) if args.config else DetectorConfig()
    overrides = _env_overrides()
    model = args.model or os.environ.get("MODEL_PATH")
    if model:
        overrides["model_path"] = model
    config = config.with_overrides(overrides)

    return asyncio.run(_run(args, config, images))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
