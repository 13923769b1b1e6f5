#!/usr/bin/env python3
"""Bake a saved annotation envelope (`{"drawings": [...]}`) onto its image as JPEG."""

import argparse
import logging
import sys
from pathlib import Path

from snape_inspect.annotation.models import load_annotations
from snape_inspect.annotation.render import export_annotated_image
from snape_inspect.config import AnnotationStyle
from snape_inspect.vision.image import read_image


def main(argv: list[str]) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--image", type=str, required=True)
    ap.add_argument("--annotations", type=str, required=True, help="JSON envelope file")
    ap.add_argument("--out", type=str, default=None, help="Defaults to <image>_annotated.jpg")
    ap.add_argument("--quality", type=int, default=95)
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )

    image_path = Path(args.image).expanduser().resolve()
    out_path = Path(args.out) if args.out else image_path.with_name(f"{image_path.stem}_annotated.jpg")

    annotations = load_annotations(Path(args.annotations).read_text(encoding="utf-8"))
    data = export_annotated_image(
        read_image(image_path),
        annotations,
        style=AnnotationStyle(jpeg_quality=int(args.quality)),
    )
    out_path.write_bytes(data)
    logging.info("Wrote %d annotation(s) to %s (%d bytes)", len(annotations), out_path, len(data))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
