"""Visualization helpers for detection overlays."""

from __future__ import annotations

from pathlib import Path

from PIL import Image, ImageDraw

from .image import load_font
from .types import Detection


def draw_detections(
    img: Image.Image,
    detections: list[Detection],
    out_path: Path,
    *,
    expected: tuple[str, ...] = (),
) -> None:
    """Draw labeled detection boxes on an image and save to disk.

    Boxes whose label is in `expected` are drawn green, the rest orange.
    """
    vis = img.convert("RGB").copy()
    dr = ImageDraw.Draw(vis)
    w, h = vis.size
    thickness = max(2, round(min(w, h) / 300))
    font = load_font(max(12, round(min(w, h) / 60)))
    for d in detections:
        color = (60, 179, 113) if d.label in expected else (255, 165, 0)
        x, y, bw, bh = d.box
        x1, x2 = sorted((round(x), round(x + bw)))
        y1, y2 = sorted((round(y), round(y + bh)))
        dr.rectangle([x1, y1, x2, y2], width=thickness, outline=color)
        txt = f"{d.label} {d.confidence:.2f}"
        tx, ty = x1 + thickness, y1 + thickness
        bbox = dr.textbbox((tx, ty), txt, font=font)
        dr.rectangle(bbox, fill=(0, 0, 0))
        dr.text((tx, ty), txt, fill=(255, 255, 255), font=font)
    vis.save(out_path)
