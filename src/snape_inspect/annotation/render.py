"""Replay annotations onto an image and export the flattened raster."""

from __future__ import annotations

import math
from collections.abc import Iterable

from PIL import Image, ImageDraw

from snape_inspect.config import AnnotationStyle
from snape_inspect.vision.image import img_to_jpeg_bytes, load_font

from .models import (
    Annotation,
    ArrowAnnotation,
    CircleAnnotation,
    FreehandAnnotation,
    RectangleAnnotation,
    TextAnnotation,
)


def _width(a: Annotation) -> int:
    return max(1, round(a.line_width))


def draw_annotation(dr: ImageDraw.ImageDraw, a: Annotation, *, arrow_head_length: float = 15.0) -> None:
    """Draw one annotation at its own image-space coordinates."""
    if isinstance(a, RectangleAnnotation):
        if a.width and a.height:
            x1, x2 = sorted((a.x, a.x + a.width))
            y1, y2 = sorted((a.y, a.y + a.height))
            dr.rectangle([x1, y1, x2, y2], outline=a.color, width=_width(a))
    elif isinstance(a, CircleAnnotation):
        if a.radius:
            r = abs(a.radius)
            dr.ellipse([a.x - r, a.y - r, a.x + r, a.y + r], outline=a.color, width=_width(a))
    elif isinstance(a, ArrowAnnotation):
        w = _width(a)
        dr.line([(a.x1, a.y1), (a.x2, a.y2)], fill=a.color, width=w)
        angle = math.atan2(a.y2 - a.y1, a.x2 - a.x1)
        for side in (-math.pi / 6, math.pi / 6):
            hx = a.x2 - arrow_head_length * math.cos(angle + side)
            hy = a.y2 - arrow_head_length * math.sin(angle + side)
            dr.line([(a.x2, a.y2), (hx, hy)], fill=a.color, width=w)
    elif isinstance(a, TextAnnotation):
        if a.text:
            font = load_font(max(1, round(a.font_size)))
            # Anchor at the left baseline.
            dr.text((a.x, a.y), a.text, fill=a.color, font=font, anchor="ls")
    elif isinstance(a, FreehandAnnotation):
        if len(a.points) > 1:
            dr.line(list(a.points), fill=a.color, width=_width(a), joint="curve")


def render_annotations(
    img: Image.Image,
    annotations: Iterable[Annotation],
    *,
    style: AnnotationStyle | None = None,
) -> Image.Image:
    """Return a copy of `img` at natural resolution with committed annotations baked in."""
    style = style or AnnotationStyle()
    out = img.convert("RGB").copy()
    dr = ImageDraw.Draw(out)
    for a in annotations:
        if not a.id:
            continue
        draw_annotation(dr, a, arrow_head_length=style.arrow_head_length)
    return out


def export_annotated_image(
    img: Image.Image,
    annotations: Iterable[Annotation],
    *,
    style: AnnotationStyle | None = None,
) -> bytes:
    """Flatten `img` and its annotations into compressed JPEG bytes."""
    style = style or AnnotationStyle()
    return img_to_jpeg_bytes(render_annotations(img, annotations, style=style), quality=style.jpeg_quality)
