from __future__ import annotations

import io

from PIL import Image

from snape_inspect.annotation.models import (
    ArrowAnnotation,
    CircleAnnotation,
    FreehandAnnotation,
    RectangleAnnotation,
    TextAnnotation,
)
from snape_inspect.annotation.render import export_annotated_image, render_annotations
from snape_inspect.config import AnnotationStyle


def _is_red(px: tuple[int, ...]) -> bool:
    r, g, b = px[:3]
    return r > 200 and g < 60 and b < 60


def test_render_draws_at_natural_resolution_without_touching_source() -> None:
    img = Image.new("RGB", (200, 100), color=(255, 255, 255))
    drawings = [
        RectangleAnnotation(id="r", x=10, y=10, width=50, height=40, line_width=2),
        CircleAnnotation(id="c", x=150, y=50, radius=20),
        FreehandAnnotation(id="f", points=[(80, 90), (120, 90)], line_width=3),
    ]

    out = render_annotations(img, drawings)

    assert out.size == (200, 100)
    assert _is_red(out.getpixel((10, 30)))
    assert any(_is_red(px) for px in out.crop((127, 45, 134, 56)).getdata())
    assert _is_red(out.getpixel((100, 90)))
    assert out.getpixel((35, 30)) == (255, 255, 255)
    assert img.getpixel((10, 30)) == (255, 255, 255)


def test_arrow_has_two_head_strokes_behind_the_tip() -> None:
    img = Image.new("RGB", (200, 200), color=(255, 255, 255))
    arrow = ArrowAnnotation(id="a", x1=20, y1=100, x2=180, y2=100, color="#0000FF", line_width=3)

    out = render_annotations(img, [arrow])

    def blue_pixels(box: tuple[int, int, int, int]) -> int:
        region = out.crop(box)
        return sum(1 for r, g, b in region.getdata() if b > 200 and r < 100)

    assert out.getpixel((100, 100)) == (0, 0, 255)
    # Heads point back at +/-30 degrees, 15 px long: ends near (167, 92.5) and (167, 107.5).
    assert blue_pixels((165, 88, 179, 97)) > 0
    assert blue_pixels((165, 103, 179, 112)) > 0
    assert blue_pixels((100, 88, 150, 97)) == 0


def test_text_is_drawn_above_its_baseline() -> None:
    img = Image.new("RGB", (200, 100), color=(255, 255, 255))
    text = TextAnnotation(id="t", x=10, y=60, text="DENT", font_size=30, color="#000000")

    out = render_annotations(img, [text])

    above = out.crop((10, 30, 120, 60))
    below = out.crop((10, 64, 120, 100))
    assert above.getextrema()[0][0] < 100
    assert below.getextrema()[0] == (255, 255)


def test_export_returns_jpeg_bytes_of_same_size() -> None:
    img = Image.new("RGB", (64, 48), color=(10, 20, 30))
    drawings = [RectangleAnnotation(id="r", x=4, y=4, width=20, height=20)]

    data = export_annotated_image(img, drawings, style=AnnotationStyle(jpeg_quality=90))

    assert data[:2] == b"\xff\xd8"
    decoded = Image.open(io.BytesIO(data))
    assert decoded.format == "JPEG"
    assert decoded.size == (64, 48)
