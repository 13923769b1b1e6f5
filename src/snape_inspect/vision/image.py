"""Image I/O helpers."""

from __future__ import annotations

import io
from pathlib import Path

from PIL import Image, ImageFont


def ensure_dir(p: Path) -> None:
    """Create `p` if it doesn't exist."""
    p.mkdir(parents=True, exist_ok=True)


def read_image(path: Path) -> Image.Image:
    """Read an image from disk and convert it to RGB."""
    return Image.open(path).convert("RGB")


def img_to_jpeg_bytes(img: Image.Image, quality: int = 95) -> bytes:
    """Encode an image as JPEG bytes."""
    buf = io.BytesIO()
    img.convert("RGB").save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Return a TrueType font of `size` pixels, falling back to Pillow's default."""
    try:
        return ImageFont.truetype("DejaVuSans.ttf", size)
    except OSError:  # pragma: no cover
        return ImageFont.load_default(size=size)
