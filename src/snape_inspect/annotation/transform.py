"""Screen ↔ image coordinate conversion for the review canvas."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

Point = tuple[float, float]

ZOOM_STEP: Final = 0.25
MIN_ZOOM: Final = 0.5
MAX_ZOOM: Final = 3.0


@dataclass(frozen=True, slots=True)
class CanvasRect:
    """On-screen bounding rectangle of the canvas element."""

    left: float
    top: float
    width: float
    height: float


@dataclass(frozen=True, slots=True)
class FitRect:
    """Aspect-fit placement of the image inside the canvas (canvas-local pixels)."""

    x: float
    y: float
    width: float
    height: float


def aspect_fit(image_w: float, image_h: float, canvas_w: float, canvas_h: float) -> FitRect:
    """Fit an image into a canvas preserving aspect ratio (letterboxing one axis)."""
    if image_w <= 0 or image_h <= 0:
        raise ValueError(f"Image has no pixels: {image_w}x{image_h}")
    if canvas_w <= 0 or canvas_h <= 0:
        raise ValueError(f"Canvas has no area: {canvas_w}x{canvas_h}")
    img_aspect = image_w / image_h
    canvas_aspect = canvas_w / canvas_h
    if img_aspect > canvas_aspect:
        draw_h = canvas_w / img_aspect
        return FitRect(0.0, (canvas_h - draw_h) / 2.0, float(canvas_w), draw_h)
    draw_w = canvas_h * img_aspect
    return FitRect((canvas_w - draw_w) / 2.0, 0.0, draw_w, float(canvas_h))


@dataclass(frozen=True, slots=True)
class ViewTransform:
    """Aspect-fit rect + zoom + pan offset, built once per render.

    The offset is applied in display pixels before the zoom, so
    `image = ((screen - canvas_origin - fit_origin - offset) / zoom) * (natural / fit)`.
    """

    canvas: CanvasRect
    image_w: float
    image_h: float
    zoom: float = 1.0
    offset: Point = (0.0, 0.0)

    def __post_init__(self) -> None:
        if self.zoom <= 0:
            raise ValueError(f"zoom must be positive, got {self.zoom}")

    @property
    def fit(self) -> FitRect:
        return aspect_fit(self.image_w, self.image_h, self.canvas.width, self.canvas.height)

    @property
    def scale(self) -> Point:
        """Image pixels per display pixel at zoom 1, per axis."""
        fit = self.fit
        return (self.image_w / fit.width, self.image_h / fit.height)

    def to_image_space(self, sx: float, sy: float) -> Point:
        """Convert a screen-space pointer position to image pixels."""
        fit = self.fit
        sx_img, sy_img = self.scale
        mx = sx - self.canvas.left
        my = sy - self.canvas.top
        x = ((mx - fit.x - self.offset[0]) / self.zoom) * sx_img
        y = ((my - fit.y - self.offset[1]) / self.zoom) * sy_img
        return (x, y)

    def to_screen_space(self, x: float, y: float) -> Point:
        """Convert image pixels to a screen-space position (inverse of `to_image_space`)."""
        fit = self.fit
        sx_img, sy_img = self.scale
        sx = self.canvas.left + fit.x + self.offset[0] + (x / sx_img) * self.zoom
        sy = self.canvas.top + fit.y + self.offset[1] + (y / sy_img) * self.zoom
        return (sx, sy)

    def screen_delta_to_image(self, dx: float, dy: float) -> Point:
        """Image-space displacement produced by a screen-space pointer delta."""
        sx_img, sy_img = self.scale
        return (dx / self.zoom * sx_img, dy / self.zoom * sy_img)


def zoom_in(zoom: float) -> float:
    return min(zoom + ZOOM_STEP, MAX_ZOOM)


def zoom_out(zoom: float) -> float:
    return max(zoom - ZOOM_STEP, MIN_ZOOM)
