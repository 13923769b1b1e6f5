"""Review-canvas annotation session: tools, gestures, dragging and panning.

One session owns the annotation list of the image under review. All pointer
handlers take screen-space coordinates and are expected to run on a single
thread; each builds one `ViewTransform` from the current zoom/offset and uses
it for every conversion in that event.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from PIL import Image
from pydantic import ValidationError

from snape_inspect.config import AnnotationStyle

from .hit_test import find_annotation_at
from .models import (
    Annotation,
    DraftAnnotation,
    TextAnnotation,
    Tool,
    dump_annotations,
    load_annotations,
    new_annotation_id,
)
from .render import export_annotated_image
from .transform import CanvasRect, Point, ViewTransform, zoom_in, zoom_out

LOG = logging.getLogger(__name__)

Gesture = Literal["idle", "drawing", "dragging", "panning"]


@dataclass(frozen=True, slots=True)
class _DragState:
    annotation_id: str
    # Pointer minus the shape's reference point, fixed at drag start.
    offset: Point


class AnnotationSession:
    """Annotation state for one image in the review dashboard."""

    def __init__(
        self,
        image_size: tuple[int, int],
        canvas: CanvasRect,
        *,
        annotations: list[Annotation] | None = None,
        style: AnnotationStyle | None = None,
        id_factory: Callable[[], str] = new_annotation_id,
    ) -> None:
        self.image_size = image_size
        self.canvas = canvas
        self.style = style or AnnotationStyle()
        self.color = self.style.color
        self.line_width = self.style.line_width
        self.font_size = self.style.font_size
        self._id_factory = id_factory
        self._annotations: list[Annotation] = list(annotations or [])

        self.tool: Tool = "none"
        self.gesture: Gesture = "idle"
        self.zoom = 1.0
        self.image_offset: Point = (0.0, 0.0)
        self.selected_id: str | None = None
        self.draft: DraftAnnotation | None = None
        self.pending_text: Point | None = None
        self._drag: _DragState | None = None
        self._pan_last: Point | None = None

    # ------------------------------------------------------------------
    # Construction / persistence
    # ------------------------------------------------------------------

    @classmethod
    def from_json(
        cls,
        payload: str | bytes | dict[str, Any] | None,
        image_size: tuple[int, int],
        canvas: CanvasRect,
        **kwargs: Any,
    ) -> AnnotationSession:
        """Open a session from a persisted envelope.

        Malformed payloads are logged and the session starts empty.
        """
        annotations: list[Annotation] = []
        if payload:
            try:
                annotations = load_annotations(payload)
            except (ValidationError, json.JSONDecodeError, ValueError, TypeError) as e:
                LOG.error("Failed to parse annotations, starting empty: %s", e)
        return cls(image_size, canvas, annotations=annotations, **kwargs)

    def to_json(self) -> str:
        """Serialize committed annotations as `{"drawings": [...]}`."""
        return dump_annotations(self._annotations)

    def export_image(self, img: Image.Image) -> bytes:
        """Bake the committed annotations into `img` at natural resolution (JPEG)."""
        if img.size != tuple(self.image_size):
            LOG.warning("Export image size %s differs from session size %s", img.size, self.image_size)
        return export_annotated_image(img, self._annotations, style=self.style)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def annotations(self) -> tuple[Annotation, ...]:
        return tuple(self._annotations)

    def get(self, annotation_id: str) -> Annotation | None:
        return next((a for a in self._annotations if a.id == annotation_id), None)

    def view(self) -> ViewTransform:
        """Current view transform; build once per render/event."""
        w, h = self.image_size
        return ViewTransform(self.canvas, w, h, zoom=self.zoom, offset=self.image_offset)

    def resize_canvas(self, canvas: CanvasRect) -> None:
        self.canvas = canvas

    # ------------------------------------------------------------------
    # Tools and view controls
    # ------------------------------------------------------------------

    def select_tool(self, tool: Tool) -> None:
        """Switch tool; any gesture or pending text in progress is abandoned."""
        self.draft = None
        self.pending_text = None
        self._drag = None
        self._pan_last = None
        self.gesture = "idle"
        self.tool = tool

    def zoom_in(self) -> None:
        self.zoom = zoom_in(self.zoom)

    def zoom_out(self) -> None:
        self.zoom = zoom_out(self.zoom)

    def reset_view(self) -> None:
        self.zoom = 1.0
        self.image_offset = (0.0, 0.0)

    # ------------------------------------------------------------------
    # Pointer handlers (screen-space coordinates)
    # ------------------------------------------------------------------

    def pointer_down(self, sx: float, sy: float) -> None:
        """Start a drag, a pan, a shape gesture or a text placement."""
        if self.pending_text is not None:
            return
        view = self.view()
        x, y = view.to_image_space(sx, sy)

        hit = find_annotation_at(self._annotations, x, y)
        if hit is not None:
            rx, ry = hit.reference_point()
            self.selected_id = hit.id
            self._drag = _DragState(annotation_id=hit.id, offset=(x - rx, y - ry))
            self.gesture = "dragging"
            return

        if self.tool == "none":
            self.selected_id = None
            self._pan_last = (sx, sy)
            self.gesture = "panning"
            return

        if self.tool == "text":
            self.pending_text = (x, y)
            return

        self.draft = DraftAnnotation(
            tool=self.tool,
            start=(x, y),
            current=(x, y),
            color=self.color,
            line_width=self.line_width,
        )
        self.gesture = "drawing"

    def pointer_move(self, sx: float, sy: float) -> None:
        """Advance the active gesture; no-op when idle."""
        if self.gesture == "panning" and self._pan_last is not None:
            lx, ly = self._pan_last
            ox, oy = self.image_offset
            self.image_offset = (ox + (sx - lx), oy + (sy - ly))
            self._pan_last = (sx, sy)
            return

        if self.gesture == "dragging" and self._drag is not None:
            x, y = self.view().to_image_space(sx, sy)
            self._move_dragged(x, y)
            return

        if self.gesture == "drawing" and self.draft is not None:
            self.draft.update(self.view().to_image_space(sx, sy))

    def pointer_up(self) -> Annotation | None:
        """Finish the gesture; returns the newly committed annotation, if any.

        The selected tool stays active for the next gesture.
        """
        committed: Annotation | None = None
        if self.gesture == "drawing" and self.draft is not None:
            if self.draft.is_degenerate():
                LOG.debug("Discarding degenerate %s draft", self.draft.tool)
            else:
                committed = self.draft.commit(self._id_factory())
                self._annotations.append(committed)
        self.draft = None
        self._drag = None
        self._pan_last = None
        self.gesture = "idle"
        return committed

    def _move_dragged(self, x: float, y: float) -> None:
        if self._drag is None:
            return
        for i, a in enumerate(self._annotations):
            if a.id != self._drag.annotation_id:
                continue
            rx, ry = a.reference_point()
            ox, oy = self._drag.offset
            self._annotations[i] = a.translated((x - ox) - rx, (y - oy) - ry)
            return

    # ------------------------------------------------------------------
    # Text placement
    # ------------------------------------------------------------------

    def place_text(self, text: str) -> TextAnnotation | None:
        """Commit `text` at the pending anchor; blank text cancels the placement."""
        anchor, self.pending_text = self.pending_text, None
        text = text.strip()
        if anchor is None or not text:
            return None
        annotation = TextAnnotation(
            id=self._id_factory(),
            x=anchor[0],
            y=anchor[1],
            text=text,
            font_size=self.font_size,
            color=self.color,
            line_width=1.0,
        )
        self._annotations.append(annotation)
        return annotation

    def cancel_text(self) -> None:
        self.pending_text = None

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete(self, annotation_id: str) -> bool:
        before = len(self._annotations)
        self._annotations = [a for a in self._annotations if a.id != annotation_id]
        if self.selected_id == annotation_id:
            self.selected_id = None
        return len(self._annotations) != before

    def delete_selected(self) -> bool:
        return self.delete(self.selected_id) if self.selected_id else False

    def clear(self) -> None:
        """Remove every annotation and any gesture in progress."""
        self._annotations.clear()
        self.selected_id = None
        self.draft = None
        self.pending_text = None
        self._drag = None
        self.gesture = "idle"
