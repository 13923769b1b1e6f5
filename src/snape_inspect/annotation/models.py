"""Annotation records for the review canvas.

Committed annotations are immutable pydantic models; coordinates are always in
original image pixels. A gesture in progress is a mutable `DraftAnnotation`
that becomes a committed record through `commit()`.
"""

from __future__ import annotations

import json
import math
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Point = tuple[float, float]
Tool = Literal["none", "rectangle", "circle", "arrow", "text", "freehand"]
ShapeTool = Literal["rectangle", "circle", "arrow", "freehand"]


def new_annotation_id() -> str:
    """Return a unique id for a committed annotation."""
    return f"drawing-{uuid.uuid4().hex}"


class _AnnotationBase(BaseModel, ABC):
    """Fields shared by every committed annotation; concrete shapes subclass it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    color: str = "#FF0000"
    line_width: float = Field(default=2.0, alias="lineWidth", ge=0.0)

    @abstractmethod
    def translated(self, dx: float, dy: float) -> Annotation:
        """Return a copy moved by (dx, dy) image pixels."""

    @abstractmethod
    def reference_point(self) -> Point:
        """Point that drags are anchored to."""


class RectangleAnnotation(_AnnotationBase):
    type: Literal["rectangle"] = "rectangle"
    x: float
    y: float
    width: float
    height: float

    def reference_point(self) -> Point:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def translated(self, dx: float, dy: float) -> RectangleAnnotation:
        return self.model_copy(update={"x": self.x + dx, "y": self.y + dy})


class CircleAnnotation(_AnnotationBase):
    type: Literal["circle"] = "circle"
    x: float
    y: float
    radius: float

    def reference_point(self) -> Point:
        return (self.x, self.y)

    def translated(self, dx: float, dy: float) -> CircleAnnotation:
        return self.model_copy(update={"x": self.x + dx, "y": self.y + dy})


class ArrowAnnotation(_AnnotationBase):
    type: Literal["arrow"] = "arrow"
    x1: float
    y1: float
    x2: float
    y2: float

    def reference_point(self) -> Point:
        return (self.x1, self.y1)

    def translated(self, dx: float, dy: float) -> ArrowAnnotation:
        return self.model_copy(
            update={
                "x1": self.x1 + dx,
                "y1": self.y1 + dy,
                "x2": self.x2 + dx,
                "y2": self.y2 + dy,
            }
        )


class TextAnnotation(_AnnotationBase):
    """Text anchored at (x, y), where y is the text baseline."""

    type: Literal["text"] = "text"
    x: float
    y: float
    text: str
    font_size: float = Field(default=16.0, alias="fontSize", gt=0.0)

    def reference_point(self) -> Point:
        return (self.x, self.y)

    def translated(self, dx: float, dy: float) -> TextAnnotation:
        return self.model_copy(update={"x": self.x + dx, "y": self.y + dy})


class FreehandAnnotation(_AnnotationBase):
    type: Literal["freehand"] = "freehand"
    points: list[Point] = Field(min_length=1)

    @field_validator("points", mode="before")
    @classmethod
    def _coerce_points(cls, v: Any) -> Any:
        # Accept [{"x":..,"y":..}] as well as [[x, y]].
        if not isinstance(v, list):
            return v
        points = []
        for p in v:
            if isinstance(p, dict):
                if "x" not in p or "y" not in p:
                    raise ValueError(f"point needs x and y, got keys {sorted(p)}")
                p = (p["x"], p["y"])
            points.append(p)
        return points

    def reference_point(self) -> Point:
        return self.points[0]

    def translated(self, dx: float, dy: float) -> FreehandAnnotation:
        return self.model_copy(update={"points": [(x + dx, y + dy) for x, y in self.points]})


Annotation = Annotated[
    RectangleAnnotation | CircleAnnotation | ArrowAnnotation | TextAnnotation | FreehandAnnotation,
    Field(discriminator="type"),
]


class AnnotationEnvelope(BaseModel):
    """Persistence envelope: `{"drawings": [...]}`."""

    model_config = ConfigDict(extra="ignore")

    drawings: list[Annotation] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"drawings": data}
        return data


def dump_annotations(annotations: list[Annotation]) -> str:
    """Serialize committed annotations to the JSON envelope."""
    env = AnnotationEnvelope(drawings=list(annotations))
    return env.model_dump_json(by_alias=True, exclude_none=True)


def load_annotations(payload: str | bytes | dict[str, Any]) -> list[Annotation]:
    """Parse a JSON envelope (string, bytes or decoded dict) into annotations.

    Raises:
        pydantic.ValidationError: If any record is malformed.
        json.JSONDecodeError: If `payload` is not valid JSON.
    """
    if isinstance(payload, (str, bytes)):
        payload = json.loads(payload)
    return list(AnnotationEnvelope.model_validate(payload).drawings)


@dataclass
class DraftAnnotation:
    """Mutable, id-less record of a shape gesture in progress.

    `start` is where the pointer went down and `current` where it is now;
    freehand gestures also collect every sampled point.
    """

    tool: ShapeTool
    start: Point
    current: Point
    color: str = "#FF0000"
    line_width: float = 2.0
    points: list[Point] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.tool == "freehand" and not self.points:
            self.points.append(self.start)

    def update(self, p: Point) -> None:
        """Move the live end of the gesture to `p`."""
        self.current = p
        if self.tool == "freehand" and self.points[-1] != p:
            self.points.append(p)

    def is_degenerate(self) -> bool:
        """True if committing would produce an invisible shape."""
        (sx, sy), (cx, cy) = self.start, self.current
        if self.tool == "rectangle":
            return sx == cx or sy == cy
        if self.tool == "freehand":
            return len(self.points) < 2
        return sx == cx and sy == cy

    def geometry(self) -> dict[str, Any]:
        """Shape fields implied by the gesture so far."""
        (sx, sy), (cx, cy) = self.start, self.current
        if self.tool == "rectangle":
            return {
                "x": min(sx, cx),
                "y": min(sy, cy),
                "width": abs(cx - sx),
                "height": abs(cy - sy),
            }
        if self.tool == "circle":
            return {"x": sx, "y": sy, "radius": math.hypot(cx - sx, cy - sy)}
        if self.tool == "arrow":
            return {"x1": sx, "y1": sy, "x2": cx, "y2": cy}
        return {"points": list(self.points)}

    def commit(self, annotation_id: str | None = None) -> Annotation:
        """Freeze the gesture into a committed annotation with a unique id."""
        models: dict[str, type[_AnnotationBase]] = {
            "rectangle": RectangleAnnotation,
            "circle": CircleAnnotation,
            "arrow": ArrowAnnotation,
            "freehand": FreehandAnnotation,
        }
        return models[self.tool](
            id=annotation_id or new_annotation_id(),
            color=self.color,
            line_width=self.line_width,
            **self.geometry(),
        )
