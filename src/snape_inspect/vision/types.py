"""Core vision data types shared across the detection pipeline."""

from __future__ import annotations

from dataclasses import dataclass

BoxXYWH = tuple[float, float, float, float]


@dataclass(frozen=True)
class Detection:
    """One candidate car part found by the model.

    Attributes:
        label: Class name from the fixed car-part vocabulary.
        label_index: Index of `label` in the vocabulary.
        confidence: Best class score in (0, 1].
        box: (x, y, width, height) in original-image pixels, top-left origin.
        box_normalized: (x, y, width, height) as fractions of the model input.
    """

    label: str
    label_index: int
    confidence: float
    box: BoxXYWH
    box_normalized: BoxXYWH

    def area(self) -> float:
        """Return the box area in pixels squared."""
        _, _, w, h = self.box
        return max(0.0, w) * max(0.0, h)

    def to_yxyx(self) -> tuple[float, float, float, float]:
        """Return the box in (y1, x1, y2, x2) corner form."""
        x, y, w, h = self.box
        return (y, x, y + h, x + w)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of checking detections against a capture position.

    Attributes:
        position: Capture position the detections were validated against.
        is_valid: True when enough expected parts were detected.
        detected_parts: Labels of all detections, in detection order.
        message: Human-readable explanation for the capture screen.
        detections: The (suppressed) detections that were validated.
        expected_parts: Labels expected for `position` (empty if unknown).
        matched_parts: Expected labels present in `detected_parts`.
    """

    position: str
    is_valid: bool
    detected_parts: tuple[str, ...]
    message: str
    detections: tuple[Detection, ...] = ()
    expected_parts: tuple[str, ...] = ()
    matched_parts: tuple[str, ...] = ()
