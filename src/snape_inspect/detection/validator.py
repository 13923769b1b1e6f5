"""Per-capture-position validation of detected car parts."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from snape_inspect.vision.labels import norm_key
from snape_inspect.vision.types import Detection, ValidationResult

_FRONT: Final = (
    "hood",
    "front_glass",
    "left_mirror",
    "right_mirror",
    "front_bumper",
    "front_left_light",
    "front_right_light",
    "back_glass",
    "wheel",
)
_REAR: Final = ("back_bumper", "back_glass", "back_light", "tailgate", "trunk", "back_door")
_RIGHT_FRONT_FENDER: Final = ("front_right_light", "right_mirror", "front_right_door", "wheel")
_RIGHT_FRONT_DOOR: Final = ("front_right_door", "wheel", "right_mirror")
_RIGHT_REAR_DOOR: Final = ("back_right_door", "front_right_door", "back_right_light")
_RIGHT_REAR_FENDER: Final = ("back_right_light", "back_right_door", "back_light", "wheel")
_LEFT_REAR_FENDER: Final = ("back_left_light", "back_left_door", "back_light", "wheel")
_LEFT_REAR_DOOR: Final = ("back_left_door", "front_left_door", "back_left_light")
_LEFT_FRONT_DOOR: Final = ("front_left_door", "wheel", "left_mirror")
_LEFT_FRONT_FENDER: Final = ("front_left_light", "left_mirror", "front_left_door", "wheel")

# Callers send both display names and segment ids, so both spellings are listed.
EXPECTED_PARTS: Final[dict[str, tuple[str, ...]]] = {
    "Front": _FRONT,
    "Front View": _FRONT,
    "front": _FRONT,
    "Right Front Fender": _RIGHT_FRONT_FENDER,
    "right_front_fender": _RIGHT_FRONT_FENDER,
    "Right Front Door": _RIGHT_FRONT_DOOR,
    "right_front_door": _RIGHT_FRONT_DOOR,
    "Right Rear Door": _RIGHT_REAR_DOOR,
    "right_rear_door": _RIGHT_REAR_DOOR,
    "Right Rear Fender": _RIGHT_REAR_FENDER,
    "right_rear_fender": _RIGHT_REAR_FENDER,
    "Rear": _REAR,
    "Rear View": _REAR,
    "rear": _REAR,
    "Left Rear Fender": _LEFT_REAR_FENDER,
    "left_rear_fender": _LEFT_REAR_FENDER,
    "Left Rear Door": _LEFT_REAR_DOOR,
    "left_rear_door": _LEFT_REAR_DOOR,
    "Left Front Door": _LEFT_FRONT_DOOR,
    "left_front_door": _LEFT_FRONT_DOOR,
    "Left Front Fender": _LEFT_FRONT_FENDER,
    "left_front_fender": _LEFT_FRONT_FENDER,
}

# Capture flow order of the exterior segments.
CAPTURE_SEGMENTS: Final[tuple[str, ...]] = (
    "front",
    "right_front_fender",
    "right_front_door",
    "right_rear_door",
    "right_rear_fender",
    "rear",
    "left_rear_fender",
    "left_rear_door",
    "left_front_door",
    "left_front_fender",
)

_FRONT_KEYS: Final = frozenset({"front", "front view"})
FRONT_MIN_MATCHES: Final = 2
DEFAULT_MIN_MATCHES: Final = 1

_BY_NORM: Final[dict[str, tuple[str, ...]]] = {norm_key(k): v for k, v in EXPECTED_PARTS.items()}


def known_positions() -> list[str]:
    """Return every position name accepted by the expectation table."""
    return list(EXPECTED_PARTS)


def expected_parts(position: str) -> tuple[str, ...]:
    """Return the expected labels for `position` (case/spacing-insensitive).

    Unknown positions yield an empty tuple.
    """
    return _BY_NORM.get(norm_key(position), ())


def is_front(position: str) -> bool:
    return norm_key(position) in _FRONT_KEYS


def validate_part(detections: Sequence[Detection], position: str) -> ValidationResult:
    """Check detections against the parts expected for a capture position.

    Front views need at least two expected parts; every other position needs
    at least one. Unknown positions can never be satisfied.
    """
    detected = tuple(d.label for d in detections)
    expected = expected_parts(position)
    matched = tuple(p for p in expected if p in detected)
    front = is_front(position)
    min_matches = FRONT_MIN_MATCHES if front else DEFAULT_MIN_MATCHES
    is_valid = bool(expected) and len(matched) >= min_matches
    wrong = bool(detected) and not is_valid

    if not expected:
        message = f"No car parts detected (unknown capture position: {position!r})"
    elif front:
        need = f"need {FRONT_MIN_MATCHES} of: {', '.join(expected)}"
        if is_valid:
            message = f"Front detected ✓ ({', '.join(matched)})"
        elif wrong:
            message = f"Wrong parts detected: {', '.join(detected)} ({need})"
        else:
            message = f"Missing parts ({need})"
    elif is_valid:
        found = [label for label in detected if label in expected]
        message = f"Expected parts detected ✓ ({', '.join(found)})"
    elif wrong:
        message = f"Wrong parts detected: {', '.join(detected)} (expected: {', '.join(expected)})"
    else:
        message = "No car parts detected"

    return ValidationResult(
        position=position,
        is_valid=is_valid,
        detected_parts=detected,
        message=message,
        detections=tuple(detections),
        expected_parts=expected,
        matched_parts=matched,
    )
