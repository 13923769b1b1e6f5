"""Car-part vocabulary and label/position normalization."""

from __future__ import annotations

from typing import Final

# Output order of the detection head; index == class id.
CAR_PART_LABELS: Final[tuple[str, ...]] = (
    "back_bumper",
    "back_door",
    "back_glass",
    "back_left_door",
    "back_left_light",
    "back_light",
    "back_right_door",
    "back_right_light",
    "front_bumper",
    "front_door",
    "front_glass",
    "front_left_door",
    "front_left_light",
    "front_light",
    "front_right_door",
    "front_right_light",
    "hood",
    "left_mirror",
    "object",
    "right_mirror",
    "tailgate",
    "trunk",
    "wheel",
)


def norm_key(s: str) -> str:
    """Normalize a free-form key: lowercase, separators to spaces, collapsed."""
    cleaned = s.strip().lower().replace("-", " ").replace("_", " ").replace("/", " ")
    return " ".join(cleaned.split())


def label_index(label: str, labels: tuple[str, ...] = CAR_PART_LABELS) -> int | None:
    """Return the class index of `label`, matching after normalization."""
    wanted = norm_key(label)
    for i, name in enumerate(labels):
        if norm_key(name) == wanted:
            return i
    return None
