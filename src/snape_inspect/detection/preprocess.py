"""Frame → model-input tensor conversion."""

from __future__ import annotations

from typing import Any

import numpy as np
from PIL import Image

Frame = Image.Image | np.ndarray


def _to_rgb_image(frame: Any) -> Image.Image:
    if isinstance(frame, Image.Image):
        return frame if frame.mode == "RGB" else frame.convert("RGB")
    arr = np.asarray(frame)
    if arr.ndim == 3 and arr.shape[2] == 1:
        arr = arr[:, :, 0]
    if arr.ndim == 3 and arr.shape[2] == 4:
        arr = arr[:, :, :3]
    if arr.ndim not in (2, 3) or (arr.ndim == 3 and arr.shape[2] != 3):
        raise ValueError(f"Unsupported frame shape: {arr.shape}")
    if arr.dtype != np.uint8:
        if np.issubdtype(arr.dtype, np.floating):
            if not np.all(np.isfinite(arr)):
                raise ValueError("Frame contains non-finite values")
            # Float frames in [0, 1] are unit-scaled; anything larger is taken as 0-255.
            if arr.size and float(arr.max()) <= 1.0:
                arr = arr * 255.0
            arr = np.rint(arr)
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    return Image.fromarray(np.ascontiguousarray(arr)).convert("RGB")


def frame_size(frame: Frame) -> tuple[int, int]:
    """Return (width, height) of a PIL image or an HxW[xC] array."""
    if isinstance(frame, Image.Image):
        w, h = frame.size
    else:
        arr = np.asarray(frame)
        if arr.ndim < 2:
            raise ValueError(f"Unsupported frame shape: {arr.shape}")
        h, w = int(arr.shape[0]), int(arr.shape[1])
    if w <= 0 or h <= 0:
        raise ValueError(f"Frame has no pixels: {w}x{h}")
    return w, h


def preprocess(frame: Frame, size: int = 640) -> np.ndarray:
    """Convert a frame to a float32 tensor of shape [1, size, size, 3] in [0, 1].

    The frame is converted to 3-channel RGB, bilinearly resized to a square of
    `size` pixels (aspect ratio is not preserved), given a batch axis and
    scaled from [0, 255] to [0.0, 1.0].
    """
    frame_size(frame)
    img = _to_rgb_image(frame)
    resized = img.resize((size, size), resample=Image.Resampling.BILINEAR)
    tensor = np.asarray(resized, dtype=np.float32) / 255.0
    return tensor[np.newaxis, ...]
