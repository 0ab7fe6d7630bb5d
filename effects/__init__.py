"""
GIF Blur — Blur Registry
Uniform interface over the blur kernels.
Every blur is a function: (frame: np.ndarray, intensity: int) -> np.ndarray
with a matching per-pixel kernel (x, y, frame, intensity, source) -> None.
"""

import numpy as np

from effects.blur import (
    gaussian_blur,
    gaussian_pixel,
    mosaic_blur,
    mosaic_pixel,
    pixelated_blur,
    pixelated_pixel,
)


class DimensionMismatchError(Exception):
    """Mask and frame sizes disagree."""
    pass


BLUR_EFFECTS = {
    "gaussian": {
        "fn": gaussian_blur,
        "pixel_fn": gaussian_pixel,
        "description": "Box average over a square neighbourhood (radius = intensity // 2)",
    },
    "pixelated": {
        "fn": pixelated_blur,
        "pixel_fn": pixelated_pixel,
        "description": "Blocky pixelation, top-left sample per block (block = intensity // 2)",
    },
    "mosaic": {
        "fn": mosaic_blur,
        "pixel_fn": mosaic_pixel,
        "description": "Mosaic tiles, average colour per block (block = intensity // 2)",
    },
}


def get_blur(name: str):
    """Get a blur by name. Returns (fn, pixel_fn).

    Raises ValueError if the blur doesn't exist.
    """
    name = getattr(name, "value", name)
    if name not in BLUR_EFFECTS:
        available = ", ".join(sorted(BLUR_EFFECTS.keys()))
        raise ValueError(f"Unknown blur type: {name}. Available: {available}")
    entry = BLUR_EFFECTS[name]
    return entry["fn"], entry["pixel_fn"]


def list_blurs() -> list[dict]:
    return [
        {"name": name, "description": entry["description"]}
        for name, entry in BLUR_EFFECTS.items()
    ]


def apply_blur(frame: np.ndarray, blur_type: str = "gaussian", intensity: int = 10) -> np.ndarray:
    """Blur a whole frame."""
    fn, _ = get_blur(blur_type)
    return fn(frame, intensity)


def check_dimensions(frame: np.ndarray, mask: np.ndarray, index: int | None = None) -> None:
    """Raises DimensionMismatchError if the mask does not cover the frame exactly."""
    if frame.shape[:2] != mask.shape[:2]:
        where = f"Frame {index}" if index is not None else "Frame"
        raise DimensionMismatchError(
            f"{where} is {frame.shape[1]}x{frame.shape[0]} but the mask is "
            f"{mask.shape[1]}x{mask.shape[0]}"
        )


def _blur_window(selected: np.ndarray, blur_type: str, intensity: int):
    """Smallest frame window whose blur matches the full-frame blur inside the mask.

    Returns (y0, y1, x0, x1), or None when the mask is empty.
    """
    rows = np.flatnonzero(selected.any(axis=1))
    if rows.size == 0:
        return None
    cols = np.flatnonzero(selected.any(axis=0))
    h, w = selected.shape
    y0, y1 = int(rows[0]), int(rows[-1]) + 1
    x0, x1 = int(cols[0]), int(cols[-1]) + 1

    if blur_type == "gaussian":
        r = max(0, int(intensity) // 2)
        return max(0, y0 - r), min(h, y1 + r), max(0, x0 - r), min(w, x1 + r)

    # Block styles: snap to the block grid anchored at the frame origin
    b = max(1, int(intensity) // 2)
    y0, x0 = (y0 // b) * b, (x0 // b) * b
    if blur_type == "mosaic":
        y1 = min(h, -(-y1 // b) * b)
        x1 = min(w, -(-x1 // b) * b)
    return y0, y1, x0, x1


def apply_masked_blur(frame: np.ndarray, mask: np.ndarray,
                      blur_type: str = "gaussian", intensity: int = 10) -> np.ndarray:
    """Blur only the pixels where ``mask > 0``. Returns a new frame.

    Only the window around the mask is processed. Pixels outside the mask
    are copied through unchanged.

    Raises:
        DimensionMismatchError: If mask and frame sizes differ.
    """
    check_dimensions(frame, mask)
    blur_type = getattr(blur_type, "value", blur_type)
    fn, _ = get_blur(blur_type)
    result = frame.copy()
    selected = mask > 0
    window = _blur_window(selected, blur_type, intensity)
    if window is None or int(intensity) // 2 == 0:
        return result

    y0, y1, x0, x1 = window
    blurred = fn(frame[y0:y1, x0:x1], intensity)
    inside = selected[y0:y1, x0:x1]
    result[y0:y1, x0:x1][inside] = blurred[inside]
    return result


def apply_masked_blur_pixelwise(frame: np.ndarray, mask: np.ndarray,
                                blur_type: str = "gaussian", intensity: int = 10) -> np.ndarray:
    """Reference form of apply_masked_blur: one kernel call per masked pixel.

    Kernels read from a pristine copy, so the result does not depend on
    visiting order.
    """
    check_dimensions(frame, mask)
    _, pixel_fn = get_blur(blur_type)
    source = frame.copy()
    result = frame.copy()
    for y, x in zip(*np.nonzero(mask > 0)):
        pixel_fn(int(x), int(y), result, intensity, source)
    return result
