"""
GIF Blur — Mask Canvas
Binary brush mask painted over the current frame. A pixel is part of the
mask when its value is > 0; brush stamps write 255.
"""

import logging
from typing import Iterable, Sequence

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def map_pointer(client_x: float, client_y: float, display_rect: Sequence[float],
                canvas_size: Sequence[int]) -> tuple[float, float]:
    """Map a pointer position on a scaled display into canvas pixels.

    Args:
        client_x, client_y: Pointer position in display coordinates.
        display_rect: (left, top, width, height) of the displayed canvas.
        canvas_size: (width, height) of the backing canvas.
    """
    left, top, disp_w, disp_h = display_rect
    canvas_w, canvas_h = canvas_size
    if disp_w <= 0 or disp_h <= 0:
        return float(client_x - left), float(client_y - top)
    return (
        (client_x - left) * canvas_w / disp_w,
        (client_y - top) * canvas_h / disp_h,
    )


class MaskCanvas:
    """Single-channel uint8 mask bound to a frame size.

    A canvas with no size (before a GIF is loaded) ignores painting.
    """

    def __init__(self, width: int = 0, height: int = 0):
        self.width = 0
        self.height = 0
        self.data = np.zeros((0, 0), dtype=np.uint8)
        self.resize(width, height)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "MaskCanvas":
        """Build a mask from an (H, W) array or the alpha channel of an RGBA image."""
        array = np.asarray(array)
        if array.ndim == 3:
            array = array[:, :, -1]
        canvas = cls(array.shape[1], array.shape[0])
        canvas.data[array > 0] = 255
        return canvas

    @property
    def active(self) -> bool:
        return self.width > 0 and self.height > 0

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape

    def resize(self, width: int, height: int) -> None:
        """Bind to a new canvas size. Clears the mask."""
        self.width = max(0, int(width))
        self.height = max(0, int(height))
        self.data = np.zeros((self.height, self.width), dtype=np.uint8)

    def clear(self) -> None:
        self.data[:] = 0

    def paint(self, point: Sequence[float], brush_radius: float) -> None:
        """Stamp a filled circle centred on ``point``."""
        if not self.active:
            logger.debug("Ignoring paint at %s: no canvas bound", point)
            return
        x, y = point
        cv2.circle(self.data, (int(round(x)), int(round(y))), _radius(brush_radius), 255, -1)

    def stroke(self, points: Iterable[Sequence[float]], brush_radius: float) -> None:
        """Paint a polyline: every point stamped, neighbours joined by thick lines."""
        if not self.active:
            logger.debug("Ignoring stroke: no canvas bound")
            return
        r = _radius(brush_radius)
        previous = None
        for x, y in points:
            current = (int(round(x)), int(round(y)))
            cv2.circle(self.data, current, r, 255, -1)
            if previous is not None and previous != current:
                cv2.line(self.data, previous, current, 255, thickness=2 * r + 1)
            previous = current

    def fill_rect(self, left: int, top: int, width: int, height: int) -> None:
        """Add a rectangle to the mask, clipped to the canvas."""
        if not self.active:
            logger.debug("Ignoring rect: no canvas bound")
            return
        x0, y0 = max(0, int(left)), max(0, int(top))
        x1 = min(self.width, int(left) + int(width))
        y1 = min(self.height, int(top) + int(height))
        if x1 > x0 and y1 > y0:
            self.data[y0:y1, x0:x1] = 255

    def contains(self, x: int, y: int) -> bool:
        if not (0 <= x < self.width and 0 <= y < self.height):
            return False
        return bool(self.data[y, x] > 0)

    def coverage(self) -> float:
        """Fraction of canvas pixels inside the mask."""
        if not self.active:
            return 0.0
        return float(np.count_nonzero(self.data)) / self.data.size

    def is_empty(self) -> bool:
        return not self.data.any()

    def copy(self) -> "MaskCanvas":
        other = MaskCanvas()
        other.width, other.height = self.width, self.height
        other.data = self.data.copy()
        return other


def _radius(brush_radius: float) -> int:
    return max(0, int(round(brush_radius)))
