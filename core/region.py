"""
GIF Blur — Frame Regions
Sub-rectangle bookkeeping between a GIF's logical screen and each frame's
image descriptor (left, top, width, height).

Frames may declare regions that run past the logical screen; every helper
here clips to the canvas instead of failing.
"""

from typing import NamedTuple

import numpy as np


class FrameRegion(NamedTuple):
    """Placement of a frame patch inside the logical screen."""
    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height


def clip_region(region: FrameRegion, canvas_w: int, canvas_h: int) -> FrameRegion | None:
    """Clip a region to canvas bounds. Returns None if nothing is left."""
    x0 = max(0, region.left)
    y0 = max(0, region.top)
    x1 = min(canvas_w, region.right)
    y1 = min(canvas_h, region.bottom)
    if x1 <= x0 or y1 <= y0:
        return None
    return FrameRegion(x0, y0, x1 - x0, y1 - y0)


def clear_region(canvas: np.ndarray, region: FrameRegion) -> None:
    """Set a region of an RGBA canvas to fully transparent, in place."""
    h, w = canvas.shape[:2]
    clipped = clip_region(region, w, h)
    if clipped is None:
        return
    canvas[clipped.top:clipped.bottom, clipped.left:clipped.right] = 0


def crop_region(canvas: np.ndarray, region: FrameRegion) -> np.ndarray:
    """Copy a region out of a canvas.

    The result always has the region's full (height, width). Parts of the
    region that fall outside the canvas come back transparent.
    """
    h, w = canvas.shape[:2]
    out = np.zeros((region.height, region.width) + canvas.shape[2:], dtype=canvas.dtype)
    clipped = clip_region(region, w, h)
    if clipped is None:
        return out
    dy = clipped.top - region.top
    dx = clipped.left - region.left
    out[dy:dy + clipped.height, dx:dx + clipped.width] = \
        canvas[clipped.top:clipped.bottom, clipped.left:clipped.right]
    return out


def paste_patch(canvas: np.ndarray, patch: np.ndarray, region: FrameRegion) -> None:
    """Draw an RGBA patch onto an RGBA canvas at the region's offset, in place.

    GIF transparency is binary: pixels with alpha 0 leave the canvas
    untouched, everything else overwrites it.
    """
    h, w = canvas.shape[:2]
    clipped = clip_region(region, w, h)
    if clipped is None:
        return
    dy = clipped.top - region.top
    dx = clipped.left - region.left
    src = patch[dy:dy + clipped.height, dx:dx + clipped.width]
    dst = canvas[clipped.top:clipped.bottom, clipped.left:clipped.right]
    opaque = src[:, :, 3] > 0
    dst[opaque] = src[opaque]