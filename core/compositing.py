"""
GIF Blur — Disposal-Aware Compositing
Folds raw GIF frame patches into full-canvas RGBA images.

Before frame i is drawn, the disposal method of frame i-1 is applied:
  0 / 1  leave the canvas as-is
  2      clear frame i-1's region to transparent
  3      restore the canvas saved right before frame i-1 was drawn

The accumulator state is (canvas, snapshot). Extraction and reconstruction
both run the same fold so the canvas a decoder sees is the one the encoder
reasons about.
"""

from typing import Iterable, Iterator

import numpy as np

from core.gif_codec import DISPOSAL_BACKGROUND, DISPOSAL_PREVIOUS, RawFrame
from core.region import FrameRegion, clear_region, paste_patch


class CanvasAccumulator:
    """Running canvas for a sequence of GIF frames.

    Use ``step()`` for the common case, or ``begin_frame()`` / ``draw()`` /
    ``end_frame()`` when the caller needs the pre-draw canvas.
    """

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.canvas = np.zeros((height, width, 4), dtype=np.uint8)
        self._snapshot: np.ndarray | None = None
        self._previous: tuple[FrameRegion, int] | None = None
        self._current: tuple[FrameRegion, int] | None = None

    def begin_frame(self, region: FrameRegion, disposal: int) -> np.ndarray:
        """Dispose of the previous frame and return the pre-draw canvas.

        The returned array is the live canvas, copy it to keep it.
        """
        if self._previous is not None:
            prev_region, prev_disposal = self._previous
            if prev_disposal == DISPOSAL_BACKGROUND:
                clear_region(self.canvas, prev_region)
            elif prev_disposal == DISPOSAL_PREVIOUS and self._snapshot is not None:
                self.canvas[:] = self._snapshot

        if disposal == DISPOSAL_PREVIOUS:
            self._snapshot = self.canvas.copy()

        self._current = (region, disposal)
        return self.canvas

    def draw(self, patch: np.ndarray, region: FrameRegion) -> None:
        if patch.size:
            paste_patch(self.canvas, patch, region)

    def end_frame(self) -> np.ndarray:
        """Finish the current frame and return a copy of the composited canvas."""
        if self._current is None:
            raise RuntimeError("end_frame() called without begin_frame()")
        self._previous = self._current
        self._current = None
        return self.canvas.copy()

    def step(self, patch: np.ndarray, region: FrameRegion, disposal: int) -> np.ndarray:
        self.begin_frame(region, disposal)
        self.draw(patch, region)
        return self.end_frame()


def composite_frames(frames: Iterable[RawFrame], width: int, height: int) -> Iterator[np.ndarray]:
    """Yield the full-canvas RGBA image shown for each frame, in order."""
    acc = CanvasAccumulator(width, height)
    for frame in frames:
        yield acc.step(frame.patch, frame.region, frame.disposal)
