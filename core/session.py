"""
GIF Blur — Editing Session
State for one interactive edit: pristine frames, edited frames, the GIF's
structure, the brush mask and the frame on screen.

Previews and commits always start from the pristine frames, so repeated
commits never compound. ``bake()`` makes the current result the new
baseline for a second pass.
"""

import logging
from typing import Iterable, Sequence

import numpy as np

from core.batch import blur_frame, process_all, process_all_async
from core.cancel import CancellationToken
from core.export_models import BlurSettings, GifSettings, ScaleAlgorithm
from core.gif_frames import (
    OriginalGifMetadata,
    extract_gif_frames,
    reconstruct_gif,
    reconstruct_gif_async,
)
from core.mask import MaskCanvas

logger = logging.getLogger(__name__)


def preview_blur(original: np.ndarray, mask, settings: BlurSettings) -> np.ndarray:
    """Blurred copy of one frame. ``original`` is never modified."""
    return blur_frame(original, mask, settings)


class EditingSession:
    """Single-owner editing state. Not thread-safe; the HTTP layer serializes access."""

    def __init__(self, blur_settings: BlurSettings | None = None,
                 gif_settings: GifSettings | None = None):
        self.blur_settings = blur_settings or BlurSettings()
        self.gif_settings = gif_settings or GifSettings()
        self.reset()

    def reset(self):
        self.originals: list[np.ndarray] = []
        self.frames: list[np.ndarray] = []
        self.metadata: OriginalGifMetadata | None = None
        self.mask = MaskCanvas()
        self.current_index = 0

    @property
    def is_loaded(self) -> bool:
        return self.metadata is not None

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    @property
    def frame_size(self) -> tuple[int, int]:
        """(width, height) of the editing frames."""
        return self.mask.width, self.mask.height

    def load_gif(self, data, target_size: Sequence[int] | None = None, *,
                 resample: ScaleAlgorithm | str = ScaleAlgorithm.BILINEAR,
                 cancel: CancellationToken | None = None) -> OriginalGifMetadata:
        """Decode a GIF and start a fresh edit on it."""
        target_w, target_h = target_size if target_size else (None, None)
        frames, metadata = extract_gif_frames(
            data, target_w, target_h, resample=resample, cancel=cancel
        )
        self.reset()
        self.originals = frames
        self.frames = [f.copy() for f in frames]
        self.metadata = metadata
        height, width = frames[0].shape[:2]
        self.mask.resize(width, height)
        logger.info("Loaded GIF: %d frame(s), %dx%d", len(frames), width, height)
        return metadata

    def _require_loaded(self):
        if not self.is_loaded:
            raise RuntimeError("No GIF loaded")

    def show_frame(self, index: int) -> np.ndarray:
        """Select a frame and return its current (edited) pixels."""
        self._require_loaded()
        if not 0 <= index < len(self.frames):
            raise IndexError(f"Frame {index} out of range (0-{len(self.frames) - 1})")
        self.current_index = index
        return self.frames[index]

    def paint(self, point: Sequence[float], brush_size: float | None = None):
        size = self.blur_settings.brush_size if brush_size is None else brush_size
        self.mask.paint(point, size)

    def stroke(self, points: Iterable[Sequence[float]], brush_size: float | None = None):
        size = self.blur_settings.brush_size if brush_size is None else brush_size
        self.mask.stroke(points, size)

    def preview(self, settings: BlurSettings | None = None) -> np.ndarray | None:
        """Masked blur of the current pristine frame, or None before loading."""
        if not self.is_loaded:
            return None
        return preview_blur(self.originals[self.current_index], self.mask,
                            settings or self.blur_settings)

    def commit(self, settings: BlurSettings | None = None, *, workers: int | None = None,
               cancel: CancellationToken | None = None) -> list[np.ndarray]:
        """Apply the mask to every pristine frame and keep the result."""
        self._require_loaded()
        if settings is not None:
            self.blur_settings = settings
        self.frames = process_all(self.originals, self.mask, self.blur_settings,
                                  workers=workers, cancel=cancel)
        return self.frames

    async def commit_async(self, settings: BlurSettings | None = None, **kwargs) -> list[np.ndarray]:
        self._require_loaded()
        if settings is not None:
            self.blur_settings = settings
        self.frames = await process_all_async(self.originals, self.mask, self.blur_settings, **kwargs)
        return self.frames

    def clear_mask(self):
        """Drop the mask and every uncommitted and committed edit since the last bake."""
        self.mask.clear()
        self.frames = [f.copy() for f in self.originals]

    def bake(self):
        """Promote the edited frames to the new pristine baseline."""
        self._require_loaded()
        self.originals = [f.copy() for f in self.frames]
        self.mask.clear()

    def export(self, *, cancel: CancellationToken | None = None) -> bytes:
        self._require_loaded()
        return reconstruct_gif(self.frames, self.metadata, self.gif_settings, cancel=cancel)

    async def export_async(self, **kwargs) -> bytes:
        self._require_loaded()
        return await reconstruct_gif_async(self.frames, self.metadata, self.gif_settings, **kwargs)
