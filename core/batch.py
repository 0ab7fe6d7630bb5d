"""
GIF Blur — Batch Blur Processor
Applies one mask and one set of blur settings to every frame.

Frames are independent here (no compositing state), so they run on a
thread pool. numpy releases the GIL for the heavy array work.
"""

import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

import numpy as np

from core.cancel import CancellationToken, check_cancel
from core.export_models import BlurSettings
from core.mask import MaskCanvas
from effects import DimensionMismatchError, apply_masked_blur, check_dimensions

logger = logging.getLogger(__name__)

__all__ = [
    "DimensionMismatchError",
    "blur_frame",
    "mask_array",
    "process_all",
    "process_all_async",
]


def mask_array(mask) -> np.ndarray:
    """Accept a MaskCanvas or a plain (H, W) array."""
    if isinstance(mask, MaskCanvas):
        return mask.data
    return np.asarray(mask)


def blur_frame(frame: np.ndarray, mask, settings: BlurSettings) -> np.ndarray:
    """Masked blur of a single frame. Returns a new array."""
    return apply_masked_blur(
        frame, mask_array(mask), settings.blur_type.value, settings.blur_intensity
    )


def _default_workers(count: int) -> int:
    return max(1, min(count, os.cpu_count() or 1, 8))


def process_all(
    frames: Sequence[np.ndarray],
    mask,
    settings: BlurSettings,
    *,
    workers: int | None = None,
    cancel: CancellationToken | None = None,
) -> list[np.ndarray]:
    """Blur every frame under ``mask``. Results keep input order.

    Raises:
        DimensionMismatchError: A frame's size differs from the mask
            (checked for all frames before any work starts).
        OperationCancelled: If ``cancel`` trips. No partial result is returned.
    """
    mask = mask_array(mask)
    for i, frame in enumerate(frames):
        check_dimensions(frame, mask, index=i)

    total = len(frames)
    if total == 0:
        return []
    if not mask.any() or settings.blur_intensity // 2 == 0:
        return [frame.copy() for frame in frames]

    def run(index: int) -> tuple[int, np.ndarray]:
        check_cancel(cancel, f"blurring frame {index + 1}/{total}")
        return index, blur_frame(frames[index], mask, settings)

    results: list[np.ndarray | None] = [None] * total
    workers = workers or _default_workers(total)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(run, i) for i in range(total)]
        try:
            for future in as_completed(futures):
                index, blurred = future.result()
                results[index] = blurred
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    logger.debug("Blurred %d frame(s) with %s/%d", total,
                 settings.blur_type.value, settings.blur_intensity)
    return results


async def process_all_async(frames, mask, settings, **kwargs) -> list[np.ndarray]:
    return await asyncio.to_thread(process_all, frames, mask, settings, **kwargs)
