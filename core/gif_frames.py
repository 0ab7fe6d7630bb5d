"""
GIF Blur — Frame Extraction & Reconstruction
Turns a GIF into full-canvas RGBA frames for editing, and turns edited
frames back into a GIF with the source's frame regions, delays and disposal.

Extraction composites every raw patch onto a persistent canvas (see
core.compositing) and optionally resamples the result for editing.
Reconstruction runs the same fold over the edited frames and crops each
frame's original region back out, so file structure survives the edit.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
from PIL import Image

from core.cancel import CancellationToken, check_cancel
from core.compositing import CanvasAccumulator
from core.export_models import GifSettings, ScaleAlgorithm
from core.gif_codec import (
    TRANSPARENT_ALPHA_CUTOFF,
    DecodeError,
    EncodedFrame,
    RawFrame,
    decode_gif,
    encode_gif,
)
from core.region import FrameRegion, crop_region
from core.safety import GIF_EXTENSIONS, preflight, validate_canvas, validate_frame_count

logger = logging.getLogger(__name__)


class ReconstructionError(Exception):
    """Edited frames cannot be mapped back onto the source GIF structure."""
    pass


@dataclass(frozen=True)
class FrameRecord:
    """Structure of one source frame, without its pixels."""
    region: FrameRegion
    disposal: int = 0
    delay: int = 0  # milliseconds
    transparent_index: int | None = None

    @classmethod
    def from_raw(cls, raw: RawFrame) -> "FrameRecord":
        return cls(
            region=raw.region,
            disposal=raw.disposal,
            delay=raw.delay,
            transparent_index=raw.transparent_index,
        )

    @property
    def delay_cs(self) -> int:
        return int(self.delay / 10 + 0.5)


@dataclass(frozen=True)
class OriginalGifMetadata:
    width: int
    height: int
    frames: tuple[FrameRecord, ...]
    global_color_table: tuple[tuple[int, int, int], ...] | None = None
    background_index: int = 0
    loop_count: int | None = None

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    @property
    def total_duration_ms(self) -> int:
        return sum(f.delay for f in self.frames)

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "frame_count": self.frame_count,
            "total_duration_ms": self.total_duration_ms,
            "loop_count": self.loop_count,
            "background_index": self.background_index,
            "has_global_color_table": self.global_color_table is not None,
            "frames": [
                {
                    "region": list(f.region),
                    "disposal": f.disposal,
                    "delay": f.delay,
                    "transparent_index": f.transparent_index,
                }
                for f in self.frames
            ],
        }


def resize_frame(frame: np.ndarray, width: int, height: int,
                 resample: ScaleAlgorithm | str = ScaleAlgorithm.BILINEAR) -> np.ndarray:
    """Resample an RGBA frame with Pillow. Returns the input when sizes match."""
    if frame.shape[1] == width and frame.shape[0] == height:
        return frame
    algorithm = ScaleAlgorithm(resample)
    img = Image.fromarray(np.ascontiguousarray(frame))
    img = img.resize((width, height), algorithm.pil_filter)
    return np.asarray(img, dtype=np.uint8).copy()


def _target_size(width: int, height: int, target_width: int | None,
                 target_height: int | None) -> tuple[int, int]:
    if not target_width and not target_height:
        return width, height
    if target_width and not target_height:
        target_height = max(1, round(height * target_width / width))
    elif target_height and not target_width:
        target_width = max(1, round(width * target_height / height))
    return int(target_width), int(target_height)


def extract_gif_frames(
    data,
    target_width: int | None = None,
    target_height: int | None = None,
    *,
    resample: ScaleAlgorithm | str = ScaleAlgorithm.BILINEAR,
    cancel: CancellationToken | None = None,
) -> tuple[list[np.ndarray], OriginalGifMetadata]:
    """Decode and composite a GIF into one RGBA canvas per frame.

    Args:
        data: GIF bytes, or a path to a .gif file.
        target_width, target_height: Editing size. One alone keeps the
            aspect ratio. Compositing always runs at the logical screen size.
        resample: Filter used when a target size is given.
        cancel: Optional token checked between frames.

    Returns:
        (frames, metadata). ``frames[i]`` pairs with ``metadata.frames[i]``.

    Raises:
        DecodeError: Unreadable container or no decodable frame.
        SafetyError: Canvas, editing size or frame count outside the
            configured limits.
        OperationCancelled: If ``cancel`` trips.
    """
    if isinstance(data, (str, Path)):
        preflight(data, GIF_EXTENSIONS)
        data = Path(data).read_bytes()

    decoded = decode_gif(data)
    validate_canvas(decoded.width, decoded.height)
    validate_frame_count(len(decoded.frames))

    width, height = decoded.width, decoded.height
    out_w, out_h = _target_size(width, height, target_width, target_height)
    validate_canvas(out_w, out_h)
    total = len(decoded.frames)

    acc = CanvasAccumulator(width, height)
    frames: list[np.ndarray] = []
    records: list[FrameRecord] = []
    for i, raw in enumerate(decoded.frames):
        check_cancel(cancel, f"extracting frame {i + 1}/{total}")
        if not raw.readable:
            logger.warning("Skipping GIF frame %d/%d: image data unreadable", i + 1, total)
            continue
        canvas = acc.step(raw.patch, raw.region, raw.disposal)
        if (out_w, out_h) != (width, height):
            canvas = resize_frame(canvas, out_w, out_h, resample)
        frames.append(canvas)
        records.append(FrameRecord.from_raw(raw))

    if not frames:
        raise DecodeError("GIF contains no decodable frames")

    metadata = OriginalGifMetadata(
        width=width,
        height=height,
        frames=tuple(records),
        global_color_table=decoded.global_color_table,
        background_index=decoded.background_index,
        loop_count=decoded.loop_count,
    )
    logger.debug("Extracted %d frame(s), %dx%d -> %dx%d", len(frames), width, height, out_w, out_h)
    return frames, metadata


async def extract_gif_frames_async(data, target_width=None, target_height=None, **kwargs):
    return await asyncio.to_thread(extract_gif_frames, data, target_width, target_height, **kwargs)


# ---------------------------------------------------------------------------
# Reconstruction
# ---------------------------------------------------------------------------

def index_pixels(
    pixels: np.ndarray,
    transparent: np.ndarray,
    palette_size: int = 256,
    kmeans: int = 0,
) -> tuple[np.ndarray, list[tuple[int, int, int]], int | None]:
    """Convert an RGBA region into palette indexes.

    Regions whose opaque colours fit the 256-entry table get an exact palette.
    Larger ones are quantized with Pillow down to ``palette_size`` colours.
    Pixels flagged in ``transparent`` share one extra palette entry, which
    takes one slot from the table.

    Returns:
        (indices, palette, transparent_index or None)
    """
    h, w = pixels.shape[:2]
    opaque = ~transparent
    rgb = np.ascontiguousarray(pixels[:, :, :3])
    has_transparency = bool(transparent.any())

    packed = (rgb[:, :, 0].astype(np.uint32) << 16) | (rgb[:, :, 1].astype(np.uint32) << 8) | rgb[:, :, 2]
    colors, inverse = np.unique(packed[opaque], return_inverse=True)

    limit = 256 - int(has_transparency)
    if len(colors) <= limit:
        indices = np.zeros((h, w), dtype=np.uint8)
        indices[opaque] = inverse.reshape(-1).astype(np.uint8)
        palette = [(int(c >> 16) & 0xFF, int(c >> 8) & 0xFF, int(c) & 0xFF) for c in colors]
    else:
        fill = rgb.copy()
        fill[transparent] = rgb[opaque][0]
        quantized = Image.fromarray(fill).quantize(
            colors=max(2, min(limit, palette_size)),
            method=Image.Quantize.MEDIANCUT,
            kmeans=kmeans,
            dither=Image.Dither.NONE,
        )
        indices = np.asarray(quantized, dtype=np.uint8).copy()
        used = int(indices.max()) + 1
        raw_palette = quantized.getpalette()[:used * 3]
        palette = [tuple(raw_palette[i:i + 3]) for i in range(0, used * 3, 3)]

    transparent_index = None
    if has_transparency:
        transparent_index = len(palette)
        palette.append((0, 0, 0))
        indices[transparent] = transparent_index
    return indices, palette, transparent_index


def _as_canvas_frame(frame: np.ndarray, width: int, height: int, index: int) -> np.ndarray:
    frame = np.asarray(frame)
    if frame.ndim != 3 or frame.shape[2] not in (3, 4):
        raise ReconstructionError(
            f"Frame {index} must be an HxWx4 RGBA array, got shape {frame.shape}"
        )
    if frame.dtype != np.uint8:
        frame = np.clip(frame, 0, 255).astype(np.uint8)
    if frame.shape[2] == 3:
        alpha = np.full(frame.shape[:2] + (1,), 255, dtype=np.uint8)
        frame = np.concatenate([frame, alpha], axis=2)
    return resize_frame(frame, width, height, ScaleAlgorithm.NEAREST)


def reconstruct_gif(
    frames: Sequence[np.ndarray],
    metadata: OriginalGifMetadata,
    settings: GifSettings | None = None,
    *,
    cancel: CancellationToken | None = None,
) -> bytes:
    """Encode edited canvases back into a GIF shaped like the source.

    Each frame is cropped to its source region and written with the source
    delay and disposal. Frames at another size are resampled (nearest) to
    the logical screen first.

    Raises:
        ReconstructionError: Frame count or shape does not match metadata.
        OperationCancelled: If ``cancel`` trips.
    """
    if len(frames) != len(metadata.frames):
        raise ReconstructionError(
            f"Got {len(frames)} frame(s) but the source GIF has {len(metadata.frames)}"
        )
    settings = settings or GifSettings()
    kmeans = max(0, 10 - settings.quality)
    width, height = metadata.width, metadata.height

    acc = CanvasAccumulator(width, height)
    encoded: list[EncodedFrame] = []
    total = len(frames)
    for i, (frame, record) in enumerate(zip(frames, metadata.frames)):
        check_cancel(cancel, f"encoding frame {i + 1}/{total}")
        canvas_frame = _as_canvas_frame(frame, width, height, i)

        before = crop_region(acc.begin_frame(record.region, record.disposal), record.region)
        pixels = crop_region(canvas_frame, record.region)

        transparent = pixels[:, :, 3] < TRANSPARENT_ALPHA_CUTOFF
        if record.transparent_index is not None:
            # Pixels already showing on the canvas can stay transparent.
            unchanged = (
                (before[:, :, 3] >= TRANSPARENT_ALPHA_CUTOFF)
                & np.all(pixels[:, :, :3] == before[:, :, :3], axis=2)
            )
            transparent |= unchanged

        indices, palette, transparent_index = index_pixels(
            pixels, transparent, settings.palette_size, kmeans
        )
        written = np.empty_like(pixels)
        palette_arr = np.array(palette, dtype=np.uint8)
        written[:, :, :3] = palette_arr[indices]
        written[:, :, 3] = np.where(transparent, 0, 255)
        acc.draw(written, record.region)
        acc.end_frame()

        encoded.append(EncodedFrame(
            indices=indices,
            palette=palette,
            region=record.region,
            delay_cs=record.delay_cs,
            disposal=record.disposal,
            transparent_index=transparent_index,
        ))

    loop_count = metadata.loop_count if metadata.loop_count is not None else settings.loop_count
    data = encode_gif(width, height, encoded, loop_count=loop_count)
    logger.debug("Reconstructed %d frame(s) into %d bytes", total, len(data))
    return data


async def reconstruct_gif_async(frames, metadata, settings=None, **kwargs) -> bytes:
    return await asyncio.to_thread(reconstruct_gif, frames, metadata, settings, **kwargs)
