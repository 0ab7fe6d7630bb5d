"""
GIF Blur — Blur Kernels
Three masked-blur styles, each in two forms:

  *_pixel(x, y, frame, intensity, source=None)
      Rewrites one pixel of ``frame`` from the neighbourhood in ``source``
      (defaults to ``frame``). Reference form, used for single-pixel edits.
  *_blur(frame, intensity)
      Whole-frame numpy version. Returns a new array equal to running the
      pixel kernel over every pixel while reading from an untouched copy.

All RGBA channels are processed. Averages round half up.
"""

import numpy as np


def _radius(intensity) -> int:
    return max(0, int(intensity) // 2)


def _block(intensity) -> int:
    return max(1, int(intensity) // 2)


def _round_mean(total, count):
    return (total + count // 2) // count


# ---------------------------------------------------------------------------
# Per-pixel kernels
# ---------------------------------------------------------------------------

def gaussian_pixel(x: int, y: int, frame: np.ndarray, intensity: int,
                   source: np.ndarray | None = None) -> None:
    """Mean of the (2r+1)^2 neighbourhood, r = intensity // 2.

    Neighbour coordinates are clamped to the frame edge, so edge pixels
    count repeated border samples.
    """
    src = frame if source is None else source
    r = _radius(intensity)
    if r == 0:
        frame[y, x] = src[y, x]
        return
    h, w = src.shape[:2]
    ys = np.clip(np.arange(y - r, y + r + 1), 0, h - 1)
    xs = np.clip(np.arange(x - r, x + r + 1), 0, w - 1)
    window = src[np.ix_(ys, xs)].astype(np.int64)
    count = len(ys) * len(xs)
    total = window.reshape(count, -1).sum(axis=0)
    frame[y, x] = _round_mean(total, count)


def pixelated_pixel(x: int, y: int, frame: np.ndarray, intensity: int,
                    source: np.ndarray | None = None) -> None:
    """Copy the top-left sample of the block containing (x, y)."""
    src = frame if source is None else source
    b = _block(intensity)
    frame[y, x] = src[(y // b) * b, (x // b) * b]


def mosaic_pixel(x: int, y: int, frame: np.ndarray, intensity: int,
                 source: np.ndarray | None = None) -> None:
    """Average of the in-frame pixels of the block containing (x, y)."""
    src = frame if source is None else source
    b = _block(intensity)
    h, w = src.shape[:2]
    y0 = (y // b) * b
    x0 = (x // b) * b
    block = src[y0:min(h, y0 + b), x0:min(w, x0 + b)].astype(np.int64)
    count = block.shape[0] * block.shape[1]
    total = block.reshape(count, -1).sum(axis=0)
    frame[y, x] = _round_mean(total, count)


# ---------------------------------------------------------------------------
# Whole-frame versions
# ---------------------------------------------------------------------------

def gaussian_blur(frame: np.ndarray, intensity: int = 10) -> np.ndarray:
    """Box average over the clamped (2r+1)^2 neighbourhood of every pixel.

    Uses an integral image over an edge-padded copy, so the cost does not
    depend on the radius.
    """
    r = _radius(intensity)
    if r == 0:
        return frame.copy()
    k = 2 * r + 1
    padded = np.pad(frame.astype(np.int64), ((r, r), (r, r), (0, 0)), mode="edge")
    integral = padded.cumsum(axis=0).cumsum(axis=1)
    integral = np.pad(integral, ((1, 0), (1, 0), (0, 0)))
    sums = (integral[k:, k:] - integral[:-k, k:]
            - integral[k:, :-k] + integral[:-k, :-k])
    return _round_mean(sums, k * k).astype(np.uint8)


def pixelated_blur(frame: np.ndarray, intensity: int = 10) -> np.ndarray:
    """Replace every block with its top-left sample."""
    b = _block(intensity)
    if b == 1:
        return frame.copy()
    h, w = frame.shape[:2]
    ys = (np.arange(h) // b) * b
    xs = (np.arange(w) // b) * b
    return frame[np.ix_(ys, xs)].copy()


def mosaic_blur(frame: np.ndarray, intensity: int = 10) -> np.ndarray:
    """Replace every block with its average colour.

    Edge blocks that run past the frame average only their in-frame pixels.
    """
    b = _block(intensity)
    if b == 1:
        return frame.copy()
    h, w = frame.shape[:2]
    rows = np.arange(0, h, b)
    cols = np.arange(0, w, b)
    sums = np.add.reduceat(np.add.reduceat(frame.astype(np.int64), rows, axis=0), cols, axis=1)
    row_counts = np.diff(np.append(rows, h))
    col_counts = np.diff(np.append(cols, w))
    counts = np.outer(row_counts, col_counts)[:, :, None]
    means = _round_mean(sums, counts)
    means = np.repeat(np.repeat(means, row_counts, axis=0), col_counts, axis=1)
    return means.astype(np.uint8)
