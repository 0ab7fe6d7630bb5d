"""
GIF Blur — Safety & Resource Guards
Preflight checks run before any file or byte blob is processed.
Prevents oversized uploads and decompression bombs (huge logical screens,
thousands of frames).
"""

import os
from pathlib import Path

# --- Configurable Limits ---
MAX_FILE_MB = 100               # Maximum input file / upload size
MAX_FRAMES = 3000               # Maximum frames decoded from one GIF
MAX_CANVAS_PIXELS = 4096 * 4096  # Maximum logical screen area
TIMEOUT_SEC = 300               # FFmpeg subprocess timeout
GIF_EXTENSIONS = {".gif"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm", ".m4v"}
ALLOWED_EXTENSIONS = GIF_EXTENSIONS | VIDEO_EXTENSIONS


class SafetyError(Exception):
    """Raised when a preflight check fails."""
    pass


def preflight(input_path: str, allowed: set[str] | None = None) -> dict:
    """Run all safety checks before processing a file.

    Args:
        input_path: Path to the input file.
        allowed: Accepted extensions (defaults to ALLOWED_EXTENSIONS).

    Returns:
        dict with file metadata (path, size_mb, extension)

    Raises:
        SafetyError: If any check fails.
        FileNotFoundError: If input doesn't exist.
    """
    input_path = str(input_path)
    real_path = os.path.realpath(input_path)

    # 1. File exists
    if not os.path.isfile(real_path):
        raise FileNotFoundError(f"Input file not found: {input_path}")

    # 2. File size check
    size_mb = os.path.getsize(real_path) / (1024 * 1024)
    if size_mb > MAX_FILE_MB:
        raise SafetyError(
            f"Input file is {size_mb:.0f}MB, exceeds {MAX_FILE_MB}MB limit. "
            f"Use a shorter clip or lower resolution."
        )

    # 3. File extension check
    allowed = ALLOWED_EXTENSIONS if allowed is None else allowed
    ext = Path(real_path).suffix.lower()
    if ext not in allowed:
        raise SafetyError(
            f"File type '{ext}' not allowed. "
            f"Supported: {', '.join(sorted(allowed))}"
        )

    return {
        "path": real_path,
        "size_mb": size_mb,
        "extension": ext,
    }


def preflight_bytes(data: bytes) -> None:
    """Size check for in-memory uploads.

    Raises:
        SafetyError: If the blob is empty or exceeds MAX_FILE_MB.
    """
    if not data:
        raise SafetyError("Upload is empty")
    size_mb = len(data) / (1024 * 1024)
    if size_mb > MAX_FILE_MB:
        raise SafetyError(f"Upload is {size_mb:.0f}MB, exceeds {MAX_FILE_MB}MB limit.")


def validate_canvas(width: int, height: int) -> None:
    """Reject canvases that are empty or too large to composite in memory.

    Raises:
        SafetyError: If a side is not positive or width * height exceeds
            MAX_CANVAS_PIXELS.
    """
    if width <= 0 or height <= 0:
        raise SafetyError(f"Canvas {width}x{height} must have a positive size.")
    if width * height > MAX_CANVAS_PIXELS:
        raise SafetyError(
            f"Canvas {width}x{height} exceeds {MAX_CANVAS_PIXELS} pixel limit."
        )


def validate_frame_count(count: int) -> None:
    """Raises:
        SafetyError: If count exceeds MAX_FRAMES.
    """
    if count > MAX_FRAMES:
        raise SafetyError(
            f"GIF has {count} frames, max is {MAX_FRAMES}. "
            f"Trim the animation first."
        )
