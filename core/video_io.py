"""
GIF Blur — Video I/O Engine
FFmpeg / ffprobe subprocess work for the clip-to-GIF pipeline: probing
clips and running the two-pass palettegen / paletteuse encode.
"""

import json
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Sequence

from core.clips import VideoClip, effective_duration
from core.export_models import GifSettings
from core.filter_graph import build_palettegen_graph, build_paletteuse_graph, fmt_number
from core.safety import TIMEOUT_SEC, VIDEO_EXTENSIONS, preflight

logger = logging.getLogger(__name__)


class FFmpegError(RuntimeError):
    """FFmpeg or ffprobe missing, failing, or timing out."""
    pass


def get_ffmpeg():
    """Find FFmpeg binary."""
    path = shutil.which("ffmpeg")
    if not path:
        raise FFmpegError("FFmpeg not found. Install with: brew install ffmpeg")
    return path


def get_ffprobe():
    """Find FFprobe binary."""
    path = shutil.which("ffprobe")
    if not path:
        raise FFmpegError("FFprobe not found. Install with: brew install ffmpeg")
    return path


def _run(cmd: list, timeout: int = TIMEOUT_SEC) -> subprocess.CompletedProcess:
    """Run an FFmpeg command with detailed error surfacing on failure."""
    logger.debug("Running: %s", " ".join(str(c) for c in cmd))
    try:
        return subprocess.run(cmd, capture_output=True, check=True, timeout=timeout)
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or b"")
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        # The last 500 chars usually hold the actual error
        stderr_tail = stderr.strip()[-500:]
        raise FFmpegError(f"FFmpeg failed (exit code {e.returncode}): {stderr_tail}") from e
    except subprocess.TimeoutExpired as e:
        raise FFmpegError(
            f"FFmpeg timed out after {timeout}s. Try shorter clips or a lower frame rate."
        ) from e


def _parse_frame_rate(rate: str, default: float = 30.0) -> float:
    """Parse an ffprobe rate such as 30000/1001. Unknown or zero rates ("0/0") give ``default``."""
    parts = str(rate).split("/")
    try:
        num = float(parts[0])
        den = float(parts[1]) if len(parts) == 2 else 1.0
    except ValueError:
        return default
    if num <= 0 or den <= 0:
        return default
    return num / den


def probe_video(video_path: str) -> dict:
    """Get video metadata: resolution, fps, duration, has_audio."""
    video_path = str(video_path)
    cmd = [
        get_ffprobe(),
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        video_path,
    ]
    result = _run(cmd, timeout=30)
    data = json.loads(result.stdout)

    video_stream = None
    has_audio = False
    for stream in data.get("streams", []):
        if stream["codec_type"] == "video" and video_stream is None:
            video_stream = stream
        if stream["codec_type"] == "audio":
            has_audio = True

    if not video_stream:
        raise ValueError(f"No video stream found in {video_path}")

    fps = _parse_frame_rate(video_stream.get("r_frame_rate", "30/1"))

    return {
        "width": int(video_stream["width"]),
        "height": int(video_stream["height"]),
        "fps": fps,
        "duration": float(data.get("format", {}).get("duration", 0)),
        "has_audio": has_audio,
        "codec": video_stream.get("codec_name", "unknown"),
    }


def load_clip(video_path: str, max_duration: float | None = None) -> VideoClip:
    """Preflight and probe a video file into a clip trimmed to ``max_duration``."""
    info = preflight(video_path, VIDEO_EXTENSIONS)
    meta = probe_video(info["path"])
    return VideoClip.for_file(info["path"], meta["duration"], max_duration)


def build_gif_commands(
    layout,
    clips: Sequence[VideoClip],
    gif_settings: GifSettings,
    dimensions,
    palette_path: str,
    output_path: str,
    ffmpeg: str = "ffmpeg",
) -> tuple[list[str], list[str]]:
    """Argument lists for both passes of the clip-to-GIF encode.

    Pass 1 renders the palette image; pass 2 encodes the GIF with it.
    Every clip is read from its trim start for the shared output duration.

    Raises:
        MissingDimensionsError, UnsupportedLayoutError: From the graph builder.
        ValueError: A clip has no file.
    """
    # Build both graphs first: layout errors surface before any transcoding
    palettegen = build_palettegen_graph(layout, clips, gif_settings.fps, dimensions, gif_settings)
    paletteuse = build_paletteuse_graph(layout, clips, gif_settings.fps, dimensions, gif_settings)

    missing = [i for i, clip in enumerate(clips) if not clip.has_file]
    if missing:
        raise ValueError(f"Clip slot(s) {missing} have no video file")

    duration = effective_duration(clips, gif_settings.max_duration)
    inputs: list[str] = []
    for clip in clips:
        inputs += ["-ss", fmt_number(clip.start_time), "-t", fmt_number(duration), "-i", str(clip.file)]

    pass1 = [
        ffmpeg, "-y", *inputs,
        "-filter_complex", palettegen,
        "-map", "[p]",
        str(palette_path),
    ]
    pass2 = [
        ffmpeg, "-y", *inputs,
        "-i", str(palette_path),
        "-filter_complex", paletteuse,
        "-loop", str(gif_settings.loop_count),
        str(output_path),
    ]
    return pass1, pass2


def render_clips_to_gif(
    layout,
    clips: Sequence[VideoClip],
    gif_settings: GifSettings | None = None,
    dimensions=(480, 480),
    output_path: str | None = None,
    timeout: int = TIMEOUT_SEC,
) -> bytes:
    """Run the two-pass encode and return the GIF bytes.

    Writes to ``output_path`` too when given.

    Raises:
        FFmpegError: FFmpeg missing or failing.
    """
    gif_settings = gif_settings or GifSettings()
    with tempfile.TemporaryDirectory(prefix="gifblur_") as tmp:
        palette = Path(tmp) / "palette.png"
        target = Path(output_path) if output_path else Path(tmp) / "out.gif"
        pass1, pass2 = build_gif_commands(layout, clips, gif_settings, dimensions, palette, target)
        pass1[0] = pass2[0] = get_ffmpeg()
        target.parent.mkdir(parents=True, exist_ok=True)
        _run(pass1, timeout=timeout)
        _run(pass2, timeout=timeout)
        if not target.exists() or target.stat().st_size == 0:
            raise FFmpegError("FFmpeg produced no GIF output")
        data = target.read_bytes()
    logger.info("Rendered %d clip(s) to GIF (%d bytes)", len(clips), len(data))
    return data
