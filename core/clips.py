"""
GIF Blur — Video Clip Trimming
Trim-window math for the clips fed into the video-to-GIF pipeline.

A clip's window is [start_time, end_time] inside [0, duration], at least
MIN_TRIM_WINDOW wide and at most the GIF's max duration. Dragging a handle
while the window is already at full length slides the whole window.
Trim setters clamp instead of raising.
"""

import math
from dataclasses import asdict, dataclass
from typing import Iterable

MIN_TRIM_WINDOW = 0.1
_EPS = 1e-9


@dataclass
class VideoClip:
    """One layout slot. ``file`` is None until a video is supplied."""
    file: str | None = None
    duration: float = 0.0
    start_time: float = 0.0
    end_time: float = 0.0
    position_x: float = 0.0
    position_y: float = 0.0
    scale: float = 1.0

    @classmethod
    def for_file(cls, file: str, duration: float, max_duration: float | None = None) -> "VideoClip":
        """New clip trimmed to its first ``max_duration`` seconds."""
        duration = max(0.0, float(duration))
        end = duration if max_duration is None else min(duration, max_duration)
        return cls(file=str(file), duration=duration, start_time=0.0, end_time=end)

    @property
    def has_file(self) -> bool:
        return self.file is not None

    @property
    def window(self) -> float:
        return self.end_time - self.start_time

    @property
    def has_adjustments(self) -> bool:
        return self.position_x != 0 or self.position_y != 0 or self.scale != 1

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, d):
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in d.items() if k in fields})


def _is_number(value) -> bool:
    try:
        return not math.isnan(float(value))
    except (TypeError, ValueError):
        return False


def _window_limits(duration: float, max_duration) -> tuple[float, float]:
    """(min_window, max_window) for a clip of this duration."""
    min_window = min(MIN_TRIM_WINDOW, duration)
    if _is_number(max_duration) and max_duration > 0:
        max_window = min(float(max_duration), duration)
    else:
        max_window = duration
    return min_window, max(min_window, max_window)


def _trimmable(clip: VideoClip, value) -> bool:
    return clip.has_file and clip.duration > 0 and _is_number(value)


def set_start_time(clip: VideoClip, new_start: float, max_duration: float) -> VideoClip:
    """Move the start handle. Mutates and returns ``clip``."""
    if not _trimmable(clip, new_start):
        return clip
    duration = clip.duration
    min_window, max_window = _window_limits(duration, max_duration)
    start = min(max(float(new_start), 0.0), duration)

    if clip.window >= max_window - _EPS:
        start = min(start, duration - max_window)
        end = start + max_window
    else:
        start = min(start, duration - min_window)
        end = max(clip.end_time, start + min_window)
        end = min(end, start + max_window, duration)

    clip.start_time, clip.end_time = start, end
    return clip


def set_end_time(clip: VideoClip, new_end: float, max_duration: float) -> VideoClip:
    """Move the end handle. Mutates and returns ``clip``."""
    if not _trimmable(clip, new_end):
        return clip
    duration = clip.duration
    min_window, max_window = _window_limits(duration, max_duration)
    end = min(max(float(new_end), 0.0), duration)

    if clip.window >= max_window - _EPS:
        end = max(end, max_window)
        start = end - max_window
    else:
        end = max(end, min_window)
        start = min(clip.start_time, end - min_window)
        start = max(start, end - max_window, 0.0)

    clip.start_time, clip.end_time = start, end
    return clip


def apply_max_duration(clip: VideoClip, max_duration: float) -> VideoClip:
    """Shrink a window that no longer fits a (lowered) max duration."""
    if not _trimmable(clip, max_duration) or max_duration <= 0:
        return clip
    if clip.window > max_duration:
        clip.end_time = min(clip.start_time + max_duration, clip.duration)
    return clip


def clamp_playhead(clip: VideoClip, time: float) -> float:
    """Keep a playback position inside the clip's trim window."""
    if not _is_number(time):
        return clip.start_time
    return max(clip.start_time, min(float(time), clip.end_time))


def effective_duration(clips: Iterable[VideoClip], max_duration: float) -> float:
    """Length of the rendered GIF: the shortest window, capped at max_duration."""
    windows = [min(max_duration, c.window) for c in clips if c.has_file]
    if not windows:
        return 0.0
    return max(0.0, min(windows))
