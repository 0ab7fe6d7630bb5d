"""
GIF Blur — Video I/O Tests
Two-pass FFmpeg command construction, error surfacing, and a real
clip-to-GIF render when ffmpeg is installed.

Run with: pytest tests/test_video_io.py -v
"""

import json
import os
import shutil
import sys
from types import SimpleNamespace

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.clips import VideoClip
from core.export_models import GifSettings
from core.filter_graph import UnsupportedLayoutError
from core.gif_codec import decode_gif
from core.safety import SafetyError
from core.video_io import (
    FFmpegError,
    _parse_frame_rate,
    _run,
    build_gif_commands,
    get_ffmpeg,
    load_clip,
    probe_video,
    render_clips_to_gif,
)


def _clip(name, start=0.0, end=5.0, duration=10.0):
    return VideoClip(file=name, duration=duration, start_time=start, end_time=end)


class TestCommands:

    def test_two_pass_side_by_side(self):
        clips = [_clip("a.mp4", 1, 4), _clip("b.mp4", 0, 5)]
        settings = GifSettings(max_duration=5, loop_count=2)
        pass1, pass2 = build_gif_commands("Side by Side", clips, settings, (480, 240),
                                          "pal.png", "out.gif")
        inputs = ["-ss", "1", "-t", "3", "-i", "a.mp4", "-ss", "0", "-t", "3", "-i", "b.mp4"]
        assert pass1[:2] == ["ffmpeg", "-y"]
        assert pass1[2:14] == inputs
        assert pass1[14] == "-filter_complex"
        assert pass1[15].endswith("hstack=inputs=2,fps=15,palettegen=stats_mode=diff[p]")
        assert pass1[16:] == ["-map", "[p]", "pal.png"]

        assert pass2[2:14] == inputs
        assert pass2[14:16] == ["-i", "pal.png"]
        assert pass2[17].endswith("fps=15[x];[x][2:v]paletteuse=dither=bayer")
        assert pass2[-3:] == ["-loop", "2", "out.gif"]

    def test_fractional_times(self):
        clips = [_clip("a.mp4", 2.25, 4.75)]
        pass1, _ = build_gif_commands("Single", clips, GifSettings(), (320, 240), "p.png", "o.gif")
        assert pass1[2:8] == ["-ss", "2.25", "-t", "2.5", "-i", "a.mp4"]

    def test_window_capped_at_max_duration(self):
        clips = [_clip("a.mp4", 0, 8)]
        pass1, _ = build_gif_commands("Single", clips, GifSettings(max_duration=3), (320, 240),
                                      "p.png", "o.gif")
        assert pass1[4:6] == ["-t", "3"]

    def test_missing_file(self):
        clips = [_clip("a.mp4"), VideoClip()]
        with pytest.raises(ValueError, match="no video file"):
            build_gif_commands("Side by Side", clips, GifSettings(), (480, 240), "p.png", "o.gif")

    def test_layout_checked_before_files(self):
        with pytest.raises(UnsupportedLayoutError):
            build_gif_commands("2x2 Grid", [VideoClip()], GifSettings(), (480, 480), "p.png", "o.gif")


class TestErrors:

    def test_ffmpeg_not_found(self, monkeypatch):
        monkeypatch.setattr("core.video_io.shutil.which", lambda name: None)
        with pytest.raises(FFmpegError, match="not found"):
            get_ffmpeg()

    @pytest.mark.skipif(shutil.which("false") is None, reason="no 'false' binary")
    def test_failed_command(self):
        with pytest.raises(FFmpegError, match="exit code 1"):
            _run(["false"])

    def test_load_clip_rejects_extension(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        with pytest.raises(SafetyError):
            load_clip(str(path))

    def test_load_clip_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_clip(str(tmp_path / "missing.mp4"))


class TestProbe:

    @pytest.mark.parametrize("rate,fps", [
        ("30/1", 30.0), ("25", 25.0), ("0/0", 30.0), ("24/0", 30.0), ("n/a", 30.0),
    ])
    def test_frame_rate(self, rate, fps):
        assert _parse_frame_rate(rate) == fps

    def test_ntsc_rate(self):
        assert _parse_frame_rate("30000/1001") == pytest.approx(29.97, abs=0.01)

    def test_zero_frame_rate_stream(self, monkeypatch):
        streams = {
            "streams": [{"codec_type": "video", "width": 64, "height": 48, "r_frame_rate": "0/0"}],
            "format": {"duration": "2.5"},
        }
        monkeypatch.setattr("core.video_io.get_ffprobe", lambda: "ffprobe")
        monkeypatch.setattr("core.video_io._run",
                            lambda cmd, timeout=None: SimpleNamespace(stdout=json.dumps(streams)))
        meta = probe_video("clip.mp4")
        assert meta["fps"] == 30.0
        assert meta["duration"] == 2.5


class TestRender:

    def test_probe(self, test_video):
        meta = probe_video(test_video)
        assert (meta["width"], meta["height"]) == (160, 120)
        assert meta["duration"] == pytest.approx(1.0, abs=0.1)
        assert not meta["has_audio"]

    def test_load_clip(self, test_video):
        clip = load_clip(test_video, max_duration=0.5)
        assert clip.has_file
        assert clip.end_time == pytest.approx(0.5)

    def test_single_clip_gif(self, test_video, tmp_path):
        clip = load_clip(test_video, max_duration=5)
        out = tmp_path / "out.gif"
        data = render_clips_to_gif("Single", [clip], GifSettings(fps=10), (160, 120),
                                   output_path=str(out))
        assert data[:6] == b"GIF89a"
        assert out.read_bytes() == data
        gif = decode_gif(data)
        assert (gif.width, gif.height) == (160, 120)
        assert len(gif.frames) >= 5

    def test_grid_gif(self, test_video):
        clips = [load_clip(test_video, max_duration=0.5) for _ in range(4)]
        data = render_clips_to_gif("2x2 Grid", clips, GifSettings(fps=8), (160, 120))
        gif = decode_gif(data)
        assert (gif.width, gif.height) == (160, 120)
