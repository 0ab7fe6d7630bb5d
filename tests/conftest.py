"""
Conftest: shared fixtures for all GIF Blur test modules.

1. Synthetic GIF builders — frames written with the project's own encoder,
   so every region / disposal / delay combination can be produced exactly
2. Hand-built GIF byte streams — independent of the encoder
3. Real video generation — only for tests that need ffmpeg
"""

import os
import shutil
import subprocess
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.gif_codec import EncodedFrame, encode_gif
from core.gif_frames import index_pixels
from core.region import FrameRegion

TEST_VIDEO_PATH = os.path.join(os.path.dirname(__file__), "test_input.mp4")

RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)
CLEAR = (0, 0, 0, 0)

# 1x1 GIF89a, two-colour global table, single transparent pixel
TRANSPARENT_1X1_GIF = (
    b"GIF89a\x01\x00\x01\x00\x80\x00\x00"
    b"\x00\x00\x00\xff\xff\xff"
    b"!\xf9\x04\x01\x00\x00\x00\x00"
    b",\x00\x00\x00\x00\x01\x00\x01\x00\x00"
    b"\x02\x02D\x01\x00;"
)


# ---------------------------------------------------------------------------
# Frame builders
# ---------------------------------------------------------------------------

def solid(width, height, color):
    """(height, width, 4) patch filled with one RGBA colour."""
    patch = np.zeros((height, width, 4), dtype=np.uint8)
    patch[:, :] = color
    return patch


def pattern_frame(width, height, seed=0):
    """Deterministic RGBA frame with at most 200 distinct opaque colours."""
    y, x = np.mgrid[0:height, 0:width]
    v = (x * 7 + y * 13 + seed * 5) % 200
    frame = np.empty((height, width, 4), dtype=np.uint8)
    frame[:, :, 0] = v
    frame[:, :, 1] = 255 - v
    frame[:, :, 2] = (v * 3) % 256
    frame[:, :, 3] = 255
    return frame


def encoded(patch, region, disposal=0, delay_ms=100):
    """Index an RGBA patch exactly. Alpha 0 pixels become the transparent index."""
    indices, palette, transparent_index = index_pixels(patch, patch[:, :, 3] < 128)
    return EncodedFrame(
        indices=indices,
        palette=palette,
        region=region,
        delay_cs=delay_ms // 10,
        disposal=disposal,
        transparent_index=transparent_index,
    )


def make_gif(width, height, frames, loop_count=0):
    """frames: iterable of (patch, (left, top), disposal, delay_ms)."""
    out = []
    for patch, (left, top), disposal, delay_ms in frames:
        region = FrameRegion(left, top, patch.shape[1], patch.shape[0])
        out.append(encoded(patch, region, disposal, delay_ms))
    return encode_gif(width, height, out, loop_count=loop_count)


# ---------------------------------------------------------------------------
# GIF fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def background_disposal_gif():
    """10x10: red base, green 4x4 at (2,2) disposed to background, blue 2x2 at (6,6)."""
    return make_gif(10, 10, [
        (solid(10, 10, RED), (0, 0), 1, 100),
        (solid(4, 4, GREEN), (2, 2), 2, 100),
        (solid(2, 2, BLUE), (6, 6), 1, 100),
    ])


@pytest.fixture
def previous_disposal_gif():
    """10x10: red base, green 4x4 at (2,2) restored-to-previous, blue 2x2 at (6,6)."""
    return make_gif(10, 10, [
        (solid(10, 10, RED), (0, 0), 1, 100),
        (solid(4, 4, GREEN), (2, 2), 3, 100),
        (solid(2, 2, BLUE), (6, 6), 1, 100),
    ])


@pytest.fixture
def sparse_gif():
    """12x8 GIF whose later frames are small patches with transparent holes."""
    base = pattern_frame(12, 8)
    dot = solid(3, 3, GREEN)
    dot[1, 1] = CLEAR
    return make_gif(12, 8, [
        (base, (0, 0), 1, 80),
        (dot, (1, 1), 1, 120),
        (solid(4, 2, BLUE), (7, 5), 2, 40),
        (dot, (8, 0), 0, 60),
    ], loop_count=3)


@pytest.fixture
def five_frame_gif():
    """5-frame 100x100 animation, 100 ms per frame, full-canvas frames."""
    return make_gif(100, 100, [
        (pattern_frame(100, 100, seed=i), (0, 0), 1, 100) for i in range(5)
    ])


# ---------------------------------------------------------------------------
# Real video generation: ffmpeg integration tests
# ---------------------------------------------------------------------------

def _generate_test_video(path):
    """Generate a 1-second 160x120 H.264 MP4 with colour gradients."""
    w, h, fps = 160, 120, 24
    proc = subprocess.Popen(
        ["ffmpeg", "-y", "-f", "rawvideo", "-vcodec", "rawvideo",
         "-s", f"{w}x{h}", "-pix_fmt", "rgb24", "-r", str(fps),
         "-i", "-", "-c:v", "libx264", "-preset", "ultrafast",
         "-pix_fmt", "yuv420p", path],
        stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.PIPE
    )
    for i in range(fps):
        frame = np.zeros((h, w, 3), dtype=np.uint8)
        frame[:, :, 0] = int(255 * i / fps)
        frame[:, :, 1] = 128
        frame[:, :, 2] = 200
        proc.stdin.write(frame.tobytes())
    proc.stdin.close()
    proc.communicate()
    return proc.returncode == 0


@pytest.fixture(scope="session")
def test_video():
    """Path to a small real video. Skips when ffmpeg is unavailable."""
    if not shutil.which("ffmpeg") or not shutil.which("ffprobe"):
        pytest.skip("ffmpeg not installed")
    if not os.path.exists(TEST_VIDEO_PATH) or os.path.getsize(TEST_VIDEO_PATH) < 1000:
        if not _generate_test_video(TEST_VIDEO_PATH):
            pytest.skip("could not generate test video")
    return TEST_VIDEO_PATH
