"""
GIF Blur — Compositing Tests
Disposal methods 0-3 and off-canvas frame regions.

Run with: pytest tests/test_compositing.py -v
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.compositing import CanvasAccumulator, composite_frames
from core.gif_codec import decode_gif
from core.region import FrameRegion
from conftest import BLUE, GREEN, RED, solid


def _region_is(frame, left, top, width, height, color):
    return (frame[top:top + height, left:left + width] == color).all()


class TestDisposal:

    def test_background_clears_previous_region(self, background_disposal_gif):
        gif = decode_gif(background_disposal_gif)
        third = list(composite_frames(gif.frames, gif.width, gif.height))[2]
        assert _region_is(third, 6, 6, 2, 2, BLUE)
        # green 4x4 at (2,2) was cleared to transparent
        assert (third[2:6, 2:6, 3] == 0).all()
        assert _region_is(third, 0, 0, 10, 2, RED)
        assert _region_is(third, 8, 0, 2, 10, RED)

    def test_previous_restores_snapshot(self, previous_disposal_gif):
        gif = decode_gif(previous_disposal_gif)
        frames = list(composite_frames(gif.frames, gif.width, gif.height))
        assert _region_is(frames[1], 2, 2, 4, 4, GREEN)
        third = frames[2]
        expected = solid(10, 10, RED)
        expected[6:8, 6:8] = BLUE
        assert np.array_equal(third, expected)

    @pytest.mark.parametrize("disposal", [0, 1])
    def test_keep_leaves_canvas(self, disposal):
        acc = CanvasAccumulator(6, 6)
        acc.step(solid(6, 6, RED), FrameRegion(0, 0, 6, 6), 1)
        acc.step(solid(2, 2, GREEN), FrameRegion(1, 1, 2, 2), disposal)
        out = acc.step(solid(2, 2, BLUE), FrameRegion(4, 4, 2, 2), 1)
        assert _region_is(out, 1, 1, 2, 2, GREEN)
        assert _region_is(out, 4, 4, 2, 2, BLUE)
        assert _region_is(out, 0, 0, 6, 1, RED)

    def test_previous_after_background(self):
        acc = CanvasAccumulator(4, 4)
        acc.step(solid(4, 4, RED), FrameRegion(0, 0, 4, 4), 2)
        # canvas cleared, then snapshot of the cleared canvas is taken
        acc.step(solid(2, 2, GREEN), FrameRegion(0, 0, 2, 2), 3)
        out = acc.step(solid(1, 1, BLUE), FrameRegion(3, 3, 1, 1), 1)
        assert (out[:2, :2, 3] == 0).all()
        assert _region_is(out, 3, 3, 1, 1, BLUE)

    def test_consecutive_previous(self):
        acc = CanvasAccumulator(4, 4)
        acc.step(solid(4, 4, RED), FrameRegion(0, 0, 4, 4), 1)
        acc.step(solid(1, 1, GREEN), FrameRegion(0, 0, 1, 1), 3)
        second = acc.step(solid(1, 1, BLUE), FrameRegion(1, 0, 1, 1), 3)
        # green was undone before blue was drawn
        assert _region_is(second, 0, 0, 1, 1, RED)
        assert _region_is(second, 1, 0, 1, 1, BLUE)
        last = acc.step(solid(1, 1, GREEN), FrameRegion(3, 3, 1, 1), 1)
        assert _region_is(last, 0, 0, 4, 3, RED)
        assert _region_is(last, 3, 3, 1, 1, GREEN)


class TestTransparency:

    def test_transparent_pixels_keep_canvas(self):
        acc = CanvasAccumulator(3, 3)
        acc.step(solid(3, 3, RED), FrameRegion(0, 0, 3, 3), 1)
        patch = solid(3, 3, GREEN)
        patch[1, 1] = (0, 0, 0, 0)
        out = acc.step(patch, FrameRegion(0, 0, 3, 3), 1)
        assert tuple(out[1, 1]) == RED
        assert tuple(out[0, 0]) == GREEN

    def test_starts_transparent(self):
        acc = CanvasAccumulator(3, 2)
        out = acc.step(solid(1, 1, RED), FrameRegion(0, 0, 1, 1), 0)
        assert out.shape == (2, 3, 4)
        assert out[1, 2, 3] == 0


class TestBounds:

    def test_region_past_canvas_is_clipped(self):
        acc = CanvasAccumulator(4, 4)
        out = acc.step(solid(4, 4, BLUE), FrameRegion(2, 2, 4, 4), 2)
        assert _region_is(out, 2, 2, 2, 2, BLUE)
        assert (out[:2, :, 3] == 0).all()
        # disposing an overhanging region must not fail either
        out = acc.step(solid(1, 1, RED), FrameRegion(0, 0, 1, 1), 1)
        assert (out[2:, 2:, 3] == 0).all()

    def test_region_fully_outside(self):
        acc = CanvasAccumulator(4, 4)
        out = acc.step(solid(2, 2, BLUE), FrameRegion(10, 10, 2, 2), 1)
        assert (out == 0).all()

    def test_empty_patch_is_skipped(self):
        acc = CanvasAccumulator(2, 2)
        acc.step(solid(2, 2, RED), FrameRegion(0, 0, 2, 2), 1)
        out = acc.step(np.zeros((0, 0, 4), dtype=np.uint8), FrameRegion(0, 0, 2, 2), 1)
        assert (out == RED).all()


class TestProtocol:

    def test_end_without_begin(self):
        with pytest.raises(RuntimeError):
            CanvasAccumulator(2, 2).end_frame()

    def test_begin_returns_predraw_canvas(self):
        acc = CanvasAccumulator(2, 2)
        acc.step(solid(2, 2, RED), FrameRegion(0, 0, 2, 2), 2)
        before = acc.begin_frame(FrameRegion(0, 0, 1, 1), 1).copy()
        assert (before[:, :, 3] == 0).all()
        acc.draw(solid(1, 1, GREEN), FrameRegion(0, 0, 1, 1))
        out = acc.end_frame()
        assert tuple(out[0, 0]) == GREEN

    def test_step_returns_copies(self):
        acc = CanvasAccumulator(2, 2)
        first = acc.step(solid(2, 2, RED), FrameRegion(0, 0, 2, 2), 1)
        acc.step(solid(2, 2, BLUE), FrameRegion(0, 0, 2, 2), 1)
        assert (first == RED).all()
