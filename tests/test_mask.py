"""
GIF Blur — Mask Canvas Tests
Brush stamps, strokes, rectangles and pointer mapping.

Run with: pytest tests/test_mask.py -v
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.mask import MaskCanvas, map_pointer


class TestMapPointer:

    def test_identity_when_unscaled(self):
        assert map_pointer(30, 40, (0, 0, 100, 100), (100, 100)) == (30, 40)

    def test_scaled_display(self):
        # 200x100 canvas shown at 100x50, offset by (10, 20)
        assert map_pointer(60, 45, (10, 20, 100, 50), (200, 100)) == (100, 50)

    def test_zero_display_size(self):
        assert map_pointer(15, 25, (5, 5, 0, 0), (100, 100)) == (10, 20)


class TestPaint:

    def test_circle_stamp(self):
        mask = MaskCanvas(50, 50)
        mask.paint((25, 25), 5)
        assert mask.contains(25, 25)
        assert mask.contains(30, 25)
        assert mask.contains(25, 20)
        assert not mask.contains(31, 25)
        assert not mask.contains(30, 30)  # outside the circle, inside its box
        assert mask.data[25, 25] == 255

    def test_zero_radius_marks_one_pixel(self):
        mask = MaskCanvas(10, 10)
        mask.paint((3, 4), 0)
        assert np.count_nonzero(mask.data) == 1
        assert mask.contains(3, 4)

    def test_fractional_point_rounds(self):
        mask = MaskCanvas(10, 10)
        mask.paint((3.6, 4.4), 0)
        assert mask.contains(4, 4)

    def test_clipped_at_edges(self):
        mask = MaskCanvas(10, 10)
        mask.paint((0, 0), 3)
        assert mask.contains(0, 0)
        assert mask.data.shape == (10, 10)

    def test_unbound_canvas_ignores_paint(self):
        mask = MaskCanvas()
        assert not mask.active
        mask.paint((1, 1), 5)
        mask.stroke([(0, 0), (5, 5)], 2)
        mask.fill_rect(0, 0, 3, 3)
        assert mask.is_empty()
        assert mask.coverage() == 0.0


class TestStroke:

    def test_joins_points(self):
        mask = MaskCanvas(100, 20)
        mask.stroke([(10, 10), (90, 10)], 2)
        for x in range(10, 91, 5):
            assert mask.contains(x, 10)
            assert mask.contains(x, 8)
        assert not mask.contains(50, 14)

    def test_single_point_stroke(self):
        a = MaskCanvas(20, 20)
        b = MaskCanvas(20, 20)
        a.stroke([(10, 10)], 3)
        b.paint((10, 10), 3)
        assert np.array_equal(a.data, b.data)

    def test_values_are_binary(self):
        mask = MaskCanvas(40, 40)
        mask.stroke([(5, 5), (30, 20), (10, 35)], 4)
        assert set(np.unique(mask.data)) <= {0, 255}


class TestRectAndState:

    def test_fill_rect_clipped(self):
        mask = MaskCanvas(10, 10)
        mask.fill_rect(8, 8, 5, 5)
        assert np.count_nonzero(mask.data) == 4

    def test_fill_rect_outside(self):
        mask = MaskCanvas(10, 10)
        mask.fill_rect(20, 20, 5, 5)
        assert mask.is_empty()

    def test_coverage(self):
        mask = MaskCanvas(10, 10)
        mask.fill_rect(0, 0, 5, 2)
        assert mask.coverage() == pytest.approx(0.1)

    def test_resize_clears(self):
        mask = MaskCanvas(10, 10)
        mask.fill_rect(0, 0, 5, 5)
        mask.resize(20, 8)
        assert mask.shape == (8, 20)
        assert mask.is_empty()

    def test_clear(self):
        mask = MaskCanvas(10, 10)
        mask.paint((5, 5), 3)
        mask.clear()
        assert mask.is_empty()
        assert mask.shape == (10, 10)

    def test_copy_is_independent(self):
        mask = MaskCanvas(10, 10)
        other = mask.copy()
        other.fill_rect(0, 0, 2, 2)
        assert mask.is_empty()
        assert not other.is_empty()

    def test_from_array_rgba(self):
        rgba = np.zeros((4, 6, 4), dtype=np.uint8)
        rgba[1, 2, 3] = 7
        mask = MaskCanvas.from_array(rgba)
        assert (mask.width, mask.height) == (6, 4)
        assert mask.data[1, 2] == 255
        assert np.count_nonzero(mask.data) == 1

    def test_contains_out_of_bounds(self):
        mask = MaskCanvas(4, 4)
        mask.fill_rect(0, 0, 4, 4)
        assert not mask.contains(-1, 0)
        assert not mask.contains(4, 0)
