"""
GIF Blur — Editing Session Tests
Load, paint, preview, commit, clear, bake and export on one session.

Run with: pytest tests/test_session.py -v
"""

import asyncio
import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.export_models import BlurSettings, GifSettings
from core.gif_frames import extract_gif_frames
from core.session import EditingSession, preview_blur


@pytest.fixture
def session(five_frame_gif):
    s = EditingSession(blur_settings=BlurSettings(blur_type="pixelated", blur_intensity=8,
                                                  brush_size=6))
    s.load_gif(five_frame_gif)
    return s


class TestLoad:

    def test_load(self, session):
        assert session.is_loaded
        assert session.frame_count == 5
        assert session.frame_size == (100, 100)
        assert session.mask.shape == (100, 100)
        assert session.metadata.frame_count == 5

    def test_load_scaled(self, five_frame_gif):
        s = EditingSession()
        s.load_gif(five_frame_gif, (50, 40))
        assert s.frame_size == (50, 40)
        assert s.show_frame(0).shape == (40, 50, 4)

    def test_reload_resets_state(self, session, background_disposal_gif):
        session.paint((50, 50))
        session.show_frame(3)
        session.load_gif(background_disposal_gif)
        assert session.mask.is_empty()
        assert session.current_index == 0
        assert session.frame_size == (10, 10)

    def test_not_loaded(self):
        s = EditingSession()
        assert not s.is_loaded
        assert s.preview() is None
        with pytest.raises(RuntimeError):
            s.show_frame(0)
        with pytest.raises(RuntimeError):
            s.export()


class TestFrames:

    def test_show_frame(self, session):
        frame = session.show_frame(2)
        assert session.current_index == 2
        assert frame.shape == (100, 100, 4)

    @pytest.mark.parametrize("index", [-1, 5])
    def test_show_frame_out_of_range(self, session, index):
        with pytest.raises(IndexError):
            session.show_frame(index)


class TestEditing:

    def test_paint_uses_brush_size(self, session):
        session.paint((50, 50))
        assert session.mask.contains(56, 50)
        assert not session.mask.contains(58, 50)

    def test_paint_explicit_size(self, session):
        session.paint((50, 50), 2)
        assert not session.mask.contains(54, 50)

    def test_stroke(self, session):
        session.stroke([(10, 10), (60, 10)])
        assert session.mask.contains(35, 10)

    def test_preview_leaves_frames_alone(self, session):
        session.mask.fill_rect(40, 40, 20, 20)
        session.show_frame(1)
        before = [f.copy() for f in session.frames]
        preview = session.preview()
        assert not np.array_equal(preview, session.originals[1])
        for a, b in zip(session.frames, before):
            assert np.array_equal(a, b)

    def test_preview_blur_helper(self, session):
        session.mask.fill_rect(0, 0, 10, 10)
        original = session.originals[0].copy()
        out = preview_blur(session.originals[0], session.mask, session.blur_settings)
        assert np.array_equal(session.originals[0], original)
        assert out.shape == original.shape

    def test_commit_applies_to_all_frames(self, session):
        session.mask.fill_rect(40, 40, 20, 20)
        frames = session.commit()
        assert len(frames) == 5
        for original, edited in zip(session.originals, frames):
            assert not np.array_equal(original[40:60, 40:60], edited[40:60, 40:60])
            assert np.array_equal(original[0:20, 0:20], edited[0:20, 0:20])

    def test_commit_does_not_compound(self, session):
        session.mask.fill_rect(40, 40, 20, 20)
        first = [f.copy() for f in session.commit(BlurSettings(blur_type="gaussian", blur_intensity=6))]
        second = session.commit()
        for a, b in zip(first, second):
            assert np.array_equal(a, b)

    def test_commit_async(self, session):
        session.mask.fill_rect(40, 40, 20, 20)
        frames = asyncio.run(session.commit_async())
        assert len(frames) == 5
        assert session.frames is frames

    def test_clear_mask_drops_edits(self, session):
        session.mask.fill_rect(40, 40, 20, 20)
        session.commit()
        session.clear_mask()
        assert session.mask.is_empty()
        for a, b in zip(session.frames, session.originals):
            assert np.array_equal(a, b)

    def test_bake_layers_passes(self, session):
        session.mask.fill_rect(0, 0, 50, 50)
        session.commit()
        session.bake()
        assert session.mask.is_empty()
        baked = [f.copy() for f in session.originals]
        session.mask.fill_rect(50, 50, 50, 50)
        session.commit()
        for b, edited in zip(baked, session.frames):
            # first pass survives in the top-left quadrant
            assert np.array_equal(b[0:50, 0:50], edited[0:50, 0:50])


class TestExport:

    def test_export_round_trip(self, session):
        session.mask.fill_rect(40, 40, 20, 20)
        session.commit()
        data = session.export()
        frames, meta = extract_gif_frames(data)
        assert meta.frame_count == 5
        assert [f.delay for f in meta.frames] == [100] * 5
        for got, want in zip(frames, session.frames):
            assert np.array_equal(got, want)

    def test_export_async(self, session):
        data = asyncio.run(session.export_async())
        assert data[:6] == b"GIF89a"

    def test_scaled_edit_exports_at_source_size(self, five_frame_gif):
        s = EditingSession(gif_settings=GifSettings(loop_count=4))
        s.load_gif(five_frame_gif, (50, 50))
        s.mask.fill_rect(10, 10, 20, 20)
        s.commit()
        frames, meta = extract_gif_frames(s.export())
        assert frames[0].shape == (100, 100, 4)
        # source loop count wins over settings
        assert meta.loop_count == 0
