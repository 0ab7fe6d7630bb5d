#!/usr/bin/env python3
"""
GIF Blur — FastAPI Backend
JSON / multipart API over the editing session and the clip-to-GIF tools.
Upload a GIF, paint mask strokes, preview, commit, download the result.
"""

import asyncio
import base64
import logging
from io import BytesIO

import numpy as np
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from PIL import Image
from pydantic import BaseModel, Field

from core.batch import DimensionMismatchError
from core.cancel import OperationCancelled
from core.clips import VideoClip, apply_max_duration, set_end_time, set_start_time
from core.export_models import BlurSettings, GifSettings, Layout, ScaleAlgorithm, list_presets
from core.filter_graph import (
    MissingDimensionsError,
    UnsupportedLayoutError,
    build_palettegen_graph,
    build_paletteuse_graph,
)
from core.gif_codec import DecodeError
from core.gif_frames import ReconstructionError
from core.safety import SafetyError, preflight_bytes
from core.session import EditingSession
from effects import list_blurs

logger = logging.getLogger(__name__)

app = FastAPI(title="GIF Blur")

# One editing session per server process
_session = EditingSession()
_session_lock = asyncio.Lock()

MAX_PREVIEW_DIMENSION = 1024  # Cap preview size to limit data URL bloat


# ============ ERRORS ============

ERROR_RECOVERY = {
    "no_gif": {"code": "NO_GIF", "hint": "Upload a GIF first.", "action": "upload"},
    "decode_failed": {"code": "DECODE_FAILED", "hint": "The file is not a readable GIF. Try re-exporting it.", "action": "upload"},
    "file_too_large": {"code": "FILE_TOO_LARGE", "hint": "Try a smaller or shorter GIF.", "action": None},
    "invalid_frame": {"code": "INVALID_FRAME", "hint": "Frame index out of range.", "action": None},
    "dimension_mismatch": {"code": "DIMENSION_MISMATCH", "hint": "Clear the mask and paint again.", "action": "clear"},
    "reconstruct_failed": {"code": "RECONSTRUCT_FAILED", "hint": "Reload the GIF and repeat the edit.", "action": "upload"},
    "cancelled": {"code": "CANCELLED", "hint": "The operation was cancelled.", "action": "retry"},
    "unsupported_layout": {"code": "UNSUPPORTED_LAYOUT", "hint": "Use one clip per layout cell.", "action": None},
    "missing_dimensions": {"code": "MISSING_DIMENSIONS", "hint": "Set a non-zero output width and height.", "action": None},
    "processing_failed": {"code": "PROCESSING_FAILED", "hint": "Try a lower intensity or a smaller brush.", "action": "retry"},
}


def _error_detail(key: str, message: str) -> dict:
    """Build structured error detail dict for the client."""
    recovery = ERROR_RECOVERY.get(key, {})
    return {
        "detail": message,
        "code": recovery.get("code", "UNKNOWN"),
        "hint": recovery.get("hint", ""),
        "action": recovery.get("action"),
    }


def _http_error(e: Exception) -> HTTPException:
    """Map a core exception onto an HTTP error with recovery hints."""
    if isinstance(e, SafetyError):
        return HTTPException(status_code=413, detail=_error_detail("file_too_large", str(e)))
    if isinstance(e, DecodeError):
        return HTTPException(status_code=400, detail=_error_detail("decode_failed", str(e)))
    if isinstance(e, DimensionMismatchError):
        return HTTPException(status_code=409, detail=_error_detail("dimension_mismatch", str(e)))
    if isinstance(e, ReconstructionError):
        return HTTPException(status_code=409, detail=_error_detail("reconstruct_failed", str(e)))
    if isinstance(e, OperationCancelled):
        return HTTPException(status_code=409, detail=_error_detail("cancelled", str(e)))
    if isinstance(e, UnsupportedLayoutError):
        return HTTPException(status_code=422, detail=_error_detail("unsupported_layout", str(e)))
    if isinstance(e, MissingDimensionsError):
        return HTTPException(status_code=422, detail=_error_detail("missing_dimensions", str(e)))
    logger.exception("Unexpected processing error")
    return HTTPException(status_code=500, detail=_error_detail("processing_failed", str(e)))


def _require_gif():
    if not _session.is_loaded:
        raise HTTPException(status_code=400, detail=_error_detail("no_gif", "No GIF loaded"))


def _frame_to_data_url(frame: np.ndarray) -> str:
    """Convert an RGBA frame to a PNG data URL. Large frames are downscaled."""
    img = Image.fromarray(np.ascontiguousarray(frame))
    w, h = img.size
    if max(w, h) > MAX_PREVIEW_DIMENSION:
        ratio = MAX_PREVIEW_DIMENSION / max(w, h)
        img = img.resize((max(1, int(w * ratio)), max(1, int(h * ratio))), Image.Resampling.LANCZOS)
    buf = BytesIO()
    img.save(buf, format="PNG", optimize=True)
    b64 = base64.b64encode(buf.getvalue()).decode()
    return f"data:image/png;base64,{b64}"


# ============ REQUEST MODELS ============

class PaintRequest(BaseModel):
    points: list[tuple[float, float]] = Field(min_length=1)
    brush_size: float | None = Field(default=None, gt=0, le=500)


class PreviewRequest(BaseModel):
    blur: BlurSettings | None = None


class CommitRequest(BaseModel):
    blur: BlurSettings | None = None


class ClipModel(BaseModel):
    file: str | None = None
    duration: float = 0.0
    start_time: float = 0.0
    end_time: float = 0.0
    position_x: float = 0.0
    position_y: float = 0.0
    scale: float = 1.0


class TrimRequest(BaseModel):
    clip: ClipModel
    max_duration: float = Field(default=5.0, gt=0)
    start_time: float | None = None
    end_time: float | None = None


class FilterGraphRequest(BaseModel):
    layout: Layout
    clips: list[ClipModel]
    width: int = 480
    height: int = 480
    gif: GifSettings | None = None


# ============ INFO ============

@app.get("/api/health")
async def health_check():
    return {"status": "ok"}


@app.get("/api/blurs")
async def get_blurs():
    """List blur styles."""
    return {"blurs": list_blurs()}


@app.get("/api/presets")
async def get_presets():
    """List blur and GIF presets."""
    return {"presets": list_presets()}


# ============ GIF EDITING ============

@app.post("/api/gif/upload")
async def upload_gif(
    file: UploadFile = File(...),
    width: int | None = Form(None, ge=1),
    height: int | None = Form(None, ge=1),
    resample: ScaleAlgorithm = Form(ScaleAlgorithm.BILINEAR),
):
    """Upload a GIF and start a new edit on it."""
    data = await file.read()
    target = (width, height) if width or height else None
    async with _session_lock:
        try:
            preflight_bytes(data)
            metadata = await asyncio.to_thread(_session.load_gif, data, target, resample=resample)
        except Exception as e:
            raise _http_error(e)
        w, h = _session.frame_size
        return {
            "status": "ok",
            "frame_count": _session.frame_count,
            "width": w,
            "height": h,
            "metadata": metadata.to_dict(),
            "frame": _frame_to_data_url(_session.show_frame(0)),
        }


@app.post("/api/gif/frame/{index}")
async def show_frame(index: int):
    """Select a frame and return it."""
    async with _session_lock:
        _require_gif()
        try:
            frame = _session.show_frame(index)
        except IndexError as e:
            raise HTTPException(status_code=400, detail=_error_detail("invalid_frame", str(e)))
        return {"index": index, "frame": _frame_to_data_url(frame)}


@app.post("/api/gif/paint")
async def paint(req: PaintRequest):
    """Add brush stamps / a stroke to the mask (canvas pixel coordinates)."""
    async with _session_lock:
        _require_gif()
        if len(req.points) == 1:
            _session.paint(req.points[0], req.brush_size)
        else:
            _session.stroke(req.points, req.brush_size)
        return {"status": "ok", "coverage": _session.mask.coverage()}


@app.post("/api/gif/preview")
async def preview(req: PreviewRequest | None = None):
    """Masked blur of the current frame, without committing."""
    async with _session_lock:
        _require_gif()
        settings = req.blur if req is not None else None
        try:
            frame = await asyncio.to_thread(_session.preview, settings)
        except Exception as e:
            raise _http_error(e)
        return {"index": _session.current_index, "frame": _frame_to_data_url(frame)}


@app.post("/api/gif/commit")
async def commit(req: CommitRequest | None = None):
    """Apply the mask to every frame."""
    async with _session_lock:
        _require_gif()
        try:
            await _session.commit_async(req.blur if req is not None else None)
        except Exception as e:
            raise _http_error(e)
        return {
            "status": "ok",
            "frame_count": _session.frame_count,
            "frame": _frame_to_data_url(_session.show_frame(_session.current_index)),
        }


@app.post("/api/gif/clear")
async def clear():
    """Clear the mask and drop uncommitted edits."""
    async with _session_lock:
        _session.clear_mask()
        return {"status": "ok"}


@app.post("/api/gif/bake")
async def bake():
    """Keep the current edit and start a new pass on top of it."""
    async with _session_lock:
        _require_gif()
        _session.bake()
        return {"status": "ok"}


@app.get("/api/gif/export")
async def export_gif():
    """Download the edited GIF."""
    async with _session_lock:
        _require_gif()
        try:
            data = await _session.export_async()
        except Exception as e:
            raise _http_error(e)
        return Response(
            content=data,
            media_type="image/gif",
            headers={"Content-Disposition": 'attachment; filename="blurred.gif"'},
        )


# ============ CLIPS ============

@app.post("/api/clips/trim")
async def trim_clip(req: TrimRequest):
    """Apply trim-handle moves to a clip and return the clamped window."""
    clip = VideoClip(**req.clip.model_dump())
    apply_max_duration(clip, req.max_duration)
    if req.start_time is not None:
        set_start_time(clip, req.start_time, req.max_duration)
    if req.end_time is not None:
        set_end_time(clip, req.end_time, req.max_duration)
    return clip.to_dict()


@app.post("/api/filter-graph")
async def filter_graph(req: FilterGraphRequest):
    """Both filter graphs for the two-pass clip-to-GIF encode."""
    clips = [VideoClip(**c.model_dump()) for c in req.clips]
    settings = req.gif or GifSettings()
    dims = (req.width, req.height)
    try:
        palettegen = build_palettegen_graph(req.layout, clips, settings.fps, dims, req.gif)
        paletteuse = build_paletteuse_graph(req.layout, clips, settings.fps, dims, req.gif)
    except (UnsupportedLayoutError, MissingDimensionsError) as e:
        raise _http_error(e)
    return {"palettegen": palettegen, "paletteuse": paletteuse}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=7860)
