"""
GIF Blur -- Settings Models

Pydantic models for blur editing and GIF output.
GIF options map 1:1 to the FFmpeg palettegen / paletteuse flags used by the
clip pipeline, and to the local palette budget used when re-encoding an
edited GIF.
"""

from __future__ import annotations

from enum import Enum

from PIL import Image
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class BlurType(str, Enum):
    """Masked blur style."""
    GAUSSIAN = "gaussian"    # Box average over a square neighbourhood
    PIXELATED = "pixelated"  # Top-left sample of each block
    MOSAIC = "mosaic"        # Average colour of each block


class Layout(str, Enum):
    """Clip arrangement for the video-to-GIF pipeline."""
    SINGLE = "Single"
    SIDE_BY_SIDE = "Side by Side"
    HORIZONTAL_TRIPTYCH = "Horizontal Triptych"
    VERTICAL_TRIPTYCH = "Vertical Triptych"
    GRID_2X2 = "2x2 Grid"


class GifDither(str, Enum):
    """GIF dithering algorithm for color reduction.

    Dithering approximates colors not in the palette by mixing nearby colors.
    """
    NONE = "none"                    # No dithering -- banding visible
    BAYER = "bayer"                  # Ordered dithering -- crosshatch pattern
    FLOYD_STEINBERG = "floyd_steinberg"  # Error diffusion -- smooth
    SIERRA2 = "sierra2"             # Error diffusion -- slightly different
    SIERRA2_4A = "sierra2_4a"       # Fast approximation of Sierra


class GifStatsMode(str, Enum):
    """How palettegen analyzes the video for optimal palette."""
    FULL = "full"      # Analyze entire video as one block
    DIFF = "diff"      # Favor pixels that change (better for motion)
    SINGLE = "single"  # Single-frame palette


class ScaleAlgorithm(str, Enum):
    """Resampling filter used when frames are scaled for editing."""
    NEAREST = "nearest"    # Hard edges, exact source colours
    BILINEAR = "bilinear"  # Default. Soft, fast.
    BICUBIC = "bicubic"
    LANCZOS = "lanczos"    # Sharpest, slight ringing
    BOX = "box"            # Area average, good for large downscales

    @property
    def pil_filter(self) -> Image.Resampling:
        return {
            ScaleAlgorithm.NEAREST: Image.Resampling.NEAREST,
            ScaleAlgorithm.BILINEAR: Image.Resampling.BILINEAR,
            ScaleAlgorithm.BICUBIC: Image.Resampling.BICUBIC,
            ScaleAlgorithm.LANCZOS: Image.Resampling.LANCZOS,
            ScaleAlgorithm.BOX: Image.Resampling.BOX,
        }[self]


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class BlurSettings(BaseModel):
    """Brush and blur parameters for one editing pass."""
    blur_type: BlurType = Field(
        default=BlurType.GAUSSIAN,
        description="Blur style applied inside the mask.",
    )
    blur_intensity: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Kernel strength. Radius / block size is intensity // 2. 0 = no-op.",
    )
    brush_size: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Brush radius in canvas pixels.",
    )

    @classmethod
    def from_preset(cls, name: str) -> "BlurSettings":
        """Create BlurSettings from a named built-in preset.

        Raises:
            KeyError: If preset name is not found.
        """
        if name not in BLUR_PRESETS:
            available = ", ".join(sorted(BLUR_PRESETS.keys()))
            raise KeyError(f"Unknown blur preset '{name}'. Available: {available}")
        return cls(**BLUR_PRESETS[name])


class GifSettings(BaseModel):
    """GIF output settings.

    Clip GIFs use a 2-pass FFmpeg pipeline:
        Pass 1 (palettegen): "...,fps={fps},palettegen=stats_mode={stats_mode}[p]"
        Pass 2 (paletteuse): "...,fps={fps}[x];[x][N:v]paletteuse=dither={dither}"
    Output flag: -loop {loop_count}

    Edited GIFs are re-encoded frame by frame; ``quality`` sets the palette
    budget for regions with more colours than a GIF palette holds.
    """
    max_duration: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Longest clip window in seconds.",
    )
    fps: int = Field(
        default=15,
        ge=1,
        le=50,
        description="GIF frame rate. 10-15 recommended to keep file size manageable.",
    )
    quality: int = Field(
        default=10,
        ge=1,
        le=30,
        description="1 = best. Values above 10 shrink the palette budget.",
    )
    max_colors: int = Field(
        default=256,
        ge=2,
        le=256,
        description="palettegen max_colors (2-256).",
    )
    dither: GifDither = Field(
        default=GifDither.BAYER,
        description="Dithering algorithm for paletteuse.",
    )
    bayer_scale: int | None = Field(
        default=None,
        ge=0,
        le=5,
        description="Bayer crosshatch scale (0-5). Only emitted when dither=bayer.",
    )
    stats_mode: GifStatsMode = Field(
        default=GifStatsMode.DIFF,
        description="Palette analysis mode. 'diff' favors moving content.",
    )
    loop_count: int = Field(
        default=0,
        ge=0,
        le=65535,
        description="GIF loop count. 0 = infinite loop.",
    )

    @property
    def palette_size(self) -> int:
        """Colours available to a quantized frame region. A transparent entry takes one."""
        if self.quality <= 10:
            return 256
        return max(16, 256 - (self.quality - 10) * 10)

    @classmethod
    def from_preset(cls, name: str) -> "GifSettings":
        """Create GifSettings from a named built-in preset.

        Raises:
            KeyError: If preset name is not found.
        """
        if name not in GIF_PRESETS:
            available = ", ".join(sorted(GIF_PRESETS.keys()))
            raise KeyError(f"Unknown GIF preset '{name}'. Available: {available}")
        return cls(**GIF_PRESETS[name])


# ---------------------------------------------------------------------------
# Built-in Presets
# ---------------------------------------------------------------------------

BLUR_PRESETS: dict[str, dict] = {
    # -- Soft --
    "soft_blur": {"blur_type": "gaussian", "blur_intensity": 10, "brush_size": 20},
    "heavy_blur": {"blur_type": "gaussian", "blur_intensity": 30, "brush_size": 40},

    # -- Censor --
    "censor_pixels": {"blur_type": "pixelated", "blur_intensity": 16, "brush_size": 30},
    "censor_mosaic": {"blur_type": "mosaic", "blur_intensity": 20, "brush_size": 30},
}

GIF_PRESETS: dict[str, dict] = {
    "gif_loop": {
        "fps": 15, "dither": "bayer", "stats_mode": "diff", "max_duration": 5.0,
    },
    "gif_smooth": {
        "fps": 20, "dither": "sierra2_4a", "stats_mode": "full", "max_duration": 4.0,
    },
    "gif_tiny": {
        "fps": 10, "dither": "bayer", "bayer_scale": 3, "max_colors": 128,
        "quality": 20, "max_duration": 3.0,
    },
}


def from_preset(name: str) -> BlurSettings | GifSettings:
    """Look a preset up in both tables.

    Raises:
        KeyError: If preset name is not found.
    """
    if name in BLUR_PRESETS:
        return BlurSettings.from_preset(name)
    if name in GIF_PRESETS:
        return GifSettings.from_preset(name)
    available = ", ".join(sorted([*BLUR_PRESETS, *GIF_PRESETS]))
    raise KeyError(f"Unknown preset '{name}'. Available: {available}")


def list_presets() -> list[dict[str, str]]:
    """List all available presets with their kind.

    Returns:
        List of dicts: [{"name": "censor_mosaic", "kind": "blur"}, ...]
    """
    result = []
    for name in sorted(BLUR_PRESETS):
        result.append({"name": name, "kind": "blur"})
    for name in sorted(GIF_PRESETS):
        result.append({"name": name, "kind": "gif"})
    return result
