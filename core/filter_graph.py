"""
GIF Blur — FFmpeg Filter-Graph Builder
Builds the -filter_complex strings for the two-pass clip-to-GIF pipeline.

Every layout is: one scale+crop cell per clip, a stack operator, then the
tail. The tail is either palette generation:
    ...,fps=15,palettegen=stats_mode=diff[p]
or palette use, with the palette as the input after the clips:
    ...,fps=15[x];[x][N:v]paletteuse=dither=bayer
"""

from dataclasses import dataclass
from typing import Sequence

from core.clips import VideoClip
from core.export_models import GifDither, GifSettings, Layout

PALETTEGEN = "palettegen"
PALETTEUSE = "paletteuse"
VARIANTS = (PALETTEGEN, PALETTEUSE)


class UnsupportedLayoutError(Exception):
    """Unknown layout, or a clip count the layout cannot hold."""
    pass


class MissingDimensionsError(Exception):
    """Output width or height is zero."""
    pass


@dataclass(frozen=True)
class LayoutSpec:
    name: str
    clip_count: int
    cols: int
    rows: int
    stack: str | None = None  # None = single cell, no stacking

    def cell_size(self, width: int, height: int) -> tuple[int, int]:
        return width // self.cols, height // self.rows


LAYOUTS: dict[str, LayoutSpec] = {
    Layout.SINGLE.value: LayoutSpec(Layout.SINGLE.value, 1, 1, 1),
    Layout.SIDE_BY_SIDE.value: LayoutSpec(Layout.SIDE_BY_SIDE.value, 2, 2, 1, "hstack"),
    Layout.HORIZONTAL_TRIPTYCH.value: LayoutSpec(Layout.HORIZONTAL_TRIPTYCH.value, 3, 3, 1, "hstack"),
    Layout.VERTICAL_TRIPTYCH.value: LayoutSpec(Layout.VERTICAL_TRIPTYCH.value, 3, 1, 3, "vstack"),
    Layout.GRID_2X2.value: LayoutSpec(Layout.GRID_2X2.value, 4, 2, 2, "xstack"),
}

XSTACK_2X2 = "0_0|w0_0|0_h0|w0_h0"


def get_layout(layout) -> LayoutSpec:
    """Resolve a Layout enum or layout name.

    Raises:
        UnsupportedLayoutError: If the name is unknown.
    """
    name = getattr(layout, "value", layout)
    if name not in LAYOUTS:
        available = ", ".join(LAYOUTS.keys())
        raise UnsupportedLayoutError(f"Unknown layout '{name}'. Available: {available}")
    return LAYOUTS[name]


def fmt_number(value) -> str:
    """Number formatting for filter arguments: 3 -> '3', 2.5 -> '2.5'."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.4f}".rstrip("0").rstrip(".")


def _dimensions(dimensions) -> tuple[int, int]:
    if isinstance(dimensions, dict):
        width, height = dimensions.get("width", 0), dimensions.get("height", 0)
    elif hasattr(dimensions, "width"):
        width, height = dimensions.width, dimensions.height
    else:
        width, height = dimensions
    width, height = int(width or 0), int(height or 0)
    if width <= 0 or height <= 0:
        raise MissingDimensionsError(f"Output dimensions must be non-zero, got {width}x{height}")
    return width, height


def cell_filter(index: int, clip: VideoClip, cell_w: int, cell_h: int,
                width: int, height: int) -> str:
    """Scale clip ``index`` to cover its cell, then crop the cell out.

    The crop is centred, shifted by the clip's position offset (given in
    output pixels, rescaled to the cell).
    """
    scale = clip.scale or 1
    # scaled size is at least the cell so the crop fits inside it
    scaled_w = max(cell_w, int(cell_w * scale))
    scaled_h = max(cell_h, int(cell_h * scale))
    shift_x = (clip.position_x or 0) * cell_w / width
    shift_y = (clip.position_y or 0) * cell_h / height
    offset_x = max(0, min(scaled_w - cell_w, int((scaled_w - cell_w) / 2 - shift_x)))
    offset_y = max(0, min(scaled_h - cell_h, int((scaled_h - cell_h) / 2 - shift_y)))
    return (
        f"[{index}:v]scale={scaled_w}:{scaled_h}:force_original_aspect_ratio=increase,"
        f"crop={cell_w}:{cell_h}:{offset_x}:{offset_y}[v{index}];"
    )


def _stack(spec: LayoutSpec) -> str:
    labels = "".join(f"[v{i}]" for i in range(spec.clip_count))
    if spec.stack == "xstack":
        return f"{labels}xstack=inputs={spec.clip_count}:layout={XSTACK_2X2}"
    return f"{labels}{spec.stack}=inputs={spec.clip_count}"


def _palettegen_tail(fps, settings: GifSettings | None) -> str:
    if settings is None:
        return f"fps={fmt_number(fps)},palettegen=stats_mode=diff[p]"
    options = []
    if settings.max_colors != 256:
        options.append(f"max_colors={settings.max_colors}")
    options.append(f"stats_mode={settings.stats_mode.value}")
    return f"fps={fmt_number(fps)},palettegen={':'.join(options)}[p]"


def _paletteuse_tail(fps, palette_input: int, settings: GifSettings | None) -> str:
    dither = settings.dither if settings is not None else GifDither.BAYER
    options = f"dither={dither.value}"
    if settings is not None and dither == GifDither.BAYER and settings.bayer_scale is not None:
        options += f":bayer_scale={settings.bayer_scale}"
    return f"fps={fmt_number(fps)}[x];[x][{palette_input}:v]paletteuse={options}"


def build_graph(layout, clips: Sequence[VideoClip], fps, dimensions, *,
                variant: str = PALETTEGEN, gif_settings: GifSettings | None = None) -> str:
    """Filter graph for one pass of the clip-to-GIF pipeline.

    Args:
        layout: Layout enum or name ("Single", "Side by Side", ...).
        clips: One clip per layout cell, in input order.
        fps: Output frame rate.
        dimensions: (width, height), a {"width", "height"} dict, or an
            object with width/height attributes.
        variant: "palettegen" (pass 1) or "paletteuse" (pass 2).
        gif_settings: Optional palette options. None keeps stats_mode=diff
            and dither=bayer.

    Raises:
        MissingDimensionsError: Width or height is zero (checked first).
        UnsupportedLayoutError: Unknown layout or wrong number of clips.
    """
    width, height = _dimensions(dimensions)
    spec = get_layout(layout)
    if variant not in VARIANTS:
        raise ValueError(f"variant must be one of {VARIANTS}, got '{variant}'")
    if len(clips) != spec.clip_count:
        raise UnsupportedLayoutError(
            f"Layout '{spec.name}' needs {spec.clip_count} clip(s), got {len(clips)}"
        )

    if variant == PALETTEGEN:
        tail = _palettegen_tail(fps, gif_settings)
    else:
        tail = _paletteuse_tail(fps, spec.clip_count, gif_settings)

    if spec.stack is None:
        clip = clips[0]
        if not clip.has_adjustments:
            return tail
        cell_w, cell_h = spec.cell_size(width, height)
        return cell_filter(0, clip, cell_w, cell_h, width, height) + "[v0]" + tail

    cell_w, cell_h = spec.cell_size(width, height)
    cells = "".join(
        cell_filter(i, clip, cell_w, cell_h, width, height) for i, clip in enumerate(clips)
    )
    return f"{cells}{_stack(spec)},{tail}"


def build_palettegen_graph(layout, clips, fps, dimensions, gif_settings=None) -> str:
    return build_graph(layout, clips, fps, dimensions, variant=PALETTEGEN, gif_settings=gif_settings)


def build_paletteuse_graph(layout, clips, fps, dimensions, gif_settings=None) -> str:
    return build_graph(layout, clips, fps, dimensions, variant=PALETTEUSE, gif_settings=gif_settings)
