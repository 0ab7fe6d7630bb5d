#!/usr/bin/env python3
"""
GIF Blur — Masked GIF Blur & Clip-to-GIF Engine
CLI entry point. Also importable as a library.

Usage:
    python gifblur.py info input.gif
    python gifblur.py blur input.gif -o out.gif --type pixelated --intensity 8 --rect 40,40,20,20
    python gifblur.py blur input.gif -o out.gif --stroke "10,10 40,12 80,30" --brush 6
    python gifblur.py graph --layout "2x2 Grid" --width 480 --height 480 --fps 15
    python gifblur.py trim --duration 10 --end 3 --max 3 --set-start 8
    python gifblur.py make-gif a.mp4 b.mp4 --layout "Side by Side" -o out.gif
    python gifblur.py list-presets
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from core.clips import VideoClip, set_end_time, set_start_time
from core.export_models import (
    BlurSettings,
    BlurType,
    GifSettings,
    Layout,
    ScaleAlgorithm,
    list_presets,
)
from core.filter_graph import PALETTEGEN, VARIANTS, build_graph, get_layout
from core.session import EditingSession
from effects import list_blurs

__version__ = "0.1.0"


def _parse_numbers(text: str, count: int, label: str) -> list[float]:
    parts = [p for p in text.replace(" ", "").split(",") if p]
    if len(parts) != count:
        raise ValueError(f"{label} needs {count} comma-separated numbers, got '{text}'")
    values = [float(p) for p in parts]
    if any(v != v or v in (float("inf"), float("-inf")) for v in values):
        raise ValueError(f"NaN/Inf not allowed in {label}: '{text}'")
    return values


def _parse_points(text: str) -> list[tuple[float, float]]:
    """'x,y x,y ...' -> [(x, y), ...]"""
    return [tuple(_parse_numbers(p, 2, "point")) for p in text.split()]


def _blur_settings(args) -> BlurSettings:
    if args.preset:
        settings = BlurSettings.from_preset(args.preset)
    else:
        settings = BlurSettings()
    updates = {}
    if args.type:
        updates["blur_type"] = args.type
    if args.intensity is not None:
        updates["blur_intensity"] = args.intensity
    if args.brush is not None:
        updates["brush_size"] = args.brush
    if updates:
        settings = BlurSettings(**{**settings.model_dump(), **updates})
    return settings


def cmd_info(args):
    """Show GIF structure."""
    session = EditingSession()
    meta = session.load_gif(args.input)
    print(f"\n  {args.input}")
    print(f"  {'—' * 50}")
    print(f"    Size:      {meta.width}x{meta.height}")
    print(f"    Frames:    {meta.frame_count}")
    print(f"    Duration:  {meta.total_duration_ms / 1000:.2f}s")
    loop = "none" if meta.loop_count is None else ("infinite" if meta.loop_count == 0 else meta.loop_count)
    print(f"    Loop:      {loop}")
    if args.frames:
        for i, f in enumerate(meta.frames):
            left, top, width, height = f.region
            print(f"    #{i:<4d} region=({left},{top},{width}x{height}) "
                  f"disposal={f.disposal} delay={f.delay}ms")
    print()


def cmd_blur(args):
    """Blur masked areas of every frame and write a new GIF."""
    settings = _blur_settings(args)
    session = EditingSession(blur_settings=settings)
    target = (args.width, args.height) if args.width or args.height else None
    session.load_gif(args.input, target, resample=args.resample)

    for rect in args.rect or []:
        x, y, w, h = _parse_numbers(rect, 4, "rect")
        session.mask.fill_rect(x, y, w, h)
    for point in args.point or []:
        session.paint(tuple(_parse_numbers(point, 2, "point")))
    for stroke in args.stroke or []:
        session.stroke(_parse_points(stroke))

    if session.mask.is_empty():
        print("Mask is empty: add --rect, --point or --stroke.", file=sys.stderr)
        sys.exit(1)

    print(f"Mask covers {session.mask.coverage() * 100:.1f}% of the frame")
    session.commit(workers=args.workers)
    data = session.export()
    output = Path(args.output)
    output.write_bytes(data)
    print(f"Wrote {output} ({len(data) / 1024:.1f}KB, {session.frame_count} frames, "
          f"{settings.blur_type.value} x{settings.blur_intensity})")


def _clips_for_layout(layout, specs: list[str] | None) -> list[VideoClip]:
    count = get_layout(layout).clip_count if not specs else len(specs)
    clips = []
    for i in range(count):
        clip = VideoClip(file=f"input{i}")
        if specs:
            clip.position_x, clip.position_y, clip.scale = _parse_numbers(specs[i], 3, "clip")
        clips.append(clip)
    return clips


def cmd_graph(args):
    """Print a filter graph."""
    clips = _clips_for_layout(args.layout, args.clip)
    settings = GifSettings(fps=args.fps)
    print(build_graph(args.layout, clips, args.fps, (args.width, args.height),
                      variant=args.variant, gif_settings=settings if args.full else None))


def cmd_trim(args):
    """Run trim math on a clip and print the resulting window."""
    clip = VideoClip(file="clip", duration=args.duration, start_time=args.start,
                     end_time=args.end if args.end is not None else min(args.duration, args.max))
    if args.set_start is not None:
        set_start_time(clip, args.set_start, args.max)
    if args.set_end is not None:
        set_end_time(clip, args.set_end, args.max)
    print(json.dumps({
        "start_time": round(clip.start_time, 6),
        "end_time": round(clip.end_time, 6),
        "window": round(clip.window, 6),
    }))


def cmd_make_gif(args):
    """Render 1-4 video clips into a GIF with FFmpeg."""
    from core.video_io import load_clip, render_clips_to_gif

    settings = GifSettings.from_preset(args.preset) if args.preset else GifSettings()
    if args.fps:
        settings = GifSettings(**{**settings.model_dump(), "fps": args.fps})
    starts = args.start or []
    clips = []
    for i, path in enumerate(args.inputs):
        clip = load_clip(path, settings.max_duration)
        if i < len(starts):
            set_start_time(clip, starts[i], settings.max_duration)
        clips.append(clip)
        print(f"  clip {i}: {path} [{clip.start_time:.2f}s - {clip.end_time:.2f}s]")

    data = render_clips_to_gif(args.layout, clips, settings, (args.width, args.height),
                               output_path=args.output)
    print(f"Wrote {args.output} ({len(data) / 1024:.1f}KB)")


def cmd_list_presets(args):
    """List blur and GIF presets."""
    presets = list_presets()
    print(f"\n  Presets ({len(presets)} available)")
    print(f"  {'—' * 50}")
    for p in presets:
        print(f"    {p['name']:20s}  {p['kind']}")
    print()


def cmd_list_blurs(args):
    for b in list_blurs():
        print(f"    {b['name']:12s} — {b['description']}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="gifblur",
        description="GIF Blur — masked GIF blur and clip-to-GIF engine",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # info
    p = sub.add_parser("info", help="Show GIF structure")
    p.add_argument("input", help="Input GIF")
    p.add_argument("--frames", action="store_true", help="List every frame")

    # blur
    p = sub.add_parser("blur", help="Blur masked areas of every frame")
    p.add_argument("input", help="Input GIF")
    p.add_argument("-o", "--output", required=True, help="Output GIF")
    p.add_argument("--type", choices=[t.value for t in BlurType], help="Blur style")
    p.add_argument("--intensity", type=int, help="Blur intensity (0-100)")
    p.add_argument("--brush", type=int, help="Brush radius in pixels")
    p.add_argument("--preset", help="Blur preset name (see list-presets)")
    p.add_argument("--rect", action="append", help="Mask rectangle 'x,y,w,h' (repeatable)")
    p.add_argument("--point", action="append", help="Brush stamp 'x,y' (repeatable)")
    p.add_argument("--stroke", action="append", help="Brush stroke 'x,y x,y ...' (repeatable)")
    p.add_argument("--width", type=int, help="Edit at this width")
    p.add_argument("--height", type=int, help="Edit at this height")
    p.add_argument("--resample", choices=[s.value for s in ScaleAlgorithm], default="bilinear")
    p.add_argument("--workers", type=int, help="Blur worker threads")

    # graph
    p = sub.add_parser("graph", help="Print an FFmpeg filter graph")
    p.add_argument("--layout", choices=[l.value for l in Layout], default=Layout.SINGLE.value)
    p.add_argument("--width", type=int, default=480)
    p.add_argument("--height", type=int, default=480)
    p.add_argument("--fps", type=int, default=15)
    p.add_argument("--variant", choices=VARIANTS, default=PALETTEGEN)
    p.add_argument("--clip", action="append", help="Clip placement 'x,y,scale' (repeatable)")
    p.add_argument("--full", action="store_true", help="Emit all palette options")

    # trim
    p = sub.add_parser("trim", help="Run trim-window math")
    p.add_argument("--duration", type=float, required=True, help="Clip duration (s)")
    p.add_argument("--start", type=float, default=0.0)
    p.add_argument("--end", type=float)
    p.add_argument("--max", type=float, default=5.0, help="Max GIF duration (s)")
    p.add_argument("--set-start", type=float)
    p.add_argument("--set-end", type=float)

    # make-gif
    p = sub.add_parser("make-gif", help="Render video clips into a GIF (needs ffmpeg)")
    p.add_argument("inputs", nargs="+", help="Video files, one per layout cell")
    p.add_argument("-o", "--output", required=True, help="Output GIF")
    p.add_argument("--layout", choices=[l.value for l in Layout], default=Layout.SINGLE.value)
    p.add_argument("--width", type=int, default=480)
    p.add_argument("--height", type=int, default=480)
    p.add_argument("--fps", type=int)
    p.add_argument("--start", type=float, action="append", help="Trim start per clip (repeatable)")
    p.add_argument("--preset", help="GIF preset name")

    sub.add_parser("list-presets", help="List blur and GIF presets")
    sub.add_parser("list-blurs", help="List blur styles")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    commands = {
        "info": cmd_info,
        "blur": cmd_blur,
        "graph": cmd_graph,
        "trim": cmd_trim,
        "make-gif": cmd_make_gif,
        "list-presets": cmd_list_presets,
        "list-blurs": cmd_list_blurs,
    }

    if args.command in commands:
        try:
            commands[args.command](args)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
