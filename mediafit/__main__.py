"""
Command-line entry point: ``mediafit <command> ...`` or ``python -m mediafit``.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from . import __version__
from .compositor import Compositor
from .config import LoggingConfig, load_config, set_config
from .effects import build_default_registry
from .errors import MediaFitError
from .filters import parse_clip_options
from .jobs import JobProgress, TranscodeJob
from .models import EffectType


def setup_logging(logging_config: LoggingConfig, level: Optional[str] = None) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if logging_config.file:
        handlers.append(logging.FileHandler(logging_config.file))
    logging.basicConfig(
        level=getattr(logging, (level or logging_config.level).upper(), logging.INFO),
        format=logging_config.format,
        handlers=handlers,
        force=True,
    )


def _print_progress(progress: JobProgress) -> None:
    if progress.stage:
        print(f"\r{progress.stage}: {progress.fraction * 100:5.1f}%", end="", file=sys.stderr, flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mediafit", description="Filter, composite and size-fit media with FFmpeg")
    parser.add_argument("--version", action="version", version=f"mediafit {__version__}")
    parser.add_argument("--config", help="Path to a mediafit.yaml file")
    parser.add_argument("--log-level", help="Override the configured log level")
    parser.add_argument("--progress", action="store_true", help="Print progress to stderr")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("probe", help="Show duration and stream layout")
    p.add_argument("input")

    p = sub.add_parser("effects", help="List available effects")
    p.add_argument("--type", choices=[t.value for t in EffectType], help="Only list one effect type")

    p = sub.add_parser("transcode", help="Apply effects and optionally fit under a size ceiling")
    p.add_argument("input")
    p.add_argument("--filters", help="Filter text, e.g. '{bass=10,reverse}'")
    p.add_argument("--start", help="Clip start (12, 1:30, 500ms...)")
    p.add_argument("--clip", help="Clip duration")
    size = p.add_mutually_exclusive_group()
    size.add_argument("--ceiling", type=int, help="Maximum output size in bytes")
    size.add_argument("--fit", action="store_true", help="Fit under the configured default ceiling")
    p.add_argument("--output", help="Output file name")
    p.add_argument("--strict", action="store_true", help="Fail on unknown effect names")

    p = sub.add_parser("grid", help="Tile 2-9 inputs into a grid")
    p.add_argument("inputs", nargs="+")
    p.add_argument("--count", type=int, help="Number of cells; inputs repeat to fill")
    p.add_argument("--options", help="Grid options, e.g. 'mdelay=500,msync'")
    p.add_argument("--filters", help="Effects applied to every cell")
    p.add_argument("--fit", action="store_true", help="Fit under the configured default ceiling")
    p.add_argument("--output", help="Output file name")

    p = sub.add_parser("sbs", help="Two videos side by side")
    p.add_argument("left")
    p.add_argument("right")
    p.add_argument("--fit", action="store_true", help="Fit under the configured default ceiling")
    p.add_argument("--output", help="Output file name")

    for name, help_text in (
        ("jumble", "Video from one input with audio from another"),
        ("dj", "Jumble plus random effects"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("video")
        p.add_argument("audio")
        p.add_argument("--duration", type=float, help="Clip length in seconds")
        p.add_argument("--fit", action="store_true", help="Fit under the configured default ceiling")
        p.add_argument("--output", help="Output file name")

    return parser


async def _run(args: argparse.Namespace) -> int:
    if args.command == "effects":
        registry = build_default_registry()
        effect_type = EffectType(args.type) if args.type else None
        for name in registry.names(effect_type):
            definition = registry[name]
            print(f"{name:<20} {definition.type.value:<8} {definition.description}")
        return 0

    job = TranscodeJob()
    default_ceiling = job.config.transcoding.default_ceiling_bytes
    progress = _print_progress if args.progress else None

    if args.command == "probe":
        asset = await job.prober.probe(args.input)
        print(json.dumps({
            "path": str(asset.path),
            "duration": asset.duration,
            "is_video": asset.is_video,
            "width": asset.width,
            "height": asset.height,
            "has_audio": asset.has_audio,
        }, indent=2))
        return 0

    if args.command == "transcode":
        clip_args = [f"{key}={value}" for key, value in (("start", args.start), ("clip", args.clip)) if value]
        ceiling = args.ceiling if args.ceiling is not None else (default_ceiling if args.fit else None)
        result = await job.run(
            args.input,
            args.output,
            filter_text=args.filters,
            clip=parse_clip_options(clip_args),
            ceiling_bytes=ceiling,
            strict=args.strict,
            progress_callback=progress,
        )
    else:
        compositor = Compositor(job)
        ceiling = default_ceiling if args.fit else None
        if args.command == "grid":
            result = await compositor.grid(
                args.inputs,
                args.output,
                count=args.count,
                options=args.options,
                filter_text=args.filters,
                ceiling_bytes=ceiling,
                progress_callback=progress,
            )
        elif args.command == "sbs":
            result = await compositor.side_by_side(
                args.left, args.right, args.output, ceiling_bytes=ceiling, progress_callback=progress
            )
        elif args.command == "jumble":
            result = await compositor.jumble(
                args.video, args.audio, args.output, args.duration, ceiling, progress_callback=progress
            )
        else:
            result = await compositor.dj(
                args.video, args.audio, args.output, args.duration, ceiling, progress_callback=progress
            )

    if progress:
        print(file=sys.stderr)
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    if result.skipped:
        print(f"skipped: {', '.join(result.skipped)}", file=sys.stderr)
    if result.effects:
        print(f"effects: {', '.join(result.effects)}", file=sys.stderr)
    print(result.path)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    set_config(config)
    setup_logging(config.logging, args.log_level)

    try:
        return asyncio.run(_run(args))
    except (MediaFitError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except RuntimeError as e:
        # FFmpeg missing
        print(f"error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
