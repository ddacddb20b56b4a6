"""
Command-line interface: generate AviSynth / VapourSynth scripts for a file or directory.
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from .classify import list_input_files
from .dialects import DIALECTS
from .extract import OVERWRITE_MODES, AssetExtractor, OverwritePolicy
from .io_tools import ToolPaths
from .models import FilterChainConfig
from .pipeline import BatchOptions, BatchPipeline
from .probe import MkvmergeProbe

logger = logging.getLogger("framescript")

DEFAULT_JOBS = 4


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def load_env() -> None:
    project_root = Path(__file__).parent.parent.parent
    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()


def parse_resize(value: str) -> tuple[int, int]:
    """``1280x720`` -> (1280, 720)."""
    try:
        width, height = (int(v) for v in value.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {value!r}") from None
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError(f"dimensions must be positive, got {value!r}")
    return width, height


def positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from None
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def non_negative_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from None
    if n < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {n}")
    return n


def env_jobs() -> int:
    raw = os.getenv("FRAMESCRIPT_JOBS")
    if not raw:
        return DEFAULT_JOBS
    try:
        return max(1, int(raw))
    except ValueError:
        logger.warning(f"Ignoring FRAMESCRIPT_JOBS={raw!r}: not an integer")
        return DEFAULT_JOBS


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    ap = argparse.ArgumentParser(
        prog="framescript",
        description="Generate AviSynth or VapourSynth scripts for video files",
    )

    # IO
    ap.add_argument("input", type=Path, help="Video file or directory of video files")
    ap.add_argument("--recursive", "-r", action="store_true", help="Descend into subdirectories")
    ap.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=None,
        help="Where scripts and sidecars go (default: next to each input)",
    )
    default_format = os.getenv("FRAMESCRIPT_FORMAT") or "avisynth"
    if default_format not in DIALECTS:
        default_format = "avisynth"
    ap.add_argument(
        "--format", "-f", choices=sorted(DIALECTS), default=default_format, help="Script dialect"
    )

    # Audio & subtitles
    ap.add_argument("--audio", "-a", action="store_true", help="Load audio from the source file")
    ap.add_argument(
        "--audio-ext", default=None, help="Load audio from a sidecar file with this extension"
    )
    ap.add_argument(
        "--subtitles", "-s", action="store_true", help="Import an existing subtitle sidecar"
    )
    ap.add_argument(
        "--extract-subtitles",
        "-x",
        action="store_true",
        help="Extract subtitles (and fonts) from Matroska files and import them",
    )
    ap.add_argument(
        "--sub-track",
        type=non_negative_int,
        default=None,
        help="Subtitle track to extract, 0-based among subtitle tracks (default: first)",
    )
    ap.add_argument("--no-fonts", action="store_true", help="Do not extract attached fonts")

    # Filters
    ap.add_argument("--no-grain-removal", action="store_true", help="Skip RemoveGrain")
    ap.add_argument("--resize", type=parse_resize, default=None, metavar="WxH")
    ap.add_argument(
        "--vfr-to-120",
        action="store_true",
        help="Convert variable frame rate to 120000/1001 using ffms2 timecodes",
    )
    ap.add_argument(
        "--downsample", action="store_true", help="Reduce to 8-bit YUV420 (uses L-SMASH)"
    )
    ap.add_argument(
        "--filter",
        dest="filters",
        action="append",
        default=[],
        metavar="CALL",
        help="Extra filter call, applied after grain removal (repeatable)",
    )

    # Runtime
    ap.add_argument(
        "--overwrite",
        choices=OVERWRITE_MODES,
        default="ask",
        help="What to do with existing sidecars",
    )
    ap.add_argument("--jobs", "-j", type=positive_int, default=env_jobs())
    ap.add_argument("--no-progress", action="store_true", help="Disable progress bars")
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return ap.parse_args(argv)


def build_options(args: argparse.Namespace) -> BatchOptions:
    filters = FilterChainConfig(
        remove_grain=not args.no_grain_removal,
        resize_to=args.resize,
        vfr_to_120=args.vfr_to_120,
        downsample=args.downsample,
        extra_filters=tuple(args.filters),
    )
    return BatchOptions(
        dest_dir=args.output_dir,
        script_format=args.format,
        filters=filters,
        audio=args.audio,
        audio_ext=args.audio_ext,
        subtitles=args.subtitles,
        extract_subtitles=args.extract_subtitles,
        fonts=not args.no_fonts,
        sub_track=args.sub_track,
        jobs=args.jobs,
        progress=not args.no_progress,
    )


async def main_async(argv: list[str] | None = None) -> int:
    """Main async CLI entry point. Returns the process exit status."""
    load_env()
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        paths = list_input_files(args.input, recursive=args.recursive)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 2

    tools = ToolPaths.from_env()
    pipeline = BatchPipeline(
        build_options(args),
        probe=MkvmergeProbe(tools),
        extractor=AssetExtractor(tools, OverwritePolicy(args.overwrite)),
    )
    report = await pipeline.run(paths)

    for failure in report.failures:
        logger.error(f"{failure.path}: {failure.kind}: {failure.message}")
    logger.info(f"Done: {report.summary()}")
    return 0 if report.ok else 1


def main() -> None:
    """Main CLI entry point."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
