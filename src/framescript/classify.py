"""
Input discovery and classification of media files into source-filter strategies.
"""

import logging
from pathlib import Path

from .models import ContainerKind, InputFile, SourceFilter
from .paths import canonicalize

logger = logging.getLogger("framescript")

EBML_MAGIC = b"\x1a\x45\xdf\xa3"

_KIND_BY_EXTENSION = {
    "d2v": (ContainerKind.INDEXED_VIDEO, SourceFilter.DGDECODE_MPEG2),
    "dga": (ContainerKind.INDEXED_VIDEO, SourceFilter.AVC_SOURCE),
    "mkv": (ContainerKind.CONTAINER_WITH_TRACKS, SourceFilter.FFMS2),
    "mk3d": (ContainerKind.CONTAINER_WITH_TRACKS, SourceFilter.FFMS2),
}
_GENERIC_EXTENSIONS = {
    "mp4", "m4v", "avi", "mpeg", "mpg", "wmv", "mov", "flv", "webm", "ivf", "ts", "m2ts",
}
# Matroska audio and subtitle containers carry no video to load
_NO_VIDEO_EXTENSIONS = {"mka", "mks"}


def _looks_like_matroska(path: Path) -> bool:
    try:
        with open(path, "rb") as f:
            return f.read(len(EBML_MAGIC)) == EBML_MAGIC
    except OSError:
        return False


def classify(path: str | Path, *, downsample: bool = False) -> InputFile:
    """Map a file to its container kind and source filter.

    The extension (case-insensitive) decides; an unrecognized extension falls back to a
    sniff of the EBML header so renamed Matroska files are still picked up.
    """
    canonical = Path(canonicalize(path))
    ext = canonical.suffix.lower().lstrip(".")

    if ext in _NO_VIDEO_EXTENSIONS:
        kind, source = ContainerKind.UNKNOWN, SourceFilter.NONE
    elif ext in _KIND_BY_EXTENSION:
        kind, source = _KIND_BY_EXTENSION[ext]
    elif ext in _GENERIC_EXTENSIONS:
        kind, source = ContainerKind.GENERIC_VIDEO, SourceFilter.FFMS2
    elif _looks_like_matroska(canonical):
        kind, source = ContainerKind.CONTAINER_WITH_TRACKS, SourceFilter.FFMS2
    else:
        kind, source = ContainerKind.UNKNOWN, SourceFilter.NONE

    # 8-bit downsampling needs L-SMASH; index files keep their dedicated decoder
    if downsample and kind in (ContainerKind.GENERIC_VIDEO, ContainerKind.CONTAINER_WITH_TRACKS):
        source = SourceFilter.LSMASH

    return InputFile(path=canonical, kind=kind, source_filter=source)


def list_input_files(path: str | Path, recursive: bool = False) -> list[Path]:
    """List the files to process: the file itself, or the files of a directory."""
    root = Path(path)
    if root.is_file():
        return [root]
    if not root.is_dir():
        raise FileNotFoundError(f"Input not found or not a regular file/directory: {root}")
    pattern = "**/*" if recursive else "*"
    return sorted(p for p in root.glob(pattern) if p.is_file())


def classify_all(
    paths: list[Path], *, downsample: bool = False
) -> tuple[list[InputFile], list[Path]]:
    """Classify a batch. Returns (processable files, skipped unknown files)."""
    files: list[InputFile] = []
    skipped: list[Path] = []
    for p in paths:
        input_file = classify(p, downsample=downsample)
        if input_file.kind is ContainerKind.UNKNOWN:
            if input_file.path.suffix.lower().lstrip(".") in _NO_VIDEO_EXTENSIONS:
                logger.warning("Skipping %s: no video track", p)
            else:
                logger.warning("Skipping %s: unrecognized media type", p)
            skipped.append(input_file.path)
            continue
        files.append(input_file)
    return files, skipped
