"""
Sidecar extraction: subtitle tracks and attached fonts via ``mkvextract``.
"""

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from .errors import ExtractionError, ToolInvocationError
from .io_tools import ToolPaths, ensure_dir, run
from .models import ContainerMetadata, FontAsset, InputFile, Sidecars
from .paths import PathResolver

logger = logging.getLogger("framescript")

FONTS_SUBDIR = "fonts"
SUBTITLE_SIDECAR_EXTENSIONS = (".ass", ".ssa", ".srt", ".vtt", ".sup", ".idx")
OVERWRITE_MODES = ("ask", "always", "never")


class OverwritePolicy:
    """Decides whether existing sidecars may be replaced.

    In ``ask`` mode the question is put once per chapter group: every segment of an
    ordered-chapter presentation shares the first answer.
    """

    def __init__(self, mode: str = "ask", prompt: Callable[[str], str] = input) -> None:
        if mode not in OVERWRITE_MODES:
            raise ValueError(f"Unknown overwrite mode: {mode}")
        self.mode = mode
        self.prompt = prompt
        self._decisions: dict[Path, bool] = {}
        self._lock = threading.Lock()

    def allow(self, group_key: Path, existing: Path) -> bool:
        if self.mode == "always":
            return True
        if self.mode == "never":
            return False
        with self._lock:
            if group_key not in self._decisions:
                try:
                    answer = self.prompt(
                        f"{existing} already exists. Overwrite existing sidecars for "
                        f"'{group_key.name}' and its linked segments? [y/N] "
                    )
                except EOFError:
                    answer = ""
                self._decisions[group_key] = answer.strip().lower() in ("y", "yes")
            return self._decisions[group_key]


def subtitle_import_path(extracted: Path) -> Path:
    """VobSub is extracted as a .sub/.idx pair; scripts load the index."""
    return extracted.with_suffix(".idx") if extracted.suffix == ".sub" else extracted


def find_subtitle_sidecar(input_file: InputFile, resolver: PathResolver) -> Path | None:
    """Existing subtitle sidecar for ``input_file``: destination dir first, then beside the input."""
    candidates = [resolver.sidecar_path(input_file, ext) for ext in SUBTITLE_SIDECAR_EXTENSIONS]
    candidates += [input_file.path.with_suffix(ext) for ext in SUBTITLE_SIDECAR_EXTENSIONS]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


class AssetExtractor:
    """Runs ``mkvextract`` for one batch.

    Paths written during the run are remembered: a font shared by several files (or a
    segment played by more than one ordered edition) is extracted once and never counts
    as a pre-existing file for the overwrite policy.
    """

    def __init__(
        self, tools: ToolPaths | None = None, policy: OverwritePolicy | None = None
    ) -> None:
        self.tools = tools or ToolPaths()
        self.policy = policy or OverwritePolicy()
        self._claimed: set[Path] = set()
        self._claim_lock = threading.Lock()

    def _claim(self, out: Path) -> bool:
        """Reserve ``out`` for this run; False when another extraction already owns it."""
        with self._claim_lock:
            if out in self._claimed:
                return False
            self._claimed.add(out)
            return True

    def _mkvextract(self, mode: str, input_file: InputFile, item_id: int, out: Path) -> None:
        try:
            run(
                [self.tools.mkvextract, mode, str(input_file.path), f"{item_id}:{out}"],
                path=input_file.path,
            )
        except ToolInvocationError as e:
            if out.exists():
                logger.error("Partial output left for inspection: %s", out)
            raise ExtractionError(
                f"Failed to extract {mode[:-1]} {item_id} from {input_file.path.name}: {e}",
                input_file.path,
            ) from e

    def extract_subtitle(
        self,
        input_file: InputFile,
        metadata: ContainerMetadata,
        group_key: Path,
        resolver: PathResolver,
    ) -> Path | None:
        track = metadata.selected_subtitle
        if track is None:
            logger.info("%s has no subtitle tracks; nothing to extract", input_file.path.name)
            return None
        out = resolver.sidecar_path(input_file, f".{track.extension}")
        if not self._claim(out):
            return subtitle_import_path(out)
        if out.exists() and not self.policy.allow(group_key, out):
            logger.info("Keeping existing subtitles: %s", out)
            return subtitle_import_path(out)
        ensure_dir(out.parent)
        self._mkvextract("tracks", input_file, track.id, out)
        logger.info("Extracted subtitle track %d -> %s", track.id, out)
        return subtitle_import_path(out)

    def extract_fonts(
        self,
        input_file: InputFile,
        metadata: ContainerMetadata,
        group_key: Path,
        resolver: PathResolver,
    ) -> list[FontAsset]:
        """Extract attachments into ``<dest>/fonts``; returns every font with its output path."""
        if not metadata.fonts:
            return []
        font_dir = Path(resolver.dest_dir) / FONTS_SUBDIR
        ensure_dir(font_dir)
        fonts = []
        count = 0
        for font in metadata.fonts:
            out = font_dir / font.file_name
            fonts.append(font.extracted_to(out))
            if not self._claim(out):
                logger.debug("Font already extracted in this run: %s", out)
                continue
            if out.exists() and not self.policy.allow(group_key, out):
                logger.debug("Keeping existing font: %s", out)
                continue
            self._mkvextract("attachments", input_file, font.id, out)
            count += 1
        if count:
            logger.info("Extracted %d font(s) -> %s", count, font_dir)
        return fonts

    def extract(
        self,
        input_file: InputFile,
        metadata: ContainerMetadata,
        group_key: Path,
        resolver: PathResolver,
        fonts: bool = True,
    ) -> Sidecars:
        """Extract the selected subtitle track and, optionally, the attached fonts."""
        subtitle = self.extract_subtitle(input_file, metadata, group_key, resolver)
        assets: list[FontAsset] = []
        if fonts and subtitle is not None:
            assets = self.extract_fonts(input_file, metadata, group_key, resolver)
        font_dir = assets[0].output_path.parent if assets else None
        return Sidecars(subtitle=subtitle, font_dir=font_dir, fonts=tuple(assets))
