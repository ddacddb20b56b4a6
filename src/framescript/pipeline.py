"""
Batch pipeline: classify, probe, link, then extract and write scripts per chapter group.

Probing and per-group work run in worker threads bounded by a semaphore. Linking waits
for every probe to finish, since a segment can only be placed once its neighbours are known.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path

from tqdm.asyncio import tqdm

from .classify import classify_all
from .dialects import get_dialect
from .errors import ExtractionError, FramescriptError, ScriptBuildError, StructuralError
from .extract import FONTS_SUBDIR, AssetExtractor, find_subtitle_sidecar
from .filters import chapter_frames, merge_local_chapters, output_frame_rate
from .linker import link_chapters
from .models import (
    ChapterGroup,
    ChapterPart,
    ContainerKind,
    ContainerMetadata,
    FilterChainConfig,
    InputFile,
    Sidecars,
)
from .paths import PathResolver
from .probe import MetadataProbe
from .script import ScriptBuilder, write_script

logger = logging.getLogger("framescript")


@dataclass(frozen=True)
class FileFailure:
    path: Path
    kind: str
    message: str


@dataclass
class BatchReport:
    """Per-file outcome of a batch run."""

    written: list[Path] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def fail(self, path: Path, error: Exception, message: str | None = None) -> None:
        kind = error.kind if isinstance(error, FramescriptError) else type(error).__name__
        self.failures.append(FileFailure(path, kind, message or str(error)))

    def summary(self) -> str:
        return (
            f"{len(self.written)} script(s) written, {len(self.failures)} failure(s), "
            f"{len(self.skipped)} skipped, {len(self.warnings)} warning(s)"
        )


@dataclass
class BatchOptions:
    dest_dir: Path | None = None
    script_format: str = "avisynth"
    filters: FilterChainConfig = field(default_factory=FilterChainConfig)
    audio: bool = False
    audio_ext: str | None = None
    subtitles: bool = False
    extract_subtitles: bool = False
    fonts: bool = True
    sub_track: int | None = None
    jobs: int = 4
    progress: bool = True


class BatchPipeline:
    def __init__(
        self,
        options: BatchOptions,
        probe: MetadataProbe,
        extractor: AssetExtractor,
    ) -> None:
        self.options = options
        self.probe = probe
        self.extractor = extractor
        self.builder = ScriptBuilder(get_dialect(options.script_format), options.filters)

    def resolver_for(self, input_file: InputFile) -> PathResolver:
        return PathResolver.for_input(input_file, self.options.dest_dir)

    def _probe_one(self, input_file: InputFile) -> ContainerMetadata:
        if input_file.kind is not ContainerKind.CONTAINER_WITH_TRACKS:
            return ContainerMetadata.empty()
        return self.probe.probe(input_file)

    def _audio_for(
        self, input_file: InputFile, metadata: ContainerMetadata, report: BatchReport
    ) -> Path | None:
        opts = self.options
        if not (opts.audio or opts.audio_ext):
            return None
        if opts.audio_ext:
            candidate = input_file.path.with_suffix(f".{opts.audio_ext.lstrip('.')}")
            if candidate.is_file():
                return candidate
            message = f"{input_file.path.name}: audio sidecar {candidate.name} not found"
        elif input_file.kind is ContainerKind.INDEXED_VIDEO:
            message = f"{input_file.path.name}: index files carry no audio; use --audio-ext"
        elif input_file.kind is ContainerKind.CONTAINER_WITH_TRACKS and not metadata.audio_tracks:
            message = f"{input_file.path.name}: no audio tracks"
        else:
            return input_file.path
        logger.warning("%s; audio left out", message)
        report.warnings.append(message)
        return None

    def _sidecars_for(
        self,
        input_file: InputFile,
        metadata: ContainerMetadata,
        group: ChapterGroup,
        report: BatchReport,
    ) -> Sidecars:
        opts = self.options
        resolver = self.resolver_for(input_file)
        audio = self._audio_for(input_file, metadata, report)

        if opts.extract_subtitles and input_file.kind is ContainerKind.CONTAINER_WITH_TRACKS:
            try:
                metadata = metadata.with_subtitle_override(opts.sub_track)
            except IndexError as e:
                raise ExtractionError(f"{input_file.path.name}: {e}", input_file.path) from e
            extracted = self.extractor.extract(
                input_file, metadata, group.key, resolver, fonts=opts.fonts
            )
            return replace(extracted, audio=audio)

        if opts.subtitles or opts.extract_subtitles:
            subtitle = find_subtitle_sidecar(input_file, resolver)
            if subtitle is None:
                logger.info("%s: no subtitle sidecar found", input_file.path.name)
                return Sidecars(audio=audio)
            font_dir = Path(resolver.dest_dir) / FONTS_SUBDIR
            if not (opts.fonts and font_dir.is_dir() and any(font_dir.iterdir())):
                font_dir = None
            return Sidecars(audio=audio, subtitle=subtitle, font_dir=font_dir)

        return Sidecars(audio=audio)

    def _chapter_parts(
        self,
        member: InputFile,
        metadata: dict[InputFile, ContainerMetadata],
        segments: dict[str, InputFile],
        sidecars_of: Callable[[InputFile], Sidecars],
    ) -> list[ChapterPart]:
        """Frame ranges an ordered edition plays, each from the file that holds it."""
        meta = metadata[member]
        fps = output_frame_rate(self.options.filters, meta.frame_rate)
        if fps is None:
            raise ScriptBuildError(
                f"{member.path.name}: ordered chapters need the video frame rate, "
                "which the container does not declare",
                member.path,
            )
        parts = []
        for chapter in merge_local_chapters(list(meta.ordered_chapters)):
            source = member
            if chapter.is_external:
                source = segments.get(chapter.segment_uid)
                if source is None or source not in metadata:
                    raise StructuralError(
                        f"{member.path.name}: segment {chapter.segment_uid} of its ordered "
                        "chapters is not usable",
                        [member.path],
                    )
            start, end = chapter_frames(chapter, fps)
            parts.append(ChapterPart(source, start, end, sidecars_of(source)))
        return parts

    def process_group(
        self,
        group: ChapterGroup,
        metadata: dict[InputFile, ContainerMetadata],
        report: BatchReport,
        segments: dict[str, InputFile] | None = None,
    ) -> list[Path]:
        """Extract sidecars and write one script per member, in play order.

        Nothing is left on disk for the group unless every member succeeds.
        """
        sidecars: dict[InputFile, Sidecars] = {}

        def sidecars_of(input_file: InputFile) -> Sidecars:
            if input_file not in sidecars:
                sidecars[input_file] = self._sidecars_for(
                    input_file, metadata[input_file], group, report
                )
            return sidecars[input_file]

        parts = {}
        for member in group:
            try:
                sidecars_of(member)
                if metadata[member].ordered_chapters:
                    parts[member] = self._chapter_parts(
                        member, metadata, segments or {}, sidecars_of
                    )
            except FramescriptError as e:
                self._fail_group(group, member, e, report)
                return []

        resolvers = {m: self.resolver_for(m) for m in group}
        try:
            documents = self.builder.build_group(group, resolvers, sidecars, parts)
        except FramescriptError as e:
            culprit = next((m for m in group if m.path == e.path), None)
            self._fail_group(group, culprit, e, report)
            return []

        # tail first, so a head script never exists without the segments it imports
        written: list[Path] = []
        for member, doc in reversed(list(zip(group.members, documents))):
            try:
                written.append(write_script(doc))
            except OSError as e:
                for path in written:
                    path.unlink(missing_ok=True)
                    logger.info("Removed %s", path)
                self._fail_group(group, member, e, report)
                return []
        written.reverse()
        if len(group) > 1:
            logger.info(
                "Chapter group %s: %s",
                group.key.name,
                " -> ".join(p.name for p in written),
            )
        return written

    @staticmethod
    def _fail_group(
        group: ChapterGroup, culprit: InputFile | None, error: Exception, report: BatchReport
    ) -> None:
        culprit = culprit or group.head
        kind = error.kind if isinstance(error, FramescriptError) else type(error).__name__
        logger.error("%s: %s: %s", culprit.path.name, kind, error)
        report.fail(culprit.path, error)
        for member in group:
            if member is not culprit:
                report.fail(
                    member.path,
                    error,
                    f"not generated, linked segment {culprit.path.name} failed: {error}",
                )

    async def run(self, paths: list[Path]) -> BatchReport:
        report = BatchReport()
        files, skipped = classify_all(paths, downsample=self.options.filters.downsample)
        report.skipped.extend(skipped)
        if not files:
            logger.warning("No processable media files found")
            return report

        semaphore = asyncio.Semaphore(max(1, self.options.jobs))
        disable = not self.options.progress

        async def probe_single(input_file: InputFile) -> ContainerMetadata | None:
            async with semaphore:
                try:
                    return await asyncio.to_thread(self._probe_one, input_file)
                except FramescriptError as e:
                    logger.error("%s: %s: %s", input_file.path.name, e.kind, e)
                    report.fail(input_file.path, e)
                    return None

        results = await tqdm.gather(
            *(probe_single(f) for f in files), desc="Probing", disable=disable
        )
        metadata = {}
        for f, m in zip(files, results):
            if m is None:
                continue
            if f.kind is ContainerKind.CONTAINER_WITH_TRACKS and not m.video_tracks:
                logger.warning("Skipping %s: no video track", f.path)
                report.skipped.append(f.path)
                continue
            metadata[f] = m

        linked = link_chapters({f: m.linkage for f, m in metadata.items()})
        report.warnings.extend(str(w) for w in linked.warnings)
        for members, error in linked.rejected:
            for member in members:
                report.fail(member.path, error)

        async def group_single(group: ChapterGroup) -> list[Path]:
            async with semaphore:
                return await asyncio.to_thread(
                    self.process_group, group, metadata, report, linked.segments
                )

        written = await tqdm.gather(
            *(group_single(g) for g in linked.groups), desc="Writing scripts", disable=disable
        )
        for paths_written in written:
            report.written.extend(paths_written)
        return report
