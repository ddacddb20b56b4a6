"""
Script document generation.
"""

import logging
from collections.abc import Mapping
from pathlib import Path

from .dialects import Dialect
from .errors import ScriptBuildError
from .filters import StepKind, assemble_filter_chain, trim_step
from .io_tools import ensure_dir
from .models import (
    ChapterGroup,
    ChapterPart,
    FilterChainConfig,
    InputFile,
    ScriptDocument,
    Sidecars,
    SourceFilter,
    Statement,
    StatementKind,
)
from .paths import PathResolver

logger = logging.getLogger("framescript")

TIMECODES_SUFFIX = ".timecodes.txt"


class ScriptBuilder:
    """Turns an input file plus its sidecars into a ScriptDocument.

    Statement order per clip: source load, filter chain, audio, font directory, subtitle
    import, then the chapter trim. A file with an ordered edition gets one clip per chapter
    part, spliced together. The script ends with the continuation and the output.
    """

    def __init__(self, dialect: Dialect, config: FilterChainConfig | None = None) -> None:
        self.dialect = dialect
        self.config = config or FilterChainConfig()
        self.steps = assemble_filter_chain(self.config)

    def script_path(self, input_file: InputFile, resolver: PathResolver) -> Path:
        return resolver.script_path(input_file, self.dialect.extension)

    def _clip(
        self,
        label: str,
        input_file: InputFile,
        sidecars: Sidecars,
        resolver: PathResolver,
        refs: PathResolver,
        trim: tuple[int, int] | None,
        declare_fonts: bool = True,
    ) -> list[Statement]:
        d = self.dialect
        statements: list[Statement] = []

        def add(kind: StatementKind, text: str) -> None:
            statements.append(Statement(kind, text))

        timecodes = None
        if self.config.vfr_to_120:
            if input_file.source_filter is not SourceFilter.FFMS2:
                raise ScriptBuildError(
                    f"VFR conversion needs ffms2 timecodes; {input_file.path.name} is opened "
                    f"with {input_file.source_filter.value}",
                    input_file.path,
                )
            timecodes = refs.reference(resolver.sidecar_path(input_file, TIMECODES_SUFFIX))

        try:
            source = d.source(
                label, input_file.source_filter, refs.reference(input_file.path), timecodes
            )
        except ScriptBuildError as e:
            e.path = e.path or input_file.path
            raise
        add(StatementKind.SOURCE, source)
        for step in self.steps:
            tc = timecodes if step.kind is StepKind.FRAME_RATE else None
            add(StatementKind.FILTER, d.step(label, step, tc))

        if sidecars.audio is not None:
            add(StatementKind.AUDIO, d.audio(label, refs.reference(sidecars.audio)))

        if sidecars.subtitle is not None:
            with_fonts = sidecars.font_dir is not None
            if with_fonts and declare_fonts:
                add(StatementKind.FONT_DIR, d.font_dir(refs.reference(sidecars.font_dir)))
            add(
                StatementKind.SUBTITLE,
                d.subtitle(label, refs.reference(sidecars.subtitle), with_fonts),
            )

        if trim is not None:
            add(StatementKind.FILTER, d.step(label, trim_step(*trim)))
        return statements

    def build(
        self,
        input_file: InputFile,
        resolver: PathResolver,
        sidecars: Sidecars | None = None,
        *,
        ordinal: int = 1,
        continuation: Path | None = None,
        is_head: bool = True,
        parts: list[ChapterPart] | None = None,
        refs: PathResolver | None = None,
        audio_out: Path | None = None,
    ) -> ScriptDocument:
        """Build the script for one file.

        ``resolver`` places the script and its sidecars; ``refs`` (default: the same)
        is the directory every reference inside the script is made relative to.
        """
        d = self.dialect
        refs = refs or resolver
        label = f"video{ordinal}"
        statements = [
            Statement(StatementKind.HEADER, line) for line in d.header(continuation is not None)
        ]

        if parts:
            labels = []
            font_dir = None
            for j, part in enumerate(parts, start=1):
                part_label = f"{label}_{j}"
                # the font directory is declared again only when it changes
                statements += self._clip(
                    part_label,
                    part.input_file,
                    part.sidecars,
                    resolver,
                    refs,
                    (part.start_frame, part.end_frame),
                    declare_fonts=part.sidecars.font_dir != font_dir,
                )
                if part.sidecars.subtitle is not None and part.sidecars.font_dir is not None:
                    font_dir = part.sidecars.font_dir
                labels.append(part_label)
            statements.append(Statement(StatementKind.SPLICE, d.splice(label, labels)))
        else:
            statements += self._clip(
                label, input_file, sidecars or Sidecars(), resolver, refs, None
            )

        if continuation is not None:
            ref = refs.reference(continuation)
            statements.append(
                Statement(StatementKind.CONTINUATION, d.continuation(label, ref), target=ref)
            )

        audio_ref = refs.reference(audio_out) if audio_out is not None else None
        for line in d.output(label, is_head, audio_ref):
            statements.append(Statement(StatementKind.OUTPUT, line))

        return ScriptDocument(path=self.script_path(input_file, resolver), statements=tuple(statements))

    def build_group(
        self,
        group: ChapterGroup,
        resolvers: Mapping[InputFile, PathResolver],
        sidecars_by_file: Mapping[InputFile, Sidecars] | None = None,
        parts_by_file: Mapping[InputFile, list[ChapterPart]] | None = None,
    ) -> list[ScriptDocument]:
        """One document per member; member k continues into member k+1's script.

        When the dialect runs nested scripts in the head's working directory, every
        reference in the group is made relative to the head's destination.
        """
        sidecars_by_file = sidecars_by_file or {}
        parts_by_file = parts_by_file or {}
        members = list(group.members)
        paths = [self.script_path(m, resolvers[m]) for m in members]
        head_refs = resolvers[members[0]]
        audio_out = _audio_output(members, sidecars_by_file, parts_by_file)
        documents = []
        for i, member in enumerate(members):
            documents.append(
                self.build(
                    member,
                    resolvers[member],
                    sidecars_by_file.get(member),
                    ordinal=i + 1,
                    continuation=paths[i + 1] if i + 1 < len(members) else None,
                    is_head=i == 0,
                    parts=parts_by_file.get(member),
                    refs=head_refs if self.dialect.nested_scripts_share_cwd else None,
                    audio_out=audio_out if i == 0 else None,
                )
            )
        return documents


def _audio_output(
    members: list[InputFile],
    sidecars_by_file: Mapping[InputFile, Sidecars],
    parts_by_file: Mapping[InputFile, list[ChapterPart]],
) -> Path | None:
    """Where the group's audio is written out: the first loaded audio, as FLAC."""
    for member in members:
        candidates = [p.sidecars for p in parts_by_file.get(member) or ()]
        candidates.append(sidecars_by_file.get(member) or Sidecars())
        for sidecars in candidates:
            if sidecars.audio is not None:
                out = sidecars.audio.with_suffix(".flac")
                return out.with_suffix(".out.flac") if out == sidecars.audio else out
    return None


def write_script(document: ScriptDocument) -> Path:
    ensure_dir(document.path.parent)
    document.path.write_text(document.render(), encoding="utf-8")
    logger.info("Wrote %s", document.path)
    return document.path
