"""
Data models for script generation.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from fractions import Fraction
from pathlib import Path


class ContainerKind(Enum):
    INDEXED_VIDEO = "indexed-video"
    GENERIC_VIDEO = "generic-video"
    CONTAINER_WITH_TRACKS = "container-with-tracks"
    UNKNOWN = "unknown"


class SourceFilter(Enum):
    """Source-filter strategy used to open a file for frame-accurate decoding."""

    DGDECODE_MPEG2 = "dgdecode-mpeg2"
    AVC_SOURCE = "avcsource"
    FFMS2 = "ffms2"
    LSMASH = "lsmash"
    NONE = "none"


class TrackKind(Enum):
    VIDEO = "video"
    AUDIO = "audio"
    SUBTITLE = "subtitles"
    OTHER = "other"


# Matroska codec ids -> extension mkvextract writes for that codec
SUBTITLE_EXTENSIONS = {
    "S_TEXT/ASS": "ass",
    "S_ASS": "ass",
    "S_TEXT/SSA": "ssa",
    "S_SSA": "ssa",
    "S_TEXT/UTF8": "srt",
    "S_TEXT/ASCII": "srt",
    "S_TEXT/WEBVTT": "vtt",
    "S_TEXT/USF": "usf",
    "S_HDMV/PGS": "sup",
    "S_VOBSUB": "sub",
}


@dataclass(frozen=True)
class InputFile:
    """A media file discovered at batch start."""

    path: Path  # canonical absolute path
    kind: ContainerKind
    source_filter: SourceFilter

    @property
    def stem(self) -> str:
        return self.path.stem


@dataclass(frozen=True)
class TrackInfo:
    """A single track as reported by the container probe."""

    id: int
    kind: TrackKind
    codec: str
    language: str | None = None
    name: str | None = None
    default: bool = False
    forced: bool = False
    frame_duration_ns: int | None = None  # video only, from the default duration

    @property
    def extension(self) -> str:
        """Native sidecar extension for this track's codec (subtitles only)."""
        return SUBTITLE_EXTENSIONS.get(self.codec.upper(), "ass")


@dataclass(frozen=True)
class FontAsset:
    """A font attached to a container."""

    id: int
    file_name: str
    mime_type: str = ""
    output_path: Path | None = None

    def extracted_to(self, path: Path) -> "FontAsset":
        return replace(self, output_path=path)


@dataclass(frozen=True)
class ChapterLinkage:
    """Segment linkage declared by a container.

    UIDs are lower-case hex strings. ``ordinal`` is the 1-based position of the file
    inside its chapter group; the probe leaves it unset and the linker assigns it.
    """

    segment_uid: str | None = None
    previous_uid: str | None = None
    next_uid: str | None = None
    ordinal: int | None = None
    chapter_uids: tuple[str, ...] = ()  # external segments played by ordered chapters

    @property
    def is_linked(self) -> bool:
        return bool(self.previous_uid or self.next_uid or self.chapter_uids)


@dataclass(frozen=True)
class OrderedChapter:
    """One chapter of an ordered edition, in nanoseconds.

    With a ``segment_uid`` the range refers to the timeline of that external segment,
    otherwise to the file's own.
    """

    start_ns: int
    end_ns: int
    segment_uid: str | None = None

    @property
    def is_external(self) -> bool:
        return self.segment_uid is not None


@dataclass(frozen=True)
class ContainerMetadata:
    """Everything the probe learned about one container."""

    tracks: tuple[TrackInfo, ...] = ()
    fonts: tuple[FontAsset, ...] = ()
    linkage: ChapterLinkage = field(default_factory=ChapterLinkage)
    selected_subtitle_id: int | None = None
    ordered_chapters: tuple[OrderedChapter, ...] = ()

    def __post_init__(self) -> None:
        ids = [t.id for t in self.tracks]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate track ids in container metadata: {sorted(ids)}")
        if self.selected_subtitle_id is not None and self.selected_subtitle_id not in {
            t.id for t in self.subtitle_tracks
        }:
            raise ValueError(f"Track {self.selected_subtitle_id} is not a subtitle track")

    @classmethod
    def empty(cls) -> "ContainerMetadata":
        return cls()

    @classmethod
    def from_tracks(
        cls,
        tracks: list[TrackInfo],
        fonts: list[FontAsset] | None = None,
        linkage: ChapterLinkage | None = None,
        ordered_chapters: list[OrderedChapter] | None = None,
    ) -> "ContainerMetadata":
        """Build a record with the default subtitle selection (lowest track id)."""
        ordered = tuple(sorted(tracks, key=lambda t: t.id))
        subs = [t for t in ordered if t.kind is TrackKind.SUBTITLE]
        return cls(
            tracks=ordered,
            fonts=tuple(fonts or ()),
            linkage=linkage or ChapterLinkage(),
            selected_subtitle_id=subs[0].id if subs else None,
            ordered_chapters=tuple(ordered_chapters or ()),
        )

    @property
    def subtitle_tracks(self) -> list[TrackInfo]:
        return sorted((t for t in self.tracks if t.kind is TrackKind.SUBTITLE), key=lambda t: t.id)

    @property
    def video_tracks(self) -> list[TrackInfo]:
        return sorted((t for t in self.tracks if t.kind is TrackKind.VIDEO), key=lambda t: t.id)

    @property
    def frame_rate(self) -> Fraction | None:
        """Nominal frames per second of the first video track, if the container declares it."""
        for track in self.video_tracks:
            if track.frame_duration_ns:
                return Fraction(1_000_000_000, track.frame_duration_ns)
        return None

    @property
    def audio_tracks(self) -> list[TrackInfo]:
        return sorted((t for t in self.tracks if t.kind is TrackKind.AUDIO), key=lambda t: t.id)

    @property
    def selected_subtitle(self) -> TrackInfo | None:
        for track in self.tracks:
            if track.id == self.selected_subtitle_id:
                return track
        return None

    def with_subtitle_override(self, index: int | None) -> "ContainerMetadata":
        """Select the ``index``-th subtitle track (0-based, ordered by track id).

        Raises IndexError when the container has no such subtitle track.
        """
        if index is None:
            return self
        subs = self.subtitle_tracks
        if index < 0 or index >= len(subs):
            raise IndexError(f"Subtitle track #{index} requested, container has {len(subs)}")
        return replace(self, selected_subtitle_id=subs[index].id)


@dataclass(frozen=True)
class ChapterGroup:
    """Files forming one logical presentation, in play order."""

    members: tuple[InputFile, ...]
    linkages: tuple[ChapterLinkage, ...] = ()

    def __post_init__(self) -> None:
        if not self.members:
            raise ValueError("A chapter group needs at least one member")
        if len({m.path for m in self.members}) != len(self.members):
            raise ValueError("A file cannot appear twice in one chapter group")

    @property
    def key(self) -> Path:
        return self.members[0].path

    @property
    def head(self) -> InputFile:
        return self.members[0]

    def __len__(self) -> int:
        return len(self.members)

    def __iter__(self):
        return iter(self.members)


@dataclass(frozen=True)
class FilterChainConfig:
    """Requested filters. Ordering is fixed by the assembler, not by this object."""

    remove_grain: bool = True
    resize_to: tuple[int, int] | None = None
    vfr_to_120: bool = False
    downsample: bool = False
    extra_filters: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.resize_to is not None:
            width, height = self.resize_to
            if width <= 0 or height <= 0:
                raise ValueError(f"Resize dimensions must be positive, got {width}x{height}")


@dataclass(frozen=True)
class Sidecars:
    """Assets a script references besides its source file."""

    audio: Path | None = None
    subtitle: Path | None = None
    font_dir: Path | None = None
    fonts: tuple[FontAsset, ...] = ()  # extracted attachments, with their output paths


@dataclass(frozen=True)
class ChapterPart:
    """A frame range of one file, played as part of an ordered edition."""

    input_file: InputFile
    start_frame: int
    end_frame: int  # inclusive
    sidecars: Sidecars = field(default_factory=Sidecars)


class StatementKind(Enum):
    HEADER = "header"
    SOURCE = "source"
    FILTER = "filter"
    AUDIO = "audio"
    FONT_DIR = "font-dir"
    SUBTITLE = "subtitle"
    SPLICE = "splice"
    CONTINUATION = "continuation"
    OUTPUT = "output"


@dataclass(frozen=True)
class Statement:
    kind: StatementKind
    text: str
    target: str | None = None  # referenced script, for continuations


@dataclass(frozen=True)
class ScriptDocument:
    """A generated script, ready to be written to ``path``."""

    path: Path
    statements: tuple[Statement, ...]

    def statements_of(self, kind: StatementKind) -> list[Statement]:
        return [s for s in self.statements if s.kind is kind]

    @property
    def continuation(self) -> Statement | None:
        found = self.statements_of(StatementKind.CONTINUATION)
        return found[0] if found else None

    def render(self) -> str:
        return "\n".join(s.text for s in self.statements) + "\n"
