"""
Shared test helpers: a canned metadata probe and input-file constructors.
"""

from pathlib import Path

from src.framescript.models import (
    ChapterLinkage,
    ContainerKind,
    ContainerMetadata,
    FontAsset,
    InputFile,
    OrderedChapter,
    SourceFilter,
    TrackInfo,
    TrackKind,
)


class StaticProbe:
    """Returns canned metadata (or raises a canned error) per input path."""

    def __init__(self, results: dict | None = None) -> None:
        self.results = {Path(k): v for k, v in (results or {}).items()}
        self.calls: list[Path] = []

    def probe(self, input_file: InputFile) -> ContainerMetadata:
        self.calls.append(input_file.path)
        result = self.results.get(input_file.path, ContainerMetadata.empty())
        if isinstance(result, Exception):
            raise result
        return result


def mkv(path) -> InputFile:
    return InputFile(Path(path), ContainerKind.CONTAINER_WITH_TRACKS, SourceFilter.FFMS2)


def metadata(
    segment: str | None = None,
    previous: str | None = None,
    next_: str | None = None,
    subtitles: bool = False,
    fonts: bool = False,
    audio: bool = True,
    video: bool = True,
    chapters: tuple[OrderedChapter, ...] = (),
    frame_duration_ns: int | None = None,
) -> ContainerMetadata:
    tracks = []
    if video:
        tracks.append(
            TrackInfo(0, TrackKind.VIDEO, "V_MPEG4/ISO/AVC", frame_duration_ns=frame_duration_ns)
        )
    if audio:
        tracks.append(TrackInfo(1, TrackKind.AUDIO, "A_AAC"))
    if subtitles:
        tracks.append(TrackInfo(2, TrackKind.SUBTITLE, "S_TEXT/ASS", language="en"))
    font_assets = [FontAsset(1, "Roboto.ttf", "font/ttf")] if fonts else []
    external = tuple(dict.fromkeys(c.segment_uid for c in chapters if c.is_external))
    return ContainerMetadata.from_tracks(
        tracks,
        font_assets,
        ChapterLinkage(segment, previous, next_, chapter_uids=external),
        list(chapters),
    )
