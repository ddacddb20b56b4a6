"""
Container metadata probing via ``mkvmerge -J``.

The probe is a narrow interface (input file -> ContainerMetadata or a typed error) so the
linking, extraction and script logic can be exercised with canned results.
"""

import json
import logging
import re
import xml.etree.ElementTree as ET
from json import JSONDecodeError
from pathlib import Path
from typing import Any, Protocol

from .errors import ParseError
from .io_tools import ToolPaths, run
from .models import (
    ChapterLinkage,
    ContainerMetadata,
    FontAsset,
    InputFile,
    OrderedChapter,
    TrackInfo,
    TrackKind,
)

logger = logging.getLogger("framescript")

FONT_MIME_TYPES = {
    "application/x-truetype-font",
    "application/x-font-ttf",
    "application/x-font-otf",
    "application/vnd.ms-opentype",
    "application/font-sfnt",
    "font/ttf",
    "font/otf",
    "font/sfnt",
    "font/collection",
}
FONT_EXTENSIONS = (".ttf", ".otf", ".ttc")

_TRACK_KINDS = {
    "video": TrackKind.VIDEO,
    "audio": TrackKind.AUDIO,
    "subtitles": TrackKind.SUBTITLE,
}

_TIMESTAMP = re.compile(r"^(\d+):(\d{1,2}):(\d{1,2})(?:\.(\d{1,9}))?$")


class MetadataProbe(Protocol):
    def probe(self, input_file: InputFile) -> ContainerMetadata: ...


def _uid(value: Any) -> str | None:
    if not value:
        return None
    return "".join(str(value).lower().replace("0x", "").split()) or None


def _is_font(attachment: dict[str, Any]) -> bool:
    mime = str(attachment.get("content_type") or "").lower()
    name = str(attachment.get("file_name") or "").lower()
    return mime in FONT_MIME_TYPES or name.endswith(FONT_EXTENSIONS)


def _positive_int(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return None


def _parse_track(raw: Any, path: Path | None) -> TrackInfo:
    if not isinstance(raw, dict):
        raise ParseError(f"Track entry is not an object: {raw!r}", path)
    tid = raw.get("id")
    ttype = raw.get("type")
    if not isinstance(tid, int) or isinstance(tid, bool) or not isinstance(ttype, str):
        raise ParseError(f"Track entry lacks an integer id or a type: {raw!r}", path)
    props = raw.get("properties") or {}
    lang = props.get("language_ietf") or props.get("language")
    if lang and lang.lower() == "und":
        lang = None
    return TrackInfo(
        id=tid,
        kind=_TRACK_KINDS.get(ttype, TrackKind.OTHER),
        codec=props.get("codec_id") or raw.get("codec") or "",
        language=lang,
        name=props.get("track_name"),
        default=bool(props.get("default_track", False)),
        forced=bool(props.get("forced_track", False)),
        frame_duration_ns=_positive_int(props.get("default_duration")),
    )


def _timestamp_ns(text: str | None, path: Path | None) -> int:
    match = _TIMESTAMP.match((text or "").strip())
    if not match:
        raise ParseError(f"Bad chapter timestamp: {text!r}", path)
    hours, minutes, seconds, fraction = match.groups()
    whole = (int(hours) * 60 + int(minutes)) * 60 + int(seconds)
    return whole * 1_000_000_000 + int((fraction or "").ljust(9, "0"))


def parse_chapters(
    text: str, own_uid: str | None = None, path: Path | None = None
) -> list[OrderedChapter]:
    """Parse ``mkvextract chapters`` XML into the chapters of the first ordered edition.

    A chapter whose segment UID names the file itself is treated as local. Disabled
    chapters are left out. Files without an ordered edition yield an empty list.
    """
    if not text.strip():
        return []
    try:
        root = ET.fromstring(text.lstrip("\ufeff"))
    except ET.ParseError as e:
        raise ParseError(f"Chapter XML is not well-formed: {e}", path) from e

    for edition in root.iter("EditionEntry"):
        if (edition.findtext("EditionFlagOrdered") or "0").strip() != "1":
            continue
        chapters = []
        for atom in edition.findall("ChapterAtom"):
            if (atom.findtext("ChapterFlagEnabled") or "1").strip() == "0":
                continue
            start = _timestamp_ns(atom.findtext("ChapterTimeStart"), path)
            if atom.find("ChapterTimeEnd") is None:
                raise ParseError("Ordered chapter without an end time", path)
            end = _timestamp_ns(atom.findtext("ChapterTimeEnd"), path)
            if end <= start:
                raise ParseError(f"Ordered chapter ends before it starts: {start} >= {end}", path)
            uid = _uid(atom.findtext("ChapterSegmentUID"))
            chapters.append(OrderedChapter(start, end, None if uid == own_uid else uid))
        return chapters
    return []


def _load_identification(text: str, path: Path | None) -> dict[str, Any]:
    try:
        info = json.loads(text)
    except JSONDecodeError as e:
        raise ParseError(f"mkvmerge output is not valid JSON: {e}", path) from e
    if not isinstance(info, dict):
        raise ParseError("mkvmerge output is not a JSON object", path)
    return info


def _chapter_entries(info: dict[str, Any]) -> int:
    entries = info.get("chapters") or []
    if not isinstance(entries, list):
        return 0
    return sum(e.get("num_entries", 0) for e in entries if isinstance(e, dict))


def parse_identification(
    text: str, path: Path | None = None, chapters_xml: str | None = None
) -> ContainerMetadata:
    """Parse ``mkvmerge -J`` output into a ContainerMetadata record.

    Tracks may come in any order; missing attachments or linkage data are not errors.
    ``chapters_xml`` is the file's chapter dump, when it has chapters.
    """
    return _metadata_from(_load_identification(text, path), path, chapters_xml)


def _metadata_from(
    info: dict[str, Any], path: Path | None, chapters_xml: str | None
) -> ContainerMetadata:
    container = info.get("container") or {}
    if not isinstance(container, dict):
        raise ParseError("'container' is not an object", path)
    if container and container.get("recognized") is False:
        raise ParseError("Container format was not recognized by mkvmerge", path)

    raw_tracks = info.get("tracks", [])
    if not isinstance(raw_tracks, list):
        raise ParseError("'tracks' is not a list", path)
    tracks = [_parse_track(t, path) for t in raw_tracks]
    ids = [t.id for t in tracks]
    if len(ids) != len(set(ids)):
        raise ParseError(f"Duplicate track ids reported: {sorted(ids)}", path)

    raw_attachments = info.get("attachments", [])
    if not isinstance(raw_attachments, list):
        raise ParseError("'attachments' is not a list", path)
    fonts = []
    for att in raw_attachments:
        if not isinstance(att, dict) or not isinstance(att.get("id"), int):
            raise ParseError(f"Attachment entry lacks an integer id: {att!r}", path)
        if not _is_font(att):
            continue
        # attachment names come from the file; keep only the base name
        fonts.append(
            FontAsset(
                id=att["id"],
                file_name=Path(str(att.get("file_name") or f"font{att['id']}.ttf")).name,
                mime_type=str(att.get("content_type") or ""),
            )
        )

    props = container.get("properties") or {}
    segment_uid = _uid(props.get("segment_uid"))
    chapters = parse_chapters(chapters_xml or "", segment_uid, path)
    external = dict.fromkeys(c.segment_uid for c in chapters if c.is_external)
    linkage = ChapterLinkage(
        segment_uid=segment_uid,
        previous_uid=_uid(props.get("previous_segment_uid")),
        next_uid=_uid(props.get("next_segment_uid")),
        chapter_uids=tuple(external),
    )
    return ContainerMetadata.from_tracks(tracks, fonts, linkage, chapters)


class MkvmergeProbe:
    """Probe Matroska files with ``mkvmerge -J``, plus ``mkvextract chapters`` when needed."""

    def __init__(self, tools: ToolPaths | None = None) -> None:
        self.tools = tools or ToolPaths()

    def probe(self, input_file: InputFile) -> ContainerMetadata:
        out = run([self.tools.mkvmerge, "-J", str(input_file.path)], path=input_file.path)
        info = _load_identification(out, input_file.path)
        chapters_xml = None
        if _chapter_entries(info):
            # the chapter dump goes to stdout when no output file is named
            chapters_xml = run(
                [self.tools.mkvextract, str(input_file.path), "chapters"], path=input_file.path
            )
        metadata = _metadata_from(info, input_file.path, chapters_xml)
        logger.debug(
            "%s: %d subtitle track(s), %d font(s), %d ordered chapter(s), segment %s",
            input_file.path.name,
            len(metadata.subtitle_tracks),
            len(metadata.fonts),
            len(metadata.ordered_chapters),
            metadata.linkage.segment_uid,
        )
        return metadata
