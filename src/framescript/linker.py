"""
Ordered-chapter linking: partition a batch into chains of segments.

Linkage is treated as a graph whose nodes are files and whose edges are the
previous/next segment UIDs each container declares. A group is a maximal path; cycles,
branches and duplicate UIDs are structural errors for the files involved.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

from .errors import DanglingReferenceWarning, StructuralError
from .models import ChapterGroup, ChapterLinkage, InputFile

logger = logging.getLogger("framescript")


@dataclass
class LinkResult:
    groups: list[ChapterGroup] = field(default_factory=list)
    rejected: list[tuple[list[InputFile], StructuralError]] = field(default_factory=list)
    warnings: list[DanglingReferenceWarning] = field(default_factory=list)
    segments: dict[str, InputFile] = field(default_factory=dict)  # uid -> file, unambiguous only

    def group_of(self, input_file: InputFile) -> ChapterGroup | None:
        for group in self.groups:
            if input_file in group.members:
                return group
        return None


def _component(start: InputFile, neighbours: dict[InputFile, set[InputFile]]) -> list[InputFile]:
    seen = {start}
    stack = [start]
    while stack:
        node = stack.pop()
        for other in neighbours.get(node, ()):
            if other not in seen:
                seen.add(other)
                stack.append(other)
    return sorted(seen, key=lambda f: str(f.path))


def link_chapters(linkages: Mapping[InputFile, ChapterLinkage]) -> LinkResult:
    """Build chapter groups from the linkage of every file in a batch."""
    result = LinkResult()
    files = sorted(linkages, key=lambda f: str(f.path))
    broken: set[InputFile] = set()

    # uid -> file
    declared: dict[str, list[InputFile]] = {}
    for f in files:
        uid = linkages[f].segment_uid
        if uid:
            declared.setdefault(uid, []).append(f)
    by_uid: dict[str, InputFile] = {}
    for uid, members in declared.items():
        if len(members) == 1:
            by_uid[uid] = members[0]
            continue
        err = StructuralError(
            f"Segment UID {uid} is declared by more than one file: "
            + ", ".join(str(m.path) for m in members),
            [m.path for m in members],
        )
        logger.error("%s: %s", err.kind, err)
        broken.update(members)
        result.rejected.append((members, err))

    # ordered editions cut into other files; those must be in the batch
    for f in files:
        if f in broken:
            continue
        missing = [u for u in linkages[f].chapter_uids if by_uid.get(u) in (None, f)]
        if missing:
            err = StructuralError(
                f"{f.path.name} has ordered chapters in segment(s) not available in this "
                f"batch: {', '.join(missing)}",
                [f.path],
            )
            logger.error("%s: %s", err.kind, err)
            broken.add(f)
            result.rejected.append(([f], err))
    # explicit adjacency from both directions of declaration
    successor: dict[InputFile, InputFile] = {}
    predecessor: dict[InputFile, InputFile] = {}
    neighbours: dict[InputFile, set[InputFile]] = {f: set() for f in files}
    conflicts: set[InputFile] = set()

    def add_edge(a: InputFile, b: InputFile) -> None:
        neighbours[a].add(b)
        neighbours[b].add(a)
        if successor.get(a, b) != b or predecessor.get(b, a) != a:
            conflicts.update((a, b))
        successor.setdefault(a, b)
        predecessor.setdefault(b, a)

    for f in files:
        if f in broken:
            continue
        link = linkages[f]
        for uid, forward in ((link.next_uid, True), (link.previous_uid, False)):
            if not uid:
                continue
            other = by_uid.get(uid)
            if other is None or other in broken:
                warning = DanglingReferenceWarning(
                    f"{f.path.name} links to segment {uid}, which is not available in this batch",
                    f.path,
                    uid,
                )
                logger.warning("%s: %s", type(warning).__name__, warning)
                result.warnings.append(warning)
                continue
            if forward:
                add_edge(f, other)
            else:
                add_edge(other, f)

    for f in sorted(conflicts, key=lambda f: str(f.path)):
        if f in broken:
            continue
        members = [m for m in _component(f, neighbours) if m not in broken]
        err = StructuralError(
            "Conflicting chapter links (a segment has more than one neighbour on one side): "
            + ", ".join(str(m.path) for m in members),
            [m.path for m in members],
        )
        logger.error("%s: %s", err.kind, err)
        broken.update(members)
        result.rejected.append((members, err))

    visited: set[InputFile] = set(broken)
    for f in files:
        if f in visited or f in predecessor:
            continue
        chain = []
        node: InputFile | None = f
        while node is not None and node not in visited:
            visited.add(node)
            chain.append(node)
            node = successor.get(node)
        chain_linkages = tuple(
            replace(linkages[m], ordinal=i) for i, m in enumerate(chain, start=1)
        )
        result.groups.append(ChapterGroup(members=tuple(chain), linkages=chain_linkages))

    # whatever a head walk never reached sits on a cycle
    for f in files:
        if f in visited:
            continue
        cycle = []
        node = f
        while node not in visited:
            visited.add(node)
            cycle.append(node)
            node = successor[node]
        err = StructuralError(
            "Chapter linkage forms a cycle: "
            + " -> ".join(m.path.name for m in cycle + [cycle[0]]),
            [m.path for m in cycle],
        )
        logger.error("%s: %s", err.kind, err)
        broken.update(cycle)
        result.rejected.append((cycle, err))

    result.segments = {u: m for u, m in by_uid.items() if m not in broken}
    result.groups.sort(key=lambda g: str(g.key))
    return result
