"""
Tests for ordered-chapter linking.
"""

from src.framescript.errors import DanglingReferenceWarning, StructuralError
from src.framescript.linker import link_chapters
from src.framescript.models import ChapterLinkage
from src.tests.conftest import mkv


def files(*names):
    return {name: mkv(f"/media/{name}.mkv") for name in names}


def test_chain_in_play_order():
    """Test a three-segment chain is ordered head to tail regardless of input order."""
    f = files("c_part", "a_part", "b_part")
    # play order: b_part -> c_part -> a_part
    linkages = {
        f["a_part"]: ChapterLinkage("aa", previous_uid="cc"),
        f["c_part"]: ChapterLinkage("cc", previous_uid="bb", next_uid="aa"),
        f["b_part"]: ChapterLinkage("bb", next_uid="cc"),
    }

    result = link_chapters(linkages)

    assert len(result.groups) == 1
    group = result.groups[0]
    assert [m.path.name for m in group] == ["b_part.mkv", "c_part.mkv", "a_part.mkv"]
    assert [link.ordinal for link in group.linkages] == [1, 2, 3]
    assert group.key == f["b_part"].path
    assert not result.rejected
    assert not result.warnings


def test_one_sided_links_are_enough():
    """Test a chain declared only through previous-segment links."""
    f = files("ep1", "ep2", "ep3")
    linkages = {
        f["ep1"]: ChapterLinkage("01"),
        f["ep2"]: ChapterLinkage("02", previous_uid="01"),
        f["ep3"]: ChapterLinkage("03", previous_uid="02"),
    }

    result = link_chapters(linkages)

    assert [[m.path.name for m in g] for g in result.groups] == [["ep1.mkv", "ep2.mkv", "ep3.mkv"]]


def test_unlinked_files_are_singletons():
    """Test files without linkage each form their own group."""
    f = files("x", "y")
    result = link_chapters({f["x"]: ChapterLinkage(), f["y"]: ChapterLinkage("99")})

    assert [len(g) for g in result.groups] == [1, 1]
    assert result.groups[0].linkages[0].ordinal == 1


def test_cycle_is_structural_error():
    """Test a cycle is rejected instead of looping."""
    f = files("a", "b", "solo")
    linkages = {
        f["a"]: ChapterLinkage("01", next_uid="02"),
        f["b"]: ChapterLinkage("02", next_uid="01"),
        f["solo"]: ChapterLinkage(),
    }

    result = link_chapters(linkages)

    assert [[m.path.name for m in g] for g in result.groups] == [["solo.mkv"]]
    assert len(result.rejected) == 1
    members, error = result.rejected[0]
    assert isinstance(error, StructuralError)
    assert {m.path.name for m in members} == {"a.mkv", "b.mkv"}
    assert "cycle" in str(error)


def test_self_link_is_cycle():
    """Test a segment naming itself as successor."""
    f = files("a")
    result = link_chapters({f["a"]: ChapterLinkage("01", next_uid="01")})

    assert result.groups == []
    assert isinstance(result.rejected[0][1], StructuralError)


def test_branch_is_structural_error():
    """Test two segments claiming the same successor."""
    f = files("a", "b", "c")
    linkages = {
        f["a"]: ChapterLinkage("01", next_uid="03"),
        f["b"]: ChapterLinkage("02", next_uid="03"),
        f["c"]: ChapterLinkage("03"),
    }

    result = link_chapters(linkages)

    assert result.groups == []
    members, error = result.rejected[0]
    assert isinstance(error, StructuralError)
    assert len(members) == 3


def test_duplicate_segment_uid():
    """Test two files declaring one UID are both rejected."""
    f = files("a", "b", "c")
    linkages = {
        f["a"]: ChapterLinkage("01"),
        f["b"]: ChapterLinkage("01"),
        f["c"]: ChapterLinkage("03"),
    }

    result = link_chapters(linkages)

    assert [g.key.name for g in result.groups] == ["c.mkv"]
    assert {m.path.name for m in result.rejected[0][0]} == {"a.mkv", "b.mkv"}


def test_dangling_reference_truncates_chain():
    """Test a link to a segment outside the batch ends the chain with a warning."""
    f = files("ep1", "ep2")
    linkages = {
        f["ep1"]: ChapterLinkage("01", next_uid="02"),
        f["ep2"]: ChapterLinkage("02", previous_uid="01", next_uid="ff"),
    }

    result = link_chapters(linkages)

    assert [[m.path.name for m in g] for g in result.groups] == [["ep1.mkv", "ep2.mkv"]]
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert isinstance(warning, DanglingReferenceWarning)
    assert warning.uid == "ff"
    assert warning.path == f["ep2"].path


def test_partition_is_complete():
    """Test every file ends up in exactly one group or one rejection."""
    f = files("a1", "a2", "b1", "c1", "c2", "d1")
    linkages = {
        f["a1"]: ChapterLinkage("a1", next_uid="a2"),
        f["a2"]: ChapterLinkage("a2", previous_uid="a1"),
        f["b1"]: ChapterLinkage("b1"),
        f["c1"]: ChapterLinkage("c1", next_uid="c2"),
        f["c2"]: ChapterLinkage("c2", next_uid="c1"),
        f["d1"]: ChapterLinkage(None, previous_uid="zz"),
    }

    result = link_chapters(linkages)

    placed = [m for g in result.groups for m in g]
    placed += [m for members, _ in result.rejected for m in members]
    assert sorted(m.path.name for m in placed) == sorted(m.path.name for m in f.values())
    assert len(placed) == len(set(placed))
    assert result.group_of(f["a2"]).key == f["a1"].path
    assert result.group_of(f["c1"]) is None


def test_ordered_chapter_segments_are_resolved():
    """Test files played by an ordered edition are looked up by segment UID."""
    f = files("main", "op", "ed")
    linkages = {
        f["main"]: ChapterLinkage("0a", chapter_uids=("0c", "0d")),
        f["op"]: ChapterLinkage("0c"),
        f["ed"]: ChapterLinkage("0d"),
    }

    result = link_chapters(linkages)

    assert not result.rejected
    assert len(result.groups) == 3
    assert result.segments["0c"] == f["op"]
    assert result.segments["0d"] == f["ed"]


def test_ordered_chapters_need_their_segments():
    """Test an edition cutting into an absent or ambiguous segment is rejected."""
    f = files("main", "other", "dup1", "dup2")
    linkages = {
        f["main"]: ChapterLinkage("0a", chapter_uids=("0c",)),
        f["other"]: ChapterLinkage("0b", chapter_uids=("0e",)),
        f["dup1"]: ChapterLinkage("0e"),
        f["dup2"]: ChapterLinkage("0e"),
    }

    result = link_chapters(linkages)

    rejected = {m.path.name for members, _ in result.rejected for m in members}
    assert rejected == {"main.mkv", "other.mkv", "dup1.mkv", "dup2.mkv"}
    assert all(isinstance(err, StructuralError) for _, err in result.rejected)
    assert result.groups == []
    assert "0a" not in result.segments
