"""
Tests for the batch pipeline.
"""

import asyncio
from pathlib import Path

import pytest

from src.framescript import extract, pipeline
from src.framescript.errors import ToolInvocationError
from src.framescript.extract import AssetExtractor, OverwritePolicy
from src.framescript.pipeline import BatchOptions, BatchPipeline
from src.framescript.models import FilterChainConfig, OrderedChapter
from src.tests.conftest import StaticProbe, metadata


@pytest.fixture
def fake_mkvextract(monkeypatch):
    calls = []

    def fake_run(cmd, *, path=None):
        calls.append(cmd)
        _, out = cmd[-1].split(":", 1)
        Path(out).write_text("extracted")
        return ""

    monkeypatch.setattr(extract, "run", fake_run)
    return calls


def run_batch(paths, probe, policy=None, **options):
    options.setdefault("progress", False)
    pipeline = BatchPipeline(
        BatchOptions(**options),
        probe=probe,
        extractor=AssetExtractor(policy=policy or OverwritePolicy("always")),
    )
    return asyncio.run(pipeline.run(paths))


def touch(path: Path) -> Path:
    path.write_bytes(b"")
    return path


def test_probe_failure_does_not_stop_siblings(tmp_path):
    """Test one failed probe is reported while the other file still gets a script."""
    bad = touch(tmp_path / "bad.mkv")
    good = touch(tmp_path / "good.mkv")
    probe = StaticProbe(
        {
            bad: ToolInvocationError("mkvmerge exited with code 2", bad, 2, "Error"),
            good: metadata(),
        }
    )

    report = run_batch([bad, good], probe)

    assert not report.ok
    assert [(f.path, f.kind) for f in report.failures] == [(bad, "ToolInvocationError")]
    assert report.written == [tmp_path / "good.avs"]
    assert not (tmp_path / "bad.avs").exists()


def test_non_containers_are_not_probed(tmp_path):
    """Test only Matroska files go through the probe."""
    clip = touch(tmp_path / "clip.mp4")
    probe = StaticProbe()

    report = run_batch([clip], probe, script_format="vapoursynth")

    assert report.ok
    assert probe.calls == []
    assert (tmp_path / "clip.vpy").read_text(encoding="utf-8").endswith("video.set_output()\n")


def test_unknown_files_are_skipped(tmp_path):
    """Test unrecognized inputs are skipped, not failed."""
    notes = tmp_path / "notes.txt"
    notes.write_text("hello")

    report = run_batch([notes], StaticProbe())

    assert report.ok
    assert report.skipped == [notes]
    assert report.written == []


def test_chapter_group_is_chained(tmp_path):
    """Test linked segments produce chained scripts."""
    ep1 = touch(tmp_path / "ep1.mkv")
    ep2 = touch(tmp_path / "ep2.mkv")
    probe = StaticProbe(
        {
            ep1: metadata("01", next_="02"),
            ep2: metadata("02", previous="01"),
        }
    )

    report = run_batch([ep2, ep1], probe)

    assert report.ok
    assert sorted(report.written) == [tmp_path / "ep1.avs", tmp_path / "ep2.avs"]
    assert 'video1 = video1 + Import("ep2.avs")' in (tmp_path / "ep1.avs").read_text()
    assert "video2" in (tmp_path / "ep2.avs").read_text()


def test_member_failure_fails_whole_group(tmp_path, monkeypatch):
    """Test a failed extraction withholds every script of the group."""
    ep1 = touch(tmp_path / "ep1.mkv")
    ep2 = touch(tmp_path / "ep2.mkv")
    solo = touch(tmp_path / "solo.mkv")
    probe = StaticProbe(
        {
            ep1: metadata("01", next_="02", subtitles=True),
            ep2: metadata("02", previous="01", subtitles=True),
            solo: metadata("03"),
        }
    )

    def failing_run(cmd, *, path=None):
        raise ToolInvocationError("mkvextract exited with code 2", path, 2, "Error")

    monkeypatch.setattr(extract, "run", failing_run)

    report = run_batch([ep1, ep2, solo], probe, extract_subtitles=True)

    assert {f.path for f in report.failures} == {ep1, ep2}
    assert {f.kind for f in report.failures} == {"ExtractionError"}
    assert report.written == [tmp_path / "solo.avs"]


def test_extracted_subtitles_are_imported(tmp_path, fake_mkvextract):
    """Test extraction output is referenced from the script."""
    ep1 = touch(tmp_path / "ep1.mkv")
    probe = StaticProbe({ep1: metadata(subtitles=True, fonts=True)})

    report = run_batch([ep1], probe, extract_subtitles=True, dest_dir=tmp_path / "out")

    assert report.ok
    script = (tmp_path / "out" / "ep1.avs").read_text()
    assert 'video1 = FFVideoSource("../ep1.mkv")' in script
    assert 'fontdir = "fonts"' in script
    assert 'video1 = assrender(video1, "ep1.ass", fontdir=fontdir)' in script


def test_audio_only_when_present(tmp_path):
    """Test audio is loaded only from containers that have audio tracks."""
    loud = touch(tmp_path / "loud.mkv")
    mute = touch(tmp_path / "mute.mkv")
    probe = StaticProbe({loud: metadata(), mute: metadata(audio=False)})

    report = run_batch([loud, mute], probe, audio=True)

    assert report.ok
    assert "AudioDub" in (tmp_path / "loud.avs").read_text()
    assert "AudioDub" not in (tmp_path / "mute.avs").read_text()
    assert len(report.warnings) == 1


def test_missing_subtitle_track_index(tmp_path, fake_mkvextract):
    """Test asking for a subtitle track the container lacks fails that file."""
    ep1 = touch(tmp_path / "ep1.mkv")
    probe = StaticProbe({ep1: metadata(subtitles=True)})

    report = run_batch([ep1], probe, extract_subtitles=True, sub_track=3)

    assert [f.kind for f in report.failures] == ["ExtractionError"]
    assert fake_mkvextract == []


def test_shared_fonts_are_not_prompted_for(tmp_path, fake_mkvextract):
    """Test standalone files sharing a font ask nothing when the run wrote it."""
    files = [touch(tmp_path / f"ep{i}.mkv") for i in (1, 2, 3)]
    probe = StaticProbe({f: metadata(subtitles=True, fonts=True) for f in files})
    questions = []

    def prompt(question):
        questions.append(question)
        return "n"

    report = run_batch(
        files, probe, policy=OverwritePolicy("ask", prompt=prompt), extract_subtitles=True
    )

    assert report.ok
    assert questions == []
    assert len(report.written) == 3
    for i in (1, 2, 3):
        assert 'fontdir = "fonts"' in (tmp_path / f"ep{i}.avs").read_text()


def test_container_without_video_is_skipped(tmp_path):
    """Test a Matroska file with no video track is skipped with a warning."""
    music = touch(tmp_path / "music.mkv")
    ep1 = touch(tmp_path / "ep1.mkv")
    probe = StaticProbe({music: metadata(video=False), ep1: metadata()})

    report = run_batch([music, ep1], probe)

    assert report.ok
    assert report.skipped == [music]
    assert report.written == [tmp_path / "ep1.avs"]
    assert not (tmp_path / "music.avs").exists()


def test_write_failure_removes_group_scripts(tmp_path, monkeypatch):
    """Test a failed write leaves no script of the group behind."""
    ep1 = touch(tmp_path / "ep1.mkv")
    ep2 = touch(tmp_path / "ep2.mkv")
    probe = StaticProbe(
        {
            ep1: metadata("01", next_="02"),
            ep2: metadata("02", previous="01"),
        }
    )
    write_script = pipeline.write_script

    def failing_write(document):
        if document.path.name == "ep1.avs":
            raise PermissionError(13, "Permission denied", str(document.path))
        return write_script(document)

    monkeypatch.setattr(pipeline, "write_script", failing_write)

    report = run_batch([ep1, ep2], probe)

    assert report.written == []
    assert not (tmp_path / "ep1.avs").exists()
    assert not (tmp_path / "ep2.avs").exists()
    assert sorted((f.path, f.kind) for f in report.failures) == [
        (ep1, "PermissionError"),
        (ep2, "PermissionError"),
    ]


# 23.976 fps
FRAME_NS = 41_708_333


def test_ordered_chapters_play_external_segment(tmp_path):
    """Test an ordered edition is cut into trimmed parts from each file."""
    main = touch(tmp_path / "main.mkv")
    op = touch(tmp_path / "op.mkv")
    chapters = (
        OrderedChapter(0, 45_000_000_000),
        OrderedChapter(45_000_000_000, 90_000_000_000),
        OrderedChapter(0, 60_500_000_000, "0c"),
        OrderedChapter(90_000_000_000, 1_200_000_000_000),
    )
    probe = StaticProbe(
        {
            main: metadata("0a", chapters=chapters, frame_duration_ns=FRAME_NS),
            op: metadata("0c"),
        }
    )

    report = run_batch([main, op], probe, filters=FilterChainConfig(remove_grain=False))

    assert report.ok
    assert sorted(report.written) == [tmp_path / "main.avs", tmp_path / "op.avs"]
    assert (tmp_path / "main.avs").read_text().splitlines() == [
        'video1_1 = FFVideoSource("main.mkv")',
        "video1_1 = Trim(video1_1, 0, 2156)",
        'video1_2 = FFVideoSource("op.mkv")',
        "video1_2 = Trim(video1_2, 0, 1449)",
        'video1_3 = FFVideoSource("main.mkv")',
        "video1_3 = Trim(video1_3, 2157, 28770)",
        "video1 = video1_1 + video1_2 + video1_3",
        "video1",
    ]


def test_ordered_chapters_with_missing_segment(tmp_path):
    """Test an edition that needs a file outside the batch is rejected."""
    main = touch(tmp_path / "main.mkv")
    chapters = (OrderedChapter(0, 60_000_000_000, "0c"),)
    probe = StaticProbe({main: metadata("0a", chapters=chapters, frame_duration_ns=FRAME_NS)})

    report = run_batch([main], probe)

    assert [(f.path, f.kind) for f in report.failures] == [(main, "StructuralError")]
    assert report.written == []


def test_ordered_chapters_need_frame_rate(tmp_path):
    """Test chapter times cannot become frames without a known rate."""
    main = touch(tmp_path / "main.mkv")
    chapters = (OrderedChapter(0, 60_000_000_000),)
    probe = StaticProbe({main: metadata("0a", chapters=chapters)})

    failed = run_batch([main], probe)
    converted = run_batch([main], probe, filters=FilterChainConfig(vfr_to_120=True))

    assert [f.kind for f in failed.failures] == ["ScriptBuildError"]
    assert converted.ok
    # 60 s at 120000/1001
    assert "Trim(video1_1, 0, 7191)" in (tmp_path / "main.avs").read_text()
