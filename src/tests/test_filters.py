"""
Tests for filter chain assembly.
"""

from fractions import Fraction

import pytest

from src.framescript.filters import (
    StepKind,
    assemble_filter_chain,
    chapter_frames,
    merge_local_chapters,
    output_frame_rate,
)
from src.framescript.models import FilterChainConfig, OrderedChapter


def test_default_chain_is_grain_removal_only():
    """Test the default configuration."""
    steps = assemble_filter_chain(FilterChainConfig())

    assert [s.kind for s in steps] == [StepKind.REMOVE_GRAIN]
    assert steps[0].args == (1,)


def test_full_chain_order():
    """Test resize precedes frame-rate conversion and user filters keep their order."""
    config = FilterChainConfig(
        resize_to=(1280, 720),
        vfr_to_120=True,
        downsample=True,
        extra_filters=("Deblock()", "Tweak(sat=1.1)"),
    )

    steps = assemble_filter_chain(config)

    assert [s.kind for s in steps] == [
        StepKind.DOWNSAMPLE,
        StepKind.REMOVE_GRAIN,
        StepKind.CUSTOM,
        StepKind.CUSTOM,
        StepKind.RESIZE,
        StepKind.FRAME_RATE,
    ]
    assert [s.call for s in steps if s.kind is StepKind.CUSTOM] == ["Deblock()", "Tweak(sat=1.1)"]
    assert steps[4].args == (1280, 720)
    assert steps[5].args == (120000, 1001)


def test_empty_chain():
    """Test every filter can be switched off."""
    assert assemble_filter_chain(FilterChainConfig(remove_grain=False)) == []


def test_invalid_resize_rejected():
    """Test non-positive resize dimensions are rejected."""
    with pytest.raises(ValueError):
        FilterChainConfig(resize_to=(0, 720))


def test_consecutive_local_chapters_merge():
    """Test local runs collapse while external chapters stay separate cuts."""
    chapters = [
        OrderedChapter(0, 10),
        OrderedChapter(10, 20),
        OrderedChapter(0, 5, "0c"),
        OrderedChapter(0, 5, "0c"),
        OrderedChapter(20, 30),
    ]

    assert merge_local_chapters(chapters) == [
        OrderedChapter(0, 20),
        OrderedChapter(0, 5, "0c"),
        OrderedChapter(0, 5, "0c"),
        OrderedChapter(20, 30),
    ]


def test_chapter_frames_are_floored_and_inclusive():
    """Test chapter boundaries map to the frames they cover."""
    fps = Fraction(24000, 1001)

    assert chapter_frames(OrderedChapter(0, 1_001_000_000), fps) == (0, 23)
    assert chapter_frames(OrderedChapter(1_001_000_000, 2_002_000_000), fps) == (24, 47)
    assert chapter_frames(OrderedChapter(0, 1), fps) == (0, 0)


def test_output_frame_rate():
    """Test VFR conversion overrides the native rate."""
    native = Fraction(25)

    assert output_frame_rate(FilterChainConfig(), native) == native
    assert output_frame_rate(FilterChainConfig(), None) is None
    assert output_frame_rate(FilterChainConfig(vfr_to_120=True), None) == Fraction(120000, 1001)
