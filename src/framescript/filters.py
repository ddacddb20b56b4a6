"""
Filter chain assembly.
"""

from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from math import floor

from .models import FilterChainConfig, OrderedChapter

# ffms2 timecodes are resampled onto this rate
VFR_TARGET_FPSNUM = 120000
VFR_TARGET_FPSDEN = 1001
REMOVE_GRAIN_MODE = 1


class StepKind(Enum):
    DOWNSAMPLE = "downsample"
    REMOVE_GRAIN = "remove-grain"
    CUSTOM = "custom"
    RESIZE = "resize"
    FRAME_RATE = "frame-rate"
    TRIM = "trim"


@dataclass(frozen=True)
class FilterStep:
    kind: StepKind
    args: tuple[int, ...] = ()
    call: str = ""  # raw call text, CUSTOM only


def assemble_filter_chain(config: FilterChainConfig) -> list[FilterStep]:
    """Ordered filter steps for ``config``.

    The order is fixed: bit-depth reduction, grain removal, user filters, resize, then
    frame-rate conversion. Resize sees the original frame geometry and rate conversion
    is the last timing step, so subtitles rendered afterwards follow the output timing.
    """
    steps: list[FilterStep] = []
    if config.downsample:
        steps.append(FilterStep(StepKind.DOWNSAMPLE, (8,)))
    if config.remove_grain:
        steps.append(FilterStep(StepKind.REMOVE_GRAIN, (REMOVE_GRAIN_MODE,)))
    for call in config.extra_filters:
        steps.append(FilterStep(StepKind.CUSTOM, call=call))
    if config.resize_to is not None:
        steps.append(FilterStep(StepKind.RESIZE, tuple(config.resize_to)))
    if config.vfr_to_120:
        steps.append(FilterStep(StepKind.FRAME_RATE, (VFR_TARGET_FPSNUM, VFR_TARGET_FPSDEN)))
    return steps


def output_frame_rate(config: FilterChainConfig, native: Fraction | None) -> Fraction | None:
    """Rate the chain emits: the VFR target when converting, else the source's own."""
    if config.vfr_to_120:
        return Fraction(VFR_TARGET_FPSNUM, VFR_TARGET_FPSDEN)
    return native


def merge_local_chapters(chapters: list[OrderedChapter]) -> list[OrderedChapter]:
    """Collapse runs of consecutive local chapters into one range.

    External chapters stay separate, each one is a cut into another file.
    """
    merged: list[OrderedChapter] = []
    for chapter in chapters:
        last = merged[-1] if merged else None
        if last is not None and not last.is_external and not chapter.is_external:
            merged[-1] = OrderedChapter(last.start_ns, chapter.end_ns)
        else:
            merged.append(chapter)
    return merged


def chapter_frames(chapter: OrderedChapter, fps: Fraction) -> tuple[int, int]:
    """First and last (inclusive) frame a chapter covers at ``fps``."""
    start = floor(chapter.start_ns * fps / 1_000_000_000)
    end = floor(chapter.end_ns * fps / 1_000_000_000) - 1
    return start, max(start, end)


def trim_step(start_frame: int, end_frame: int) -> FilterStep:
    return FilterStep(StepKind.TRIM, (start_frame, end_frame))
