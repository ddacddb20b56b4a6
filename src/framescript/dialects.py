"""
Script syntax for AviSynth and VapourSynth.

Each dialect renders single statements; ordering and reference resolution live in the
script builder.
"""

from .errors import ScriptBuildError
from .filters import FilterStep, StepKind
from .models import SourceFilter

IMAGE_SUBTITLE_EXTENSIONS = (".sup", ".idx")


def apply_to(label: str, call: str) -> str:
    """Insert ``label`` as the first argument of a raw filter call."""
    if "()" in call:
        return call.replace("()", f"({label})", 1)
    if "(" in call:
        return call.replace("(", f"({label}, ", 1)
    return f"{call}({label})"


class Dialect:
    name = ""
    extension = ""
    # nested scripts run in the working directory of the script that loads them
    nested_scripts_share_cwd = False

    def quote(self, value: str) -> str:
        raise NotImplementedError

    def header(self, has_continuation: bool) -> list[str]:
        return []

    def source(self, label: str, source: SourceFilter, ref: str, timecodes: str | None) -> str:
        raise NotImplementedError

    def step(self, label: str, step: FilterStep, timecodes: str | None = None) -> str:
        raise NotImplementedError

    def audio(self, label: str, ref: str) -> str:
        raise NotImplementedError

    def font_dir(self, ref: str) -> str:
        raise NotImplementedError

    def subtitle(self, label: str, ref: str, with_fonts: bool) -> str:
        raise NotImplementedError

    def splice(self, label: str, parts: list[str]) -> str:
        return f"{label} = {' + '.join(parts)}"

    def continuation(self, label: str, ref: str) -> str:
        raise NotImplementedError

    def output(self, label: str, is_head: bool, audio_out: str | None = None) -> list[str]:
        raise NotImplementedError

    @staticmethod
    def _is_image_subtitle(ref: str) -> bool:
        return ref.lower().endswith(IMAGE_SUBTITLE_EXTENSIONS)


class AvisynthDialect(Dialect):
    name = "avisynth"
    extension = "avs"

    def quote(self, value: str) -> str:
        # AviSynth has no escapes; triple quotes allow embedded double quotes
        if '"' in value:
            return f'"""{value}"""'
        return f'"{value}"'

    def source(self, label: str, source: SourceFilter, ref: str, timecodes: str | None) -> str:
        q = self.quote(ref)
        if source is SourceFilter.DGDECODE_MPEG2:
            call = f"DGDecode_MPEG2Source({q})"
        elif source is SourceFilter.AVC_SOURCE:
            call = f"AVCSource({q})"
        elif source is SourceFilter.LSMASH:
            call = f"LWLibavVideoSource({q})"
        elif source is SourceFilter.FFMS2:
            extra = f", timecodes={self.quote(timecodes)}" if timecodes else ""
            call = f"FFVideoSource({q}{extra})"
        else:
            raise ScriptBuildError(f"No AviSynth source filter for strategy {source.value}")
        return f"{label} = {call}"

    def step(self, label: str, step: FilterStep, timecodes: str | None = None) -> str:
        if step.kind is StepKind.DOWNSAMPLE:
            call = f"ConvertBits({label}, {step.args[0]}, dither=0)"
        elif step.kind is StepKind.REMOVE_GRAIN:
            call = f"RemoveGrain({label}, {step.args[0]})"
        elif step.kind is StepKind.RESIZE:
            width, height = step.args
            call = f"Spline64Resize({label}, {width}, {height})"
        elif step.kind is StepKind.FRAME_RATE:
            fpsnum, fpsden = step.args
            call = (
                f"vfrtocfr({label}, timecodes={self.quote(timecodes or '')}, "
                f"fpsnum={fpsnum}, fpsden={fpsden})"
            )
        elif step.kind is StepKind.TRIM:
            first, last = step.args
            # a last frame of 0 means "to the end"; -1 asks for exactly one frame
            call = f"Trim({label}, {first}, {last if last else -1})"
        else:
            call = apply_to(label, step.call)
        return f"{label} = {call}"

    def audio(self, label: str, ref: str) -> str:
        return f"{label} = AudioDub({label}, FFAudioSource({self.quote(ref)}))"

    def font_dir(self, ref: str) -> str:
        return f"fontdir = {self.quote(ref)}"

    def subtitle(self, label: str, ref: str, with_fonts: bool) -> str:
        q = self.quote(ref)
        if ref.lower().endswith(".sup"):
            return f"{label} = SupTitle({label}, {q})"
        if ref.lower().endswith(".idx"):
            return f"{label} = VobSub({label}, {q})"
        if with_fonts:
            return f"{label} = assrender({label}, {q}, fontdir=fontdir)"
        return f"{label} = TextSub({label}, {q})"

    def continuation(self, label: str, ref: str) -> str:
        return f"{label} = {label} + Import({self.quote(ref)})"

    def output(self, label: str, is_head: bool, audio_out: str | None = None) -> list[str]:
        # the last expression is the script's return value, also for imported segments
        return [label]


class VapoursynthDialect(Dialect):
    name = "vapoursynth"
    extension = "vpy"
    nested_scripts_share_cwd = True

    def quote(self, value: str) -> str:
        return repr(value)

    def header(self, has_continuation: bool) -> list[str]:
        lines = ["import vapoursynth as vs", "from vapoursynth import core"]
        if has_continuation:
            lines.insert(0, "import runpy")
        return lines

    def source(self, label: str, source: SourceFilter, ref: str, timecodes: str | None) -> str:
        q = self.quote(ref)
        if source is SourceFilter.DGDECODE_MPEG2:
            call = f"core.d2v.Source(input={q})"
        elif source is SourceFilter.LSMASH:
            call = f"core.lsmas.LWLibavSource(source={q})"
        elif source is SourceFilter.FFMS2:
            extra = f", timecodes={self.quote(timecodes)}" if timecodes else ""
            call = f"core.ffms2.Source(source={q}{extra})"
        else:
            raise ScriptBuildError(f"No VapourSynth source filter for strategy {source.value}")
        return f"{label} = {call}"

    def step(self, label: str, step: FilterStep, timecodes: str | None = None) -> str:
        if step.kind is StepKind.DOWNSAMPLE:
            call = f"core.resize.Spline36({label}, format=vs.YUV420P{step.args[0]})"
        elif step.kind is StepKind.REMOVE_GRAIN:
            call = f"core.rgvs.RemoveGrain({label}, {step.args[0]})"
        elif step.kind is StepKind.RESIZE:
            width, height = step.args
            call = f"core.resize.Spline36({label}, {width}, {height})"
        elif step.kind is StepKind.FRAME_RATE:
            fpsnum, fpsden = step.args
            call = f"core.vfrtocfr.VFRToCFR({label}, {self.quote(timecodes or '')}, {fpsnum}, {fpsden})"
        elif step.kind is StepKind.TRIM:
            first, last = step.args
            call = f"core.std.Trim({label}, {first}, {last})"
        else:
            call = apply_to(label, step.call)
        return f"{label} = {call}"

    def audio(self, label: str, ref: str) -> str:
        return f"{label} = core.damb.Read({label}, {self.quote(ref)})"

    def font_dir(self, ref: str) -> str:
        return f"fontdir = {self.quote(ref)}"

    def subtitle(self, label: str, ref: str, with_fonts: bool) -> str:
        q = self.quote(ref)
        if self._is_image_subtitle(ref):
            return f"{label} = core.sub.ImageFile({label}, {q})"
        if with_fonts:
            return f"{label} = core.sub.TextFile({label}, {q}, fontdir=fontdir)"
        return f"{label} = core.sub.TextFile({label}, {q})"

    def continuation(self, label: str, ref: str) -> str:
        return f"{label} = {label} + runpy.run_path({self.quote(ref)})['video']"

    def output(self, label: str, is_head: bool, audio_out: str | None = None) -> list[str]:
        lines = [f"video = {label}"]
        if is_head:
            if audio_out is not None:
                lines.append(f"video = core.damb.Write(video, {self.quote(audio_out)})")
            lines.append("video.set_output()")
        return lines


DIALECTS = {
    AvisynthDialect.name: AvisynthDialect,
    VapoursynthDialect.name: VapoursynthDialect,
}


def get_dialect(name: str) -> Dialect:
    try:
        return DIALECTS[name]()
    except KeyError:
        raise ValueError(f"Unknown script format: {name}") from None
