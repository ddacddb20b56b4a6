"""
Error taxonomy for script generation.

Every failure surfaced by the batch keeps its own class so that reports can tell a missing
tool apart from malformed probe output, a broken chapter chain or a failed extraction.
"""

from pathlib import Path


class FramescriptError(Exception):
    """Base class for all errors raised while generating scripts."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path

    @property
    def kind(self) -> str:
        return type(self).__name__


class ToolInvocationError(FramescriptError):
    """An external binary is missing or exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        path: Path | None = None,
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message, path)
        self.returncode = returncode
        self.output = output


class ParseError(FramescriptError):
    """Probe output does not match the expected identification schema."""


class StructuralError(FramescriptError):
    """Chapter linkage cannot form a simple chain (cycle, branch or duplicate UID)."""

    def __init__(self, message: str, members: list[Path] | None = None) -> None:
        super().__init__(message, members[0] if members else None)
        self.members = list(members or [])


class ExtractionError(FramescriptError):
    """A subtitle track or font attachment could not be extracted."""


class PathResolutionError(FramescriptError):
    """No usable relative reference exists between two paths."""


class ScriptBuildError(FramescriptError):
    """The selected script dialect cannot express the requested statement."""


class DanglingReferenceWarning(UserWarning):
    """A chapter link points at a segment that is not part of the batch."""

    def __init__(self, message: str, path: Path | None = None, uid: str | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.uid = uid
