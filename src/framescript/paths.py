"""
Path resolution between generated scripts and the assets they reference.

All comparisons go through ``canonicalize`` first; nothing else in the package should
normalize paths on its own.
"""

import logging
import ntpath
import os
from pathlib import Path

from .errors import PathResolutionError
from .models import InputFile

logger = logging.getLogger("framescript")

DEFAULT_MAX_DEPTH = 3


def canonicalize(path: str | os.PathLike, pathmod=os.path, cwd: str | None = None) -> str:
    """Return an absolute, lexically normalized form of ``path``.

    ``.`` and ``..`` segments are collapsed, separators unified and, for Windows paths,
    the drive letter upper-cased. Symlinks are left alone so that a reference computed
    from the result resolves back to the same spelling.
    """
    p = pathmod.expanduser(os.fspath(path))
    if pathmod is ntpath:
        p = p.replace("/", "\\")
    if not pathmod.isabs(p):
        p = pathmod.join(cwd or os.getcwd(), p)
    p = pathmod.normpath(p)
    drive, rest = pathmod.splitdrive(p)
    if len(drive) == 2 and drive[1] == ":":
        p = drive.upper() + rest
    return p


class PathResolver:
    """Computes script locations and asset references relative to a destination directory.

    References are relative when the asset and the destination share a common ancestor
    below the filesystem root and the asset is at most ``max_depth`` parent steps away;
    otherwise the canonical absolute path is used.
    """

    def __init__(
        self,
        dest_dir: str | os.PathLike,
        max_depth: int = DEFAULT_MAX_DEPTH,
        pathmod=os.path,
    ) -> None:
        self.pathmod = pathmod
        self.dest_dir = canonicalize(dest_dir, pathmod)
        self.max_depth = max_depth

    @classmethod
    def for_input(
        cls, input_file: InputFile, dest_dir: str | os.PathLike | None = None, **kwargs
    ) -> "PathResolver":
        """Resolver whose destination defaults to the input's own directory."""
        return cls(dest_dir if dest_dir is not None else input_file.path.parent, **kwargs)

    def script_path(self, input_file: InputFile, extension: str) -> Path:
        return Path(self.pathmod.join(self.dest_dir, f"{input_file.stem}.{extension.lstrip('.')}"))

    def sidecar_path(self, input_file: InputFile, suffix: str) -> Path:
        return Path(self.pathmod.join(self.dest_dir, f"{input_file.stem}{suffix}"))

    def relative_reference(self, target: str | os.PathLike) -> str:
        pm = self.pathmod
        target_abs = canonicalize(target, pm)
        try:
            common = pm.commonpath([self.dest_dir, target_abs])
        except ValueError as e:
            raise PathResolutionError(
                f"{target_abs} and {self.dest_dir} are on different drives", Path(target_abs)
            ) from e

        drive, rest = pm.splitdrive(common)
        if rest in ("", pm.sep) or (pm.altsep and rest == pm.altsep):
            raise PathResolutionError(
                f"{target_abs} shares no common ancestor with {self.dest_dir}", Path(target_abs)
            )

        rel = pm.relpath(target_abs, self.dest_dir)
        depth = sum(1 for part in rel.split(pm.sep) if part == pm.pardir)
        if depth > self.max_depth:
            raise PathResolutionError(
                f"{target_abs} is {depth} levels above {self.dest_dir} (limit {self.max_depth})",
                Path(target_abs),
            )
        return rel

    def reference(self, target: str | os.PathLike) -> str:
        """Reference to ``target`` valid from the destination directory. Never empty."""
        try:
            return self.relative_reference(target)
        except PathResolutionError as e:
            logger.debug("%s: %s; using absolute path", e.kind, e)
            return canonicalize(target, self.pathmod)

    def resolve(self, reference: str) -> str:
        """Inverse of ``reference``: the absolute path a reference points at."""
        return canonicalize(self.pathmod.join(self.dest_dir, reference), self.pathmod)
