"""
Subprocess helpers and external tool configuration (mkvmerge / mkvextract).
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .errors import ToolInvocationError

logger = logging.getLogger("framescript")


@dataclass(frozen=True)
class ToolPaths:
    """Executables used to inspect and unpack Matroska files."""

    mkvmerge: str = "mkvmerge"
    mkvextract: str = "mkvextract"

    @classmethod
    def from_env(cls) -> "ToolPaths":
        return cls(
            mkvmerge=os.getenv("FRAMESCRIPT_MKVMERGE") or "mkvmerge",
            mkvextract=os.getenv("FRAMESCRIPT_MKVEXTRACT") or "mkvextract",
        )


def run(cmd: list[str], *, path: Path | None = None) -> str:
    """Run an external tool and return its stdout.

    A missing executable or a non-zero exit raises ToolInvocationError; the failure is
    never reported as empty output.
    """
    logger.debug("Running: %s", " ".join(map(str, cmd)))
    try:
        proc = subprocess.run(
            [str(c) for c in cmd],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except FileNotFoundError as e:
        raise ToolInvocationError(f"Executable not found: {cmd[0]}", path=path) from e
    except OSError as e:
        raise ToolInvocationError(f"Cannot run {cmd[0]}: {e}", path=path) from e

    if proc.returncode != 0:
        output = (proc.stderr or "").strip() or (proc.stdout or "").strip()
        logger.error("Command failed with code %d: %s", proc.returncode, output)
        raise ToolInvocationError(
            f"{Path(str(cmd[0])).name} exited with code {proc.returncode}",
            path=path,
            returncode=proc.returncode,
            output=output,
        )
    return proc.stdout


def ensure_dir(path: Path | str) -> None:
    """Ensure directory exists."""
    if path:
        Path(path).mkdir(parents=True, exist_ok=True)
