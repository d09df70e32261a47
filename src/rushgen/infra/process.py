"""
Process utilities: the single narrow interface used to run external tools.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one blocking child-process call."""

    command: tuple
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@runtime_checkable
class ToolRunner(Protocol):
    """Structural interface for anything that can run an external tool."""

    def __call__(
        self,
        command: Sequence[str],
        cwd: Path,
        *,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ToolResult: ...


def run_tool(
    command: Sequence[str],
    cwd: Path,
    *,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> ToolResult:
    """Run *command* in *cwd*, block until it exits, and capture its output.

    Never raises for a failing command: a missing executable, a timeout or a
    non-zero exit all come back as a ``ToolResult`` with a non-zero
    ``exit_code`` so the caller decides what is fatal.
    """
    cmd = tuple(str(part) for part in command)
    full_env = None
    if env:
        full_env = {**os.environ, **env}

    logger.debug("Running %s in %s", " ".join(cmd), cwd)
    try:
        r = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=full_env,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        return ToolResult(cmd, 1, _as_text(e.stdout), f"<timeout after {timeout}s>")
    except OSError as e:
        return ToolResult(cmd, 127, "", str(e))

    logger.debug("%s exited with %d", cmd[0], r.returncode)
    return ToolResult(cmd, r.returncode, r.stdout or "", r.stderr or "")


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
