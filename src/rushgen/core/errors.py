"""
Error taxonomy for the generate pipeline.

Every fatal condition is a ``RushGenError`` subclass so the CLI can report it
and exit non-zero without catching unrelated exceptions.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class RushGenError(Exception):
    """Base class for all errors raised by rushgen."""

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        path: Optional[Path] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.path = path

    def __str__(self) -> str:
        parts = [self.message]
        if self.path is not None:
            parts.append(f"(path: {self.path})")
        return " ".join(parts)


class ConfigurationError(RushGenError):
    """Missing or invalid root configuration."""


class ManifestError(RushGenError):
    """Malformed project manifest or temp alias collision."""

    def __init__(
        self,
        message: str,
        *,
        project: Optional[str] = None,
        path: Optional[Path] = None,
    ) -> None:
        if project:
            message = f"[{project}] {message}"
        super().__init__(message, path=path)
        self.project = project


class FilesystemError(RushGenError):
    """A filesystem operation failed (after retries where retries apply)."""


class ToolMissingError(RushGenError):
    """The external installer could not be resolved."""


class ProcessExitError(RushGenError):
    """An installer invocation returned a non-zero exit code."""

    OUTPUT_MAX = 4000

    def __init__(
        self,
        command: Sequence[str],
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
        *,
        cwd: Optional[Path] = None,
    ) -> None:
        self.command = list(command)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.cwd = cwd
        message = f'"{" ".join(self.command)}" failed with exit code {exit_code}'
        if cwd is not None:
            message += f" in {cwd}"
        output = _tail((stdout or "") + (stderr or ""), self.OUTPUT_MAX)
        if output.strip():
            message += f"\n{output}"
        super().__init__(message)


class IllegalTransitionError(RushGenError):
    """A filesystem transition was entered out of order."""


def _tail(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return "... (truncated)\n" + text[-max_len:]
