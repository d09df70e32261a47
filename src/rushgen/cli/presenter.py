"""
Console rendering of pipeline events.
"""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from ..core.events import EventKind, GenerateEvent
from ..core.pipeline import format_duration


class ConsolePresenter:
    """Prints human-readable progress lines for ``GenerateEvent``s."""

    def __init__(
        self,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
        verbose: bool = False,
    ) -> None:
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.verbose = verbose

    def _print(self, text: str = "", stream: Optional[TextIO] = None) -> None:
        print(text, file=stream or self.out, flush=True)

    def handle(self, event: GenerateEvent) -> None:
        kind = event.kind
        if kind == EventKind.STARTED:
            mode = " (lazy)" if event.details.get("lazy") else ""
            self._print(event.message + mode)
            self._print()
        elif kind == EventKind.STAGE_START:
            if self.verbose and event.stage is not None:
                self._print(f"[{event.stage.value}]")
        elif kind == EventKind.STAGE_END:
            if self.verbose and event.stage is not None and event.elapsed_seconds is not None:
                self._print(f"[{event.stage.value}] done in {format_duration(event.elapsed_seconds)}")
        elif kind in (EventKind.PROGRESS, EventKind.NOTICE):
            self._print(event.message)
        elif kind == EventKind.WARNING:
            self._print(f"Warning: {event.message}", self.err)
        elif kind == EventKind.ERROR:
            stage = f" during {event.stage.value}" if event.stage is not None else ""
            self._print(f"ERROR{stage}: {event.message}", self.err)
        elif kind == EventKind.FINISHED:
            self._print()
            self._print(event.message)
            hint = event.details.get("hint")
            if hint:
                self._print()
                self._print(hint)
