"""
Structured events emitted by the generate pipeline.

The pipeline never prints; it hands ``GenerateEvent`` objects to a
``GenerateReporter``. The CLI plugs in a console presenter, tests plug in a
recorder.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable


class EventKind(str, Enum):
    STARTED = "started"
    STAGE_START = "stage_start"
    STAGE_END = "stage_end"
    PROGRESS = "progress"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    FINISHED = "finished"


class Stage(str, Enum):
    LOAD_CONFIGURATION = "load-configuration"
    SNAPSHOT_DEPENDENCIES = "snapshot-dependencies"
    CLEAN_NODE_MODULES = "clean-node-modules"
    DELETE_LOCK_ARTIFACT = "delete-lock-artifact"
    DELETE_TEMP_MODULES = "delete-temp-modules"
    RECREATE_AND_POPULATE = "recreate-and-populate"
    ENSURE_INSTALLER = "ensure-installer"
    INSTALL = "install"
    FREEZE = "freeze"


@dataclass(frozen=True)
class GenerateEvent:
    kind: EventKind
    message: str = ""
    stage: Optional[Stage] = None
    elapsed_seconds: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class GenerateReporter(Protocol):
    """Anything that consumes pipeline events."""

    def handle(self, event: GenerateEvent) -> None: ...


class NullReporter:
    def handle(self, event: GenerateEvent) -> None:
        return None
