"""
Filesystem transition for the shared install folders.

Tears down ``common/node_modules``, the previous shrinkwrap file and
``common/temp_modules``, then recreates the temp modules and the root
``common/package.json``. States are entered strictly in order. Nothing is
rolled back on failure: the next run starts by clearing the same folders.
"""

from __future__ import annotations

import glob
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..infra.fs import (
    Recycler,
    create_folder_with_retry,
    delete_path,
    make_folder,
    write_text_file,
)
from .errors import IllegalTransitionError
from .events import EventKind, GenerateEvent, GenerateReporter, NullReporter
from .project import Manifest
from .workspace import build_root_manifest, render_manifest, sort_projects

logger = logging.getLogger(__name__)


class TransitionState(str, Enum):
    INITIAL = "initial"
    CLEAN_NODE_MODULES = "clean-node-modules"
    DELETE_LOCK_ARTIFACT = "delete-lock-artifact"
    DELETE_TEMP_MODULES_ROOT = "delete-temp-modules-root"
    RECREATE_AND_POPULATE = "recreate-and-populate"
    DONE = "done"


TRANSITIONS: Dict[TransitionState, List[TransitionState]] = {
    TransitionState.INITIAL: [TransitionState.CLEAN_NODE_MODULES],
    TransitionState.CLEAN_NODE_MODULES: [TransitionState.DELETE_LOCK_ARTIFACT],
    TransitionState.DELETE_LOCK_ARTIFACT: [TransitionState.DELETE_TEMP_MODULES_ROOT],
    TransitionState.DELETE_TEMP_MODULES_ROOT: [TransitionState.RECREATE_AND_POPULATE],
    TransitionState.RECREATE_AND_POPULATE: [TransitionState.DONE],
    TransitionState.DONE: [],
}


class FilesystemTransitionController:
    """Runs the ordered teardown/recreate of one workspace's common folder."""

    def __init__(
        self,
        config,
        reporter: Optional[GenerateReporter] = None,
        recycler: Optional[Recycler] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.reporter = reporter or NullReporter()
        self.recycler = recycler or Recycler(
            config.common_folder, async_delete=config.recycler_async_delete
        )
        self._sleep = sleep
        self.state = TransitionState.INITIAL

    # --- State handling ---

    def _enter(self, target: TransitionState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise IllegalTransitionError(
                f"Illegal transition {self.state.value} -> {target.value}",
                stage=target.value,
            )
        logger.debug("Transition %s -> %s", self.state.value, target.value)
        self.state = target

    def _progress(self, message: str) -> None:
        self.reporter.handle(GenerateEvent(kind=EventKind.PROGRESS, message=message))

    # --- Stages ---

    def clean_node_modules(self, lazy: bool) -> List[Path]:
        """Recycle ``common/node_modules`` (full) or only its temp modules (lazy).

        Returns the paths that were recycled.
        """
        self._enter(TransitionState.CLEAN_NODE_MODULES)
        node_modules = self.config.node_modules_folder
        prefix = self.config.temp_module_prefix
        recycled: List[Path] = []

        self.recycler.purge()

        if lazy:
            # Keep third-party packages; drop only our own temp modules,
            # recognised by their name prefix.
            self._progress(f"Deleting common/node_modules/{prefix}*")
            if node_modules.is_dir():
                for entry in sorted(node_modules.glob(glob.escape(prefix) + "*")):
                    self.recycler.recycle(entry)
                    recycled.append(entry)
        elif node_modules.exists():
            self._progress("Deleting common/node_modules folder...")
            self.recycler.recycle(node_modules)
            recycled.append(node_modules)

        logger.info("Recycled %d path(s) from %s", len(recycled), node_modules)
        return recycled

    def delete_lock_artifact(self) -> bool:
        self._enter(TransitionState.DELETE_LOCK_ARTIFACT)
        shrinkwrap = self.config.shrinkwrap_file
        if not shrinkwrap.exists():
            return False
        self._progress(f"Deleting common/{shrinkwrap.name}")
        delete_path(shrinkwrap)
        return True

    def delete_temp_modules_root(self) -> bool:
        self._enter(TransitionState.DELETE_TEMP_MODULES_ROOT)
        temp_root = self.config.temp_modules_folder
        if not temp_root.exists():
            return False
        self._progress("Deleting common/temp_modules folder")
        delete_path(temp_root)
        return True

    def recreate_and_populate(self, temp_modules: Dict[str, Manifest]) -> Manifest:
        """Write every temp module and the root ``package.json``.

        *temp_modules* maps real package name -> temp manifest. Returns the
        root manifest that was written.
        """
        self._enter(TransitionState.RECREATE_AND_POPULATE)
        temp_root = self.config.temp_modules_folder

        self._progress("Creating a clean common/temp_modules folder")
        create_folder_with_retry(temp_root, self.config.create_folder_retry, sleep=self._sleep)

        root_manifest = build_root_manifest(self.config.pinned_versions, self.config.projects)

        self._progress("Creating temp projects...")
        for project in sort_projects(self.config.projects):
            folder = temp_root / project.temp_alias
            make_folder(folder)
            write_text_file(folder / "package.json", render_manifest(temp_modules[project.package_name]))
            logger.debug("Wrote temp module %s", folder)

        self._progress("Writing common/package.json")
        write_text_file(self.config.common_package_json, render_manifest(root_manifest))
        return root_manifest

    def finish(self) -> None:
        self._enter(TransitionState.DONE)
