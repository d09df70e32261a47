"""
The generate pipeline.

Sequence (strict, no stage skipped except by the lazy/full branches):

  1. load configuration, snapshot dependencies for package review
  2. clean common/node_modules
  3. delete common/npm-shrinkwrap.json
  4. delete common/temp_modules
  5. recreate common/temp_modules and write common/package.json
  6. ensure npm is available, run "npm install" then "npm shrinkwrap"

Any fatal error is reported as an event and re-raised; a stray ``OSError``
is re-raised as ``FilesystemError`` naming the stage it happened in.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from ..infra.config import RushConfiguration
from ..infra.fs import Recycler
from ..infra.process import ToolRunner, run_tool
from .errors import FilesystemError, RushGenError
from .events import EventKind, GenerateEvent, GenerateReporter, NullReporter, Stage
from .installer import InstallDriver, ensure_installer_available
from .project import Manifest
from .review import PackageReviewChecker
from .temp_modules import generate_temp_modules
from .transition import FilesystemTransitionController

logger = logging.getLogger(__name__)

NEXT_STEP_HINT = 'Next you should probably run: "rush link"'


class Stopwatch:
    """Wall-clock timer with a human-readable rendering."""

    def __init__(self, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock
        self._start: Optional[float] = None
        self._end: Optional[float] = None

    @classmethod
    def start_new(cls, clock: Callable[[], float] = time.perf_counter) -> "Stopwatch":
        sw = cls(clock)
        sw.start()
        return sw

    def start(self) -> None:
        self._start = self._clock()
        self._end = None

    def stop(self) -> None:
        self._end = self._clock()

    @property
    def elapsed_seconds(self) -> float:
        if self._start is None:
            return 0.0
        end = self._end if self._end is not None else self._clock()
        return max(0.0, end - self._start)

    def __str__(self) -> str:
        return format_duration(self.elapsed_seconds)


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.2f} seconds"
    minutes = int(seconds // 60)
    rest = seconds - minutes * 60
    unit = "minute" if minutes == 1 else "minutes"
    return f"{minutes} {unit} {rest:.1f} seconds"


@dataclass
class GenerateResult:
    lazy: bool
    root_manifest: Manifest
    recycled: List[Path] = field(default_factory=list)
    shrinkwrap_written: bool = False
    elapsed_seconds: float = 0.0


class GeneratePipeline:
    """Sequences the generate stages for one workspace."""

    def __init__(
        self,
        load_config: Callable[[], RushConfiguration],
        reporter: Optional[GenerateReporter] = None,
        runner: ToolRunner = run_tool,
        review_checker_factory: Callable[[RushConfiguration], PackageReviewChecker] = PackageReviewChecker,
        recycler_factory: Optional[Callable[[RushConfiguration], Recycler]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._load_config = load_config
        self.reporter = reporter or NullReporter()
        self.runner = runner
        self._review_checker_factory = review_checker_factory
        self._recycler_factory = recycler_factory
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def for_config(cls, config: RushConfiguration, **kwargs) -> "GeneratePipeline":
        return cls(lambda: config, **kwargs)

    def _emit(self, kind: EventKind, message: str = "", **kwargs) -> None:
        self.reporter.handle(GenerateEvent(kind=kind, message=message, **kwargs))

    @contextmanager
    def _stage(self, stage: Stage) -> Iterator[None]:
        self._emit(EventKind.STAGE_START, stage=stage)
        sw = Stopwatch.start_new(self._clock)
        try:
            yield
        except RushGenError as e:
            if e.stage is None:
                e.stage = stage.value
            self._emit(EventKind.ERROR, str(e), stage=stage)
            raise
        except OSError as e:
            filename = getattr(e, "filename", None)
            error = FilesystemError(
                e.strerror or str(e),
                stage=stage.value,
                path=Path(filename) if filename else None,
            )
            self._emit(EventKind.ERROR, str(error), stage=stage)
            raise error from e
        sw.stop()
        self._emit(EventKind.STAGE_END, stage=stage, elapsed_seconds=sw.elapsed_seconds)

    def _snapshot_dependencies(self, config: RushConfiguration) -> None:
        if not config.package_review_enabled:
            return
        with self._stage(Stage.SNAPSHOT_DEPENDENCIES):
            try:
                count = self._review_checker_factory(config).save_current_dependencies()
            except (RushGenError, OSError) as e:
                # Review bookkeeping never blocks a generate run
                logger.warning("Package review snapshot failed: %s", e)
                self._emit(
                    EventKind.WARNING,
                    f"Could not update the package review file: {e}",
                    stage=Stage.SNAPSHOT_DEPENDENCIES,
                )
            else:
                self._emit(EventKind.PROGRESS, f"Updated package review file ({count} packages)")

    def run(self, lazy: bool = False) -> GenerateResult:
        stopwatch = Stopwatch.start_new(self._clock)
        self._emit(EventKind.STARTED, 'Starting "rush generate"', details={"lazy": lazy})

        # 1. Configuration and review snapshot
        with self._stage(Stage.LOAD_CONFIGURATION):
            config = self._load_config()
        self._snapshot_dependencies(config)

        recycler = self._recycler_factory(config) if self._recycler_factory else None
        controller = FilesystemTransitionController(
            config, self.reporter, recycler=recycler, sleep=self._sleep
        )

        # 2. common/node_modules
        with self._stage(Stage.CLEAN_NODE_MODULES):
            recycled = controller.clean_node_modules(lazy)

        # 3. previous shrinkwrap
        with self._stage(Stage.DELETE_LOCK_ARTIFACT):
            controller.delete_lock_artifact()

        # 4. common/temp_modules
        with self._stage(Stage.DELETE_TEMP_MODULES):
            controller.delete_temp_modules_root()

        # 5. temp modules + common/package.json
        with self._stage(Stage.RECREATE_AND_POPULATE):
            temp_modules = generate_temp_modules(config.projects)
            root_manifest = controller.recreate_and_populate(temp_modules)
            controller.finish()

        # 6. npm
        with self._stage(Stage.ENSURE_INSTALLER):
            npm_tool = ensure_installer_available(config, self.runner, self.reporter)
        driver = InstallDriver(config, npm_tool, self.runner, self.reporter)
        with self._stage(Stage.INSTALL):
            driver.install()
        with self._stage(Stage.FREEZE):
            frozen = driver.freeze(lazy)

        stopwatch.stop()
        self._emit(
            EventKind.FINISHED,
            f"Rush generate finished successfully. ({stopwatch})",
            elapsed_seconds=stopwatch.elapsed_seconds,
            details={"hint": NEXT_STEP_HINT},
        )
        return GenerateResult(
            lazy=lazy,
            root_manifest=root_manifest,
            recycled=recycled,
            shrinkwrap_written=frozen is not None,
            elapsed_seconds=stopwatch.elapsed_seconds,
        )
