"""
npm resolution and the install/shrinkwrap driver.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import List, Optional

from ..infra.fs import create_folder_with_retry, write_text_file
from ..infra.process import ToolResult, ToolRunner, run_tool
from .errors import ProcessExitError, ToolMissingError
from .events import EventKind, GenerateEvent, GenerateReporter, NullReporter

logger = logging.getLogger(__name__)

NPM_EXECUTABLE = "npm"


def local_npm_path(config) -> Path:
    return config.npm_local_folder / "node_modules" / ".bin" / NPM_EXECUTABLE


def _global_npm() -> Optional[str]:
    return shutil.which(NPM_EXECUTABLE)


def ensure_installer_available(
    config,
    runner: ToolRunner = run_tool,
    reporter: Optional[GenerateReporter] = None,
) -> Path:
    """Return the npm executable to run, bootstrapping a pinned local copy if needed.

    Resolution order: ``npmToolPath`` from the configuration, then the local
    ``common/npm-local`` install of ``npmVersion`` (installed on demand with
    the global npm), then ``npm`` on PATH.
    """
    reporter = reporter or NullReporter()

    if config.npm_tool_path is not None:
        if not config.npm_tool_path.is_file():
            raise ToolMissingError(
                "The configured npmToolPath does not exist; fix the path in the "
                "workspace configuration or remove it to use npmVersion",
                path=config.npm_tool_path,
            )
        return config.npm_tool_path

    if config.npm_version:
        local = local_npm_path(config)
        if local.is_file():
            return local
        return _bootstrap_local_npm(config, local, runner, reporter)

    found = _global_npm()
    if not found:
        raise ToolMissingError(
            'Unable to find "npm" on PATH. Install Node.js, or set npmVersion '
            "or npmToolPath in the workspace configuration"
        )
    return Path(found)


def _bootstrap_local_npm(config, local: Path, runner: ToolRunner, reporter: GenerateReporter) -> Path:
    global_npm = _global_npm()
    if not global_npm:
        raise ToolMissingError(
            f'npm@{config.npm_version} is not installed in common/npm-local and no global "npm" '
            "was found to install it. Install Node.js and run the command again"
        )

    folder = config.npm_local_folder
    reporter.handle(GenerateEvent(
        kind=EventKind.PROGRESS,
        message=f"Installing npm@{config.npm_version} into common/npm-local",
    ))
    create_folder_with_retry(folder, config.create_folder_retry)
    # A package.json here stops npm from walking up into common/package.json
    write_text_file(
        folder / "package.json",
        json.dumps({"name": "npm-local", "private": True, "version": "0.0.0"}, indent=2) + "\n",
    )
    command = [global_npm, "install", f"npm@{config.npm_version}"]
    result = runner(command, folder, timeout=config.installer_timeout_seconds)
    _check(result, folder)

    if not local.is_file():
        raise ToolMissingError(
            f"npm@{config.npm_version} was installed but its executable is missing",
            path=local,
        )
    return local


def _check(result: ToolResult, cwd: Path) -> None:
    if result.stdout:
        logger.debug("stdout of %s:\n%s", result.command[0], result.stdout)
    if result.stderr:
        logger.debug("stderr of %s:\n%s", result.command[0], result.stderr)
    if not result.ok:
        raise ProcessExitError(result.command, result.exit_code, result.stdout, result.stderr, cwd=cwd)


class InstallDriver:
    """Runs ``npm install`` and ``npm shrinkwrap`` in the common folder."""

    def __init__(
        self,
        config,
        npm_tool: Path,
        runner: ToolRunner = run_tool,
        reporter: Optional[GenerateReporter] = None,
    ) -> None:
        self.config = config
        self.npm_tool = npm_tool
        self.runner = runner
        self.reporter = reporter or NullReporter()

    def install_args(self) -> List[str]:
        args = ["install"]
        if self.config.npm_cache_folder:
            args += ["--cache", str(self.config.npm_cache_folder)]
        if self.config.npm_tmp_folder:
            args += ["--tmp", str(self.config.npm_tmp_folder)]
        return args

    def _run(self, args: List[str]) -> ToolResult:
        cwd = self.config.common_folder
        label = "npm " + " ".join(args)
        self.reporter.handle(GenerateEvent(kind=EventKind.PROGRESS, message=f'Running "{label}"...'))
        result = self.runner(
            [str(self.npm_tool), *args], cwd, timeout=self.config.installer_timeout_seconds
        )
        _check(result, cwd)
        self.reporter.handle(GenerateEvent(kind=EventKind.PROGRESS, message=f'"npm {args[0]}" completed'))
        return result

    def install(self) -> ToolResult:
        return self._run(self.install_args())

    def freeze(self, lazy: bool) -> Optional[ToolResult]:
        """Write ``npm-shrinkwrap.json``; skipped entirely in lazy mode."""
        if lazy:
            self.reporter.handle(GenerateEvent(
                kind=EventKind.NOTICE,
                message='(Skipping "npm shrinkwrap") npm-shrinkwrap.json was not regenerated; '
                        "run without --lazy before committing",
            ))
            return None
        return self._run(["shrinkwrap"])
