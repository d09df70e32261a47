"""Shared fixtures: workspace builders and a fake npm runner."""

import json
from pathlib import Path

import pytest

from rushgen.core.events import EventKind
from rushgen.infra.config import load_configuration
from rushgen.infra.process import ToolResult


DEFAULT_PROJECTS = {
    "@acme/foo": {
        "version": "1.2.0",
        "dependencies": {"lodash": "^4.17.0", "react": "^16.0.0"},
        "devDependencies": {"typescript": "~2.4.0"},
        "scripts": {"build": "tsc"},
    },
    "bar": {
        "version": "0.3.1",
        "dependencies": {"lodash": "^4.0.0"},
    },
}


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


class FakeNpm:
    """Stands in for ``run_tool``: records calls and simulates npm's effects."""

    def __init__(self, fail_on=None, exit_code=1, stdout="", stderr=""):
        self.calls = []
        self.fail_on = fail_on
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr

    def __call__(self, command, cwd, *, env=None, timeout=None):
        command = tuple(str(c) for c in command)
        cwd = Path(cwd)
        self.calls.append((command, cwd))
        verb = command[1] if len(command) > 1 else ""
        if verb == self.fail_on:
            return ToolResult(command, self.exit_code, self.stdout, self.stderr)
        if verb == "install":
            self._install(cwd)
        elif verb == "shrinkwrap":
            write_json(cwd / "npm-shrinkwrap.json", {"name": "rush-common", "lockfileVersion": 1})
        return ToolResult(command, 0, f"npm {verb} ok\n", "")

    def _install(self, cwd: Path) -> None:
        manifest = json.loads((cwd / "package.json").read_text(encoding="utf-8"))
        node_modules = cwd / "node_modules"
        for name in manifest.get("dependencies", {}):
            (node_modules / name).mkdir(parents=True, exist_ok=True)

    @property
    def verbs(self):
        return [command[1] for command, _ in self.calls]


class RecordingReporter:
    """Keeps every pipeline event in memory, in order."""

    def __init__(self):
        self.events = []

    def handle(self, event):
        self.events.append(event)

    def kinds(self):
        return [e.kind for e in self.events]

    def stages_started(self):
        return [e.stage for e in self.events if e.kind == EventKind.STAGE_START]

    def messages(self, kind=None):
        return [e.message for e in self.events if kind is None or e.kind == kind]


@pytest.fixture
def fake_npm():
    return FakeNpm()


@pytest.fixture
def fake_npm_factory():
    return FakeNpm


@pytest.fixture
def npm_tool(tmp_path):
    tool = tmp_path / "bin" / "npm"
    tool.parent.mkdir(parents=True, exist_ok=True)
    tool.write_text("#!/bin/sh\n", encoding="utf-8")
    return tool


@pytest.fixture
def make_workspace(tmp_path, npm_tool):
    """Build a workspace on disk and return the path of its rush.json."""

    def _make(projects=None, pinned=None, **extra):
        projects = DEFAULT_PROJECTS if projects is None else projects
        entries = []
        for name, manifest in projects.items():
            folder = "apps/" + name.split("/")[-1]
            write_json(tmp_path / folder / "package.json", {"name": name, **manifest})
            entries.append({"packageName": name, "projectFolder": folder})
        data = {
            "npmToolPath": str(npm_tool),
            "projects": entries,
            "pinnedVersions": {"lodash": "4.17.21"} if pinned is None else pinned,
            "recycler": {"asyncDelete": False},
            "createFolderRetry": {"maxAttempts": 3, "initialDelaySeconds": 0},
        }
        data.update(extra)
        return write_json(tmp_path / "rush.json", data)

    return _make


@pytest.fixture
def config(make_workspace):
    return load_configuration(str(make_workspace()))


@pytest.fixture
def reporter():
    return RecordingReporter()
