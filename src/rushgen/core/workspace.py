"""
Root install manifest synthesis.

The root manifest lists the pinned versions first (configuration order),
then one ``file:`` reference per temp module sorted by alias, so that the
generated ``common/package.json`` diffs cleanly between commits.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Tuple

from .errors import ConfigurationError
from .pinned import PinnedVersions
from .project import Manifest, ProjectRecord

ROOT_PACKAGE_NAME = "rush-common"
ROOT_DESCRIPTION = "Temporary file generated by the Rush tool"
ROOT_VERSION = "0.0.0"
TEMP_MODULES_DIRNAME = "temp_modules"


def alias_sort_key(alias: str) -> Tuple[str, str]:
    """Case-insensitive order; on a case-only tie lowercase comes first."""
    return alias.casefold(), alias.swapcase()


def sort_projects(projects: Iterable[ProjectRecord]) -> List[ProjectRecord]:
    return sorted(projects, key=lambda p: alias_sort_key(p.temp_alias))


def temp_module_reference(alias: str) -> str:
    return f"file:./{TEMP_MODULES_DIRNAME}/{alias}"


def new_root_manifest(pinned: PinnedVersions) -> Manifest:
    """Root manifest holding only the fixed metadata and the pinned versions."""
    manifest: Manifest = {
        "dependencies": {},
        "description": ROOT_DESCRIPTION,
        "name": ROOT_PACKAGE_NAME,
        "private": True,
        "version": ROOT_VERSION,
    }
    for name, version in pinned.items():
        manifest["dependencies"][name] = version
    return manifest


def add_temp_module_reference(manifest: Manifest, project: ProjectRecord) -> None:
    """Register *project*'s temp module; an alias may never shadow a pinned name."""
    dependencies: Dict[str, Any] = manifest["dependencies"]
    alias = project.temp_alias
    if alias in dependencies:
        raise ConfigurationError(
            f'temp project "{alias}" ({project.package_name}) collides with an existing '
            f"root dependency; rename the project's temp alias or the pinned entry"
        )
    dependencies[alias] = temp_module_reference(alias)


def build_root_manifest(pinned: PinnedVersions, projects: Iterable[ProjectRecord]) -> Manifest:
    """Pure function: pinned entries, then one file reference per project."""
    manifest = new_root_manifest(pinned)
    for project in sort_projects(projects):
        add_temp_module_reference(manifest, project)
    return manifest


def render_manifest(manifest: Manifest) -> str:
    """Stable JSON text: insertion key order, 2-space indent, trailing newline."""
    return json.dumps(manifest, indent=2, ensure_ascii=False) + "\n"
