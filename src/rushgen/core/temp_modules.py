"""
Temp module generation.

Each project's ``package.json`` is turned into an isolated, install-ready
manifest named after the project's temp alias. Dependency ranges are kept
exactly as the project requested them; duplicates across projects are fine
because every temp module is its own install unit.
"""

from __future__ import annotations

import copy
import logging
from typing import Dict, Iterable

from .errors import ManifestError
from .project import Manifest, ProjectRecord, is_safe_alias, validate_manifest

logger = logging.getLogger(__name__)

DEFAULT_TEMP_VERSION = "0.0.0"


def build_temp_module(project: ProjectRecord) -> Manifest:
    """Derive the temp module manifest for one project."""
    source = copy.deepcopy(project.manifest)
    validate_manifest(source, project.package_name, path=project.manifest_path)

    # devDependencies first so a regular dependency of the same name wins
    dependencies: Dict[str, str] = {}
    dependencies.update(source.get("devDependencies") or {})
    dependencies.update(source.get("dependencies") or {})

    temp: Manifest = {
        "name": project.temp_alias,
        "version": source.get("version") or DEFAULT_TEMP_VERSION,
        "private": True,
        "description": f"Temporary project for {project.package_name}",
        "dependencies": dict(sorted(dependencies.items())),
    }
    optional = source.get("optionalDependencies")
    if optional:
        temp["optionalDependencies"] = dict(sorted(optional.items()))
    return temp


def generate_temp_modules(projects: Iterable[ProjectRecord]) -> Dict[str, Manifest]:
    """Return ``{package_name: temp manifest}`` for every project.

    Raises ``ManifestError`` on a malformed manifest, an unsafe alias, or when
    two projects share an alias or a package name.
    """
    temp_modules: Dict[str, Manifest] = {}
    alias_owner: Dict[str, str] = {}

    for project in projects:
        alias = project.temp_alias
        if not is_safe_alias(alias):
            raise ManifestError(
                f'temp alias "{alias}" is not a valid directory name',
                project=project.package_name,
            )
        if alias in alias_owner:
            raise ManifestError(
                f'temp alias "{alias}" collides with project "{alias_owner[alias]}"',
                project=project.package_name,
            )
        if project.package_name in temp_modules:
            raise ManifestError("project appears more than once", project=project.package_name)

        alias_owner[alias] = project.package_name
        temp_modules[project.package_name] = build_temp_module(project)
        logger.debug(
            "Generated temp module %s (%d dependencies)",
            alias,
            len(temp_modules[project.package_name]["dependencies"]),
        )

    return temp_modules
