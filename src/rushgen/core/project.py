"""
Project records: one entry per project listed in the workspace configuration.

A record couples the real package name with its temp alias (the synthetic
package identity used under ``temp_modules``) and the parsed ``package.json``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import ManifestError

logger = logging.getLogger(__name__)

DEFAULT_TEMP_PREFIX = "rush-"
DEPENDENCY_SECTIONS = ("dependencies", "devDependencies", "optionalDependencies")

_ALIAS_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

Manifest = Dict[str, Any]


@dataclass(frozen=True)
class ProjectRecord:
    package_name: str
    temp_alias: str
    project_folder: Path
    manifest: Manifest = field(default_factory=dict, compare=False, hash=False)

    @property
    def manifest_path(self) -> Path:
        return self.project_folder / "package.json"


def is_safe_alias(alias: str) -> bool:
    """Return True if *alias* can be used as a single directory name."""
    return bool(_ALIAS_RE.match(alias)) and alias not in (".", "..")


def unscoped_name(package_name: str) -> str:
    """``@scope/name`` -> ``name``; unscoped names are returned as-is."""
    if package_name.startswith("@"):
        _, _, rest = package_name.partition("/")
        return rest
    return package_name


def derive_temp_aliases(
    entries: Iterable[Tuple[str, Optional[str]]],
    prefix: str = DEFAULT_TEMP_PREFIX,
) -> List[str]:
    """Assign a temp alias to every ``(package_name, explicit_alias)`` pair.

    Explicit aliases are taken verbatim. Derived aliases are
    ``<prefix><unscoped name>``; later projects sharing an unscoped name get
    ``-2``, ``-3``... appended. Raises ``ManifestError`` when an explicit
    alias is unsafe or collides with another alias.
    """
    entries = list(entries)
    taken: Dict[str, str] = {}

    # Explicit aliases claim their names first so derived ones step around them.
    for package_name, explicit in entries:
        if not explicit:
            continue
        if not is_safe_alias(explicit):
            raise ManifestError(
                f'temp project name "{explicit}" is not a valid directory name',
                project=package_name,
            )
        if explicit in taken:
            raise ManifestError(
                f'temp project name "{explicit}" is already used by "{taken[explicit]}"',
                project=package_name,
            )
        taken[explicit] = package_name

    aliases: List[str] = []
    for package_name, explicit in entries:
        if explicit:
            aliases.append(explicit)
            continue
        base = prefix + unscoped_name(package_name)
        alias = base
        counter = 2
        while alias in taken:
            alias = f"{base}-{counter}"
            counter += 1
        if not is_safe_alias(alias):
            raise ManifestError(
                f'cannot derive a valid temp project name from "{package_name}"',
                project=package_name,
            )
        taken[alias] = package_name
        aliases.append(alias)
    return aliases


def _reject_duplicate_keys(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f'duplicate key "{key}"')
        result[key] = value
    return result


def load_manifest(path: Path, package_name: str) -> Manifest:
    """Read and validate a project's ``package.json``."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(f"cannot read package.json: {e}", project=package_name, path=path) from e

    try:
        data = json.loads(raw, object_pairs_hook=_reject_duplicate_keys)
    except ValueError as e:
        raise ManifestError(f"invalid package.json: {e}", project=package_name, path=path) from e

    validate_manifest(data, package_name, path=path)
    return data


def validate_manifest(data: Any, package_name: str, path: Optional[Path] = None) -> None:
    if not isinstance(data, dict):
        raise ManifestError("package.json must contain a JSON object", project=package_name, path=path)

    declared = data.get("name")
    if declared != package_name:
        raise ManifestError(
            f'package.json declares name "{declared}" but the configuration expects "{package_name}"',
            project=package_name,
            path=path,
        )

    for section in DEPENDENCY_SECTIONS:
        deps = data.get(section)
        if deps is None:
            continue
        if not isinstance(deps, dict):
            raise ManifestError(f'"{section}" must be an object', project=package_name, path=path)
        for dep_name, version in deps.items():
            if not dep_name or not isinstance(version, str):
                raise ManifestError(
                    f'"{section}" entry "{dep_name}" must map a name to a version string',
                    project=package_name,
                    path=path,
                )


def load_project_records(
    workspace_root: Path,
    entries: Iterable[Dict[str, Any]],
    prefix: str = DEFAULT_TEMP_PREFIX,
) -> List[ProjectRecord]:
    """Build project records from the ``projects`` section of the configuration.

    Each entry needs ``packageName`` and ``projectFolder`` (relative to
    *workspace_root*); ``tempProjectName`` is optional.
    """
    entries = list(entries)
    seen: Dict[str, str] = {}
    for entry in entries:
        name = entry["packageName"]
        if name in seen:
            raise ManifestError("project is listed more than once", project=name)
        seen[name] = entry["projectFolder"]

    aliases = derive_temp_aliases(
        ((e["packageName"], e.get("tempProjectName")) for e in entries),
        prefix=prefix,
    )

    records: List[ProjectRecord] = []
    for entry, alias in zip(entries, aliases):
        folder = (workspace_root / entry["projectFolder"]).resolve()
        manifest = load_manifest(folder / "package.json", entry["packageName"])
        records.append(
            ProjectRecord(
                package_name=entry["packageName"],
                temp_alias=alias,
                project_folder=folder,
                manifest=manifest,
            )
        )
        logger.debug("Loaded project %s as %s", entry["packageName"], alias)
    return records
