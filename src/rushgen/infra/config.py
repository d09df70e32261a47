"""
Workspace configuration loading.

The root configuration lives in ``rush.json`` (or ``rush.yaml``) at the top
of the monorepo. It is parsed once per invocation into a frozen
``RushConfiguration`` that is passed explicitly to every component.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..core.errors import ConfigurationError
from ..core.pinned import PinnedVersions
from ..core.project import DEFAULT_TEMP_PREFIX, ProjectRecord, load_project_records
from ..core.workspace import TEMP_MODULES_DIRNAME
from .fs import RetryPolicy

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("rush.json", "rush.yaml", "rush.yml")
DEFAULT_COMMON_FOLDER = "common"
SHRINKWRAP_FILENAME = "npm-shrinkwrap.json"


@dataclass(frozen=True)
class RushConfiguration:
    """Resolved configuration for one workspace.

    All paths are absolute; nothing is looked up from the environment later.
    """

    config_file: Path
    common_folder: Path
    projects: Tuple[ProjectRecord, ...] = ()
    pinned_versions: PinnedVersions = field(default_factory=PinnedVersions)
    npm_version: Optional[str] = None
    npm_tool_path: Optional[Path] = None
    npm_cache_folder: Optional[Path] = None
    npm_tmp_folder: Optional[Path] = None
    temp_module_prefix: str = DEFAULT_TEMP_PREFIX
    package_review_file: Optional[Path] = None
    create_folder_retry: RetryPolicy = field(default_factory=RetryPolicy)
    recycler_async_delete: bool = True
    installer_timeout_seconds: Optional[float] = None

    # --- Derived paths ---

    @property
    def workspace_root(self) -> Path:
        return self.config_file.parent

    @property
    def temp_modules_folder(self) -> Path:
        return self.common_folder / TEMP_MODULES_DIRNAME

    @property
    def node_modules_folder(self) -> Path:
        return self.common_folder / "node_modules"

    @property
    def shrinkwrap_file(self) -> Path:
        return self.common_folder / SHRINKWRAP_FILENAME

    @property
    def common_package_json(self) -> Path:
        return self.common_folder / "package.json"

    @property
    def npm_local_folder(self) -> Path:
        return self.common_folder / "npm-local"

    @property
    def package_review_enabled(self) -> bool:
        return self.package_review_file is not None


class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses duplicate mapping keys instead of keeping the last."""

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            seen = set()
            for key_node, _ in node.value:
                if key_node.tag == "tag:yaml.org,2002:merge":
                    continue
                key = self.construct_object(key_node, deep=deep)
                try:
                    duplicate = key in seen
                except TypeError:
                    continue
                if duplicate:
                    raise yaml.constructor.ConstructorError(
                        "while constructing a mapping", node.start_mark,
                        f"found duplicate key {key!r}", key_node.start_mark,
                    )
                seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _json_pairs(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"found duplicate key {key!r}")
        result[key] = value
    return result


def find_config_file(start: Optional[Path] = None) -> Path:
    """Walk up from *start* (default: cwd) to the first folder holding a config file."""
    current = (start or Path.cwd()).resolve()
    for folder in (current, *current.parents):
        for filename in CONFIG_FILENAMES:
            candidate = folder / filename
            if candidate.is_file():
                return candidate
    raise ConfigurationError(
        f"Unable to find {' or '.join(CONFIG_FILENAMES)} in {current} or any parent folder"
    )


def read_config_file(path: Path) -> Dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration: {e}", path=path) from e

    try:
        if path.suffix == ".json":
            data = json.loads(raw, object_pairs_hook=_json_pairs)
        else:
            data = yaml.load(raw, Loader=_UniqueKeyLoader)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}", path=path) from e

    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping", path=path)
    return data


def _optional_path(root: Path, value: Any, key: str, config_file: Path) -> Optional[Path]:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f'"{key}" must be a path string', path=config_file)
    return (root / Path(value).expanduser()).resolve()


def _optional_str(data: Dict[str, Any], key: str, config_file: Path) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f'"{key}" must be a non-empty string', path=config_file)
    return value


def _retry_policy(data: Any, config_file: Path) -> RetryPolicy:
    if data is None:
        return RetryPolicy()
    if not isinstance(data, dict):
        raise ConfigurationError('"createFolderRetry" must be a mapping', path=config_file)
    defaults = RetryPolicy()
    try:
        policy = RetryPolicy(
            max_attempts=int(data.get("maxAttempts", defaults.max_attempts)),
            initial_delay_seconds=float(data.get("initialDelaySeconds", defaults.initial_delay_seconds)),
            backoff_factor=float(data.get("backoffFactor", defaults.backoff_factor)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f'Invalid "createFolderRetry": {e}', path=config_file) from e
    if policy.max_attempts < 1 or policy.initial_delay_seconds < 0 or policy.backoff_factor < 1:
        raise ConfigurationError(
            '"createFolderRetry" needs maxAttempts >= 1, initialDelaySeconds >= 0, backoffFactor >= 1',
            path=config_file,
        )
    return policy


def _project_entries(data: Dict[str, Any], config_file: Path) -> List[Dict[str, Any]]:
    projects = data.get("projects")
    if not isinstance(projects, list) or not projects:
        raise ConfigurationError('"projects" must be a non-empty list', path=config_file)
    entries = []
    for index, entry in enumerate(projects):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"projects[{index}] must be a mapping", path=config_file)
        for key in ("packageName", "projectFolder"):
            if not isinstance(entry.get(key), str) or not entry[key].strip():
                raise ConfigurationError(f'projects[{index}] is missing "{key}"', path=config_file)
        alias = entry.get("tempProjectName")
        if alias is not None and not isinstance(alias, str):
            raise ConfigurationError(f'projects[{index}].tempProjectName must be a string', path=config_file)
        entries.append(entry)
    return entries


def configuration_from_dict(data: Dict[str, Any], config_file: Path) -> RushConfiguration:
    """Build a ``RushConfiguration`` from already-parsed configuration data."""
    root = config_file.parent

    common = data.get("commonFolder", DEFAULT_COMMON_FOLDER)
    common_folder = _optional_path(root, common, "commonFolder", config_file)
    if common_folder is None:
        raise ConfigurationError('"commonFolder" must not be empty', path=config_file)

    pinned_data = data.get("pinnedVersions") or {}
    if not isinstance(pinned_data, dict):
        raise ConfigurationError('"pinnedVersions" must be a mapping', path=config_file)
    pinned = PinnedVersions.from_mapping(pinned_data.items())

    prefix = data.get("tempModulePrefix", DEFAULT_TEMP_PREFIX)
    if not isinstance(prefix, str) or not prefix:
        raise ConfigurationError('"tempModulePrefix" must be a non-empty string', path=config_file)

    recycler = data.get("recycler") or {}
    if not isinstance(recycler, dict):
        raise ConfigurationError('"recycler" must be a mapping', path=config_file)

    timeout = data.get("installerTimeoutSeconds")
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        raise ConfigurationError('"installerTimeoutSeconds" must be a positive number', path=config_file)

    projects = load_project_records(root, _project_entries(data, config_file), prefix=prefix)

    return RushConfiguration(
        config_file=config_file,
        common_folder=common_folder,
        projects=tuple(projects),
        pinned_versions=pinned,
        npm_version=_optional_str(data, "npmVersion", config_file),
        npm_tool_path=_optional_path(root, data.get("npmToolPath"), "npmToolPath", config_file),
        npm_cache_folder=_optional_path(root, data.get("npmCacheFolder"), "npmCacheFolder", config_file),
        npm_tmp_folder=_optional_path(root, data.get("npmTmpFolder"), "npmTmpFolder", config_file),
        temp_module_prefix=prefix,
        package_review_file=_optional_path(
            root, data.get("packageReviewFile"), "packageReviewFile", config_file
        ),
        create_folder_retry=_retry_policy(data.get("createFolderRetry"), config_file),
        recycler_async_delete=bool(recycler.get("asyncDelete", True)),
        installer_timeout_seconds=float(timeout) if timeout is not None else None,
    )


def load_configuration(config_path: Optional[str] = None) -> RushConfiguration:
    """
    Load the workspace configuration.

    Args:
        config_path: explicit path to ``rush.json``/``rush.yaml``; when None the
            file is searched for from the current directory upwards.

    Returns:
        The resolved configuration.
    """
    if config_path:
        path = Path(config_path).expanduser().resolve()
        if not path.is_file():
            raise ConfigurationError("Configuration file not found", path=path)
    else:
        path = find_config_file()

    config = configuration_from_dict(read_config_file(path), path)
    logger.info("Configuration loaded: %s (%d projects)", path, len(config.projects))
    return config
