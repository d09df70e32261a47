"""Pinned-version table: configuration-supplied versions that always win."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .errors import ConfigurationError


class PinnedVersions:
    """Ordered, read-only mapping of dependency name -> exact version."""

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}

    @classmethod
    def from_mapping(cls, pairs: Iterable[Tuple[str, str]]) -> "PinnedVersions":
        table = cls()
        for name, version in pairs:
            if not isinstance(name, str) or not name.strip():
                raise ConfigurationError(f"pinnedVersions: invalid dependency name {name!r}")
            if not isinstance(version, str) or not version.strip():
                raise ConfigurationError(f'pinnedVersions: "{name}" must map to a version string')
            if name in table._entries:
                raise ConfigurationError(f'pinnedVersions: "{name}" is pinned more than once')
            table._entries[name] = version
        return table

    def get(self, name: str) -> Optional[str]:
        return self._entries.get(name)

    def items(self) -> List[Tuple[str, str]]:
        return list(self._entries.items())

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __repr__(self) -> str:
        return f"PinnedVersions({self._entries!r})"
