"""
Package review snapshot.

Before the install folders are rebuilt, the full set of third-party
dependencies requested by the workspace is written to the review file so a
reviewer can diff it in the same commit as the regenerated shrinkwrap.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Set

from ..infra.fs import write_text_file
from .errors import ManifestError
from .project import DEPENDENCY_SECTIONS

logger = logging.getLogger(__name__)


class PackageReviewChecker:
    def __init__(self, config) -> None:
        self.config = config
        self.review_file = config.package_review_file

    def collect_dependencies(self) -> Dict[str, List[str]]:
        """Map each external dependency name to the projects requesting it."""
        local_names = {p.package_name for p in self.config.projects}
        requested: Dict[str, Set[str]] = {}
        for project in self.config.projects:
            for section in DEPENDENCY_SECTIONS:
                for name in (project.manifest.get(section) or {}):
                    if name in local_names:
                        continue
                    requested.setdefault(name, set()).add(project.package_name)
        return {name: sorted(requested[name]) for name in sorted(requested)}

    def _load_existing(self) -> Dict[str, Dict[str, Any]]:
        if self.review_file is None or not self.review_file.exists():
            return {}
        try:
            data = json.loads(self.review_file.read_text(encoding="utf-8"))
        except ValueError as e:
            raise ManifestError(f"review file is not valid JSON: {e}", path=self.review_file) from e
        if not isinstance(data, dict):
            raise ManifestError("review file must contain a JSON object", path=self.review_file)
        entries = data.get("packages", [])
        if not isinstance(entries, list):
            raise ManifestError('review file "packages" must be a list', path=self.review_file)
        return {
            entry["name"]: entry
            for entry in entries
            if isinstance(entry, dict) and isinstance(entry.get("name"), str)
        }

    def save_current_dependencies(self) -> int:
        """Rewrite the review file; returns the number of packages listed."""
        if self.review_file is None:
            return 0
        existing = self._load_existing()
        packages = []
        for name, projects in self.collect_dependencies().items():
            entry: Dict[str, Any] = {"name": name, "requestedBy": projects}
            # Reviewer annotations survive regeneration
            categories = existing.get(name, {}).get("allowedCategories")
            if categories:
                entry["allowedCategories"] = categories
            packages.append(entry)

        self.review_file.parent.mkdir(parents=True, exist_ok=True)
        write_text_file(
            self.review_file,
            json.dumps({"packages": packages}, indent=2, ensure_ascii=False) + "\n",
        )
        logger.info("Saved %d reviewed packages to %s", len(packages), self.review_file)
        return len(packages)
