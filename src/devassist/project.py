"""Discovery of the project the assistant is operating in."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

__all__ = ["PROJECT_MARKERS", "ProjectContext"]

LOGGER = logging.getLogger(__name__)

PROJECT_MARKERS: Tuple[str, ...] = ("package.json", "pyproject.toml", "Cargo.toml", ".git")


@dataclass(slots=True)
class ProjectContext:
    """Where commands run and which project they belong to.

    ``working_dir`` is the directory the operator invoked the tool from and
    ``root`` the nearest ancestor holding a project marker; the two coincide
    when no marker is found.
    """

    root: Path
    working_dir: Path
    name: Optional[str] = None
    version: Optional[str] = None
    description: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    detected: bool = False

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "ProjectContext":
        """Walk up from ``start`` to the nearest directory holding a project marker."""
        working_dir = Path(start or Path.cwd()).resolve()
        for candidate in (working_dir, *working_dir.parents):
            if any((candidate / marker).exists() for marker in PROJECT_MARKERS):
                context = cls(root=candidate, working_dir=working_dir, detected=True)
                context._load_manifest(candidate / "package.json")
                return context
        return cls(root=working_dir, working_dir=working_dir)

    @property
    def subdirectory(self) -> Optional[Path]:
        """Working directory relative to the root, or ``None`` at the root itself."""
        try:
            relative = self.working_dir.relative_to(self.root)
        except ValueError:
            return None
        return None if relative == Path(".") else relative

    def _load_manifest(self, manifest_path: Path) -> None:
        if not manifest_path.exists():
            return
        try:
            data: Dict[str, Any] = json.loads(manifest_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as error:
            LOGGER.warning("Ignoring unreadable manifest %s: %s", manifest_path, error)
            return
        if not isinstance(data, dict):
            return
        self.name = data.get("name") or None
        self.version = data.get("version") or None
        self.description = data.get("description") or None
        names: List[str] = []
        for section in ("dependencies", "devDependencies"):
            entries = data.get(section)
            if isinstance(entries, dict):
                names.extend(name for name in entries if name not in names)
        self.dependencies = names

    def describe(self) -> str:
        """Short prose description used to prefix generation prompts."""
        if not self.detected:
            return ""
        name = self.name or self.root.name
        text = f"The current project is {name}"
        if self.description:
            text += f" ({self.description})"
        text += "."
        if self.dependencies:
            text += f" It uses the following dependencies: {', '.join(self.dependencies)}."
        if self.subdirectory is not None:
            text += f" Commands run in the subdirectory {self.subdirectory.as_posix()}."
        return text
