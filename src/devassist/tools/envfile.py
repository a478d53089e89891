"""Helpers for ``KEY=VALUE`` environment files and the local secrets store."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Pattern

__all__ = [
    "SecretsStore",
    "looks_like_env_fragment",
    "normalise_env_content",
    "normalise_env_line",
]

LOGGER = logging.getLogger(__name__)

_ENV_ASSIGNMENT: Pattern[str] = re.compile(r"^\s*(?:export\s+)?[A-Za-z_][A-Za-z0-9_]*\s*=")
_ENV_LINE: Pattern[str] = re.compile(r"^\s*(?:export\s+)?(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*(?P<sep>[=:])(?P<value>.*)$")
_INLINE_COMMENT: Pattern[str] = re.compile(r"\s+(?://|#).*$")


def looks_like_env_fragment(text: str) -> bool:
    """Return True when every meaningful line of ``text`` is a ``KEY=value`` assignment."""
    seen = False
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if not _ENV_ASSIGNMENT.match(stripped):
            return False
        seen = True
    return seen


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def normalise_env_line(line: str) -> str:
    """Coerce a single line into ``KEY=VALUE`` form.

    Comments and blank lines pass through unchanged, ``export`` prefixes and
    ``KEY: value`` separators are rewritten, trailing `` //`` or `` #``
    comments are dropped and one layer of matching quotes is removed.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return line
    if stripped.startswith("//"):
        return line
    match = _ENV_LINE.match(stripped)
    if not match:
        return line
    value = match.group("value").strip()
    if not (value[:1] in ("'", '"') and value[-1:] == value[:1]):
        value = _INLINE_COMMENT.sub("", value).strip()
    value = _strip_quotes(value)
    return f"{match.group('key')}={value}"


def normalise_env_content(content: str) -> str:
    """Apply :func:`normalise_env_line` to every line of ``content``."""
    return "\n".join(normalise_env_line(line) for line in content.split("\n"))


class SecretsStore:
    """Flat ``KEY=VALUE`` file used to persist operator supplied secrets."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def read(self) -> Dict[str, str]:
        """Return every assignment currently stored in the file."""
        if not self.path.exists():
            return {}
        values: Dict[str, str] = {}
        for line in self.path.read_text(encoding="utf-8").splitlines():
            match = _ENV_LINE.match(line)
            if match and match.group("sep") == "=":
                values[match.group("key")] = _strip_quotes(match.group("value").strip())
        return values

    def get(self, key: str) -> str | None:
        return self.read().get(key)

    def upsert(self, key: str, value: str) -> None:
        """Insert or overwrite ``key``, creating the store when it is absent."""
        lines: List[str] = []
        if self.path.exists():
            lines = self.path.read_text(encoding="utf-8").splitlines()

        pattern = re.compile(rf"^\s*(?:export\s+)?{re.escape(key)}\s*=")
        replaced = False
        updated: List[str] = []
        for line in lines:
            if pattern.match(line):
                if not replaced:
                    updated.append(f"{key}={value}")
                    replaced = True
                continue
            updated.append(line)
        if not replaced:
            updated.append(f"{key}={value}")

        while updated and not updated[0].strip():
            updated.pop(0)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("\n".join(updated) + "\n", encoding="utf-8")
        LOGGER.debug("Persisted %s to %s", key, self.path)
