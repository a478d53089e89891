"""Writing file-content artifacts to disk with path containment guard rails."""

from __future__ import annotations

import logging
import os
import re
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import List, Pattern, Sequence, Tuple

from .envfile import looks_like_env_fragment, normalise_env_content
from .parser import Artifact

__all__ = [
    "EXECUTABLE_SUFFIXES",
    "FileMaterializer",
    "FileOutcome",
    "FileStatus",
    "contain_path",
    "extract_filename_mentions",
    "fallback_filename",
    "infer_filenames",
    "infer_fix_filename",
    "is_env_filename",
]

LOGGER = logging.getLogger(__name__)

EXECUTABLE_SUFFIXES: Tuple[str, ...] = (".sh", ".bash", ".zsh", ".js")

_NAME_CHARS = r"[A-Za-z0-9._\-/]+"
_MENTION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(rf"\bfiles? (?:named|called) [`\"']?({_NAME_CHARS})[`\"']?", re.IGNORECASE),
    re.compile(rf"\b[Cc]reate (?:a|the) [`\"']?({_NAME_CHARS})[`\"']? file\b"),
)
_EXTENSIONLESS_NAMES = frozenset({"Makefile", "Dockerfile", "Procfile", "Gemfile", "Rakefile"})

_FIX_MENTION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\b(?:create|modify|update|fix)\s+(?:the\s+)?(?:file\s+)?[`'\"]?([^`'\"\s]+\.[A-Za-z]+)", re.IGNORECASE),
    re.compile(r"\bfile (?:named|called) [`'\"]?([^`'\"\s]+\.[A-Za-z]+)", re.IGNORECASE),
    re.compile(r"([^`'\"\s]*\.(?:js|ts|env|json|md|yml|yaml|sh|rs|sol|py|toml))\b", re.IGNORECASE),
)
_LEADING_NOISE = "([<*"
_TRAILING_NOISE = ".,:;)]>*"

_LANGUAGE_FALLBACKS = {
    "javascript": "script{n}.js",
    "js": "script{n}.js",
    "typescript": "script{n}.ts",
    "ts": "script{n}.ts",
    "python": "script{n}.py",
    "py": "script{n}.py",
    "rust": "program{n}.rs",
    "rs": "program{n}.rs",
    "solidity": "contract{n}.sol",
    "sol": "contract{n}.sol",
}
_PLAIN_TEXT = frozenset({"", "plaintext", "text", "txt", "env", "dotenv"})


class FileStatus(str, Enum):
    """Outcome of one attempted write."""

    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass(slots=True)
class FileOutcome:
    """Result produced by :meth:`FileMaterializer.materialize`."""

    path: str
    status: FileStatus
    error: str | None = None
    warnings: Tuple[str, ...] = ()
    executable: bool = False

    @property
    def ok(self) -> bool:
        return self.status is not FileStatus.FAILED


def _clean_mention(value: str) -> str:
    cleaned = value.strip().lstrip(_LEADING_NOISE).rstrip(_TRAILING_NOISE)
    return cleaned


def _plausible_filename(value: str) -> bool:
    if not value or value in (".", ".."):
        return False
    name = PurePosixPath(value).name
    return "." in name or "/" in value or name in _EXTENSIONLESS_NAMES


def extract_filename_mentions(text: str) -> List[str]:
    """Return filenames explicitly mentioned in prose, in order of appearance."""
    found: List[tuple[int, str]] = []
    seen_positions: set[int] = set()
    for pattern in _MENTION_PATTERNS:
        for match in pattern.finditer(text or ""):
            position = match.start(1)
            if position in seen_positions:
                continue
            candidate = _clean_mention(match.group(1))
            if not _plausible_filename(candidate):
                continue
            seen_positions.add(position)
            found.append((position, candidate))
    found.sort(key=lambda item: item[0])
    return [name for _, name in found]


def fallback_filename(artifact: Artifact, ordinal: int) -> str:
    """Deterministic name for the ``ordinal``-th (1-based) file artifact."""
    language = artifact.language.strip().lower()
    template = _LANGUAGE_FALLBACKS.get(language)
    if template:
        return template.format(n=ordinal)
    if language in _PLAIN_TEXT:
        if looks_like_env_fragment(artifact.content):
            return ".env"
        return f"file{ordinal}.txt"
    return f"file{ordinal}.{language}"


def infer_filenames(text: str, file_artifacts: Sequence[Artifact]) -> List[str]:
    """Pair each file artifact with a target name.

    Explicit prose mentions are consumed positionally; artifacts beyond the
    number of mentions fall back to :func:`fallback_filename`.
    """
    mentions = extract_filename_mentions(text)
    names: List[str] = []
    for index, artifact in enumerate(file_artifacts):
        if index < len(mentions):
            names.append(mentions[index])
        else:
            names.append(fallback_filename(artifact, index + 1))
    return names


def infer_fix_filename(fix_text: str, artifact: Artifact) -> str:
    """Choose a filename for a file artifact that arrived inside a remediation fix."""
    for pattern in _FIX_MENTION_PATTERNS:
        match = pattern.search(fix_text or "")
        if match:
            candidate = _clean_mention(match.group(1))
            if _plausible_filename(candidate):
                return candidate
    language = artifact.language.strip().lower()
    if language in ("javascript", "js"):
        return "fix.js"
    if language == "json":
        return "config.json"
    if language in _PLAIN_TEXT:
        return ".env" if "=" in artifact.content else "fix.txt"
    return f"fix.{language}"


def is_env_filename(name: str) -> bool:
    base = PurePosixPath(name).name
    return base == ".env" or base.endswith(".env") or base.startswith(".env.")


def contain_path(filename: str, working_dir: Path) -> tuple[Path | None, str | None]:
    """Return ``filename`` as a path relative to ``working_dir`` that cannot escape it.

    Absolute names and names that climb above ``working_dir`` are rewritten to
    their base name; the second element carries the warning in that case.
    """
    raw = (filename or "").strip().replace("\\", "/")
    if not raw:
        return None, None

    warning: str | None = None
    normalised = os.path.normpath(raw)
    escapes = (
        PurePosixPath(raw).is_absolute()
        or os.path.isabs(raw)
        or normalised == ".."
        or normalised.startswith("../")
    )
    if not escapes:
        anchor = working_dir.resolve()
        resolved_target = (anchor / normalised).resolve()
        escapes = not resolved_target.is_relative_to(anchor)

    if escapes:
        base = PurePosixPath(raw).name
        if not base or base in (".", ".."):
            return None, f"Refusing to write outside the working directory: {filename}"
        warning = f"Attempting to create file outside current directory: {filename}. Creating {base} instead."
        return Path(base), warning
    return Path(normalised), warning


class FileMaterializer:
    """Writes artifacts below ``working_dir`` and reports paths relative to the project."""

    def __init__(self, working_dir: Path, project_root: Path | None = None) -> None:
        self.working_dir = Path(working_dir)
        self.project_root = Path(project_root) if project_root is not None else None

    def display_path(self, relative: Path) -> str:
        """Render ``relative`` as seen from the project root when we are below it."""
        if self.project_root is None:
            return relative.as_posix()
        try:
            prefix = self.working_dir.resolve().relative_to(self.project_root.resolve())
        except ValueError:
            return relative.as_posix()
        if prefix == Path("."):
            return relative.as_posix()
        return (prefix / relative).as_posix()

    def materialize(self, artifact: Artifact, filename: str) -> FileOutcome:
        """Write ``artifact`` to ``filename``; failures are reported, never raised."""
        relative, warning = contain_path(filename, self.working_dir)
        warnings: Tuple[str, ...] = (warning,) if warning else ()
        if warning:
            LOGGER.warning(warning)
        if relative is None:
            message = warning or "Invalid filename provided"
            return FileOutcome(path=filename or "unnamed file", status=FileStatus.FAILED, error=message, warnings=warnings)

        target = self.working_dir / relative
        display = self.display_path(relative)
        content = artifact.content
        if is_env_filename(relative.name):
            content = normalise_env_content(content)

        try:
            existed = target.exists()
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            executable = target.name.endswith(EXECUTABLE_SUFFIXES)
            if executable:
                mode = target.stat().st_mode
                target.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as error:
            LOGGER.warning("Failed to write %s: %s", display, error)
            return FileOutcome(path=display, status=FileStatus.FAILED, error=str(error), warnings=warnings)

        status = FileStatus.UPDATED if existed else FileStatus.CREATED
        return FileOutcome(path=display, status=status, warnings=warnings, executable=executable)
