"""Command versus file-content classification of parsed artifacts."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Tuple

from .parser import Artifact

__all__ = [
    "ArtifactKind",
    "SHELL_LANGUAGES",
    "SHELL_VERB_PREFIXES",
    "classify",
    "split_by_kind",
]


class ArtifactKind(str, Enum):
    """What the pipeline should do with an artifact."""

    COMMAND = "command"
    FILE_CONTENT = "file_content"


SHELL_LANGUAGES: frozenset[str] = frozenset({"bash", "shell", "sh", "zsh", "console", ""})
PLAIN_TEXT_LANGUAGES: frozenset[str] = frozenset({"text", "plaintext", "txt"})
SHELL_VERB_PREFIXES: Tuple[str, ...] = ("npm ", "node ", "cd ", "mkdir ")


def classify(artifact: Artifact) -> ArtifactKind:
    """Label ``artifact`` from its language tag, then from its first line."""
    language = artifact.language.strip().lower()
    if language in SHELL_LANGUAGES:
        return ArtifactKind.COMMAND
    if language in PLAIN_TEXT_LANGUAGES and _starts_with_shell_verb(artifact.content):
        return ArtifactKind.COMMAND
    return ArtifactKind.FILE_CONTENT


def split_by_kind(artifacts: Iterable[Artifact]) -> tuple[List[Artifact], List[Artifact]]:
    """Partition artifacts into ``(file_artifacts, command_artifacts)`` preserving order."""
    files: List[Artifact] = []
    commands: List[Artifact] = []
    for artifact in artifacts:
        if classify(artifact) is ArtifactKind.COMMAND:
            commands.append(artifact)
        else:
            files.append(artifact)
    return files, commands


def _starts_with_shell_verb(content: str) -> bool:
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        return stripped.startswith(SHELL_VERB_PREFIXES)
    return False
