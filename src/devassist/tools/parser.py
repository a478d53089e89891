"""Fenced code block extraction for free-text model responses."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Pattern

__all__ = ["Artifact", "ArtifactStream", "parse_artifacts", "render_artifacts"]

_FENCE_PATTERN: Pattern[str] = re.compile(
    r"^[ \t]*```[ \t]*([\w+#.-]*)[^\n]*\n(.*?)^[ \t]*```",
    re.DOTALL | re.MULTILINE,
)


@dataclass(frozen=True, slots=True)
class Artifact:
    """A fenced segment of generated text and its (lower-cased) language tag."""

    language: str
    content: str

    def render(self) -> str:
        """Serialise the artifact back into a fenced block."""
        return f"```{self.language}\n{self.content}\n```"


class ArtifactStream:
    """Lazy, restartable view over the fenced blocks of ``text``.

    Each iteration rescans the text from the beginning, so the stream can be
    consumed any number of times and always yields the same artifacts in
    left-to-right order. Empty blocks and unterminated fences yield nothing.
    """

    def __init__(self, text: str | None) -> None:
        self._text = text or ""

    @property
    def text(self) -> str:
        return self._text

    def __iter__(self) -> Iterator[Artifact]:
        for match in _FENCE_PATTERN.finditer(self._text):
            content = match.group(2).strip()
            if not content:
                continue
            yield Artifact(language=match.group(1).strip().lower(), content=content)


def parse_artifacts(text: str | None) -> List[Artifact]:
    """Return every artifact of ``text`` as a list."""
    return list(ArtifactStream(text))


def render_artifacts(artifacts: Iterable[Artifact]) -> str:
    """Serialise ``artifacts`` into fenced blocks separated by blank lines."""
    return "\n\n".join(artifact.render() for artifact in artifacts)
