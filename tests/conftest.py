from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from devassist.config import AssistSettings  # noqa: E402
from devassist.models import ProviderResponseError, TextGenerator  # noqa: E402
from devassist.operator import NoticeLevel, Operator  # noqa: E402
from devassist.pipeline import AssistSession  # noqa: E402
from devassist.project import ProjectContext  # noqa: E402
from devassist.tools.executor import ShellOutcome  # noqa: E402


class ScriptedOperator(Operator):
    """Operator double that replays queued answers and records every notice."""

    def __init__(self, answers: Sequence[str] = (), confirmations: Sequence[bool] = ()) -> None:
        self.answers: List[str] = list(answers)
        self.confirmations: List[bool] = list(confirmations)
        self.prompts: List[Tuple[str, bool]] = []
        self.notices: List[Tuple[NoticeLevel, str]] = []

    def notify(self, message: str, *, level: NoticeLevel = "info") -> None:
        self.notices.append((level, message))

    def prompt(self, message: str, *, secret: bool = False) -> str:
        self.prompts.append((message, secret))
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {message}")
        return self.answers.pop(0)

    def confirm(self, message: str, *, default: bool = False) -> bool:
        if not self.confirmations:
            return default
        return self.confirmations.pop(0)

    def messages(self, level: Optional[NoticeLevel] = None) -> List[str]:
        return [text for notice_level, text in self.notices if level is None or notice_level == level]


ScriptedOutcome = Union[ShellOutcome, List[ShellOutcome]]


@dataclass(slots=True)
class FakeShell:
    """Shell runner double keyed by exact command text.

    A list value is consumed one outcome per call, repeating the last entry;
    unknown commands succeed silently.
    """

    outcomes: Dict[str, ScriptedOutcome] = field(default_factory=dict)
    calls: List[str] = field(default_factory=list)

    def __call__(self, command: str, cwd: Path, timeout: Optional[float]) -> ShellOutcome:
        self.calls.append(command)
        scripted = self.outcomes.get(command)
        if scripted is None:
            return ShellOutcome(exit_code=0)
        if isinstance(scripted, list):
            return scripted.pop(0) if len(scripted) > 1 else scripted[0]
        return scripted


class ScriptedGenerator(TextGenerator):
    """Text generator returning queued responses; exceptions in the queue are raised."""

    def __init__(self, responses: Sequence[Union[str, Exception]] = ()) -> None:
        super().__init__("scripted-model", max_attempts=1, retry_delay=0.0)
        self.responses: List[Union[str, Exception]] = list(responses)
        self.payloads: List[Dict[str, Any]] = []

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        self.payloads.append(payload)
        if not self.responses:
            raise ProviderResponseError("No scripted response left.")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def user_prompts(self) -> List[str]:
        return [payload["messages"][1]["content"] for payload in self.payloads]


@pytest.fixture()
def operator() -> ScriptedOperator:
    return ScriptedOperator()


@pytest.fixture()
def shell() -> FakeShell:
    return FakeShell()


@pytest.fixture()
def project(tmp_path: Path) -> ProjectContext:
    root = tmp_path / "project"
    root.mkdir()
    return ProjectContext(root=root, working_dir=root, name="demo", detected=True)


@pytest.fixture()
def make_session(project: ProjectContext, operator: ScriptedOperator, shell: FakeShell):
    """Factory building an :class:`AssistSession` wired to the test doubles."""

    def _make(
        generator: Optional[TextGenerator] = None,
        settings: Optional[AssistSettings] = None,
    ) -> AssistSession:
        session = AssistSession.create(
            project,
            settings=settings,
            operator=operator,
            generator=generator,
            runner=shell,
        )
        session.tracker.start()
        return session

    return _make
