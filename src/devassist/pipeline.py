"""Entry point that turns one model response into file writes and commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .config import AssistSettings
from .models import TextGenerator
from .operator import ConsoleOperator, Operator
from .project import ProjectContext
from .remediation.loop import BATCH_CONTEXT, ErrorResolutionLoop, RemediationOutcome
from .session import SessionStats, SessionTracker
from .tools.classifier import split_by_kind
from .tools.envfile import SecretsStore
from .tools.executor import CommandExecutor, ExecutionRecord, ShellRunner
from .tools.materializer import FileMaterializer, FileOutcome, FileStatus, infer_filenames
from .tools.parser import Artifact, parse_artifacts
from .tools.placeholders import PlaceholderResolver, substitute

__all__ = ["AssistSession", "process_response", "run_assist_pipeline"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AssistSession:
    """All mutable state of one assist invocation.

    The placeholder bindings, the executed-command set and the tracker live
    here and nowhere else, so two invocations never share state.
    """

    project: ProjectContext
    settings: AssistSettings
    operator: Operator
    tracker: SessionTracker
    resolver: PlaceholderResolver
    executor: CommandExecutor
    materializer: FileMaterializer
    generator: Optional[TextGenerator] = None
    remediations: List[RemediationOutcome] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        project: ProjectContext,
        *,
        settings: Optional[AssistSettings] = None,
        operator: Optional[Operator] = None,
        generator: Optional[TextGenerator] = None,
        runner: Optional[ShellRunner] = None,
    ) -> "AssistSession":
        settings = settings or AssistSettings()
        operator = operator or ConsoleOperator()
        tracker = SessionTracker()
        store = SecretsStore(project.working_dir / settings.secrets_path)
        resolver = PlaceholderResolver(operator, store, reuse_saved=settings.reuse_saved_secrets)
        executor = CommandExecutor(
            project.working_dir,
            tracker=tracker,
            operator=operator,
            runner=runner,
            timeout=settings.command_timeout,
            auto_execute=settings.auto_execute,
        )
        materializer = FileMaterializer(project.working_dir, project_root=project.root)
        return cls(
            project=project,
            settings=settings,
            operator=operator,
            tracker=tracker,
            resolver=resolver,
            executor=executor,
            materializer=materializer,
            generator=generator,
        )

    def write_file(self, artifact: Artifact, filename: str) -> FileOutcome:
        """Materialize ``artifact`` and report the outcome to the operator and tracker."""
        outcome = self.materializer.materialize(artifact, filename)
        for warning in outcome.warnings:
            self.operator.notify(warning, level="warning")
        self.tracker.record_file(outcome)
        if outcome.status is FileStatus.CREATED:
            self.operator.notify(f"✓ Created file: {outcome.path}", level="success")
        elif outcome.status is FileStatus.UPDATED:
            self.operator.notify(f"⟳ Updated file: {outcome.path}", level="success")
        else:
            self.operator.notify(f"✗ Failed to write {outcome.path}: {outcome.error}", level="error")
        return outcome

    def remediate(self, failing_context: str, error_text: str) -> Optional[RemediationOutcome]:
        """Open a remediation chain, or just count the error when remediation is disabled."""
        if not self.settings.remediation_enabled:
            self.tracker.record_error_detected(failing_context, error_text)
            self.tracker.record_error_outcome(failing_context, resolved=False)
            return None
        loop = ErrorResolutionLoop(self, max_rounds=self.settings.max_rounds)
        outcome = loop.resolve(failing_context, error_text)
        self.remediations.append(outcome)
        return outcome


def process_response(session: AssistSession, response_text: str) -> None:
    """Run one parsing pass over ``response_text``: files first, then commands."""
    artifacts = parse_artifacts(response_text)
    if not artifacts:
        LOGGER.info("Response contained no fenced blocks; nothing to apply")
        return

    bindings = session.resolver.resolve(response_text, artifacts)
    prepared = [Artifact(language=item.language, content=substitute(item.content, bindings)) for item in artifacts]
    files, commands = split_by_kind(prepared)

    failures: List[FileOutcome] = []
    for artifact, filename in zip(files, infer_filenames(response_text, files)):
        outcome = session.write_file(artifact, filename)
        if not outcome.ok:
            failures.append(outcome)
    if failures:
        details = "\n".join(f"Failed to write {outcome.path}: {outcome.error}" for outcome in failures)
        session.remediate(BATCH_CONTEXT, details)

    def on_failure(record: ExecutionRecord) -> None:
        session.remediate(record.command, record.error_text)

    for block in commands:
        session.executor.execute_block(block.content, on_failure=on_failure)


def run_assist_pipeline(
    response_text: str,
    project: ProjectContext,
    *,
    generator: Optional[TextGenerator] = None,
    operator: Optional[Operator] = None,
    runner: Optional[ShellRunner] = None,
    settings: Optional[AssistSettings] = None,
) -> SessionStats:
    """Apply ``response_text`` to ``project`` and return the session statistics."""
    session = AssistSession.create(
        project,
        settings=settings,
        operator=operator,
        generator=generator,
        runner=runner,
    )
    session.tracker.start()
    try:
        process_response(session, response_text)
    finally:
        session.tracker.finish()
    return session.tracker.summarize()
