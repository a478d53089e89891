"""Bounded error resolution: ask for a fix, apply it, retry, or fall back.

One :class:`RemediationChain` is opened per originating failure. Each round
requests a single fix from the text generator, refuses to re-apply a fix
whose content hash was already tried in the chain, and applies the rest
through the same executor and materializer the pipeline uses. Chains end in
``RESOLVED`` or ``EXHAUSTED``; the deterministic fallbacks run before a chain
is declared exhausted.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Pattern, Sequence, Set, Tuple

from ..models import ProviderError
from ..prompts import REMEDIATION_SYSTEM_PROMPT, render_remediation_prompt
from ..tools.classifier import split_by_kind
from ..tools.executor import ExecutionRecord, split_commands
from ..tools.materializer import infer_fix_filename
from ..tools.parser import Artifact, parse_artifacts
from ..tools.placeholders import substitute
from .fallbacks import FALLBACK_CHAIN, Fallback, FallbackContext, run_fallbacks

if TYPE_CHECKING:
    from ..pipeline import AssistSession

__all__ = [
    "BATCH_CONTEXT",
    "ErrorResolutionLoop",
    "RemediationAttempt",
    "RemediationChain",
    "RemediationOutcome",
    "ResolutionState",
    "fix_fingerprint",
    "is_dependency_install",
]

LOGGER = logging.getLogger(__name__)

BATCH_CONTEXT = "auto-process"

_DEPENDENCY_INSTALL: Pattern[str] = re.compile(
    r"^\s*(?:npm\s+(?:install|i|ci|add)|yarn(?:\s+(?:install|add))?|pnpm\s+(?:install|i|add)|pip3?\s+install)(?:\s|$)"
)


class ResolutionState(str, Enum):
    IDLE = "idle"
    AWAITING_FIX = "awaiting_fix"
    APPLYING_FIX = "applying_fix"
    RETRYING = "retrying"
    RESOLVED = "resolved"
    EXHAUSTED = "exhausted"


@dataclass(slots=True)
class RemediationAttempt:
    """One fix proposal that was applied within a chain."""

    failing_context: str
    error_text: str
    fix_hash: str


@dataclass(slots=True)
class RemediationChain:
    """State of the fix attempts made for one originating failure."""

    failing_context: str
    error_text: str
    state: ResolutionState = ResolutionState.IDLE
    attempted_hashes: Set[str] = field(default_factory=set)
    attempts: List[RemediationAttempt] = field(default_factory=list)
    install_retried: bool = False

    def transition(self, state: ResolutionState) -> None:
        LOGGER.debug("Remediation of %r: %s -> %s", self.failing_context, self.state.value, state.value)
        self.state = state


@dataclass(slots=True)
class RemediationOutcome:
    """Result of :meth:`ErrorResolutionLoop.resolve`."""

    failing_context: str
    resolved: bool
    state: ResolutionState
    rounds: int = 0
    attempts: Tuple[RemediationAttempt, ...] = ()
    fallback: Optional[str] = None


@dataclass(slots=True)
class _FixResult:
    resolved: bool = False
    failure: Optional[str] = None


def fix_fingerprint(artifacts: Sequence[Artifact]) -> str:
    """Content hash of a fix proposal, independent of the surrounding prose."""
    payload = json.dumps([artifact.content for artifact in artifacts], ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def is_dependency_install(command: str) -> bool:
    return bool(_DEPENDENCY_INSTALL.match(command or ""))


class ErrorResolutionLoop:
    """Drives remediation chains for one :class:`~devassist.pipeline.AssistSession`."""

    def __init__(
        self,
        session: "AssistSession",
        *,
        max_rounds: int = 3,
        fallbacks: Tuple[Fallback, ...] = FALLBACK_CHAIN,
    ) -> None:
        self._session = session
        self._max_rounds = max(1, max_rounds)
        self._fallbacks = fallbacks

    def resolve(self, failing_context: str, error_text: str) -> RemediationOutcome:
        """Open a chain for ``failing_context`` and run it to a terminal state."""
        session = self._session
        chain = RemediationChain(failing_context=failing_context, error_text=error_text)
        session.tracker.record_error_detected(failing_context, error_text)
        session.operator.notify("Attempting to fix the error automatically...", level="info")

        current_error = error_text
        rounds = 0
        while rounds < self._max_rounds:
            rounds += 1
            chain.transition(ResolutionState.AWAITING_FIX)
            fix_text = self._request_fix(chain, current_error)
            if fix_text is None:
                break

            artifacts = parse_artifacts(fix_text)
            if not artifacts:
                session.operator.notify("No specific commands or files to fix were found in the solution.", level="warning")
                break

            fix_hash = fix_fingerprint(artifacts)
            if fix_hash in chain.attempted_hashes:
                session.operator.notify(
                    "This solution has already been attempted. Trying a different approach...", level="warning"
                )
                break
            chain.attempted_hashes.add(fix_hash)
            chain.attempts.append(
                RemediationAttempt(failing_context=failing_context, error_text=current_error, fix_hash=fix_hash)
            )

            chain.transition(ResolutionState.APPLYING_FIX)
            result = self._apply_fix(chain, fix_text, artifacts)
            if result.resolved:
                return self._finish(chain, rounds, resolved=True)

            chain.transition(ResolutionState.RETRYING)
            retry = self._retry_install(chain)
            if retry is not None and not retry.needs_remediation:
                return self._finish(chain, rounds, resolved=True)
            if retry is not None:
                current_error = retry.error_text or current_error
            elif result.failure:
                current_error = result.failure

        fallback = run_fallbacks(self._fallback_context(chain, current_error), self._fallbacks)
        return self._finish(chain, rounds, resolved=fallback.resolved, fallback=fallback.name)

    # ------------------------------------------------------------------ steps
    def _request_fix(self, chain: RemediationChain, error_text: str) -> Optional[str]:
        session = self._session
        if session.generator is None:
            session.operator.notify("No text generator configured; trying built-in fixes.", level="warning")
            return None
        prompt = render_remediation_prompt(chain.failing_context, error_text, session.project.working_dir)
        try:
            fix_text = session.generator.generate(
                REMEDIATION_SYSTEM_PROMPT,
                prompt,
                temperature=session.settings.remediation_temperature,
                max_tokens=session.settings.remediation_max_tokens,
            )
        except ProviderError as error:
            LOGGER.warning("Remediation request for %r failed: %s", chain.failing_context, error)
            session.operator.notify(f"Error while attempting resolution: {error}", level="error")
            return None
        session.operator.notify("Proposed solution:", level="info")
        session.operator.notify(fix_text, level="plain")
        return fix_text

    def _apply_fix(self, chain: RemediationChain, fix_text: str, artifacts: Sequence[Artifact]) -> _FixResult:
        session = self._session
        bindings = session.resolver.resolve(fix_text, artifacts)
        prepared = [Artifact(language=item.language, content=substitute(item.content, bindings)) for item in artifacts]
        files, commands = split_by_kind(prepared)
        session.operator.notify("Applying fix automatically...", level="info")

        failures: List[str] = []
        for artifact in files:
            outcome = session.write_file(artifact, infer_fix_filename(fix_text, artifact))
            if not outcome.ok:
                failures.append(f"Failed to write {outcome.path}: {outcome.error}")
        if files and not commands and not failures and chain.failing_context == BATCH_CONTEXT:
            return _FixResult(resolved=True)

        for block in commands:
            for command in split_commands(block.content):
                record = session.executor.execute(command)
                if record is None:
                    continue
                if self._settles(chain, record):
                    return _FixResult(resolved=True)
                if record.needs_remediation:
                    failures.append(record.error_text)
        return _FixResult(resolved=False, failure=failures[-1] if failures else None)

    @staticmethod
    def _settles(chain: RemediationChain, record: ExecutionRecord) -> bool:
        if not record.success:
            return False
        context = chain.failing_context.strip()
        return (
            (bool(context) and context in record.command)
            or "0 vulnerabilities" in record.stdout
            or not record.stderr.strip()
        )

    def _retry_install(self, chain: RemediationChain) -> Optional[ExecutionRecord]:
        if chain.install_retried or not is_dependency_install(chain.failing_context):
            return None
        chain.install_retried = True
        self._session.operator.notify(f"Retrying: {chain.failing_context}", level="info")
        return self._session.executor.execute(chain.failing_context, allow_repeat=True)

    def _fallback_context(self, chain: RemediationChain, error_text: str) -> FallbackContext:
        session = self._session

        def reinstall() -> Optional[ExecutionRecord]:
            command = "npm install"
            allow_repeat = not chain.install_retried and chain.failing_context.strip() == command
            if allow_repeat:
                chain.install_retried = True
            return session.executor.execute(command, allow_repeat=allow_repeat)

        return FallbackContext(
            failing_context=chain.failing_context,
            error_text=error_text,
            working_dir=session.project.working_dir,
            executor=session.executor,
            materializer=session.materializer,
            operator=session.operator,
            tracker=session.tracker,
            reinstall=reinstall,
        )

    def _finish(
        self,
        chain: RemediationChain,
        rounds: int,
        *,
        resolved: bool,
        fallback: Optional[str] = None,
    ) -> RemediationOutcome:
        session = self._session
        chain.transition(ResolutionState.RESOLVED if resolved else ResolutionState.EXHAUSTED)
        session.tracker.record_error_outcome(chain.failing_context, resolved=resolved)
        if resolved:
            session.operator.notify("✓ Fix successfully applied!", level="success")
        else:
            session.operator.notify(f"✗ Could not resolve the error from: {chain.failing_context}", level="error")
        return RemediationOutcome(
            failing_context=chain.failing_context,
            resolved=resolved,
            state=chain.state,
            rounds=rounds,
            attempts=tuple(chain.attempts),
            fallback=fallback,
        )
