"""Shell command execution with safety gating and per-session deduplication."""

from __future__ import annotations

import logging
import re
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, MutableSet, Optional, Pattern, Tuple

from ..operator import Operator
from ..session import SessionTracker, utc_now
from .placeholders import find_unresolved

__all__ = [
    "FAILURE_SIGNATURES",
    "CommandExecutor",
    "ExecutionRecord",
    "ShellOutcome",
    "ShellRunner",
    "SkipReason",
    "has_failure_signature",
    "run_shell",
    "safety_violation",
    "split_commands",
]

LOGGER = logging.getLogger(__name__)

FAILURE_SIGNATURES: Tuple[str, ...] = ("Error:", "error:", "fatal:")

_COMMAND_START = r"(?:^|[^\w-])"
_SUPERUSER: Pattern[str] = re.compile(_COMMAND_START + r"(?:sudo|doas)(?=\s|$)|" + _COMMAND_START + r"su\s+-")
_RM_INVOCATION: Pattern[str] = re.compile(_COMMAND_START + r"rm(?=\s)([^;&|\n]*)")
_PROMPT_MARKER: Pattern[str] = re.compile(r"^\$\s+")


@dataclass(slots=True)
class ShellOutcome:
    """Raw result of handing a command string to the host shell."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""


ShellRunner = Callable[[str, Path, Optional[float]], ShellOutcome]


class SkipReason(str, Enum):
    UNSAFE = "unsafe"
    PLACEHOLDER = "unresolved-placeholder"
    DUPLICATE = "duplicate"
    DECLINED = "declined"


@dataclass(slots=True)
class ExecutionRecord:
    """One command that reached the shell."""

    command: str
    timestamp: datetime = field(default_factory=utc_now)
    success: bool = False
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    duration: float = 0.0

    @property
    def needs_remediation(self) -> bool:
        """True for a non-zero exit or for stderr carrying a failure signature."""
        return not self.success or has_failure_signature(self.stderr)

    @property
    def error_text(self) -> str:
        text = self.stderr.strip() or (self.stdout.strip() if not self.success else "")
        if text:
            return text
        return f"Command exited with code {self.exit_code}" if self.exit_code else ""


def run_shell(command: str, cwd: Path, timeout: float | None = None) -> ShellOutcome:
    """Run ``command`` through the host shell and capture its output."""
    try:
        process = subprocess.run(  # noqa: S602 - commands are operator-approved shell text
            command,
            shell=True,
            cwd=cwd,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as error:
        stdout = error.stdout if isinstance(error.stdout, str) else ""
        return ShellOutcome(exit_code=124, stdout=stdout, stderr=f"Error: command timed out after {timeout}s")
    except OSError as error:
        return ShellOutcome(exit_code=127, stderr=f"Error: {error}")
    return ShellOutcome(exit_code=process.returncode, stdout=process.stdout or "", stderr=process.stderr or "")


def has_failure_signature(stderr: str) -> bool:
    return any(token in (stderr or "") for token in FAILURE_SIGNATURES)


def split_commands(block: str) -> List[str]:
    """Split a command block into logical commands.

    Blank lines and ``#`` comments are dropped, a leading ``$`` prompt marker
    is removed, and lines ending in ``\\`` are joined with the following line
    so a continued command is never fragmented.
    """
    commands: List[str] = []
    pending: List[str] = []
    for raw_line in block.splitlines():
        line = raw_line.strip()
        if not pending and (not line or line.startswith("#")):
            continue
        if not pending:
            line = _PROMPT_MARKER.sub("", line)
        if line.endswith("\\"):
            fragment = line[:-1].strip()
            if fragment:
                pending.append(fragment)
            continue
        if line:
            pending.append(line)
        if pending:
            commands.append(" ".join(pending))
            pending = []
    if pending:
        commands.append(" ".join(pending))
    return commands


def _is_recursive_forced_delete(command: str) -> bool:
    for match in _RM_INVOCATION.finditer(command):
        flags = [token for token in match.group(1).split() if token.startswith("-")]
        letters = "".join(flag[1:] for flag in flags if not flag.startswith("--"))
        recursive = "r" in letters or "R" in letters or "--recursive" in flags
        force = "f" in letters or "--force" in flags
        if recursive and force:
            return True
    return False


def safety_violation(command: str) -> str | None:
    """Describe why ``command`` must not run, or return ``None`` when it may."""
    if _SUPERUSER.search(command):
        return "superuser elevation"
    if _is_recursive_forced_delete(command):
        return "recursive forced delete"
    return None


class CommandExecutor:
    """Runs commands one at a time in ``working_dir``.

    ``executed`` is the session-wide set of command strings that already
    reached the shell; a command found there is skipped rather than re-run.
    """

    def __init__(
        self,
        working_dir: Path,
        *,
        tracker: SessionTracker,
        operator: Operator,
        executed: MutableSet[str] | None = None,
        runner: ShellRunner | None = None,
        timeout: float | None = None,
        auto_execute: bool = True,
    ) -> None:
        self.working_dir = Path(working_dir)
        self._tracker = tracker
        self._operator = operator
        self._executed: MutableSet[str] = executed if executed is not None else set()
        self._runner = runner or run_shell
        self._timeout = timeout
        self._auto_execute = auto_execute

    @property
    def executed(self) -> frozenset[str]:
        return frozenset(self._executed)

    def has_executed(self, command: str) -> bool:
        return command.strip() in self._executed

    def check(self, command: str) -> SkipReason | None:
        """Return the reason ``command`` would be skipped, if any."""
        command = command.strip()
        if safety_violation(command):
            return SkipReason.UNSAFE
        if find_unresolved(command):
            return SkipReason.PLACEHOLDER
        if command in self._executed:
            return SkipReason.DUPLICATE
        return None

    def execute_block(
        self,
        block: str,
        *,
        on_failure: Callable[[ExecutionRecord], None] | None = None,
    ) -> List[ExecutionRecord]:
        """Run every logical command of ``block`` in order.

        ``on_failure`` is invoked for each record that needs remediation before
        the next command starts, so later commands see the repaired state.
        """
        records: List[ExecutionRecord] = []
        for command in split_commands(block):
            record = self.execute(command)
            if record is None:
                continue
            records.append(record)
            if on_failure is not None and record.needs_remediation:
                on_failure(record)
        return records

    def execute(self, command: str, *, allow_repeat: bool = False) -> ExecutionRecord | None:
        """Run ``command`` unless it is gated; return its record or ``None`` when skipped.

        ``allow_repeat`` lets the caller re-run a command that already ran this
        session; the safety and placeholder gates still apply.
        """
        command = command.strip()
        if not command:
            return None

        reason = self.check(command)
        if reason is SkipReason.DUPLICATE and allow_repeat:
            reason = None
        if reason is not None:
            self._report_skip(command, reason)
            return None

        if not self._auto_execute and not self._operator.confirm(f"Execute this command: \"{command}\"?"):
            self._report_skip(command, SkipReason.DECLINED)
            return None

        self._executed.add(command)
        record = ExecutionRecord(command=command)
        self._tracker.begin_command(record)
        self._operator.notify(f"$ {command}", level="info")

        started = time.monotonic()
        outcome = self._runner(command, self.working_dir, self._timeout)
        record.duration = time.monotonic() - started
        record.exit_code = outcome.exit_code
        record.stdout = outcome.stdout
        record.stderr = outcome.stderr
        record.success = outcome.exit_code == 0
        self._tracker.complete_command(record)

        if record.stdout.strip():
            self._operator.notify(record.stdout.rstrip(), level="plain")
        if record.stderr.strip():
            self._operator.notify(record.stderr.rstrip(), level="warning")
        if not record.success:
            self._operator.notify(f"Command failed (exit {record.exit_code}): {command}", level="error")
        LOGGER.debug("Command %r finished with exit code %s", command, record.exit_code)
        return record

    def _report_skip(self, command: str, reason: SkipReason) -> None:
        preview = command if len(command) <= 50 else f"{command[:50]}..."
        messages = {
            SkipReason.UNSAFE: f"Skipping potentially unsafe command: {preview}",
            SkipReason.PLACEHOLDER: f"Skipping example command with unresolved placeholder: {preview}",
            SkipReason.DUPLICATE: f"Skipping duplicate command: {preview}",
            SkipReason.DECLINED: f"Command execution declined: {preview}",
        }
        self._operator.notify(messages[reason], level="warning")
        self._tracker.record_skip(command, reason.value)
