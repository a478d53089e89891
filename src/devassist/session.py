"""Per-invocation bookkeeping of commands, files and errors."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .tools.executor import ExecutionRecord
    from .tools.materializer import FileOutcome

__all__ = [
    "CommandStats",
    "ErrorStats",
    "ExecutedCommand",
    "FileStats",
    "SessionStats",
    "SessionTracker",
    "render_summary",
    "utc_now",
]

TELEMETRY_LOGGER = logging.getLogger("devassist.telemetry")


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class ExecutedCommand(RecordModel):
    """Summary line for one command that reached the shell."""

    command: str
    success: bool
    timestamp: datetime
    exit_code: Optional[int] = None


class CommandStats(RecordModel):
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    executed: List[ExecutedCommand] = Field(default_factory=list)


class FileStats(RecordModel):
    created: List[str] = Field(default_factory=list)
    updated: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)


class ErrorStats(RecordModel):
    detected: int = 0
    resolved: int = 0
    unresolved: int = 0


class SessionStats(RecordModel):
    """Aggregate view of a single assist invocation."""

    commands: CommandStats = Field(default_factory=CommandStats)
    files: FileStats = Field(default_factory=FileStats)
    errors: ErrorStats = Field(default_factory=ErrorStats)
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    elapsed_seconds: float = 0.0


def _serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple, set)):
        return [_serialise_event_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _serialise_event_value(child) for key, child in value.items()}
    return str(value)


def _emit_event(event: str, **fields: Any) -> None:
    """Log a structured telemetry event for the session."""
    payload = {"event": event, "timestamp": utc_now().isoformat()}
    for key, value in fields.items():
        payload[key] = _serialise_event_value(value)
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))


class SessionTracker:
    """Additive event log for one assist invocation.

    Entries are appended and never revised, with the single exception of the
    ``success`` flag of the command currently in flight.
    """

    def __init__(self) -> None:
        self._commands: List["ExecutionRecord"] = []
        self._skipped = 0
        self._files = FileStats()
        self._errors = ErrorStats()
        self._started_at = utc_now()
        self._finished_at: Optional[datetime] = None

    def start(self) -> None:
        """Reset every counter and stamp a new start time."""
        self._commands = []
        self._skipped = 0
        self._files = FileStats()
        self._errors = ErrorStats()
        self._started_at = utc_now()
        self._finished_at = None
        _emit_event("session_started")

    def finish(self) -> None:
        if self._finished_at is None:
            self._finished_at = utc_now()
        _emit_event("session_finished", elapsed=self._elapsed())

    # ----------------------------------------------------------------- events
    def begin_command(self, record: "ExecutionRecord") -> None:
        self._commands.append(record)
        _emit_event("command_started", command=record.command)

    def complete_command(self, record: "ExecutionRecord") -> None:
        _emit_event(
            "command_finished",
            command=record.command,
            success=record.success,
            exit_code=record.exit_code,
            duration=round(record.duration, 3),
        )

    def record_skip(self, command: str, reason: str) -> None:
        self._skipped += 1
        _emit_event("command_skipped", command=command, reason=reason)

    def record_file(self, outcome: "FileOutcome") -> None:
        if outcome.status == "created":
            self._files.created.append(outcome.path)
        elif outcome.status == "updated":
            self._files.updated.append(outcome.path)
        else:
            self._files.failed.append(outcome.path)
        _emit_event("file_written", path=outcome.path, status=outcome.status.value, error=outcome.error)

    def record_error_detected(self, context: str, error_text: str) -> None:
        self._errors.detected += 1
        _emit_event("error_detected", context=context, error=error_text[:500])

    def record_error_outcome(self, context: str, *, resolved: bool) -> None:
        if resolved:
            self._errors.resolved += 1
        else:
            self._errors.unresolved += 1
        _emit_event("error_outcome", context=context, resolved=resolved)

    # ---------------------------------------------------------------- queries
    @property
    def executed_records(self) -> tuple["ExecutionRecord", ...]:
        return tuple(self._commands)

    def _elapsed(self) -> float:
        end = self._finished_at or utc_now()
        return max(0.0, (end - self._started_at).total_seconds())

    def summarize(self) -> SessionStats:
        """Build a fresh :class:`SessionStats` snapshot without touching state."""
        executed = [
            ExecutedCommand(
                command=record.command,
                success=record.success,
                timestamp=record.timestamp,
                exit_code=record.exit_code,
            )
            for record in self._commands
        ]
        commands = CommandStats(
            succeeded=sum(1 for record in self._commands if record.success),
            failed=sum(1 for record in self._commands if not record.success),
            skipped=self._skipped,
            executed=executed,
        )
        return SessionStats(
            commands=commands,
            files=self._files.model_copy(deep=True),
            errors=self._errors.model_copy(),
            started_at=self._started_at,
            finished_at=self._finished_at,
            elapsed_seconds=round(self._elapsed(), 3),
        )


def _truncate(command: str, limit: int = 60) -> str:
    return command if len(command) <= limit else f"{command[:limit]}..."


def render_summary(stats: SessionStats) -> str:
    """Return the human readable execution summary."""
    lines: List[str] = [
        "EXECUTION SUMMARY",
        "Commands:",
        f"  ✓ Successful: {stats.commands.succeeded}",
        f"  ✗ Failed: {stats.commands.failed}",
        f"  - Skipped: {stats.commands.skipped}",
        "Files:",
        f"  ✓ Created: {len(stats.files.created)}",
        f"  ⟳ Updated: {len(stats.files.updated)}",
        f"  ✗ Failed: {len(stats.files.failed)}",
        "Errors:",
        f"  ⚠ Detected: {stats.errors.detected}",
        f"  ✓ Resolved: {stats.errors.resolved}",
        f"  ✗ Unresolved: {stats.errors.unresolved}",
        "Time:",
        f"  ⏱ Elapsed: {round(stats.elapsed_seconds)} seconds",
    ]
    if stats.commands.executed:
        lines.append("Command Details:")
        for entry in stats.commands.executed:
            icon = "✓" if entry.success else "✗"
            lines.append(f"  {icon} {_truncate(entry.command)}")
    if stats.files.created or stats.files.updated or stats.files.failed:
        lines.append("File Details:")
        lines.extend(f"  ✓ Created: {path}" for path in stats.files.created)
        lines.extend(f"  ⟳ Updated: {path}" for path in stats.files.updated)
        lines.extend(f"  ✗ Failed: {path}" for path in stats.files.failed)
    return "\n".join(lines)
