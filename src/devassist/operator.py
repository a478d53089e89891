"""Synchronous operator interaction: notices, prompts and confirmations."""

from __future__ import annotations

from typing import Literal

import typer

NoticeLevel = Literal["plain", "info", "success", "warning", "error"]

_LEVEL_COLOURS: dict[str, str | None] = {
    "plain": None,
    "info": typer.colors.CYAN,
    "success": typer.colors.GREEN,
    "warning": typer.colors.YELLOW,
    "error": typer.colors.RED,
}


class Operator:
    """Interface used by the pipeline whenever a human is involved.

    Every call blocks until the operator answers; the pipeline never does
    other work while waiting.
    """

    def notify(self, message: str, *, level: NoticeLevel = "info") -> None:
        raise NotImplementedError

    def prompt(self, message: str, *, secret: bool = False) -> str:
        raise NotImplementedError

    def confirm(self, message: str, *, default: bool = False) -> bool:
        raise NotImplementedError


class ConsoleOperator(Operator):
    """Terminal operator backed by typer's echo and prompt helpers."""

    def __init__(self, *, colour: bool = True, to_stderr: bool = False) -> None:
        self._colour = colour
        self._to_stderr = to_stderr

    def notify(self, message: str, *, level: NoticeLevel = "info") -> None:
        colour = _LEVEL_COLOURS.get(level) if self._colour else None
        typer.secho(message, fg=colour, err=self._to_stderr or level == "error")

    def prompt(self, message: str, *, secret: bool = False) -> str:
        value = typer.prompt(message, default="", hide_input=secret, show_default=False)
        return str(value)

    def confirm(self, message: str, *, default: bool = False) -> bool:
        return bool(typer.confirm(message, default=default))


__all__ = ["ConsoleOperator", "NoticeLevel", "Operator"]
