"""CLI commands for asking the model and applying its responses."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from .config import DEFAULT_CONFIG_NAME, AssistSettings, load_config
from .models import ChatCompletionsClient, ProviderConfigurationError, ProviderError, TextGenerator
from .operator import ConsoleOperator
from .pipeline import run_assist_pipeline
from .project import ProjectContext
from .prompts import ASSIST_SYSTEM_PROMPT, render_assist_prompt
from .session import SessionStats, render_summary

APP_HELP = "Apply generated code and commands to the current project, repairing failures as they happen."
CONFIGURATION_HINT = (
    "Set OPENAI_API_KEY (or models.api_key in devassist.yaml) to a valid key "
    "and check models.base_url if you use a compatible endpoint."
)

LOGGER = logging.getLogger(__name__)

app = typer.Typer(help=APP_HELP)


def _configure_logging(config: Dict[str, Any], verbose: bool) -> None:
    logging_cfg = config.get("logging") or {}
    level_name = "DEBUG" if verbose else str(logging_cfg.get("level") or "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _build_client(config: Dict[str, Any], *, required: bool) -> Optional[TextGenerator]:
    """Create the chat completions client from the ``models`` section.

    Without credentials the command aborts when ``required`` is set and
    otherwise continues without a generator.
    """
    models_cfg = config.get("models") or {}
    options: Dict[str, Any] = {}
    for key, floor in (("timeout", 0.0), ("retry_delay", -1.0)):
        number = models_cfg.get(key)
        if isinstance(number, (int, float)) and not isinstance(number, bool) and number > floor:
            options[key] = float(number)
    attempts = models_cfg.get("max_attempts")
    if isinstance(attempts, int) and attempts > 0:
        options["max_attempts"] = attempts
    for key in ("base_url", "api_key"):
        text = models_cfg.get(key)
        if isinstance(text, str) and text.strip():
            options[key] = text.strip()

    try:
        return ChatCompletionsClient(model=str(models_cfg.get("default") or "gpt-4-turbo"), **options)
    except ProviderConfigurationError as error:
        if required:
            typer.echo(f"Error: {error}", err=True)
            typer.echo(CONFIGURATION_HINT)
            raise typer.Exit(code=1) from error
        typer.echo("No API key configured; failures will only get built-in fixes.", err=True)
        return None


def _resolve_settings(config: Dict[str, Any], auto_execute: Optional[bool]) -> AssistSettings:
    settings = AssistSettings.from_config(config)
    if auto_execute is not None:
        settings.auto_execute = auto_execute
    return settings


def _render_stats(stats: SessionStats, *, as_json: bool) -> None:
    if as_json:
        typer.echo(stats.model_dump_json(indent=2))
        return
    typer.echo("")
    typer.echo(render_summary(stats))


@app.command()
def ask(
    query: str = typer.Argument(..., help="What you want the assistant to do."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the devassist configuration file.",
    ),
    auto_execute: Optional[bool] = typer.Option(
        None,
        "--yes/--confirm",
        help="Run commands without asking, or confirm each one (defaults to execution.auto_execute).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the session statistics as JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Ask the model about the current project and apply its answer."""
    config_data = load_config(Path(config))
    _configure_logging(config_data, verbose)
    settings = _resolve_settings(config_data, auto_execute)
    project = ProjectContext.discover()
    LOGGER.debug("Project root %s (working dir %s)", project.root, project.working_dir)
    client = _build_client(config_data, required=True)
    if client is None:
        raise typer.Exit(code=1)

    models_cfg = config_data.get("models") or {}
    temperature = models_cfg.get("temperature", 0.5)
    max_tokens = models_cfg.get("max_tokens")
    try:
        response = client.generate(
            ASSIST_SYSTEM_PROMPT,
            render_assist_prompt(query, project.describe()),
            temperature=float(temperature) if isinstance(temperature, (int, float)) else 0.5,
            max_tokens=max_tokens if isinstance(max_tokens, int) and max_tokens > 0 else None,
        )
    except ProviderError as error:
        typer.echo(f"Error: {error}", err=True)
        typer.echo(CONFIGURATION_HINT)
        raise typer.Exit(code=1) from error

    operator = ConsoleOperator(to_stderr=as_json)
    operator.notify(response, level="plain")
    stats = run_assist_pipeline(response, project, generator=client, operator=operator, settings=settings)
    _render_stats(stats, as_json=as_json)


@app.command()
def apply(
    response_file: str = typer.Argument(..., help="Saved model response to apply ('-' reads stdin)."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the devassist configuration file.",
    ),
    auto_execute: Optional[bool] = typer.Option(
        None,
        "--yes/--confirm",
        help="Run commands without asking, or confirm each one (defaults to execution.auto_execute).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the session statistics as JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Apply a previously generated response to the current project."""
    config_data = load_config(Path(config))
    _configure_logging(config_data, verbose)
    settings = _resolve_settings(config_data, auto_execute)

    if response_file == "-":
        response = typer.get_text_stream("stdin").read()
    else:
        response_path = Path(response_file)
        if not response_path.exists():
            raise typer.BadParameter(f"Response file not found: {response_path}")
        response = response_path.read_text(encoding="utf-8")

    project = ProjectContext.discover()
    client = _build_client(config_data, required=False) if settings.remediation_enabled else None
    operator = ConsoleOperator(to_stderr=as_json)
    stats = run_assist_pipeline(response, project, generator=client, operator=operator, settings=settings)
    _render_stats(stats, as_json=as_json)


if __name__ == "__main__":
    app()
