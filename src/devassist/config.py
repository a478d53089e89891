"""YAML configuration loading and the typed settings derived from it."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import typer
import yaml

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "AssistSettings",
    "load_config",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "devassist.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "models": {
        "default": "gpt-4-turbo",
        "base_url": "",
        "api_key": "",
        "timeout": 60,
        "temperature": 0.5,
        "max_tokens": 1500,
        "max_attempts": 3,
        "retry_delay": 0.5,
    },
    "execution": {
        "auto_execute": True,
        "command_timeout": None,
    },
    "remediation": {
        "enabled": True,
        "max_rounds": 3,
        "temperature": 0.3,
        "max_tokens": 1000,
    },
    "secrets": {
        "path": ".env",
        "reuse_saved": False,
    },
    "logging": {
        "level": "WARNING",
    },
}


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration and overlay it on :data:`DEFAULT_CONFIG_TEMPLATE`.

    A missing file yields the defaults; unparsable YAML or a document that is
    not a mapping aborts the command.
    """
    config = copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)
    if not config_path.exists():
        LOGGER.debug("No configuration at %s; using defaults", config_path)
        return config

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        typer.echo(f"Failed to parse config: {error}")
        raise typer.Exit(code=1) from error

    if not isinstance(data, dict):
        typer.echo("Configuration must be a mapping at the top level.")
        raise typer.Exit(code=1)

    return _merge(config, data)


def _positive_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if value > 0 else None


def _positive_int(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return default
    return value


@dataclass(slots=True)
class AssistSettings:
    """Execution knobs resolved from the ``execution``, ``remediation`` and ``secrets`` sections."""

    auto_execute: bool = True
    command_timeout: Optional[float] = None
    remediation_enabled: bool = True
    max_rounds: int = 3
    remediation_temperature: float = 0.3
    remediation_max_tokens: Optional[int] = 1000
    secrets_path: str = ".env"
    reuse_saved_secrets: bool = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "AssistSettings":
        execution_cfg = config.get("execution") or {}
        remediation_cfg = config.get("remediation") or {}
        secrets_cfg = config.get("secrets") or {}

        temperature = remediation_cfg.get("temperature", 0.3)
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
            temperature = 0.3

        secrets_path = secrets_cfg.get("path")
        if not isinstance(secrets_path, str) or not secrets_path.strip():
            secrets_path = ".env"

        return cls(
            auto_execute=bool(execution_cfg.get("auto_execute", True)),
            command_timeout=_positive_float(execution_cfg.get("command_timeout")),
            remediation_enabled=bool(remediation_cfg.get("enabled", True)),
            max_rounds=_positive_int(remediation_cfg.get("max_rounds"), 3),
            remediation_temperature=float(temperature),
            remediation_max_tokens=_positive_int(remediation_cfg.get("max_tokens"), 1000),
            secrets_path=secrets_path.strip(),
            reuse_saved_secrets=bool(secrets_cfg.get("reuse_saved", False)),
        )
