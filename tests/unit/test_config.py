from __future__ import annotations

from pathlib import Path

import pytest
import typer

from devassist.config import AssistSettings, load_config


def test_missing_config_yields_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "devassist.yaml")

    settings = AssistSettings.from_config(config)

    assert config["models"]["default"] == "gpt-4-turbo"
    assert settings.max_rounds == 3
    assert settings.command_timeout is None
    assert settings.auto_execute


def test_config_overrides_are_merged(tmp_path: Path) -> None:
    path = tmp_path / "devassist.yaml"
    path.write_text(
        "execution:\n  auto_execute: false\n  command_timeout: 30\nremediation:\n  max_rounds: 5\nsecrets:\n  path: config/.env\n",
        encoding="utf-8",
    )

    config = load_config(path)
    settings = AssistSettings.from_config(config)

    assert config["models"]["max_attempts"] == 3
    assert not settings.auto_execute
    assert settings.command_timeout == 30.0
    assert settings.max_rounds == 5
    assert settings.secrets_path == "config/.env"


def test_invalid_values_fall_back_to_defaults() -> None:
    settings = AssistSettings.from_config({"remediation": {"max_rounds": 0}, "execution": {"command_timeout": "soon"}})

    assert settings.max_rounds == 3
    assert settings.command_timeout is None


@pytest.mark.parametrize("content", ["models: [unclosed", "- just\n- a list\n"])
def test_bad_documents_abort(tmp_path: Path, content: str) -> None:
    path = tmp_path / "devassist.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(typer.Exit):
        load_config(path)
