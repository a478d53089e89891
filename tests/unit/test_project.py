from __future__ import annotations

import json
from pathlib import Path

from devassist.project import ProjectContext


def test_discover_walks_up_to_manifest(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text(
        json.dumps(
            {
                "name": "vault",
                "description": "Token vault",
                "dependencies": {"ethers": "^6"},
                "devDependencies": {"eslint": "^9"},
            }
        ),
        encoding="utf-8",
    )
    nested = tmp_path / "scripts" / "deploy"
    nested.mkdir(parents=True)

    project = ProjectContext.discover(nested)

    assert project.root == tmp_path.resolve()
    assert project.working_dir == nested.resolve()
    assert project.subdirectory == Path("scripts/deploy")
    assert project.dependencies == ["ethers", "eslint"]
    assert project.describe() == (
        "The current project is vault (Token vault). It uses the following dependencies: ethers, eslint. "
        "Commands run in the subdirectory scripts/deploy."
    )


def test_discover_without_marker_uses_working_dir(tmp_path: Path) -> None:
    project = ProjectContext.discover(tmp_path)

    assert project.root == tmp_path.resolve()
    assert not project.detected
    assert project.describe() == ""


def test_unreadable_manifest_is_ignored(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text("{not json", encoding="utf-8")

    project = ProjectContext.discover(tmp_path)

    assert project.detected
    assert project.name is None
    assert project.describe() == f"The current project is {tmp_path.resolve().name}."
