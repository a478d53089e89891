from __future__ import annotations

from pathlib import Path

from devassist.config import AssistSettings
from devassist.pipeline import run_assist_pipeline
from devassist.project import ProjectContext
from devassist.tools.executor import ShellOutcome

from conftest import FakeShell, ScriptedGenerator, ScriptedOperator


def test_private_key_placeholder_is_written_exactly(project: ProjectContext, shell: FakeShell) -> None:
    operator = ScriptedOperator(answers=["abc123"])
    response = "Store your key:\n\n```plaintext\nPRIVATE_KEY=[YourPrivateKeyArray]\n```\n"

    stats = run_assist_pipeline(response, project, operator=operator, runner=shell)

    assert (project.working_dir / ".env").read_text(encoding="utf-8") == "PRIVATE_KEY=abc123"
    assert operator.prompts == [("Enter your private key", True)]
    assert stats.files.failed == []
    assert shell.calls == []


def test_unsafe_command_is_skipped_and_not_counted_as_failed(
    project: ProjectContext, shell: FakeShell, operator: ScriptedOperator
) -> None:
    response = "```javascript\nconsole.log('ready');\n```\n\n```bash\nsudo rm -rf /\n```"

    stats = run_assist_pipeline(response, project, operator=operator, runner=shell)

    assert shell.calls == []
    assert stats.commands.failed == 0
    assert stats.commands.skipped == 1
    assert stats.files.created == ["script1.js"]


def test_delete_wrapped_in_a_subshell_never_reaches_the_shell(
    project: ProjectContext, shell: FakeShell, operator: ScriptedOperator
) -> None:
    response = "Clean up first:\n\n```bash\nbash -c 'rm -rf ~'\n/bin/rm -rf /\n```"

    stats = run_assist_pipeline(response, project, operator=operator, runner=shell)

    assert shell.calls == []
    assert stats.commands.skipped == 2
    assert stats.commands.failed == 0


def test_fence_info_string_does_not_turn_prose_into_a_command(
    project: ProjectContext, shell: FakeShell, operator: ScriptedOperator
) -> None:
    response = 'Create a file named a.js\n```js title="a.js"\nconsole.log(1)\n```\nThen run it with node:\n```bash\nnode a.js\n```'

    stats = run_assist_pipeline(response, project, operator=operator, runner=shell)

    assert (project.working_dir / "a.js").read_text(encoding="utf-8") == "console.log(1)"
    assert shell.calls == ["node a.js"]
    assert stats.files.created == ["a.js"]


def test_missing_module_scenario_installs_the_module(
    project: ProjectContext, shell: FakeShell, operator: ScriptedOperator
) -> None:
    shell.outcomes["npm install"] = ShellOutcome(exit_code=1, stderr="Error: Cannot find module 'left-pad'")

    stats = run_assist_pipeline("```bash\nnpm install\n```", project, operator=operator, runner=shell)

    assert shell.calls == ["npm install", "npm install left-pad --save"]
    assert (stats.commands.succeeded, stats.commands.failed) == (1, 1)
    assert (stats.errors.detected, stats.errors.resolved, stats.errors.unresolved) == (1, 1, 0)


def test_files_are_written_before_commands_run(project: ProjectContext, operator: ScriptedOperator) -> None:
    seen: list[bool] = []

    def runner(command: str, cwd: Path, timeout: float | None) -> ShellOutcome:
        seen.append((cwd / "server.js").exists())
        return ShellOutcome(exit_code=0)

    response = "```bash\nnode server.js\n```\n\nCreate a file named server.js:\n\n```js\nrequire('http');\n```"

    run_assist_pipeline(response, project, operator=operator, runner=runner)

    assert seen == [True]


def test_commands_from_fixes_never_rerun_executed_commands(
    project: ProjectContext, shell: FakeShell, operator: ScriptedOperator
) -> None:
    shell.outcomes["npm run build"] = ShellOutcome(exit_code=1, stderr="Error: build broke")
    generator = ScriptedGenerator(["Run the tests first:\n```bash\nnpm test\n```"])
    response = "```bash\nnpm test\nnpm run build\nnpm test\n```"

    stats = run_assist_pipeline(response, project, generator=generator, operator=operator, runner=shell)

    assert shell.calls == ["npm test", "npm run build"]
    assert stats.commands.skipped == 2
    assert stats.errors.unresolved == 1


def test_placeholder_is_bound_once_across_remediation_rounds(project: ProjectContext, shell: FakeShell) -> None:
    operator = ScriptedOperator(answers=["key-1"])
    failing = "curl -f -H 'x-api-key: key-1' https://api.example.com/health"
    shell.outcomes[failing] = ShellOutcome(exit_code=22, stderr="curl: (22) The requested URL returned error: 404")
    generator = ScriptedGenerator(
        ["Use the v2 endpoint:\n```bash\ncurl -f -H 'x-api-key: [YourAPIKey]' https://api.example.com/v2/health\n```"]
    )
    response = "```bash\ncurl -f -H 'x-api-key: [YourAPIKey]' https://api.example.com/health\n```"

    stats = run_assist_pipeline(response, project, generator=generator, operator=operator, runner=shell)

    assert len(operator.prompts) == 1
    assert shell.calls == [failing, "curl -f -H 'x-api-key: key-1' https://api.example.com/v2/health"]
    assert stats.errors.resolved == 1
    assert (project.working_dir / ".env").read_text(encoding="utf-8") == "API_KEY=key-1\n"


def test_write_failures_open_a_single_batch_chain(
    project: ProjectContext, shell: FakeShell, operator: ScriptedOperator
) -> None:
    (project.working_dir / "blocker").write_text("", encoding="utf-8")
    response = (
        "Create a file named blocker/a.json and a file named blocker/b.json.\n"
        "```json\n{\"a\": 1}\n```\n```json\n{\"b\": 2}\n```"
    )
    generator = ScriptedGenerator([])

    stats = run_assist_pipeline(response, project, generator=generator, operator=operator, runner=shell)

    assert stats.files.failed == ["blocker/a.json", "blocker/b.json"]
    assert stats.errors.detected == 1
    assert stats.errors.unresolved == 1
    assert "auto-process" in generator.user_prompts[0]


def test_disabled_remediation_only_counts_errors(
    project: ProjectContext, shell: FakeShell, operator: ScriptedOperator
) -> None:
    shell.outcomes["make"] = ShellOutcome(exit_code=2, stderr="make: *** No targets specified")
    generator = ScriptedGenerator(["```bash\nmake all\n```"])
    settings = AssistSettings(remediation_enabled=False)

    stats = run_assist_pipeline("```sh\nmake\n```", project, generator=generator, operator=operator, runner=shell, settings=settings)

    assert generator.payloads == []
    assert (stats.errors.detected, stats.errors.unresolved) == (1, 1)


def test_subdirectory_writes_stay_in_working_dir(tmp_path: Path, shell: FakeShell, operator: ScriptedOperator) -> None:
    root = tmp_path / "repo"
    working_dir = root / "packages" / "web"
    working_dir.mkdir(parents=True)
    project = ProjectContext(root=root, working_dir=working_dir, detected=True)

    stats = run_assist_pipeline(
        "Create a file named index.js:\n```javascript\nexport {};\n```", project, operator=operator, runner=shell
    )

    assert stats.files.created == ["packages/web/index.js"]
    assert (working_dir / "index.js").exists()
    assert not (root / "index.js").exists()


def test_response_without_blocks_is_a_noop(project: ProjectContext, shell: FakeShell, operator: ScriptedOperator) -> None:
    stats = run_assist_pipeline("Nothing to run here.", project, operator=operator, runner=shell)

    assert stats.commands.executed == []
    assert stats.files.created == []
    assert stats.finished_at is not None
