from __future__ import annotations

from devassist.config import AssistSettings
from devassist.models import ProviderError
from devassist.remediation.loop import (
    ErrorResolutionLoop,
    ResolutionState,
    fix_fingerprint,
    is_dependency_install,
)
from devassist.tools.executor import ShellOutcome
from devassist.tools.parser import Artifact

from conftest import FakeShell, ScriptedGenerator, ScriptedOperator


def test_fix_fingerprint_ignores_prose_but_not_content() -> None:
    first = [Artifact(language="bash", content="npm ci")]
    second = [Artifact(language="sh", content="npm ci")]

    assert fix_fingerprint(first) == fix_fingerprint(second)
    assert fix_fingerprint(first) != fix_fingerprint([Artifact(language="bash", content="npm ci --force")])


def test_dependency_install_detection() -> None:
    assert is_dependency_install("npm install")
    assert is_dependency_install("npm i ethers")
    assert is_dependency_install("pip install -r requirements.txt")
    assert not is_dependency_install("npm run install-hooks")
    assert not is_dependency_install("node install.js")


def test_successful_fix_resolves_the_chain(make_session, shell: FakeShell) -> None:
    generator = ScriptedGenerator(["Install it:\n```bash\nnpm install left-pad --save\n```"])
    session = make_session(generator=generator)

    outcome = ErrorResolutionLoop(session).resolve("node index.js", "Error: Cannot find module 'left-pad'")

    assert outcome.resolved
    assert outcome.state is ResolutionState.RESOLVED
    assert outcome.rounds == 1
    assert shell.calls == ["npm install left-pad --save"]
    errors = session.tracker.summarize().errors
    assert (errors.detected, errors.resolved, errors.unresolved) == (1, 1, 0)
    prompt = generator.user_prompts[0]
    assert 'executing this command: "node index.js"' in prompt
    assert "Cannot find module 'left-pad'" in prompt


def test_repeated_fix_escalates_to_fallbacks(make_session, shell: FakeShell, operator: ScriptedOperator) -> None:
    fix = "Try:\n```bash\nnpm run repair\n```"
    shell.outcomes["npm run repair"] = ShellOutcome(exit_code=1, stderr="Error: still broken")
    generator = ScriptedGenerator([fix, "Again:\n" + fix.split("\n", 1)[1]])
    session = make_session(generator=generator)

    outcome = ErrorResolutionLoop(session).resolve("npm run build", "Error: build failed")

    assert shell.calls == ["npm run repair"]
    assert len(outcome.attempts) == 1
    assert outcome.rounds == 2
    assert outcome.state is ResolutionState.EXHAUSTED
    assert outcome.fallback is None
    assert any("already been attempted" in text for text in operator.messages("warning"))
    assert session.tracker.summarize().errors.unresolved == 1


def test_provider_error_during_remediation_runs_fallbacks(make_session, shell: FakeShell) -> None:
    session = make_session(generator=ScriptedGenerator([ProviderError("service unavailable")]))

    outcome = ErrorResolutionLoop(session).resolve("npm install", "Error: Cannot find module 'left-pad'")

    assert outcome.fallback == "package-manager"
    assert outcome.resolved
    assert shell.calls == ["npm install left-pad --save"]


def test_response_without_blocks_runs_fallbacks(make_session, shell: FakeShell, project) -> None:
    session = make_session(generator=ScriptedGenerator(["Check that the folder exists."]))

    outcome = ErrorResolutionLoop(session).resolve("cd dist/assets", "bash: cd: dist/assets: No such file or directory")

    assert outcome.fallback == "missing-path"
    assert (project.working_dir / "dist" / "assets").is_dir()


def test_dependency_install_is_retried_once(make_session, shell: FakeShell) -> None:
    shell.outcomes["npm install"] = [
        ShellOutcome(exit_code=1, stderr="npm ERR! code ECONNRESET"),
        ShellOutcome(exit_code=0, stdout="added 10 packages"),
    ]
    shell.outcomes["npm config set registry https://registry.npmjs.org/"] = ShellOutcome(
        exit_code=0, stderr="npm warn config"
    )
    generator = ScriptedGenerator(["```bash\nnpm config set registry https://registry.npmjs.org/\n```"])
    session = make_session(generator=generator)
    first = session.executor.execute("npm install")

    outcome = ErrorResolutionLoop(session).resolve(first.command, first.error_text)

    assert outcome.resolved
    assert shell.calls == ["npm install", "npm config set registry https://registry.npmjs.org/", "npm install"]


def test_rounds_are_bounded(make_session, shell: FakeShell) -> None:
    responses = [f"```bash\nnpm run attempt-{index}\n```" for index in range(5)]
    for index in range(5):
        shell.outcomes[f"npm run attempt-{index}"] = ShellOutcome(exit_code=1, stderr=f"Error: attempt {index}")
    generator = ScriptedGenerator(responses)
    session = make_session(generator=generator, settings=AssistSettings(max_rounds=2))

    outcome = ErrorResolutionLoop(session, max_rounds=2).resolve("make test", "Error: tests failed")

    assert outcome.rounds == 2
    assert len(generator.payloads) == 2
    assert not outcome.resolved
    assert "Error: attempt 0" in generator.user_prompts[1]


def test_file_fixes_are_written_before_commands(make_session, shell: FakeShell, project) -> None:
    generator = ScriptedGenerator(
        [
            "Run it again after you create the file named settings.json:\n"
            "```bash\nnode app.js\n```\n"
            '```json\n{"port": 3000}\n```'
        ]
    )
    session = make_session(generator=generator)

    outcome = ErrorResolutionLoop(session).resolve("node app.js", "Error: settings missing")

    assert outcome.resolved
    assert (project.working_dir / "settings.json").read_text(encoding="utf-8") == '{"port": 3000}'
    assert shell.calls == ["node app.js"]
    assert session.tracker.summarize().files.created == ["settings.json"]


def test_missing_generator_goes_straight_to_fallbacks(make_session, shell: FakeShell) -> None:
    session = make_session()

    outcome = ErrorResolutionLoop(session).resolve("npm install", "npm ERR! code ERESOLVE")

    assert outcome.rounds == 1
    assert outcome.fallback == "package-manager"
    assert shell.calls == ["npm cache clean --force", "npm install"]
