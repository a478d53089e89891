"""Deterministic remediation handlers used when the generative path gives up.

Handlers are evaluated in :data:`FALLBACK_CHAIN` order and the first one whose
predicate accepts the failure runs. A handler never calls back into the text
generator, so reaching this module always ends the remediation chain.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, Optional, Pattern, Tuple

from ..operator import Operator
from ..session import SessionTracker
from ..tools.executor import CommandExecutor, ExecutionRecord
from ..tools.materializer import FileMaterializer, FileOutcome
from ..tools.parser import Artifact

__all__ = [
    "FALLBACK_CHAIN",
    "Fallback",
    "FallbackContext",
    "FallbackResult",
    "handle_lint_configuration",
    "handle_missing_path",
    "handle_package_manager",
    "run_fallbacks",
]

LOGGER = logging.getLogger(__name__)

FLAT_LINT_CONFIGS: Tuple[str, ...] = ("eslint.config.js", "eslint.config.mjs", "eslint.config.cjs")
LEGACY_LINT_CONFIGS: Tuple[str, ...] = (
    ".eslintrc",
    ".eslintrc.js",
    ".eslintrc.cjs",
    ".eslintrc.json",
    ".eslintrc.yml",
    ".eslintrc.yaml",
)

FLAT_LINT_TEMPLATE = """export default [
  {
    ignores: ['node_modules/**', 'dist/**', 'build/**'],
  },
  {
    files: ['**/*.js', '**/*.jsx', '**/*.ts', '**/*.tsx'],
    languageOptions: {
      ecmaVersion: 2022,
      sourceType: 'module',
    },
    rules: {
      'no-unused-vars': 'warn',
      'no-undef': 'error',
    },
  },
];"""

LEGACY_LINT_TEMPLATE: Dict[str, Any] = {
    "env": {"browser": True, "es2021": True, "node": True},
    "extends": "eslint:recommended",
    "parserOptions": {"ecmaVersion": "latest", "sourceType": "module"},
    "rules": {"no-unused-vars": "warn", "no-undef": "error"},
}

_MISSING_MODULE: Pattern[str] = re.compile(r"Cannot find module '([^']+)'")
_ENOENT_PATH: Pattern[str] = re.compile(r"ENOENT: no such file or directory[^']*'([^']+)'")
_SHELL_MISSING_PATH: Pattern[str] = re.compile(r"([^\s:'\"`]+): No such file or directory")


@dataclass(slots=True)
class FallbackContext:
    """Everything a handler may touch while repairing one failure."""

    failing_context: str
    error_text: str
    working_dir: Path
    executor: CommandExecutor
    materializer: FileMaterializer
    operator: Operator
    tracker: SessionTracker
    reinstall: Callable[[], Optional[ExecutionRecord]]

    def write(self, filename: str, content: str, *, language: str = "") -> FileOutcome:
        outcome = self.materializer.materialize(Artifact(language=language, content=content), filename)
        self.tracker.record_file(outcome)
        if outcome.ok:
            self.operator.notify(f"✓ {outcome.status.value.capitalize()} {outcome.path}", level="success")
        else:
            self.operator.notify(f"✗ Failed to write {outcome.path}: {outcome.error}", level="error")
        return outcome


@dataclass(frozen=True, slots=True)
class Fallback:
    """A ``(predicate, handler)`` pair; the handler reports whether it fixed the failure."""

    name: str
    applies: Callable[[FallbackContext], bool]
    handle: Callable[[FallbackContext], bool]


@dataclass(frozen=True, slots=True)
class FallbackResult:
    name: Optional[str]
    resolved: bool


def _read_manifest(path: Path) -> Optional[Dict[str, Any]]:
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as error:
        LOGGER.warning("Could not parse %s: %s", path, error)
        return None
    return data if isinstance(data, dict) else None


def _succeeded(record: Optional[ExecutionRecord]) -> bool:
    return record is not None and record.success


# ------------------------------------------------------------------ predicates
def _mentions_lint(context: FallbackContext) -> bool:
    return "eslint" in context.error_text.lower()


def _mentions_package_manager(context: FallbackContext) -> bool:
    return (
        "npm ERR!" in context.error_text
        or "Cannot find module" in context.error_text
        or "npm install" in context.failing_context
    )


def _mentions_missing_path(context: FallbackContext) -> bool:
    return (
        "ENOENT" in context.error_text
        or "No such file or directory" in context.error_text
        or "permission denied" in context.error_text.lower()
    )


# -------------------------------------------------------------------- handlers
def handle_lint_configuration(context: FallbackContext) -> bool:
    """Settle on exactly one ESLint configuration convention and install ESLint.

    An existing flat config, legacy ``.eslintrc*`` file or ``eslintConfig``
    manifest entry is kept as is. Only when none exists is a new file
    written, flat when ESLint explicitly asked for ``eslint.config`` and
    legacy JSON otherwise.
    """
    root = context.working_dir
    context.operator.notify("Fixing ESLint configuration issues...", level="info")
    manifest_path = root / "package.json"
    manifest = _read_manifest(manifest_path)

    flat = [name for name in FLAT_LINT_CONFIGS if (root / name).exists()]
    legacy = [name for name in LEGACY_LINT_CONFIGS if (root / name).exists()]
    wrote_config = False

    if flat:
        context.operator.notify(f"Keeping existing flat config {flat[0]}", level="info")
    elif legacy:
        context.operator.notify(f"Keeping existing legacy config {legacy[0]}", level="info")
    elif manifest is not None and "eslintConfig" in manifest:
        context.operator.notify("Keeping eslintConfig from package.json", level="info")
    elif "couldn't find an eslint.config" in context.error_text.lower():
        wrote_config = context.write("eslint.config.js", FLAT_LINT_TEMPLATE, language="javascript").ok
        if manifest is not None and not manifest.get("type"):
            manifest["type"] = "module"
            context.write("package.json", json.dumps(manifest, indent=2), language="json")
    else:
        wrote_config = context.write(".eslintrc.json", json.dumps(LEGACY_LINT_TEMPLATE, indent=2), language="json").ok

    record = context.executor.execute("npm install eslint --save-dev")
    if record is None:
        return wrote_config
    return record.success


def handle_package_manager(context: FallbackContext) -> bool:
    """Apply the first matching npm repair: permissions, manifest, missing module, cache."""
    error = context.error_text
    context.operator.notify("Fixing npm dependency issues...", level="info")

    if "EACCES" in error or "permission denied" in error.lower():
        context.executor.execute("mkdir -p ~/.npm-global")
        context.executor.execute("npm config set prefix ~/.npm-global")
        return _succeeded(context.reinstall())

    if "ENOENT" in error and "package.json" in error:
        return _succeeded(context.executor.execute("npm init -y"))

    if "Cannot find module" in error:
        match = _MISSING_MODULE.search(error)
        if match is None:
            return False
        module = match.group(1)
        context.operator.notify(f"Installing missing module: {module}", level="info")
        return _succeeded(context.executor.execute(f"npm install {module} --save"))

    context.executor.execute("npm cache clean --force")
    return _succeeded(context.reinstall())


def _missing_path(error: str) -> Optional[str]:
    for pattern in (_ENOENT_PATH, _SHELL_MISSING_PATH):
        match = pattern.search(error)
        if match:
            return match.group(1)
    return None


def handle_missing_path(context: FallbackContext) -> bool:
    """Create the path a command complained about, inside the working directory only.

    A path with a file extension gets its parent directories and an empty
    file; any other path is created as a directory.
    """
    raw = _missing_path(context.error_text)
    if raw is None:
        context.operator.notify("No missing path could be identified in the error output.", level="warning")
        return False

    anchor = context.working_dir.resolve()
    candidate = Path(raw).expanduser()
    target = candidate if candidate.is_absolute() else anchor / candidate
    target = target.resolve()
    if not target.is_relative_to(anchor):
        context.operator.notify(f"Refusing to create path outside the working directory: {raw}", level="warning")
        return False

    relative = target.relative_to(anchor)
    if relative == Path("."):
        return False

    if PurePosixPath(relative.as_posix()).suffix:
        if target.exists():
            return False
        return context.write(relative.as_posix(), "").ok

    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        LOGGER.warning("Failed to create directory %s: %s", target, error)
        return False
    context.operator.notify(f"✓ Created directory {relative.as_posix()}", level="success")
    return True


FALLBACK_CHAIN: Tuple[Fallback, ...] = (
    Fallback("lint-configuration", _mentions_lint, handle_lint_configuration),
    Fallback("package-manager", _mentions_package_manager, handle_package_manager),
    Fallback("missing-path", _mentions_missing_path, handle_missing_path),
)


def run_fallbacks(context: FallbackContext, chain: Tuple[Fallback, ...] = FALLBACK_CHAIN) -> FallbackResult:
    """Run the first applicable handler of ``chain``."""
    for fallback in chain:
        if not fallback.applies(context):
            continue
        LOGGER.info("Running %s fallback for %r", fallback.name, context.failing_context)
        resolved = fallback.handle(context)
        return FallbackResult(name=fallback.name, resolved=resolved)
    context.operator.notify(
        "Could not automatically resolve this error. Please check the error message and resolve it manually.",
        level="warning",
    )
    return FallbackResult(name=None, resolved=False)
