"""Artifact handling tools used by the assist pipeline."""

from .classifier import ArtifactKind, classify, split_by_kind
from .envfile import SecretsStore, looks_like_env_fragment, normalise_env_content
from .executor import CommandExecutor, ExecutionRecord, ShellOutcome, SkipReason, run_shell, split_commands
from .materializer import FileMaterializer, FileOutcome, FileStatus, infer_filenames, infer_fix_filename
from .parser import Artifact, ArtifactStream, parse_artifacts, render_artifacts
from .placeholders import PlaceholderBinding, PlaceholderKind, PlaceholderResolver, find_unresolved, substitute

__all__ = [
    "Artifact",
    "ArtifactKind",
    "ArtifactStream",
    "CommandExecutor",
    "ExecutionRecord",
    "FileMaterializer",
    "FileOutcome",
    "FileStatus",
    "PlaceholderBinding",
    "PlaceholderKind",
    "PlaceholderResolver",
    "SecretsStore",
    "ShellOutcome",
    "SkipReason",
    "classify",
    "find_unresolved",
    "infer_filenames",
    "infer_fix_filename",
    "looks_like_env_fragment",
    "normalise_env_content",
    "parse_artifacts",
    "render_artifacts",
    "run_shell",
    "split_by_kind",
    "split_commands",
    "substitute",
]
