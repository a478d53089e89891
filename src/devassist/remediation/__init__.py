"""Error resolution loop and its deterministic fallback handlers."""

from .fallbacks import FALLBACK_CHAIN, Fallback, FallbackContext, FallbackResult, run_fallbacks
from .loop import (
    ErrorResolutionLoop,
    RemediationAttempt,
    RemediationChain,
    RemediationOutcome,
    ResolutionState,
    fix_fingerprint,
    is_dependency_install,
)

__all__ = [
    "FALLBACK_CHAIN",
    "ErrorResolutionLoop",
    "Fallback",
    "FallbackContext",
    "FallbackResult",
    "RemediationAttempt",
    "RemediationChain",
    "RemediationOutcome",
    "ResolutionState",
    "fix_fingerprint",
    "is_dependency_install",
    "run_fallbacks",
]
