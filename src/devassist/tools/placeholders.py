"""Detection, interactive resolution and substitution of secret placeholders.

Generated snippets regularly contain stand-ins such as ``[YourPrivateKey]`` or
``"your_api_key_here"``. The resolver asks the operator for each kind of
secret at most once per session, persists the answer into the local secrets
store, and substitutes it into every artifact before anything touches the
filesystem or the shell.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, MutableMapping, Pattern, Tuple

from ..operator import Operator
from .envfile import SecretsStore, looks_like_env_fragment
from .parser import Artifact

__all__ = [
    "PLACEHOLDER_CATALOG",
    "PlaceholderBinding",
    "PlaceholderKind",
    "PlaceholderResolver",
    "PlaceholderRule",
    "find_unresolved",
    "substitute",
]

LOGGER = logging.getLogger(__name__)


class PlaceholderKind(str, Enum):
    """Secret families the resolver knows how to ask for."""

    PRIVATE_KEY = "private_key"
    API_KEY = "api_key"
    WALLET_ADDRESS = "wallet_address"
    RPC_ENDPOINT = "rpc_endpoint"


@dataclass(frozen=True, slots=True)
class PlaceholderBinding:
    """Operator supplied value for one placeholder kind."""

    kind: PlaceholderKind
    value: str


def _non_empty(value: str) -> str | None:
    return None if value.strip() else "A value is required."


def _url(value: str) -> str | None:
    if not value.strip():
        return "A value is required."
    if not value.strip().startswith("http"):
        return "The endpoint must start with http:// or https://."
    return None


@dataclass(frozen=True, slots=True)
class PlaceholderRule:
    """Catalog entry describing how one kind is detected, asked for and stored."""

    kind: PlaceholderKind
    env_var: str
    message: str
    secret: bool
    bracket_patterns: Tuple[Pattern[str], ...]
    quoted_patterns: Tuple[Pattern[str], ...]
    validate: Callable[[str], str | None]

    @property
    def detection_patterns(self) -> Tuple[Pattern[str], ...]:
        return self.bracket_patterns + self.quoted_patterns

    def matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.detection_patterns)

    def env_line_pattern(self) -> Pattern[str]:
        return re.compile(rf"^(?P<prefix>[ \t]*(?:export[ \t]+)?){self.env_var}[ \t]*=.*$", re.MULTILINE)


PLACEHOLDER_CATALOG: Tuple[PlaceholderRule, ...] = (
    PlaceholderRule(
        kind=PlaceholderKind.PRIVATE_KEY,
        env_var="PRIVATE_KEY",
        message="Enter your private key",
        secret=True,
        bracket_patterns=(re.compile(r"\[YourPrivateKey(?:Array)?\]", re.IGNORECASE),),
        quoted_patterns=(re.compile(r"['\"]your_(?:actual_)?private_key(?:_array)?_here['\"]", re.IGNORECASE),),
        validate=_non_empty,
    ),
    PlaceholderRule(
        kind=PlaceholderKind.API_KEY,
        env_var="API_KEY",
        message="Enter your API key",
        secret=True,
        bracket_patterns=(re.compile(r"\[YourAPIKey\]", re.IGNORECASE),),
        quoted_patterns=(re.compile(r"['\"]your_api_key(?:_here)?['\"]", re.IGNORECASE),),
        validate=_non_empty,
    ),
    PlaceholderRule(
        kind=PlaceholderKind.WALLET_ADDRESS,
        env_var="WALLET_ADDRESS",
        message="Enter your wallet address",
        secret=False,
        bracket_patterns=(re.compile(r"\[YourWalletAddress\]", re.IGNORECASE),),
        quoted_patterns=(re.compile(r"['\"]your_wallet_address(?:_here)?['\"]", re.IGNORECASE),),
        validate=_non_empty,
    ),
    PlaceholderRule(
        kind=PlaceholderKind.RPC_ENDPOINT,
        env_var="RPC_ENDPOINT",
        message="Enter your RPC endpoint URL",
        secret=False,
        bracket_patterns=(re.compile(r"\[YourRPCEndpoint\]", re.IGNORECASE),),
        quoted_patterns=(re.compile(r"['\"]your_rpc_endpoint(?:_here)?['\"]", re.IGNORECASE),),
        validate=_url,
    ),
)

_RULES_BY_KIND: Dict[PlaceholderKind, PlaceholderRule] = {rule.kind: rule for rule in PLACEHOLDER_CATALOG}


def substitute(text: str, bindings: Mapping[PlaceholderKind, PlaceholderBinding]) -> str:
    """Replace every bound placeholder in ``text``; unbound kinds are left alone."""
    result = text
    env_fragment = looks_like_env_fragment(text)
    for rule in PLACEHOLDER_CATALOG:
        binding = bindings.get(rule.kind)
        if binding is None:
            continue
        value = binding.value
        for pattern in rule.bracket_patterns:
            result = pattern.sub(lambda _match: value, result)
        for pattern in rule.quoted_patterns:
            result = pattern.sub(lambda _match: f'"{value}"', result)
        if env_fragment:
            result = rule.env_line_pattern().sub(
                lambda match: f"{match.group('prefix')}{rule.env_var}={value}", result
            )
    return result


def find_unresolved(text: str) -> List[PlaceholderKind]:
    """Return the kinds whose placeholder patterns still match ``text``."""
    return [rule.kind for rule in PLACEHOLDER_CATALOG if rule.matches(text)]


class PlaceholderResolver:
    """Session-scoped resolver that binds each placeholder kind at most once."""

    def __init__(
        self,
        operator: Operator,
        store: SecretsStore,
        *,
        reuse_saved: bool = False,
        bindings: MutableMapping[PlaceholderKind, PlaceholderBinding] | None = None,
    ) -> None:
        self._operator = operator
        self._store = store
        self._reuse_saved = reuse_saved
        self._bindings: MutableMapping[PlaceholderKind, PlaceholderBinding] = bindings if bindings is not None else {}

    @property
    def bindings(self) -> Mapping[PlaceholderKind, PlaceholderBinding]:
        return dict(self._bindings)

    def detect(self, full_text: str, artifacts: Iterable[Artifact]) -> List[PlaceholderKind]:
        """Return the kinds referenced by the artifacts or the surrounding prose."""
        combined = "\n".join(artifact.content for artifact in artifacts)
        return [rule.kind for rule in PLACEHOLDER_CATALOG if rule.matches(combined) or rule.matches(full_text)]

    def resolve(
        self, full_text: str, artifacts: Iterable[Artifact]
    ) -> Mapping[PlaceholderKind, PlaceholderBinding]:
        """Bind every detected kind that has no value yet and return all bindings."""
        detected = self.detect(full_text, artifacts)
        if not detected:
            return self.bindings

        saved = self._store.read() if self._reuse_saved else {}
        for kind in detected:
            if kind in self._bindings:
                continue
            rule = _RULES_BY_KIND[kind]
            saved_value = saved.get(rule.env_var, "").strip()
            if saved_value and rule.validate(saved_value) is None:
                self._bindings[kind] = PlaceholderBinding(kind=kind, value=saved_value)
                self._operator.notify(f"Using saved {rule.env_var} from {self._store.path.name}", level="info")
                continue
            value = self._ask(rule)
            self._bindings[kind] = PlaceholderBinding(kind=kind, value=value)
            self._store.upsert(rule.env_var, value)
            self._operator.notify(f"✓ Saved {rule.env_var} to {self._store.path.name}", level="success")
        return self.bindings

    def _ask(self, rule: PlaceholderRule) -> str:
        while True:
            value = self._operator.prompt(rule.message, secret=rule.secret).strip()
            problem = rule.validate(value)
            if problem is None:
                return value
            LOGGER.debug("Rejected value for %s: %s", rule.kind.value, problem)
            self._operator.notify(problem, level="warning")
