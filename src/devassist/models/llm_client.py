"""Text generation client base class shared by all model integrations."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

__all__ = [
    "GenerationRequest",
    "ProviderConfigurationError",
    "ProviderError",
    "ProviderResponseError",
    "ProviderTransportError",
    "TextGenerator",
]


class ProviderError(RuntimeError):
    """Base error raised when the text generation service cannot answer."""


class ProviderConfigurationError(ProviderError):
    """Raised when credentials or endpoint settings are missing or rejected."""


class ProviderTransportError(ProviderError):
    """Raised when the underlying transport fails to return a response."""


class ProviderResponseError(ProviderError):
    """Raised when the service answers with a payload that holds no text."""


@dataclass(slots=True)
class GenerationRequest:
    """Free-text request payload sent to a chat model."""

    system_prompt: str
    user_prompt: str
    model: Optional[str] = None
    temperature: float = 0.5
    max_tokens: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self, default_model: str) -> Dict[str, Any]:
        """Render a transport-ready payload for the chat completions API."""
        payload: Dict[str, Any] = {
            "model": self.model or default_model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": self.user_prompt},
            ],
            "temperature": self.temperature,
        }
        if self.max_tokens:
            payload["max_tokens"] = self.max_tokens
        return payload


class TextGenerator:
    """High-level helper that retries transport failures and returns plain text."""

    def __init__(self, model: str, *, max_attempts: int = 3, retry_delay: float = 0.5) -> None:
        self._model = model
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay

    @property
    def model(self) -> str:
        """Return the default model name configured for this client."""
        return self._model

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.5,
        max_tokens: Optional[int] = None,
        logger: Optional[Callable[[Dict[str, Any], Optional[str], Optional[Exception], int], None]] = None,
    ) -> str:
        """Send one prompt pair to the model and return the response text."""
        request = GenerationRequest(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return self.invoke(request, logger=logger)

    def invoke(
        self,
        request: GenerationRequest,
        *,
        logger: Optional[Callable[[Dict[str, Any], Optional[str], Optional[Exception], int], None]] = None,
    ) -> str:
        """Invoke the model, retrying transport failures up to the attempt budget."""
        payload = request.to_payload(self._model)
        last_error: Optional[Exception] = None

        for attempt in range(1, self._max_attempts + 1):
            raw: Optional[str] = None
            try:
                raw = self._raw_invoke(payload)
                text = raw.strip() if isinstance(raw, str) else ""
                if not text:
                    raise ProviderResponseError("Model returned an empty response.")
                if logger:
                    logger(payload, raw, None, attempt)
                return text
            except ProviderConfigurationError:
                raise
            except (ProviderTransportError, ProviderResponseError) as error:
                last_error = error
                if logger:
                    logger(payload, raw, error, attempt)
                if attempt >= self._max_attempts:
                    break
                time.sleep(self._retry_delay)

        message = f"No response from model {request.model or self._model} after {self._max_attempts} attempt(s)"
        raise ProviderError(f"{message}: {last_error}") from last_error

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Perform the transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")
