"""Chat completions client for OpenAI-compatible endpoints."""

from __future__ import annotations

import json
import os
import re
from typing import Any, Callable, Dict, Optional

from .llm_client import (
    ProviderConfigurationError,
    ProviderResponseError,
    ProviderTransportError,
    TextGenerator,
)

__all__ = ["ChatCompletionsClient", "clean_api_key"]


Transport = Callable[[Dict[str, Any]], str]

_KEY_NOISE = re.compile(r"[\s'\"]+")


def clean_api_key(value: Optional[str]) -> str:
    """Strip whitespace and quotes that commonly sneak into pasted keys."""
    if not value:
        return ""
    return _KEY_NOISE.sub("", value)


class ChatCompletionsClient(TextGenerator):
    """Thin adapter around the ``/chat/completions`` endpoint."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1/chat/completions",
        model: str = "gpt-4-turbo",
        transport: Optional[Transport] = None,
        timeout: float = 60.0,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        super().__init__(model=model, max_attempts=max_attempts, retry_delay=retry_delay)
        self._api_key = clean_api_key(api_key or os.getenv("DEVASSIST_API_KEY") or os.getenv("OPENAI_API_KEY"))
        self._base_url = base_url
        timeout_override = os.getenv("DEVASSIST_TIMEOUT")
        if timeout_override:
            try:
                parsed = float(timeout_override)
                if parsed > 0:
                    timeout = parsed
            except ValueError:
                pass
        self._timeout = timeout
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ProviderConfigurationError("OPENAI_API_KEY is not set.")

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Send the request over the configured transport."""
        try:
            raw_response = self._transport(payload)
        except (ProviderTransportError, ProviderConfigurationError):
            raise
        except Exception as error:  # pragma: no cover - transport specific
            raise ProviderTransportError(f"Transport rejected the request: {error}") from error

        text = self._extract_message_text(raw_response)
        if text is None:
            raise ProviderResponseError("Chat completion did not contain any message text.")
        return text

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        """Default HTTP transport that targets the chat completions API."""
        import urllib.error
        import urllib.request

        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(
            self._base_url,
            data=data,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
                status = getattr(response, "status", 200)
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise ProviderTransportError("Chat completion timed out.") from error
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            if error.code in (401, 403):
                raise ProviderConfigurationError(f"API key rejected (HTTP {error.code}): {message}") from error
            raise ProviderTransportError(f"HTTP {error.code}: {message}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise ProviderTransportError(f"Failed to reach {self._base_url}: {error.reason}") from error

        if status >= 400:
            raise ProviderTransportError(f"Unexpected HTTP status {status}")

        return raw.decode("utf-8")

    @staticmethod
    def _extract_message_text(raw_response: str) -> Optional[str]:
        """Pull ``choices[0].message.content`` out of a completion payload."""
        if not raw_response:
            return None

        try:
            data = json.loads(raw_response)
        except json.JSONDecodeError:
            return raw_response

        if not isinstance(data, dict):
            return None

        error_payload = data.get("error")
        if isinstance(error_payload, dict):
            message = str(error_payload.get("message") or "unknown provider error")
            if "api key" in message.lower():
                raise ProviderConfigurationError(message)
            raise ProviderResponseError(message)

        choices = data.get("choices")
        if not isinstance(choices, list):
            return None
        for choice in choices:
            if not isinstance(choice, dict):
                continue
            message = choice.get("message")
            if isinstance(message, dict):
                content = message.get("content")
                if isinstance(content, str) and content.strip():
                    return content
            text = choice.get("text")
            if isinstance(text, str) and text.strip():
                return text
        return None
