"""HTTP provider clients built on httpx.

One client per wire protocol. Each resolves its API key from the environment
at call time, sends a single completion request and maps failures to
``ProviderError`` / ``MissingCredentialError``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import httpx

from cuesync.errors import ErrorKind, MissingCredentialError, ProviderError

if TYPE_CHECKING:
    from cuesync.platforms.registry import ProviderConfig

logger = logging.getLogger(__name__)

_STATUS_KINDS: dict[int, ErrorKind] = {
    408: ErrorKind.TIMEOUT_ERROR,
    429: ErrorKind.RATE_LIMIT_ERROR,
    504: ErrorKind.TIMEOUT_ERROR,
}


class HTTPProviderClient:
    """Shared request/response handling for HTTP completion providers."""

    api_style: str = ""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize client.

        Args:
            http_client: Pre-built httpx client (caller keeps ownership)
            transport: Transport for the internally created client
            environ: Environment used to resolve API keys (defaults to os.environ)
        """
        self._http_client = http_client
        self._owns_client = http_client is None
        self._transport = transport
        self._environ = environ if environ is not None else os.environ

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(transport=self._transport)
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def resolve_api_key(self, config: ProviderConfig) -> str:
        """Read the API key named by ``config.api_key_env``.

        Raises:
            MissingCredentialError: If no key is configured or the variable is empty
        """
        if not config.api_key_env:
            raise MissingCredentialError(config.name)
        key = self._environ.get(config.api_key_env, "").strip()
        if not key:
            raise MissingCredentialError(config.name, config.api_key_env)
        return key

    async def complete(self, prompt: str, config: ProviderConfig) -> str:
        """Send ``prompt`` to the provider and return the completion text.

        Raises:
            MissingCredentialError: If no API key is available
            ProviderError: On HTTP, transport or payload failures
        """
        api_key = self.resolve_api_key(config)
        url, headers, payload = self.build_request(prompt, config, api_key)

        try:
            response = await self._client().post(
                url,
                headers=headers,
                json=payload,
                timeout=config.request_timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"{config.name} request timed out: {e}", kind=ErrorKind.TIMEOUT_ERROR
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(
                f"{config.name} network error: {e}", kind=ErrorKind.NETWORK_ERROR
            ) from e

        self._raise_for_status(response, config)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"{config.name} API returned invalid JSON") from e

        text = self.parse_response(data)
        if not text or not text.strip():
            raise ProviderError(f"{config.name} API returned an empty completion")
        return text.strip()

    def _raise_for_status(self, response: httpx.Response, config: ProviderConfig) -> None:
        status = response.status_code
        if status < 400:
            return

        detail = response.text[:200]
        if status in (401, 403):
            raise ProviderError(
                f"{config.name} API unauthorized ({status}): {detail}",
                kind=ErrorKind.API_ERROR,
                status_code=status,
                unauthorized=True,
            )
        kind = _STATUS_KINDS.get(status, ErrorKind.API_ERROR)
        label = "rate limit exceeded" if kind is ErrorKind.RATE_LIMIT_ERROR else "API error"
        raise ProviderError(
            f"{config.name} {label} ({status}): {detail}", kind=kind, status_code=status
        )

    def build_request(
        self, prompt: str, config: ProviderConfig, api_key: str
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        raise NotImplementedError

    def parse_response(self, data: dict[str, Any]) -> str:
        raise NotImplementedError


class OpenAIChatClient(HTTPProviderClient):
    """OpenAI chat-completions protocol."""

    api_style = "openai"

    def build_request(
        self, prompt: str, config: ProviderConfig, api_key: str
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        payload = {
            "model": config.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
        }
        return config.endpoint, headers, payload

    def parse_response(self, data: dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""


class AnthropicMessagesClient(HTTPProviderClient):
    """Anthropic messages protocol."""

    api_style = "anthropic"
    api_version = "2023-06-01"

    def build_request(
        self, prompt: str, config: ProviderConfig, api_key: str
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        headers = {
            "x-api-key": api_key,
            "anthropic-version": self.api_version,
            "Content-Type": "application/json",
        }
        payload = {
            "model": config.model,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        return config.endpoint, headers, payload

    def parse_response(self, data: dict[str, Any]) -> str:
        blocks = data.get("content") or []
        return "".join(b.get("text", "") for b in blocks if b.get("type", "text") == "text")


class GeminiClient(HTTPProviderClient):
    """Google generateContent protocol."""

    api_style = "gemini"

    def build_request(
        self, prompt: str, config: ProviderConfig, api_key: str
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": config.max_tokens,
                "temperature": config.temperature,
            },
        }
        return config.endpoint, headers, payload

    def parse_response(self, data: dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts)


_CLIENTS: dict[str, type[HTTPProviderClient]] = {
    "openai": OpenAIChatClient,
    "anthropic": AnthropicMessagesClient,
    "gemini": GeminiClient,
}


def build_client(config: ProviderConfig, **kwargs: Any) -> HTTPProviderClient:
    """Create the HTTP client matching ``config.api_style``."""
    client_cls = _CLIENTS[config.api_style]
    logger.debug(f"Building {client_cls.__name__} for platform '{config.name}'")
    return client_cls(**kwargs)
