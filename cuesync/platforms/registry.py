"""Provider capability registry.

Static description of every target platform: model, token limits, feature
flags and rate limits. The registry is read-only after construction and is
shared between the adapter, the orchestrator and the provider clients.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from cuesync.errors import UnknownPlatformError

logger = logging.getLogger(__name__)


class ProviderCapabilities(BaseModel):
    """Capability descriptor for a provider.

    Attributes:
        supports_code_generation: Provider handles code-heavy prompts well
        supports_multimodal: Provider accepts non-text input
        supports_creative_formatting: Provider favours creative, reformatted output
        max_context_length: Maximum prompt context in tokens
        requests_per_minute: Request rate limit
        tokens_per_minute: Token rate limit
    """

    model_config = ConfigDict(frozen=True)

    supports_code_generation: bool = True
    supports_multimodal: bool = False
    supports_creative_formatting: bool = False
    max_context_length: int = Field(default=8000, gt=0)
    requests_per_minute: int = Field(default=60, gt=0)
    tokens_per_minute: int = Field(default=40000, gt=0)


class ProviderConfig(BaseModel):
    """Explicit configuration for one completion provider.

    Attributes:
        name: Platform identifier (e.g. "chatgpt")
        display_name: Human-readable name
        api_style: Wire protocol used by the HTTP client
        endpoint: Completion endpoint URL
        api_key_env: Environment variable holding the API key
        model: Model name sent with each request
        max_tokens: Maximum completion tokens
        temperature: Sampling temperature for deliveries
        request_timeout_seconds: Bound on a single provider round trip
        success_rate_offset: Per-provider adjustment of the estimated success rate
        capabilities: Feature flags and rate limits
    """

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str = ""
    api_style: Literal["openai", "anthropic", "gemini"] = "openai"
    endpoint: str
    api_key_env: str | None = None
    model: str
    max_tokens: int = Field(default=2000, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    success_rate_offset: float = 0.0
    capabilities: ProviderCapabilities = Field(default_factory=ProviderCapabilities)


def default_platforms() -> dict[str, ProviderConfig]:
    """Built-in provider set (ChatGPT, Claude, Gemini)."""
    return {
        "chatgpt": ProviderConfig(
            name="chatgpt",
            display_name="ChatGPT",
            api_style="openai",
            endpoint="https://api.openai.com/v1/chat/completions",
            api_key_env="OPENAI_API_KEY",
            model="gpt-4",
            success_rate_offset=0.05,
            capabilities=ProviderCapabilities(
                supports_code_generation=True,
                supports_multimodal=False,
                max_context_length=8000,
                requests_per_minute=60,
                tokens_per_minute=40000,
            ),
        ),
        "claude": ProviderConfig(
            name="claude",
            display_name="Claude",
            api_style="anthropic",
            endpoint="https://api.anthropic.com/v1/messages",
            api_key_env="CLAUDE_API_KEY",
            model="claude-3-sonnet-20240229",
            success_rate_offset=0.03,
            capabilities=ProviderCapabilities(
                supports_code_generation=True,
                supports_multimodal=True,
                max_context_length=100000,
                requests_per_minute=50,
                tokens_per_minute=40000,
            ),
        ),
        "gemini": ProviderConfig(
            name="gemini",
            display_name="Gemini",
            api_style="gemini",
            endpoint="https://generativelanguage.googleapis.com/v1beta/models/gemini-pro:generateContent",
            api_key_env="GEMINI_API_KEY",
            model="gemini-pro",
            success_rate_offset=0.02,
            capabilities=ProviderCapabilities(
                supports_code_generation=True,
                supports_multimodal=True,
                supports_creative_formatting=True,
                max_context_length=30000,
                requests_per_minute=60,
                tokens_per_minute=32000,
            ),
        ),
    }


class PlatformRegistry:
    """Read-only registry of configured platforms."""

    def __init__(self, platforms: Mapping[str, ProviderConfig] | None = None) -> None:
        """Initialize registry.

        Args:
            platforms: Provider configurations keyed by platform name
                (defaults to the built-in set)
        """
        source = dict(platforms) if platforms is not None else default_platforms()
        self._platforms: Mapping[str, ProviderConfig] = MappingProxyType(source)
        logger.info(f"Platform registry initialized: {', '.join(self._platforms)}")

    def __contains__(self, name: object) -> bool:
        return name in self._platforms

    def __iter__(self) -> Iterator[str]:
        return iter(self._platforms)

    def __len__(self) -> int:
        return len(self._platforms)

    @property
    def names(self) -> list[str]:
        """All configured platform names, in configuration order."""
        return list(self._platforms)

    def get(self, name: str) -> ProviderConfig:
        """Get provider configuration.

        Raises:
            UnknownPlatformError: If the platform is not configured
        """
        try:
            return self._platforms[name]
        except KeyError:
            raise UnknownPlatformError(f"Unknown platform: {name}") from None

    def capabilities(self, name: str) -> ProviderCapabilities:
        """Capability descriptor for a platform."""
        return self.get(name).capabilities

    def target_platforms(self, source_platform: str) -> list[str]:
        """Every configured platform except the source."""
        return [name for name in self._platforms if name != source_platform]
