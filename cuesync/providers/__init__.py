"""Provider clients and collaborator contracts."""

from cuesync.providers.base import ProviderClient, ProviderCompletion, TextCompletion
from cuesync.providers.http import (
    AnthropicMessagesClient,
    GeminiClient,
    HTTPProviderClient,
    OpenAIChatClient,
    build_client,
)

__all__ = [
    "AnthropicMessagesClient",
    "GeminiClient",
    "HTTPProviderClient",
    "OpenAIChatClient",
    "ProviderClient",
    "ProviderCompletion",
    "TextCompletion",
    "build_client",
]
