"""Collaborator contracts.

Two async contracts are consumed by the engine:

- ``TextCompletion`` is the text-understanding capability used by the
  extractor and the semantic analyzer.
- ``ProviderClient`` delivers an adapted prompt to one target platform.

``ProviderCompletion`` turns any provider client into a text-understanding
capability, so extraction can run on one of the configured platforms.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cuesync.platforms.registry import ProviderConfig


@runtime_checkable
class TextCompletion(Protocol):
    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str: ...


@runtime_checkable
class ProviderClient(Protocol):
    async def complete(self, prompt: str, config: ProviderConfig) -> str: ...

    async def aclose(self) -> None: ...


class ProviderCompletion:
    """Text-understanding capability backed by a provider client."""

    def __init__(self, client: ProviderClient, config: ProviderConfig) -> None:
        self.client = client
        self.config = config

    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        analysis_config = self.config.model_copy(
            update={"temperature": temperature, "max_tokens": max_tokens}
        )
        return await self.client.complete(prompt, analysis_config)
