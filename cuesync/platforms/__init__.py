"""Provider capability registry."""

from cuesync.platforms.registry import (
    PlatformRegistry,
    ProviderCapabilities,
    ProviderConfig,
    default_platforms,
)

__all__ = [
    "PlatformRegistry",
    "ProviderCapabilities",
    "ProviderConfig",
    "default_platforms",
]
