"""Platform adapter.

Renders a capsule into a prompt for one target platform, picks an adaptation
strategy and estimates how likely the delivery is to succeed.
"""

from __future__ import annotations

import logging
import time

from cuesync.extraction import heuristics
from cuesync.models.capsule import (
    AdaptationMetadata,
    AdaptationStrategy,
    ContextCapsule,
    PlatformAdaptation,
)
from cuesync.platforms.registry import PlatformRegistry

logger = logging.getLogger(__name__)

ALGORITHM_VERSION = "1.0.0"
BASE_SUCCESS_RATE = 0.85
MIN_SUCCESS_RATE = 0.6
MAX_SUCCESS_RATE = 0.95

COMPLEXITY_PENALTIES = {"expert": 0.10, "complex": 0.05}

_DEFAULT_FRAMING = (
    "Continue this conversation using the context above. Treat the earlier discussion "
    "as already established and answer the user's question directly."
)

PLATFORM_FRAMINGS: dict[str, str] = {
    "chatgpt": (
        "You are continuing a conversation whose context is summarized above. Answer in "
        "a clear, well-structured style and refer back to the earlier discussion where "
        "it helps. Show continuity with phrases such as \"as mentioned earlier\" or "
        "\"building on what we discussed before\"."
    ),
    "claude": (
        "We are picking up a conversation we have already been having. Assume the "
        "context above is fully understood and give a thoughtful, analytical answer "
        "that goes deeper than before. Pay particular attention to the key points "
        "raised previously."
    ),
    "gemini": (
        "Looking back over our earlier conversation, take a creative, multi-angle view "
        "of it. Look for new connections between the points discussed previously or "
        "suggest an approach from a different perspective, while keeping the thread "
        "of the conversation."
    ),
    "copilot": (
        "Previous conversation context established. Continue with a practical, "
        "solution-oriented approach and provide actionable next steps that build on "
        "the points already covered."
    ),
}

_FALLBACK_ORDER = (AdaptationStrategy.DIRECT_TRANSLATION, AdaptationStrategy.CONTEXT_ENRICHMENT)


def render_context(capsule: ContextCapsule) -> str:
    """Platform-neutral context block embedded in every adapted prompt."""
    context = capsule.extracted_context
    key_points = "\n".join(f"- {point}" for point in context.key_points) or "- (none)"
    if context.technical_terms:
        technical = "Technical terms: " + ", ".join(context.term_names)
    else:
        technical = "General topic"
    tone = context.emotional_tone
    urgency = round(tone.urgency * 100)

    return (
        "# Previous conversation context\n"
        f"{context.summary}\n\n"
        "## Key points\n"
        f"{key_points}\n\n"
        "## Primary intent\n"
        f"{context.primary_intent}\n\n"
        "## Technical context\n"
        f"{technical}\n\n"
        "## Emotional tone\n"
        f"{tone.overall_tone} (urgency: {urgency}%)\n\n"
        "## Original user question\n"
        f'"{capsule.turn.user_message}"\n'
    )


class PlatformAdapter:
    """Adapts capsules to target platforms."""

    def __init__(self, registry: PlatformRegistry) -> None:
        self.registry = registry

    def adapt(self, capsule: ContextCapsule, target: str) -> PlatformAdaptation:
        """Build the adaptation of ``capsule`` for ``target``.

        Raises:
            UnknownPlatformError: If ``target`` is not configured
        """
        started = time.perf_counter()
        config = self.registry.get(target)

        framing = PLATFORM_FRAMINGS.get(target, _DEFAULT_FRAMING)
        prompt = f"{render_context(capsule)}\n{framing}"
        strategy = self.select_strategy(capsule, target)

        adaptation = PlatformAdaptation(
            platform=target,
            adapted_prompt=prompt,
            capabilities=config.capabilities,
            strategy=strategy,
            fallback_strategies=[s for s in _FALLBACK_ORDER if s is not strategy],
            estimated_success_rate=self.estimate_success_rate(capsule, target),
            preferred_length=heuristics.preferred_length(capsule.turn.user_message),
            metadata=AdaptationMetadata(
                confidence=0.85,
                algorithm_version=ALGORITHM_VERSION,
                adaptation_time_ms=round((time.perf_counter() - started) * 1000, 3),
            ),
        )
        logger.debug(f"Adapted capsule {capsule.id} for {target} ({strategy.value})")
        return adaptation

    def select_strategy(self, capsule: ContextCapsule, target: str) -> AdaptationStrategy:
        complexity = capsule.semantic_metadata.technical_complexity.level
        if complexity == "expert":
            return AdaptationStrategy.SEMANTIC_PRESERVATION
        if complexity == "complex":
            return AdaptationStrategy.CONTEXT_ENRICHMENT
        if self.registry.capabilities(target).supports_creative_formatting:
            return AdaptationStrategy.FORMAT_TRANSFORMATION
        return AdaptationStrategy.DIRECT_TRANSLATION

    def estimate_success_rate(self, capsule: ContextCapsule, target: str) -> float:
        rate = BASE_SUCCESS_RATE + self.registry.get(target).success_rate_offset
        rate -= COMPLEXITY_PENALTIES.get(capsule.semantic_metadata.technical_complexity.level, 0.0)
        return round(heuristics.clamp(rate, MIN_SUCCESS_RATE, MAX_SUCCESS_RATE), 4)
