"""Quality scorer.

Computes the context preservation score: a weighted sum of six sub-score
ratios comparing an original text with a response. Scoring is pure and
deterministic, so the same inputs always produce the same metrics.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from cuesync.config import ScoringWeights
from cuesync.extraction import heuristics
from cuesync.models.capsule import ContextCapsule, ConversationTurn, QualityMetrics


@dataclass(frozen=True)
class PlatformPhrases:
    """Phrases that signal a response written in a platform's own style.

    ``quality`` phrases add to the response-quality ratio; ``bonus`` phrases
    raise the platform bonus.
    """

    quality: tuple[str, ...] = ()
    bonus: tuple[str, ...] = ()


PLATFORM_PHRASES: dict[str, PlatformPhrases] = {
    "chatgpt": PlatformPhrases(quality=("step", "approach"), bonus=("step-by-step", "specifically")),
    "claude": PlatformPhrases(
        quality=("analysis", "consider"), bonus=("analyzing this", "worth considering")
    ),
    "gemini": PlatformPhrases(quality=("perspective", "creative"), bonus=("various", "creative")),
}

_NO_PHRASES = PlatformPhrases()


def _contains_any(text: str, phrases: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(phrase.lower() in lowered for phrase in phrases)


def keyword_preservation(original: str, response: str) -> float:
    """Share of the original's significant words that appear in the response."""
    original_words = heuristics.significant_words(original)
    if not original_words:
        return 0.0
    response_words = set(heuristics.significant_words(response))
    return sum(1 for w in original_words if w in response_words) / len(original_words)


def semantic_consistency(original: str, response: str) -> float:
    original_tags = heuristics.sentiment_tags(original)
    shared = original_tags & heuristics.sentiment_tags(response)
    return min(1.0, len(shared) / max(1, len(original_tags)))


def response_quality(response: str, phrases: PlatformPhrases = _NO_PHRASES) -> float:
    quality = 0.5
    if 100 < len(response) < 2000:
        quality += 0.2
    if heuristics.has_structure(response):
        quality += 0.15
    if phrases.quality and _contains_any(response, phrases.quality):
        quality += 0.1
    return min(1.0, quality)


def technical_accuracy(terms: Iterable[str], response: str) -> float:
    """Share of ``terms`` mentioned in the response; 1.0 when there are none."""
    unique = list(dict.fromkeys(t.lower() for t in terms if t))
    if not unique:
        return 1.0
    lowered = response.lower()
    return sum(1 for term in unique if term in lowered) / len(unique)


def continuity(response: str) -> float:
    return min(1.0, heuristics.continuity_hits(response) / 3)


def platform_bonus(response: str, phrases: PlatformPhrases = _NO_PHRASES) -> float:
    return 0.8 if phrases.bonus and _contains_any(response, phrases.bonus) else 0.5


class QualityScorer:
    """Scores turns at creation time and deliveries after each sync."""

    def __init__(
        self,
        weights: ScoringWeights | None = None,
        phrases: dict[str, PlatformPhrases] | None = None,
    ) -> None:
        self.weights = weights or ScoringWeights()
        self.phrases = PLATFORM_PHRASES if phrases is None else phrases

    def score_initial(self, turn: ConversationTurn) -> QualityMetrics:
        """Estimate preservation from the turn alone (user text vs. reply)."""
        terms = [t.term for t in heuristics.find_technical_terms(turn.user_message)]
        return self._score(turn.user_message, turn.assistant_message, terms, _NO_PHRASES)

    def score_sync(self, capsule: ContextCapsule, response: str, target: str) -> QualityMetrics:
        """Compare the capsule summary with a provider's response."""
        summary = capsule.extracted_context.summary
        terms = [t.term for t in heuristics.find_technical_terms(summary)]
        terms += capsule.extracted_context.term_names
        return self._score(summary, response, terms, self.phrases.get(target, _NO_PHRASES))

    def _score(
        self,
        original: str,
        response: str,
        terms: list[str],
        phrases: PlatformPhrases,
    ) -> QualityMetrics:
        ratios = {
            "keyword_preservation": keyword_preservation(original, response),
            "semantic_consistency": semantic_consistency(original, response),
            "response_quality": response_quality(response, phrases),
            "technical_accuracy": technical_accuracy(terms, response),
            "continuity": continuity(response),
            "platform_bonus": platform_bonus(response, phrases),
        }
        weights = self.weights
        total = weights.base_score + sum(
            ratio * getattr(weights, name) for name, ratio in ratios.items()
        )
        # Half-up rounding; the clamped total is never negative
        score = int(heuristics.clamp(total, 0.0, 100.0) + 0.5)
        return QualityMetrics(
            **{name: round(ratio * 100, 2) for name, ratio in ratios.items()},
            context_preservation_score=score,
        )
