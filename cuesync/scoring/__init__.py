"""Context preservation scoring."""

from cuesync.scoring.quality import PLATFORM_PHRASES, PlatformPhrases, QualityScorer

__all__ = ["PLATFORM_PHRASES", "PlatformPhrases", "QualityScorer"]
