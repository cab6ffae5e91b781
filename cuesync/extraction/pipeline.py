"""Capsule creation pipeline: extract, analyze, score."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cuesync.models.capsule import (
    CapsulePriority,
    ContextCapsule,
    ConversationTurn,
    ExtractedContext,
)
from cuesync.observability import prometheus_metrics
from cuesync.observability.tracing import add_span_attributes, traced

if TYPE_CHECKING:
    from cuesync.extraction.extractor import ContextExtractor
    from cuesync.extraction.semantic import SemanticAnalyzer
    from cuesync.platforms.registry import PlatformRegistry
    from cuesync.scoring.quality import QualityScorer

logger = logging.getLogger(__name__)

_MAX_TERM_TAGS = 5


def derive_tags(context: ExtractedContext) -> list[str]:
    """Topic, domain and leading technical terms, lower-cased and de-duplicated."""
    candidates = [context.primary_topic, context.domain_category]
    candidates += [t.term for t in context.technical_terms[:_MAX_TERM_TAGS]]
    return list(dict.fromkeys(c.strip().lower() for c in candidates if c and c.strip()))


class ExtractionPipeline:
    """Creates scored context capsules from conversation turns."""

    def __init__(
        self,
        registry: PlatformRegistry,
        extractor: ContextExtractor,
        analyzer: SemanticAnalyzer,
        scorer: QualityScorer,
    ) -> None:
        self.registry = registry
        self.extractor = extractor
        self.analyzer = analyzer
        self.scorer = scorer

    @traced("cuesync.create_capsule")
    async def create_capsule(self, turn: ConversationTurn) -> ContextCapsule:
        """Build a capsule for ``turn``.

        Never fails because of analysis problems: degraded analyses show up in
        ``ContextCapsule.extraction_warnings``.
        """
        extraction = await self.extractor.extract(turn)
        semantic = await self.analyzer.analyze(turn, extraction.context)
        context = extraction.context

        capsule = ContextCapsule(
            user_id=turn.user_id,
            source_platform=turn.source_platform,
            turn=turn,
            extracted_context=context,
            semantic_metadata=semantic.metadata,
            target_platforms=self.registry.target_platforms(turn.source_platform),
            quality_metrics=self.scorer.score_initial(turn),
            tags=derive_tags(context),
            priority=CapsulePriority.from_urgency(context.emotional_tone.urgency),
            extraction_warnings=extraction.errors + semantic.errors,
        )

        prometheus_metrics.record_capsule_extracted(turn.source_platform)
        add_span_attributes(
            {
                "capsule.id": capsule.id,
                "capsule.targets": len(capsule.target_platforms),
                "capsule.score": capsule.context_preservation_score,
            }
        )
        if capsule.extraction_warnings:
            logger.warning(
                f"Capsule {capsule.id} created with {len(capsule.extraction_warnings)} "
                "degraded analyses"
            )
        else:
            logger.info(
                f"Capsule {capsule.id} created "
                f"(score={capsule.context_preservation_score}, "
                f"targets={', '.join(capsule.target_platforms)})"
            )
        return capsule
