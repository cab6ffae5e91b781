"""Semantic analyzer.

Derives secondary metadata from a turn and its extracted context. The topic
hierarchy and predictive insights come from the text-understanding
capability; every other assessment is a deterministic heuristic.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cuesync.config import ExtractionConfig
from cuesync.extraction import heuristics, templates
from cuesync.extraction.extractor import describe_failure
from cuesync.extraction.parser import all_values, first_value, parse_fields, split_list
from cuesync.models.capsule import (
    ConversationTurn,
    ExtractedContext,
    PredictiveInsights,
    SemanticMetadata,
    TopicHierarchy,
)
from cuesync.observability import prometheus_metrics
from cuesync.observability.tracing import traced

if TYPE_CHECKING:
    from cuesync.providers.base import TextCompletion

logger = logging.getLogger(__name__)


@dataclass
class SemanticOutcome:
    metadata: SemanticMetadata
    errors: list[str] = field(default_factory=list)


class SemanticAnalyzer:
    """Computes ``SemanticMetadata`` for extracted contexts."""

    def __init__(
        self,
        completion: TextCompletion | None = None,
        config: ExtractionConfig | None = None,
    ) -> None:
        self.completion = completion
        self.config = config or ExtractionConfig()

    @traced("cuesync.semantic.analyze")
    async def analyze(self, turn: ConversationTurn, context: ExtractedContext) -> SemanticOutcome:
        """Analyze ``turn`` given its extracted ``context``.

        Collaborator failures fall back to heuristics and are reported in
        ``SemanticOutcome.errors``.
        """
        variables = {
            "summary": context.summary,
            "topic": context.primary_topic,
            "user": turn.user_message,
        }
        hierarchy_raw, insights_raw = await asyncio.gather(
            self._ask(templates.TOPIC_HIERARCHY_TEMPLATE, variables),
            self._ask(templates.PREDICTIVE_TEMPLATE, variables),
            return_exceptions=True,
        )

        errors: list[str] = []
        hierarchy_fields = self._settle("topic_hierarchy", hierarchy_raw, errors)
        insights_fields = self._settle("predictive_insights", insights_raw, errors)

        text = f"{turn.user_message}\n{turn.assistant_message}".strip()
        history_text = "\n".join(
            m.content for m in turn.recent_history(self.config.history_window)
        )

        expertise = heuristics.assess_domain_expertise(text)
        complexity = heuristics.assess_technical_complexity(text, context.term_names)

        metadata = SemanticMetadata(
            topic_hierarchy=self._build_hierarchy(hierarchy_fields, context),
            domain_expertise=expertise,
            technical_complexity=complexity,
            cognitive_load=heuristics.assess_cognitive_load(text, complexity.score),
            learning_level=heuristics.assess_learning_level(expertise),
            linguistic_features=heuristics.assess_linguistic_features(text),
            contextual_connections=heuristics.contextual_connections(history_text, text),
            predictive_insights=self._build_insights(insights_fields, context),
        )
        return SemanticOutcome(metadata=metadata, errors=errors)

    async def _ask(self, template: str, variables: dict[str, str]) -> dict[str, list[str]]:
        if self.completion is None:
            return {}
        text = await asyncio.wait_for(
            self.completion.complete(
                template.format(**variables),
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            ),
            timeout=self.config.timeout_seconds,
        )
        return parse_fields(text)

    def _settle(
        self,
        name: str,
        result: dict[str, list[str]] | BaseException,
        errors: list[str],
    ) -> dict[str, list[str]]:
        if not isinstance(result, BaseException):
            return result
        if isinstance(result, asyncio.CancelledError):
            raise result
        reason = describe_failure(result, self.config.timeout_seconds)
        logger.warning(f"Semantic analysis '{name}' degraded: {reason}")
        errors.append(f"{name}: {reason}")
        prometheus_metrics.record_extraction_fallback(name)
        return {}

    @staticmethod
    def _build_hierarchy(
        fields: dict[str, list[str]], context: ExtractedContext
    ) -> TopicHierarchy:
        return TopicHierarchy(
            root_domain=first_value(fields, "ROOT_DOMAIN") or context.domain_category,
            sub_domains=split_list(first_value(fields, "SUB_DOMAINS")) or list(context.sub_topics),
            specific_topics=split_list(first_value(fields, "SPECIFIC_TOPICS"))
            or [context.primary_topic],
            cross_domain_links=split_list(first_value(fields, "CROSS_DOMAIN_LINKS")),
        )

    @staticmethod
    def _build_insights(
        fields: dict[str, list[str]], context: ExtractedContext
    ) -> PredictiveInsights:
        follow_ups = all_values(fields, "FOLLOW_UP")[:3]
        if not follow_ups:
            follow_ups = [f"Can you explain more about {point}?" for point in context.key_points[:2]]
        next_steps = all_values(fields, "NEXT_STEP")[:3] or list(context.action_items[:3])
        return PredictiveInsights(
            follow_up_questions=follow_ups,
            potential_misunderstandings=all_values(fields, "MISUNDERSTANDING")[:3],
            recommended_next_steps=next_steps,
        )
