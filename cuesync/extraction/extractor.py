"""Context extractor.

Turns a conversation turn into an ``ExtractedContext``. Seven independent
analyses run concurrently against the text-understanding capability; any
analysis that fails or times out records a warning and falls back to
heuristics, so extraction always produces a usable context.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cuesync.config import ExtractionConfig
from cuesync.extraction import heuristics, templates
from cuesync.extraction.parser import (
    all_values,
    first_value,
    parse_fields,
    parse_fraction,
    parse_int,
    split_list,
    split_record,
)
from cuesync.models.capsule import (
    ConversationFlow,
    ConversationTurn,
    EmotionalTone,
    EntityMention,
    EntityRelationship,
    ExtractedContext,
    TechnicalTerm,
)
from cuesync.observability import prometheus_metrics
from cuesync.observability.tracing import add_span_attributes, traced

if TYPE_CHECKING:
    from cuesync.providers.base import TextCompletion

logger = logging.getLogger(__name__)

Fields = dict[str, list[str]]

_PHASES = frozenset({"initiation", "exploration", "resolution", "conclusion"})
_INSTRUCTION_OPENERS = ("please", "help", "fix", "create", "write", "make", "build", "explain")
_DOMAIN_NAMES = {"technical": "technology", "business": "business", "academic": "science"}

_ANALYSES: tuple[tuple[str, str], ...] = (
    ("summary", templates.SUMMARY_TEMPLATE),
    ("intent", templates.INTENT_TEMPLATE),
    ("topic", templates.TOPIC_TEMPLATE),
    ("entities", templates.ENTITY_TEMPLATE),
    ("technical", templates.TECHNICAL_TEMPLATE),
    ("tone", templates.TONE_TEMPLATE),
    ("flow", templates.FLOW_TEMPLATE),
)


@dataclass
class ExtractionOutcome:
    """Extracted context plus the non-fatal errors met along the way."""

    context: ExtractedContext
    errors: list[str] = field(default_factory=list)


def describe_failure(exc: BaseException, timeout: float | None = None) -> str:
    """Short, human-readable reason for a failed analysis."""
    if isinstance(exc, TimeoutError):
        return f"timed out after {timeout}s" if timeout is not None else "timed out"
    message = str(exc)
    return f"{exc.__class__.__name__}: {message}" if message else exc.__class__.__name__


class ContextExtractor:
    """Builds ``ExtractedContext`` records from conversation turns."""

    def __init__(
        self,
        completion: TextCompletion | None = None,
        config: ExtractionConfig | None = None,
    ) -> None:
        """Initialize extractor.

        Args:
            completion: Text-understanding capability (None runs heuristics only)
            config: Extraction settings
        """
        self.completion = completion
        self.config = config or ExtractionConfig()

    @traced("cuesync.extract")
    async def extract(self, turn: ConversationTurn) -> ExtractionOutcome:
        """Run every analysis and assemble the context.

        Never raises for analysis failures: each failure degrades only its own
        fields and is reported in ``ExtractionOutcome.errors``.
        """
        variables = self._template_variables(turn)
        raw = await asyncio.gather(
            *(self._ask(template, variables) for _, template in _ANALYSES),
            return_exceptions=True,
        )

        errors: list[str] = []
        parsed: dict[str, Fields] = {}
        for (name, _), result in zip(_ANALYSES, raw, strict=True):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                reason = describe_failure(result, self.config.timeout_seconds)
                logger.warning(f"Extraction analysis '{name}' degraded: {reason}")
                errors.append(f"{name}: {reason}")
                prometheus_metrics.record_extraction_fallback(name)
                parsed[name] = {}
            else:
                parsed[name] = result

        summary, key_points = self._build_summary(parsed["summary"], turn)
        primary_intent, secondary_intents = self._build_intent(parsed["intent"], turn)
        primary_topic, sub_topics, domain = self._build_topic(parsed["topic"], turn)
        entities, relationships, action_items = self._build_entities(parsed["entities"], turn)
        terms, code_snippets, references = self._build_technical(parsed["technical"], turn)

        context = ExtractedContext(
            summary=summary,
            key_points=key_points,
            primary_intent=primary_intent,
            secondary_intents=secondary_intents,
            primary_topic=primary_topic,
            sub_topics=sub_topics,
            domain_category=domain,
            entities=entities,
            relationships=relationships,
            action_items=action_items,
            technical_terms=terms,
            code_snippets=code_snippets,
            references=references,
            emotional_tone=self._build_tone(parsed["tone"], turn),
            conversation_flow=self._build_flow(parsed["flow"], turn),
        )

        add_span_attributes(
            {
                "extraction.errors": len(errors),
                "extraction.technical_terms": len(terms),
                "extraction.key_points": len(key_points),
            }
        )
        return ExtractionOutcome(context=context, errors=errors)

    def _template_variables(self, turn: ConversationTurn) -> dict[str, str]:
        history = turn.recent_history(self.config.history_window)
        return {
            "user": turn.user_message,
            "assistant": turn.assistant_message or "(no reply)",
            "history": templates.render_history([(m.role, m.content) for m in history]),
        }

    async def _ask(self, template: str, variables: dict[str, str]) -> Fields:
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

    # ------------------------------------------------------------------
    # Field builders (parsed output first, heuristics as fallback)
    # ------------------------------------------------------------------

    def _build_summary(self, fields: Fields, turn: ConversationTurn) -> tuple[str, list[str]]:
        summary = first_value(fields, "SUMMARY") or turn.user_message
        key_points = all_values(fields, "KEY_POINT") + split_list(first_value(fields, "KEY_POINTS"))
        key_points = list(dict.fromkeys(key_points))[: self.config.max_key_points]
        if not key_points:
            key_points = [heuristics.truncate(turn.user_message, 200)]
        return summary, key_points

    def _build_intent(self, fields: Fields, turn: ConversationTurn) -> tuple[str, list[str]]:
        primary = first_value(fields, "PRIMARY_INTENT") or first_value(fields, "INTENT")
        if not primary:
            text = turn.user_message.lower()
            if "?" in text:
                primary = "information_seeking"
            elif text.startswith(_INSTRUCTION_OPENERS):
                primary = "instruction"
            else:
                primary = "discussion"
        return primary.strip().lower(), split_list(first_value(fields, "SECONDARY_INTENTS"))

    def _build_topic(self, fields: Fields, turn: ConversationTurn) -> tuple[str, list[str], str]:
        text = f"{turn.user_message}\n{turn.assistant_message}"
        primary = first_value(fields, "PRIMARY_TOPIC") or first_value(fields, "TOPIC")
        if not primary:
            terms = heuristics.find_technical_terms(turn.user_message)
            words = heuristics.significant_words(turn.user_message)
            primary = terms[0].term if terms else (words[0] if words else "general")

        domain = first_value(fields, "DOMAIN")
        if not domain:
            expertise = heuristics.assess_domain_expertise(text)
            domain = _DOMAIN_NAMES.get(expertise.domain, "general")

        return primary, split_list(first_value(fields, "SUB_TOPICS")), domain.lower()

    def _build_entities(
        self, fields: Fields, turn: ConversationTurn
    ) -> tuple[list[EntityMention], list[EntityRelationship], list[str]]:
        text = f"{turn.user_message}\n{turn.assistant_message}"

        entities: list[EntityMention] = []
        for value in all_values(fields, "ENTITY"):
            name, entity_type, confidence = split_record(value, 3)
            if name:
                entities.append(
                    EntityMention(
                        text=name,
                        entity_type=entity_type or "concept",
                        confidence=parse_fraction(confidence, 0.5),
                    )
                )
        if not entities:
            entities = [
                EntityMention(text=name, entity_type="concept", confidence=0.5)
                for name in heuristics.extract_capitalized_entities(text)
            ]

        relationships = []
        for value in all_values(fields, "RELATION"):
            source, relation, target = split_record(value, 3)
            if source and relation and target:
                relationships.append(
                    EntityRelationship(source=source, relation=relation, target=target)
                )

        action_items = all_values(fields, "ACTION") or heuristics.extract_action_items(text)
        return entities, relationships, action_items

    def _build_technical(
        self, fields: Fields, turn: ConversationTurn
    ) -> tuple[list[TechnicalTerm], list[str], list[str]]:
        text = f"{turn.user_message}\n{turn.assistant_message}"

        parsed_terms = []
        for value in all_values(fields, "TERM"):
            term, category = split_record(value, 2)
            if term:
                parsed_terms.append(TechnicalTerm(term=term, category=category or "general"))
        terms = heuristics.merge_terms(parsed_terms, heuristics.find_technical_terms(text))

        references = list(
            dict.fromkeys(all_values(fields, "REFERENCE") + heuristics.extract_urls(text))
        )
        return terms, heuristics.extract_code_snippets(text), references

    def _build_tone(self, fields: Fields, turn: ConversationTurn) -> EmotionalTone:
        fallback = heuristics.heuristic_tone(turn.user_message)
        return EmotionalTone(
            overall_tone=(first_value(fields, "TONE") or fallback.overall_tone).lower(),
            intensity=parse_fraction(first_value(fields, "INTENSITY"), fallback.intensity),
            urgency=parse_fraction(first_value(fields, "URGENCY"), fallback.urgency),
        )

    def _build_flow(self, fields: Fields, turn: ConversationTurn) -> ConversationFlow:
        phase = first_value(fields, "PHASE").lower()
        if phase not in _PHASES:
            phase = heuristics.phase_for_message_count(turn.message_count)
        return ConversationFlow(
            phase=phase,
            progress_percentage=parse_int(first_value(fields, "PROGRESS"), 50, 0, 100),
            depth=parse_int(first_value(fields, "DEPTH"), 5, 1, 10),
            next_expected=first_value(fields, "NEXT"),
        )
