"""Context capsule data model.

A capsule is the structured record produced by extraction: the preserved
meaning of one conversational turn, ready for delivery to other providers.
Everything except the sync bookkeeping is immutable once extraction finishes.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cuesync.errors import InvalidStatusTransition, SyncError
from cuesync.platforms.registry import ProviderCapabilities

# ============================================================================
# Conversation input
# ============================================================================


class ConversationMessage(BaseModel):
    """One prior message in the conversation history."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ConversationTurn(BaseModel):
    """Input to extraction: one user/assistant exchange plus optional history."""

    model_config = ConfigDict(frozen=True)

    user_message: str = Field(..., min_length=1, description="User text for this turn")
    assistant_message: str = Field("", description="Assistant reply for this turn")
    history: list[ConversationMessage] = Field(default_factory=list)
    source_platform: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)

    @field_validator("user_message", "assistant_message", mode="before")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    def recent_history(self, window: int = 10) -> list[ConversationMessage]:
        """Most recent ``window`` history messages, oldest first."""
        if window <= 0:
            return []
        return self.history[-window:]

    @property
    def message_count(self) -> int:
        """History length plus the current exchange."""
        return len(self.history) + (2 if self.assistant_message else 1)


# ============================================================================
# Extracted context
# ============================================================================


class EntityMention(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    entity_type: str = "concept"
    confidence: float = Field(0.5, ge=0.0, le=1.0)


class EntityRelationship(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    relation: str
    target: str


class TechnicalTerm(BaseModel):
    model_config = ConfigDict(frozen=True)

    term: str
    category: str = "general"


class EmotionalTone(BaseModel):
    """Overall tone with intensity and urgency in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    overall_tone: str = "neutral"
    intensity: float = Field(0.5, ge=0.0, le=1.0)
    urgency: float = Field(0.3, ge=0.0, le=1.0)


class ConversationFlow(BaseModel):
    """Where the conversation stands.

    Attributes:
        phase: initiation, exploration, resolution or conclusion
        progress_percentage: Integer progress in [0, 100]
        depth: Integer depth in [1, 10]
        next_expected: Likely next move in the conversation
    """

    model_config = ConfigDict(frozen=True)

    phase: str = "exploration"
    progress_percentage: int = Field(50, ge=0, le=100)
    depth: int = Field(5, ge=1, le=10)
    next_expected: str = ""


class ExtractedContext(BaseModel):
    """Structured understanding of one turn."""

    model_config = ConfigDict(frozen=True)

    summary: str
    key_points: list[str] = Field(default_factory=list)
    primary_intent: str = "information_seeking"
    secondary_intents: list[str] = Field(default_factory=list)
    primary_topic: str = "general"
    sub_topics: list[str] = Field(default_factory=list)
    domain_category: str = "general"
    entities: list[EntityMention] = Field(default_factory=list)
    relationships: list[EntityRelationship] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)
    technical_terms: list[TechnicalTerm] = Field(default_factory=list)
    code_snippets: list[str] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)
    emotional_tone: EmotionalTone = Field(default_factory=EmotionalTone)
    conversation_flow: ConversationFlow = Field(default_factory=ConversationFlow)

    @property
    def term_names(self) -> list[str]:
        return [t.term for t in self.technical_terms]


# ============================================================================
# Semantic metadata
# ============================================================================


class TopicHierarchy(BaseModel):
    model_config = ConfigDict(frozen=True)

    root_domain: str = "general"
    sub_domains: list[str] = Field(default_factory=list)
    specific_topics: list[str] = Field(default_factory=list)
    cross_domain_links: list[str] = Field(default_factory=list)


class DomainExpertise(BaseModel):
    model_config = ConfigDict(frozen=True)

    domain: str = "general"
    level: Literal["beginner", "intermediate", "advanced", "expert"] = "beginner"
    indicators: list[str] = Field(default_factory=list)


class TechnicalComplexity(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: Literal["simple", "moderate", "complex", "expert"] = "simple"
    score: float = Field(0.0, ge=0.0, le=1.0)
    indicators: list[str] = Field(default_factory=list)


class CognitiveLoad(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: Literal["low", "medium", "high", "extreme"] = "low"
    information_density: float = Field(0.0, ge=0.0, le=1.0)
    conceptual_complexity: float = Field(0.0, ge=0.0, le=1.0)


class LearningLevel(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: Literal["beginner", "intermediate", "advanced", "expert"] = "beginner"
    recommended_depth: Literal["introductory", "guided", "detailed", "expert"] = "introductory"


class LinguisticFeatures(BaseModel):
    model_config = ConfigDict(frozen=True)

    readability_score: float = Field(100.0, ge=0.0, le=100.0)
    vocabulary_level: Literal["basic", "intermediate", "advanced"] = "basic"
    formality: Literal["formal", "neutral", "informal"] = "neutral"
    average_sentence_length: float = 0.0
    average_word_length: float = 0.0


class PredictiveInsights(BaseModel):
    model_config = ConfigDict(frozen=True)

    follow_up_questions: list[str] = Field(default_factory=list)
    potential_misunderstandings: list[str] = Field(default_factory=list)
    recommended_next_steps: list[str] = Field(default_factory=list)


class SemanticMetadata(BaseModel):
    """Secondary metadata derived from a turn and its extracted context."""

    model_config = ConfigDict(frozen=True)

    topic_hierarchy: TopicHierarchy = Field(default_factory=TopicHierarchy)
    domain_expertise: DomainExpertise = Field(default_factory=DomainExpertise)
    technical_complexity: TechnicalComplexity = Field(default_factory=TechnicalComplexity)
    cognitive_load: CognitiveLoad = Field(default_factory=CognitiveLoad)
    learning_level: LearningLevel = Field(default_factory=LearningLevel)
    linguistic_features: LinguisticFeatures = Field(default_factory=LinguisticFeatures)
    contextual_connections: list[str] = Field(default_factory=list)
    predictive_insights: PredictiveInsights = Field(default_factory=PredictiveInsights)


# ============================================================================
# Scoring, adaptation and sync history
# ============================================================================


class QualityMetrics(BaseModel):
    """Sub-scores (0-100 each) and the overall preservation score."""

    model_config = ConfigDict(frozen=True)

    keyword_preservation: float = Field(0.0, ge=0.0, le=100.0)
    semantic_consistency: float = Field(0.0, ge=0.0, le=100.0)
    response_quality: float = Field(0.0, ge=0.0, le=100.0)
    technical_accuracy: float = Field(0.0, ge=0.0, le=100.0)
    continuity: float = Field(0.0, ge=0.0, le=100.0)
    platform_bonus: float = Field(0.0, ge=0.0, le=100.0)
    context_preservation_score: int = Field(0, ge=0, le=100)


class AdaptationStrategy(str, Enum):
    DIRECT_TRANSLATION = "direct_translation"
    CONTEXT_ENRICHMENT = "context_enrichment"
    SEMANTIC_PRESERVATION = "semantic_preservation"
    FORMAT_TRANSFORMATION = "format_transformation"


class AdaptationMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    confidence: float = Field(0.8, ge=0.0, le=1.0)
    algorithm_version: str = "1.0"
    adaptation_time_ms: float = 0.0


class PlatformAdaptation(BaseModel):
    """Rendering of a capsule for one target platform."""

    model_config = ConfigDict(frozen=True)

    platform: str
    adapted_prompt: str
    capabilities: ProviderCapabilities
    strategy: AdaptationStrategy
    fallback_strategies: list[AdaptationStrategy] = Field(default_factory=list)
    estimated_success_rate: float = Field(..., ge=0.0, le=1.0)
    preferred_length: Literal["short", "medium", "long", "comprehensive"] = "medium"
    metadata: AdaptationMetadata = Field(default_factory=AdaptationMetadata)


class PerformanceMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    adaptation_time_ms: float = 0.0
    provider_round_trip_ms: float = 0.0
    total_sync_time_ms: float = 0.0


class SyncHistoryEntry(BaseModel):
    """One immutable record per delivery attempt."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    capsule_id: str
    target_platform: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    success: bool
    context_preservation_score: int = Field(0, ge=0, le=100)
    adapted_prompt: str = ""
    response_text: str | None = None
    quality_metrics: QualityMetrics | None = None
    error: SyncError | None = None
    performance: PerformanceMetrics = Field(default_factory=PerformanceMetrics)


# ============================================================================
# Capsule
# ============================================================================


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    PARTIAL = "partial"
    FAILED = "failed"


_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    SyncStatus.PENDING: frozenset({SyncStatus.SYNCING, SyncStatus.FAILED}),
    SyncStatus.SYNCING: frozenset({SyncStatus.SYNCED, SyncStatus.PARTIAL, SyncStatus.FAILED}),
    # Terminal states only leave through a fresh re-sync
    SyncStatus.SYNCED: frozenset({SyncStatus.SYNCING}),
    SyncStatus.PARTIAL: frozenset({SyncStatus.SYNCING}),
    SyncStatus.FAILED: frozenset({SyncStatus.SYNCING}),
}


def can_transition(current: SyncStatus, new: SyncStatus) -> bool:
    """Check whether ``current -> new`` is a legal status change."""
    return new in _TRANSITIONS[current]


class CapsulePriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_urgency(cls, urgency: float) -> CapsulePriority:
        """Map an urgency scalar in [0, 1] to a priority."""
        if urgency >= 0.8:
            return cls.URGENT
        if urgency >= 0.6:
            return cls.HIGH
        if urgency < 0.2:
            return cls.LOW
        return cls.NORMAL


class ContextCapsule(BaseModel):
    """Central entity: one extracted, scored turn plus its sync bookkeeping.

    Only the orchestrator changes ``sync_status`` (through ``transition_to``),
    ``platform_adaptations`` and ``sync_history``; archival flips
    ``is_archived``. All other fields are fixed at extraction.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    user_id: str
    source_platform: str
    turn: ConversationTurn
    extracted_context: ExtractedContext
    semantic_metadata: SemanticMetadata = Field(default_factory=SemanticMetadata)
    target_platforms: list[str] = Field(default_factory=list)
    platform_adaptations: list[PlatformAdaptation] = Field(default_factory=list)
    sync_history: list[SyncHistoryEntry] = Field(default_factory=list)
    quality_metrics: QualityMetrics = Field(default_factory=QualityMetrics)
    sync_status: SyncStatus = SyncStatus.PENDING
    tags: list[str] = Field(default_factory=list)
    priority: CapsulePriority = CapsulePriority.NORMAL
    is_archived: bool = False
    extraction_warnings: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def exclude_source_platform(self) -> ContextCapsule:
        """Ensure the source platform is never a delivery target."""
        if self.source_platform in self.target_platforms:
            raise ValueError(
                f"target_platforms must not contain source platform '{self.source_platform}'"
            )
        return self

    @property
    def context_preservation_score(self) -> int:
        return self.quality_metrics.context_preservation_score

    def transition_to(self, status: SyncStatus) -> None:
        """Move to ``status`` along the sync state machine.

        Raises:
            InvalidStatusTransition: If the change is not allowed
        """
        if not can_transition(self.sync_status, status):
            raise InvalidStatusTransition(
                f"Capsule {self.id}: cannot move from {self.sync_status.value} to {status.value}"
            )
        self.sync_status = status

    def set_adaptation(self, adaptation: PlatformAdaptation) -> None:
        """Store ``adaptation``, replacing any earlier one for the same target."""
        self.platform_adaptations = [
            a for a in self.platform_adaptations if a.platform != adaptation.platform
        ] + [adaptation]

    def adaptation_for(self, platform: str) -> PlatformAdaptation | None:
        for adaptation in self.platform_adaptations:
            if adaptation.platform == platform:
                return adaptation
        return None

    def record_attempt(self, entry: SyncHistoryEntry) -> None:
        """Append a history entry (append-only)."""
        self.sync_history = [*self.sync_history, entry]

    def history_for(self, platform: str) -> list[SyncHistoryEntry]:
        return [e for e in self.sync_history if e.target_platform == platform]
