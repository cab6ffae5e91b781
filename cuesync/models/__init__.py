"""Cuesync data models."""

from __future__ import annotations

from cuesync.models.capsule import (
    AdaptationMetadata,
    AdaptationStrategy,
    CapsulePriority,
    CognitiveLoad,
    ContextCapsule,
    ConversationFlow,
    ConversationMessage,
    ConversationTurn,
    DomainExpertise,
    EmotionalTone,
    EntityMention,
    EntityRelationship,
    ExtractedContext,
    LearningLevel,
    LinguisticFeatures,
    PerformanceMetrics,
    PlatformAdaptation,
    PredictiveInsights,
    QualityMetrics,
    SemanticMetadata,
    SyncHistoryEntry,
    SyncStatus,
    TechnicalComplexity,
    TechnicalTerm,
    TopicHierarchy,
    can_transition,
)
from cuesync.models.sync import PlatformStats, SyncResult, SyncStats, TimeRange

__all__ = [
    "AdaptationMetadata",
    "AdaptationStrategy",
    "CapsulePriority",
    "CognitiveLoad",
    "ContextCapsule",
    "ConversationFlow",
    "ConversationMessage",
    "ConversationTurn",
    "DomainExpertise",
    "EmotionalTone",
    "EntityMention",
    "EntityRelationship",
    "ExtractedContext",
    "LearningLevel",
    "LinguisticFeatures",
    "PerformanceMetrics",
    "PlatformAdaptation",
    "PlatformStats",
    "PredictiveInsights",
    "QualityMetrics",
    "SemanticMetadata",
    "SyncHistoryEntry",
    "SyncResult",
    "SyncStats",
    "SyncStatus",
    "TechnicalComplexity",
    "TechnicalTerm",
    "TimeRange",
    "can_transition",
]
