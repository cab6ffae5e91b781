"""Context extraction: parsing, heuristics, extractor, semantic analysis."""

from cuesync.extraction.extractor import ContextExtractor, ExtractionOutcome
from cuesync.extraction.pipeline import ExtractionPipeline
from cuesync.extraction.semantic import SemanticAnalyzer, SemanticOutcome

__all__ = [
    "ContextExtractor",
    "ExtractionOutcome",
    "ExtractionPipeline",
    "SemanticAnalyzer",
    "SemanticOutcome",
]
