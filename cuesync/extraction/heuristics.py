"""Deterministic text heuristics.

Pure functions from plain text to plain values. They back the extractor's
fallbacks, the semantic analyzer's assessments and the quality scorer's
sub-scores, so none of them touch the network or keep state.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from cuesync.models.capsule import (
    CognitiveLoad,
    DomainExpertise,
    EmotionalTone,
    LearningLevel,
    LinguisticFeatures,
    TechnicalComplexity,
    TechnicalTerm,
)

# ============================================================================
# Vocabularies
# ============================================================================

STOP_WORDS = frozenset({"that", "this", "with", "from", "they", "have", "will", "been", "were"})

SENTIMENT_WORDS: dict[str, frozenset[str]] = {
    "positive": frozenset({"good", "great", "excellent", "amazing", "wonderful"}),
    "negative": frozenset({"bad", "terrible", "awful", "horrible", "disappointing"}),
    "neutral": frozenset({"okay", "fine", "normal", "standard", "regular"}),
}

CONTINUITY_INDICATORS: tuple[str, ...] = (
    "previously",
    "earlier",
    "before",
    "above",
    "as mentioned",
    "furthermore",
    "additionally",
)

# term -> category. Upper-case acronyms match case-sensitively, everything
# else case-insensitively.
TECHNICAL_VOCABULARY: dict[str, str] = {
    "API": "protocol",
    "HTTP": "protocol",
    "HTTPS": "protocol",
    "REST": "protocol",
    "GraphQL": "protocol",
    "OAuth": "security",
    "JWT": "security",
    "WebAuthn": "security",
    "DID": "security",
    "JSON": "data_format",
    "XML": "data_format",
    "SQL": "database",
    "NoSQL": "database",
    "MongoDB": "database",
    "PostgreSQL": "database",
    "Redis": "database",
    "Elasticsearch": "database",
    "database": "database",
    "cache": "performance",
    "caching": "performance",
    "LRU": "performance",
    "TTL": "performance",
    "latency": "performance",
    "React": "framework",
    "Vue": "framework",
    "Angular": "framework",
    "Node.js": "runtime",
    "Python": "language",
    "JavaScript": "language",
    "TypeScript": "language",
    "Docker": "infrastructure",
    "Kubernetes": "infrastructure",
    "AWS": "cloud",
    "Azure": "cloud",
    "GCP": "cloud",
    "Git": "tooling",
    "CI/CD": "tooling",
    "DevOps": "tooling",
    "ML": "ai",
    "AI": "ai",
    "algorithm": "computer_science",
    "blockchain": "blockchain",
    "cryptocurrency": "blockchain",
}

DOMAIN_KEYWORDS: dict[str, frozenset[str]] = {
    "technical": frozenset(
        {
            "api", "code", "function", "database", "server", "algorithm", "cache",
            "deploy", "python", "javascript", "framework", "debug", "query", "docker",
            "kubernetes", "endpoint", "compile", "library",
        }
    ),
    "business": frozenset(
        {
            "revenue", "market", "customer", "strategy", "sales", "profit", "budget",
            "investment", "roi", "stakeholder", "pricing", "growth",
        }
    ),
    "academic": frozenset(
        {
            "research", "study", "theory", "hypothesis", "analysis", "paper", "thesis",
            "experiment", "journal", "citation", "methodology",
        }
    ),
}

COMPLEXITY_KEYWORDS = frozenset(
    {
        "architecture", "distributed", "concurrency", "optimization", "scalability",
        "asynchronous", "complexity", "consistency", "throughput", "latency",
        "algorithm", "infrastructure",
    }
)

FORMAL_MARKERS = frozenset(
    {"therefore", "however", "furthermore", "moreover", "consequently", "regarding", "please"}
)
INFORMAL_MARKERS = frozenset({"hey", "gonna", "wanna", "cool", "yeah", "lol", "btw", "thanks"})

URGENCY_WORDS = frozenset({"urgent", "asap", "immediately", "emergency", "critical", "deadline"})

_WORD = re.compile(r"[A-Za-z][A-Za-z0-9'+#./-]*")
_PUNCTUATION = re.compile(r"[^\w\s]")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_CODE_BLOCK = re.compile(r"```(?:[\w+-]*\n)?(.*?)```", re.DOTALL)
_URL = re.compile(r"https?://[^\s<>\"')\]]+")
_CAPITALIZED_PHRASE = re.compile(r"\b([A-Z][a-zA-Z0-9]+(?:\s+[A-Z][a-zA-Z0-9]+)*)\b")
_ACTION_PATTERNS = (
    re.compile(r"\b(?:need to|needs to)\s+([^.!?\n]+)", re.IGNORECASE),
    re.compile(r"\bshould\s+([^.!?\n]+)", re.IGNORECASE),
    re.compile(r"\bwill\s+([^.!?\n]+)", re.IGNORECASE),
)


def _term_pattern(term: str) -> re.Pattern[str]:
    flags = 0 if term.isupper() else re.IGNORECASE
    return re.compile(rf"(?<![\w/.]){re.escape(term)}(?![\w/])", flags)


_TERM_PATTERNS = {term: _term_pattern(term) for term in TECHNICAL_VOCABULARY}


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ============================================================================
# Word-level helpers
# ============================================================================


def words(text: str) -> list[str]:
    """Lower-cased words with punctuation stripped."""
    return _PUNCTUATION.sub(" ", text.lower()).split()


def significant_words(text: str) -> list[str]:
    """Words longer than three characters that are not stop words."""
    return [w for w in words(text) if len(w) > 3 and w not in STOP_WORDS]


def sentiment_tags(text: str) -> set[str]:
    """Coarse sentiment tags of ``text``; empty when no cue word appears."""
    present = set(words(text))
    return {tag for tag, cues in SENTIMENT_WORDS.items() if present & cues}


def continuity_hits(text: str) -> int:
    lowered = text.lower()
    return sum(1 for phrase in CONTINUITY_INDICATORS if phrase in lowered)


def has_structure(text: str) -> bool:
    """Newlines, markdown headings or list dashes."""
    return "\n" in text or "##" in text or "-" in text


def find_technical_terms(text: str) -> list[TechnicalTerm]:
    """Scan ``text`` for known technical vocabulary, in vocabulary order."""
    return [
        TechnicalTerm(term=term, category=TECHNICAL_VOCABULARY[term])
        for term, pattern in _TERM_PATTERNS.items()
        if pattern.search(text)
    ]


def merge_terms(*groups: Iterable[TechnicalTerm]) -> list[TechnicalTerm]:
    """Union of term lists, first spelling wins (case-insensitive)."""
    seen: set[str] = set()
    merged: list[TechnicalTerm] = []
    for group in groups:
        for term in group:
            key = term.term.lower()
            if key and key not in seen:
                seen.add(key)
                merged.append(term)
    return merged


# ============================================================================
# Extraction fallbacks
# ============================================================================


def truncate(text: str, limit: int = 200) -> str:
    return text if len(text) <= limit else text[:limit].rstrip()


def extract_code_snippets(text: str) -> list[str]:
    return [block.strip() for block in _CODE_BLOCK.findall(text) if block.strip()]


def extract_urls(text: str) -> list[str]:
    return list(dict.fromkeys(url.rstrip(".,;") for url in _URL.findall(text)))


def extract_capitalized_entities(text: str, limit: int = 10) -> list[str]:
    """Capitalised phrases that are not sentence-initial single words."""
    entities: list[str] = []
    for match in _CAPITALIZED_PHRASE.finditer(text):
        phrase = match.group(1)
        start = match.start(1)
        preceding = text[:start].rstrip()
        sentence_start = not preceding or preceding[-1] in ".!?"
        if sentence_start and " " not in phrase:
            continue
        if phrase not in entities:
            entities.append(phrase)
        if len(entities) >= limit:
            break
    return entities


def extract_action_items(text: str) -> list[str]:
    items: list[str] = []
    for pattern in _ACTION_PATTERNS:
        for match in pattern.finditer(text):
            item = match.group(1).strip()
            if item and item not in items:
                items.append(item)
    return items


def heuristic_tone(text: str) -> EmotionalTone:
    lowered_words = set(words(text))
    if lowered_words & URGENCY_WORDS:
        return EmotionalTone(overall_tone="urgent", intensity=0.7, urgency=0.8)
    if "?" in text:
        return EmotionalTone(overall_tone="curious", intensity=0.5, urgency=0.3)
    return EmotionalTone()


def phase_for_message_count(count: int) -> str:
    if count <= 2:
        return "initiation"
    if count <= 5:
        return "exploration"
    if count <= 8:
        return "resolution"
    return "conclusion"


def preferred_length(text: str) -> str:
    size = len(text)
    if size < 100:
        return "short"
    if size < 300:
        return "medium"
    if size < 600:
        return "long"
    return "comprehensive"


# ============================================================================
# Semantic assessments
# ============================================================================

_EXPERTISE_BY_HITS: tuple[tuple[int, str], ...] = ((6, "expert"), (3, "advanced"), (1, "intermediate"))

_DEPTH_BY_LEVEL = {
    "beginner": "introductory",
    "intermediate": "guided",
    "advanced": "detailed",
    "expert": "expert",
}


def assess_domain_expertise(text: str) -> DomainExpertise:
    """Dominant keyword domain and an expertise level from total keyword hits."""
    tokens = words(text)
    hits = {
        domain: [w for w in tokens if w in keywords] for domain, keywords in DOMAIN_KEYWORDS.items()
    }
    total = sum(len(found) for found in hits.values())
    if total == 0:
        return DomainExpertise(domain="general", level="beginner", indicators=[])

    domain = max(hits, key=lambda d: len(hits[d]))
    level = "beginner"
    for threshold, name in _EXPERTISE_BY_HITS:
        if total >= threshold:
            level = name
            break
    indicators = list(dict.fromkeys(w for found in hits.values() for w in found))
    return DomainExpertise(domain=domain, level=level, indicators=indicators)


def assess_technical_complexity(text: str, terms: Sequence[str] = ()) -> TechnicalComplexity:
    """Composite of technical-term density and explicit complexity keywords."""
    tokens = words(text)
    term_count = len(terms) if terms else len(find_technical_terms(text))
    density = term_count / len(tokens) if tokens else 0.0
    keyword_hits = [w for w in dict.fromkeys(tokens) if w in COMPLEXITY_KEYWORDS]

    score = 0.6 * min(1.0, 5 * density) + 0.4 * min(1.0, len(keyword_hits) / 3)
    score = round(clamp(score, 0.0, 1.0), 4)
    if score < 0.25:
        level = "simple"
    elif score < 0.5:
        level = "moderate"
    elif score < 0.75:
        level = "complex"
    else:
        level = "expert"
    return TechnicalComplexity(level=level, score=score, indicators=keyword_hits)


def assess_cognitive_load(text: str, complexity_score: float) -> CognitiveLoad:
    tokens = words(text)
    density = len(set(tokens)) / len(tokens) if tokens else 0.0
    load = 0.5 * density + 0.5 * complexity_score
    if load < 0.3:
        level = "low"
    elif load < 0.55:
        level = "medium"
    elif load < 0.8:
        level = "high"
    else:
        level = "extreme"
    return CognitiveLoad(
        level=level,
        information_density=round(clamp(density, 0.0, 1.0), 4),
        conceptual_complexity=round(clamp(complexity_score, 0.0, 1.0), 4),
    )


def assess_learning_level(expertise: DomainExpertise) -> LearningLevel:
    return LearningLevel(level=expertise.level, recommended_depth=_DEPTH_BY_LEVEL[expertise.level])


def assess_linguistic_features(text: str) -> LinguisticFeatures:
    """Sentence/word length statistics, readability, vocabulary and formality."""
    sentences = [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]
    tokens = _WORD.findall(text)
    if not tokens:
        return LinguisticFeatures()

    asl = len(tokens) / max(1, len(sentences))
    awl = sum(len(t) for t in tokens) / len(tokens)
    readability = clamp(100 - 1.5 * asl - 10 * max(0.0, awl - 4), 0.0, 100.0)

    if awl < 4.5:
        vocabulary = "basic"
    elif awl < 5.5:
        vocabulary = "intermediate"
    else:
        vocabulary = "advanced"

    lowered = set(words(text))
    formal = len(lowered & FORMAL_MARKERS)
    informal = len(lowered & INFORMAL_MARKERS)
    if formal > informal:
        formality = "formal"
    elif informal > formal:
        formality = "informal"
    else:
        formality = "neutral"

    return LinguisticFeatures(
        readability_score=round(readability, 2),
        vocabulary_level=vocabulary,
        formality=formality,
        average_sentence_length=round(asl, 2),
        average_word_length=round(awl, 2),
    )


def contextual_connections(history_text: str, current_text: str, limit: int = 10) -> list[str]:
    """Significant words shared between the history and the current turn."""
    if not history_text:
        return []
    earlier = set(significant_words(history_text))
    shared = [w for w in dict.fromkeys(significant_words(current_text)) if w in earlier]
    return shared[:limit]
