"""Tests for the context extractor."""

from __future__ import annotations

from cuesync.config import ExtractionConfig
from cuesync.extraction.extractor import ContextExtractor, describe_failure
from cuesync.observability import prometheus_metrics


class TestContextExtractor:
    """Test suite for ContextExtractor with a scripted collaborator."""

    async def test_parsed_analyses(self, fake_completion, make_turn) -> None:
        """Test every analysis is taken from the collaborator output."""
        extractor = ContextExtractor(fake_completion)

        outcome = await extractor.extract(make_turn())
        context = outcome.context

        assert outcome.errors == []
        assert context.summary.startswith("The user asks how to cache API responses")
        assert context.key_points == [
            "Cache API responses to cut latency",
            "Use an LRU cache with a TTL",
        ]
        assert context.primary_intent == "problem_solving"
        assert context.secondary_intents == ["learning", "optimization"]
        assert context.primary_topic == "API caching"
        assert context.sub_topics == ["LRU", "TTL"]
        assert context.domain_category == "technology"
        assert [(e.text, e.entity_type, e.confidence) for e in context.entities] == [
            ("LRU cache", "technology", 0.9)
        ]
        assert context.relationships[0].relation == "expires by"
        assert context.action_items == ["Add a TTL to cached entries"]
        assert context.emotional_tone.overall_tone == "curious"
        assert context.emotional_tone.urgency == 0.2
        assert context.conversation_flow.phase == "initiation"
        assert context.conversation_flow.progress_percentage == 30
        assert context.conversation_flow.depth == 4
        assert context.conversation_flow.next_expected == "asks about cache invalidation"

    async def test_technical_terms_merge_with_scan(self, fake_completion, make_turn) -> None:
        """Test parsed terms come first and the heuristic scan fills in the rest."""
        extractor = ContextExtractor(fake_completion)

        outcome = await extractor.extract(make_turn())

        assert outcome.context.term_names == ["API", "cache", "memoization", "LRU", "TTL"]

    async def test_runs_seven_analyses_with_configured_sampling(
        self, fake_completion, make_turn
    ) -> None:
        """Test each analysis is requested once with the configured parameters."""
        extractor = ContextExtractor(fake_completion, ExtractionConfig(max_tokens=321))

        await extractor.extract(make_turn())

        assert len(fake_completion.calls) == 7
        assert {c["temperature"] for c in fake_completion.calls} == {0.1}
        assert {c["max_tokens"] for c in fake_completion.calls} == {321}

    async def test_history_window(self, fake_completion, make_turn) -> None:
        """Test only the most recent history messages reach the prompts."""
        history = [("user", f"message number {i}") for i in range(12)]
        extractor = ContextExtractor(fake_completion, ExtractionConfig(history_window=3))

        await extractor.extract(make_turn(history=history))

        prompt = fake_completion.calls[0]["prompt"]
        assert "message number 11" in prompt
        assert "message number 9" in prompt
        assert "message number 8" not in prompt

    async def test_failed_analysis_degrades_only_its_fields(
        self, fake_completion_cls, make_turn
    ) -> None:
        """Test a failing analysis falls back to heuristics and is reported."""
        prometheus_metrics.reset_all_metrics()
        replies = dict(fake_completion_cls().replies)
        replies["TONE:"] = RuntimeError("model overloaded")
        extractor = ContextExtractor(fake_completion_cls(replies))

        outcome = await extractor.extract(make_turn())

        assert outcome.errors == ["tone: RuntimeError: model overloaded"]
        # Question mark in the user message: heuristic tone is curious
        assert outcome.context.emotional_tone.overall_tone == "curious"
        assert outcome.context.emotional_tone.urgency == 0.3
        assert outcome.context.primary_intent == "problem_solving"

        summary = prometheus_metrics.get_metric_summary()
        assert summary["cuesync_extraction_fallbacks_total"]['analysis="tone"'] == 1.0

    async def test_timeouts_fall_back_to_heuristics(self, fake_completion_cls, make_turn) -> None:
        """Test a slow collaborator never blocks extraction."""
        extractor = ContextExtractor(
            fake_completion_cls(delay=0.5), ExtractionConfig(timeout_seconds=0.05)
        )

        outcome = await extractor.extract(make_turn())
        context = outcome.context

        assert len(outcome.errors) == 7
        assert all(error.endswith("timed out after 0.05s") for error in outcome.errors)
        assert context.summary == "How do I cache API responses?"
        assert context.key_points == ["How do I cache API responses?"]
        assert context.primary_intent == "information_seeking"
        assert context.primary_topic == "API"
        assert context.domain_category == "technology"
        assert {"API", "cache"} <= set(context.term_names)

    async def test_heuristics_only(self, make_turn) -> None:
        """Test extraction without a collaborator."""
        extractor = ContextExtractor()

        outcome = await extractor.extract(
            make_turn(user="Please fix the deployment script", assistant="")
        )
        context = outcome.context

        assert outcome.errors == []
        assert context.primary_intent == "instruction"
        assert context.conversation_flow.phase == "initiation"
        assert context.conversation_flow.progress_percentage == 50
        assert context.emotional_tone.overall_tone == "neutral"

    async def test_malformed_output_is_tolerated(self, fake_completion_cls, make_turn) -> None:
        """Test free text without fields is treated as empty output."""
        extractor = ContextExtractor(fake_completion_cls({}, default="I cannot help with that."))

        outcome = await extractor.extract(make_turn())

        assert outcome.errors == []
        assert outcome.context.summary == "How do I cache API responses?"

    async def test_out_of_range_values_are_clamped(self, fake_completion_cls, make_turn) -> None:
        """Test numeric fields are clamped and unknown phases ignored."""
        replies = {
            "TONE:": "TONE: Urgent\nINTENSITY: 3\nURGENCY: -1",
            "PHASE:": "PHASE: wrapping up\nPROGRESS: 140\nDEPTH: 0",
        }
        extractor = ContextExtractor(fake_completion_cls(replies))

        outcome = await extractor.extract(make_turn())
        tone = outcome.context.emotional_tone
        flow = outcome.context.conversation_flow

        assert (tone.overall_tone, tone.intensity, tone.urgency) == ("urgent", 1.0, 0.0)
        assert (flow.phase, flow.progress_percentage, flow.depth) == ("initiation", 100, 1)

    async def test_percent_values_are_fractions(self, fake_completion_cls, make_turn) -> None:
        replies = {"TONE:": "TONE: excited\nINTENSITY: 80%\nURGENCY: 15 %"}
        extractor = ContextExtractor(fake_completion_cls(replies))

        outcome = await extractor.extract(make_turn())
        tone = outcome.context.emotional_tone

        assert (tone.intensity, tone.urgency) == (0.8, 0.15)


class TestDescribeFailure:
    """Test suite for describe_failure."""

    def test_timeout(self) -> None:
        assert describe_failure(TimeoutError(), 2.0) == "timed out after 2.0s"
        assert describe_failure(TimeoutError()) == "timed out"

    def test_exception_with_and_without_message(self) -> None:
        assert describe_failure(ValueError("bad")) == "ValueError: bad"
        assert describe_failure(KeyError()) == "KeyError"
