"""
Unit tests for query complexity scoring.

Tests cover:
- Individual factor scorers
- Band boundaries
- End-to-end analysis of simple and moderate queries
"""

import pytest

from agentbridge.routing.complexity import (
    analyze_complexity,
    level_for_score,
    score_conversation_length,
    score_message_length,
    score_tool_usage,
)

MODERATE_QUERY = (
    "Investigate and analyze the database performance regression step by step, "
    "first check the metrics dashboard then correlate latency trends across "
    "microservices and write code to optimize the query"
)


class TestFactorScorers:
    @pytest.mark.parametrize(
        "length,expected",
        [(10, 10), (49, 10), (50, 20), (149, 20), (150, 40), (299, 40), (300, 60), (499, 60), (500, 80)],
    )
    def test_message_length_bands(self, length, expected):
        assert score_message_length("x" * length) == expected

    @pytest.mark.parametrize("turns,expected", [(0, 0), (1, 0), (2, 10), (5, 20), (10, 30), (20, 40)])
    def test_conversation_length_bands(self, turns, expected):
        assert score_conversation_length([None] * turns) == expected

    def test_tool_usage_is_capped(self):
        assert score_tool_usage("query the logs in coralogix and jira", ["a"] * 10) == 50

    def test_tool_usage_counts_enabled_tools(self):
        assert score_tool_usage("hello", ["a", "b"]) == 10


class TestLevelForScore:
    def test_boundaries_are_inclusive(self):
        assert level_for_score(30) == ("simple", "cheap")
        assert level_for_score(30.5) == ("moderate", "balanced")
        assert level_for_score(70) == ("moderate", "balanced")
        assert level_for_score(70.5) == ("complex", "capable")

    def test_custom_thresholds(self):
        assert level_for_score(35, simple_threshold=40, moderate_threshold=80) == ("simple", "cheap")


class TestAnalyzeComplexity:
    def test_simple_question(self):
        analysis = analyze_complexity("What is the capital of France?")

        assert analysis.score <= 30
        assert analysis.level == "simple"
        assert analysis.recommended_tier == "cheap"
        assert analysis.reasoning.startswith("Simple query")

    def test_moderate_multi_step_query(self):
        analysis = analyze_complexity(MODERATE_QUERY)

        assert 30 < analysis.score <= 70
        assert analysis.level == "moderate"
        assert analysis.factors.technical_depth == 100
        assert analysis.factors.multi_step == 90
        assert "high technical depth" in analysis.reasoning

    def test_score_stays_within_bounds(self):
        message = (MODERATE_QUERY + " implement refactor generate develop comprehensive workflow ") * 5

        analysis = analyze_complexity(message, history=[None] * 30, enabled_tools=["t"] * 20)

        assert 0 <= analysis.score <= 100
        assert analysis.level == "complex"

    def test_history_only_counts_turns(self):
        short = analyze_complexity("hi", history=[])
        long = analyze_complexity("hi", history=[{"role": "user"}] * 25)

        assert long.score - short.score == pytest.approx(40 * 0.05)
