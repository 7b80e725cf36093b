"""
Query complexity scoring.

Scores a query 0-100 from seven independent factors. Each factor is capped
before weighting so that no single signal can saturate the total:

    factor               raw score                         weight
    message length       10 / 20 / 40 / 60 / 80 by length   0.10
    technical depth      25 per pattern match               0.25
    multi-step           30 per pattern match               0.20
    data analysis        25 per pattern match               0.15
    code generation      30 per pattern match               0.15
    conversation length  0 / 10 / 20 / 30 / 40 by turns     0.05
    tool usage           min(50, 20 x matches + 5 x tools)  0.10
"""

import re
from collections.abc import Sequence
from typing import Any, Literal

from pydantic import BaseModel, Field

ComplexityLevel = Literal["simple", "moderate", "complex"]
ModelTier = Literal["cheap", "balanced", "capable"]


def _compile(*patterns: str) -> list[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


TECHNICAL_PATTERNS = _compile(
    r"architecture",
    r"algorithm",
    r"optimize|optimization",
    r"performance|throughput|latency",
    r"distributed system",
    r"microservice",
    r"kubernetes|k8s",
    r"database|sql|query",
    r"security|vulnerability|cve",
    r"debug|troubleshoot|investigate",
)

MULTI_STEP_PATTERNS = _compile(
    r"analyze and",
    r"investigate and",
    r"compare and",
    r"first.*then",
    r"step by step",
    r"workflow",
    r"process",
    r"multiple",
    r"comprehensive",
)

DATA_ANALYSIS_PATTERNS = _compile(
    r"analyze.*data",
    r"trend|pattern",
    r"correlate|correlation",
    r"aggregate|aggregation",
    r"metric|metrics",
    r"dashboard",
    r"report",
    r"statistics|stats",
    r"time series",
)

CODE_GENERATION_PATTERNS = _compile(
    r"write.*code",
    r"create.*function",
    r"implement",
    r"refactor",
    r"generate",
    r"build.*component",
    r"develop",
)

TOOL_PATTERNS = _compile(
    r"query.*logs",
    r"check.*newrelic|new relic",
    r"coralogix",
    r"jira",
    r"github",
    r"prometheus",
    r"rootly",
    r"incident",
)

FACTOR_WEIGHTS = {
    "message_length": 0.10,
    "technical_depth": 0.25,
    "multi_step": 0.20,
    "data_analysis": 0.15,
    "code_generation": 0.15,
    "conversation_length": 0.05,
    "tool_usage": 0.10,
}

_REASON_LABELS = {
    "message_length": (40, "lengthy query"),
    "technical_depth": (40, "high technical depth"),
    "multi_step": (40, "multi-step reasoning required"),
    "data_analysis": (40, "data analysis needed"),
    "code_generation": (40, "code generation required"),
    "conversation_length": (20, "long conversation context"),
    "tool_usage": (40, "multiple tool integrations"),
}


class ComplexityFactors(BaseModel):
    message_length: float = 0
    technical_depth: float = 0
    multi_step: float = 0
    data_analysis: float = 0
    code_generation: float = 0
    conversation_length: float = 0
    tool_usage: float = 0


class ComplexityAnalysis(BaseModel):
    score: float = Field(ge=0, le=100)
    level: ComplexityLevel
    factors: ComplexityFactors
    reasoning: str
    recommended_tier: ModelTier


def _count(patterns: list[re.Pattern], text: str) -> int:
    return sum(1 for p in patterns if p.search(text))


def score_message_length(message: str) -> float:
    length = len(message)
    if length < 50:
        return 10
    if length < 150:
        return 20
    if length < 300:
        return 40
    if length < 500:
        return 60
    return 80


def score_conversation_length(history: Sequence[Any]) -> float:
    turns = len(history)
    if turns < 2:
        return 0
    if turns < 5:
        return 10
    if turns < 10:
        return 20
    if turns < 20:
        return 30
    return 40


def score_tool_usage(message: str, enabled_tools: Sequence[str]) -> float:
    return min(50, _count(TOOL_PATTERNS, message) * 20 + len(enabled_tools) * 5)


def level_for_score(
    score: float, simple_threshold: float = 30, moderate_threshold: float = 70
) -> tuple[ComplexityLevel, ModelTier]:
    """Map a score to its complexity band and the tier serving that band."""
    if score <= simple_threshold:
        return "simple", "cheap"
    if score <= moderate_threshold:
        return "moderate", "balanced"
    return "complex", "capable"


def _reasoning(factors: ComplexityFactors, score: float, level: ComplexityLevel) -> str:
    values = factors.model_dump()
    reasons = [label for name, (floor, label) in _REASON_LABELS.items() if values[name] > floor]
    if not reasons:
        return f"Simple query (score: {score:.0f})"
    return f"{level.capitalize()} query (score: {score:.0f}): {', '.join(reasons)}"


def analyze_complexity(
    message: str,
    history: Sequence[Any] | None = None,
    enabled_tools: Sequence[str] | None = None,
    simple_threshold: float = 30,
    moderate_threshold: float = 70,
) -> ComplexityAnalysis:
    """
    Analyze how demanding a query is.

    Args:
        message: The newest user message
        history: Prior conversation turns (only the count matters)
        enabled_tools: Names of the tools available to the model
        simple_threshold: Highest score still considered simple
        moderate_threshold: Highest score still considered moderate

    Returns:
        ComplexityAnalysis with the clamped score, its band and the per-factor breakdown
    """
    history = history or []
    enabled_tools = enabled_tools or []

    factors = ComplexityFactors(
        message_length=score_message_length(message),
        technical_depth=min(100, _count(TECHNICAL_PATTERNS, message) * 25),
        multi_step=min(100, _count(MULTI_STEP_PATTERNS, message) * 30),
        data_analysis=min(100, _count(DATA_ANALYSIS_PATTERNS, message) * 25),
        code_generation=min(100, _count(CODE_GENERATION_PATTERNS, message) * 30),
        conversation_length=score_conversation_length(history),
        tool_usage=score_tool_usage(message, enabled_tools),
    )

    values = factors.model_dump()
    score = sum(values[name] * weight for name, weight in FACTOR_WEIGHTS.items())
    score = max(0.0, min(100.0, score))

    level, tier = level_for_score(score, simple_threshold, moderate_threshold)
    return ComplexityAnalysis(
        score=score,
        level=level,
        factors=factors,
        reasoning=_reasoning(factors, score, level),
        recommended_tier=tier,
    )
