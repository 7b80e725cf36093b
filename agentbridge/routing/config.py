"""
Model routing configuration.

Defines the tier thresholds, the per-agent tier overrides and the
priority-ordered rule set evaluated by the router. Named profiles adjust the
defaults for an environment:

    development        default tier cheap
    production         default tier balanced
    cost_optimized     wider cheap band (<= 40), balanced up to 80, default cheap
    quality_optimized  narrow cheap band (<= 20), balanced up to 60, default balanced
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import BaseModel, Field

from agentbridge.config.settings import RoutingSettings
from agentbridge.routing.complexity import ModelTier

TIER_ORDER: tuple[ModelTier, ...] = ("cheap", "balanced", "capable")

# Relative cost per token, cheap tier as baseline
TIER_COSTS: dict[ModelTier, float] = {
    "cheap": 1.0,
    "balanced": 3.0,
    "capable": 15.0,
}

CRITICAL_AGENTS = frozenset({"incident", "security", "quota"})
COMPLEX_SCORE = 85
MULTI_TOOL_COUNT = 3
LONG_CONVERSATION_TURNS = 10
SHORT_MESSAGE_CHARS = 100

_CODE_GENERATION = re.compile(
    r"write.*code|implement|refactor|generate|build.*component", re.IGNORECASE
)


class RoutingContext(BaseModel):
    """Everything the router looks at for one decision."""

    message: str
    history: list[Any] = Field(default_factory=list)
    enabled_tools: list[str] = Field(default_factory=list)
    agent_id: str | None = None
    user_preference: ModelTier | None = None
    complexity_score: float | None = Field(
        default=None, description="Filled in by the router before rules are evaluated"
    )


@dataclass(frozen=True)
class RoutingRule:
    """
    One named routing rule.

    When `at_least` is set, target_tier is a floor: the rule picks the higher
    of target_tier and the tier the complexity band recommends.
    """

    name: str
    priority: int
    condition: Callable[[RoutingContext], bool]
    target_tier: ModelTier
    reason: str
    enabled: bool = True
    at_least: bool = False


def tier_max(a: ModelTier, b: ModelTier) -> ModelTier:
    return a if TIER_ORDER.index(a) >= TIER_ORDER.index(b) else b


def default_rules(simple_threshold: float = 30) -> list[RoutingRule]:
    """The standard rule set, highest priority first."""
    return [
        RoutingRule(
            name="critical_agents",
            priority=90,
            condition=lambda ctx: ctx.agent_id in CRITICAL_AGENTS,
            target_tier="balanced",
            reason="Critical agent requires reliable model",
            at_least=True,
        ),
        RoutingRule(
            name="simple_query",
            priority=80,
            condition=lambda ctx: (
                ctx.complexity_score is not None and ctx.complexity_score <= simple_threshold
            ),
            target_tier="cheap",
            reason="Simple query suitable for the cheap tier",
        ),
        RoutingRule(
            name="complex_query",
            priority=75,
            condition=lambda ctx: (
                ctx.complexity_score is not None and ctx.complexity_score >= COMPLEX_SCORE
            ),
            target_tier="capable",
            reason="Highly complex query requires the most capable tier",
        ),
        RoutingRule(
            name="code_generation",
            priority=70,
            condition=lambda ctx: _CODE_GENERATION.search(ctx.message) is not None,
            target_tier="balanced",
            reason="Code generation task",
        ),
        RoutingRule(
            name="multi_tool",
            priority=60,
            condition=lambda ctx: len(ctx.enabled_tools) >= MULTI_TOOL_COUNT,
            target_tier="balanced",
            reason="Multiple tools enabled, needs orchestration capability",
        ),
        RoutingRule(
            name="long_conversation",
            priority=50,
            condition=lambda ctx: len(ctx.history) >= LONG_CONVERSATION_TURNS,
            target_tier="balanced",
            reason="Long conversation requires strong context retention",
        ),
        RoutingRule(
            name="default_simple",
            priority=10,
            condition=lambda ctx: (
                len(ctx.message) < SHORT_MESSAGE_CHARS and not ctx.enabled_tools
            ),
            target_tier="cheap",
            reason="Short query with no tools, suitable for the cheap tier",
        ),
    ]


@dataclass
class RoutingConfig:
    enabled: bool = True
    default_tier: ModelTier = "balanced"
    simple_threshold: float = 30
    moderate_threshold: float = 70
    agent_overrides: dict[str, ModelTier] = field(default_factory=lambda: {
        "ui-ux": "cheap",
        "incident": "balanced",
        "security": "capable",
        "quota": "balanced",
    })
    rules: list[RoutingRule] = field(default_factory=default_rules)

    def active_rules(self) -> list[RoutingRule]:
        """Enabled rules, highest priority first (stable for equal priorities)."""
        return sorted(
            (rule for rule in self.rules if rule.enabled),
            key=lambda rule: -rule.priority,
        )


PROFILES: dict[str, dict[str, Any]] = {
    "default": {},
    "development": {"default_tier": "cheap"},
    "production": {"default_tier": "balanced"},
    "cost_optimized": {"default_tier": "cheap", "simple_threshold": 40, "moderate_threshold": 80},
    "quality_optimized": {
        "default_tier": "balanced", "simple_threshold": 20, "moderate_threshold": 60,
    },
}


def get_routing_config(profile: str = "default", **overrides: Any) -> RoutingConfig:
    """
    Build a routing config for a named profile.

    Keyword overrides whose value is None are ignored, so settings fields that
    were left unset fall through to the profile.
    """
    if profile not in PROFILES:
        raise ValueError(f"Unknown routing profile: {profile!r}")
    values = {**PROFILES[profile], **{k: v for k, v in overrides.items() if v is not None}}
    config = replace(RoutingConfig(), **values)
    if "simple_threshold" in values and "rules" not in overrides:
        config.rules = default_rules(config.simple_threshold)
    return config


def routing_config_from_settings(settings: RoutingSettings) -> RoutingConfig:
    return get_routing_config(
        settings.profile,
        enabled=settings.enabled,
        default_tier=settings.default_tier,
        simple_threshold=settings.simple_threshold,
        moderate_threshold=settings.moderate_threshold,
    )
