"""
Model Router.

Picks a model tier for each request. Decision order:

1. Routing disabled -> default tier
2. Explicit user preference -> that tier
3. Per-agent override -> that tier
4. First matching enabled rule, highest priority first
5. Nothing matched -> default tier

Routing never fails a request: any internal error falls back to the default tier.
"""

from pydantic import BaseModel, Field

from agentbridge import observability
from agentbridge.config.logging import get_logger
from agentbridge.config.settings import LLMSettings
from agentbridge.routing.complexity import ComplexityAnalysis, ModelTier, analyze_complexity
from agentbridge.routing.config import (
    TIER_COSTS,
    TIER_ORDER,
    RoutingConfig,
    RoutingContext,
    tier_max,
)

logger = get_logger(__name__)


class RoutingDecision(BaseModel):
    input_model_preference: ModelTier | None = None
    complexity_score: float | None = None
    chosen_model: ModelTier = Field(description="Chosen tier")
    model_id: str = Field(description="LiteLLM model string for the chosen tier")
    reason: str
    rule_name: str
    estimated_cost_delta: float = Field(
        default=0.0,
        description="Relative cost change versus the default tier (-0.67 = 67% cheaper)",
    )
    is_override: bool = False


def estimate_cost_delta(chosen: ModelTier, default: ModelTier) -> float:
    return (TIER_COSTS[chosen] - TIER_COSTS[default]) / TIER_COSTS[default]


class RoutingStats:
    """Running totals of routing decisions, for observability."""

    def __init__(self):
        self.total_requests = 0
        self.tier_counts: dict[str, int] = {tier: 0 for tier in TIER_ORDER}
        self._complexity_sum = 0.0
        self._scored = 0

    def record(self, decision: RoutingDecision) -> None:
        self.total_requests += 1
        self.tier_counts[decision.chosen_model] += 1
        if decision.complexity_score is not None:
            self._complexity_sum += decision.complexity_score
            self._scored += 1

    @property
    def average_complexity(self) -> float:
        return self._complexity_sum / self._scored if self._scored else 0.0

    def distribution(self) -> dict[str, float]:
        """Percentage of decisions per tier."""
        total = self.total_requests or 1
        return {tier: count / total * 100 for tier, count in self.tier_counts.items()}

    def reset(self) -> None:
        self.__init__()


class ModelRouter:
    """
    Chooses the model tier for a request.

    Args:
        config: Thresholds, overrides and rules
        llm_settings: Maps tiers to concrete LiteLLM model strings
    """

    def __init__(self, config: RoutingConfig | None = None, llm_settings: LLMSettings | None = None):
        self.config = config or RoutingConfig()
        self.llm_settings = llm_settings or LLMSettings()
        self.stats = RoutingStats()

    def _decision(
        self,
        tier: ModelTier,
        reason: str,
        rule_name: str,
        context: RoutingContext,
        analysis: ComplexityAnalysis | None = None,
        is_override: bool = False,
    ) -> RoutingDecision:
        return RoutingDecision(
            input_model_preference=context.user_preference,
            complexity_score=analysis.score if analysis else None,
            chosen_model=tier,
            model_id=self.llm_settings.model_for_tier(tier),
            reason=reason,
            rule_name=rule_name,
            estimated_cost_delta=estimate_cost_delta(tier, self.config.default_tier),
            is_override=is_override,
        )

    def _route(self, context: RoutingContext) -> RoutingDecision:
        config = self.config
        if not config.enabled:
            return self._decision(
                config.default_tier, "Routing disabled, using default tier", "disabled", context
            )

        if context.user_preference is not None:
            return self._decision(
                context.user_preference,
                "User explicitly requested this model",
                "user_preference",
                context,
                is_override=True,
            )

        if context.agent_id and context.agent_id in config.agent_overrides:
            return self._decision(
                config.agent_overrides[context.agent_id],
                f"Agent override for {context.agent_id}",
                "agent_override",
                context,
                is_override=True,
            )

        analysis = analyze_complexity(
            context.message,
            context.history,
            context.enabled_tools,
            simple_threshold=config.simple_threshold,
            moderate_threshold=config.moderate_threshold,
        )
        scored = context.model_copy(update={"complexity_score": analysis.score})

        for rule in config.active_rules():
            if not rule.condition(scored):
                continue
            tier = rule.target_tier
            if rule.at_least:
                tier = tier_max(tier, analysis.recommended_tier)
            return self._decision(
                tier, rule.reason, rule.name, context, analysis, is_override=rule.priority > 80
            )

        return self._decision(
            config.default_tier,
            f"No rule matched; {analysis.reasoning}",
            "default",
            context,
            analysis,
        )

    def route(self, context: RoutingContext) -> RoutingDecision:
        """
        Choose a tier for this request. Never raises.

        Returns:
            RoutingDecision carrying the tier, its model string and the reason
        """
        try:
            decision = self._route(context)
        except Exception as e:
            logger.error(f"Routing failed, falling back to default tier: {e}", exc_info=True)
            decision = RoutingDecision(
                input_model_preference=context.user_preference,
                chosen_model=self.config.default_tier,
                model_id=self.llm_settings.model_for_tier(self.config.default_tier),
                reason=f"Routing error, using default tier: {e}",
                rule_name="fallback",
            )

        self.stats.record(decision)
        observability.log_routing(decision)
        return decision
