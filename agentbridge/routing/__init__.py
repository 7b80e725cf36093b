"""
Model routing: complexity scoring and tier selection.

    analyze_complexity(message)  ->  0-100 score and recommended tier
                                        ↓
    ModelRouter.route(context)   ->  RoutingDecision (tier, model string, reason)
"""

from agentbridge.routing.complexity import ComplexityAnalysis, ModelTier, analyze_complexity
from agentbridge.routing.config import (
    RoutingConfig,
    RoutingContext,
    RoutingRule,
    get_routing_config,
    routing_config_from_settings,
)
from agentbridge.routing.router import ModelRouter, RoutingDecision, RoutingStats

__all__ = [
    "ComplexityAnalysis",
    "ModelRouter",
    "ModelTier",
    "RoutingConfig",
    "RoutingContext",
    "RoutingDecision",
    "RoutingRule",
    "RoutingStats",
    "analyze_complexity",
    "get_routing_config",
    "routing_config_from_settings",
]
