"""
Tool Relevance Filter.

Bounds the number of tool schemas sent to the model. Every candidate tool
gets an additive score:

    usage       min(40, 2 x usage_count)       from the usage-statistics provider
    query       10 per category shared with the query's detected categories
    priority    10 per category shared with the strategy's priority categories
    recency     10 if used within 7 days, 5 within 30

Tools are sorted by descending score (ties keep discovery order) and cut to
the strategy's cap. Force-included tools skip scoring, go first and count
against the cap.
"""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from agentbridge.config.logging import get_logger
from agentbridge.tools.categories import FALLBACK_PRIORITY, detect_query_categories
from agentbridge.tools.models import (
    FilterMetadata,
    FilterResult,
    FilterStrategy,
    ToolDescriptor,
)
from agentbridge.tools.usage import UsageStatsProvider

logger = get_logger(__name__)

USAGE_WEIGHT = 2
USAGE_CAP = 40
CATEGORY_MATCH_WEIGHT = 10
RECENT_BONUS = 10
STALE_BONUS = 5


class ToolRelevanceFilter:
    """
    Selects a bounded, ranked subset of the connected tools for one request.

    Scoring is deterministic: the same descriptors, strategy and usage
    history always produce the same selection in the same order.

    Args:
        usage_stats: Optional usage-statistics provider; absent history scores zero
        schema_token_cost: Average tokens per tool schema, for the savings estimate
    """

    def __init__(self, usage_stats: UsageStatsProvider | None = None, schema_token_cost: int = 150):
        self.usage_stats = usage_stats
        self.schema_token_cost = schema_token_cost

    def _usage_score(self, descriptor: ToolDescriptor, user_id: str | None, now: datetime) -> int:
        if self.usage_stats is None:
            return 0
        stats = self.usage_stats.get_stats(user_id, descriptor.qualified_name)
        if stats is None:
            return 0

        score = min(USAGE_CAP, stats.usage_count * USAGE_WEIGHT)
        if stats.last_used is not None:
            last_used = stats.last_used
            if last_used.tzinfo is None:
                last_used = last_used.replace(tzinfo=UTC)
            age = now - last_used
            if age < timedelta(days=7):
                score += RECENT_BONUS
            elif age < timedelta(days=30):
                score += STALE_BONUS
        return score

    def _has_history(self, descriptors: Iterable[ToolDescriptor], user_id: str | None) -> bool:
        if self.usage_stats is None:
            return False
        return any(
            self.usage_stats.get_stats(user_id, d.qualified_name) is not None
            for d in descriptors
        )

    def score(
        self,
        descriptor: ToolDescriptor,
        query_categories: set[str],
        priority_categories: set[str],
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> int:
        """Relevance score for one tool; higher is more relevant."""
        now = now or datetime.now(UTC)
        score = self._usage_score(descriptor, user_id, now)
        score += CATEGORY_MATCH_WEIGHT * len(descriptor.categories & query_categories)
        score += CATEGORY_MATCH_WEIGHT * len(descriptor.categories & priority_categories)
        return score

    def filter(
        self,
        descriptors: list[ToolDescriptor],
        connected_server_ids: Iterable[str],
        strategy: FilterStrategy | None = None,
    ) -> FilterResult:
        """
        Select the tools to expose to the model.

        Args:
            descriptors: Every tool discovered for this request, in discovery order
            connected_server_ids: Servers with a live connection; tools from others are dropped
            strategy: Query, priority categories, cap and force-include list
        """
        strategy = strategy or FilterStrategy()
        connected = set(connected_server_ids)
        candidates = [d for d in descriptors if d.source_server in connected]
        total = len(candidates)

        query_categories = set(detect_query_categories(strategy.query)) if strategy.query else set()
        priority_categories = set(strategy.priority_categories)
        if (
            not strategy.query.strip()
            and not priority_categories
            and not self._has_history(candidates, strategy.user_id)
        ):
            # Cold start: nothing to rank by, so lean on general-purpose categories
            priority_categories = {c.value for c in FALLBACK_PRIORITY}

        forced_names = set(strategy.force_include)
        forced = [d for d in candidates if d.qualified_name in forced_names]
        rest = [d for d in candidates if d.qualified_name not in forced_names]

        now = datetime.now(UTC)
        scored = [
            (self.score(d, query_categories, priority_categories, strategy.user_id, now), d)
            for d in rest
        ]
        # sorted() is stable, so equal scores keep discovery order
        ranked = [d for _, d in sorted(scored, key=lambda pair: -pair[0])]
        ordered = forced + ranked

        cap = strategy.max_tools
        if cap is None or cap >= total:
            selected = ordered
        else:
            if len(forced) > cap:
                logger.warning(
                    f"{len(forced)} force-included tools exceed the cap of {cap}; keeping all of them"
                )
            selected = ordered[:max(cap, len(forced))]

        categories: dict[str, None] = {}
        for d in selected:
            for cat in sorted(d.categories):
                categories[cat] = None

        metadata = FilterMetadata(
            total_available=total,
            loaded=len(selected),
            filtered=total - len(selected),
            estimated_tokens_saved=(total - len(selected)) * self.schema_token_cost,
            categories=list(categories),
        )
        logger.info(
            f"Tool filter: {metadata.loaded}/{metadata.total_available} tools loaded "
            f"(~{metadata.estimated_tokens_saved} tokens saved)"
        )
        return FilterResult(selected=selected, metadata=metadata)
