"""
Tool usage statistics.

The relevance filter consults a UsageStatsProvider for historical usage, and
the agent loop records every tool execution through the same interface.
Persistence is left to the provider; InMemoryUsageStats keeps everything in
process and is the default.
"""

from datetime import UTC, datetime
from typing import Protocol

from agentbridge.tools.models import ToolUsageStats

ANONYMOUS_USER = "anonymous"


class UsageStatsProvider(Protocol):
    def get_stats(self, user_id: str | None, qualified_name: str) -> ToolUsageStats | None: ...

    def record(
        self,
        user_id: str | None,
        qualified_name: str,
        duration_ms: float,
        success: bool,
        agent_id: str | None = None,
    ) -> None: ...


class InMemoryUsageStats:
    """Usage statistics keyed by (user, qualified tool name), held in memory."""

    def __init__(self) -> None:
        self._stats: dict[tuple[str, str], ToolUsageStats] = {}

    def get_stats(self, user_id: str | None, qualified_name: str) -> ToolUsageStats | None:
        return self._stats.get((user_id or ANONYMOUS_USER, qualified_name))

    def record(
        self,
        user_id: str | None,
        qualified_name: str,
        duration_ms: float,
        success: bool,
        agent_id: str | None = None,
    ) -> None:
        key = (user_id or ANONYMOUS_USER, qualified_name)
        existing = self._stats.get(key) or ToolUsageStats(qualified_name=qualified_name)
        count = existing.usage_count + 1
        self._stats[key] = ToolUsageStats(
            qualified_name=qualified_name,
            usage_count=count,
            success_count=existing.success_count + (1 if success else 0),
            last_used=datetime.now(UTC),
            avg_duration_ms=(existing.avg_duration_ms * existing.usage_count + duration_ms) / count,
        )
