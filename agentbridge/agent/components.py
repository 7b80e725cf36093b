"""
Agent component factory.

Centralises the construction of the agent runtime from settings so the CLI,
the HTTP server and tests wire things the same way. Process-wide pieces
(router, usage statistics, server map) are built once; the connector and
the loop are built fresh for every request.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping

from agentbridge.agent.loop import AgentLoop
from agentbridge.config.settings import Settings
from agentbridge.llm.cache import CacheAwareRequestBuilder
from agentbridge.llm.inference import InferenceClient
from agentbridge.routing.config import routing_config_from_settings
from agentbridge.routing.router import ModelRouter
from agentbridge.tools.config import ServerConfig, load_server_map
from agentbridge.tools.connector import AdapterFactory, ToolConnector
from agentbridge.tools.filter import ToolRelevanceFilter
from agentbridge.tools.optimizer import TokenBudget
from agentbridge.tools.usage import InMemoryUsageStats, UsageStatsProvider


class AgentComponents:
    """
    Factory for building agent loops from settings.

    Example::

        components = AgentComponents(settings)
        loop = components.create_loop()
        async for event in loop.run(ChatRequest(message="Any open incidents?")):
            print(encode_sse(event), end="")

    Args:
        settings: Root settings
        server_map: Tool server map; loaded from settings.tools.servers_file when omitted
        inference: Model client override (tests inject mocks)
        adapter_factory: Tool adapter override (tests inject fakes)
        usage_stats: Usage-statistics provider; in-memory when omitted
    """

    def __init__(
        self,
        settings: Settings,
        server_map: Mapping[str, ServerConfig] | None = None,
        inference: InferenceClient | None = None,
        adapter_factory: AdapterFactory | None = None,
        usage_stats: UsageStatsProvider | None = None,
    ):
        self.settings = settings
        if server_map is None:
            server_map = load_server_map(settings.tools.servers_file)
        self.server_map = dict(server_map)
        self.inference = inference or InferenceClient(settings.llm)
        self.adapter_factory = adapter_factory
        self.usage_stats = usage_stats if usage_stats is not None else InMemoryUsageStats()
        self.router = ModelRouter(routing_config_from_settings(settings.routing), settings.llm)
        self.builder = CacheAwareRequestBuilder(caching_enabled=settings.llm.prompt_caching)
        self.tool_filter = ToolRelevanceFilter(
            usage_stats=self.usage_stats,
            schema_token_cost=settings.tools.schema_token_cost,
        )
        # Loaded once at startup; falls back to a character estimate when offline
        self.token_budget = TokenBudget()
        # Cleanup tasks of loops whose consumer disconnected, held until they finish
        self.background_tasks: set[asyncio.Task] = set()

    def create_connector(self) -> ToolConnector:
        """A new connector; one per request, never shared."""
        return ToolConnector(
            self.server_map,
            connect_timeout=self.settings.tools.connect_timeout,
            adapter_factory=self.adapter_factory,
        )

    def create_loop(self) -> AgentLoop:
        """A new agent loop with its own connector."""
        return AgentLoop(
            settings=self.settings,
            inference=self.inference,
            connector=self.create_connector(),
            router=self.router,
            builder=self.builder,
            tool_filter=self.tool_filter,
            usage_stats=self.usage_stats,
            token_budget=self.token_budget,
            background_tasks=self.background_tasks,
        )
