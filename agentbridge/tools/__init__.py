"""
Tool Integration Layer.

Discovers tools on remote MCP servers, namespaces them by server id, picks
the subset relevant to a request and invokes them on the model's behalf:

    load_server_map(".mcp.json")   ->  server id -> transport config
                                          ↓
    ToolConnector.connect(ids)     ->  ToolDescriptor list (+ failed server ids)
                                          ↓
    ToolRelevanceFilter.filter()   ->  bounded, ranked subset for the model
                                          ↓
    ToolConnector.invoke(name)     ->  ToolExecutionResult
"""

from agentbridge.tools.config import (
    HttpServerConfig,
    ServerConfig,
    SseServerConfig,
    StdioServerConfig,
    UserServerConfig,
    load_server_map,
)
from agentbridge.tools.connector import ConnectResult, ToolConnector
from agentbridge.tools.filter import ToolRelevanceFilter
from agentbridge.tools.models import (
    FilterResult,
    FilterStrategy,
    ToolDescriptor,
    ToolExecutionResult,
)
from agentbridge.tools.usage import InMemoryUsageStats, UsageStatsProvider

__all__ = [
    "ConnectResult",
    "FilterResult",
    "FilterStrategy",
    "HttpServerConfig",
    "InMemoryUsageStats",
    "ServerConfig",
    "SseServerConfig",
    "StdioServerConfig",
    "ToolConnector",
    "ToolDescriptor",
    "ToolExecutionResult",
    "ToolRelevanceFilter",
    "UsageStatsProvider",
    "UserServerConfig",
    "load_server_map",
]
