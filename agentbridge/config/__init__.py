"""Configuration: pydantic settings and logging setup."""

from agentbridge.config.settings import (
    AgentSettings,
    LLMSettings,
    RoutingSettings,
    ServerSettings,
    Settings,
    ToolSettings,
    get_settings,
    load_settings,
)

__all__ = [
    "AgentSettings",
    "LLMSettings",
    "RoutingSettings",
    "ServerSettings",
    "Settings",
    "ToolSettings",
    "get_settings",
    "load_settings",
]
