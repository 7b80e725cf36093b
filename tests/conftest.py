"""Shared fixtures."""

import os

# Use litellm's bundled model cost map; its background network fetch races test imports.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import pytest

from agentbridge.config.settings import AgentSettings, LLMSettings, Settings, ToolSettings


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from any local .env and server map."""
    return Settings(
        _env_file=None,
        llm=LLMSettings(api_key="test-key", prompt_caching=True),
        agent=AgentSettings(heartbeat_interval=15.0, max_iterations=20),
        tools=ToolSettings(servers_file=tmp_path / "missing.json"),
    )


@pytest.fixture
def log_tools():
    return [
        {
            "name": "search_logs",
            "description": "Search logs with a query",
            "input_schema": {"type": "object", "properties": {"query": {"type": "string"}}},
        },
        {"name": "list_alerts", "description": "List active alerts"},
    ]
