"""
Agent Layer.

The turn-taking loop that drives the model, runs the tools it asks for and
streams everything back to the caller:

    ChatRequest  ->  AgentLoop.run()  ->  text / tool / status ... events  ->  done | error
                         ↓
            ToolConnector, ToolRelevanceFilter, ModelRouter,
            CacheAwareRequestBuilder, InferenceClient
"""

from agentbridge.agent.components import AgentComponents
from agentbridge.agent.events import (
    DoneEvent,
    ErrorEvent,
    HeartbeatEvent,
    StreamEvent,
    TextEvent,
    ToolEvent,
    encode_sse,
)
from agentbridge.agent.loop import AgentLoop, ChatRequest, FileAttachment, summarize_tool_input
from agentbridge.agent.presets import AGENT_PRESETS, AgentPreset, default_strategy

__all__ = [
    "AGENT_PRESETS",
    "AgentComponents",
    "AgentLoop",
    "AgentPreset",
    "ChatRequest",
    "DoneEvent",
    "ErrorEvent",
    "FileAttachment",
    "HeartbeatEvent",
    "StreamEvent",
    "TextEvent",
    "ToolEvent",
    "default_strategy",
    "encode_sse",
    "summarize_tool_input",
]
