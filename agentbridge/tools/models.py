"""
Data structures for tool discovery, invocation and filtering.

- ToolDescriptor: one callable tool, normalized and namespaced by server id
- ToolServerConnection: per-request record of one server connection attempt
- ToolExecutionResult: the outcome of a single tool call
- FilterStrategy / FilterResult: input and output of the relevance filter
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

QUALIFIED_NAME_SEPARATOR = "__"


def qualify_tool_name(server_id: str, tool_name: str) -> str:
    """Build the `{server_id}__{tool_name}` name exposed to the model."""
    return f"{server_id}{QUALIFIED_NAME_SEPARATOR}{tool_name}"


def split_qualified_name(qualified_name: str) -> tuple[str, str]:
    """
    Recover (server_id, tool_name) from a qualified name.

    Only the first separator splits; the tool part may itself contain "__".

    Raises:
        ValueError: If the name carries no server prefix
    """
    server_id, sep, tool_name = qualified_name.partition(QUALIFIED_NAME_SEPARATOR)
    if not sep or not server_id or not tool_name:
        raise ValueError(f"Not a qualified tool name: {qualified_name!r}")
    return server_id, tool_name


class ToolDescriptor(BaseModel):
    """Provider-neutral description of one tool. Immutable for the connection's lifetime."""

    qualified_name: str = Field(description="{server_id}__{tool_name}, unique within a session")
    name: str = Field(description="Tool name as the server knows it")
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    categories: frozenset[str] = Field(default_factory=frozenset)
    source_server: str

    model_config = ConfigDict(frozen=True)


class TransportKind(str, Enum):
    SSE = "sse"
    HTTP = "http"
    STDIO = "stdio"


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


class ToolServerConnection(BaseModel):
    """Bookkeeping for one server connection owned by a single request's connector."""

    server_id: str
    transport: TransportKind
    endpoint: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    env: dict[str, str] = Field(default_factory=dict)
    state: ConnectionState = ConnectionState.CONNECTING
    error: str | None = None
    tool_count: int = 0


class ToolExecutionResult(BaseModel):
    """Outcome of one tool call; consumed immediately to build a tool_result block."""

    success: bool
    data: Any = None
    error: str | None = None
    duration_ms: float = 0.0

    def to_content(self) -> str:
        """
        Render as tool_result content.

        Successful payloads are JSON-encoded so structured data survives the
        trip back to the model; failures become "Error: <message>".
        """
        if self.success:
            return json.dumps(self.data, default=str)
        return f"Error: {self.error}"


class FilterStrategy(BaseModel):
    """Per-request instructions for the relevance filter. Never persisted."""

    query: str = ""
    priority_categories: list[str] = Field(default_factory=list)
    max_tools: int | None = Field(default=40, ge=0)
    agent_id: str | None = None
    user_id: str | None = None
    force_include: list[str] = Field(
        default_factory=list,
        description="Qualified names that bypass scoring (still counted against max_tools)",
    )


class FilterMetadata(BaseModel):
    total_available: int
    loaded: int
    filtered: int
    estimated_tokens_saved: int
    categories: list[str] = Field(default_factory=list)


class FilterResult(BaseModel):
    selected: list[ToolDescriptor]
    metadata: FilterMetadata


class ToolUsageStats(BaseModel):
    """Historical usage of one tool for one user, supplied by a usage-statistics provider."""

    qualified_name: str
    usage_count: int = 0
    success_count: int = 0
    last_used: datetime | None = None
    avg_duration_ms: float = 0.0
