"""
Stream events emitted by the agent loop.

Each event serializes to one Server-Sent Events frame:

    data: {"type": "text", "content": "..."}\n\n

Field names on the wire are camelCase (paramSummary, toolCalls, ...). The
heartbeat has no payload and is sent as an SSE comment line so clients
ignore it:

    : heartbeat\n\n
"""

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

HEARTBEAT_FRAME = ": heartbeat\n\n"


class _Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TextEvent(_Event):
    type: Literal["text"] = "text"
    content: str


class ToolEvent(_Event):
    """A tool call; `start` when the model requests it, `end` once it has run."""

    type: Literal["tool"] = "tool"
    name: str
    status: Literal["start", "end"] = "start"
    param_summary: str | None = None
    input: dict[str, Any] | None = Field(default=None, description="Full input, verbose mode only")
    success: bool | None = None
    duration_ms: float | None = None


class ToolResultEvent(_Event):
    """Tool output preview, verbose mode only."""

    type: Literal["tool_result"] = "tool_result"
    name: str
    success: bool
    preview: str


class StatusEvent(_Event):
    type: Literal["status"] = "status"
    status: Literal["thinking", "responding", "tool_calling"]


class SessionEvent(_Event):
    type: Literal["session"] = "session"
    session_id: str
    server_id: str | None = None


class ThinkingEvent(_Event):
    type: Literal["thinking"] = "thinking"
    content: str


class TokenUsageSummary(_Event):
    input_tokens: int = 0
    output_tokens: int = 0
    total: int = 0
    cache_hits: int = 0
    cache_created: int = 0


class ToolCallRecord(_Event):
    name: str
    input: dict[str, Any] | None = None


class DoneEvent(_Event):
    type: Literal["done"] = "done"
    response: str
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    iterations: int
    token_usage: TokenUsageSummary = Field(default_factory=TokenUsageSummary)
    failed_servers: list[str] = Field(default_factory=list)


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    message: str


class HeartbeatEvent(_Event):
    type: Literal["heartbeat"] = "heartbeat"


StreamEvent = (
    TextEvent
    | ToolEvent
    | ToolResultEvent
    | StatusEvent
    | SessionEvent
    | ThinkingEvent
    | DoneEvent
    | ErrorEvent
    | HeartbeatEvent
)


def encode_sse(event: StreamEvent) -> str:
    """Encode one event as an SSE frame."""
    if isinstance(event, HeartbeatEvent):
        return HEARTBEAT_FRAME
    return f"data: {json.dumps(event.to_wire(), ensure_ascii=False)}\n\n"
