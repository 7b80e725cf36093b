"""Unit tests for stream event serialization."""

import json

from agentbridge.agent.events import (
    HEARTBEAT_FRAME,
    DoneEvent,
    ErrorEvent,
    HeartbeatEvent,
    TextEvent,
    TokenUsageSummary,
    ToolCallRecord,
    ToolEvent,
    encode_sse,
)


def _payload(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


def test_text_frame():
    assert _payload(encode_sse(TextEvent(content="Hello"))) == {"type": "text", "content": "Hello"}


def test_fields_are_camel_case_and_nulls_dropped():
    payload = _payload(encode_sse(ToolEvent(name="github__search", param_summary='q="bug"')))

    assert payload == {"type": "tool", "name": "github__search", "status": "start", "paramSummary": 'q="bug"'}


def test_done_frame():
    event = DoneEvent(
        response="All good.",
        tool_calls=[ToolCallRecord(name="github__search", input={"q": "bug"})],
        iterations=2,
        token_usage=TokenUsageSummary(input_tokens=10, output_tokens=5, total=15, cache_hits=3),
        failed_servers=["rootly"],
    )

    payload = _payload(encode_sse(event))

    assert payload["type"] == "done"
    assert payload["toolCalls"] == [{"name": "github__search", "input": {"q": "bug"}}]
    assert payload["tokenUsage"]["cacheHits"] == 3
    assert payload["failedServers"] == ["rootly"]


def test_error_frame():
    assert _payload(encode_sse(ErrorEvent(message="boom"))) == {"type": "error", "message": "boom"}


def test_heartbeat_is_comment():
    assert encode_sse(HeartbeatEvent()) == HEARTBEAT_FRAME
    assert HEARTBEAT_FRAME.startswith(":")


def test_non_ascii_kept():
    assert "café" in encode_sse(TextEvent(content="café"))
