"""
Observability helpers.

One-line structured log records for the events the runtime reports: server
connection state changes, routing decisions, model request/response
summaries and tool calls. Everything here only logs; nothing feeds back
into control flow.
"""

from typing import Any

from agentbridge.config.logging import get_logger

logger = get_logger("observability")

_MAX_PREVIEW = 500


def _truncate(value: Any, limit: int = _MAX_PREVIEW) -> str:
    text = value if isinstance(value, str) else repr(value)
    return text if len(text) <= limit else f"{text[:limit]}... ({len(text)} chars)"


def log_connection(
    server_id: str,
    state: str,
    url: str | None = None,
    transport: str | None = None,
    error: str | None = None,
) -> None:
    """Report a tool server connection state transition."""
    parts = [f"[MCP] {server_id}: {state}"]
    if transport:
        parts.append(f"transport={transport}")
    if url:
        parts.append(f"url={url}")
    if error:
        parts.append(f"error={error}")
    line = " ".join(parts)
    if state == "failed":
        logger.warning(line)
    else:
        logger.info(line)


def log_routing(decision: Any) -> None:
    """Report a model routing decision (a RoutingDecision)."""
    score = "n/a" if decision.complexity_score is None else f"{decision.complexity_score:.1f}"
    logger.info(
        f"[Router] tier={decision.chosen_model} model={decision.model_id} "
        f"rule={decision.rule_name} score={score} "
        f"cost_delta={decision.estimated_cost_delta:+.0%} reason={decision.reason!r}"
    )


def log_ai_request(
    model: str,
    message_count: int,
    tool_count: int,
    max_tokens: int,
    thinking: bool,
    iteration: int,
) -> None:
    logger.info(
        f"[AI] -> {model} iteration={iteration} messages={message_count} "
        f"tools={tool_count} max_tokens={max_tokens} thinking={thinking}"
    )


def log_ai_response(
    model: str,
    duration_ms: float,
    input_tokens: int,
    output_tokens: int,
    cache_read_tokens: int,
    text_length: int,
    tool_call_count: int,
) -> None:
    logger.info(
        f"[AI] <- {model} {duration_ms:.0f}ms in={input_tokens} out={output_tokens} "
        f"cache_read={cache_read_tokens} text={text_length} chars tool_calls={tool_call_count}"
    )


def log_tool_call(server_id: str, tool_name: str, arguments: dict[str, Any] | None = None) -> None:
    if arguments is not None:
        logger.info(f"[MCP] call {server_id}/{tool_name} args={_truncate(arguments)}")
    else:
        logger.info(f"[MCP] call {server_id}/{tool_name}")


def log_tool_result(
    server_id: str,
    tool_name: str,
    success: bool,
    duration_ms: float,
    error: str | None = None,
    result: Any = None,
) -> None:
    status = "ok" if success else "error"
    line = f"[MCP] result {server_id}/{tool_name} {status} {duration_ms:.0f}ms"
    if error:
        line += f" error={error}"
    if result is not None:
        line += f" result={_truncate(result)}"
    if success:
        logger.info(line)
    else:
        logger.warning(line)


def log_tool_summary(executions: list[dict[str, Any]]) -> None:
    """Summarize every tool executed during one loop."""
    if not executions:
        return
    ok = sum(1 for e in executions if e["success"])
    total_ms = sum(e["duration_ms"] for e in executions)
    names = ", ".join(e["name"] for e in executions)
    logger.info(f"[MCP] {ok}/{len(executions)} tool calls succeeded in {total_ms:.0f}ms: {names}")
