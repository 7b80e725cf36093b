"""
Inference client: one model call through LiteLLM.

Takes a CacheableRequest, renders it, calls `litellm.acompletion()` under a
bounded timeout and normalizes the OpenAI-format response back into content
blocks. Any failure (network, provider error, timeout, unusable response)
raises LLMError, which the agent loop treats as fatal.

Finish reasons map as:

    stop / end_turn          -> end_turn
    tool_calls / tool_use    -> tool_use
    length / max_tokens      -> max_tokens
    anything else            -> other (or tool_use when tool calls are present)
"""

import asyncio
import json
from typing import Any

from litellm import acompletion

from agentbridge.config.logging import get_logger
from agentbridge.config.settings import LLMSettings
from agentbridge.errors import LLMError
from agentbridge.llm.cache import CacheableRequest
from agentbridge.llm.models import (
    InferenceResponse,
    StopReason,
    TextBlock,
    ThinkingBlock,
    TokenUsage,
    ToolUseBlock,
)

logger = get_logger(__name__)

_FINISH_REASONS: dict[str, StopReason] = {
    "stop": "end_turn",
    "end_turn": "end_turn",
    "tool_calls": "tool_use",
    "tool_use": "tool_use",
    "function_call": "tool_use",
    "length": "max_tokens",
    "max_tokens": "max_tokens",
}


def _int(value: Any) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def parse_usage(usage: Any) -> TokenUsage:
    """
    Read token counters off a LiteLLM usage object.

    Cache counters are optional: Anthropic-style `cache_read_input_tokens` /
    `cache_creation_input_tokens` are preferred, with OpenAI-style
    `prompt_tokens_details.cached_tokens` as the read-side fallback.
    """
    if usage is None:
        return TokenUsage()
    cache_read = _int(getattr(usage, "cache_read_input_tokens", None))
    if not cache_read:
        details = getattr(usage, "prompt_tokens_details", None)
        cache_read = _int(getattr(details, "cached_tokens", None))
    return TokenUsage(
        input_tokens=_int(getattr(usage, "prompt_tokens", None)),
        output_tokens=_int(getattr(usage, "completion_tokens", None)),
        cache_read_tokens=cache_read,
        cache_creation_tokens=_int(getattr(usage, "cache_creation_input_tokens", None)),
    )


def parse_tool_arguments(raw: Any, tool_name: str) -> dict[str, Any]:
    """Decode a tool call's JSON argument string; malformed arguments become {}."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Malformed arguments for tool '{tool_name}': {raw[:200]!r}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _thinking_blocks(message: Any) -> list[ThinkingBlock]:
    blocks = []
    raw_blocks = getattr(message, "thinking_blocks", None)
    if isinstance(raw_blocks, list):
        for raw in raw_blocks:
            if isinstance(raw, dict):
                thinking, signature = raw.get("thinking"), raw.get("signature")
            else:
                thinking, signature = getattr(raw, "thinking", None), getattr(raw, "signature", None)
            if isinstance(thinking, str) and thinking:
                blocks.append(ThinkingBlock(
                    thinking=thinking,
                    signature=signature if isinstance(signature, str) else None,
                ))
    if not blocks:
        reasoning = getattr(message, "reasoning_content", None)
        if isinstance(reasoning, str) and reasoning:
            blocks.append(ThinkingBlock(thinking=reasoning))
    return blocks


def parse_response(response: Any) -> InferenceResponse:
    """
    Normalize a LiteLLM ModelResponse.

    Raises:
        LLMError: If the response carries no choices
    """
    choices = getattr(response, "choices", None)
    if not choices:
        raise LLMError("Model response contained no choices")
    choice = choices[0]
    message = choice.message

    content: list[Any] = list(_thinking_blocks(message))
    text = getattr(message, "content", None)
    if isinstance(text, str) and text:
        content.append(TextBlock(text=text))

    tool_calls = getattr(message, "tool_calls", None) or []
    for call in tool_calls:
        name = call.function.name
        content.append(ToolUseBlock(
            id=call.id,
            name=name,
            input=parse_tool_arguments(call.function.arguments, name),
        ))

    finish_reason = getattr(choice, "finish_reason", None)
    stop_reason: StopReason = "other"
    if isinstance(finish_reason, str):
        stop_reason = _FINISH_REASONS.get(finish_reason, "other")
    if stop_reason == "other":
        stop_reason = "tool_use" if tool_calls else "end_turn"

    model = getattr(response, "model", "")
    return InferenceResponse(
        content=content,
        stop_reason=stop_reason,
        usage=parse_usage(getattr(response, "usage", None)),
        model=model if isinstance(model, str) else "",
    )


class InferenceClient:
    """
    Calls the inference endpoint for one CacheableRequest.

    Args:
        settings: API key, temperature and the per-call timeout
    """

    def __init__(self, settings: LLMSettings):
        self._settings = settings

    async def complete(self, request: CacheableRequest) -> InferenceResponse:
        """
        Run one model call.

        Raises:
            LLMError: On API failure, timeout or an unusable response
        """
        call_kwargs = request.to_litellm_kwargs()
        if self._settings.api_key:
            call_kwargs["api_key"] = self._settings.api_key
        # Extended thinking rejects a custom temperature
        if self._settings.temperature is not None and not request.thinking_budget:
            call_kwargs["temperature"] = self._settings.temperature

        timeout = self._settings.request_timeout
        try:
            response = await asyncio.wait_for(acompletion(**call_kwargs), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise LLMError(f"LLM API call timed out after {timeout:.0f}s", cause=e) from e
        except Exception as e:
            raise LLMError(f"LLM API call failed: {e}", cause=e) from e

        try:
            return parse_response(response)
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(f"Malformed LLM response: {e}", cause=e) from e
