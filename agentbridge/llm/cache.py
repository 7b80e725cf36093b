"""
Cache-aware request assembly.

A request is built from three segments that change at different rates:

    system prompt   rarely           marked as a cache boundary
    tool list       per filter run   last tool marked (caches the whole list)
    history         every turn       marked on the message before the newest user turn

The segments are kept separate on CacheableRequest so the caching contract
can be checked without rendering a provider payload. to_litellm_kwargs()
renders the OpenAI-format payload LiteLLM expects, placing `cache_control`
markers where the segments say. When caching is off the payload carries
the same content with no markers.
"""

import json
from typing import Any

import litellm
from pydantic import BaseModel, Field

from agentbridge.config.logging import get_logger
from agentbridge.llm.models import (
    ImageBlock,
    Message,
    TextBlock,
    ThinkingBlock,
    TokenUsage,
    ToolResultBlock,
)
from agentbridge.tools.models import ToolDescriptor

logger = get_logger(__name__)

EPHEMERAL = {"type": "ephemeral"}

# Reading from cache is billed at 10% of normal input tokens
CACHE_READ_SAVINGS = 0.9


def model_supports_caching(model: str) -> bool:
    """Ask LiteLLM whether the model accepts cache_control markers."""
    try:
        return bool(litellm.supports_prompt_caching(model=model))
    except Exception as e:
        logger.debug(f"Could not determine prompt caching support for {model}: {e}")
        return False


def _render_tool(tool: ToolDescriptor, cached: bool) -> dict[str, Any]:
    rendered: dict[str, Any] = {
        "type": "function",
        "function": {
            "name": tool.qualified_name,
            "description": tool.description,
            "parameters": tool.input_schema,
        },
    }
    if cached:
        rendered["cache_control"] = EPHEMERAL
    return rendered


def _render_user(message: Message) -> list[dict[str, Any]]:
    """A user turn becomes one "tool" message per tool result, then the user content (if any)."""
    rendered: list[dict[str, Any]] = []
    parts: list[dict[str, Any]] = []
    for block in message.blocks:
        if isinstance(block, ToolResultBlock):
            rendered.append({"role": "tool", "tool_call_id": block.tool_use_id, "content": block.content})
        elif isinstance(block, TextBlock):
            parts.append({"type": "text", "text": block.text})
        elif isinstance(block, ImageBlock):
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{block.media_type};base64,{block.data}"},
            })
    if parts:
        if isinstance(message.content, str):
            rendered.append({"role": "user", "content": message.content})
        else:
            rendered.append({"role": "user", "content": parts})
    return rendered


def _render_assistant(message: Message) -> dict[str, Any]:
    text = message.text()
    tool_uses = message.tool_use_blocks()
    rendered: dict[str, Any] = {"role": "assistant", "content": text or None}
    if tool_uses:
        rendered["tool_calls"] = [
            {
                "id": block.id,
                "type": "function",
                "function": {"name": block.name, "arguments": json.dumps(block.input)},
            }
            for block in tool_uses
        ]
    thinking = [b for b in message.blocks if isinstance(b, ThinkingBlock)]
    if thinking:
        # Extended thinking requires prior thinking blocks to be echoed back with tool turns
        rendered["thinking_blocks"] = [
            {"type": "thinking", "thinking": b.thinking, "signature": b.signature}
            for b in thinking
        ]
    return rendered


def _mark(rendered: dict[str, Any]) -> None:
    """Attach a cache marker to the last content part of a rendered message."""
    content = rendered.get("content")
    if isinstance(content, str):
        rendered["content"] = [{"type": "text", "text": content, "cache_control": EPHEMERAL}]
    elif isinstance(content, list) and content:
        content[-1] = {**content[-1], "cache_control": EPHEMERAL}
    else:
        # Assistant turns holding only tool calls carry no content part to mark
        rendered["cache_control"] = EPHEMERAL


def render_messages(messages: list[Message], boundary: int | None = None) -> list[dict[str, Any]]:
    """
    Convert conversation messages to LiteLLM's OpenAI-format message list.

    Args:
        messages: Conversation in content-block form
        boundary: Index of the message to mark as the end of the cached history
    """
    rendered: list[dict[str, Any]] = []
    for index, message in enumerate(messages):
        if message.role == "assistant":
            converted = [_render_assistant(message)]
        else:
            converted = _render_user(message)
        if index == boundary and converted:
            _mark(converted[-1])
        rendered.extend(converted)
    return rendered


class CacheableRequest(BaseModel):
    """One outbound model request, split into independently cacheable segments."""

    model: str
    system_segment: str
    tools_segment: list[ToolDescriptor] = Field(default_factory=list)
    messages_segment: list[Message] = Field(default_factory=list)
    max_tokens: int
    thinking_budget: int | None = None
    caching_enabled: bool = True
    system_cached: bool = False
    tools_cached: bool = False
    history_boundary: int | None = Field(
        default=None,
        description="Index in messages_segment of the last cached history message",
    )

    def to_litellm_kwargs(self) -> dict[str, Any]:
        """Render the request as keyword arguments for litellm.acompletion()."""
        if self.system_cached:
            system: dict[str, Any] = {
                "role": "system",
                "content": [{"type": "text", "text": self.system_segment, "cache_control": EPHEMERAL}],
            }
        else:
            system = {"role": "system", "content": self.system_segment}

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [system, *render_messages(self.messages_segment, self.history_boundary)],
            "max_tokens": self.max_tokens,
        }
        if self.tools_segment:
            last = len(self.tools_segment) - 1
            kwargs["tools"] = [
                _render_tool(tool, self.tools_cached and i == last)
                for i, tool in enumerate(self.tools_segment)
            ]
        if self.thinking_budget:
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": self.thinking_budget}
        return kwargs


class CacheAwareRequestBuilder:
    """
    Builds CacheableRequests with cache boundaries on all three segments.

    Args:
        caching_enabled: Global switch; off yields identical, unmarked requests
        supports_caching: Predicate on the model string (LiteLLM's capability table by default)
    """

    def __init__(self, caching_enabled: bool = True, supports_caching=model_supports_caching):
        self.caching_enabled = caching_enabled
        self._supports_caching = supports_caching

    @staticmethod
    def history_boundary(messages: list[Message]) -> int | None:
        """Index of the message just before the newest user turn, or None with no prior history."""
        for index in range(len(messages) - 1, -1, -1):
            if messages[index].role == "user":
                return index - 1 if index > 0 else None
        return None

    def build(
        self,
        system_prompt: str,
        tools: list[ToolDescriptor],
        messages: list[Message],
        model: str,
        max_tokens: int,
        thinking_budget: int | None = None,
    ) -> CacheableRequest:
        caching = self.caching_enabled and self._supports_caching(model)
        if self.caching_enabled and not caching:
            logger.debug(f"Prompt caching not supported for {model}; sending uncached request")

        return CacheableRequest(
            model=model,
            system_segment=system_prompt,
            tools_segment=list(tools),
            messages_segment=list(messages),
            max_tokens=max_tokens,
            thinking_budget=thinking_budget,
            caching_enabled=caching,
            system_cached=caching and bool(system_prompt),
            tools_cached=caching and bool(tools),
            history_boundary=self.history_boundary(messages) if caching else None,
        )


class CacheStats:
    """Cache read/write totals across one agent-loop session. Advisory only."""

    def __init__(self):
        self.requests = 0
        self.hits = 0
        self.misses = 0
        self.tokens_read = 0
        self.tokens_written = 0
        self.tokens_saved = 0

    def record(self, usage: TokenUsage) -> None:
        self.requests += 1
        self.tokens_written += usage.cache_creation_tokens
        if usage.cache_read_tokens > 0:
            self.hits += 1
            self.tokens_read += usage.cache_read_tokens
            self.tokens_saved += int(usage.cache_read_tokens * CACHE_READ_SAVINGS)
        else:
            self.misses += 1

    @property
    def hit_rate(self) -> float:
        """Percentage of requests that read from cache."""
        return self.hits / self.requests * 100 if self.requests else 0.0

    def summary(self) -> dict[str, Any]:
        return {
            "requests": self.requests,
            "hits": self.hits,
            "misses": self.misses,
            "tokens_read": self.tokens_read,
            "tokens_written": self.tokens_written,
            "tokens_saved": self.tokens_saved,
            "hit_rate": round(self.hit_rate, 1),
        }
