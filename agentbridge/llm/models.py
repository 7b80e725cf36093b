"""
Conversation data structures shared by the request builder, inference client and agent loop.

Messages use a provider-neutral content-block shape:
- TextBlock / ImageBlock: user or assistant content
- ToolUseBlock: the model asks for a tool to be run
- ToolResultBlock: the answer to exactly one ToolUseBlock, matched by id
- ThinkingBlock: extended-thinking output (only streamed in verbose mode)

The inference client converts these into LiteLLM's OpenAI-style payload and
back; nothing else in the package sees the wire format.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageBlock(BaseModel):
    type: Literal["image"] = "image"
    media_type: str = Field(description="MIME type, e.g. image/png")
    data: str = Field(description="Base64-encoded image bytes")


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str = Field(description="Qualified tool name: {server_id}__{tool_name}")
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


class ThinkingBlock(BaseModel):
    type: Literal["thinking"] = "thinking"
    thinking: str
    signature: str | None = None


ContentBlock = Annotated[
    TextBlock | ImageBlock | ToolUseBlock | ToolResultBlock | ThinkingBlock,
    Field(discriminator="type"),
]


class Message(BaseModel):
    """
    One conversation turn.

    Content is either a plain string (history loaded from a caller) or an
    ordered list of content blocks.
    """

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]

    model_config = ConfigDict(frozen=True)

    @property
    def blocks(self) -> list[Any]:
        """Content as a list of blocks, wrapping plain strings in a TextBlock."""
        if isinstance(self.content, str):
            return [TextBlock(text=self.content)]
        return list(self.content)

    def tool_use_blocks(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]

    def tool_result_blocks(self) -> list[ToolResultBlock]:
        return [b for b in self.blocks if isinstance(b, ToolResultBlock)]

    def text(self) -> str:
        return "".join(b.text for b in self.blocks if isinstance(b, TextBlock))


class TokenUsage(BaseModel):
    """Token counts for one call, or accumulated across a loop."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cache_read_tokens: int = Field(default=0, ge=0)
    cache_creation_tokens: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
            cache_creation_tokens=self.cache_creation_tokens + other.cache_creation_tokens,
        )


StopReason = Literal["end_turn", "tool_use", "max_tokens", "other"]


class InferenceResponse(BaseModel):
    """Normalized result of one model call."""

    content: list[ContentBlock] = Field(default_factory=list)
    stop_reason: StopReason = "end_turn"
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""

    def tool_use_blocks(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    def thinking_blocks(self) -> list[ThinkingBlock]:
        return [b for b in self.content if isinstance(b, ThinkingBlock)]


__all__ = [
    "ContentBlock",
    "ImageBlock",
    "InferenceResponse",
    "Message",
    "StopReason",
    "TextBlock",
    "ThinkingBlock",
    "TokenUsage",
    "ToolResultBlock",
    "ToolUseBlock",
]
