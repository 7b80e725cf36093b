"""
LLM Layer.

Shapes requests for prompt-cache reuse and talks to the inference endpoint
through LiteLLM (provider-agnostic):

    CacheAwareRequestBuilder.build()  ->  CacheableRequest (system / tools / history segments)
                                              ↓
    InferenceClient.complete()        ->  InferenceResponse (content blocks, stop reason, usage)
"""

from agentbridge.errors import LLMError
from agentbridge.llm.cache import CacheableRequest, CacheAwareRequestBuilder, CacheStats
from agentbridge.llm.inference import InferenceClient
from agentbridge.llm.models import (
    ImageBlock,
    InferenceResponse,
    Message,
    TextBlock,
    ThinkingBlock,
    TokenUsage,
    ToolResultBlock,
    ToolUseBlock,
)

__all__ = [
    "CacheAwareRequestBuilder",
    "CacheStats",
    "CacheableRequest",
    "ImageBlock",
    "InferenceClient",
    "InferenceResponse",
    "LLMError",
    "Message",
    "TextBlock",
    "ThinkingBlock",
    "TokenUsage",
    "ToolResultBlock",
    "ToolUseBlock",
]
