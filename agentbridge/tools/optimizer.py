"""
Token reduction for content passed back to the model.

Large tool payloads (log dumps, search results) are truncated to a token
budget before they are attached as tool results. Thinking text streamed in
verbose mode gets the same treatment with a smaller budget.

Counting uses tiktoken. When the encoding cannot be loaded (tiktoken fetches
its BPE file on first use, which fails on an offline host) counts fall back
to an estimate of 3.5 characters per token, so a missing tokenizer never
turns a tool result into a failure.
"""

import math
from functools import lru_cache

import tiktoken

from agentbridge.config.logging import get_logger

logger = get_logger(__name__)

MAX_TOOL_RESULT_TOKENS = 4000
MAX_THINKING_TOKENS = 2000
CHARS_PER_TOKEN = 3.5


class TokenBudget:
    """
    Token counting and truncation against one tiktoken encoding.

    The encoding is loaded once, at construction.

    Args:
        encoding_name: Tiktoken encoding name (default: "cl100k_base")
    """

    def __init__(self, encoding_name: str = "cl100k_base"):
        self.encoding_name = encoding_name
        try:
            self._encoding: tiktoken.Encoding | None = tiktoken.get_encoding(encoding_name)
        except Exception as e:
            logger.warning(
                f"Failed to load tiktoken encoding '{encoding_name}': {e}; "
                f"estimating token counts at {CHARS_PER_TOKEN} chars per token"
            )
            self._encoding = None

    def count(self, text: str) -> int:
        if self._encoding is None:
            return math.ceil(len(text) / CHARS_PER_TOKEN)
        return len(self._encoding.encode(text, disallowed_special=()))

    def truncate(self, text: str, max_tokens: int) -> tuple[str, int] | None:
        """Return (truncated text, original token count), or None when text fits."""
        if self._encoding is None:
            original = self.count(text)
            if original <= max_tokens:
                return None
            return text[:int(max_tokens * CHARS_PER_TOKEN)], original

        tokens = self._encoding.encode(text, disallowed_special=())
        if len(tokens) <= max_tokens:
            return None
        return self._encoding.decode(tokens[:max_tokens]), len(tokens)

    def optimize_tool_result(self, result: str, max_tokens: int = MAX_TOOL_RESULT_TOKENS) -> str:
        """
        Truncate a tool result to at most max_tokens tokens.

        Results within budget come back unchanged. Truncated results end with a
        marker naming the original and reduced token counts, so the model knows
        it is looking at partial data.
        """
        truncated = self.truncate(result, max_tokens)
        if truncated is None:
            return result
        text, original = truncated
        logger.debug(f"Tool result truncated from {original} to {max_tokens} tokens")
        return (
            f"{text}\n\n[Truncated: Original {original} tokens -> {max_tokens} tokens "
            f"to reduce API costs]"
        )

    def optimize_thinking(self, thinking: str, max_tokens: int = MAX_THINKING_TOKENS) -> str:
        """Truncate thinking text streamed to the client in verbose mode."""
        truncated = self.truncate(thinking, max_tokens)
        if truncated is None:
            return thinking
        return f"{truncated[0]}\n\n[Thinking truncated for brevity]"


@lru_cache(maxsize=4)
def default_budget(encoding_name: str = "cl100k_base") -> TokenBudget:
    return TokenBudget(encoding_name)
