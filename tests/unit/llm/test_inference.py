"""
Unit tests for the inference client.

LiteLLM is patched at agentbridge.llm.inference.acompletion; responses are
MagicMocks shaped like LiteLLM's OpenAI-format ModelResponse.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agentbridge.config.settings import LLMSettings
from agentbridge.errors import LLMError
from agentbridge.llm.cache import CacheAwareRequestBuilder
from agentbridge.llm.inference import InferenceClient, parse_response, parse_tool_arguments, parse_usage
from agentbridge.llm.models import Message, TextBlock, ThinkingBlock, ToolUseBlock


# ---------------------------------------------------------------------------
# Helpers for building mock LiteLLM responses
# ---------------------------------------------------------------------------

def _make_response(
    text: str | None = "Hello",
    tool_calls: list | None = None,
    finish_reason: str = "stop",
    prompt_tokens: int = 100,
    completion_tokens: int = 20,
) -> MagicMock:
    choice = MagicMock()
    choice.message.content = text
    choice.message.tool_calls = tool_calls
    choice.message.thinking_blocks = None
    choice.message.reasoning_content = None
    choice.finish_reason = finish_reason

    response = MagicMock()
    response.choices = [choice]
    response.model = "anthropic/claude-test"
    response.usage.prompt_tokens = prompt_tokens
    response.usage.completion_tokens = completion_tokens
    response.usage.cache_read_input_tokens = 0
    response.usage.cache_creation_input_tokens = 0
    response.usage.prompt_tokens_details = None
    return response


def _make_tool_call(call_id: str, name: str, arguments: dict | str) -> MagicMock:
    call = MagicMock()
    call.id = call_id
    call.function.name = name
    call.function.arguments = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return call


@pytest.fixture
def llm_settings():
    return LLMSettings(api_key="test-key", temperature=0.2, request_timeout=5.0)


@pytest.fixture
def request_():
    return CacheAwareRequestBuilder(caching_enabled=False).build(
        "You are helpful.", [], [Message(role="user", content="hi")], "anthropic/claude-test", 512
    )


class TestParseResponse:
    def test_text_only(self):
        parsed = parse_response(_make_response("Hello there"))

        assert parsed.content == [TextBlock(text="Hello there")]
        assert parsed.stop_reason == "end_turn"
        assert parsed.usage.input_tokens == 100
        assert parsed.model == "anthropic/claude-test"

    def test_tool_calls(self):
        response = _make_response(
            text="Checking.",
            tool_calls=[
                _make_tool_call("call_1", "coralogix__search_logs", {"query": "error"}),
                _make_tool_call("call_2", "github__search_code", {"q": "retry"}),
            ],
            finish_reason="tool_calls",
        )

        parsed = parse_response(response)

        assert parsed.stop_reason == "tool_use"
        assert [b.id for b in parsed.tool_use_blocks()] == ["call_1", "call_2"]
        assert parsed.tool_use_blocks()[0].input == {"query": "error"}
        assert isinstance(parsed.content[0], TextBlock)

    @pytest.mark.parametrize(
        "finish_reason,expected",
        [("stop", "end_turn"), ("length", "max_tokens"), ("tool_calls", "tool_use"), ("weird", "end_turn")],
    )
    def test_finish_reasons(self, finish_reason, expected):
        assert parse_response(_make_response(finish_reason=finish_reason)).stop_reason == expected

    def test_unknown_finish_reason_with_tools_is_tool_use(self):
        response = _make_response(
            tool_calls=[_make_tool_call("c", "s__t", {})], finish_reason="content_filter"
        )
        assert parse_response(response).stop_reason == "tool_use"

    def test_thinking_blocks_come_first(self):
        response = _make_response("Answer")
        response.choices[0].message.thinking_blocks = [
            {"type": "thinking", "thinking": "Let me think", "signature": "sig"}
        ]

        parsed = parse_response(response)

        assert parsed.content[0] == ThinkingBlock(thinking="Let me think", signature="sig")
        assert parsed.content[1] == TextBlock(text="Answer")

    def test_reasoning_content_fallback(self):
        response = _make_response("Answer")
        response.choices[0].message.reasoning_content = "pondering"

        assert parse_response(response).thinking_blocks()[0].thinking == "pondering"

    def test_no_choices_raises(self):
        response = MagicMock()
        response.choices = []

        with pytest.raises(LLMError, match="no choices"):
            parse_response(response)


class TestParseUsage:
    def test_anthropic_cache_counters(self):
        usage = MagicMock()
        usage.prompt_tokens = 50
        usage.completion_tokens = 10
        usage.cache_read_input_tokens = 1200
        usage.cache_creation_input_tokens = 300

        parsed = parse_usage(usage)

        assert parsed.cache_read_tokens == 1200
        assert parsed.cache_creation_tokens == 300
        assert parsed.total == 60

    def test_openai_cached_tokens_fallback(self):
        usage = MagicMock()
        usage.prompt_tokens = 50
        usage.completion_tokens = 10
        usage.cache_read_input_tokens = None
        usage.cache_creation_input_tokens = None
        usage.prompt_tokens_details.cached_tokens = 40

        assert parse_usage(usage).cache_read_tokens == 40

    def test_missing_usage(self):
        assert parse_usage(None).total == 0


class TestParseToolArguments:
    def test_malformed_json_becomes_empty(self):
        assert parse_tool_arguments("{not json", "s__t") == {}

    def test_non_object_becomes_empty(self):
        assert parse_tool_arguments("[1, 2]", "s__t") == {}

    def test_empty_string(self):
        assert parse_tool_arguments("", "s__t") == {}

    def test_dict_passthrough(self):
        assert parse_tool_arguments({"a": 1}, "s__t") == {"a": 1}


class TestInferenceClient:
    @pytest.mark.asyncio
    async def test_complete_passes_request_kwargs(self, llm_settings, request_):
        with patch(
            "agentbridge.llm.inference.acompletion", new=AsyncMock(return_value=_make_response("Hi"))
        ) as mock_completion:
            response = await InferenceClient(llm_settings).complete(request_)

        assert response.content == [TextBlock(text="Hi")]
        kwargs = mock_completion.call_args.kwargs
        assert kwargs["model"] == "anthropic/claude-test"
        assert kwargs["max_tokens"] == 512
        assert kwargs["api_key"] == "test-key"
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"][0] == {"role": "system", "content": "You are helpful."}

    @pytest.mark.asyncio
    async def test_thinking_drops_temperature(self, llm_settings):
        request = CacheAwareRequestBuilder(caching_enabled=False).build(
            "sys", [], [Message(role="user", content="hi")], "m", 512, thinking_budget=1024
        )
        with patch(
            "agentbridge.llm.inference.acompletion", new=AsyncMock(return_value=_make_response())
        ) as mock_completion:
            await InferenceClient(llm_settings).complete(request)

        assert "temperature" not in mock_completion.call_args.kwargs
        assert mock_completion.call_args.kwargs["thinking"]["budget_tokens"] == 1024

    @pytest.mark.asyncio
    async def test_api_error_raises_llm_error(self, llm_settings, request_):
        with patch(
            "agentbridge.llm.inference.acompletion",
            new=AsyncMock(side_effect=Exception("API rate limit exceeded")),
        ):
            with pytest.raises(LLMError, match="rate limit") as exc_info:
                await InferenceClient(llm_settings).complete(request_)

        assert exc_info.value.cause is not None

    @pytest.mark.asyncio
    async def test_timeout_raises_llm_error(self, request_):
        async def slow(**kwargs):
            await asyncio.sleep(5)

        settings = LLMSettings(api_key="k", request_timeout=0.01)
        with patch("agentbridge.llm.inference.acompletion", new=slow):
            with pytest.raises(LLMError, match="timed out"):
                await InferenceClient(settings).complete(request_)

    @pytest.mark.asyncio
    async def test_malformed_response_raises_llm_error(self, llm_settings, request_):
        broken = MagicMock()
        broken.choices = [MagicMock()]
        broken.choices[0].message.tool_calls = [MagicMock(id=None)]

        with patch("agentbridge.llm.inference.acompletion", new=AsyncMock(return_value=broken)):
            with pytest.raises(LLMError, match="Malformed"):
                await InferenceClient(llm_settings).complete(request_)

    @pytest.mark.asyncio
    async def test_tool_use_round_trip_shape(self, llm_settings, request_):
        response = _make_response(
            text=None,
            tool_calls=[_make_tool_call("call_9", "github__search_code", '{"q": "x"}')],
            finish_reason="tool_calls",
        )
        with patch("agentbridge.llm.inference.acompletion", new=AsyncMock(return_value=response)):
            parsed = await InferenceClient(llm_settings).complete(request_)

        assert parsed.content == [ToolUseBlock(id="call_9", name="github__search_code", input={"q": "x"})]
