"""
Agent Loop.

Drives one conversation turn: connect to the enabled tool servers, pick the
relevant tools and a model tier, then alternate model calls and tool calls
until the model is done, streaming events as they happen.

    Idle -> Calling Model -> (Awaiting Tool Execution -> Calling Model)* -> Done | Error

One AgentLoop serves exactly one request. It owns that request's
ToolConnector and closes it on every exit path: completion, model failure,
iteration cap, or the consumer walking away mid-stream.

Stream contract: the caller always receives exactly one terminal event,
`done` or `error`, and the stream always ends. Tool and connection failures
never reach the terminal error path; only a failed model call does.
"""

import asyncio
import base64
import binascii
import json
import time
from collections.abc import AsyncIterator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from agentbridge import observability
from agentbridge.agent.events import (
    DoneEvent,
    ErrorEvent,
    HeartbeatEvent,
    SessionEvent,
    StatusEvent,
    StreamEvent,
    TextEvent,
    ThinkingEvent,
    TokenUsageSummary,
    ToolCallRecord,
    ToolEvent,
    ToolResultEvent,
)
from agentbridge.agent.presets import build_system_prompt, default_strategy, get_preset
from agentbridge.config.logging import get_logger
from agentbridge.config.settings import Settings
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
from agentbridge.routing.complexity import ModelTier
from agentbridge.routing.config import RoutingContext
from agentbridge.routing.router import ModelRouter, RoutingDecision
from agentbridge.tools.config import UserServerConfig
from agentbridge.tools.connector import ConnectResult, ToolConnector
from agentbridge.tools.filter import ToolRelevanceFilter
from agentbridge.tools.models import ToolDescriptor, split_qualified_name
from agentbridge.tools.optimizer import TokenBudget, default_budget
from agentbridge.tools.usage import UsageStatsProvider

logger = get_logger(__name__)

FALLBACK_RESPONSE = "I've completed the request."
PREVIEW_CHARS = 500

# Model family names accepted as tier preferences
MODEL_FAMILY_TIERS = {"haiku": "cheap", "sonnet": "balanced", "opus": "capable"}

TEXT_MIME_PREFIXES = (
    "text/",
    "application/json",
    "application/xml",
    "application/javascript",
    "application/typescript",
    "application/x-yaml",
    "application/yaml",
)
TEXT_EXTENSIONS = frozenset({
    ".md", ".txt", ".json", ".yaml", ".yml", ".xml", ".csv",
    ".js", ".ts", ".tsx", ".jsx", ".html", ".css",
    ".py", ".rb", ".go", ".rs", ".sh", ".bash", ".zsh",
    ".sql", ".graphql", ".toml", ".ini", ".cfg", ".conf", ".env", ".log",
})


_END = object()


class FileAttachment(BaseModel):
    name: str
    type: str = Field(description="MIME type")
    data: str = Field(description="Base64-encoded file contents")
    size: int | None = None

    @property
    def is_image(self) -> bool:
        return self.type.startswith("image/")

    @property
    def is_text(self) -> bool:
        if self.type.startswith(TEXT_MIME_PREFIXES):
            return True
        dot = self.name.rfind(".")
        return dot != -1 and self.name[dot:].lower() in TEXT_EXTENSIONS


class ChatRequest(BaseModel):
    """One inbound chat request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field(min_length=1)
    conversation_history: list[Message] = Field(default_factory=list)
    enabled_servers: list[str] = Field(
        default_factory=list,
        description="Tool server ids to connect; empty uses the agent preset's defaults",
    )
    agent_id: str | None = None
    model: ModelTier | None = Field(default=None, description="Explicit tier preference")
    verbose: bool = False
    extended_thinking: bool = False
    user_config: dict[str, UserServerConfig] = Field(default_factory=dict)
    files: list[FileAttachment] = Field(default_factory=list)
    user_id: str | None = None

    @field_validator("model", mode="before")
    @classmethod
    def _accept_model_family_names(cls, value: Any) -> Any:
        if isinstance(value, str):
            return MODEL_FAMILY_TIERS.get(value.lower(), value)
        return value


def build_user_message(text: str, files: list[FileAttachment]) -> Message:
    """
    Build the newest user turn.

    Images become image blocks ahead of the text; text files are decoded and
    appended to the message between file markers. Other attachments are skipped.
    """
    images: list[ImageBlock] = []
    inlined: list[str] = []
    for attachment in files:
        if attachment.is_image:
            images.append(ImageBlock(media_type=attachment.type, data=attachment.data))
        elif attachment.is_text:
            try:
                decoded = base64.b64decode(attachment.data).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                logger.error(f"Could not decode attachment '{attachment.name}': {e}")
                continue
            inlined.append(f"\n--- File: {attachment.name} ---\n{decoded}\n--- End of {attachment.name} ---")
        else:
            logger.info(f"Skipping unsupported attachment '{attachment.name}' ({attachment.type})")

    full_text = text + "\n".join(inlined) if inlined else text
    if not images:
        return Message(role="user", content=full_text)
    return Message(role="user", content=[*images, TextBlock(text=full_text)])


def summarize_tool_input(tool_input: dict[str, Any], max_params: int = 3, max_value_chars: int = 40) -> str:
    """
    Compact one-line summary of a tool's arguments for display.

        {"query": "error", "limit": 50, "tags": [...]}  ->  query="error", limit=50, +1 more
    """
    if not tool_input:
        return ""
    parts = []
    for key, value in list(tool_input.items())[:max_params]:
        if isinstance(value, str):
            shown = value if len(value) <= max_value_chars else value[:max_value_chars - 3] + "..."
            parts.append(f'{key}="{shown}"')
        elif isinstance(value, (bool, int, float)) or value is None:
            parts.append(f"{key}={json.dumps(value)}")
        elif isinstance(value, list):
            parts.append(f"{key}=[{len(value)} items]")
        else:
            parts.append(f"{key}={{...}}")
    remaining = len(tool_input) - max_params
    if remaining > 0:
        parts.append(f"+{remaining} more")
    return ", ".join(parts)


class AgentLoop:
    """
    The agent orchestration loop for one request.

    Args:
        settings: Root settings (agent, llm and tool sections are read)
        inference: Model client
        connector: This request's tool connector; closed when run() finishes
        router: Model tier router
        builder: Cache-aware request builder
        tool_filter: Relevance filter for the discovered tools
        usage_stats: Optional sink for per-tool usage records
        token_budget: Tokenizer for tool result truncation (shared default when omitted)
        background_tasks: Owner-held set that keeps cleanup tasks referenced after the
            consumer is gone (a private set when omitted)
    """

    def __init__(
        self,
        settings: Settings,
        inference: InferenceClient,
        connector: ToolConnector,
        router: ModelRouter,
        builder: CacheAwareRequestBuilder,
        tool_filter: ToolRelevanceFilter,
        usage_stats: UsageStatsProvider | None = None,
        token_budget: TokenBudget | None = None,
        background_tasks: set[asyncio.Task] | None = None,
    ):
        self.settings = settings
        self.inference = inference
        self.connector = connector
        self.router = router
        self.builder = builder
        self.tool_filter = tool_filter
        self.usage_stats = usage_stats
        self.token_budget = token_budget or default_budget()
        self.cache_stats = CacheStats()
        self._background_tasks = background_tasks if background_tasks is not None else set()

        self._queue: asyncio.Queue = asyncio.Queue()
        self._last_emit = 0.0
        self._status: str | None = None
        self._stopping = False
        self._model_task: asyncio.Task | None = None
        self._started = False
        self._executions: list[dict[str, Any]] = []

    # ------------------------------------------------------------------
    # Stream plumbing
    # ------------------------------------------------------------------

    def _emit(self, event: StreamEvent) -> None:
        self._last_emit = time.monotonic()
        self._queue.put_nowait(event)

    def _set_status(self, status: str) -> None:
        if status != self._status:
            self._status = status
            self._emit(StatusEvent(status=status))

    async def _heartbeat(self) -> None:
        """Emit a heartbeat whenever the stream has been silent for the interval."""
        interval = self.settings.agent.heartbeat_interval
        while True:
            silent_for = time.monotonic() - self._last_emit
            if silent_for >= interval:
                self._emit(HeartbeatEvent())
                await asyncio.sleep(interval)
            else:
                await asyncio.sleep(interval - silent_for)

    async def run(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """
        Run the loop and stream its events.

        Closing the iterator early (client disconnect) stops further model and
        tool calls: an in-flight model call is cancelled, an in-flight tool
        call is allowed to finish and its result discarded. Connections are
        closed in every case.
        """
        if self._started:
            raise RuntimeError("AgentLoop.run() can only be called once per instance")
        self._started = True

        self._last_emit = time.monotonic()
        producer = asyncio.create_task(self._produce(request), name="agent-loop")
        heartbeat = asyncio.create_task(self._heartbeat(), name="agent-heartbeat")
        try:
            while True:
                event = await self._queue.get()
                if event is _END:
                    break
                yield event
        finally:
            cleanup = asyncio.create_task(self._cleanup(producer, heartbeat), name="agent-cleanup")
            self._background_tasks.add(cleanup)
            cleanup.add_done_callback(self._background_tasks.discard)
            # Shielded so a cancelled consumer cannot abort connection cleanup
            await asyncio.shield(cleanup)

    async def _cleanup(self, producer: asyncio.Task, heartbeat: asyncio.Task) -> None:
        heartbeat.cancel()
        if not producer.done():
            self._stopping = True
            if self._model_task is not None:
                self._model_task.cancel()
        await asyncio.gather(producer, heartbeat, return_exceptions=True)

        errors = await self.connector.close_all()
        if errors:
            logger.warning(f"{len(errors)} tool server connections failed to close cleanly")

    # ------------------------------------------------------------------
    # Loop body
    # ------------------------------------------------------------------

    async def _produce(self, request: ChatRequest) -> None:
        try:
            await self._drive(request)
        except LLMError as e:
            logger.error(f"Agent loop failed: {e}")
            self._emit(ErrorEvent(message=str(e)))
        except Exception as e:
            logger.exception("Unexpected error in agent loop")
            self._emit(ErrorEvent(message=str(e) or type(e).__name__))
        finally:
            self._queue.put_nowait(_END)

    async def _connect(self, request: ChatRequest) -> ConnectResult:
        server_ids = request.enabled_servers
        if not server_ids:
            preset = get_preset(request.agent_id)
            server_ids = preset.default_servers if preset else []
        if not server_ids:
            return ConnectResult()

        result = await self.connector.connect(server_ids, request.user_config)
        if result.connected_ids:
            logger.info(f"Tool servers connected: {', '.join(result.connected_ids)}")
        if result.failed_ids:
            logger.warning(f"Tool servers failed: {', '.join(result.failed_ids)}")

        for server_id, session_id in self.connector.session_ids().items():
            self._emit(SessionEvent(session_id=session_id, server_id=server_id))
        return result

    def _route(self, request: ChatRequest, history: list[Message], server_ids: list[str]) -> RoutingDecision:
        return self.router.route(RoutingContext(
            message=request.message,
            history=history,
            enabled_tools=server_ids,
            agent_id=request.agent_id,
            user_preference=request.model,
        ))

    async def _call_model(self, model_request: CacheableRequest) -> InferenceResponse | None:
        """Run one model call as a cancellable task; None when the loop was stopped."""
        self._model_task = asyncio.create_task(self.inference.complete(model_request))
        try:
            return await self._model_task
        except asyncio.CancelledError:
            if self._stopping:
                return None
            raise
        finally:
            self._model_task = None

    async def _execute_tool(self, tool_use: ToolUseBlock, request: ChatRequest) -> ToolResultBlock:
        try:
            server_id, tool_name = split_qualified_name(tool_use.name)
        except ValueError:
            server_id, tool_name = "?", tool_use.name

        observability.log_tool_call(
            server_id, tool_name, tool_use.input if request.verbose else None
        )
        result = await self.connector.invoke(
            tool_use.name, tool_use.input, timeout=self.settings.agent.tool_timeout
        )
        observability.log_tool_result(
            server_id,
            tool_name,
            success=result.success,
            duration_ms=result.duration_ms,
            error=result.error,
            result=result.data if request.verbose else None,
        )

        self._executions.append({
            "name": tool_use.name, "success": result.success, "duration_ms": result.duration_ms,
        })
        if self.usage_stats is not None:
            self.usage_stats.record(
                request.user_id, tool_use.name, result.duration_ms, result.success, request.agent_id
            )

        content = self.token_budget.optimize_tool_result(
            result.to_content(), self.settings.tools.max_result_tokens
        )
        self._emit(ToolEvent(
            name=tool_use.name, status="end", success=result.success, duration_ms=result.duration_ms,
        ))
        if request.verbose:
            self._emit(ToolResultEvent(
                name=tool_use.name, success=result.success, preview=content[:PREVIEW_CHARS],
            ))
        return ToolResultBlock(tool_use_id=tool_use.id, content=content, is_error=not result.success)

    def _stream_response(
        self, response: InferenceResponse, request: ChatRequest, tool_calls: list[ToolCallRecord]
    ) -> str:
        """Emit events for the response's blocks in order; return the turn's text."""
        texts = []
        for block in response.content:
            if isinstance(block, TextBlock):
                self._set_status("responding")
                self._emit(TextEvent(content=block.text))
                texts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                self._emit(ToolEvent(
                    name=block.name,
                    status="start",
                    param_summary=summarize_tool_input(block.input),
                    input=block.input if request.verbose else None,
                ))
                tool_calls.append(ToolCallRecord(name=block.name, input=block.input))
            elif isinstance(block, ThinkingBlock) and request.verbose:
                self._emit(ThinkingEvent(content=self.token_budget.optimize_thinking(block.thinking)))
        return "".join(texts)

    async def _drive(self, request: ChatRequest) -> None:
        agent = self.settings.agent
        llm = self.settings.llm

        self._set_status("thinking")
        connect_result = await self._connect(request)
        if self._stopping:
            return

        strategy = default_strategy(
            request.message,
            request.agent_id,
            request.user_id,
            default_max_tools=self.settings.tools.default_max_tools,
        )
        tools: list[ToolDescriptor] = self.tool_filter.filter(
            connect_result.descriptors, connect_result.connected_ids, strategy
        ).selected

        history = list(request.conversation_history)
        messages = [*history, build_user_message(request.message, request.files)]
        decision = self._route(request, history, connect_result.connected_ids)
        system_prompt = build_system_prompt(request.agent_id)
        thinking_budget = llm.thinking_budget if request.extended_thinking else None

        usage = TokenUsage()
        tool_calls: list[ToolCallRecord] = []
        final_response = ""
        iterations = 0

        while iterations < agent.max_iterations:
            if self._stopping:
                return
            iterations += 1

            if iterations > 1 and agent.allow_model_switch:
                decision = self._route(request, messages[:-1], connect_result.connected_ids)
            self._set_status("thinking")

            model_request = self.builder.build(
                system_prompt, tools, messages, decision.model_id, llm.max_tokens, thinking_budget
            )
            observability.log_ai_request(
                model=decision.model_id,
                message_count=len(messages),
                tool_count=len(tools),
                max_tokens=llm.max_tokens,
                thinking=thinking_budget is not None,
                iteration=iterations,
            )
            started = time.monotonic()
            response = await self._call_model(model_request)
            if response is None:
                return

            usage = usage + response.usage
            self.cache_stats.record(response.usage)

            turn_text = self._stream_response(response, request, tool_calls)
            tool_uses = response.tool_use_blocks()
            observability.log_ai_response(
                model=decision.model_id,
                duration_ms=(time.monotonic() - started) * 1000,
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                cache_read_tokens=response.usage.cache_read_tokens,
                text_length=len(turn_text),
                tool_call_count=len(tool_uses),
            )
            if turn_text:
                final_response = turn_text

            complete = response.stop_reason in ("end_turn", "max_tokens") or not tool_uses
            if complete:
                if len(turn_text) > agent.min_substantive_length:
                    break
                if response.stop_reason == "max_tokens":
                    logger.warning("Hit max_tokens with minimal content; ending without retry")
                    break
            if not tool_uses:
                break

            messages.append(Message(role="assistant", content=response.content))
            self._set_status("tool_calling")
            results: list[ToolResultBlock] = []
            for tool_use in tool_uses:
                block = await self._execute_tool(tool_use, request)
                if self._stopping:
                    # Consumer is gone; the finished call's result is dropped
                    return
                results.append(block)
            messages.append(Message(role="user", content=results))
        else:
            logger.warning(f"Iteration cap of {agent.max_iterations} reached; returning partial response")

        observability.log_tool_summary(self._executions)
        logger.info(f"Cache stats: {self.cache_stats.summary()}")

        self._emit(DoneEvent(
            response=final_response or FALLBACK_RESPONSE,
            tool_calls=tool_calls,
            iterations=iterations,
            token_usage=TokenUsageSummary(
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                total=usage.total,
                cache_hits=usage.cache_read_tokens,
                cache_created=usage.cache_creation_tokens,
            ),
            failed_servers=connect_result.failed_ids,
        ))
