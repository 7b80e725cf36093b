"""
Tool Registry & Connector.

One ToolConnector is created per inbound request and owns every tool server
connection that request opens. It is passed explicitly to the agent loop and
never shared across requests; there is no pooling or cross-request reuse,
so each request pays the full connection cost in exchange for isolation.

    connector = ToolConnector(server_map, connect_timeout=30)
    async with connector:
        result = await connector.connect(["coralogix", "github"])
        ...
        outcome = await connector.invoke("github__search_issues", {"q": "bug"})
    # every connection is closed here, whatever happened inside
"""

import asyncio
import json
import time
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from agentbridge import observability
from agentbridge.config.logging import get_logger
from agentbridge.errors import ToolServerError, UnsupportedTransportError
from agentbridge.tools.base import ToolAdapter
from agentbridge.tools.categories import categorize_tool
from agentbridge.tools.config import (
    ServerConfig,
    SseServerConfig,
    StdioServerConfig,
    UserServerConfig,
    merge_user_config,
)
from agentbridge.tools.mcp_adapter import MCPToolAdapter
from agentbridge.tools.models import (
    ConnectionState,
    ToolDescriptor,
    ToolExecutionResult,
    ToolServerConnection,
    TransportKind,
    qualify_tool_name,
    split_qualified_name,
)

logger = get_logger(__name__)

AdapterFactory = Callable[[ToolServerConnection, float], ToolAdapter]


def _default_adapter_factory(connection: ToolServerConnection, timeout: float) -> ToolAdapter:
    return MCPToolAdapter(
        server_id=connection.server_id,
        transport=connection.transport,
        url=connection.endpoint or "",
        headers=connection.headers,
        timeout=timeout,
    )


def parse_payload(text: str) -> Any:
    """Parse a tool's text payload as JSON, falling back to the raw text."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return text


class ConnectResult(BaseModel):
    """Outcome of connecting to the enabled servers for one request."""

    descriptors: list[ToolDescriptor] = Field(default_factory=list)
    connected_ids: list[str] = Field(default_factory=list)
    failed_ids: list[str] = Field(default_factory=list)
    skipped_ids: list[str] = Field(
        default_factory=list,
        description="Enabled ids with no entry in the server map",
    )


class ToolConnector:
    """
    Discovers tools on the enabled servers and invokes them by qualified name.

    Args:
        server_map: Server id to transport config, as loaded by load_server_map()
        connect_timeout: Seconds allowed per server for connect + tool listing
        adapter_factory: Builds the adapter for one connection (tests inject fakes)
    """

    def __init__(
        self,
        server_map: Mapping[str, ServerConfig],
        connect_timeout: float = 30.0,
        adapter_factory: AdapterFactory | None = None,
    ):
        self._server_map = dict(server_map)
        self._connect_timeout = connect_timeout
        self._adapter_factory = adapter_factory or _default_adapter_factory
        self._adapters: dict[str, ToolAdapter] = {}
        self.connections: dict[str, ToolServerConnection] = {}

    @property
    def connected_ids(self) -> list[str]:
        return list(self._adapters)

    def session_ids(self) -> dict[str, str]:
        """Transport session ids reported by servers that support resumption."""
        ids = {}
        for server_id, adapter in self._adapters.items():
            session_id = getattr(adapter, "session_id", None)
            if isinstance(session_id, str) and session_id:
                ids[server_id] = session_id
        return ids

    def _describe_connection(self, server_id: str, config: ServerConfig) -> ToolServerConnection:
        if isinstance(config, StdioServerConfig):
            return ToolServerConnection(
                server_id=server_id,
                transport=TransportKind.STDIO,
                endpoint=" ".join([config.command, *config.args]),
                env=config.env,
            )
        if isinstance(config, SseServerConfig):
            transport = TransportKind.SSE
        else:
            transport = TransportKind.HTTP
        return ToolServerConnection(
            server_id=server_id,
            transport=transport,
            endpoint=config.resolved_url(),
            headers=config.resolved_headers(),
            env=config.env,
        )

    async def _connect_one(self, server_id: str, config: ServerConfig) -> list[ToolDescriptor]:
        """
        Connect to one server and list its tools.

        Raises:
            ToolServerError: On any failure; the caller records it per server
        """
        connection = self._describe_connection(server_id, config)
        self.connections[server_id] = connection

        if connection.transport == TransportKind.STDIO:
            raise UnsupportedTransportError(server_id, "stdio transport not supported in this runtime")
        if not connection.endpoint:
            raise ToolServerError(server_id, "No compatible transport configuration (no URL)")
        missing = config.missing_env()
        if missing:
            raise ToolServerError(server_id, f"Missing required env: {', '.join(missing)}")

        observability.log_connection(
            server_id, ConnectionState.CONNECTING.value,
            url=connection.endpoint, transport=connection.transport.value,
        )

        adapter = self._adapter_factory(connection, self._connect_timeout)
        try:
            await adapter.initialize()
            raw_tools = await asyncio.wait_for(adapter.list_tools(), timeout=self._connect_timeout)
        except BaseException as e:
            try:
                await adapter.shutdown()
            except Exception as close_error:
                logger.debug(f"Cleanup after failed connect to '{server_id}' raised: {close_error}")
            if isinstance(e, ToolServerError):
                raise
            if isinstance(e, asyncio.TimeoutError):
                raise ToolServerError(server_id, "timed out listing tools") from e
            if isinstance(e, Exception):
                raise ToolServerError(server_id, str(e) or type(e).__name__) from e
            raise

        self._adapters[server_id] = adapter
        descriptors = [
            ToolDescriptor(
                qualified_name=qualify_tool_name(server_id, tool["name"]),
                name=tool["name"],
                description=tool.get("description") or f"Tool from {server_id}",
                input_schema=tool.get("input_schema") or {"type": "object", "properties": {}},
                categories=frozenset(categorize_tool(
                    tool["name"], tool.get("description"), server_id, config.categories or None,
                )),
                source_server=server_id,
            )
            for tool in raw_tools
        ]
        connection.state = ConnectionState.CONNECTED
        connection.tool_count = len(descriptors)
        observability.log_connection(
            server_id, ConnectionState.CONNECTED.value,
            url=connection.endpoint, transport=connection.transport.value,
        )
        logger.info(f"Loaded {len(descriptors)} tools from {server_id}")
        return descriptors

    async def connect(
        self,
        enabled_server_ids: list[str],
        user_configs: Mapping[str, UserServerConfig] | None = None,
    ) -> ConnectResult:
        """
        Connect to every enabled server concurrently and collect their tools.

        A failure on one server never affects the others. Ids missing from the
        server map are skipped rather than failed.

        Args:
            enabled_server_ids: Server ids requested for this request, in order
            user_configs: Optional per-server user overlays (credentials, url, headers)
        """
        user_configs = user_configs or {}
        result = ConnectResult()

        targets: list[tuple[str, ServerConfig]] = []
        for server_id in dict.fromkeys(enabled_server_ids):
            if server_id not in self._server_map:
                result.skipped_ids.append(server_id)
                continue
            if server_id in self._adapters:
                logger.debug(f"Server '{server_id}' already connected for this request")
                continue
            config = merge_user_config(self._server_map[server_id], user_configs.get(server_id))
            targets.append((server_id, config))

        if result.skipped_ids:
            logger.info(f"Skipped {len(result.skipped_ids)} unknown server ids: {result.skipped_ids}")
        if not targets:
            return result

        outcomes = await asyncio.gather(
            *(self._connect_one(server_id, config) for server_id, config in targets),
            return_exceptions=True,
        )

        # Qualified names stay unique across the merged list
        seen: set[str] = set()
        for (server_id, config), outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                connection = self.connections.get(server_id)
                if connection is not None:
                    connection.state = ConnectionState.FAILED
                    connection.error = str(outcome)
                observability.log_connection(
                    server_id, ConnectionState.FAILED.value,
                    url=connection.endpoint if connection else None,
                    transport=connection.transport.value if connection else config.type,
                    error=str(outcome),
                )
                result.failed_ids.append(server_id)
            else:
                for descriptor in outcome:
                    if descriptor.qualified_name in seen:
                        logger.warning(
                            f"Dropping duplicate tool '{descriptor.qualified_name}' from {server_id}"
                        )
                        continue
                    seen.add(descriptor.qualified_name)
                    result.descriptors.append(descriptor)
                result.connected_ids.append(server_id)

        return result

    async def invoke(
        self,
        qualified_name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> ToolExecutionResult:
        """
        Run one tool by qualified name.

        Never raises for tool-level problems: an unknown server, a remote
        error, a server-flagged error or a timeout all come back as a failed
        ToolExecutionResult. No reconnection is attempted.
        """
        started = time.monotonic()

        def elapsed() -> float:
            return (time.monotonic() - started) * 1000

        try:
            server_id, tool_name = split_qualified_name(qualified_name)
        except ValueError as e:
            return ToolExecutionResult(success=False, error=str(e), duration_ms=elapsed())

        adapter = self._adapters.get(server_id)
        if adapter is None:
            return ToolExecutionResult(
                success=False,
                error=f"MCP server not connected: {server_id}",
                duration_ms=elapsed(),
            )

        try:
            if timeout is not None:
                raw = await asyncio.wait_for(adapter.call(tool_name, arguments), timeout=timeout)
            else:
                raw = await adapter.call(tool_name, arguments)
        except asyncio.TimeoutError:
            return ToolExecutionResult(
                success=False,
                error=f"Tool '{qualified_name}' timed out after {timeout:.0f}s",
                duration_ms=elapsed(),
            )
        except Exception as e:
            logger.warning(f"Tool '{qualified_name}' failed: {e}")
            return ToolExecutionResult(
                success=False,
                error=str(e) or type(e).__name__,
                duration_ms=elapsed(),
            )

        text = raw.get("text", "")
        if raw.get("is_error"):
            return ToolExecutionResult(success=False, error=text or "Tool reported an error", duration_ms=elapsed())
        return ToolExecutionResult(success=True, data=parse_payload(text), duration_ms=elapsed())

    async def close_all(self) -> list[Exception]:
        """
        Close every tracked connection.

        Best effort: a failing close is logged and collected, never raised,
        and does not stop the remaining closes.

        Returns:
            The exceptions raised by individual closes
        """
        errors: list[Exception] = []
        adapters, self._adapters = self._adapters, {}
        for server_id, adapter in adapters.items():
            try:
                await adapter.shutdown()
            except Exception as e:
                logger.error(f"Error closing {server_id}: {e}")
                errors.append(e)
                continue
            connection = self.connections.get(server_id)
            if connection is not None:
                connection.state = ConnectionState.DISCONNECTED
            observability.log_connection(server_id, ConnectionState.DISCONNECTED.value)
        return errors

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_all()
        return False
