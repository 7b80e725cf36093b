"""
MCP tool adapter over the SSE and streamable-HTTP client transports.

The MCP client transports are anyio context managers that must be exited by
the same task that entered them. Connections are opened concurrently and
closed later from a different task, so each adapter runs a small owner task
that enters the transport and session, signals readiness, and holds them open
until shutdown is requested.
"""

import asyncio
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamablehttp_client

from agentbridge.config.logging import get_logger
from agentbridge.errors import ToolServerError, UnsupportedTransportError
from agentbridge.tools.base import ToolAdapter
from agentbridge.tools.models import TransportKind

logger = get_logger(__name__)


def _describe(error: BaseException) -> str:
    """Unwrap anyio exception groups down to the first leaf error message."""
    while isinstance(error, BaseExceptionGroup) and error.exceptions:
        error = error.exceptions[0]
    return str(error) or type(error).__name__


class MCPToolAdapter(ToolAdapter):
    """
    Tool adapter for one remote MCP server.

    Args:
        server_id: Server identifier used to namespace its tools
        transport: SSE or HTTP (stdio raises UnsupportedTransportError)
        url: Fully resolved endpoint URL
        headers: Fully resolved request headers
        timeout: Seconds allowed for transport setup plus handshake
    """

    def __init__(
        self,
        server_id: str,
        transport: TransportKind,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
    ):
        self.server_id = server_id
        self._transport = transport
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout

        self._initialized = False
        self._session: ClientSession | None = None
        self._owner_task: asyncio.Task | None = None
        self._ready: asyncio.Future | None = None
        self._close_requested: asyncio.Event | None = None
        self.session_id: str | None = None

    def _open_transport(self):
        if self._transport == TransportKind.HTTP:
            return streamablehttp_client(self._url, headers=self._headers)
        if self._transport == TransportKind.SSE:
            return sse_client(self._url, headers=self._headers)
        raise UnsupportedTransportError(
            self.server_id, f"{self._transport.value} transport not supported in this runtime"
        )

    async def _hold_connection(self) -> None:
        """Owner task: enter transport and session, then wait for shutdown."""
        try:
            async with AsyncExitStack() as stack:
                streams = await stack.enter_async_context(self._open_transport())
                read_stream, write_stream = streams[0], streams[1]
                if len(streams) > 2 and callable(streams[2]):
                    get_session_id = streams[2]
                else:
                    get_session_id = None

                session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
                await session.initialize()
                if get_session_id is not None:
                    self.session_id = get_session_id()

                self._session = session
                self._ready.set_result(None)
                await self._close_requested.wait()
        except BaseException as e:
            if not self._ready.done():
                self._ready.set_exception(e if isinstance(e, Exception) else ToolServerError(
                    self.server_id, "connection task cancelled"
                ))
            if not isinstance(e, Exception):
                raise
            # Failures after readiness surface on the next call via a dead session
            logger.debug(f"Connection to '{self.server_id}' ended: {_describe(e)}")
        finally:
            self._session = None

    async def initialize(self) -> None:
        """Open the transport and perform the MCP handshake."""
        if self._initialized:
            return
        # Validate transport up front so stdio never spawns an owner task
        if self._transport not in (TransportKind.HTTP, TransportKind.SSE):
            raise UnsupportedTransportError(
                self.server_id, f"{self._transport.value} transport not supported in this runtime"
            )

        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._close_requested = asyncio.Event()
        self._owner_task = asyncio.create_task(
            self._hold_connection(), name=f"mcp-{self.server_id}"
        )

        try:
            await asyncio.wait_for(asyncio.shield(self._ready), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            await self._stop_owner()
            raise ToolServerError(
                self.server_id, f"timed out after {self._timeout:.0f}s connecting to {self._url}"
            ) from e
        except ToolServerError:
            await self._stop_owner()
            raise
        except Exception as e:
            await self._stop_owner()
            raise ToolServerError(self.server_id, _describe(e)) from e

        self._initialized = True

    async def _stop_owner(self) -> None:
        if self._owner_task is None:
            return
        if self._close_requested is not None:
            self._close_requested.set()
        if not self._ready.done():
            self._owner_task.cancel()
        try:
            # wait_for cancels the owner task if the transport hangs on exit
            await asyncio.wait_for(self._owner_task, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Closing '{self.server_id}' timed out; connection task cancelled")
        except asyncio.CancelledError:
            # Only the owner task's own cancellation is expected here
            if not self._owner_task.cancelled():
                raise
        finally:
            self._owner_task = None
            if self._ready.done() and not self._ready.cancelled():
                self._ready.exception()  # mark retrieved

    async def shutdown(self) -> None:
        """Cleanly close the session and transport."""
        if self._owner_task is None:
            return  # Already shut down or never initialized
        await self._stop_owner()
        self._initialized = False

    async def call(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Call a tool on the MCP server."""
        if not self._initialized or self._session is None:
            raise RuntimeError(f"Tool adapter for '{self.server_id}' not initialized")

        result = await self._session.call_tool(tool_name, arguments)

        # MCP returns content as a list of content blocks
        text_parts = []
        for content in result.content:
            if getattr(content, "type", None) == "text":
                text_parts.append(content.text)

        return {
            "text": "\n".join(text_parts),
            "is_error": bool(getattr(result, "isError", False)),
        }

    async def list_tools(self) -> list[dict[str, Any]]:
        """List available tools from the MCP server."""
        if not self._initialized or self._session is None:
            raise RuntimeError(f"Tool adapter for '{self.server_id}' not initialized")

        result = await self._session.list_tools()

        tools = []
        for tool in result.tools:
            tools.append({
                "name": tool.name,
                "description": tool.description or f"Tool from {self.server_id}",
                "input_schema": tool.inputSchema or {
                    "type": "object",
                    "properties": {},
                    "required": [],
                },
            })
        return tools
