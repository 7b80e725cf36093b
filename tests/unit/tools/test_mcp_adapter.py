"""
Unit tests for MCPToolAdapter.

These tests focus on the wrapper logic: connection setup and teardown,
error mapping and result shaping. The MCP transports and ClientSession are
patched with in-memory stand-ins.
"""

import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from agentbridge.errors import ToolServerError, UnsupportedTransportError
from agentbridge.tools.mcp_adapter import MCPToolAdapter
from agentbridge.tools.models import TransportKind


class FakeSession:
    """Stands in for mcp.ClientSession."""

    instances: list["FakeSession"] = []

    def __init__(self, read_stream, write_stream):
        self.closed = False
        self.initialized = False
        FakeSession.instances.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False

    async def initialize(self):
        self.initialized = True

    async def list_tools(self):
        return SimpleNamespace(tools=[
            SimpleNamespace(
                name="search_logs",
                description="Search logs",
                inputSchema={"type": "object", "properties": {"query": {"type": "string"}}},
            ),
            SimpleNamespace(name="ping", description=None, inputSchema=None),
        ])

    async def call_tool(self, name, arguments):
        if name == "fail":
            return SimpleNamespace(content=[SimpleNamespace(type="text", text="bad query")], isError=True)
        return SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="line 1"),
                SimpleNamespace(type="image", data="..."),
                SimpleNamespace(type="text", text="line 2"),
            ],
            isError=False,
        )


@asynccontextmanager
async def fake_sse_client(url, headers=None):
    yield (object(), object())


@asynccontextmanager
async def fake_http_client(url, headers=None):
    yield (object(), object(), lambda: "session-123")


@asynccontextmanager
async def refusing_client(url, headers=None):
    raise ConnectionError("connection refused")
    yield


@asynccontextmanager
async def hanging_client(url, headers=None):
    await asyncio.sleep(10)
    yield (object(), object())


@pytest.fixture(autouse=True)
def fake_session():
    FakeSession.instances = []
    with patch("agentbridge.tools.mcp_adapter.ClientSession", FakeSession):
        yield


class TestMCPToolAdapterLifecycle:
    @pytest.mark.asyncio
    async def test_sse_connect_and_list_tools(self):
        with patch("agentbridge.tools.mcp_adapter.sse_client", fake_sse_client):
            adapter = MCPToolAdapter("coralogix", TransportKind.SSE, "https://cx/sse")
            await adapter.initialize()
            tools = await adapter.list_tools()
            await adapter.shutdown()

        assert [t["name"] for t in tools] == ["search_logs", "ping"]
        assert tools[1]["description"] == "Tool from coralogix"
        assert tools[1]["input_schema"]["type"] == "object"
        assert FakeSession.instances[0].initialized
        assert FakeSession.instances[0].closed

    @pytest.mark.asyncio
    async def test_http_reports_session_id(self):
        with patch("agentbridge.tools.mcp_adapter.streamablehttp_client", fake_http_client):
            async with MCPToolAdapter("github", TransportKind.HTTP, "https://gh/mcp") as adapter:
                assert adapter.session_id == "session-123"

    @pytest.mark.asyncio
    async def test_refused_connection_raises_tool_server_error(self):
        with patch("agentbridge.tools.mcp_adapter.sse_client", refusing_client):
            adapter = MCPToolAdapter("coralogix", TransportKind.SSE, "https://cx/sse")
            with pytest.raises(ToolServerError, match="connection refused"):
                await adapter.initialize()

    @pytest.mark.asyncio
    async def test_hanging_connection_times_out(self):
        with patch("agentbridge.tools.mcp_adapter.sse_client", hanging_client):
            adapter = MCPToolAdapter("coralogix", TransportKind.SSE, "https://cx/sse", timeout=0.05)
            with pytest.raises(ToolServerError, match="timed out"):
                await adapter.initialize()

    @pytest.mark.asyncio
    async def test_stdio_unsupported(self):
        adapter = MCPToolAdapter("local", TransportKind.STDIO, "npx server")

        with pytest.raises(UnsupportedTransportError):
            await adapter.initialize()

    @pytest.mark.asyncio
    async def test_shutdown_without_initialize_is_safe(self):
        adapter = MCPToolAdapter("coralogix", TransportKind.SSE, "https://cx/sse")
        await adapter.shutdown()
        await adapter.shutdown()


class TestMCPToolAdapterCalls:
    @pytest.mark.asyncio
    async def test_call_joins_text_content(self):
        with patch("agentbridge.tools.mcp_adapter.sse_client", fake_sse_client):
            async with MCPToolAdapter("coralogix", TransportKind.SSE, "https://cx/sse") as adapter:
                result = await adapter.call("search_logs", {"query": "error"})

        assert result == {"text": "line 1\nline 2", "is_error": False}

    @pytest.mark.asyncio
    async def test_server_error_flag(self):
        with patch("agentbridge.tools.mcp_adapter.sse_client", fake_sse_client):
            async with MCPToolAdapter("coralogix", TransportKind.SSE, "https://cx/sse") as adapter:
                result = await adapter.call("fail", {})

        assert result == {"text": "bad query", "is_error": True}

    @pytest.mark.asyncio
    async def test_call_before_initialize_raises(self):
        adapter = MCPToolAdapter("coralogix", TransportKind.SSE, "https://cx/sse")

        with pytest.raises(RuntimeError, match="not initialized"):
            await adapter.call("search_logs", {})
