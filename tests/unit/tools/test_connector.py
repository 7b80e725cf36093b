"""
Unit tests for ToolConnector.

Servers are simulated with FakeAdapter; no network is used.
"""

import asyncio
from unittest.mock import patch

import pytest

from agentbridge.tools.config import load_server_map
from agentbridge.tools.connector import ToolConnector, parse_payload
from agentbridge.tools.models import ConnectionState
from fakes import FakeAdapter, FakeAdapterFactory


@pytest.fixture
def server_map():
    return load_server_map({
        "mcpServers": {
            "coralogix": {"url": "https://cx.example.com/sse"},
            "github": {"type": "http", "url": "https://gh.example.com/mcp"},
            "local": {"command": "npx", "args": ["server-filesystem"]},
        }
    })


class TestConnect:
    @pytest.mark.asyncio
    async def test_tools_are_namespaced_and_categorized(self, server_map, log_tools):
        factory = FakeAdapterFactory({"coralogix": FakeAdapter("coralogix", tools=log_tools)})
        connector = ToolConnector(server_map, adapter_factory=factory)

        result = await connector.connect(["coralogix"])

        names = [d.qualified_name for d in result.descriptors]
        assert names == ["coralogix__search_logs", "coralogix__list_alerts"]
        assert result.connected_ids == ["coralogix"]
        search = result.descriptors[0]
        assert search.name == "search_logs"
        assert search.source_server == "coralogix"
        assert "logs" in search.categories
        assert connector.connections["coralogix"].state == ConnectionState.CONNECTED
        assert connector.connections["coralogix"].tool_count == 2

    @pytest.mark.asyncio
    async def test_one_server_down_does_not_affect_others(self, server_map, log_tools):
        factory = FakeAdapterFactory({
            "coralogix": FakeAdapter("coralogix", tools=log_tools),
            "github": FakeAdapter("github", fail_init=ConnectionError("refused")),
        })
        connector = ToolConnector(server_map, adapter_factory=factory)

        result = await connector.connect(["coralogix", "github"])

        assert result.connected_ids == ["coralogix"]
        assert result.failed_ids == ["github"]
        assert all(d.source_server == "coralogix" for d in result.descriptors)
        assert connector.connections["github"].state == ConnectionState.FAILED
        assert "refused" in connector.connections["github"].error

    @pytest.mark.asyncio
    async def test_stdio_is_reported_unsupported(self, server_map):
        factory = FakeAdapterFactory({})
        connector = ToolConnector(server_map, adapter_factory=factory)

        result = await connector.connect(["local"])

        assert result.failed_ids == ["local"]
        assert "stdio" in connector.connections["local"].error
        assert factory.requested == []

    @pytest.mark.asyncio
    async def test_unknown_ids_are_skipped(self, server_map):
        connector = ToolConnector(server_map, adapter_factory=FakeAdapterFactory({}))

        result = await connector.connect(["does-not-exist"])

        assert result.skipped_ids == ["does-not-exist"]
        assert result.failed_ids == []
        assert result.descriptors == []

    @pytest.mark.asyncio
    async def test_slow_listing_times_out(self, server_map):
        class SlowAdapter(FakeAdapter):
            async def list_tools(self):
                await asyncio.sleep(5)
                return []

        slow = SlowAdapter("coralogix")
        connector = ToolConnector(
            server_map, connect_timeout=0.05, adapter_factory=FakeAdapterFactory({"coralogix": slow})
        )

        result = await connector.connect(["coralogix"])

        assert result.failed_ids == ["coralogix"]
        assert "timed out" in connector.connections["coralogix"].error
        assert slow.shutdown_count == 1

    @pytest.mark.asyncio
    async def test_user_overlay_reaches_connection(self, server_map):
        from agentbridge.tools.config import UserServerConfig

        factory = FakeAdapterFactory({"github": FakeAdapter("github")})
        connector = ToolConnector(server_map, adapter_factory=factory)

        await connector.connect(
            ["github"], {"github": UserServerConfig(headers={"Authorization": "Bearer u"})}
        )

        assert connector.connections["github"].headers == {"Authorization": "Bearer u"}

    @pytest.mark.asyncio
    async def test_session_ids_reported(self, server_map):
        factory = FakeAdapterFactory({"github": FakeAdapter("github", session_id="sess-1")})
        connector = ToolConnector(server_map, adapter_factory=factory)

        await connector.connect(["github"])

        assert connector.session_ids() == {"github": "sess-1"}

    @pytest.mark.asyncio
    async def test_duplicate_tool_names_keep_first(self, server_map, log_tools):
        tools = [*log_tools, {"name": "search_logs", "description": "Second copy"}]
        factory = FakeAdapterFactory({"coralogix": FakeAdapter("coralogix", tools=tools)})
        connector = ToolConnector(server_map, adapter_factory=factory)

        with patch("agentbridge.tools.connector.logger") as log:
            result = await connector.connect(["coralogix"])

        names = [d.qualified_name for d in result.descriptors]
        assert names == ["coralogix__search_logs", "coralogix__list_alerts"]
        assert result.descriptors[0].description != "Second copy"
        log.warning.assert_called_once()
        assert "coralogix__search_logs" in log.warning.call_args.args[0]

    @pytest.mark.asyncio
    async def test_missing_required_env_fails_server(self, monkeypatch):
        monkeypatch.delenv("CX_API_KEY", raising=False)
        servers = load_server_map({
            "mcpServers": {"coralogix": {"url": "https://cx.example.com/sse", "required_env": ["CX_API_KEY"]}}
        })
        factory = FakeAdapterFactory({"coralogix": FakeAdapter("coralogix")})
        connector = ToolConnector(servers, adapter_factory=factory)

        result = await connector.connect(["coralogix"])

        assert result.failed_ids == ["coralogix"]
        assert "Missing required env: CX_API_KEY" in connector.connections["coralogix"].error
        assert factory.requested == []

    @pytest.mark.asyncio
    async def test_required_env_from_user_overlay(self, monkeypatch):
        from agentbridge.tools.config import UserServerConfig

        monkeypatch.delenv("CX_API_KEY", raising=False)
        servers = load_server_map({
            "mcpServers": {"coralogix": {"url": "https://cx.example.com/sse", "required_env": ["CX_API_KEY"]}}
        })
        factory = FakeAdapterFactory({"coralogix": FakeAdapter("coralogix")})
        connector = ToolConnector(servers, adapter_factory=factory)

        result = await connector.connect(
            ["coralogix"], {"coralogix": UserServerConfig(env={"CX_API_KEY": "k"})}
        )

        assert result.connected_ids == ["coralogix"]


class TestInvoke:
    @pytest.mark.asyncio
    async def test_success_parses_json_payload(self, server_map):
        adapter = FakeAdapter(
            "github",
            tools=[{"name": "search_issues"}],
            responses={"search_issues": {"text": '{"count": 3}', "is_error": False}},
        )
        connector = ToolConnector(server_map, adapter_factory=FakeAdapterFactory({"github": adapter}))
        await connector.connect(["github"])

        result = await connector.invoke("github__search_issues", {"q": "bug"})

        assert result.success
        assert result.data == {"count": 3}
        assert adapter.calls == [("search_issues", {"q": "bug"})]

    @pytest.mark.asyncio
    async def test_tool_name_may_contain_separator(self, server_map):
        adapter = FakeAdapter("github")
        connector = ToolConnector(server_map, adapter_factory=FakeAdapterFactory({"github": adapter}))
        await connector.connect(["github"])

        await connector.invoke("github__repo__list", {})

        assert adapter.calls[0][0] == "repo__list"

    @pytest.mark.asyncio
    async def test_unconnected_server_fails(self, server_map):
        connector = ToolConnector(server_map, adapter_factory=FakeAdapterFactory({}))

        result = await connector.invoke("github__search", {})

        assert not result.success
        assert result.error == "MCP server not connected: github"

    @pytest.mark.asyncio
    async def test_server_flagged_error(self, server_map):
        adapter = FakeAdapter("github", responses={"x": {"text": "rate limited", "is_error": True}})
        connector = ToolConnector(server_map, adapter_factory=FakeAdapterFactory({"github": adapter}))
        await connector.connect(["github"])

        result = await connector.invoke("github__x", {})

        assert not result.success
        assert result.to_content() == "Error: rate limited"

    @pytest.mark.asyncio
    async def test_exception_becomes_failed_result(self, server_map):
        adapter = FakeAdapter("github", responses={"x": RuntimeError("boom")})
        connector = ToolConnector(server_map, adapter_factory=FakeAdapterFactory({"github": adapter}))
        await connector.connect(["github"])

        result = await connector.invoke("github__x", {})

        assert not result.success
        assert result.error == "boom"

    @pytest.mark.asyncio
    async def test_timeout_becomes_failed_result(self, server_map):
        adapter = FakeAdapter("github", call_delay=1.0)
        connector = ToolConnector(server_map, adapter_factory=FakeAdapterFactory({"github": adapter}))
        await connector.connect(["github"])

        result = await connector.invoke("github__slow", {}, timeout=0.01)

        assert not result.success
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_unqualified_name_fails(self, server_map):
        connector = ToolConnector(server_map, adapter_factory=FakeAdapterFactory({}))

        result = await connector.invoke("search", {})

        assert not result.success


class TestCloseAll:
    @pytest.mark.asyncio
    async def test_closes_every_adapter(self, server_map):
        adapters = {"coralogix": FakeAdapter("coralogix"), "github": FakeAdapter("github")}
        connector = ToolConnector(server_map, adapter_factory=FakeAdapterFactory(adapters))
        await connector.connect(["coralogix", "github"])

        errors = await connector.close_all()

        assert errors == []
        assert all(a.shutdown_count == 1 for a in adapters.values())
        assert connector.connected_ids == []
        assert connector.connections["github"].state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_failing_close_does_not_stop_others(self, server_map):
        class BadClose(FakeAdapter):
            async def shutdown(self):
                raise RuntimeError("close failed")

        good = FakeAdapter("github")
        connector = ToolConnector(
            server_map,
            adapter_factory=FakeAdapterFactory({"coralogix": BadClose("coralogix"), "github": good}),
        )
        await connector.connect(["coralogix", "github"])

        errors = await connector.close_all()

        assert len(errors) == 1
        assert good.shutdown_count == 1

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, server_map):
        adapter = FakeAdapter("github")
        async with ToolConnector(
            server_map, adapter_factory=FakeAdapterFactory({"github": adapter})
        ) as connector:
            await connector.connect(["github"])

        assert adapter.shutdown_count == 1


class TestParsePayload:
    def test_json(self):
        assert parse_payload('[1, 2]') == [1, 2]

    def test_plain_text(self):
        assert parse_payload("no json here") == "no json here"
