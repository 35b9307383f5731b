"""Tests for the Dify Workflow MCP Server wiring and CLI."""

from unittest.mock import patch

import httpx
import mcp.types as types
import pytest
from click.testing import CliRunner

from dify_workflow_mcp_server.client import DifyApiClient
from dify_workflow_mcp_server.config import Config
from dify_workflow_mcp_server.errors import ConfigurationInvalid, NoBackendsAvailable
from dify_workflow_mcp_server.main import DifyWorkflowMCPServer, main

KEYS = ["app-search-key-0001", "app-other-key-0002"]
RUN_REQUESTS = []


def dify_handler(request: httpx.Request) -> httpx.Response:
    """Fake Dify instance: both apps are named 'search'."""
    api_key = request.headers["Authorization"].removeprefix("Bearer ")
    path = request.url.path
    if api_key not in KEYS:
        return httpx.Response(401, json={"message": "invalid key"})
    if path.endswith("/info"):
        return httpx.Response(200, json={"name": "search"})
    if path.endswith("/parameters"):
        if api_key == KEYS[0]:
            return httpx.Response(
                200,
                json={"parameters": [{"name": "query", "type": "string", "required": True}]},
            )
        return httpx.Response(200, json={})
    if path.endswith("/workflows/run"):
        RUN_REQUESTS.append(api_key)
        if api_key == KEYS[1]:
            return httpx.Response(500, text="boom")
        return httpx.Response(200, json={"data": {"outputs": {"key": api_key[-4:]}}})
    return httpx.Response(404)


def make_server(api_keys=KEYS):
    config = Config(base_url="https://dify.example.com/v1", api_keys=api_keys)
    client = DifyApiClient(config, transport=httpx.MockTransport(dify_handler))
    return DifyWorkflowMCPServer(config, client=client)


class TestDifyWorkflowMCPServer:
    def test_server_construction(self):
        server = make_server()

        assert server.registry is not None
        assert server.dispatcher.registry is server.registry
        assert server.mcp is None  # Not initialized until initialize() is called

    @pytest.mark.asyncio
    async def test_initialize_registers_handlers(self):
        server = make_server()
        await server.initialize()

        assert types.ListToolsRequest in server.mcp.request_handlers
        assert types.CallToolRequest in server.mcp.request_handlers
        await server.client.aclose()

    @pytest.mark.asyncio
    async def test_list_tools_request(self):
        server = make_server()
        await server.initialize()
        handler = server.mcp.request_handlers[types.ListToolsRequest]

        response = await handler(types.ListToolsRequest(method="tools/list"))

        tools = response.root.tools
        assert [tool.name for tool in tools] == ["search", "search-1"]
        assert tools[0].inputSchema["required"] == ["query"]
        await server.client.aclose()

    @pytest.mark.asyncio
    async def test_call_tool_request_returns_text(self):
        server = make_server()
        await server.initialize()
        handler = server.mcp.request_handlers[types.CallToolRequest]

        response = await handler(
            types.CallToolRequest(
                method="tools/call",
                params=types.CallToolRequestParams(
                    name="search", arguments={"query": "hello"}
                ),
            )
        )

        assert response.root.isError is False
        assert response.root.content[0].text == '{"key": "0001"}'
        await server.client.aclose()

    @pytest.mark.asyncio
    async def test_call_tool_request_without_arguments(self):
        """A tools/call request with no arguments never reaches the backend."""
        RUN_REQUESTS.clear()
        server = make_server()
        await server.initialize()
        handler = server.mcp.request_handlers[types.CallToolRequest]

        response = await handler(
            types.CallToolRequest(
                method="tools/call",
                params=types.CallToolRequestParams(name="search"),
            )
        )

        assert response.root.isError is True
        assert "MissingArguments" in response.root.content[0].text
        assert "tools/call" in response.root.content[0].text
        assert RUN_REQUESTS == []
        await server.client.aclose()

    @pytest.mark.asyncio
    async def test_call_tool_request_backend_error(self):
        server = make_server()
        await server.initialize()
        handler = server.mcp.request_handlers[types.CallToolRequest]

        response = await handler(
            types.CallToolRequest(
                method="tools/call",
                params=types.CallToolRequestParams(name="search-1", arguments={}),
            )
        )

        assert response.root.isError is True
        assert "search-1" in response.root.content[0].text
        assert "BackendUnavailable" in response.root.content[0].text
        assert KEYS[1] not in response.root.content[0].text
        await server.client.aclose()

    @pytest.mark.asyncio
    async def test_initialize_invalid_config(self):
        server = make_server(api_keys=[])

        with pytest.raises(ConfigurationInvalid):
            await server.initialize()
        assert server.mcp is None
        await server.client.aclose()

    @pytest.mark.asyncio
    async def test_initialize_all_backends_fail(self):
        server = make_server(api_keys=["bad-key-00000000"])

        with pytest.raises(NoBackendsAvailable):
            await server.initialize()
        await server.client.aclose()


class TestCli:
    def test_list_tools(self):
        """--list-tools discovers and prints the tools without serving."""
        transport = httpx.MockTransport(dify_handler)
        env = {
            "DIFY_BASE_URL": "https://dify.example.com/v1",
            "DIFY_API_KEYS": ",".join(KEYS),
        }
        with patch(
            "dify_workflow_mcp_server.main.DifyApiClient",
            side_effect=lambda cfg: DifyApiClient(cfg, transport=transport),
        ):
            result = CliRunner().invoke(main, ["--list-tools"], env=env)

        assert result.exit_code == 0, result.output
        assert "name: search\n" in result.output
        assert "name: search-1\n" in result.output
        assert KEYS[0] not in result.output

    def test_missing_configuration_exits_non_zero(self):
        env = {"DIFY_BASE_URL": "", "DIFY_API_KEYS": "", "DIFY_API_KEY": ""}

        result = CliRunner().invoke(main, ["--list-tools"], env=env)

        assert result.exit_code == 1

    def test_missing_config_file(self):
        result = CliRunner().invoke(main, ["--config", "nope.yaml"])

        assert result.exit_code != 0
        assert isinstance(result.exception, FileNotFoundError)
