"""Main entry point for the Dify Workflow MCP Server."""

import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

import click
import mcp.types as types
import yaml
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from .client import DifyApiClient
from .config import Config
from .dispatcher import Dispatcher
from .errors import ConfigurationInvalid, NoBackendsAvailable
from .registry import ToolRegistry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class DifyWorkflowMCPServer:
    """Exposes every configured Dify workflow as an MCP tool."""

    def __init__(self, config: Config, client: Optional[DifyApiClient] = None):
        """Initialize the server with configuration."""
        self.config = config
        self.client = client or DifyApiClient(config)
        self.registry = ToolRegistry(self.client)
        self.dispatcher = Dispatcher(self.registry)
        self.mcp: Optional[Server] = None  # Will be initialized in initialize()

    async def initialize(self) -> None:
        """Discover the workflows and register them as tools."""
        self.config.validate_strict()
        await self.registry.initialize(self.config.api_keys)

        self.mcp = Server(
            self.config.server.name,
            version=self.config.server.version,
            instructions=(
                "This server exposes Dify workflows as tools. Each tool runs one "
                "workflow in blocking mode and returns its outputs."
            ),
        )
        self._register_handlers()

    def _register_handlers(self) -> None:
        assert self.mcp is not None, "MCP server must be initialized first"

        # Raw handlers: the decorator API replaces absent arguments with {}
        self.mcp.request_handlers[types.ListToolsRequest] = self._handle_list_tools
        self.mcp.request_handlers[types.CallToolRequest] = self._handle_call_tool
        for tool in self.dispatcher.list_tools():
            logger.info(f"Registered MCP tool '{tool.name}'")

    async def _handle_list_tools(
        self, req: types.ListToolsRequest
    ) -> types.ServerResult:
        return types.ServerResult(
            types.ListToolsResult(tools=self.dispatcher.list_tools())
        )

    async def _handle_call_tool(
        self, req: types.CallToolRequest
    ) -> types.ServerResult:
        """Forward a tools/call request, passing absent arguments through as None."""
        result = await self.dispatcher.call_tool(
            req.params.name,
            req.params.arguments,
            request=req.model_dump(mode="json", exclude_none=True),
        )
        return types.ServerResult(result)

    async def run(self) -> None:
        """Run the MCP server over stdio."""
        try:
            await self.initialize()
            assert self.mcp is not None, "MCP server must be initialized first"
            async with stdio_server() as (read_stream, write_stream):
                await self.mcp.run(
                    read_stream,
                    write_stream,
                    self.mcp.create_initialization_options(),
                )
        finally:
            await self.client.aclose()


def tools_as_yaml(server: DifyWorkflowMCPServer) -> str:
    """Render the discovered tools for the --list-tools option."""
    tools: List[Dict[str, Any]] = [
        tool.model_dump(exclude_none=True) for tool in server.dispatcher.list_tools()
    ]
    return yaml.dump({"tools": tools}, sort_keys=False, default_flow_style=False)


@click.command()
@click.option(
    "--config", "-c", default=None, help="Optional YAML configuration file path"
)
@click.option("--log-level", default=None, help="Logging level (overrides config)")
@click.option(
    "--list-tools",
    is_flag=True,
    help="Discover the workflows, print the resulting tools and exit",
)
def main(config: Optional[str], log_level: Optional[str], list_tools: bool) -> None:
    """Start the Dify Workflow MCP Server."""
    app_config = Config.load(config)

    # stderr keeps stdout free for the stdio transport
    logging.basicConfig(
        level=(log_level or app_config.log_level).upper(),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    logger.info(
        f"Loaded configuration: base_url={app_config.base_url}, "
        f"api_keys={app_config.masked_api_keys()}"
    )

    async def _main() -> None:
        server = DifyWorkflowMCPServer(app_config)

        if list_tools:
            try:
                await server.initialize()
            finally:
                await server.client.aclose()
            click.echo(tools_as_yaml(server))
            return

        await server.run()

    try:
        asyncio.run(_main())
    except (ConfigurationInvalid, NoBackendsAvailable) as e:
        logger.error("Failed to start server:")
        logger.error(f"Error message: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
