"""MCP list/call handlers backed by the tool registry."""

import json
import logging
from typing import Any, Dict, List, Optional

from mcp.types import CallToolResult, TextContent, Tool

from .errors import InvocationError, MissingArguments
from .registry import ToolRegistry

logger = logging.getLogger(__name__)


def to_text(output: Any) -> str:
    """Render a workflow output as MCP text content."""
    if isinstance(output, str):
        return output
    return json.dumps(output, ensure_ascii=False, default=str)


class Dispatcher:
    """Answers MCP tool requests using a ToolRegistry."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    def list_tools(self) -> List[Tool]:
        return self.registry.list_tools()

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]],
        request: Any = None,
    ) -> CallToolResult:
        """Invoke a tool and wrap its output as text content.

        Errors never raise; they come back as ``isError`` results whose
        text describes the failure.
        """
        if arguments is None:
            error = MissingArguments(request if request is not None else {"name": name})
            logger.error(
                "Workflow parameters are undefined. Check request content."
            )
            logger.error(str(error))
            return self._error_result(
                InvocationError.from_exception(name, None, error)
            )

        result = await self.registry.invoke(name, arguments)
        if result.error is not None:
            return self._error_result(result.error)

        return CallToolResult(
            content=[TextContent(type="text", text=to_text(result.output))],
            isError=False,
        )

    def _error_result(self, error: InvocationError) -> CallToolResult:
        return CallToolResult(
            content=[TextContent(type="text", text=str(error))],
            isError=True,
        )
