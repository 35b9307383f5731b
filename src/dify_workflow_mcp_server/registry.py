"""Registry mapping MCP tool names to Dify workflow API keys.

The registry runs discovery once: for every configured API key it fetches
the workflow's ``/info`` and ``/parameters`` metadata, converts the
parameters into an MCP input schema and registers a uniquely named tool.
Later invocations are routed by exact tool name back to the API key that
produced the tool.

Discovery is tolerant of individual failures. A key whose backend cannot
be reached or answers with garbage is logged and skipped; only when every
key fails does discovery fail as a whole.
"""

import enum
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from mcp.types import Tool
from pydantic import BaseModel

from .client import BackendConnector
from .config import mask_api_key
from .errors import (
    ConfigurationInvalid,
    DifyWorkflowError,
    InvocationError,
    NoBackendsAvailable,
    RegistryStateError,
    UnknownTool,
)
from .schema import normalize, parse_parameter_schema

logger = logging.getLogger(__name__)

DEFAULT_TOOL_NAME = "dify-workflow"
DEFAULT_TOOL_DESCRIPTION = "Execute Dify Workflow"


class RegistryState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class InvocationResult(BaseModel):
    """Outcome of a tool invocation: either ``output`` or ``error`` is meaningful."""

    tool_name: str
    output: Any = None
    error: Optional[InvocationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def extract_output(response: Dict[str, Any]) -> Any:
    """Pick the useful part of a workflow run response.

    Prefers ``data.outputs`` (only when ``data`` is an object), then a
    top-level ``result``, and otherwise returns the response unchanged.
    """
    data = response.get("data")
    if isinstance(data, dict) and data.get("outputs") is not None:
        return data["outputs"]
    if response.get("result") is not None:
        return response["result"]
    return response


def unique_tool_name(base_name: str, taken: Sequence[str]) -> str:
    """Return ``base_name`` or the first free ``base_name-N`` suffix."""
    if base_name not in taken:
        return base_name
    counter = 1
    while f"{base_name}-{counter}" in taken:
        counter += 1
    return f"{base_name}-{counter}"


class ToolRegistry:
    """Discovers Dify workflows and routes tool calls to their API keys."""

    def __init__(self, connector: BackendConnector):
        self.connector = connector
        self._state = RegistryState.UNINITIALIZED
        self._tools: List[Tool] = []
        self._api_keys: Dict[str, str] = {}

    @property
    def state(self) -> RegistryState:
        return self._state

    async def initialize(self, api_keys: Sequence[str]) -> None:
        """Discover one tool per API key.

        Raises:
            ConfigurationInvalid: no API keys were given.
            NoBackendsAvailable: discovery failed for every key.
            RegistryStateError: the registry was already initialized.
        """
        if self._state != RegistryState.UNINITIALIZED:
            raise RegistryStateError(
                f"Registry cannot be initialized from state '{self._state.value}'"
            )

        self._state = RegistryState.INITIALIZING

        if not api_keys:
            self._state = RegistryState.FAILED
            raise ConfigurationInvalid("No API keys configured")

        success = 0
        failed = 0
        for api_key in api_keys:
            try:
                tool = await self._discover(api_key)
            except DifyWorkflowError as e:
                logger.error(
                    f"Error fetching workflow info for API key "
                    f"{mask_api_key(api_key)}: {e}"
                )
                failed += 1
                continue

            self._tools.append(tool)
            self._api_keys[tool.name] = api_key
            success += 1
            logger.info(
                f"Registered workflow tool '{tool.name}' "
                f"(params: {list(tool.inputSchema.get('properties', {}).keys())})"
            )

        if not self._tools:
            self._state = RegistryState.FAILED
            raise NoBackendsAvailable(failed)

        self._state = RegistryState.READY
        logger.info(
            f"Successfully fetched workflow info: {success}, Failed: {failed}"
        )

    async def _discover(self, api_key: str) -> Tool:
        info = await self.connector.fetch_info(api_key)
        raw_parameters = await self.connector.fetch_parameters(api_key)

        schema = normalize(parse_parameter_schema(raw_parameters))
        base_name = info.name or DEFAULT_TOOL_NAME
        tool_name = unique_tool_name(base_name, self.tool_names())
        if tool_name != base_name:
            logger.info(
                f"Workflow name '{base_name}' already taken, "
                f"registering as '{tool_name}'"
            )

        return Tool(
            name=tool_name,
            description=info.description or DEFAULT_TOOL_DESCRIPTION,
            inputSchema=schema.to_input_schema(),
        )

    def list_tools(self) -> List[Tool]:
        """Get the discovered tools (empty until discovery succeeded)."""
        if self._state != RegistryState.READY:
            return []
        return list(self._tools)

    def tool_names(self) -> List[str]:
        return list(self._api_keys.keys())

    def get_api_key_map(self) -> Dict[str, str]:
        """Get a copy of the tool name to API key mapping."""
        return dict(self._api_keys)

    async def invoke(
        self, tool_name: str, arguments: Dict[str, Any]
    ) -> InvocationResult:
        """Run the workflow behind ``tool_name``.

        Failures are returned in the result rather than raised.
        """
        api_key = self._api_keys.get(tool_name)
        if api_key is None:
            error = UnknownTool(tool_name, self.tool_names())
            logger.error(str(error))
            logger.error(f"Available workflows: {', '.join(error.available)}")
            logger.error(f"Parameters: {json.dumps(arguments, default=str)}")
            return InvocationResult(
                tool_name=tool_name,
                error=InvocationError.from_exception(tool_name, arguments, error),
            )

        try:
            response = await self.connector.run_workflow(api_key, arguments)
        except DifyWorkflowError as e:
            logger.error(f"Error executing tool '{tool_name}': {e}")
            logger.error(f"API Key (masked): {mask_api_key(api_key)}")
            logger.error(f"Parameters: {json.dumps(arguments, default=str)}")
            return InvocationResult(
                tool_name=tool_name,
                error=InvocationError.from_exception(tool_name, arguments, e),
            )

        return InvocationResult(tool_name=tool_name, output=extract_output(response))
