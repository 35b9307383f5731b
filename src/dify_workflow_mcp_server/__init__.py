"""Package initialization for dify_workflow_mcp_server."""

__version__ = "1.0.0"
__description__ = "MCP server exposing Dify workflows as dynamically discovered tools"

from .client import DifyApiClient
from .config import Config
from .dispatcher import Dispatcher
from .registry import ToolRegistry

__all__ = [
    "Config",
    "DifyApiClient",
    "Dispatcher",
    "ToolRegistry",
]
