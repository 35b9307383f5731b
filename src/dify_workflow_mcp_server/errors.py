"""Error types raised by the Dify workflow bridge."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DifyWorkflowError(Exception):
    """Base class for all bridge errors."""


class ConfigurationInvalid(DifyWorkflowError):
    """The configuration cannot be used (no base URL, no API keys...)."""


class BackendUnavailable(DifyWorkflowError):
    """A Dify endpoint answered with a non-success status or could not be reached."""

    def __init__(
        self,
        endpoint: str,
        status_code: Optional[int] = None,
        status_text: str = "",
        detail: str = "",
    ):
        self.endpoint = endpoint
        self.status_code = status_code
        self.status_text = status_text
        self.detail = detail
        if status_code is not None:
            message = f"{endpoint} API error: {status_code} {status_text}".rstrip()
        else:
            message = f"{endpoint} API unreachable: {detail}"
        super().__init__(message)


class MalformedResponse(DifyWorkflowError):
    """A Dify endpoint returned a body that is not the expected JSON."""

    def __init__(self, endpoint: str, detail: str = ""):
        self.endpoint = endpoint
        self.detail = detail
        super().__init__(f"Failed to parse {endpoint} API response: {detail}")


class NoBackendsAvailable(DifyWorkflowError):
    """Discovery failed for every configured API key."""

    def __init__(self, failed: int):
        self.failed = failed
        super().__init__(
            f"Failed to fetch workflow info for any of the {failed} provided API keys"
        )


class UnknownTool(DifyWorkflowError):
    """An invocation named a tool that is not registered."""

    def __init__(self, tool_name: str, available: Optional[List[str]] = None):
        self.tool_name = tool_name
        self.available = list(available or [])
        super().__init__(f"No API key found for workflow: '{tool_name}'")


class MissingArguments(DifyWorkflowError):
    """A tool call arrived without an arguments mapping."""

    def __init__(self, request: Any):
        self.request = request
        super().__init__(f"Workflow parameters are undefined: {request!r}")


class RegistryStateError(DifyWorkflowError):
    """The registry was asked to do something its current state does not allow."""


class InvocationError(BaseModel):
    """Describes a failed tool invocation, returned instead of raised."""

    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    error_type: str
    message: str

    @classmethod
    def from_exception(
        cls, tool_name: str, arguments: Optional[Dict[str, Any]], exc: Exception
    ) -> "InvocationError":
        return cls(
            tool_name=tool_name,
            arguments=dict(arguments or {}),
            error_type=type(exc).__name__,
            message=str(exc),
        )

    def __str__(self) -> str:
        return f"Error executing tool '{self.tool_name}': {self.error_type}: {self.message}"
