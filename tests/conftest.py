"""Test fixtures and configuration."""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from dify_workflow_mcp_server.client import BackendConnector, BackendDescriptor
from dify_workflow_mcp_server.config import Config
from dify_workflow_mcp_server.errors import BackendUnavailable


class FakeConnector(BackendConnector):
    """In-memory connector keyed by API key."""

    def __init__(
        self,
        infos: Dict[str, Dict[str, Any]],
        parameters: Dict[str, Dict[str, Any]],
        runs: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.infos = infos
        self.parameters = parameters
        self.runs = runs or {}
        self.calls: List[Tuple[str, str, Any]] = []

    async def fetch_info(self, api_key: str) -> BackendDescriptor:
        self.calls.append(("info", api_key, None))
        if api_key not in self.infos:
            raise BackendUnavailable("/info", status_code=401, status_text="Unauthorized")
        return BackendDescriptor(**self.infos[api_key])

    async def fetch_parameters(self, api_key: str) -> Dict[str, Any]:
        self.calls.append(("parameters", api_key, None))
        if api_key not in self.parameters:
            raise BackendUnavailable(
                "/parameters", status_code=500, status_text="Internal Server Error"
            )
        return self.parameters[api_key]

    async def run_workflow(
        self, api_key: str, inputs: Dict[str, Any]
    ) -> Dict[str, Any]:
        self.calls.append(("run", api_key, inputs))
        if api_key not in self.runs:
            raise BackendUnavailable(
                "/workflows/run", status_code=400, status_text="Bad Request"
            )
        return self.runs[api_key]


@pytest.fixture
def fake_connector_factory():
    return FakeConnector


@pytest.fixture
def config():
    """Configuration pointing at a fake Dify instance."""
    return Config(base_url="https://dify.example.com/v1", api_keys=["app-key-one-1234"])


@pytest.fixture
def mock_env_vars():
    """Mock environment variables for testing."""
    return {
        "DIFY_BASE_URL": "https://dify.example.com/v1",
        "DIFY_API_KEYS": "app-key-one-1234, app-key-two-5678",
        "SERVER_NAME": "test-server",
        "DEFAULT_USER_ID": "tester",
    }

