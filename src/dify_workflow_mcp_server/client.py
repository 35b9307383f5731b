"""HTTP client for the Dify workflow app API."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from .config import Config, mask_api_key
from .errors import BackendUnavailable, MalformedResponse

logger = logging.getLogger(__name__)

INFO_ENDPOINT = "/info"
PARAMETERS_ENDPOINT = "/parameters"
RUN_ENDPOINT = "/workflows/run"


class BackendDescriptor(BaseModel):
    """Response of the /info endpoint."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    description: Optional[str] = None


class BackendConnector(ABC):
    """The three remote operations the registry needs from one workflow backend."""

    @abstractmethod
    async def fetch_info(self, api_key: str) -> BackendDescriptor:
        """Fetch the workflow name and description."""

    @abstractmethod
    async def fetch_parameters(self, api_key: str) -> Dict[str, Any]:
        """Fetch the raw parameter metadata of the workflow."""

    @abstractmethod
    async def run_workflow(
        self, api_key: str, inputs: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Run the workflow and return the decoded response body."""


class DifyApiClient(BackendConnector):
    """Talks to a Dify instance on behalf of any number of app API keys."""

    def __init__(
        self,
        config: Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.request.timeout,
            transport=transport,
            headers={
                "User-Agent": f"{config.server.name}/{config.server.version}",
                "Content-Type": "application/json",
            },
        )

    def _auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    async def fetch_info(self, api_key: str) -> BackendDescriptor:
        data = await self._request_json("GET", INFO_ENDPOINT, api_key)
        if not isinstance(data, dict):
            self._log_parse_error(INFO_ENDPOINT, api_key, "expected a JSON object")
            raise MalformedResponse(INFO_ENDPOINT, "expected a JSON object")
        try:
            return BackendDescriptor(**data)
        except ValidationError as e:
            self._log_parse_error(INFO_ENDPOINT, api_key, str(e))
            raise MalformedResponse(INFO_ENDPOINT, str(e)) from e

    async def fetch_parameters(self, api_key: str) -> Dict[str, Any]:
        data = await self._request_json("GET", PARAMETERS_ENDPOINT, api_key)
        if not isinstance(data, dict):
            self._log_parse_error(
                PARAMETERS_ENDPOINT, api_key, "expected a JSON object"
            )
            raise MalformedResponse(PARAMETERS_ENDPOINT, "expected a JSON object")
        return data

    async def run_workflow(
        self, api_key: str, inputs: Dict[str, Any]
    ) -> Dict[str, Any]:
        payload = {
            "inputs": inputs,
            "response_mode": self.config.request.response_mode,
            "user": self.config.request.user_id,
        }
        data = await self._request_json("POST", RUN_ENDPOINT, api_key, json=payload)
        if not isinstance(data, dict):
            self._log_parse_error(RUN_ENDPOINT, api_key, "expected a JSON object")
            raise MalformedResponse(RUN_ENDPOINT, "expected a JSON object")
        return data

    async def _request_json(
        self, method: str, endpoint: str, api_key: str, **kwargs: Any
    ) -> Any:
        """Send one request and return the decoded JSON body."""
        logger.debug(
            f"{method} {endpoint} with API key (masked): {mask_api_key(api_key)}"
        )
        try:
            response = await self._client.request(
                method, endpoint, headers=self._auth_headers(api_key), **kwargs
            )
        except httpx.HTTPError as e:
            logger.error(f"{endpoint} API request failed: {e}")
            logger.error(f"API Key (masked): {mask_api_key(api_key)}")
            raise BackendUnavailable(endpoint, detail=str(e)) from e

        logger.debug(f"{endpoint} response status: {response.status_code}")

        if not response.is_success:
            logger.error(f"{endpoint} API error code: {response.status_code}")
            logger.error(f"{endpoint} API error message: {response.reason_phrase}")
            logger.error(f"{endpoint} API error response: {response.text}")
            logger.error(f"API Key (masked): {mask_api_key(api_key)}")
            raise BackendUnavailable(
                endpoint,
                status_code=response.status_code,
                status_text=response.reason_phrase,
                detail=response.text,
            )

        try:
            return json.loads(response.text)
        except ValueError as e:
            self._log_parse_error(endpoint, api_key, str(e))
            logger.error(f"Response text: {response.text}")
            raise MalformedResponse(endpoint, str(e)) from e

    def _log_parse_error(self, endpoint: str, api_key: str, detail: str) -> None:
        logger.error(f"{endpoint} JSON parse error: {detail}")
        logger.error(f"API Key (masked): {mask_api_key(api_key)}")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DifyApiClient":
        await self._client.__aenter__()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self._client.__aexit__(*args)
