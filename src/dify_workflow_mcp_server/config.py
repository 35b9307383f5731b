"""Configuration management for the Dify Workflow MCP Server.

This module handles loading and validating the server's configuration: the
Dify base URL shared by every workflow app, the list of app API keys (one
per exposed workflow), and a few request and server settings. Values can be
supplied in a YAML file and are overlaid by environment variables, which is
how MCP hosts usually configure stdio servers.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigurationInvalid


def mask_api_key(api_key: str) -> str:
    """Mask an API key for log output, keeping only the first and last 4 characters."""
    if len(api_key) <= 8:
        return "********"
    return f"{api_key[:4]}...{api_key[-4:]}"


def split_api_keys(value: Optional[str]) -> List[str]:
    """Split a comma-separated key list, dropping blanks."""
    if not value:
        return []
    return [key.strip() for key in value.split(",") if key.strip()]


class ServerConfig(BaseModel):
    """MCP server identity reported to the host."""

    name: str = Field(default="dify-workflow-mcp-server")
    version: str = Field(default="1.0.0")


class RequestConfig(BaseModel):
    """Settings sent with every workflow run."""

    response_mode: str = Field(
        default="blocking", description="Dify response mode for /workflows/run"
    )
    user_id: str = Field(default="test-abc", description="Dify end-user identifier")
    timeout: float = Field(default=60.0, description="HTTP timeout in seconds")


class Config(BaseModel):
    """Main configuration class."""

    config_path: Optional[str] = Field(
        default=None, description="Path to the loaded config file"
    )
    base_url: str = Field(default="", description="Dify API base URL")
    api_keys: List[str] = Field(
        default_factory=list, description="One Dify app API key per workflow"
    )
    server: ServerConfig = Field(default_factory=ServerConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    log_level: str = Field(default="INFO")

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("api_keys", mode="before")
    @classmethod
    def _coerce_api_keys(cls, value: Any) -> Any:
        # YAML may carry a single comma-separated string
        if isinstance(value, str):
            return split_api_keys(value)
        if value is None:
            return []
        return value

    @classmethod
    def load(
        cls,
        config_path: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "Config":
        """Load configuration from an optional YAML file and the environment."""
        config_data: Dict[str, Any] = {}
        if config_path:
            path = Path(config_path)
            if not path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")

            with open(path, "r") as f:
                config_data = yaml.safe_load(f) or {}

            if not isinstance(config_data, dict):
                raise ValueError(f"Invalid configuration in {config_path}: {config_data}")

        config = cls(**config_data)
        config.config_path = config_path
        return config.apply_env(os.environ if env is None else env)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        """Build a configuration from environment variables only."""
        return cls.load(None, env)

    def apply_env(self, env: Mapping[str, str]) -> "Config":
        """Return a copy with environment variable overrides applied."""
        data = self.model_dump()

        if env.get("DIFY_BASE_URL"):
            data["base_url"] = env["DIFY_BASE_URL"]

        env_keys = split_api_keys(env.get("DIFY_API_KEYS"))
        if env_keys:
            data["api_keys"] = env_keys
        # Legacy single-key variable only applies when nothing else was given
        if not data["api_keys"] and env.get("DIFY_API_KEY"):
            data["api_keys"] = [env["DIFY_API_KEY"].strip()]

        if env.get("SERVER_NAME"):
            data["server"]["name"] = env["SERVER_NAME"]
        if env.get("SERVER_VERSION"):
            data["server"]["version"] = env["SERVER_VERSION"]
        if env.get("DEFAULT_USER_ID"):
            data["request"]["user_id"] = env["DEFAULT_USER_ID"]
        if env.get("DIFY_RESPONSE_MODE"):
            data["request"]["response_mode"] = env["DIFY_RESPONSE_MODE"]
        if env.get("LOG_LEVEL"):
            data["log_level"] = env["LOG_LEVEL"]

        return type(self)(**data)

    def validate_config(self) -> List[str]:
        """Return a list of configuration problems (empty when valid)."""
        problems: List[str] = []
        if not self.base_url:
            problems.append("Environment variable DIFY_BASE_URL is not set")
        if not self.api_keys:
            problems.append(
                "No API keys found. Please set either DIFY_API_KEY or "
                "DIFY_API_KEYS environment variable."
            )
        return problems

    def validate_strict(self) -> None:
        """Raise ConfigurationInvalid if the configuration is unusable."""
        problems = self.validate_config()
        if problems:
            raise ConfigurationInvalid(
                "Invalid configuration: " + "; ".join(problems)
            )

    def masked_api_keys(self) -> List[str]:
        """Get the configured API keys in masked form."""
        return [mask_api_key(key) for key in self.api_keys]
