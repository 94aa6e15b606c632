"""Bridge settings model.

Settings are plain pydantic models so they can be built from keyword
arguments in tests and from the environment at startup.
"""

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, field_validator

DEFAULT_BASE_URL = "https://mcplookup.org/api/v1"

_TRUTHY = {"1", "true", "yes"}


class BridgeSettings(BaseModel):
    """Runtime settings for one bridge process."""

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    host_config_path: str | None = None
    handshake_timeout: float = 30.0
    tool_call_timeout: float = 60.0
    request_timeout: float = 30.0
    isolate_packages: bool = False
    container_engine: str = "docker"
    package_image: str = "node:20-alpine"

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v:
            raise ValueError("base_url cannot be empty")
        return v.rstrip("/")

    @field_validator("handshake_timeout", "tool_call_timeout", "request_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "BridgeSettings":
        """Build settings from environment variables.

        Explicit ``overrides`` that are not ``None`` win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        api_key = env.get("MCPLOOKUP_API_KEY") or env.get("MCP_API_KEY")
        if api_key:
            values["api_key"] = api_key
        if env.get("MCPLOOKUP_BASE_URL"):
            values["base_url"] = env["MCPLOOKUP_BASE_URL"]
        if env.get("MCPBRIDGE_HOST_CONFIG"):
            values["host_config_path"] = env["MCPBRIDGE_HOST_CONFIG"]
        if env.get("MCPBRIDGE_HANDSHAKE_TIMEOUT"):
            values["handshake_timeout"] = env["MCPBRIDGE_HANDSHAKE_TIMEOUT"]
        if env.get("MCPBRIDGE_TOOL_CALL_TIMEOUT"):
            values["tool_call_timeout"] = env["MCPBRIDGE_TOOL_CALL_TIMEOUT"]
        if env.get("MCPBRIDGE_REQUEST_TIMEOUT"):
            values["request_timeout"] = env["MCPBRIDGE_REQUEST_TIMEOUT"]
        if "MCPBRIDGE_ISOLATE_PACKAGES" in env:
            values["isolate_packages"] = env["MCPBRIDGE_ISOLATE_PACKAGES"].lower() in _TRUTHY
        if env.get("MCPBRIDGE_CONTAINER_ENGINE"):
            values["container_engine"] = env["MCPBRIDGE_CONTAINER_ENGINE"]
        if env.get("MCPBRIDGE_PACKAGE_IMAGE"):
            values["package_image"] = env["MCPBRIDGE_PACKAGE_IMAGE"]

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
