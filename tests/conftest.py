"""Pytest configuration and shared fakes.

Child servers are replaced by :class:`FakeConnection` objects handed out by
:class:`FakeConnector`, so no process or network is ever started.
"""

import json
from typing import Any

import pytest
from mcp.types import CallToolResult, TextContent, Tool

from mcpbridge.exceptions import ServerConnectionError
from mcpbridge.servers.command_builder import ContainerCommandBuilder
from mcpbridge.servers.delegation import DynamicToolDelegationRegistry
from mcpbridge.servers.dispatcher import InstallationModeDispatcher
from mcpbridge.servers.host_config import ExternalConfigEditor
from mcpbridge.servers.registry import ManagedServerRegistry
from mcpbridge.tools.surface import ToolSurface


def make_tool(name: str, description: str | None = None) -> Tool:
    return Tool(
        name=name,
        description=description or f"The {name} tool",
        inputSchema={"type": "object", "properties": {"path": {"type": "string"}}},
    )


class FakeConnection:
    """Stands in for an open session to a child server."""

    def __init__(self, tool_names: list[str], list_error: Exception | None = None):
        self.tools = [make_tool(name) for name in tool_names]
        self.list_error = list_error
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False
        self.result: CallToolResult | None = None

    @property
    def is_open(self) -> bool:
        return not self.closed

    async def list_tools(self) -> list[Tool]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.tools)

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None, timeout: float | None = None
    ) -> CallToolResult:
        self.calls.append((name, dict(arguments or {})))
        if self.result is not None:
            return self.result
        text = f"{name}:{json.dumps(arguments or {}, sort_keys=True)}"
        return CallToolResult(content=[TextContent(type="text", text=text)])

    async def close(self, timeout: float = 5.0) -> None:
        self.closed = True


class FakeConnector:
    """Hands out fake connections keyed by the last argv token.

    For ``npx -y <pkg>`` the key is the package, for a container command it
    is the image or last argument.
    """

    def __init__(self, catalogs: dict[str, list[str]] | None = None, default_tools: list[str] | None = None):
        self.catalogs = catalogs or {}
        self.default_tools = default_tools if default_tools is not None else ["echo"]
        self.failures: dict[str, Exception] = {}
        self.list_failures: dict[str, Exception] = {}
        self.endpoints: list[Any] = []
        self.connections: list[FakeConnection] = []

    @staticmethod
    def key_for(endpoint: Any) -> str:
        argv = [endpoint.command, *endpoint.args]
        return argv[-1]

    async def connect(self, endpoint: Any) -> FakeConnection:
        self.endpoints.append(endpoint)
        key = self.key_for(endpoint)
        if key in self.failures:
            raise ServerConnectionError(endpoint.describe(), str(self.failures[key])) from self.failures[key]
        connection = FakeConnection(self.catalogs.get(key, self.default_tools), self.list_failures.get(key))
        self.connections.append(connection)
        return connection


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector(
        catalogs={
            "@modelcontextprotocol/server-filesystem": ["read_file", "write_file"],
            "mcp/github": ["create_issue"],
        }
    )


@pytest.fixture
def registry(connector: FakeConnector) -> ManagedServerRegistry:
    return ManagedServerRegistry(connector, command_builder=ContainerCommandBuilder())


@pytest.fixture
def surface() -> ToolSurface:
    return ToolSurface()


@pytest.fixture
def delegation(registry: ManagedServerRegistry, surface: ToolSurface) -> DynamicToolDelegationRegistry:
    return DynamicToolDelegationRegistry(registry, surface)


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "Claude" / "claude_desktop_config.json"


@pytest.fixture
def config_editor(config_path) -> ExternalConfigEditor:
    return ExternalConfigEditor(config_path)


@pytest.fixture
def dispatcher(registry, delegation, config_editor) -> InstallationModeDispatcher:
    return InstallationModeDispatcher(registry, delegation, config_editor)


@pytest.fixture
def fake_connection_factory():
    """Return a factory for standalone fake connections."""
    return FakeConnection
