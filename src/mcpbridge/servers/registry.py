"""Registry of child MCP servers supervised by the bridge.

Each :class:`ManagedServer` moves through ``installing -> running <-> stopped``
with ``error`` reachable from ``installing`` or ``running``. Only explicit
``start``/``stop``/``restart``/``remove`` calls move a server; nothing is
retried automatically.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from mcp.types import CallToolResult, Tool

from mcpbridge.exceptions import AlreadyRunningError, DuplicateNameError, NotFoundError
from mcpbridge.servers.command_builder import ContainerCommandBuilder, SourceType
from mcpbridge.servers.transport import EndpointDescriptor, LocalProcessEndpoint

logger = logging.getLogger(__name__)

SERVER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,47}$")


class Connection(Protocol):
    """What the registry needs from an open client connection."""

    @property
    def is_open(self) -> bool: ...

    async def list_tools(self) -> list[Tool]: ...

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None, timeout: float | None = None
    ) -> CallToolResult: ...

    async def close(self) -> None: ...


class Connector(Protocol):
    async def connect(self, endpoint: EndpointDescriptor) -> Connection: ...


class ServerStatus(str, Enum):
    INSTALLING = "installing"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass
class ManagedServer:
    """One child server and its live state."""

    name: str
    source_type: SourceType
    command: list[str]
    env: dict[str, str] = field(default_factory=dict)
    status: ServerStatus = ServerStatus.INSTALLING
    tool_names: list[str] = field(default_factory=list)
    live_connection: Connection | None = None
    last_error: str | None = None

    def view(self) -> dict[str, Any]:
        """Return a read-only snapshot suitable for display."""
        data: dict[str, Any] = {
            "name": self.name,
            "source_type": self.source_type.value,
            "status": self.status.value,
            "tool_names": list(self.tool_names),
            "command": list(self.command),
        }
        if self.last_error:
            data["error"] = self.last_error
        return data


def validate_server_name(name: str) -> str:
    """Return ``name`` if it can prefix tool names, else raise ``ValueError``."""
    if not SERVER_NAME_PATTERN.match(name or ""):
        raise ValueError(
            f"Invalid server name '{name}': use 1-48 letters, digits, '_' or '-', starting with a letter or digit"
        )
    return name


class ManagedServerRegistry:
    """Owns every managed server of one bridge session.

    Check-and-insert happens under a registry-wide lock. Lifecycle operations
    on one server are serialized by a per-server lock, while different
    servers proceed independently.

    Args:
        connector: Opens local-process connections (a ``TransportNegotiator``)
        command_builder: Resolves install commands into argument vectors
        isolate_packages: Run package servers inside a container
    """

    def __init__(
        self,
        connector: Connector,
        command_builder: ContainerCommandBuilder | None = None,
        isolate_packages: bool = False,
    ) -> None:
        self.connector = connector
        self.command_builder = command_builder or ContainerCommandBuilder()
        self.isolate_packages = isolate_packages
        self._servers: dict[str, ManagedServer] = {}
        self._server_locks: dict[str, asyncio.Lock] = {}
        self._registry_lock = asyncio.Lock()

    def has_server(self, name: str) -> bool:
        return name in self._servers

    def get_server(self, name: str) -> ManagedServer:
        server = self._servers.get(name)
        if server is None:
            available = ", ".join(self._servers) or "none"
            raise NotFoundError(f"Server '{name}' not found. Managed servers: {available}")
        return server

    def list_servers(self) -> list[dict[str, Any]]:
        return [server.view() for server in self._servers.values()]

    async def install(
        self,
        name: str,
        source_type: SourceType | str,
        command: str,
        env: Mapping[str, str] | None = None,
        auto_start: bool = False,
    ) -> ManagedServer:
        """Register a server in ``installing`` state and optionally start it.

        Raises:
            DuplicateNameError: If ``name`` is already registered
            ValueError: If the name or command is invalid
        """
        validate_server_name(name)
        if isinstance(source_type, str):
            source_type = SourceType.from_string(source_type)
        isolate = self.isolate_packages and source_type is SourceType.PACKAGE
        argv = self.command_builder.build(source_type, command, env, isolate=isolate)

        async with self._registry_lock:
            if name in self._servers:
                raise DuplicateNameError(
                    f"Server '{name}' already exists. Use control_mcp_server to manage it."
                )
            server = ManagedServer(name=name, source_type=source_type, command=argv, env=dict(env or {}))
            self._servers[name] = server
            self._server_locks[name] = asyncio.Lock()
        logger.info("Installed managed server %s (%s): %s", name, source_type.value, " ".join(argv))

        if auto_start:
            await self.start(name)
        return server

    async def start(self, name: str) -> ManagedServer:
        server = self.get_server(name)
        async with self._server_locks[name]:
            self._ensure_registered(name, server)
            await self._start_locked(server)
        return server

    async def stop(self, name: str) -> ManagedServer:
        server = self.get_server(name)
        async with self._server_locks[name]:
            self._ensure_registered(name, server)
            await self._stop_locked(server)
        return server

    async def restart(self, name: str) -> ManagedServer:
        server = self.get_server(name)
        async with self._server_locks[name]:
            self._ensure_registered(name, server)
            await self._stop_locked(server)
            await self._start_locked(server)
        return server

    async def mark_failed(self, name: str, error: BaseException) -> ManagedServer:
        """Close the server's connection and record ``error`` against it."""
        server = self.get_server(name)
        async with self._server_locks[name]:
            self._ensure_registered(name, server)
            connection = server.live_connection
            server.live_connection = None
            if connection is not None:
                await connection.close()
            server.status = ServerStatus.ERROR
            server.last_error = str(error) or type(error).__name__
        logger.error("Marked %s as failed: %s", name, server.last_error)
        return server

    async def remove(self, name: str) -> ManagedServer:
        """Stop the server and drop it from the registry."""
        server = self.get_server(name)
        async with self._server_locks[name]:
            self._ensure_registered(name, server)
            await self._stop_locked(server)
            async with self._registry_lock:
                del self._servers[name]
                del self._server_locks[name]
        logger.info("Removed managed server %s", name)
        return server

    async def shutdown(self) -> None:
        """Stop and drop every managed server."""
        names = list(self._servers)
        if names:
            logger.info("Shutting down managed servers: %s", ", ".join(names))
        for name in names:
            try:
                await self.remove(name)
            except NotFoundError:
                continue

    def _ensure_registered(self, name: str, server: ManagedServer) -> None:
        # a concurrent remove may have won the per-server lock first
        if self._servers.get(name) is not server:
            raise NotFoundError(f"Server '{name}' was removed")

    async def _start_locked(self, server: ManagedServer) -> None:
        if server.status is ServerStatus.RUNNING:
            raise AlreadyRunningError(f"Server '{server.name}' is already running")

        endpoint = LocalProcessEndpoint.from_argv(server.command, server.env or None)
        connection: Connection | None = None
        try:
            connection = await self.connector.connect(endpoint)
            tools = await connection.list_tools()
        except Exception as exc:
            server.status = ServerStatus.ERROR
            server.last_error = str(exc) or type(exc).__name__
            server.live_connection = None
            logger.error("Failed to start %s: %s", server.name, server.last_error)
            if connection is not None:
                await connection.close()
            raise

        server.live_connection = connection
        server.tool_names = [tool.name for tool in tools]
        server.status = ServerStatus.RUNNING
        server.last_error = None
        logger.info("Started %s: tools=%s", server.name, server.tool_names)

    async def _stop_locked(self, server: ManagedServer) -> None:
        connection = server.live_connection
        server.live_connection = None
        if connection is not None:
            await connection.close()
        server.status = ServerStatus.STOPPED
        logger.info("Stopped %s", server.name)
