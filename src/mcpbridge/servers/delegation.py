"""Republish the tools of running managed servers as bridge tools.

A child tool ``read_file`` on server ``files`` is published as
``files_read_file``; calls are forwarded with the original name and
unchanged arguments over the server's live connection.

The tool surface cannot forget a tool once announced, so unpublishing only
tags the records as retracted. Calls to a retracted tool fail fast with
:class:`ServerNotRunningError` instead of reaching a stale connection.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from mcp.types import CallToolResult, Tool

from mcpbridge.exceptions import DelegationError, NotFoundError, ServerNotRunningError
from mcpbridge.servers.constants import DELEGATED_TOOL_SEPARATOR, ERROR_NOT_RUNNING, ERROR_RETRACTED
from mcpbridge.servers.registry import ManagedServer, ManagedServerRegistry, ServerStatus
from mcpbridge.tools.surface import ToolSurface

logger = logging.getLogger(__name__)


@dataclass
class DelegatedTool:
    """Routing record for one proxy tool."""

    qualified_name: str
    owner_server: str
    tool_name: str
    description: str | None = None
    input_schema: dict[str, Any] = field(default_factory=dict)
    retracted: bool = False


def qualify(server_name: str, tool_name: str, separator: str = DELEGATED_TOOL_SEPARATOR) -> str:
    return f"{server_name}{separator}{tool_name}"


class DynamicToolDelegationRegistry:
    """Maps qualified tool names to the managed server that owns them.

    Args:
        registry: Source of the live server records
        surface: The bridge tool surface proxies are announced on
        call_timeout: Seconds allowed for each forwarded call, or None
        separator: Joins server and tool names
    """

    def __init__(
        self,
        registry: ManagedServerRegistry,
        surface: ToolSurface,
        call_timeout: float | None = None,
        separator: str = DELEGATED_TOOL_SEPARATOR,
    ) -> None:
        self.registry = registry
        self.surface = surface
        self.call_timeout = call_timeout
        self.separator = separator
        self._tools: dict[str, DelegatedTool] = {}
        self._lock = asyncio.Lock()

    def get(self, qualified_name: str) -> DelegatedTool | None:
        return self._tools.get(qualified_name)

    def records(self) -> list[DelegatedTool]:
        return list(self._tools.values())

    def active_tool_names(self, server_name: str | None = None) -> list[str]:
        return [
            record.qualified_name
            for record in self._tools.values()
            if not record.retracted and (server_name is None or record.owner_server == server_name)
        ]

    async def publish(self, server_name: str, server: ManagedServer) -> list[str]:
        """Announce a proxy for every tool in ``server.tool_names``.

        Publishing again for the same server replaces the schemas in place,
        so a qualified name never has two proxies. Tools the server no
        longer reports are retracted.

        Returns:
            The qualified names now routed to the server

        Raises:
            ServerNotRunningError: If the server has no live connection
            DelegationError: If a qualified name belongs to another tool
        """
        connection = server.live_connection
        if server.status is not ServerStatus.RUNNING or connection is None:
            raise ServerNotRunningError(ERROR_NOT_RUNNING.format(server=server_name))

        catalog: dict[str, Tool] = {tool.name: tool for tool in await connection.list_tools()}

        async with self._lock:
            planned: list[DelegatedTool] = []
            conflicts: list[str] = []
            for tool_name in server.tool_names:
                tool = catalog.get(tool_name)
                if tool is None:
                    logger.warning("Server %s no longer reports tool %s, skipping", server_name, tool_name)
                    continue
                qualified = qualify(server_name, tool_name, self.separator)
                existing = self._tools.get(qualified)
                if existing is not None:
                    if existing.owner_server != server_name or existing.tool_name != tool_name:
                        conflicts.append(qualified)
                        continue
                elif self.surface.has_tool(qualified):
                    conflicts.append(qualified)
                    continue
                planned.append(
                    DelegatedTool(
                        qualified_name=qualified,
                        owner_server=server_name,
                        tool_name=tool_name,
                        description=tool.description,
                        input_schema=dict(tool.inputSchema or {"type": "object", "properties": {}}),
                    )
                )

            if conflicts:
                raise DelegationError(
                    f"Cannot publish tools of '{server_name}', names already in use: {', '.join(conflicts)}"
                )

            published = {record.qualified_name for record in planned}
            for record in planned:
                self._tools[record.qualified_name] = record
                definition = Tool(
                    name=record.qualified_name,
                    description=f"[{server_name}] {record.description or ''}".rstrip(),
                    inputSchema=record.input_schema,
                )
                self.surface.register_tool(definition, self._make_proxy(record.qualified_name), replace=True)

            for record in self._tools.values():
                if record.owner_server == server_name and record.qualified_name not in published:
                    record.retracted = True

        names = sorted(published)
        logger.info("Published %d tools for %s: %s", len(names), server_name, names)
        return names

    async def unpublish(self, server_name: str) -> list[str]:
        """Retract every proxy owned by ``server_name``.

        The tools stay advertised on the surface; only routing is cleared.

        Returns:
            The qualified names that were retracted by this call
        """
        async with self._lock:
            retracted = []
            for record in self._tools.values():
                if record.owner_server == server_name and not record.retracted:
                    record.retracted = True
                    retracted.append(record.qualified_name)
        if retracted:
            logger.info("Retracted %d tools for %s: %s", len(retracted), server_name, retracted)
        return retracted

    def _make_proxy(self, qualified_name: str):
        async def proxy(arguments: dict[str, Any]) -> CallToolResult:
            return await self.dispatch(qualified_name, arguments)

        return proxy

    async def dispatch(self, qualified_name: str, arguments: dict[str, Any] | None = None) -> CallToolResult:
        """Forward a call for ``qualified_name`` to its owning server.

        Raises:
            NotFoundError: If the name was never delegated
            ServerNotRunningError: If the tool is retracted or its server is not running
        """
        record = self._tools.get(qualified_name)
        if record is None:
            raise NotFoundError(f"Tool '{qualified_name}' is not a delegated tool")

        try:
            server = self.registry.get_server(record.owner_server)
        except NotFoundError:
            server = None
        status = server.status.value if server is not None else "removed"

        if record.retracted:
            raise ServerNotRunningError(
                ERROR_RETRACTED.format(tool=qualified_name, server=record.owner_server, status=status)
            )

        connection = server.live_connection if server is not None else None
        if server is None or server.status is not ServerStatus.RUNNING or connection is None or not connection.is_open:
            raise ServerNotRunningError(ERROR_NOT_RUNNING.format(server=record.owner_server))

        logger.debug("Forwarding %s to %s as %s", qualified_name, record.owner_server, record.tool_name)
        return await connection.call_tool(record.tool_name, arguments or {}, timeout=self.call_timeout)
