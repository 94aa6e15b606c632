"""The bridge MCP server.

:class:`MCPBridge` wires the discovery tools, the managed server registry,
tool delegation and the install dispatcher onto one :class:`ToolSurface`,
and serves that surface over stdio with the low-level MCP server.
"""

from __future__ import annotations

import logging
from typing import Any

from mcp.server.lowlevel import NotificationOptions, Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool

from mcpbridge.config.settings import BridgeSettings
from mcpbridge.discovery import DiscoveryClient
from mcpbridge.exceptions import ToolCallError
from mcpbridge.servers.command_builder import ContainerCommandBuilder
from mcpbridge.servers.delegation import DynamicToolDelegationRegistry
from mcpbridge.servers.dispatcher import InstallationModeDispatcher
from mcpbridge.servers.host_config import ExternalConfigEditor
from mcpbridge.servers.registry import ManagedServerRegistry
from mcpbridge.servers.transport import TransportNegotiator
from mcpbridge.tools.discovery_tools import DiscoveryTools
from mcpbridge.tools.management import ServerManagementTools
from mcpbridge.tools.surface import ToolSurface

logger = logging.getLogger(__name__)

SERVER_NAME = "mcpbridge"
SERVER_VERSION = "1.0.0"


class MCPBridge:
    """One bridge session: native tools plus delegated child-server tools.

    Collaborators can be injected for tests; by default they are built from
    ``settings``.
    """

    def __init__(
        self,
        settings: BridgeSettings | None = None,
        *,
        negotiator: TransportNegotiator | None = None,
        discovery_client: DiscoveryClient | None = None,
        config_editor: ExternalConfigEditor | None = None,
    ) -> None:
        self.settings = settings or BridgeSettings()
        self.negotiator = negotiator or TransportNegotiator(handshake_timeout=self.settings.handshake_timeout)
        self.discovery_client = discovery_client or DiscoveryClient(
            base_url=self.settings.base_url,
            api_key=self.settings.api_key,
            timeout=self.settings.request_timeout,
        )
        self.config_editor = config_editor or ExternalConfigEditor(self.settings.host_config_path)

        command_builder = ContainerCommandBuilder(
            engine=self.settings.container_engine,
            package_image=self.settings.package_image,
        )
        self.surface = ToolSurface()
        self.registry = ManagedServerRegistry(
            self.negotiator,
            command_builder=command_builder,
            isolate_packages=self.settings.isolate_packages,
        )
        self.delegation = DynamicToolDelegationRegistry(
            self.registry,
            self.surface,
            call_timeout=self.settings.tool_call_timeout,
        )
        self.dispatcher = InstallationModeDispatcher(
            self.registry,
            self.delegation,
            self.config_editor,
            command_builder=command_builder,
        )

        DiscoveryTools(
            self.discovery_client,
            self.negotiator,
            call_timeout=self.settings.tool_call_timeout,
        ).register_tools(self.surface)
        ServerManagementTools(
            self.dispatcher,
            self.registry,
            self.delegation,
            self.config_editor,
        ).register_tools(self.surface)
        # native tools are announced at startup, not as a change
        self.surface.consume_changes()

        self.server = self._build_server()

    def _build_server(self) -> Server:
        server: Server = Server(SERVER_NAME, version=SERVER_VERSION)

        @server.list_tools()
        async def handle_list_tools() -> list[Tool]:
            return self.surface.list_tools()

        @server.call_tool()
        async def handle_call_tool(name: str, arguments: dict[str, Any] | None) -> list[Any]:
            result = await self.surface.call_tool(name, arguments or {})
            await self._notify_tools_changed(server)
            if result.isError:
                raise ToolCallError(
                    "\n".join(getattr(block, "text", str(block)) for block in result.content)
                )
            return list(result.content)

        return server

    async def _notify_tools_changed(self, server: Server) -> None:
        if not self.surface.consume_changes():
            return
        try:
            await server.request_context.session.send_tool_list_changed()
        except Exception as exc:  # noqa: BLE001 - notification is best effort
            logger.warning("Could not send tools/list_changed: %s", exc)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None):
        """Call a tool on the surface directly, without an MCP session."""
        return await self.surface.call_tool(name, arguments)

    async def run_stdio(self) -> None:
        """Serve the bridge on stdin/stdout until the client disconnects."""
        options = self.server.create_initialization_options(
            notification_options=NotificationOptions(tools_changed=True),
        )
        logger.info("Starting %s %s on stdio", SERVER_NAME, SERVER_VERSION)
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(read_stream, write_stream, options)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Stop and drop every managed server, closing its connection."""
        for name in [server["name"] for server in self.registry.list_servers()]:
            await self.delegation.unpublish(name)
        await self.registry.shutdown()
        self.discovery_client.close()
