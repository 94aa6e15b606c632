"""Server management tools for bridge and direct modes."""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel, Field

from mcpbridge.common.results import ToolResult
from mcpbridge.exceptions import BridgeError
from mcpbridge.servers.delegation import DynamicToolDelegationRegistry
from mcpbridge.servers.dispatcher import InstallationModeDispatcher, InstallationRequest
from mcpbridge.servers.host_config import ExternalConfigEditor
from mcpbridge.servers.registry import ManagedServerRegistry
from mcpbridge.tools.surface import ToolSurface

logger = logging.getLogger(__name__)

RETRACTION_NOTE = (
    "Note: {count} tool(s) stay listed until the bridge restarts; calls to them fail until the server runs again."
)


class ServerAction(str, Enum):
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    REMOVE = "remove"


class NoArgs(BaseModel):
    pass


class ControlServerArgs(BaseModel):
    name: str = Field(description="Server name")
    action: ServerAction = Field(description="Action to perform")


class RemoveDirectServerArgs(BaseModel):
    name: str = Field(description="Server name to remove from Claude Desktop config")


class ServerManagementTools:
    """Native tools that install, list and control child servers."""

    def __init__(
        self,
        dispatcher: InstallationModeDispatcher,
        registry: ManagedServerRegistry,
        delegation: DynamicToolDelegationRegistry,
        config_editor: ExternalConfigEditor,
    ) -> None:
        self.dispatcher = dispatcher
        self.registry = registry
        self.delegation = delegation
        self.config_editor = config_editor

    def install_description(self) -> str:
        if self.registry.isolate_packages:
            packages = "In bridge mode npm packages run inside a throwaway container."
        else:
            packages = (
                "In bridge mode npm packages run with npx on the host; "
                "set MCPBRIDGE_ISOLATE_PACKAGES=1 to run them in a container."
            )
        return (
            "Install an MCP server from an npm package or docker command. Bridge mode runs it now and "
            f"exposes its tools as <name>_<tool>; direct mode adds it to Claude Desktop's config. {packages}"
        )

    def register_tools(self, surface: ToolSurface) -> None:
        surface.register_model_tool(
            "install_mcp_server",
            self.install_description(),
            InstallationRequest,
            self.install_server,
        )
        surface.register_model_tool(
            "list_managed_servers",
            "List servers managed by the bridge with their status and tools.",
            NoArgs,
            self.list_managed_servers,
        )
        surface.register_model_tool(
            "control_mcp_server",
            "Start, stop, restart or remove a bridge-managed server.",
            ControlServerArgs,
            self.control_server,
        )
        surface.register_model_tool(
            "list_direct_servers",
            "List servers installed in Claude Desktop's config (direct mode).",
            NoArgs,
            self.list_direct_servers,
        )
        surface.register_model_tool(
            "remove_direct_server",
            "Remove a server from Claude Desktop's config (direct mode).",
            RemoveDirectServerArgs,
            self.remove_direct_server,
        )

    async def install_server(self, request: InstallationRequest) -> ToolResult:
        try:
            outcome = await self.dispatcher.install(request)
        except Exception as exc:  # noqa: BLE001 - reported to the client
            logger.error("Failed to install %s: %s", request.name, exc)
            return ToolResult.from_error(f"Failed to install {request.name}: {exc}")
        return ToolResult.from_success(outcome.message())

    async def list_managed_servers(self, _: NoArgs) -> ToolResult:
        return ToolResult.from_success(self.registry.list_servers())

    async def control_server(self, args: ControlServerArgs) -> ToolResult:
        name, action = args.name, args.action
        if not self.registry.has_server(name):
            return ToolResult.from_error(
                f"Server '{name}' not found. Use list_managed_servers to see available servers."
            )

        retracted: list[str] = []
        published: list[str] = []
        try:
            if action is ServerAction.START:
                server = await self.registry.start(name)
                published = await self.dispatcher.publish_started(name, server)
            elif action is ServerAction.STOP:
                await self.registry.stop(name)
                retracted = await self.delegation.unpublish(name)
            elif action is ServerAction.RESTART:
                retracted = await self.delegation.unpublish(name)
                server = await self.registry.restart(name)
                published = await self.dispatcher.publish_started(name, server)
                retracted = [tool for tool in retracted if tool not in published]
            else:
                await self.registry.remove(name)
                retracted = await self.delegation.unpublish(name)
        except Exception as exc:  # noqa: BLE001 - reported to the client
            logger.error("Failed to %s server %s: %s", action.value, name, exc)
            if action is not ServerAction.START:
                await self.delegation.unpublish(name)
            return ToolResult.from_error(f"Failed to {action.value} server '{name}': {exc}")

        lines = [f"{action.value.capitalize()} of server '{name}' succeeded"]
        if published:
            lines.append(f"Tools available: {', '.join(published)}")
        if retracted:
            lines.append(RETRACTION_NOTE.format(count=len(retracted)))
        return ToolResult.from_success("\n".join(lines))

    async def list_direct_servers(self, _: NoArgs) -> ToolResult:
        try:
            entries = await self.config_editor.list_servers()
        except BridgeError as exc:
            return ToolResult.from_error(f"Failed to read Claude Desktop config: {exc}")
        return ToolResult.from_success([{**entry.model_dump(), "mode": "direct"} for entry in entries])

    async def remove_direct_server(self, args: RemoveDirectServerArgs) -> ToolResult:
        try:
            removed = await self.config_editor.remove_server(args.name)
        except BridgeError as exc:
            return ToolResult.from_error(f"Failed to remove server: {exc}")
        if not removed:
            return ToolResult.from_error(f"Server '{args.name}' not found in Claude Desktop config.")
        return ToolResult.from_success(
            f"Removed '{args.name}' from Claude Desktop config.\n"
            "Please restart Claude Desktop for changes to take effect."
        )
