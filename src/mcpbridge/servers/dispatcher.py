"""Route install requests to bridge mode or direct mode.

Bridge mode registers the server with the :class:`ManagedServerRegistry` and,
when auto-started, publishes its tools under the ``{name}_`` prefix for the
current session. Direct mode only writes an entry to the host config file;
the host must be restarted and the tools then appear under their own names.

A name may exist in only one of the two stores. Both stores are checked and
the winning write is made under one lock, so concurrent installs in this
process cannot slip the same name into both.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mcpbridge.exceptions import DuplicateNameError
from mcpbridge.servers.command_builder import ContainerCommandBuilder, SourceType
from mcpbridge.servers.delegation import DynamicToolDelegationRegistry
from mcpbridge.servers.host_config import ExternalConfigEditor
from mcpbridge.servers.registry import ManagedServer, ManagedServerRegistry, validate_server_name

logger = logging.getLogger(__name__)


class InstallMode(str, Enum):
    BRIDGE = "bridge"
    DIRECT = "direct"


SOURCE_TYPE_CHOICES = ["npm", "docker", "package", "container"]


def _advertise_source_type_aliases(schema: dict[str, Any]) -> None:
    # clients validate arguments against this schema before the aliases are parsed
    schema["properties"]["type"] = {
        "type": "string",
        "enum": SOURCE_TYPE_CHOICES,
        "title": "Type",
        "description": "Installation type: npm/package or docker/container",
    }


class InstallationRequest(BaseModel):
    """One install call. Consumed once by the dispatcher.

    ``name`` is only checked as a tool prefix in bridge mode; direct-mode
    names go to the host config as given.
    """

    model_config = ConfigDict(populate_by_name=True, json_schema_extra=_advertise_source_type_aliases)

    name: str = Field(description="Local name for the server")
    source_type: SourceType = Field(
        alias="type",
        description="Installation type: npm/package or docker/container",
    )
    command: str = Field(description="Docker command or npm package name")
    mode: InstallMode = Field(
        default=InstallMode.BRIDGE,
        description="Installation mode: bridge (dynamic) or direct (Claude Desktop config)",
    )
    auto_start: bool = Field(default=True, description="Start server immediately after install (bridge mode only)")
    global_install: bool = Field(
        default=False,
        description="Launch a globally installed npm binary instead of npx (direct mode only)",
    )
    env: dict[str, str] = Field(default_factory=dict, description="Environment variables for the server")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name cannot be empty")
        return v

    @field_validator("source_type", mode="before")
    @classmethod
    def parse_source_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return SourceType.from_string(v)
        return v

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Command cannot be empty")
        return v.strip()


@dataclass
class InstallOutcome:
    """What an install did, for rendering to the caller."""

    name: str
    mode: InstallMode
    source_type: SourceType
    command: list[str]
    status: str | None = None
    tool_names: list[str] = field(default_factory=list)
    config_path: str | None = None

    def message(self) -> str:
        if self.mode is InstallMode.DIRECT:
            return (
                f"Installed {self.name} in Claude Desktop config (direct mode)\n"
                f"Config updated at: {self.config_path}\n"
                "Please restart Claude Desktop to use the server.\n\n"
                f"Server will be available as: {self.name}"
            )
        header = f"Installed {self.name} ({self.source_type.value}, bridge mode)"
        if self.status == "running":
            tools = ", ".join(self.tool_names) or "none"
            return f"{header}\nServer started and tools available with prefix: {self.name}_\nTools: {tools}"
        return f"{header}\nUse control_mcp_server to start."


class InstallationModeDispatcher:
    """Single entry point for installs in either mode."""

    def __init__(
        self,
        registry: ManagedServerRegistry,
        delegation: DynamicToolDelegationRegistry,
        config_editor: ExternalConfigEditor,
        command_builder: ContainerCommandBuilder | None = None,
    ) -> None:
        self.registry = registry
        self.delegation = delegation
        self.config_editor = config_editor
        self.command_builder = command_builder or registry.command_builder
        self._names_lock = asyncio.Lock()

    async def install(self, request: InstallationRequest) -> InstallOutcome:
        if request.mode is InstallMode.DIRECT:
            return await self._install_direct(request)
        return await self._install_bridge(request)

    async def publish_started(self, name: str, server: ManagedServer) -> list[str]:
        """Publish the tools of a server that just started.

        If publishing fails the server is marked ``error`` and its connection
        closed, so no running child is left without reachable tools.
        """
        try:
            return await self.delegation.publish(name, server)
        except Exception as exc:
            await self.registry.mark_failed(name, exc)
            raise

    async def _install_bridge(self, request: InstallationRequest) -> InstallOutcome:
        validate_server_name(request.name)
        async with self._names_lock:
            if await self.config_editor.has_server(request.name):
                raise DuplicateNameError(
                    f"Server '{request.name}' already exists in Claude Desktop config (direct mode). "
                    "Remove it with remove_direct_server or use a different name."
                )
            server = await self.registry.install(
                request.name, request.source_type, request.command, request.env, auto_start=False
            )

        outcome = InstallOutcome(
            name=request.name,
            mode=InstallMode.BRIDGE,
            source_type=request.source_type,
            command=list(server.command),
            status=server.status.value,
        )
        if not request.auto_start:
            return outcome

        await self.registry.start(request.name)
        outcome.tool_names = await self.publish_started(request.name, server)
        outcome.status = server.status.value
        return outcome

    async def _install_direct(self, request: InstallationRequest) -> InstallOutcome:
        command, args = self.command_builder.direct_entry(
            request.source_type, request.command, request.env, global_install=request.global_install
        )
        async with self._names_lock:
            if self.registry.has_server(request.name):
                raise DuplicateNameError(
                    f"Server '{request.name}' is already managed by the bridge (bridge mode). "
                    "Remove it with control_mcp_server or use a different name."
                )
            await self.config_editor.add_server(request.name, command, args, request.env)

        logger.info("Installed %s in direct mode: %s %s", request.name, command, " ".join(args))
        return InstallOutcome(
            name=request.name,
            mode=InstallMode.DIRECT,
            source_type=request.source_type,
            command=[command, *args],
            config_path=str(self.config_editor.get_config_path()),
        )
