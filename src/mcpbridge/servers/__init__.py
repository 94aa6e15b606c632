"""Managed child servers, tool delegation and installation modes."""

from mcpbridge.servers.command_builder import ContainerCommandBuilder, SourceType
from mcpbridge.servers.delegation import DelegatedTool, DynamicToolDelegationRegistry
from mcpbridge.servers.dispatcher import (
    InstallationModeDispatcher,
    InstallationRequest,
    InstallMode,
    InstallOutcome,
)
from mcpbridge.servers.host_config import ExternalConfigEditor, ExternalServerEntry
from mcpbridge.servers.registry import ManagedServer, ManagedServerRegistry, ServerStatus
from mcpbridge.servers.transport import (
    LiveConnection,
    LocalProcessEndpoint,
    RemoteEndpoint,
    TransportNegotiator,
)

__all__ = [
    "ContainerCommandBuilder",
    "DelegatedTool",
    "DynamicToolDelegationRegistry",
    "ExternalConfigEditor",
    "ExternalServerEntry",
    "InstallMode",
    "InstallOutcome",
    "InstallationModeDispatcher",
    "InstallationRequest",
    "LiveConnection",
    "LocalProcessEndpoint",
    "ManagedServer",
    "ManagedServerRegistry",
    "RemoteEndpoint",
    "ServerStatus",
    "SourceType",
    "TransportNegotiator",
]
