"""mcpbridge - an MCP server that discovers, installs and proxies other MCP servers."""

from mcpbridge.common.results import ToolResult
from mcpbridge.config.settings import BridgeSettings
from mcpbridge.server import MCPBridge

__version__ = "1.0.0"

__all__ = [
    "BridgeSettings",
    "MCPBridge",
    "ToolResult",
]
