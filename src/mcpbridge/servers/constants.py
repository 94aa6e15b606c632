"""Constants for managed servers and delegated tools."""

# Delegated tools are published as ``{server}{sep}{tool}``
DELEGATED_TOOL_SEPARATOR = "_"

PACKAGE_RUNNER = ["npx", "-y"]

# Default timeout values
DEFAULT_HANDSHAKE_TIMEOUT = 30.0
DEFAULT_CLOSE_TIMEOUT = 5.0

# Error message constants
ERROR_HANDSHAKE_TIMEOUT = "Handshake with {endpoint} over {transport} timed out after {timeout:.1f} seconds"
ERROR_TOOL_CALL_TIMEOUT = "Timeout calling tool '{tool}' on {endpoint} after {timeout:.1f} seconds"
ERROR_NOT_RUNNING = (
    "Server '{server}' is not running. Start it with control_mcp_server(name='{server}', action='start')."
)
ERROR_RETRACTED = (
    "Tool '{tool}' was retracted because server '{server}' is {status}. "
    "It stays listed until the bridge restarts."
)
