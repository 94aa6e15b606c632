"""Exceptions raised by the bridge core.

Every error the registry, delegation layer, dispatcher or host config editor
raises derives from :class:`BridgeError`, so the tool-call layer can render
any of them as a failed tool result without crashing the bridge.
"""


class BridgeError(Exception):
    """Base class for bridge errors."""


class DuplicateNameError(BridgeError):
    """Raised when a server or tool name is already taken."""


class NotFoundError(BridgeError):
    """Raised when a server name is unknown."""


class AlreadyRunningError(BridgeError):
    """Raised when starting a server that is already running."""


class ServerConnectionError(BridgeError, ConnectionError):
    """Raised when no transport could open a session to an endpoint.

    The last underlying failure is chained as ``__cause__``.
    """

    def __init__(self, endpoint: str, message: str) -> None:
        self.endpoint = endpoint
        super().__init__(f"Could not connect to {endpoint}: {message}")


class ServerNotRunningError(BridgeError):
    """Raised when a delegated tool is called without a live connection."""


class ConfigIOError(BridgeError):
    """Raised when the host config file is unreadable, unwritable or malformed."""


class UnsupportedOperationError(BridgeError):
    """Raised for operations the tool surface cannot perform."""


class DelegationError(DuplicateNameError):
    """Raised when a delegated tool name collides with another tool."""


class DiscoveryAPIError(BridgeError):
    """Raised when a discovery API request fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ToolCallError(BridgeError):
    """Raised to report a failed tool result through the MCP server."""
