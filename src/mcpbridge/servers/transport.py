"""Open client sessions to MCP endpoints.

Network endpoints are tried with an ordered list of transports, the first
successful handshake wins. Local processes only speak stdio, so their list
has a single entry and no fallback.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any

from mcp.client.session import ClientSession
from mcp.client.sse import sse_client
from mcp.client.stdio import StdioServerParameters, get_default_environment, stdio_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import CallToolResult, Implementation, Tool

from mcpbridge.exceptions import ServerConnectionError, ServerNotRunningError
from mcpbridge.servers.constants import (
    DEFAULT_CLOSE_TIMEOUT,
    DEFAULT_HANDSHAKE_TIMEOUT,
    ERROR_HANDSHAKE_TIMEOUT,
    ERROR_TOOL_CALL_TIMEOUT,
)

logger = logging.getLogger(__name__)

CLIENT_INFO = Implementation(name="mcpbridge-client", version="1.0.0")


@dataclass
class RemoteEndpoint:
    """An MCP server reachable over HTTP."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)

    def describe(self) -> str:
        return self.url


@dataclass
class LocalProcessEndpoint:
    """An MCP server launched as a child process speaking stdio."""

    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] | None = None

    @classmethod
    def from_argv(cls, argv: Sequence[str], env: dict[str, str] | None = None) -> LocalProcessEndpoint:
        if not argv:
            raise ValueError("Cannot launch an empty command")
        return cls(command=argv[0], args=list(argv[1:]), env=env)

    def describe(self) -> str:
        return shlex.join([self.command, *self.args])


EndpointDescriptor = RemoteEndpoint | LocalProcessEndpoint

# A transport factory returns an async context manager yielding a tuple whose
# first two items are the read and write streams.
TransportFactory = Callable[[Any], AbstractAsyncContextManager[tuple]]


def _streamable_http(endpoint: RemoteEndpoint) -> AbstractAsyncContextManager[tuple]:
    return streamablehttp_client(endpoint.url, headers=endpoint.headers or None)


def _sse(endpoint: RemoteEndpoint) -> AbstractAsyncContextManager[tuple]:
    return sse_client(endpoint.url, headers=endpoint.headers or None)


def _stdio(endpoint: LocalProcessEndpoint) -> AbstractAsyncContextManager[tuple]:
    params = StdioServerParameters(
        command=endpoint.command,
        args=endpoint.args,
        env={**get_default_environment(), **(endpoint.env or {})},
    )
    return stdio_client(params)


NETWORK_TRANSPORTS: tuple[tuple[str, TransportFactory], ...] = (
    ("streamable_http", _streamable_http),
    ("sse", _sse),
)
LOCAL_TRANSPORTS: tuple[tuple[str, TransportFactory], ...] = (("stdio", _stdio),)


class LiveConnection:
    """An open client session owned by whoever called :meth:`TransportNegotiator.connect`.

    The transport context is entered and exited inside one background task,
    so the connection can be opened by one tool call and closed by another.
    """

    def __init__(
        self,
        transport_cm: Callable[[], AbstractAsyncContextManager[tuple]],
        transport: str,
        endpoint: str,
    ) -> None:
        self._transport_cm = transport_cm
        self.transport = transport
        self.endpoint = endpoint
        self.session: ClientSession | None = None
        self._task: asyncio.Task | None = None
        self._ready = asyncio.Event()
        self._stop = asyncio.Event()
        self._error: BaseException | None = None

    @property
    def is_open(self) -> bool:
        return self.session is not None and self._task is not None and not self._task.done()

    async def _runner(self) -> None:
        try:
            async with self._transport_cm() as streams:
                read_stream, write_stream = streams[0], streams[1]
                async with ClientSession(read_stream, write_stream, client_info=CLIENT_INFO) as session:
                    await session.initialize()
                    self.session = session
                    self._ready.set()
                    await self._stop.wait()
        except Exception as exc:  # noqa: BLE001 - reported to the opener
            if not self._ready.is_set():
                self._error = exc
            else:
                logger.warning("Connection to %s (%s) ended: %s", self.endpoint, self.transport, exc)
        finally:
            self.session = None
            self._ready.set()

    async def open(self, timeout: float = DEFAULT_HANDSHAKE_TIMEOUT) -> LiveConnection:
        """Start the transport and complete the MCP handshake."""
        if self._task is not None:
            raise RuntimeError(f"Connection to {self.endpoint} already opened")
        self._task = asyncio.create_task(self._runner(), name=f"mcp-{self.transport}-{self.endpoint}")
        try:
            async with asyncio.timeout(timeout):
                await self._ready.wait()
        except TimeoutError:
            await self.close(timeout=0)
            raise TimeoutError(
                ERROR_HANDSHAKE_TIMEOUT.format(endpoint=self.endpoint, transport=self.transport, timeout=timeout)
            ) from None
        if self._error is not None:
            error = self._error
            await self.close(timeout=0)
            raise error
        return self

    def _require_session(self) -> ClientSession:
        if not self.is_open:
            raise ServerNotRunningError(f"Connection to {self.endpoint} is closed")
        assert self.session is not None
        return self.session

    async def list_tools(self) -> list[Tool]:
        result = await self._require_session().list_tools()
        return list(result.tools or [])

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> CallToolResult:
        session = self._require_session()
        logger.debug("Calling %s on %s", name, self.endpoint)
        if timeout is None:
            return await session.call_tool(name, arguments or {})
        try:
            async with asyncio.timeout(timeout):
                return await session.call_tool(name, arguments or {})
        except TimeoutError:
            raise TimeoutError(
                ERROR_TOOL_CALL_TIMEOUT.format(tool=name, endpoint=self.endpoint, timeout=timeout)
            ) from None

    async def close(self, timeout: float = DEFAULT_CLOSE_TIMEOUT) -> None:
        """Close the session and its transport. Safe to call more than once."""
        task = self._task
        if task is None:
            return
        self._stop.set()
        if not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            except TimeoutError:
                logger.warning("Timeout closing connection to %s, cancelling", self.endpoint)
                task.cancel()
        self.session = None

    async def __aenter__(self) -> LiveConnection:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class TransportNegotiator:
    """Connect to an endpoint with one attempt per candidate transport.

    Args:
        handshake_timeout: Seconds allowed for each transport's handshake
        network_transports: Ordered transports for :class:`RemoteEndpoint`
        local_transports: Transports for :class:`LocalProcessEndpoint`
    """

    def __init__(
        self,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        network_transports: Sequence[tuple[str, TransportFactory]] = NETWORK_TRANSPORTS,
        local_transports: Sequence[tuple[str, TransportFactory]] = LOCAL_TRANSPORTS,
    ) -> None:
        self.handshake_timeout = handshake_timeout
        self.network_transports = tuple(network_transports)
        self.local_transports = tuple(local_transports)

    def _transports_for(self, endpoint: EndpointDescriptor) -> tuple[tuple[str, TransportFactory], ...]:
        if isinstance(endpoint, LocalProcessEndpoint):
            return self.local_transports
        if isinstance(endpoint, RemoteEndpoint):
            return self.network_transports
        raise TypeError(f"Unsupported endpoint descriptor: {type(endpoint).__name__}")

    async def connect(self, endpoint: EndpointDescriptor) -> LiveConnection:
        """Return an open connection, or raise :class:`ServerConnectionError`."""
        transports = self._transports_for(endpoint)
        description = endpoint.describe()
        last_exc: BaseException | None = None

        for index, (name, factory) in enumerate(transports):
            logger.debug("Connecting to %s via %s", description, name)
            connection = LiveConnection(lambda f=factory: f(endpoint), transport=name, endpoint=description)
            try:
                return await connection.open(self.handshake_timeout)
            except Exception as exc:  # noqa: BLE001 - next transport or surfaced below
                last_exc = exc
                if index + 1 < len(transports):
                    logger.warning(
                        "Transport %s failed for %s (%s); falling back to %s",
                        name,
                        description,
                        exc,
                        transports[index + 1][0],
                    )

        if last_exc is None:
            raise ServerConnectionError(description, "no transports configured")
        raise ServerConnectionError(description, str(last_exc) or type(last_exc).__name__) from last_exc

