"""Tests for transport negotiation and live connections."""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from mcp.types import CallToolResult, ListToolsResult, TextContent, Tool

from mcpbridge.exceptions import ServerConnectionError, ServerNotRunningError
from mcpbridge.servers.transport import (
    LocalProcessEndpoint,
    RemoteEndpoint,
    TransportNegotiator,
)


class FakeSession:
    """Replaces ClientSession; needs no real streams."""

    call_delay = 0.0

    def __init__(self, read_stream, write_stream, client_info=None):
        self.client_info = client_info

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def initialize(self):
        return None

    async def list_tools(self):
        return ListToolsResult(tools=[Tool(name="ping", inputSchema={"type": "object"})])

    async def call_tool(self, name, arguments):
        if self.call_delay:
            await asyncio.sleep(self.call_delay)
        return CallToolResult(content=[TextContent(type="text", text=f"{name}:{arguments}")])


class SlowSession(FakeSession):
    call_delay = 1.0


class RecordingFactory:
    """Transport factory that yields dummy streams or fails."""

    def __init__(self, error: Exception | None = None, hang: bool = False):
        self.error = error
        self.hang = hang
        self.endpoints = []

    def __call__(self, endpoint):
        self.endpoints.append(endpoint)

        @asynccontextmanager
        async def transport():
            if self.hang:
                await asyncio.sleep(10)
            if self.error is not None:
                raise self.error
            yield (object(), object())

        return transport()


@pytest.fixture
def fake_session():
    with patch("mcpbridge.servers.transport.ClientSession", FakeSession):
        yield


@pytest.mark.asyncio
async def test_first_network_transport_wins(fake_session):
    http, sse = RecordingFactory(), RecordingFactory()
    negotiator = TransportNegotiator(network_transports=[("streamable_http", http), ("sse", sse)])

    connection = await negotiator.connect(RemoteEndpoint("https://example.com/mcp"))
    try:
        assert connection.transport == "streamable_http"
        assert connection.is_open
        assert [tool.name for tool in await connection.list_tools()] == ["ping"]
        assert sse.endpoints == []
    finally:
        await connection.close()
    assert not connection.is_open


@pytest.mark.asyncio
async def test_falls_back_to_sse(fake_session):
    http = RecordingFactory(error=ConnectionRefusedError("405 Method Not Allowed"))
    sse = RecordingFactory()
    negotiator = TransportNegotiator(network_transports=[("streamable_http", http), ("sse", sse)])

    endpoint = RemoteEndpoint("https://example.com/sse", headers={"Authorization": "Bearer t"})
    connection = await negotiator.connect(endpoint)
    try:
        assert connection.transport == "sse"
        assert http.endpoints == [endpoint]
        assert sse.endpoints == [endpoint]
    finally:
        await connection.close()


@pytest.mark.asyncio
async def test_all_transports_fail(fake_session):
    last_error = OSError("connection reset")
    negotiator = TransportNegotiator(
        network_transports=[
            ("streamable_http", RecordingFactory(error=ConnectionRefusedError("refused"))),
            ("sse", RecordingFactory(error=last_error)),
        ]
    )

    with pytest.raises(ServerConnectionError) as excinfo:
        await negotiator.connect(RemoteEndpoint("https://down.example.com/mcp"))

    assert isinstance(excinfo.value, ConnectionError)
    assert excinfo.value.endpoint == "https://down.example.com/mcp"
    assert excinfo.value.__cause__ is last_error
    assert "connection reset" in str(excinfo.value)


@pytest.mark.asyncio
async def test_local_process_has_no_fallback(fake_session):
    stdio = RecordingFactory(error=FileNotFoundError("npx not found"))
    network = RecordingFactory()
    negotiator = TransportNegotiator(
        network_transports=[("streamable_http", network)],
        local_transports=[("stdio", stdio)],
    )

    with pytest.raises(ServerConnectionError, match="npx -y pkg"):
        await negotiator.connect(LocalProcessEndpoint("npx", ["-y", "pkg"]))
    assert len(stdio.endpoints) == 1
    assert network.endpoints == []


@pytest.mark.asyncio
async def test_handshake_timeout(fake_session):
    negotiator = TransportNegotiator(
        handshake_timeout=0.05,
        local_transports=[("stdio", RecordingFactory(hang=True))],
    )

    with pytest.raises(ServerConnectionError) as excinfo:
        await negotiator.connect(LocalProcessEndpoint("slow-server"))
    assert isinstance(excinfo.value.__cause__, TimeoutError)
    assert "timed out" in str(excinfo.value)


@pytest.mark.asyncio
async def test_call_tool_timeout():
    negotiator = TransportNegotiator(local_transports=[("stdio", RecordingFactory())])
    with patch("mcpbridge.servers.transport.ClientSession", SlowSession):
        async with await negotiator.connect(LocalProcessEndpoint("server")) as connection:
            with pytest.raises(TimeoutError, match="Timeout calling tool 'ping'"):
                await connection.call_tool("ping", {}, timeout=0.05)


@pytest.mark.asyncio
async def test_closed_connection_refuses_calls(fake_session):
    negotiator = TransportNegotiator(local_transports=[("stdio", RecordingFactory())])
    connection = await negotiator.connect(LocalProcessEndpoint("server"))
    result = await connection.call_tool("ping", {"a": 1})
    assert result.content[0].text == "ping:{'a': 1}"

    await connection.close()
    await connection.close()
    with pytest.raises(ServerNotRunningError):
        await connection.call_tool("ping", {})


@pytest.mark.asyncio
async def test_unknown_descriptor_rejected():
    with pytest.raises(TypeError):
        await TransportNegotiator().connect("https://example.com")


def test_local_endpoint_from_argv():
    endpoint = LocalProcessEndpoint.from_argv(["docker", "run", "-i", "img"], {"A": "1"})
    assert endpoint.command == "docker"
    assert endpoint.args == ["run", "-i", "img"]
    assert endpoint.describe() == "docker run -i img"
    with pytest.raises(ValueError):
        LocalProcessEndpoint.from_argv([])
