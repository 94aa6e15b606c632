"""Discovery API tools and the ad hoc ``invoke_tool``."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

from mcp.types import CallToolResult, TextContent, Tool
from pydantic import BaseModel, Field, ValidationError

from mcpbridge.common.results import ToolResult
from mcpbridge.discovery import DiscoveryClient
from mcpbridge.servers.transport import RemoteEndpoint, TransportNegotiator
from mcpbridge.tools.management import NoArgs
from mcpbridge.tools.surface import ToolSurface, input_schema_for

logger = logging.getLogger(__name__)


class ServerCategory(str, Enum):
    COMMUNICATION = "communication"
    PRODUCTIVITY = "productivity"
    DEVELOPMENT = "development"
    FINANCE = "finance"
    SOCIAL = "social"
    STORAGE = "storage"
    OTHER = "other"


class TransportKind(str, Enum):
    STREAMABLE_HTTP = "streamable_http"
    SSE = "sse"
    STDIO = "stdio"


class DiscoverArgs(BaseModel):
    query: str | None = Field(
        default=None,
        description='Natural language query: "Find email servers like Gmail", "I need document tools"',
    )
    intent: str | None = Field(default=None, description="Specific intent or use case (e.g., data_processing)")
    domain: str | None = Field(default=None, description="Specific domain to search for (e.g., gmail.com)")
    capability: str | None = Field(default=None, description="Specific capability to search for (e.g., email)")
    category: ServerCategory | None = Field(default=None, description="Server category filter")
    transport: TransportKind | None = Field(default=None, description="Required transport protocol")
    verified_only: bool | None = Field(default=None, description="Only return verified servers (default: false)")
    limit: int = Field(default=10, ge=1, description="Maximum number of servers to return (default: 10)")
    offset: int = Field(default=0, ge=0, description="Number of results to skip (default: 0)")

    def to_request_body(self) -> dict[str, Any]:
        """Build the ``/discover`` body.

        The endpoint has no domain, capability or category filters, so they
        are appended to the query as ``key:value`` terms.
        """
        body: dict[str, Any] = {"limit": self.limit, "offset": self.offset}
        if self.intent:
            body["intent"] = self.intent
        if self.verified_only is not None:
            body["verified_only"] = self.verified_only
        if self.transport is not None:
            body["technical"] = {"transport": self.transport.value}

        terms = [self.query] if self.query else []
        if self.domain:
            terms.append(f"domain:{self.domain}")
        if self.capability:
            terms.append(f"capability:{self.capability}")
        if self.category is not None:
            terms.append(f"category:{self.category.value}")
        if terms:
            body["query"] = " ".join(terms)
        return body


class DiscoverSmartArgs(BaseModel):
    query: str = Field(description="Natural language query for AI-powered discovery")
    max_results: int = Field(default=10, ge=1, description="Maximum number of results (default: 10)")
    include_reasoning: bool = Field(default=False, description="Include AI reasoning in response (default: false)")


class RegisterServerArgs(BaseModel):
    domain: str = Field(description="Domain of the MCP server")
    endpoint: str = Field(description="MCP server endpoint URL")
    contact_email: str = Field(description="Contact email for verification")
    description: str | None = Field(default=None, description="Description of the server")


class DomainArgs(BaseModel):
    domain: str = Field(description="Domain to verify or check ownership of")


class ServerHealthArgs(BaseModel):
    domain: str = Field(description="Domain of the server to check")
    realtime: bool = Field(default=False, description="Perform real-time health check (default: false)")


class InvokeToolArgs(BaseModel):
    endpoint: str = Field(description="MCP server endpoint URL")
    tool_name: str = Field(description="Name of the tool to call")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Arguments to pass to the tool")
    auth_headers: dict[str, str] = Field(default_factory=dict, description="Optional authentication headers")


def render_remote_result(result: CallToolResult) -> CallToolResult:
    """Pass remote content through, or the whole result as JSON when it has none."""
    if result.content:
        return CallToolResult(content=list(result.content), isError=result.isError)
    text = json.dumps(result.model_dump(mode="json", exclude_none=True), indent=2)
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=result.isError)


INVOKE_TOOL_DEFINITION = Tool(
    name="invoke_tool",
    description="Call a tool on any MCP server endpoint. Tries Streamable HTTP first, then SSE.",
    inputSchema=input_schema_for(InvokeToolArgs),
)


class DiscoveryTools:
    """The seven discovery API tools plus ``invoke_tool``.

    Args:
        client: Discovery API client
        negotiator: Opens connections for ``invoke_tool``
        call_timeout: Seconds allowed for the invoked tool call
    """

    def __init__(
        self,
        client: DiscoveryClient,
        negotiator: TransportNegotiator,
        call_timeout: float | None = None,
    ) -> None:
        self.client = client
        self.negotiator = negotiator
        self.call_timeout = call_timeout

    def register_tools(self, surface: ToolSurface) -> None:
        surface.register_model_tool(
            "discover_mcp_servers", "Search for MCP servers.", DiscoverArgs, self.discover_mcp_servers
        )
        surface.register_model_tool(
            "discover_smart", "AI-powered discovery of MCP servers.", DiscoverSmartArgs, self.discover_smart
        )
        surface.register_model_tool(
            "register_server", "Register a new MCP server.", RegisterServerArgs, self.register_server
        )
        surface.register_model_tool("verify_domain", "Start domain verification.", DomainArgs, self.verify_domain)
        surface.register_model_tool(
            "check_domain_ownership", "Check domain ownership.", DomainArgs, self.check_domain_ownership
        )
        surface.register_model_tool(
            "get_server_health", "Get server health metrics.", ServerHealthArgs, self.get_server_health
        )
        surface.register_model_tool(
            "get_onboarding_state", "Get user onboarding progress.", NoArgs, self.get_onboarding_state
        )
        surface.register_tool(INVOKE_TOOL_DEFINITION, self.invoke_tool)

    async def _api_call(self, label: str, call) -> ToolResult:
        try:
            result = await call
        except Exception as exc:  # noqa: BLE001 - reported to the client
            logger.error("%s: %s", label, exc)
            return ToolResult.from_error(f"{label}: {exc}")
        return ToolResult.from_success(result)

    async def discover_mcp_servers(self, args: DiscoverArgs) -> ToolResult:
        return await self._api_call("Error discovering servers", self.client.discover(args.to_request_body()))

    async def discover_smart(self, args: DiscoverSmartArgs) -> ToolResult:
        return await self._api_call("Error in smart discovery", self.client.discover_smart(args.model_dump()))

    async def register_server(self, args: RegisterServerArgs) -> ToolResult:
        body = args.model_dump(exclude_none=True)
        return await self._api_call("Error registering server", self.client.register(body))

    async def verify_domain(self, args: DomainArgs) -> ToolResult:
        return await self._api_call(
            "Error starting domain verification", self.client.start_domain_verification(args.domain)
        )

    async def check_domain_ownership(self, args: DomainArgs) -> ToolResult:
        return await self._api_call(
            "Error checking domain ownership", self.client.check_domain_ownership(args.domain)
        )

    async def get_server_health(self, args: ServerHealthArgs) -> ToolResult:
        return await self._api_call(
            "Error getting server health", self.client.get_server_health(args.domain, args.realtime)
        )

    async def get_onboarding_state(self, _: NoArgs) -> ToolResult:
        return await self._api_call("Error getting onboarding state", self.client.get_onboarding_state())

    async def invoke_tool(self, arguments: dict[str, Any]) -> ToolResult | CallToolResult:
        """Call one tool on any network MCP endpoint, then close the connection."""
        try:
            args = InvokeToolArgs.model_validate(arguments or {})
        except ValidationError as exc:
            return ToolResult.from_error(f"Invalid arguments for invoke_tool: {exc}")

        endpoint = RemoteEndpoint(url=args.endpoint, headers=dict(args.auth_headers))
        try:
            connection = await self.negotiator.connect(endpoint)
            try:
                result = await connection.call_tool(args.tool_name, args.arguments, timeout=self.call_timeout)
            finally:
                await connection.close()
        except Exception as exc:  # noqa: BLE001 - reported to the client
            logger.error("invoke_tool %s on %s failed: %s", args.tool_name, args.endpoint, exc)
            return ToolResult.from_error(f"Error calling tool '{args.tool_name}' on {args.endpoint}: {exc}")
        return render_remote_result(result)

