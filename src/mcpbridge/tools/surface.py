"""The bridge's outward tool surface.

Tools can be added (or re-announced under the same name) while the bridge
runs, but never taken away: once a client has seen a tool it keeps seeing it
until the bridge restarts.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from mcp.types import CallToolResult, TextContent, Tool
from pydantic import BaseModel, ValidationError

from mcpbridge.common.results import ToolResult
from mcpbridge.exceptions import DelegationError, UnsupportedOperationError

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[ToolResult | CallToolResult]]

ArgsT = TypeVar("ArgsT", bound=BaseModel)


def _error_result(message: str) -> CallToolResult:
    return CallToolResult(isError=True, content=[TextContent(type="text", text=message)])


def to_call_result(result: ToolResult | CallToolResult) -> CallToolResult:
    """Normalize a handler return value into a :class:`CallToolResult`."""
    if isinstance(result, CallToolResult):
        return result
    return CallToolResult(
        isError=result.is_error,
        content=[TextContent(type="text", text=result.to_text())],
    )


def input_schema_for(model: type[BaseModel]) -> dict[str, Any]:
    """Return a tool input schema generated from a pydantic model."""
    schema = model.model_json_schema()
    schema.pop("title", None)
    schema.setdefault("properties", {})
    return schema


@dataclass(slots=True)
class SurfaceTool:
    definition: Tool
    handler: ToolHandler


class ToolSurface:
    """Name-keyed table of every tool the bridge advertises."""

    def __init__(self) -> None:
        self._tools: dict[str, SurfaceTool] = {}
        self._changed = False

    def register_tool(self, definition: Tool, handler: ToolHandler, replace: bool = False) -> bool:
        """Advertise ``definition`` and route its calls to ``handler``.

        Returns:
            True if the name is new, False if an existing entry was replaced

        Raises:
            DelegationError: If the name exists and ``replace`` is False
        """
        name = definition.name
        exists = name in self._tools
        if exists and not replace:
            raise DelegationError(f"Tool '{name}' is already registered")
        self._tools[name] = SurfaceTool(definition=definition, handler=handler)
        self._changed = True
        logger.debug("%s tool: %s", "Replaced" if exists else "Registered", name)
        return not exists

    def register_model_tool(
        self,
        name: str,
        description: str,
        args_model: type[ArgsT],
        handler: Callable[[ArgsT], Awaitable[ToolResult]],
    ) -> None:
        """Register a native tool whose arguments are validated by ``args_model``."""

        async def validated(arguments: dict[str, Any]) -> ToolResult:
            try:
                args = args_model.model_validate(arguments or {})
            except ValidationError as exc:
                return ToolResult.from_error(f"Invalid arguments for {name}: {exc}")
            return await handler(args)

        definition = Tool(name=name, description=description, inputSchema=input_schema_for(args_model))
        self.register_tool(definition, validated)

    def remove_tool(self, name: str) -> None:
        raise UnsupportedOperationError(
            f"Cannot remove tool '{name}': announced tools stay listed until the bridge restarts"
        )

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get_tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def list_tools(self) -> list[Tool]:
        return [tool.definition for tool in self._tools.values()]

    def consume_changes(self) -> bool:
        """Return whether the advertised set changed since the last call."""
        changed, self._changed = self._changed, False
        return changed

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> CallToolResult:
        """Run a tool and return its result; failures become error results."""
        tool = self._tools.get(name)
        if tool is None:
            available = ", ".join(self._tools)
            return _error_result(f"Tool '{name}' not found. Available tools: {available}")
        try:
            result = await tool.handler(arguments or {})
        except Exception as exc:  # noqa: BLE001 - rendered for the client
            logger.error("Tool %s failed: %s", name, exc)
            return _error_result(f"Error calling tool '{name}': {exc}")
        return to_call_result(result)
