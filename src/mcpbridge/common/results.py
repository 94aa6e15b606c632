"""Common result types for mcpbridge.

These classes should have minimal dependencies to avoid circular imports.
"""

import json
from typing import Any


class ToolResult:
    """A standardized result from tool execution.

    Every bridge tool handler returns one of these, whether the tool is a
    native management tool, a discovery tool or a delegated proxy.

    Attributes:
        content: The result content from the tool execution
        is_error: Boolean flag indicating if the tool execution resulted in an error
    """

    def __init__(
        self,
        content: str | dict[str, Any] | list[Any] | None = None,
        is_error: bool = False,
    ):
        self.content = content
        self.is_error = is_error

    def to_text(self) -> str:
        """Render the content as a single text block.

        Dictionaries and lists are pretty-printed as JSON.
        """
        content_value = self.content

        if content_value is None:
            return ""
        if isinstance(content_value, dict | list):
            try:
                return json.dumps(content_value, indent=2)
            except (TypeError, ValueError):
                return str(content_value)
        if not isinstance(content_value, str):
            return str(content_value)
        return content_value

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary with ``content`` and ``is_error`` fields."""
        return {"content": self.to_text(), "is_error": self.is_error}

    @classmethod
    def from_error(cls, error_message: str) -> "ToolResult":
        """Create a ToolResult instance from an error message."""
        return cls(content=error_message, is_error=True)

    @classmethod
    def from_success(cls, content: Any) -> "ToolResult":
        """Create a ToolResult instance from successful content."""
        return cls(content=content, is_error=False)

    def __str__(self) -> str:
        return f"ToolResult(content={self.content}, is_error={self.is_error})"
