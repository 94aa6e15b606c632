"""Bridge tool surface and native tools.

Tool modules are imported from their own paths; only the surface is
re-exported here since the servers package depends on it.
"""

from mcpbridge.tools.surface import ToolSurface

__all__ = ["ToolSurface"]
