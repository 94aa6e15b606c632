"""Configuration for the bridge process."""

from mcpbridge.config.settings import DEFAULT_BASE_URL, BridgeSettings

__all__ = ["BridgeSettings", "DEFAULT_BASE_URL"]
