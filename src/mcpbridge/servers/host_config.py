"""Read and edit the host application's persisted MCP server list.

The host is Claude Desktop, whose config file holds an ``mcpServers`` map of
server name to ``{command, args, env}``. Every change rereads the file,
edits it in memory and replaces it whole, under a lock so concurrent edits
from this process do not lose updates. Nothing is cached between calls.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from mcpbridge.exceptions import ConfigIOError, DuplicateNameError

logger = logging.getLogger(__name__)

SERVERS_KEY = "mcpServers"
CONFIG_FILENAME = "claude_desktop_config.json"


class ExternalServerEntry(BaseModel):
    """One server entry in the host config file."""

    name: str
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)

    def to_config(self) -> dict[str, Any]:
        data: dict[str, Any] = {"command": self.command, "args": list(self.args)}
        if self.env:
            data["env"] = dict(self.env)
        return data


def candidate_config_paths(
    platform: str | None = None,
    home: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[Path]:
    """Return the probe order of host config locations, current platform first."""
    platform = platform or sys.platform
    home = home or Path.home()
    env = os.environ if environ is None else environ

    mac = home / "Library" / "Application Support" / "Claude" / CONFIG_FILENAME
    appdata = Path(env["APPDATA"]) if env.get("APPDATA") else home / "AppData" / "Roaming"
    windows = appdata / "Claude" / CONFIG_FILENAME
    xdg = Path(env["XDG_CONFIG_HOME"]) if env.get("XDG_CONFIG_HOME") else home / ".config"
    linux = xdg / "Claude" / CONFIG_FILENAME

    if platform == "darwin":
        return [mac, linux, windows]
    if platform.startswith("win"):
        return [windows, mac, linux]
    return [linux, mac, windows]


class ExternalConfigEditor:
    """Edits the host config file for direct-mode installs.

    Args:
        config_path: Explicit config file path; skips probing when given
        candidates: Probe order used when ``config_path`` is not given
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        candidates: list[Path] | None = None,
    ) -> None:
        self.config_path = Path(config_path).expanduser() if config_path else None
        self.candidates = candidates if candidates is not None else candidate_config_paths()
        self._lock = asyncio.Lock()

    def get_config_path(self) -> Path:
        """Return the explicit path, else the first existing candidate, else the first candidate."""
        if self.config_path is not None:
            return self.config_path
        for path in self.candidates:
            if path.exists():
                return path
        return self.candidates[0]

    async def list_servers(self) -> list[ExternalServerEntry]:
        data = await self._read()
        return self._entries(data)

    async def has_server(self, name: str) -> bool:
        data = await self._read()
        return name in self._server_map(data)

    async def add_server(
        self,
        name: str,
        command: str,
        args: list[str] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ExternalServerEntry:
        """Add an entry, failing if the name already exists.

        Raises:
            DuplicateNameError: If the config already has ``name``
            ConfigIOError: If the file cannot be read or written
        """
        entry = ExternalServerEntry(name=name, command=command, args=list(args or []), env=dict(env or {}))
        async with self._lock:
            data = await self._read()
            servers = self._server_map(data)
            if name in servers:
                raise DuplicateNameError(
                    f"Server '{name}' already exists in Claude Desktop config. Remove it first or use a different name."
                )
            servers[name] = entry.to_config()
            data[SERVERS_KEY] = servers
            await self._write(data)
        logger.info("Added %s to %s", name, self.get_config_path())
        return entry

    async def remove_server(self, name: str) -> bool:
        """Remove an entry. Returns False if it was not present."""
        async with self._lock:
            data = await self._read()
            servers = self._server_map(data)
            if name not in servers:
                return False
            del servers[name]
            data[SERVERS_KEY] = servers
            await self._write(data)
        logger.info("Removed %s from %s", name, self.get_config_path())
        return True

    @staticmethod
    def _server_map(data: dict[str, Any]) -> dict[str, Any]:
        servers = data.get(SERVERS_KEY)
        if servers is None:
            return {}
        if not isinstance(servers, dict):
            raise ConfigIOError(f"'{SERVERS_KEY}' must be an object, got {type(servers).__name__}")
        return servers

    def _entries(self, data: dict[str, Any]) -> list[ExternalServerEntry]:
        """Parse command entries, skipping ones this editor cannot represent."""
        entries = []
        for name, settings in self._server_map(data).items():
            if not isinstance(settings, dict):
                logger.warning("Skipping entry %s in %s: not an object", name, self.get_config_path())
                continue
            try:
                entries.append(ExternalServerEntry(name=name, **settings))
            except (ValidationError, TypeError) as exc:
                logger.warning("Skipping entry %s in %s: %s", name, self.get_config_path(), exc)
        return entries

    async def _read(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._read_sync, self.get_config_path())

    async def _write(self, data: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write_sync, self.get_config_path(), data)

    @staticmethod
    def _read_sync(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigIOError(f"Cannot read {path}: {exc}") from exc
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigIOError(f"Malformed JSON in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigIOError(f"{path} must contain a JSON object")
        return data

    @staticmethod
    def _write_sync(path: Path, data: dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                    f.write("\n")
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise ConfigIOError(f"Cannot write {path}: {exc}") from exc
