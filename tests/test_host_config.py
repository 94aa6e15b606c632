"""Tests for editing the Claude Desktop config file."""

import asyncio
import json
from pathlib import Path

import pytest

from mcpbridge.exceptions import ConfigIOError, DuplicateNameError
from mcpbridge.servers.host_config import ExternalConfigEditor, candidate_config_paths


def _read(path):
    return json.loads(Path(path).read_text())


@pytest.mark.asyncio
async def test_missing_file_reads_empty(config_editor, config_path):
    assert await config_editor.list_servers() == []
    assert not await config_editor.has_server("files")
    assert not config_path.exists()


@pytest.mark.asyncio
async def test_add_creates_file(config_editor, config_path):
    entry = await config_editor.add_server("files", "npx", ["-y", "@scope/server"], {"ROOT": "/data"})

    assert entry.name == "files"
    assert _read(config_path) == {
        "mcpServers": {"files": {"command": "npx", "args": ["-y", "@scope/server"], "env": {"ROOT": "/data"}}}
    }


@pytest.mark.asyncio
async def test_empty_env_is_omitted(config_editor, config_path):
    await config_editor.add_server("files", "server-filesystem")
    assert _read(config_path)["mcpServers"]["files"] == {"command": "server-filesystem", "args": []}


@pytest.mark.asyncio
async def test_unrelated_keys_preserved(config_editor, config_path):
    config_path.parent.mkdir(parents=True)
    config_path.write_text(
        json.dumps(
            {
                "globalShortcut": "Ctrl+Space",
                "mcpServers": {"existing": {"command": "uvx", "args": ["mcp-server-time"], "type": "stdio"}},
            }
        )
    )

    await config_editor.add_server("files", "npx", ["-y", "pkg"])
    data = _read(config_path)

    assert data["globalShortcut"] == "Ctrl+Space"
    assert data["mcpServers"]["existing"] == {"command": "uvx", "args": ["mcp-server-time"], "type": "stdio"}
    assert set(data["mcpServers"]) == {"existing", "files"}

    assert await config_editor.remove_server("files")
    data = _read(config_path)
    assert data["globalShortcut"] == "Ctrl+Space"
    assert set(data["mcpServers"]) == {"existing"}


@pytest.mark.asyncio
async def test_duplicate_add_rejected(config_editor, config_path):
    await config_editor.add_server("files", "npx", ["-y", "pkg"])
    before = config_path.read_text()

    with pytest.raises(DuplicateNameError):
        await config_editor.add_server("files", "npx", ["-y", "other"])
    assert config_path.read_text() == before


@pytest.mark.asyncio
async def test_list_and_remove(config_editor):
    await config_editor.add_server("one", "npx", ["-y", "one"])
    await config_editor.add_server("two", "docker", ["run", "-i", "img"])

    entries = await config_editor.list_servers()
    assert [(entry.name, entry.command, entry.args) for entry in entries] == [
        ("one", "npx", ["-y", "one"]),
        ("two", "docker", ["run", "-i", "img"]),
    ]

    assert await config_editor.remove_server("one") is True
    assert await config_editor.remove_server("one") is False
    assert [entry.name for entry in await config_editor.list_servers()] == ["two"]


@pytest.mark.asyncio
async def test_malformed_file_is_reported_and_untouched(config_editor, config_path):
    config_path.parent.mkdir(parents=True)
    config_path.write_text("{not json")

    with pytest.raises(ConfigIOError, match="Malformed JSON"):
        await config_editor.list_servers()
    with pytest.raises(ConfigIOError):
        await config_editor.add_server("files", "npx", ["-y", "pkg"])
    assert config_path.read_text() == "{not json"


@pytest.mark.asyncio
async def test_non_object_server_map_rejected(config_editor, config_path):
    config_path.parent.mkdir(parents=True)
    config_path.write_text(json.dumps({"mcpServers": ["files"]}))

    with pytest.raises(ConfigIOError, match="must be an object"):
        await config_editor.has_server("files")


@pytest.mark.asyncio
async def test_concurrent_adds_are_not_lost(config_editor, config_path):
    await asyncio.gather(*[config_editor.add_server(f"server{i}", "npx", ["-y", f"pkg{i}"]) for i in range(8)])
    assert set(_read(config_path)["mcpServers"]) == {f"server{i}" for i in range(8)}


@pytest.mark.asyncio
async def test_no_temp_files_left_behind(config_editor, config_path):
    await config_editor.add_server("files", "npx", ["-y", "pkg"])
    assert [p.name for p in config_path.parent.iterdir()] == [config_path.name]


def test_candidate_paths_put_platform_first(tmp_path):
    mac = candidate_config_paths("darwin", tmp_path, {})
    assert mac[0] == tmp_path / "Library" / "Application Support" / "Claude" / "claude_desktop_config.json"

    windows = candidate_config_paths("win32", tmp_path, {"APPDATA": str(tmp_path / "Roaming")})
    assert windows[0] == tmp_path / "Roaming" / "Claude" / "claude_desktop_config.json"

    linux = candidate_config_paths("linux", tmp_path, {"XDG_CONFIG_HOME": str(tmp_path / "xdg")})
    assert linux[0] == tmp_path / "xdg" / "Claude" / "claude_desktop_config.json"
    assert len(linux) == 3


def test_first_existing_candidate_wins(tmp_path):
    first, second = tmp_path / "a" / "config.json", tmp_path / "b" / "config.json"
    editor = ExternalConfigEditor(candidates=[first, second])
    assert editor.get_config_path() == first

    second.parent.mkdir()
    second.write_text("{}")
    assert editor.get_config_path() == second


def test_explicit_path_skips_probing(tmp_path):
    existing = tmp_path / "existing.json"
    existing.write_text("{}")
    editor = ExternalConfigEditor(tmp_path / "explicit.json", candidates=[existing])
    assert editor.get_config_path() == tmp_path / "explicit.json"


@pytest.mark.asyncio
async def test_unrepresentable_entries_are_skipped(config_editor, config_path, caplog):
    config_path.parent.mkdir(parents=True)
    config_path.write_text(
        json.dumps(
            {
                "mcpServers": {
                    "remote": {"url": "https://mcp.example.com/sse"},
                    "numeric": {"command": "node", "env": {"PORT": 8080}},
                    "broken": "npx",
                    "files": {"command": "npx", "args": ["-y", "pkg"]},
                }
            }
        )
    )

    entries = await config_editor.list_servers()

    assert [entry.name for entry in entries] == ["files"]
    assert "Skipping entry remote" in caplog.text
    assert "Skipping entry broken" in caplog.text
    assert await config_editor.has_server("remote")
