"""Tests for turning install requests into launch commands."""

import pytest

from mcpbridge.servers.command_builder import ContainerCommandBuilder, SourceType, inject_env


def test_source_type_aliases():
    assert SourceType.from_string("npm") is SourceType.PACKAGE
    assert SourceType.from_string("Docker") is SourceType.CONTAINER
    assert SourceType.from_string("package") is SourceType.PACKAGE
    assert SourceType.from_string(" container ") is SourceType.CONTAINER


def test_source_type_rejects_unknown():
    with pytest.raises(ValueError, match="Unknown source type 'pip'"):
        SourceType.from_string("pip")


def test_package_command_uses_npx():
    builder = ContainerCommandBuilder()
    assert builder.build("npm", "@modelcontextprotocol/server-filesystem") == [
        "npx",
        "-y",
        "@modelcontextprotocol/server-filesystem",
    ]


def test_package_env_is_not_in_argv_without_isolation():
    builder = ContainerCommandBuilder()
    argv = builder.build(SourceType.PACKAGE, "some-server", env={"TOKEN": "x"})
    assert argv == ["npx", "-y", "some-server"]


def test_isolated_package_runs_in_container():
    builder = ContainerCommandBuilder(engine="podman", package_image="node:22-alpine")
    argv = builder.build(SourceType.PACKAGE, "some-server", env={"TOKEN": "x"}, isolate=True)
    assert argv == [
        "podman",
        "run",
        "-e",
        "TOKEN=x",
        "-i",
        "--rm",
        "node:22-alpine",
        "npx",
        "-y",
        "some-server",
    ]


def test_container_command_gets_env_after_run():
    builder = ContainerCommandBuilder()
    argv = builder.build("docker", "docker run -i --rm mcp/github", env={"GITHUB_TOKEN": "abc", "DEBUG": "1"})
    assert argv == [
        "docker",
        "run",
        "-e",
        "GITHUB_TOKEN=abc",
        "-e",
        "DEBUG=1",
        "-i",
        "--rm",
        "mcp/github",
    ]


def test_container_command_respects_quoting():
    builder = ContainerCommandBuilder()
    argv = builder.build("docker", "docker run -i --rm -v '/tmp/my dir:/data' img")
    assert argv == ["docker", "run", "-i", "--rm", "-v", "/tmp/my dir:/data", "img"]


def test_inject_env_without_run_token_appends():
    assert inject_env(["server"], {"A": "1"}) == ["server", "-e", "A=1"]
    assert inject_env(["server"], None) == ["server"]


@pytest.mark.parametrize("command", ["", "   "])
def test_empty_command_rejected(command):
    with pytest.raises(ValueError, match="Command cannot be empty"):
        ContainerCommandBuilder().build("npm", command)


def test_direct_entry_package():
    builder = ContainerCommandBuilder()
    assert builder.direct_entry("npm", "@scope/server") == ("npx", ["-y", "@scope/server"])


def test_direct_entry_global_install_uses_unscoped_name():
    builder = ContainerCommandBuilder()
    assert builder.direct_entry("npm", "@modelcontextprotocol/server-filesystem", global_install=True) == (
        "server-filesystem",
        [],
    )


def test_direct_entry_container_splits_first_token():
    builder = ContainerCommandBuilder()
    command, args = builder.direct_entry("docker", "docker run -i --rm mcp/github", env={"TOKEN": "t"})
    assert command == "docker"
    assert args == ["run", "-e", "TOKEN=t", "-i", "--rm", "mcp/github"]
