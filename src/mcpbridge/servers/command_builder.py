"""Turn installation requests into executable argument vectors.

Nothing here runs a process; execution belongs to the managed server
registry.
"""

from __future__ import annotations

import shlex
from collections.abc import Mapping
from enum import Enum

from mcpbridge.servers.constants import PACKAGE_RUNNER


class SourceType(str, Enum):
    """How a child server is launched."""

    PACKAGE = "package"
    CONTAINER = "container"

    @classmethod
    def from_string(cls, value: str) -> SourceType:
        """Parse a source type, accepting ``npm`` and ``docker`` aliases."""
        normalized = value.strip().lower()
        aliases = {"npm": cls.PACKAGE, "docker": cls.CONTAINER}
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(
                f"Unknown source type '{value}'. Expected one of: package, container, npm, docker"
            ) from None


def inject_env(argv: list[str], env: Mapping[str, str] | None) -> list[str]:
    """Return ``argv`` with ``-e KEY=VALUE`` flags for every entry of ``env``.

    Flags go right after the ``run`` subcommand so the engine applies them to
    the container rather than passing them to the image. Without a ``run``
    token they are appended.
    """
    if not env:
        return list(argv)
    flags: list[str] = []
    for key, value in env.items():
        flags.extend(["-e", f"{key}={value}"])
    if "run" in argv:
        idx = argv.index("run") + 1
        return argv[:idx] + flags + argv[idx:]
    return list(argv) + flags


class ContainerCommandBuilder:
    """Build launch commands for package and container sources.

    Args:
        engine: Container engine executable used for isolated packages
        package_image: Runtime image that provisions the package runner
    """

    def __init__(self, engine: str = "docker", package_image: str = "node:20-alpine") -> None:
        self.engine = engine
        self.package_image = package_image

    def build(
        self,
        source_type: SourceType | str,
        raw_command: str,
        env: Mapping[str, str] | None = None,
        isolate: bool = False,
    ) -> list[str]:
        """Return the argv that launches the server.

        For packages, ``env`` only affects the argv when ``isolate`` is set;
        otherwise it is passed to the child process environment by the caller.
        """
        if isinstance(source_type, str):
            source_type = SourceType.from_string(source_type)
        raw_command = raw_command.strip()
        if not raw_command:
            raise ValueError("Command cannot be empty")

        if source_type is SourceType.PACKAGE:
            argv = [*PACKAGE_RUNNER, raw_command]
            if isolate:
                argv = self.containerize(argv, env)
            return argv

        argv = shlex.split(raw_command)
        return inject_env(argv, env)

    def containerize(self, argv: list[str], env: Mapping[str, str] | None = None) -> list[str]:
        """Wrap ``argv`` in a throwaway container of the package image.

        The runner installs the package inside the container on every launch;
        there is no image caching.
        """
        base = [self.engine, "run", "-i", "--rm"]
        return inject_env(base, env) + [self.package_image, *argv]

    def direct_entry(
        self,
        source_type: SourceType | str,
        raw_command: str,
        env: Mapping[str, str] | None = None,
        global_install: bool = False,
    ) -> tuple[str, list[str]]:
        """Return ``(command, args)`` for a host config entry.

        Direct-mode entries are never isolated. Containers still get their
        ``-e`` flags since the engine does not forward the entry's env.
        """
        if isinstance(source_type, str):
            source_type = SourceType.from_string(source_type)
        raw_command = raw_command.strip()
        if not raw_command:
            raise ValueError("Command cannot be empty")

        if source_type is SourceType.CONTAINER:
            argv = self.build(source_type, raw_command, env)
            return argv[0], argv[1:]
        if global_install:
            # globally installed binaries are named after the unscoped package
            return raw_command.split("/")[-1], []
        return PACKAGE_RUNNER[0], [*PACKAGE_RUNNER[1:], raw_command]
