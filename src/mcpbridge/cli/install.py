"""The ``mcpbridge install`` command.

Installs one server the same way the ``install_mcp_server`` tool does,
without an MCP client. Direct mode is the default since it persists; a
bridge-mode install only lives as long as this command.
"""

import asyncio
import json
import re
import shlex
from typing import Any

import click
from pydantic import ValidationError

from mcpbridge.config.settings import BridgeSettings
from mcpbridge.exceptions import BridgeError
from mcpbridge.server import MCPBridge
from mcpbridge.servers.command_builder import ContainerCommandBuilder, SourceType
from mcpbridge.servers.dispatcher import InstallationRequest, InstallMode, InstallOutcome


def infer_source_type(package: str) -> SourceType:
    """Image references carry a ``:tag``; scoped npm names start with ``@``."""
    if ":" in package and not package.startswith("@"):
        return SourceType.CONTAINER
    return SourceType.PACKAGE


def derive_server_name(package: str) -> str:
    """Turn a package or image reference into a server name."""
    name = re.sub(r"[@/]", "-", package)
    name = re.sub(r"[^a-zA-Z0-9-]", "", name)
    return name.lower().strip("-")


def parse_env(ctx: click.Context, param: click.Parameter, value: str | None) -> dict[str, str]:
    if not value:
        return {}
    try:
        data: Any = json.loads(value)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise click.BadParameter("must be a JSON object")
    return {str(key): str(val) for key, val in data.items()}


def build_request(settings: BridgeSettings, package: str, **options: Any) -> InstallationRequest:
    source_type = infer_source_type(package)
    command = package
    if source_type is SourceType.CONTAINER:
        command = f"{settings.container_engine} run -i --rm {package}"
    name = options.pop("name", None) or derive_server_name(package)
    return InstallationRequest(name=name, source_type=source_type, command=command, **options)


def describe_plan(settings: BridgeSettings, request: InstallationRequest) -> list[str]:
    builder = ContainerCommandBuilder(engine=settings.container_engine, package_image=settings.package_image)
    if request.mode is InstallMode.DIRECT:
        command, args = builder.direct_entry(
            request.source_type, request.command, request.env, global_install=request.global_install
        )
        argv = [command, *args]
    else:
        isolate = settings.isolate_packages and request.source_type is SourceType.PACKAGE
        argv = builder.build(request.source_type, request.command, request.env, isolate=isolate)

    lines = [
        f"Name: {request.name}",
        f"Mode: {request.mode.value}",
        f"Type: {request.source_type.value}",
        f"Command: {shlex.join(argv)}",
        f"Environment: {len(request.env)} variable(s)",
    ]
    if request.mode is InstallMode.BRIDGE:
        lines.append(f"Auto-start: {'yes' if request.auto_start else 'no'}")
    else:
        lines.append("Direct mode requires a Claude Desktop restart")
    return lines


async def _install(settings: BridgeSettings, request: InstallationRequest) -> InstallOutcome:
    bridge = MCPBridge(settings)
    try:
        return await bridge.dispatcher.install(request)
    finally:
        await bridge.shutdown()


@click.command()
@click.argument("package")
@click.option("--name", help="Server name (derived from PACKAGE by default)")
@click.option(
    "--mode",
    type=click.Choice([mode.value for mode in InstallMode]),
    default=InstallMode.DIRECT.value,
    show_default=True,
    help="direct adds the server to Claude Desktop's config; bridge runs it for this command only",
)
@click.option("--env", "env", callback=parse_env, help='Environment variables as a JSON object, e.g. \'{"KEY": "v"}\'')
@click.option("--auto-start/--no-auto-start", default=True, show_default=True, help="Start a bridge-mode server")
@click.option("--global", "global_install", is_flag=True, help="Use a globally installed npm binary (direct mode)")
@click.option("--dry-run", is_flag=True, help="Show what would be installed without changing anything")
@click.pass_obj
def install(
    settings: BridgeSettings,
    package: str,
    name: str | None,
    mode: str,
    env: dict[str, str],
    auto_start: bool,
    global_install: bool,
    dry_run: bool,
) -> None:
    """Install PACKAGE, an npm package or a container image reference."""
    try:
        request = build_request(
            settings,
            package,
            name=name,
            mode=mode,
            env=env,
            auto_start=auto_start,
            global_install=global_install,
        )
    except ValidationError as exc:
        raise click.ClickException(f"invalid install request:\n{exc}") from exc

    if dry_run:
        click.echo(f"Dry run for {package}:")
        for line in describe_plan(settings, request):
            click.echo(f"  {line}")
        return

    try:
        outcome = asyncio.run(_install(settings, request))
    except (BridgeError, ValueError) as exc:
        raise click.ClickException(f"Installation failed: {exc}") from exc

    click.echo(outcome.message())
    if outcome.mode is InstallMode.BRIDGE:
        click.echo("The server was stopped when this command exited; serve it with `mcpbridge` instead.")
