#!/usr/bin/env python3
"""Run the MCP bridge on stdio, or install a server from the command line.

The bridge speaks MCP on stdout, so all diagnostics go to stderr.
"""

import asyncio
import contextlib
import logging
import sys

import click
from dotenv import load_dotenv
from pydantic import ValidationError

from mcpbridge.cli.install import install
from mcpbridge.cli.log_utils import setup_logger
from mcpbridge.config.settings import BridgeSettings
from mcpbridge.server import MCPBridge


async def _run_bridge(settings: BridgeSettings, logger: logging.Logger) -> None:
    bridge = MCPBridge(settings)
    logger.info(f"Discovery API: {settings.base_url}")
    logger.info(f"Host config: {bridge.config_editor.get_config_path()}")
    await bridge.run_stdio()


@click.group(invoke_without_command=True)
@click.option("--api-key", help="API key for the discovery service")
@click.option("--base-url", help="Discovery API base URL")
@click.option(
    "--host-config",
    type=click.Path(dir_okay=False),
    help="Path to the Claude Desktop config file used by direct mode",
)
@click.option(
    "--log-level",
    "-l",
    default="WARNING",
    envvar="MCPBRIDGE_LOG_LEVEL",
    show_default=True,
    help="Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
)
@click.pass_context
def main(
    ctx: click.Context,
    api_key: str | None = None,
    base_url: str | None = None,
    host_config: str | None = None,
    log_level: str = "WARNING",
) -> None:
    """Serve the MCP bridge over stdio, or run one of the commands below."""
    # Load environment variables from .env if present
    load_dotenv()
    try:
        logger = setup_logger(log_level)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    try:
        settings = BridgeSettings.from_env(api_key=api_key, base_url=base_url, host_config_path=host_config)
    except ValidationError as exc:
        click.echo(f"Error: invalid configuration:\n{exc}", err=True)
        sys.exit(1)

    ctx.obj = settings
    if ctx.invoked_subcommand is not None:
        return

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run_bridge(settings, logger))


main.add_command(install)


if __name__ == "__main__":
    main()
