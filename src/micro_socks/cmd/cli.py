"""Command-line interface for the SOCKS proxy server.

This module provides the main command-line interface for the proxy server, handling:
- Command-line and environment variable options
- Credentials file loading
- Logging setup
- Interface listing
- Error reporting

Options resolve in the order: explicit flag, environment variable, default.

Example:
    # Run from command line:
    $ micro-socks proxy --listen 0.0.0.0:1080 --iface wlan0 --users /etc/micro-socks/users
"""

from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from micro_socks import __version__
from micro_socks.cmd.socks import DEFAULT_DRAIN_TIMEOUT, run_socks_proxy
from micro_socks.core.config import DEFAULT_LISTEN_ADDR, ProxyConfig, load_users, parse_listen_address
from micro_socks.core.exceptions import ConfigError
from micro_socks.core.network import list_interfaces
from micro_socks.core.utils.log_config import configure_logging

console = Console()
app = typer.Typer(help="Small SOCKS5 proxy with optional authentication")


@app.callback(invoke_without_command=True)
def version_callback(ctx: typer.Context):
    """Show version information."""
    if ctx.invoked_subcommand is None:
        console.print(f"[cyan]micro-socks v{__version__}[/cyan]")


@app.command(name="proxy")
def start_proxy(
    listen: str = typer.Option(
        DEFAULT_LISTEN_ADDR, "--listen", "-l", envvar="PROXY_LISTEN", help="Listen address and port"
    ),
    iface: str | None = typer.Option(
        None, "--iface", "-i", envvar="PROXY_IFACE", help="Outbound network interface"
    ),
    users: Path | None = typer.Option(
        None, "--users", "-u", envvar="PROXY_USERS", help="User file (format: username:password)"
    ),
    drain_timeout: float = typer.Option(
        DEFAULT_DRAIN_TIMEOUT, "--drain-timeout", help="Seconds to wait for active sessions on shutdown"
    ),
    debug: bool = typer.Option(default=False, help="Enable debug logging"),
    log_file: Path | None = typer.Option(None, "--log-file", help="Also write logs to this file"),
):
    """Start the SOCKS proxy server."""
    configure_logging(debug=debug, log_file=log_file)

    try:
        parse_listen_address(listen)
        config = ProxyConfig(
            listen_addr=listen,
            outbound_iface=iface or None,
            users=load_users(users) if users else {},
        )
    except ConfigError as e:
        logger.error(f"Error loading configuration: {e}")
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1) from None

    try:
        run_socks_proxy(config, drain_timeout=drain_timeout)
    except OSError as e:
        logger.error(f"Failed to start server: {e}")
        console.print(f"[red]Failed to start server: {e}")
        raise typer.Exit(1) from None


@app.command(name="interfaces")
def show_interfaces():
    """List network interfaces usable with --iface."""
    table = Table(title="Network Interfaces")
    table.add_column("Interface", style="cyan")
    table.add_column("IPv4 Address", style="green")
    table.add_column("Status")

    for interface in list_interfaces():
        status = "[green]up" if interface.is_up else "[red]down"
        table.add_row(interface.name, interface.ip or "-", status)

    console.print(table)


if __name__ == "__main__":
    app()
