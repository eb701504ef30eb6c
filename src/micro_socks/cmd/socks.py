"""SOCKS proxy server command interface.

This module provides a high-level interface for:
- Starting the SOCKS proxy server
- Handling SIGINT/SIGTERM shutdown
- Draining sessions still in flight
- Reporting a final summary

Example:
    # Start a SOCKS proxy with default settings
    run_socks_proxy(ProxyConfig())
"""

import signal
import threading

from loguru import logger
from rich.console import Console

from micro_socks.core.network import get_interface_ip
from micro_socks.core.proxy import ProxyConfig, SocksProxy, create_proxy_server
from micro_socks.core.utils.utils import format_bytes

console = Console()

DEFAULT_DRAIN_TIMEOUT = 30.0  # Seconds


def log_startup(config: ProxyConfig) -> None:
    """Log the effective outbound interface and authentication settings."""
    if config.outbound_iface:
        if ip := get_interface_ip(config.outbound_iface):
            logger.info(f"Outbound traffic through interface: {config.outbound_iface} ({ip})")
        else:
            logger.warning(
                f"Interface {config.outbound_iface} not found or no IPv4 address; using default routing"
            )
    if config.auth_required:
        logger.info(f"Authentication enabled, loaded {len(config.users)} users")
    else:
        logger.info("Authentication disabled")


def install_signal_handlers(server: SocksProxy) -> None:
    """Stop the accept loop on SIGINT or SIGTERM."""

    def _stop(signum: int, _frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, closing listener...")
        # shutdown() waits for serve_forever(), which runs in this thread
        threading.Thread(target=server.shutdown, daemon=True).start()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)


def drain(server: SocksProxy, timeout: float) -> None:
    """Wait for in-flight sessions to finish on their own."""
    stats = server.stats
    if stats.active_connections and timeout > 0:
        logger.info(f"Waiting up to {timeout:.0f}s for {stats.active_connections} active sessions")
        stats.wait_idle(timeout)
    if stats.active_connections:
        logger.warning(f"Exiting with {stats.active_connections} sessions still active")


def run_socks_proxy(config: ProxyConfig, drain_timeout: float = DEFAULT_DRAIN_TIMEOUT) -> None:
    """Run the SOCKS proxy until a shutdown signal arrives.

    Args:
        config: Resolved proxy configuration
        drain_timeout: Seconds to wait for active sessions after shutdown

    Raises:
        OSError: If the listening socket cannot be bound
    """
    server = create_proxy_server(config)
    log_startup(config)
    host, port = server.server_address[:2]
    console.print(f"[green]SOCKS5 proxy server listening on {host}:{port}")

    install_signal_handlers(server)
    try:
        server.serve_forever()
    finally:
        server.server_close()

    drain(server, drain_timeout)
    stats = server.stats
    logger.info(
        f"Served {stats.total_connections} sessions in {stats.uptime():.0f}s, "
        f"relayed {format_bytes(stats.total_bytes_sent)} up and "
        f"{format_bytes(stats.total_bytes_received)} down"
    )
