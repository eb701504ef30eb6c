"""SOCKS proxy server implementation.

This module implements the connection dispatcher: a threaded TCP server that
runs one ``SocksHandler`` per accepted connection. Sessions share only the
read-only configuration, the relay buffer pool and the statistics counters.

The server supports:
- IPv4 and IPv6 listen addresses
- Automatic address reuse
- Stopping the accept loop without cancelling sessions in flight
- Waiting for in-flight sessions to drain

Example:
    server = create_proxy_server(ProxyConfig(listen_addr="127.0.0.1:1080"))
    server.serve_forever()
"""

import ipaddress
import socket
import socketserver

from loguru import logger

from micro_socks.core.config import ProxyConfig, parse_listen_address

from .buffer_pool import BufferPool
from .proxy_stats import ProxyStats
from .socks_handler import SocksHandler


def _address_family(host: str) -> socket.AddressFamily:
    try:
        if ipaddress.ip_address(host).version == 6:
            return socket.AF_INET6
    except ValueError:
        pass
    return socket.AF_INET


class SocksProxy(socketserver.ThreadingMixIn, socketserver.TCPServer):
    """SOCKS proxy server implementation."""

    allow_reuse_address = True
    daemon_threads = True
    block_on_close = False
    request_queue_size = 100

    def __init__(
        self,
        config: ProxyConfig,
        buffer_pool: BufferPool | None = None,
        bind_and_activate: bool = True,
    ) -> None:
        """Create the server and, by default, bind its listening socket.

        Args:
            config: Resolved proxy configuration
            buffer_pool: Relay buffer pool; a fresh one is created if omitted
            bind_and_activate: Bind and listen immediately
        """
        self.config = config
        self.buffer_pool = buffer_pool or BufferPool()
        self.stats = ProxyStats()
        host, port = parse_listen_address(config.listen_addr)
        self.address_family = _address_family(host)
        super().__init__((host, port), SocksHandler, bind_and_activate)

    def get_request(self) -> tuple[socket.socket, tuple]:
        """Accept a connection, logging accept failures before they are skipped."""
        try:
            return super().get_request()
        except OSError as e:
            logger.warning(f"Accept error: {e}")
            raise

    def handle_error(self, request, client_address) -> None:
        """Log unexpected session failures without stopping the server."""
        logger.exception(f"Unexpected error handling {client_address}")


def create_proxy_server(config: ProxyConfig) -> SocksProxy:
    """Create a SOCKS proxy listening on ``config.listen_addr``."""
    server = SocksProxy(config)
    host, port = server.server_address[:2]
    logger.info(f"SOCKS5 proxy started on {host}:{port}")
    return server
