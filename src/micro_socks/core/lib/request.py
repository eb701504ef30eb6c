"""SOCKS5 request processing: parse CONNECT, dial the destination, reply.

Exactly one request is read, at most one outbound connection is attempted and
exactly one reply is written per call to ``process_request``. Unsupported
commands and address types are answered without reading the rest of the
request and without dialing.

Example:
    remote = process_request(sock, config)
    relay(sock, remote, pool)
"""

import contextlib
import socket
import struct

from loguru import logger

from micro_socks.core.config import ProxyConfig
from micro_socks.core.exceptions import (
    DialError,
    ProtocolError,
    UnsupportedAddressTypeError,
    UnsupportedCommandError,
)
from micro_socks.core.network import get_interface_ip

from .error_mapper import map_dial_error
from .protocol import (
    CONNECT_CMD,
    REP_ADDR_NOT_SUPPORTED,
    REP_CMD_NOT_SUPPORTED,
    REP_SUCCESS,
    SOCKS_VERSION,
    encode_reply,
    read_address,
    recv_exact,
)


def enable_keepalive(sock: socket.socket, interval: int) -> None:
    """Turn on TCP keep-alive probes, tuning their timing where supported."""
    with contextlib.suppress(OSError):
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        if hasattr(socket, "TCP_KEEPIDLE"):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, interval)
        if hasattr(socket, "TCP_KEEPINTVL"):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, interval)


def parse_request(sock: socket.socket, deadline: float | None = None) -> tuple[str, int]:
    """Read a CONNECT request and return the destination.

    Reads stop with ``TimeoutError`` once the ``time.monotonic()`` deadline passes.

    Raises:
        ProtocolError: If the version byte is wrong
        UnsupportedCommandError: If the command is not CONNECT
        UnsupportedAddressTypeError: If the address type is unknown
    """
    version, cmd, _, addr_type = struct.unpack("!BBBB", recv_exact(sock, 4, deadline))
    if version != SOCKS_VERSION:
        msg = f"invalid protocol version {version}"
        raise ProtocolError(msg)
    if cmd != CONNECT_CMD:
        raise UnsupportedCommandError(cmd)
    return read_address(sock, addr_type, deadline)


def _source_address(config: ProxyConfig) -> tuple[str, int] | None:
    if not config.outbound_iface:
        return None
    ip = get_interface_ip(config.outbound_iface)
    if ip is None:
        logger.warning(f"Interface {config.outbound_iface} unusable, using default routing")
        return None
    return ip, 0


def open_outbound(host: str, port: int, config: ProxyConfig) -> socket.socket:
    """Open a TCP connection to the destination.

    When an outbound interface is configured, its IPv4 address is used as the
    local address of the new socket.

    Raises:
        OSError: If the connection cannot be established
    """
    remote = socket.create_connection(
        (host, port),
        timeout=config.dial_timeout,
        source_address=_source_address(config),
    )
    enable_keepalive(remote, config.keepalive_interval)
    return remote


def process_request(sock: socket.socket, config: ProxyConfig, deadline: float | None = None) -> socket.socket:
    """Handle the request phase of an authenticated connection.

    Args:
        sock: Client socket
        config: Proxy configuration
        deadline: Absolute ``time.monotonic()`` limit for reading the request

    Returns:
        socket.socket: Connected outbound socket, owned by the caller

    Raises:
        ProtocolError: If the request is malformed or unsupported
        DialError: If the destination cannot be reached
    """
    try:
        host, port = parse_request(sock, deadline)
    except UnsupportedCommandError:
        sock.sendall(encode_reply(REP_CMD_NOT_SUPPORTED))
        raise
    except UnsupportedAddressTypeError:
        sock.sendall(encode_reply(REP_ADDR_NOT_SUPPORTED))
        raise

    logger.debug(f"Connecting to {host}:{port}")
    try:
        remote = open_outbound(host, port, config)
    except (OSError, UnicodeError) as e:
        # UnicodeError: the name cannot be IDNA-encoded for lookup
        reply_code = map_dial_error(e)
        sock.sendall(encode_reply(reply_code))
        raise DialError(host, port, reply_code, str(e) or type(e).__name__) from e

    try:
        bind_addr, bind_port = remote.getsockname()[:2]
        sock.sendall(encode_reply(REP_SUCCESS, bind_addr, bind_port))
    except BaseException:
        remote.close()
        raise
    return remote
