"""SOCKS5 wire format: constants and message encoding helpers.

Implements the byte layouts of RFC 1928 (method negotiation, requests and
replies) and RFC 1929 (username/password sub-negotiation). All multi-byte
integers are big-endian.

Example:
    host, port = read_address(sock, ADDR_TYPE_IPV4)
    sock.sendall(encode_reply(REP_SUCCESS, "10.0.0.5", 40312))
"""

import ipaddress
import socket
import struct
import time
from typing import Final

from micro_socks.core.exceptions import ProtocolError, UnsupportedAddressTypeError

# SOCKS protocol constants
SOCKS_VERSION: Final = 5
AUTH_SUBNEG_VERSION: Final = 1
CONNECT_CMD: Final = 1
ADDR_TYPE_IPV4: Final = 1
ADDR_TYPE_DOMAIN: Final = 3
ADDR_TYPE_IPV6: Final = 4

# Authentication methods
AUTH_NONE: Final = 0x00
AUTH_USERNAME_PASSWORD: Final = 0x02
AUTH_NO_ACCEPTABLE: Final = 0xFF

# Sub-negotiation status
AUTH_STATUS_SUCCESS: Final = 0x00
AUTH_STATUS_FAILURE: Final = 0x01

# Reply codes
REP_SUCCESS: Final = 0x00
REP_GENERAL_FAILURE: Final = 0x01
REP_NOT_ALLOWED: Final = 0x02
REP_NETWORK_UNREACHABLE: Final = 0x03
REP_HOST_UNREACHABLE: Final = 0x04
REP_CONNECTION_REFUSED: Final = 0x05
REP_TTL_EXPIRED: Final = 0x06
REP_CMD_NOT_SUPPORTED: Final = 0x07
REP_ADDR_NOT_SUPPORTED: Final = 0x08

# Bound address used in failure replies
UNSPECIFIED_ADDR: Final = "0.0.0.0"


def recv_exact(sock: socket.socket, size: int, deadline: float | None = None) -> bytes:
    """Read exactly ``size`` bytes from ``sock``.

    Args:
        sock: Socket to read from
        size: Number of bytes expected
        deadline: Absolute ``time.monotonic()`` value after which reading fails

    Raises:
        ProtocolError: If the peer closes the connection mid-message
        TimeoutError: If the deadline passes first
    """
    data = bytearray()
    while len(data) < size:
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                msg = "handshake deadline exceeded"
                raise TimeoutError(msg)
            sock.settimeout(remaining)
        chunk = sock.recv(size - len(data))
        if not chunk:
            msg = f"connection closed after {len(data)} of {size} bytes"
            raise ProtocolError(msg)
        data += chunk
    return bytes(data)


def read_address(sock: socket.socket, addr_type: int, deadline: float | None = None) -> tuple[str, int]:
    """Read a destination address of the given type followed by the port.

    Domain names are decoded leniently; resolution is left to the dialer.

    Raises:
        UnsupportedAddressTypeError: If ``addr_type`` is not IPv4, domain or IPv6
    """
    if addr_type == ADDR_TYPE_IPV4:
        host = socket.inet_ntop(socket.AF_INET, recv_exact(sock, 4, deadline))
    elif addr_type == ADDR_TYPE_DOMAIN:
        length = recv_exact(sock, 1, deadline)[0]
        host = recv_exact(sock, length, deadline).decode("utf-8", errors="surrogateescape")
    elif addr_type == ADDR_TYPE_IPV6:
        host = socket.inet_ntop(socket.AF_INET6, recv_exact(sock, 16, deadline))
    else:
        raise UnsupportedAddressTypeError(addr_type)

    (port,) = struct.unpack("!H", recv_exact(sock, 2, deadline))
    return host, port


def encode_address(host: str) -> bytes:
    """Encode ``host`` as an address type byte plus address field."""
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        raw = host.encode("utf-8", errors="surrogateescape")
        if len(raw) > 255:
            msg = f"domain name too long ({len(raw)} bytes)"
            raise ValueError(msg) from None
        return struct.pack("!BB", ADDR_TYPE_DOMAIN, len(raw)) + raw

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    if ip.version == 4:
        return struct.pack("!B", ADDR_TYPE_IPV4) + ip.packed
    return struct.pack("!B", ADDR_TYPE_IPV6) + ip.packed


def encode_request(host: str, port: int, command: int = CONNECT_CMD) -> bytes:
    """Build a client request; the counterpart of what the server parses."""
    header = struct.pack("!BBB", SOCKS_VERSION, command, 0)
    return header + encode_address(host) + struct.pack("!H", port)


def encode_reply(status: int, bind_addr: str | None = None, bind_port: int = 0) -> bytes:
    """Build a server reply.

    Args:
        status: One of the ``REP_*`` codes
        bind_addr: Local address of the outbound socket, IPv4 or IPv6
        bind_port: Local port of the outbound socket

    Returns:
        bytes: ``[5][status][0][atyp][addr][port]``
    """
    header = struct.pack("!BBB", SOCKS_VERSION, status, 0)
    return header + encode_address(bind_addr or UNSPECIFIED_ADDR) + struct.pack("!H", bind_port)
