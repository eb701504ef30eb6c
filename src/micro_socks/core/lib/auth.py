"""SOCKS5 method negotiation and username/password sub-negotiation.

Method selection policy:
- Credentials configured: username/password is required
- No credentials configured: only "no authentication" is accepted
- Anything else: "no acceptable methods", then the connection is closed

Example:
    username = negotiate_auth(sock, config.users)
"""

import hmac
import socket
import struct
from collections.abc import Mapping

from loguru import logger

from micro_socks.core.exceptions import AuthenticationError, ProtocolError

from .protocol import (
    AUTH_NO_ACCEPTABLE,
    AUTH_NONE,
    AUTH_STATUS_FAILURE,
    AUTH_STATUS_SUCCESS,
    AUTH_SUBNEG_VERSION,
    AUTH_USERNAME_PASSWORD,
    SOCKS_VERSION,
    recv_exact,
)

# Compared against when the username is unknown so both failure paths match
_DUMMY_PASSWORD = b"\x00" * 32


def select_method(offered: bytes, auth_required: bool) -> int:
    """Pick the authentication method to use from those the client offered."""
    wanted = AUTH_USERNAME_PASSWORD if auth_required else AUTH_NONE
    return wanted if wanted in offered else AUTH_NO_ACCEPTABLE


def check_credentials(users: Mapping[str, str], username: bytes, password: bytes) -> bool:
    """Check raw credential bytes against the user mapping by exact match."""
    stored = users.get(username.decode("utf-8", errors="surrogateescape"))
    expected = stored.encode("utf-8") if stored is not None else _DUMMY_PASSWORD
    matches = hmac.compare_digest(expected, password)
    return stored is not None and matches


def _send_status(sock: socket.socket, status: int) -> None:
    sock.sendall(struct.pack("!BB", AUTH_SUBNEG_VERSION, status))


def _authenticate_user(sock: socket.socket, users: Mapping[str, str], deadline: float | None) -> str:
    """Run the RFC 1929 exchange and return the authenticated username."""
    version = recv_exact(sock, 1, deadline)[0]
    if version != AUTH_SUBNEG_VERSION:
        _send_status(sock, AUTH_STATUS_FAILURE)
        msg = f"invalid authentication sub-negotiation version {version}"
        raise ProtocolError(msg)

    username = recv_exact(sock, recv_exact(sock, 1, deadline)[0], deadline)
    password = recv_exact(sock, recv_exact(sock, 1, deadline)[0], deadline)

    if not check_credentials(users, username, password):
        _send_status(sock, AUTH_STATUS_FAILURE)
        msg = "invalid username or password"
        raise AuthenticationError(msg)

    _send_status(sock, AUTH_STATUS_SUCCESS)
    return username.decode("utf-8", errors="surrogateescape")


def negotiate_auth(
    sock: socket.socket, users: Mapping[str, str], deadline: float | None = None
) -> str | None:
    """Perform SOCKS5 method negotiation on a freshly accepted connection.

    Args:
        sock: Client socket
        users: Username to password mapping; empty disables authentication
        deadline: Absolute ``time.monotonic()`` limit for the whole exchange

    Returns:
        str | None: Authenticated username, or None when no authentication
        was required

    Raises:
        ProtocolError: If the greeting or sub-negotiation is malformed
        AuthenticationError: If no method is acceptable or credentials are wrong
        TimeoutError: If the deadline passes
    """
    version, nmethods = struct.unpack("!BB", recv_exact(sock, 2, deadline))
    if version != SOCKS_VERSION:
        msg = f"invalid protocol version {version}"
        raise ProtocolError(msg)

    offered = recv_exact(sock, nmethods, deadline)
    method = select_method(offered, auth_required=bool(users))
    logger.debug(f"Client offered methods {offered.hex()}, selected 0x{method:02x}")

    sock.sendall(struct.pack("!BB", SOCKS_VERSION, method))
    if method == AUTH_NO_ACCEPTABLE:
        msg = "no supported authentication methods"
        raise AuthenticationError(msg)

    if method == AUTH_USERNAME_PASSWORD:
        return _authenticate_user(sock, users, deadline)
    return None
