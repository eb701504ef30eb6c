"""Translate outbound connection failures into SOCKS5 reply codes."""

import errno
import socket

from .protocol import (
    REP_CONNECTION_REFUSED,
    REP_GENERAL_FAILURE,
    REP_HOST_UNREACHABLE,
    REP_NETWORK_UNREACHABLE,
)


def map_dial_error(exc: BaseException) -> int:
    """Map a dial error to the reply code reported to the client.

    The mapping is best effort; anything not recognised is a general failure.

    Args:
        exc: Exception raised while opening the outbound connection

    Returns:
        int: One of the ``REP_*`` codes
    """
    if isinstance(exc, TimeoutError):
        return REP_HOST_UNREACHABLE
    if isinstance(exc, ConnectionRefusedError):
        return REP_CONNECTION_REFUSED
    if isinstance(exc, (socket.gaierror, UnicodeError)):
        return REP_HOST_UNREACHABLE
    if isinstance(exc, OSError):
        if exc.errno == errno.ENETUNREACH:
            return REP_NETWORK_UNREACHABLE
        if exc.errno == errno.EHOSTUNREACH:
            return REP_HOST_UNREACHABLE
        if exc.errno == errno.ECONNREFUSED:
            return REP_CONNECTION_REFUSED

    message = str(exc).lower()
    if "connection refused" in message:
        return REP_CONNECTION_REFUSED
    if "network is unreachable" in message:
        return REP_NETWORK_UNREACHABLE
    return REP_GENERAL_FAILURE
