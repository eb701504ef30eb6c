"""Resolved proxy configuration and the credentials file loader.

The command line layer builds a single ``ProxyConfig`` at startup. The core only
reads it: the user mapping is frozen into a read-only snapshot so that no session
can change it for the lifetime of the process.

Credentials file format (UTF-8, one entry per line)::

    # comment
    alice:wonder
    bob: builder

Example:
    config = ProxyConfig(listen_addr="127.0.0.1:1080", users=load_users("users.txt"))
    host, port = parse_listen_address(config.listen_addr)
"""

import ipaddress
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Final

from loguru import logger

from micro_socks.core.exceptions import ConfigError, CredentialsFileError

DEFAULT_LISTEN_ADDR: Final = "0.0.0.0:1080"
DEFAULT_HANDSHAKE_TIMEOUT: Final = 15.0  # Seconds
DEFAULT_DIAL_TIMEOUT: Final = 15.0  # Seconds
DEFAULT_KEEPALIVE_INTERVAL: Final = 30  # Seconds


@dataclass(frozen=True)
class ProxyConfig:
    """Configuration consumed by the SOCKS5 core.

    Attributes:
        listen_addr: ``host:port`` the server listens on
        outbound_iface: Interface whose IPv4 address is used as the source of
            outbound connections, or None for default routing
        users: Username to password mapping; empty disables authentication
        handshake_timeout: Deadline for negotiation plus request, in seconds
        dial_timeout: Bound on the outbound connection attempt, in seconds
        keepalive_interval: TCP keep-alive idle/probe interval, in seconds
    """

    listen_addr: str = DEFAULT_LISTEN_ADDR
    outbound_iface: str | None = None
    users: Mapping[str, str] = field(default_factory=dict)
    handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT
    dial_timeout: float = DEFAULT_DIAL_TIMEOUT
    keepalive_interval: int = DEFAULT_KEEPALIVE_INTERVAL

    def __post_init__(self) -> None:
        object.__setattr__(self, "users", MappingProxyType(dict(self.users)))

    @property
    def auth_required(self) -> bool:
        """Whether clients must authenticate with username/password."""
        return bool(self.users)


def parse_listen_address(text: str) -> tuple[str, int]:
    """Split a listen address into host and port.

    Accepts ``host:port``, ``[ipv6]:port`` and ``:port`` (all IPv4 interfaces).

    Raises:
        ConfigError: If the address is malformed
    """
    host, sep, port_text = text.strip().rpartition(":")
    if not sep:
        msg = f"listen address must be host:port, got {text!r}"
        raise ConfigError(msg)

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
        try:
            ipaddress.IPv6Address(host)
        except ValueError:
            msg = f"invalid IPv6 listen address {text!r}"
            raise ConfigError(msg) from None
    elif ":" in host:
        msg = f"IPv6 listen addresses must be bracketed, got {text!r}"
        raise ConfigError(msg)

    try:
        port = int(port_text)
    except ValueError:
        msg = f"invalid port in listen address {text!r}"
        raise ConfigError(msg) from None
    if not 0 <= port <= 65535:
        msg = f"port out of range in listen address {text!r}"
        raise ConfigError(msg)

    return host or "0.0.0.0", port


def load_users(path: str | Path) -> Mapping[str, str]:
    """Load a ``username:password`` credentials file.

    Blank lines and lines starting with ``#`` are ignored, lines without a colon
    or with an empty username or password are skipped.

    Args:
        path: Location of the credentials file

    Returns:
        Mapping[str, str]: Read-only username to password mapping

    Raises:
        CredentialsFileError: If the file cannot be read
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        msg = (
            f"user file not found: {path}\n"
            "Please create the file with format: username:password (one per line)"
        )
        raise CredentialsFileError(msg) from None
    except PermissionError:
        msg = f"permission denied reading user file: {path}\nCheck file permissions"
        raise CredentialsFileError(msg) from None
    except (OSError, UnicodeDecodeError) as e:
        msg = f"failed to read user file {path}: {e}"
        raise CredentialsFileError(msg) from e

    users: dict[str, str] = {}
    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        username, sep, password = line.partition(":")
        username, password = username.strip(), password.strip()
        if not sep or not username or not password:
            logger.debug(f"Skipping malformed line {lineno} in {path}")
            continue
        users[username] = password

    return MappingProxyType(users)
