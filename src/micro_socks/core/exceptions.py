"""Custom exceptions for the proxy server.

This module defines the exceptions raised by the SOCKS5 core and the startup
surface. They let the session handler tell apart:
- Malformed or unsupported protocol messages
- Failed authentication
- Outbound connection failures
- Bad configuration or credentials files

Every session-level exception is caught by the connection handler, logged, and
ends only that session.

Example:
    try:
        users = load_users("/etc/micro-socks/users")
    except CredentialsFileError as e:
        console.print(f"[red]{e}")
"""


class ProxyError(Exception):
    """Base exception for proxy errors."""


class ConfigError(ProxyError):
    """Raised when the resolved configuration is invalid."""


class CredentialsFileError(ConfigError):
    """Raised when the credentials file cannot be read."""


class ProtocolError(ProxyError):
    """Raised when a client sends a malformed SOCKS5 message."""


class UnsupportedCommandError(ProtocolError):
    """Raised when the request carries a command other than CONNECT."""

    def __init__(self, command: int) -> None:
        super().__init__(f"unsupported command 0x{command:02x}")
        self.command = command


class UnsupportedAddressTypeError(ProtocolError):
    """Raised when the request carries an unknown address type."""

    def __init__(self, address_type: int) -> None:
        super().__init__(f"unsupported address type 0x{address_type:02x}")
        self.address_type = address_type


class AuthenticationError(ProxyError):
    """Raised when method negotiation or credential verification fails."""


class DialError(ProxyError):
    """Raised when the outbound connection to the destination fails.

    Attributes:
        host: Destination host as requested by the client
        port: Destination port
        reply_code: SOCKS5 reply code sent back to the client
    """

    def __init__(self, host: str, port: int, reply_code: int, reason: str) -> None:
        super().__init__(f"failed to connect to {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reply_code = reply_code
