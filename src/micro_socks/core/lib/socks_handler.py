"""SOCKS protocol handler implementation for the proxy server.

This module drives one client session through the SOCKS5 state machine:
- Method negotiation and optional username/password check (RFC 1929)
- CONNECT request parsing for IPv4, IPv6 and domain names
- Outbound dial with optional source interface
- Bi-directional data forwarding with half-close

Negotiation and request parsing run under a handshake deadline; relaying does
not. Every failure ends only the current session. The client socket is closed
by the server once ``handle`` returns and the outbound socket is closed here.

Example:
    # The handler is automatically used by the SocksProxy server class
    server = SocksProxy(config)
    server.serve_forever()
"""

import socketserver
import time

from loguru import logger

from micro_socks.core.exceptions import AuthenticationError, DialError, ProtocolError

from .auth import negotiate_auth
from .relay import relay
from .request import enable_keepalive, process_request


class SocksHandler(socketserver.BaseRequestHandler):
    """Handle incoming SOCKS5 connections."""

    def handle(self) -> None:
        """Handle incoming SOCKS5 connection."""
        config = self.server.config
        stats = self.server.stats
        client = "{}:{}".format(*self.client_address[:2])

        stats.connection_started()
        logger.debug(f"Connection from {client}")
        try:
            enable_keepalive(self.request, config.keepalive_interval)
            deadline = time.monotonic() + config.handshake_timeout
            self.request.settimeout(config.handshake_timeout)

            negotiate_auth(self.request, config.users, deadline)
            remote = process_request(self.request, config, deadline)
            with remote:
                target = "{}:{}".format(*remote.getpeername()[:2])
                logger.info(f"{client} connected to {target}")
                sent, received = relay(self.request, remote, self.server.buffer_pool, stats)
            logger.debug(f"{client} closed ({sent} bytes up, {received} bytes down)")
        except AuthenticationError as exc:
            logger.warning(f"Authentication error from {client}: {exc}")
        except DialError as exc:
            logger.warning(f"Dial error for {client}: {exc} (reply 0x{exc.reply_code:02x})")
        except ProtocolError as exc:
            logger.warning(f"Protocol error from {client}: {exc}")
        except TimeoutError:
            logger.warning(f"Handshake with {client} timed out")
        except OSError as exc:
            logger.warning(f"Connection error with {client}: {exc}")
        finally:
            stats.connection_ended()
