"""Main entry point for the SOCKS proxy core.

This module exposes only what the command line layer needs to run a server:
the resolved configuration type and the server factory.

Example:
    from micro_socks.core.proxy import ProxyConfig, create_proxy_server

    server = create_proxy_server(ProxyConfig(listen_addr="127.0.0.1:1080"))
    server.serve_forever()

Attributes:
    __all__ (list): List of public components exposed by this module
"""

from .config import ProxyConfig, load_users
from .lib import SocksProxy, create_proxy_server

__all__ = ["create_proxy_server", "load_users", "ProxyConfig", "SocksProxy"]
