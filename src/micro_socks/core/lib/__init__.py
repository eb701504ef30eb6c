"""Core proxy library components."""

from .buffer_pool import BufferPool
from .proxy_server import SocksProxy, create_proxy_server
from .proxy_stats import ProxyStats
from .relay import relay
from .socks_handler import SocksHandler

__all__ = [
    "BufferPool",
    "create_proxy_server",
    "ProxyStats",
    "relay",
    "SocksHandler",
    "SocksProxy",
]
