"""Shared fixtures: a local echo target and a running proxy."""

import socket
import socketserver
import threading

import pytest

from micro_socks.core.config import ProxyConfig
from micro_socks.core.lib.proxy_server import SocksProxy


class EchoHandler(socketserver.BaseRequestHandler):
    """Echo everything back, then half-close once the client is done sending."""

    def handle(self):
        while data := self.request.recv(4096):
            self.request.sendall(data)
        self.request.shutdown(socket.SHUT_WR)


class EchoServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True


@pytest.fixture
def echo_server():
    """Echo server on 127.0.0.1, yields its port."""
    server = EchoServer(("127.0.0.1", 0), EchoHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address[1]
    server.shutdown()
    server.server_close()


@pytest.fixture
def start_proxy():
    """Factory starting a SocksProxy on 127.0.0.1 with an ephemeral port."""
    servers = []

    def _start(**overrides) -> SocksProxy:
        overrides.setdefault("handshake_timeout", 5.0)
        overrides.setdefault("dial_timeout", 5.0)
        server = SocksProxy(ProxyConfig(listen_addr="127.0.0.1:0", **overrides))
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        servers.append(server)
        return server

    yield _start

    for server in servers:
        server.shutdown()
        server.server_close()


@pytest.fixture
def closed_port():
    """A local port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def socket_pair():
    """Connected (client side, server side) socket pair."""
    client, server = socket.socketpair()
    client.settimeout(5)
    server.settimeout(5)
    yield client, server
    client.close()
    server.close()
