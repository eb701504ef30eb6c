"""Tests for request parsing, dialing and replies."""

import contextlib
import socket
import struct
import threading
import time

import pytest

from micro_socks.core.config import ProxyConfig
from micro_socks.core.exceptions import (
    DialError,
    ProtocolError,
    UnsupportedAddressTypeError,
    UnsupportedCommandError,
)
from micro_socks.core.lib import request as request_module
from micro_socks.core.lib.protocol import encode_reply, encode_request
from micro_socks.core.lib.request import parse_request, process_request

from .helpers import recv_exact

CONFIG = ProxyConfig(dial_timeout=5.0)


@pytest.fixture
def listener():
    """A listening TCP socket on 127.0.0.1."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)
    yield sock
    sock.close()


@pytest.fixture
def no_dial(monkeypatch):
    """Fail the test if an outbound connection is attempted."""
    calls = []
    monkeypatch.setattr(request_module, "open_outbound", lambda *args: calls.append(args))
    yield calls
    assert calls == []


class TestParseRequest:
    """Test cases for parse_request."""

    @pytest.mark.parametrize(
        ("host", "port"),
        [
            ("127.0.0.1", 80),
            ("0.0.0.0", 0),
            ("255.255.255.255", 65535),
            ("2001:db8::1", 443),
            ("::1", 8080),
            ("fe80::1234:5678:9abc:def0", 1),
            ("example.com", 443),
            ("", 80),
            ("a" * 255, 65535),
            ("xn--bcher-kva.example", 8443),
        ],
    )
    def test_roundtrip(self, socket_pair, host, port):
        """Parsing an encoded request gives back the address and port."""
        client, server = socket_pair
        client.sendall(encode_request(host, port))
        assert parse_request(server) == (host, port)

    def test_domain_too_long_cannot_be_encoded(self):
        with pytest.raises(ValueError):
            encode_request("a" * 256, 80)

    def test_bad_version(self, socket_pair):
        client, server = socket_pair
        client.sendall(b"\x04\x01\x00\x01\x7f\x00\x00\x01\x00\x50")
        with pytest.raises(ProtocolError):
            parse_request(server)

    def test_truncated_address(self, socket_pair):
        client, server = socket_pair
        client.sendall(b"\x05\x01\x00\x04\x20\x01")
        client.shutdown(socket.SHUT_WR)
        with pytest.raises(ProtocolError):
            parse_request(server)


class TestProcessRequest:
    """Test cases for process_request."""

    @pytest.mark.parametrize("command", [0x02, 0x03, 0x00, 0xFF])
    def test_unsupported_command(self, socket_pair, no_dial, command):
        """Anything but CONNECT gets reply 0x07 and no dial."""
        client, server = socket_pair
        client.sendall(bytes([5, command, 0, 1]))
        with pytest.raises(UnsupportedCommandError):
            process_request(server, CONFIG)
        assert recv_exact(client, 10) == encode_reply(0x07)

    @pytest.mark.parametrize("addr_type", [0x00, 0x02, 0x05, 0x7F])
    def test_unsupported_address_type(self, socket_pair, no_dial, addr_type):
        """Unknown address types get reply 0x08 and no dial."""
        client, server = socket_pair
        client.sendall(bytes([5, 1, 0, addr_type]))
        with pytest.raises(UnsupportedAddressTypeError):
            process_request(server, CONFIG)
        assert recv_exact(client, 10) == encode_reply(0x08)

    def test_success_reports_local_endpoint(self, socket_pair, listener):
        """The success reply carries the outbound socket's local address."""
        client, server = socket_pair
        client.sendall(encode_request("127.0.0.1", listener.getsockname()[1]))
        remote = process_request(server, CONFIG)
        with remote:
            reply = recv_exact(client, 10)
            local_ip, local_port = remote.getsockname()
            assert reply[:4] == b"\x05\x00\x00\x01"
            assert socket.inet_ntoa(reply[4:8]) == local_ip
            assert struct.unpack("!H", reply[8:])[0] == local_port

    def test_domain_destination(self, socket_pair, listener):
        client, server = socket_pair
        client.sendall(encode_request("localhost", listener.getsockname()[1]))
        remote = process_request(server, CONFIG)
        with remote:
            reply = recv_exact(client, 4)
            assert reply[:2] == b"\x05\x00"
            assert reply[3] in (1, 4)

    def test_connection_refused(self, socket_pair, closed_port):
        """A refused dial is answered with 0x05."""
        client, server = socket_pair
        client.sendall(encode_request("127.0.0.1", closed_port))
        with pytest.raises(DialError) as excinfo:
            process_request(server, CONFIG)
        assert excinfo.value.reply_code == 0x05
        assert isinstance(excinfo.value.__cause__, ConnectionRefusedError)
        assert recv_exact(client, 10) == encode_reply(0x05)

    def test_dial_timeout(self, socket_pair, monkeypatch):
        """A timed out dial is answered with 0x04."""

        def slow_dial(host, port, config):
            raise TimeoutError("timed out")

        monkeypatch.setattr(request_module, "open_outbound", slow_dial)
        client, server = socket_pair
        client.sendall(encode_request("192.0.2.1", 80))
        with pytest.raises(DialError) as excinfo:
            process_request(server, CONFIG)
        assert excinfo.value.reply_code == 0x04
        assert recv_exact(client, 10) == encode_reply(0x04)

    def test_unresolvable_name(self, socket_pair, monkeypatch):
        def no_such_host(address, timeout=None, source_address=None):
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

        monkeypatch.setattr(request_module.socket, "create_connection", no_such_host)
        client, server = socket_pair
        client.sendall(encode_request("does-not-exist.invalid", 80))
        with pytest.raises(DialError):
            process_request(server, CONFIG)
        assert recv_exact(client, 10) == encode_reply(0x04)


class TestOutboundInterface:
    """Test cases for source address selection."""

    def test_binds_to_interface_address(self, listener, monkeypatch):
        monkeypatch.setattr(request_module, "get_interface_ip", lambda name: "127.0.0.1")
        config = ProxyConfig(outbound_iface="test0", dial_timeout=5.0)
        with request_module.open_outbound("127.0.0.1", listener.getsockname()[1], config) as remote:
            assert remote.getsockname()[0] == "127.0.0.1"

    def test_falls_back_to_default_routing(self, listener, monkeypatch):
        """An unusable interface does not fail the request."""
        seen = []

        def missing(name):
            seen.append(name)

        monkeypatch.setattr(request_module, "get_interface_ip", missing)
        config = ProxyConfig(outbound_iface="nope0", dial_timeout=5.0)
        with request_module.open_outbound("127.0.0.1", listener.getsockname()[1], config) as remote:
            assert remote.getpeername()[1] == listener.getsockname()[1]
        assert seen == ["nope0"]

    def test_keepalive_enabled(self, listener):
        with request_module.open_outbound("127.0.0.1", listener.getsockname()[1], CONFIG) as remote:
            assert remote.getsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE) != 0


class TestEncodeReply:
    """Test cases for reply encoding."""

    def test_failure_reply_is_zeroed(self):
        assert encode_reply(0x01) == b"\x05\x01\x00\x01\x00\x00\x00\x00\x00\x00"

    def test_ipv6_bound_address(self):
        reply = encode_reply(0x00, "2001:db8::5", 1080)
        assert reply[:4] == b"\x05\x00\x00\x04"
        assert reply[4:20] == socket.inet_pton(socket.AF_INET6, "2001:db8::5")
        assert reply[20:] == b"\x04\x38"

    def test_ipv4_mapped_reported_as_ipv4(self):
        reply = encode_reply(0x00, "::ffff:10.0.0.7", 80)
        assert reply == b"\x05\x00\x00\x01\x0a\x00\x00\x07\x00\x50"


class TestUnencodableNames:
    """Names the resolver cannot even encode still get exactly one reply."""

    @pytest.mark.parametrize(
        "host",
        ["a" * 255, "a" * 64 + ".example", "a..b", "bad\udcffname"],
    )
    def test_reply_host_unreachable(self, socket_pair, host):
        client, server = socket_pair
        client.sendall(
            b"\x05\x01\x00\x03" + bytes([len(host.encode("utf-8", "surrogateescape"))])
            + host.encode("utf-8", "surrogateescape") + struct.pack("!H", 80)
        )
        with pytest.raises(DialError) as excinfo:
            process_request(server, CONFIG)
        assert excinfo.value.reply_code == 0x04
        assert recv_exact(client, 10) == encode_reply(0x04)


class TestRequestDeadline:
    """The handshake deadline covers the whole request, not each read."""

    def test_expired_deadline(self, socket_pair):
        client, server = socket_pair
        client.sendall(b"\x05\x01\x00")
        with pytest.raises(TimeoutError):
            parse_request(server, deadline=time.monotonic() - 1)

    def test_trickled_request_times_out(self, socket_pair):
        """Bytes arriving just often enough do not extend the deadline."""
        client, server = socket_pair
        request = encode_request("127.0.0.1", 80)

        def trickle():
            for byte in request:
                time.sleep(0.15)
                with contextlib.suppress(OSError):
                    client.sendall(bytes([byte]))

        sender = threading.Thread(target=trickle, daemon=True)
        sender.start()
        started = time.monotonic()
        with pytest.raises(TimeoutError):
            parse_request(server, deadline=started + 0.5)
        assert time.monotonic() - started < 0.9
        sender.join(timeout=5)
