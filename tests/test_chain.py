#!/usr/bin/env python3
"""Tests for building tunnels through proxy chains"""

import socket
import threading
from typing import Dict, List
from unittest.mock import patch

import pytest
from conftest import SOCKS4_GRANTED, FakeTransportFactory, socks5_success

from sockschain.proxy.chain import ChainBuilder, build_tunnel, resolve_via_socks5
from sockschain.proxy.errors import (
    AuthenticationFailed,
    ConnectionRefused,
    HostUnreachable,
    UnsupportedAddressFamily,
)
from sockschain.proxy.negotiator import NegotiationResult
from sockschain.proxy.proxy_info import Destination, ProxiedHost, ProxyChain, ProxyInfo
from sockschain.proxy.transport import DEFAULT_TIMEOUT


def connect_requests(sent: bytes) -> int:
    """Count SOCKS5 and SOCKS4 CONNECT request headers in the written frames"""
    return sent.count(b"\x05\x01\x00\x01") + sent.count(b"\x05\x01\x00\x03") + sent.count(b"\x04\x01")


class TestSingleHop:
    """Test tunnels through one proxy"""

    def test_socks5_example_com(self) -> None:
        """Test one direct connection, one no-auth greeting, one CONNECT"""
        factory = FakeTransportFactory(b"\x05\x00" + socks5_success())
        builder = ChainBuilder(transport_factory=factory)

        transport = builder.build(
            ProxyChain.of(ProxyInfo("proxy1", 1080)), Destination("example.com", 80)
        )

        assert transport is factory.transport
        assert factory.connections == [("proxy1", 1080, DEFAULT_TIMEOUT)]
        assert transport.writes == [
            b"\x05\x01\x00",
            b"\x05\x01\x00\x03\x0bexample.com\x00\x50",
        ]
        assert transport.proxy_sockname == NegotiationResult("10.0.0.1", 8080)
        assert transport.closed is False

    def test_connection_refused_stops(self) -> None:
        """Test a refused CONNECT raises and sends nothing more"""
        factory = FakeTransportFactory(b"\x05\x00\x05\x05\x00\x01\x00\x00\x00\x00\x00\x00")
        builder = ChainBuilder(transport_factory=factory)

        with pytest.raises(ConnectionRefused) as exc_info:
            builder.build([ProxyInfo("proxy1", 1080)], Destination("example.com", 80))

        assert exc_info.value.hop == 0
        assert len(factory.transport.writes) == 2
        assert factory.transport.closed is True

    def test_socks4_skips_authentication(self, sample_socks4_proxy: ProxyInfo) -> None:
        """Test SOCKS4 hops go straight to CONNECT"""
        factory = FakeTransportFactory(SOCKS4_GRANTED)

        transport = ChainBuilder(transport_factory=factory).build(
            sample_socks4_proxy, Destination("example.com", 80)
        )

        assert transport.writes == [b"\x04\x01\x00\x50\x00\x00\x00\x01\x00example.com\x00"]

    def test_credentials(self, sample_proxy_with_auth: ProxyInfo) -> None:
        """Test the first hop logs in before CONNECT"""
        factory = FakeTransportFactory(b"\x05\x02\x01\x00" + socks5_success())

        transport = ChainBuilder(transport_factory=factory).build(
            sample_proxy_with_auth, Destination("192.0.2.10", 22)
        )

        assert transport.writes == [
            b"\x05\x01\x02",
            b"\x01\x08testuser\x08testpass",
            b"\x05\x01\x00\x01\xc0\x00\x02\x0a\x00\x16",
        ]

    def test_authentication_failure_closes(self, sample_proxy_with_auth: ProxyInfo) -> None:
        """Test a failed login aborts the build and closes the transport"""
        factory = FakeTransportFactory(b"\x05\x02\x01\x01")

        with pytest.raises(AuthenticationFailed):
            ChainBuilder(transport_factory=factory).build(
                sample_proxy_with_auth, Destination("example.com", 80)
            )

        assert factory.transport.closed is True

    def test_ipv6_destination(self, sample_proxy: ProxyInfo) -> None:
        """Test IPv6 destinations fail after the greeting without a CONNECT"""
        factory = FakeTransportFactory(b"\x05\x00")

        with pytest.raises(UnsupportedAddressFamily):
            ChainBuilder(transport_factory=factory).build(sample_proxy, Destination("::1", 80))

        assert factory.transport.writes == [b"\x05\x01\x00"]
        assert factory.transport.closed is True


class TestMultiHop:
    """Test tunnels through several proxies"""

    def test_three_hops(self, sample_proxy_list: List[ProxyInfo]) -> None:
        """Test N hops issue N CONNECTs over one connection"""
        replies = (
            b"\x05\x00"  # hop 0 greeting
            + socks5_success()  # hop 0 CONNECT proxy2
            + SOCKS4_GRANTED  # hop 1 CONNECT proxy3
            + b"\x05\x02\x01\x00"  # hop 2 greeting and login
            + socks5_success()  # hop 2 CONNECT destination
        )
        factory = FakeTransportFactory(replies)

        transport = ChainBuilder(transport_factory=factory).build(
            sample_proxy_list, Destination("example.com", 443)
        )

        assert factory.connections == [("proxy1.example.com", 1080, DEFAULT_TIMEOUT)]
        assert transport.writes == [
            b"\x05\x01\x00",
            b"\x05\x01\x00\x03\x12proxy2.example.com\x04\x39",
            b"\x04\x01\x04\x3a\x00\x00\x00\x01\x00proxy3.example.com\x00",
            b"\x05\x01\x02",
            b"\x01\x04user\x04pass",
            b"\x05\x01\x00\x03\x0bexample.com\x01\xbb",
        ]
        assert connect_requests(transport.sent) == 3
        assert transport.position == len(replies)

    def test_two_hops_connect_count(self) -> None:
        """Test two SOCKS5 hops issue exactly two CONNECTs"""
        replies = b"\x05\x00" + socks5_success() + b"\x05\x00" + socks5_success()
        factory = FakeTransportFactory(replies)

        transport = ChainBuilder(transport_factory=factory).build(
            [ProxyInfo("10.0.0.1", 1080), ProxyInfo("10.0.0.2", 1080)],
            Destination("10.0.0.3", 80),
        )

        assert len(factory.connections) == 1
        assert transport.writes == [
            b"\x05\x01\x00",
            b"\x05\x01\x00\x01\x0a\x00\x00\x02\x04\x38",
            b"\x05\x01\x00",
            b"\x05\x01\x00\x01\x0a\x00\x00\x03\x00\x50",
        ]

    def test_failure_at_inner_hop(self) -> None:
        """Test a failure at the second hop reports its index"""
        replies = b"\x05\x00" + socks5_success() + b"\x05\x00" + b"\x05\x04\x00\x01"
        factory = FakeTransportFactory(replies)

        with pytest.raises(HostUnreachable, match="hop 1") as exc_info:
            ChainBuilder(transport_factory=factory).build(
                [ProxyInfo("proxy1", 1080), ProxyInfo("proxy2", 1080)],
                Destination("example.com", 80),
            )

        assert exc_info.value.hop == 1
        assert factory.transport.closed is True

    def test_build_nested(self) -> None:
        """Test nested proxied hosts are flattened before connecting"""
        outer = ProxyInfo("outer", 1080)
        inner = ProxyInfo("inner", 1081, version=4)
        factory = FakeTransportFactory(b"\x05\x00" + socks5_success() + SOCKS4_GRANTED)

        transport = ChainBuilder(transport_factory=factory).build_nested(
            ProxiedHost(ProxiedHost("example.com", inner), outer), 80
        )

        assert factory.connections == [("outer", 1080, DEFAULT_TIMEOUT)]
        assert transport.writes[1] == b"\x05\x01\x00\x03\x05inner\x04\x39"
        assert transport.writes[2] == b"\x04\x01\x00\x50\x00\x00\x00\x01\x00example.com\x00"


class TestResolve:
    """Test resolving names through a SOCKS5 proxy"""

    def test_resolve_closes_on_success(self, sample_proxy: ProxyInfo) -> None:
        """Test the resolve request layout and that the connection is closed"""
        factory = FakeTransportFactory(
            b"\x05\x00" + socks5_success(b"\x03\x0bexample.org", b"\x00\x00")
        )

        address = ChainBuilder(transport_factory=factory).resolve(sample_proxy, "198.51.100.7")

        assert address == "example.org"
        assert factory.transport.writes == [
            b"\x05\x01\x00",
            b"\x05\xf1\x00\x01\xc6\x33\x64\x07\x00\x00",
        ]
        assert factory.transport.closed is True

    def test_resolve_closes_on_failure(self, sample_proxy: ProxyInfo) -> None:
        """Test the connection is closed when the proxy reports an error"""
        factory = FakeTransportFactory(b"\x05\x00\x05\x04\x00\x01")

        with pytest.raises(HostUnreachable):
            ChainBuilder(transport_factory=factory).resolve(sample_proxy, "example.com")

        assert factory.transport.closed is True

    def test_resolve_closes_on_unexpected_exception(self, sample_proxy: ProxyInfo) -> None:
        """Test the connection is closed whatever goes wrong"""
        factory = FakeTransportFactory(b"\x05\x00")

        with patch.object(factory.transport, "read", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                ChainBuilder(transport_factory=factory).resolve(sample_proxy, "example.com")

        assert factory.transport.closed is True

    def test_resolve_socks4_rejected_without_io(self, sample_socks4_proxy: ProxyInfo) -> None:
        """Test SOCKS4 proxies are refused before connecting"""
        factory = FakeTransportFactory()

        with pytest.raises(ValueError, match="needs a SOCKS5 proxy"):
            ChainBuilder(transport_factory=factory).resolve(sample_socks4_proxy, "example.com")

        assert not factory.connections


class TestConvenienceFunctions:
    """Test the module-level entry points"""

    def test_build_tunnel_uses_socket_transport(self, sample_proxy: ProxyInfo) -> None:
        """Test build_tunnel connects with the configured timeout"""
        factory = FakeTransportFactory(b"\x05\x00" + socks5_success())

        with patch("sockschain.proxy.chain.SocketTransport.connect", factory):
            transport = build_tunnel(sample_proxy, Destination("example.com", 80), timeout=5.0)

        assert transport is factory.transport
        assert factory.connections == [("proxy.example.com", 1080, 5.0)]

    def test_resolve_via_socks5(self, sample_proxy: ProxyInfo) -> None:
        """Test resolve_via_socks5 delegates to ChainBuilder.resolve"""
        with patch.object(ChainBuilder, "resolve", return_value="93.184.216.34") as mock_resolve:
            assert resolve_via_socks5(sample_proxy, "example.com") == "93.184.216.34"

        mock_resolve.assert_called_once_with(sample_proxy, "example.com")


@pytest.mark.integration
class TestLocalProxy:
    """Test a tunnel against a scripted SOCKS5 server on localhost"""

    def test_tunnel_carries_traffic(self) -> None:
        """Test the negotiated socket carries application bytes afterwards"""
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        port = server.getsockname()[1]
        received: Dict[str, bytes] = {}

        def serve() -> None:
            conn, _ = server.accept()
            with conn:
                received["greeting"] = conn.recv(3)
                conn.sendall(b"\x05\x00")
                received["request"] = conn.recv(64)
                conn.sendall(b"\x05\x00\x00\x01\x7f\x00\x00\x01\x04\x38")
                conn.sendall(conn.recv(5))

        thread = threading.Thread(target=serve, daemon=True)
        thread.start()
        try:
            transport = build_tunnel(
                ProxyInfo("127.0.0.1", port), Destination("example.com", 80), timeout=5.0
            )
            try:
                transport.write(b"hello")
                assert transport.read(5) == b"hello"
            finally:
                transport.close()
            thread.join(5)
        finally:
            server.close()

        assert received["greeting"] == b"\x05\x01\x00"
        assert received["request"] == b"\x05\x01\x00\x03\x0bexample.com\x00\x50"
        assert transport.proxy_sockname == NegotiationResult("127.0.0.1", 1080)
