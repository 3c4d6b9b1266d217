#!/usr/bin/env python3
"""Shared pytest configuration and fixtures"""

from typing import Any, List, Optional, Tuple

import pytest

from sockschain.proxy.proxy_info import ProxyInfo


class FakeTransport:
    """In-memory transport replaying scripted proxy replies"""

    def __init__(self, replies: bytes = b"") -> None:
        self.replies = replies
        self.position = 0
        self.writes: List[bytes] = []
        self.closed = False
        self.proxy_sockname: Optional[Any] = None

    def write(self, data: bytes) -> None:
        """Record data sent to the proxy"""
        self.writes.append(bytes(data))

    def read(self, count: int) -> bytes:
        """Return up to count scripted bytes"""
        result = self.replies[self.position:self.position + count]
        self.position += len(result)
        return result

    def close(self) -> None:
        """Mark the transport closed"""
        self.closed = True

    @property
    def sent(self) -> bytes:
        """Everything written so far"""
        return b"".join(self.writes)


class FakeTransportFactory:
    """Transport factory that records direct connections"""

    def __init__(self, replies: bytes = b"") -> None:
        self.transport = FakeTransport(replies)
        self.connections: List[Tuple[str, int, Optional[float]]] = []

    def __call__(self, host: str, port: int, timeout: Optional[float]) -> FakeTransport:
        self.connections.append((host, port, timeout))
        return self.transport


def socks5_success(address: bytes = b"\x01\x0a\x00\x00\x01", port: bytes = b"\x1f\x90") -> bytes:
    """A SOCKS5 success reply; default bound address 10.0.0.1:8080"""
    return b"\x05\x00\x00" + address + port


SOCKS4_GRANTED = b"\x00\x5a\x00\x00\x00\x00\x00\x00"


@pytest.fixture
def sample_proxy() -> ProxyInfo:
    """Create a sample SOCKS5 ProxyInfo for testing"""
    return ProxyInfo("proxy.example.com", 1080)


@pytest.fixture
def sample_proxy_with_auth() -> ProxyInfo:
    """Create a sample ProxyInfo with authentication for testing"""
    return ProxyInfo("proxy.example.com", 1080, username="testuser", password="testpass")


@pytest.fixture
def sample_socks4_proxy() -> ProxyInfo:
    """Create a sample SOCKS4a ProxyInfo for testing"""
    return ProxyInfo("proxy4.example.com", 1080, version=4)


@pytest.fixture
def sample_proxy_list() -> List[ProxyInfo]:
    """Create a list of sample proxies for testing, outermost first"""
    return [
        ProxyInfo("proxy1.example.com", 1080),
        ProxyInfo("proxy2.example.com", 1081, version=4),
        ProxyInfo("proxy3.example.com", 1082, username="user", password="pass"),
    ]


# Pytest configuration
def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests that don't require external resources")
    config.addinivalue_line("markers", "integration: Integration tests that use local sockets")


def pytest_collection_modifyitems(config: Any, items: List[Any]) -> None:  # pylint: disable=unused-argument
    """Modify test collection to add default markers"""
    for item in items:
        # Add unit marker by default
        if not any(marker.name == "integration" for marker in item.iter_markers()):
            item.add_marker(pytest.mark.unit)
