"""Blocking TCP transport used to carry SOCKS negotiations."""
import logging
import socket
from typing import Any, Optional

from python_socks import ProxyConnectionError, ProxyTimeoutError

logger = logging.getLogger(__name__)

# Seconds allowed for each connect and read; None blocks forever
DEFAULT_TIMEOUT = 30.0


class SocketTransport:
    """A connected TCP socket with exact-count reads"""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock
        # Set once the tunnel is established: NegotiationResult of the last hop
        self.proxy_sockname: Optional[Any] = None

    @classmethod
    def connect(
        cls, host: str, port: int, timeout: Optional[float] = DEFAULT_TIMEOUT
    ) -> "SocketTransport":
        """Open a direct TCP connection to host:port"""
        logger.debug("Connecting directly to %s:%s", host, port)
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except socket.timeout as exc:
            raise ProxyTimeoutError(f"Connection to {host}:{port} timed out") from exc
        except OSError as exc:
            raise ProxyConnectionError(f"Could not connect to {host}:{port}: {exc}") from exc
        logger.debug("Connected to %s:%s", host, port)
        return cls(sock)

    def write(self, data: bytes) -> None:
        """Send all of data"""
        try:
            self.sock.sendall(data)
        except socket.timeout as exc:
            raise ProxyTimeoutError("Timed out sending to proxy") from exc

    def read(self, count: int) -> bytes:
        """Read exactly count bytes; fewer only if the peer closed"""
        data = b""
        while len(data) < count:
            try:
                chunk = self.sock.recv(count - len(data))
            except socket.timeout as exc:
                raise ProxyTimeoutError("Timed out waiting for proxy reply") from exc
            if not chunk:
                break
            data += chunk
        return data

    def close(self) -> None:
        self.sock.close()

    def fileno(self) -> int:
        return self.sock.fileno()

    def __enter__(self) -> "SocketTransport":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
