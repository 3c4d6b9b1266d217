"""Client side of the SOCKS4, SOCKS4a and SOCKS5 handshakes for one hop."""
import enum
import logging
import socket
import struct
from typing import Any, NamedTuple

from .address import AddressType, classify, encode_socks4_address, encode_socks5_address, read_address
from .errors import (
    AuthenticationFailed,
    AuthMethodMismatch,
    ConnectFailed,
    ServerClosedConnection,
    SocksError,
    UnsupportedVersion,
    error_for_reply_code,
)
from .proxy_info import ProxyInfo

logger = logging.getLogger(__name__)

# SOCKS protocol constants
SOCKS_VERSION_4 = 0x04
SOCKS_VERSION_5 = 0x05

# SOCKS5 auth methods
SOCKS5_AUTH_NONE = 0x00
SOCKS5_AUTH_USERNAME_PASSWORD = 0x02
SOCKS5_USERPASS_VERSION = 0x01
SOCKS5_USERPASS_SUCCESS = 0x00

# SOCKS5 command codes, including the Tor resolve extensions
SOCKS5_CMD_CONNECT = 0x01
SOCKS5_CMD_RESOLVE = 0xF0
SOCKS5_CMD_RESOLVE_PTR = 0xF1

SOCKS5_RESP_SUCCESS = 0x00

# SOCKS4 codes
SOCKS4_CMD_CONNECT = 0x01
SOCKS4_REPLY_VERSION = 0x00
SOCKS4_RESP_SUCCESS = 0x5A


class NegotiationState(enum.Enum):
    """Where a hop's handshake currently stands"""

    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REQUEST_SENT = "request_sent"
    COMPLETE = "complete"
    FAILED = "failed"


class NegotiationResult(NamedTuple):
    """Address and port the proxy reports as bound for a request"""

    bound_address: str
    bound_port: int


class SocksNegotiator:
    """Speaks one hop's SOCKS dialect over an already connected transport.

    The transport must offer ``write(bytes)`` and ``read(count)``, where a
    short read means the peer went away. Every failure is raised at the
    point of detection and leaves the negotiator in ``FAILED``; nothing is
    retried.
    """

    def __init__(self, transport: Any, proxy: ProxyInfo, hop: int = 0) -> None:
        self.transport = transport
        self.proxy = proxy
        self.hop = hop
        self.state = NegotiationState.CONNECTED

    def authenticate(self) -> None:
        """Run the SOCKS5 method selection and optional username/password login"""
        if self.proxy.version != SOCKS_VERSION_5:
            raise ValueError(f"Authentication is SOCKS5 only, {self.proxy} is SOCKS4")

        self.state = NegotiationState.AUTHENTICATING
        try:
            if self.proxy.has_credentials:
                logger.debug("Sending username/password authentication to %s", self.proxy)
                method = SOCKS5_AUTH_USERNAME_PASSWORD
            else:
                logger.debug("Sending no authentication to %s", self.proxy)
                method = SOCKS5_AUTH_NONE
            self._send(struct.pack("!BBB", SOCKS_VERSION_5, 1, method))

            version, chosen = self._recv_exact(2)
            if version not in (SOCKS_VERSION_4, SOCKS_VERSION_5):
                raise UnsupportedVersion(
                    f"SOCKS version 0x{version:02x} not supported (expected 0x05)",
                    error_code=version,
                    hop=self.hop,
                )
            if chosen != method:
                raise AuthMethodMismatch(
                    f"authentication method 0x{chosen:02x} neither requested nor "
                    f"supported (offered 0x{method:02x})",
                    error_code=chosen,
                    hop=self.hop,
                )
            if method == SOCKS5_AUTH_USERNAME_PASSWORD:
                self._send_credentials()
        except (SocksError, OSError, ValueError):
            self.state = NegotiationState.FAILED
            raise
        self.state = NegotiationState.AUTHENTICATED

    def _send_credentials(self) -> None:
        """RFC 1929 username/password sub-negotiation"""
        username = (self.proxy.username or "").encode("utf-8")
        password = (self.proxy.password or "").encode("utf-8")
        # Not through _send: the frame must stay out of debug logs
        self.transport.write(
            bytes([SOCKS5_USERPASS_VERSION, len(username)])
            + username
            + bytes([len(password)])
            + password
        )
        _, status = self._recv_exact(2)
        if status != SOCKS5_USERPASS_SUCCESS:
            raise AuthenticationFailed(
                f"SOCKS authentication failed (status 0x{status:02x})",
                error_code=status,
                hop=self.hop,
            )

    def connect(self, host: str, port: int) -> NegotiationResult:
        """Ask the proxy to open a TCP connection to host:port"""
        logger.debug("Connecting to %s:%s via %s", host, port, self.proxy)
        try:
            if self.proxy.version == SOCKS_VERSION_5:
                request = self._socks5_request(SOCKS5_CMD_CONNECT, host, port)
            else:
                request = self._socks4_request(host, port)
            self._send(request)
            self.state = NegotiationState.REQUEST_SENT
            result = self.receive_reply()
        except (SocksError, OSError, ValueError):
            self.state = NegotiationState.FAILED
            raise
        self.state = NegotiationState.COMPLETE
        logger.info("Connected to %s:%s via %s", host, port, self.proxy)
        return result

    def resolve(self, host: str) -> NegotiationResult:
        """Resolve host at the proxy with the SOCKS5 RESOLVE extension"""
        if self.proxy.version != SOCKS_VERSION_5:
            raise ValueError(f"Resolving over SOCKS needs a SOCKS5 proxy, got {self.proxy}")

        if classify(host) is AddressType.IPV4:
            command = SOCKS5_CMD_RESOLVE_PTR
        else:
            command = SOCKS5_CMD_RESOLVE
        logger.debug("Sending hostname to resolve: %s", host)
        try:
            self._send(self._socks5_request(command, host, 0))
            self.state = NegotiationState.REQUEST_SENT
            result = self.receive_reply()
        except (SocksError, OSError, ValueError):
            self.state = NegotiationState.FAILED
            raise
        self.state = NegotiationState.COMPLETE
        logger.info("Resolved %s as %s over SOCKS", host, result.bound_address)
        return result

    def receive_reply(self) -> NegotiationResult:
        """Read and check the proxy's answer to a request"""
        logger.debug("Waiting for SOCKS reply from %s", self.proxy)
        if self.proxy.version == SOCKS_VERSION_5:
            return self._receive_socks5_reply()
        return self._receive_socks4_reply()

    def _receive_socks5_reply(self) -> NegotiationResult:
        version, reply_code, _, address_type = self._recv_exact(4)
        if version != SOCKS_VERSION_5:
            raise UnsupportedVersion(
                f"SOCKS version 0x{version:02x} in reply is not 0x05",
                error_code=version,
                hop=self.hop,
            )
        if reply_code != SOCKS5_RESP_SUCCESS:
            raise error_for_reply_code(reply_code, hop=self.hop)

        bound_address = read_address(address_type, self._recv_exact, hop=self.hop)
        (bound_port,) = struct.unpack("!H", self._recv_exact(2))
        logger.debug("Proxy bound %s:%s", bound_address, bound_port)
        return NegotiationResult(bound_address, bound_port)

    def _receive_socks4_reply(self) -> NegotiationResult:
        reply = self._recv_exact(8)
        if reply[0] != SOCKS4_REPLY_VERSION or reply[1] != SOCKS4_RESP_SUCCESS:
            raise ConnectFailed(
                f"SOCKS4 request rejected: got {reply[:2].hex()}, "
                f"expected {SOCKS4_REPLY_VERSION:02x}{SOCKS4_RESP_SUCCESS:02x}",
                error_code=reply[1],
                hop=self.hop,
            )
        (bound_port,) = struct.unpack("!H", reply[2:4])
        return NegotiationResult(socket.inet_ntoa(reply[4:8]), bound_port)

    def _socks5_request(self, command: int, host: str, port: int) -> bytes:
        return (
            struct.pack("!BBB", SOCKS_VERSION_5, command, 0x00)
            + encode_socks5_address(host, hop=self.hop)
            + struct.pack("!H", port)
        )

    def _socks4_request(self, host: str, port: int) -> bytes:
        address, trailer = encode_socks4_address(host, self.proxy.remote_dns, hop=self.hop)
        userid = (self.proxy.username or "").encode("utf-8")
        return (
            struct.pack("!BBH", SOCKS_VERSION_4, SOCKS4_CMD_CONNECT, port)
            + address
            + userid
            + b"\x00"
            + trailer
        )

    def _send(self, data: bytes) -> None:
        logger.debug("hop %d: sending %s", self.hop, data.hex())
        self.transport.write(data)

    def _recv_exact(self, count: int) -> bytes:
        data = self.transport.read(count)
        if len(data) < count:
            raise ServerClosedConnection(
                f"{self.proxy.host}:{self.proxy.port} closed the connection "
                f"(expected {count} bytes, got {len(data)})",
                hop=self.hop,
            )
        return data
