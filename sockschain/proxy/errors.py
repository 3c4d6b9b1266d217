"""SOCKS negotiation errors and the SOCKS5 reply-code mapping."""
from typing import Dict, Optional, Type

from python_socks import ProxyError


class SocksError(ProxyError):
    """Base class for every failure detected while negotiating a hop"""

    def __init__(
        self, message: str, error_code: Optional[int] = None, hop: Optional[int] = None
    ) -> None:
        if hop is not None:
            message = f"hop {hop}: {message}"
        super().__init__(message)
        self.error_code = error_code
        self.hop = hop


class UnsupportedVersion(SocksError):
    """The server answered with a SOCKS version we did not ask for"""


class UnsupportedAddressFamily(SocksError):
    """IPv6 destinations cannot be sent over SOCKS by this client"""


class AuthMethodMismatch(SocksError):
    """The server selected an authentication method we did not offer"""


class AuthenticationFailed(SocksError):
    """The server rejected our username/password"""


class ServerClosedConnection(SocksError):
    """The server closed the connection before sending a full reply"""


class ConnectFailed(SocksError):
    """A SOCKS4 server rejected the request"""


class ProtocolViolation(SocksError):
    """A byte the protocol does not allow at this point"""


class UnknownAddressType(ProtocolViolation):
    """A SOCKS5 reply used an address type we cannot decode"""


class ReplyError(SocksError):
    """A SOCKS5 reply carried a non-zero reply code"""

    code = 0
    reason = "unknown reply code"

    def __init__(self, code: Optional[int] = None, hop: Optional[int] = None) -> None:
        if code is None:
            code = self.code
        super().__init__(f"{self.reason} (0x{code:02x})", error_code=code, hop=hop)
        self.code = code


class GeneralServerFailure(ReplyError):
    code = 0x01
    reason = "general SOCKS server failure"


class ConnectionNotAllowed(ReplyError):
    code = 0x02
    reason = "connection not allowed by ruleset"


class NetworkUnreachable(ReplyError):
    code = 0x03
    reason = "network unreachable"


class HostUnreachable(ReplyError):
    code = 0x04
    reason = "host unreachable"


class ConnectionRefused(ReplyError):
    code = 0x05
    reason = "connection refused"


class TTLExpired(ReplyError):
    code = 0x06
    reason = "TTL expired"


class CommandNotSupported(ReplyError):
    code = 0x07
    reason = "command not supported"


class AddressTypeNotSupported(ReplyError):
    code = 0x08
    reason = "address type not supported"


REPLY_ERRORS: Dict[int, Type[ReplyError]] = {
    cls.code: cls
    for cls in (
        GeneralServerFailure,
        ConnectionNotAllowed,
        NetworkUnreachable,
        HostUnreachable,
        ConnectionRefused,
        TTLExpired,
        CommandNotSupported,
        AddressTypeNotSupported,
    )
}


def error_for_reply_code(code: int, hop: Optional[int] = None) -> ReplyError:
    """Map a non-zero SOCKS5 reply code to the matching exception instance"""
    error_cls = REPLY_ERRORS.get(code)
    if error_cls is None:
        return ReplyError(code, hop=hop)
    return error_cls(hop=hop)
