"""Destination address encoding and bound-address decoding for SOCKS."""
import enum
import logging
import re
import socket
from typing import Callable, NoReturn, Optional, Tuple

from .errors import UnknownAddressType, UnsupportedAddressFamily

logger = logging.getLogger(__name__)

# SOCKS5 address types
SOCKS5_ATYP_IPV4 = 0x01
SOCKS5_ATYP_DOMAIN = 0x03
SOCKS5_ATYP_IPV6 = 0x04

# SOCKS4a marks "host name follows" with an IP of 0.0.0.x, x != 0
SOCKS4A_DUMMY_IP = b"\x00\x00\x00\x01"

_IPV4_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)\.(\d+)$")
_IPV6_RE = re.compile(r"^[0-9a-fA-F:]*:[0-9a-fA-F:]*$")


class AddressType(enum.Enum):
    """How a destination host is carried on the wire"""

    IPV4 = "ipv4"
    IPV6 = "ipv6"
    DOMAIN = "domain"


def classify(host: str) -> AddressType:
    """Classify a host string; IPv4 first, then IPv6, else a domain name"""
    if _IPV4_RE.match(host):
        return AddressType.IPV4
    if _IPV6_RE.match(host):
        return AddressType.IPV6
    return AddressType.DOMAIN


def ipv4_bytes(host: str) -> bytes:
    """Pack a dotted-quad IPv4 literal into 4 octets"""
    match = _IPV4_RE.match(host)
    if not match:
        raise ValueError(f"Not an IPv4 address: {host}")
    octets = [int(group) for group in match.groups()]
    if any(octet > 255 for octet in octets):
        raise ValueError(f"Invalid IPv4 address: {host}")
    return bytes(octets)


def _reject_ipv6(host: str, hop: Optional[int]) -> NoReturn:
    raise UnsupportedAddressFamily(f"TCP/IPv6 over SOCKS is not supported: {host}", hop=hop)


def encode_socks5_address(host: str, hop: Optional[int] = None) -> bytes:
    """Encode host as SOCKS5 ATYP + address"""
    kind = classify(host)
    if kind is AddressType.IPV4:
        return bytes([SOCKS5_ATYP_IPV4]) + ipv4_bytes(host)
    if kind is AddressType.IPV6:
        _reject_ipv6(host, hop)

    encoded = host.encode("utf-8")
    if len(encoded) > 255:
        raise ValueError(f"Host name longer than 255 bytes: {host[:32]}...")
    logger.debug("Resolving %s via SOCKS", host)
    return bytes([SOCKS5_ATYP_DOMAIN, len(encoded)]) + encoded


def encode_socks4_address(
    host: str, remote_dns: bool = True, hop: Optional[int] = None
) -> Tuple[bytes, bytes]:
    """Encode host for a SOCKS4 request.

    Returns the 4-byte IP field of the fixed header and the bytes that follow
    the NUL-terminated user id: empty for an IP destination, the
    NUL-terminated host name for SOCKS4a.

    With ``remote_dns`` off (plain SOCKS4) a domain name is resolved here,
    which leaks the lookup to the local resolver.
    """
    kind = classify(host)
    if kind is AddressType.IPV6:
        _reject_ipv6(host, hop)
    if kind is AddressType.DOMAIN:
        if remote_dns:
            logger.debug("Resolving %s via SOCKS4a", host)
            return SOCKS4A_DUMMY_IP, host.encode("utf-8") + b"\x00"
        logger.warning("DNS leak: resolving %s locally for a SOCKS4 proxy", host)
        host = socket.gethostbyname(host)
    return ipv4_bytes(host), b""


def read_address(
    address_type: int, recv_exact: Callable[[int], bytes], hop: Optional[int] = None
) -> str:
    """Read and decode a SOCKS5 bound address of the given type"""
    if address_type == SOCKS5_ATYP_IPV4:
        return ".".join(str(octet) for octet in recv_exact(4))
    if address_type == SOCKS5_ATYP_DOMAIN:
        length = recv_exact(1)[0]
        return recv_exact(length).decode("utf-8", errors="ignore")
    if address_type == SOCKS5_ATYP_IPV6:
        raw = recv_exact(16)
        return ":".join(raw[i:i + 2].hex() for i in range(0, 16, 2))
    raise UnknownAddressType(
        f"unknown address type 0x{address_type:02x} in reply",
        error_code=address_type,
        hop=hop,
    )
