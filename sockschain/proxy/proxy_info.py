"""Proxy descriptors, chains and destinations for SOCKS tunnelling."""
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple, Union

# Schemes accepted in proxy URLs, mapped to (version, remote_dns)
SOCKS_SCHEMES = {
    "socks": (5, True),
    "socks4": (4, False),
    "socks4a": (4, True),
    "socks5": (5, True),
    "socks5h": (5, True),
}


@dataclass(frozen=True)
class ProxyInfo:
    """Class representing one SOCKS proxy hop"""

    host: str
    port: int
    version: int = 5
    username: Optional[str] = None
    password: Optional[str] = None
    # For SOCKS4 only: False resolves domain names locally (plain SOCKS4)
    remote_dns: bool = True

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("Proxy host must not be empty")
        if self.port < 1 or self.port > 65535:
            raise ValueError(f"Invalid port number: {self.port}")
        if self.version not in (4, 5):
            raise ValueError(f"Unsupported SOCKS version: {self.version}")
        for field_name in ("username", "password"):
            value = getattr(self, field_name)
            if value is not None and len(value.encode("utf-8")) > 255:
                raise ValueError(f"Proxy {field_name} longer than 255 bytes")

    @property
    def protocol(self) -> str:
        """URL scheme matching this proxy's wire behaviour"""
        if self.version == 5:
            return "socks5"
        return "socks4a" if self.remote_dns else "socks4"

    @property
    def has_credentials(self) -> bool:
        return self.username is not None or self.password is not None

    def __str__(self) -> str:
        """String representation of the proxy for display"""
        auth = ""
        if self.username:
            auth = f"{self.username}:{self.password}@" if self.password else f"{self.username}@"
        return f"{self.protocol}://{auth}{self.host}:{self.port}"


@dataclass(frozen=True)
class ProxyChain:
    """Ordered proxy hops, outermost (directly connected) first"""

    hops: Tuple[ProxyInfo, ...]

    def __post_init__(self) -> None:
        if not self.hops:
            raise ValueError("A proxy chain needs at least one proxy")
        for hop in self.hops:
            if not isinstance(hop, ProxyInfo):
                raise TypeError(f"Expected ProxyInfo, got {type(hop).__name__}")

    @classmethod
    def of(cls, proxies: Union["ProxyChain", ProxyInfo, Sequence[ProxyInfo]]) -> "ProxyChain":
        """Coerce a single proxy, a sequence of proxies or a chain into a chain"""
        if isinstance(proxies, ProxyChain):
            return proxies
        if isinstance(proxies, ProxyInfo):
            return cls((proxies,))
        return cls(tuple(proxies))

    def __iter__(self) -> Iterator[ProxyInfo]:
        return iter(self.hops)

    def __len__(self) -> int:
        return len(self.hops)

    def __getitem__(self, index: int) -> ProxyInfo:
        return self.hops[index]

    def __str__(self) -> str:
        return " -> ".join(str(hop) for hop in self.hops)


@dataclass(frozen=True)
class Destination:
    """Final target of a tunnel"""

    host: str
    port: int

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("Destination host must not be empty")
        if self.port < 0 or self.port > 65535:
            raise ValueError(f"Invalid port number: {self.port}")

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ProxiedHost:
    """A host reached via a proxy; the host may itself be a ProxiedHost.

    ``ProxiedHost(ProxiedHost("example.com", inner), outer)`` describes
    example.com reached through ``outer`` then ``inner``.
    """

    destination: Union[str, "ProxiedHost"]
    proxy: ProxyInfo

    @property
    def host(self) -> str:
        """The real host name at the bottom of the nesting"""
        return flatten_chain(self)[1]

    @property
    def proxy_chain(self) -> ProxyChain:
        return flatten_chain(self)[0]

    def __str__(self) -> str:
        chain, host = flatten_chain(self)
        return f"{host} (via {' via '.join(str(hop) for hop in chain)})"


def flatten_chain(target: ProxiedHost) -> Tuple[ProxyChain, str]:
    """Flatten nested proxied hosts into (outermost-first chain, real host)"""
    hops = []
    node: Union[str, ProxiedHost] = target
    while isinstance(node, ProxiedHost):
        hops.append(node.proxy)
        node = node.destination
    return ProxyChain(tuple(hops)), node


def _parse_auth(auth_part: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Parse authentication part, return (username, password)"""
    if not auth_part:
        return None, None
    if ":" in auth_part:
        parts = auth_part.split(":", 1)
        return parts[0], parts[1]
    return auth_part, None


def _validate_port(port_str: str) -> int:
    """Validate and parse port number"""
    try:
        port = int(port_str)
        if port < 1 or port > 65535:
            raise ValueError(f"Invalid port number: {port_str}")
        return port
    except ValueError as exc:
        raise ValueError(f"Invalid port number: {port_str}") from exc


def parse_proxy_string(proxy_str: str) -> ProxyInfo:
    """Parse a proxy string in the format protocol://[user:pass@]host:port"""
    if "://" not in proxy_str:
        raise ValueError(f"Invalid proxy format: {proxy_str}")

    protocol_part, rest = proxy_str.split("://", 1)
    if protocol_part.lower() not in SOCKS_SCHEMES:
        raise ValueError(f"Unsupported protocol: {protocol_part}")
    version, remote_dns = SOCKS_SCHEMES[protocol_part.lower()]

    # Find the last '@' to separate auth from host:port
    auth_part, host_port = rest.rsplit("@", 1) if "@" in rest else (None, rest)

    if ":" not in host_port:
        raise ValueError(f"Invalid proxy format: {proxy_str}")

    host, port_str = host_port.rsplit(":", 1)
    if not host:
        raise ValueError(f"Invalid proxy format: {proxy_str}")

    username, password = _parse_auth(auth_part)
    port = _validate_port(port_str.rstrip("/"))

    return ProxyInfo(
        host=host,
        port=port,
        version=version,
        username=username,
        password=password,
        remote_dns=remote_dns,
    )
