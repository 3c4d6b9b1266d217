"""SOCKS4/4a/5 client with multi-hop proxy chaining."""
from sockschain.proxy import (
    ChainBuilder,
    Destination,
    ProxiedHost,
    ProxyChain,
    ProxyInfo,
    SocksError,
    build_tunnel,
    parse_proxy_string,
    resolve_via_socks5,
)

__version__ = "1.0.0"

__all__ = [
    "ChainBuilder",
    "Destination",
    "ProxiedHost",
    "ProxyChain",
    "ProxyInfo",
    "SocksError",
    "__version__",
    "build_tunnel",
    "parse_proxy_string",
    "resolve_via_socks5",
]
