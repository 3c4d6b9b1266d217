"""SOCKS client negotiation and proxy chaining."""
from .chain import ChainBuilder, build_tunnel, resolve_via_socks5
from .errors import SocksError, error_for_reply_code
from .negotiator import NegotiationResult, NegotiationState, SocksNegotiator
from .proxy_info import (
    Destination,
    ProxiedHost,
    ProxyChain,
    ProxyInfo,
    flatten_chain,
    parse_proxy_string,
)
from .transport import DEFAULT_TIMEOUT, SocketTransport

__all__ = [
    "ChainBuilder",
    "DEFAULT_TIMEOUT",
    "Destination",
    "NegotiationResult",
    "NegotiationState",
    "ProxiedHost",
    "ProxyChain",
    "ProxyInfo",
    "SocketTransport",
    "SocksError",
    "SocksNegotiator",
    "build_tunnel",
    "error_for_reply_code",
    "flatten_chain",
    "parse_proxy_string",
    "resolve_via_socks5",
]
