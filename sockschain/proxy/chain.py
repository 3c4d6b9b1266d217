"""Tunnel building through a chain of SOCKS proxies."""
import logging
from typing import Any, Callable, Optional, Sequence, Union

from .negotiator import SOCKS_VERSION_5, SocksNegotiator
from .proxy_info import Destination, ProxiedHost, ProxyChain, ProxyInfo, flatten_chain
from .transport import DEFAULT_TIMEOUT, SocketTransport

logger = logging.getLogger(__name__)

ChainLike = Union[ProxyChain, ProxyInfo, Sequence[ProxyInfo]]
TransportFactory = Callable[[str, int, Optional[float]], Any]


class ChainBuilder:
    """Builds tunnels hop by hop over a single transport connection"""

    def __init__(
        self,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        """Initialize the builder

        Args:
            timeout: Seconds allowed for the connect and for each read, None to block
            transport_factory: Callable opening the direct connection to the first hop,
                SocketTransport.connect by default
        """
        self.timeout = timeout
        self.transport_factory = transport_factory or SocketTransport.connect

    def build(self, chain: ChainLike, destination: Destination) -> Any:
        """Connect through every hop of chain to destination.

        Returns the live transport, which now carries destination traffic
        and belongs to the caller. On failure the transport is closed and
        the error propagates.
        """
        chain = ProxyChain.of(chain)
        first = chain[0]
        logger.info("Connecting to %s via %s", destination, chain)
        logger.debug("Connecting to %s", first)
        transport = self.transport_factory(first.host, first.port, self.timeout)
        try:
            negotiator = SocksNegotiator(transport, first, hop=0)
            if first.version == SOCKS_VERSION_5:
                negotiator.authenticate()

            for index, next_proxy in enumerate(chain.hops[1:], start=1):
                negotiator.connect(next_proxy.host, next_proxy.port)
                negotiator = SocksNegotiator(transport, next_proxy, hop=index)
                if next_proxy.version == SOCKS_VERSION_5:
                    negotiator.authenticate()

            transport.proxy_sockname = negotiator.connect(destination.host, destination.port)
        except BaseException:
            transport.close()
            raise
        logger.info("Tunnel to %s established via %d proxies", destination, len(chain))
        return transport

    def build_nested(self, target: ProxiedHost, port: int) -> Any:
        """Flatten a nested proxied host and connect to it"""
        chain, host = flatten_chain(target)
        return self.build(chain, Destination(host, port))

    def resolve(self, proxy: ProxyInfo, host: str) -> str:
        """Resolve host through a SOCKS5 proxy; the connection is always closed"""
        if proxy.version != SOCKS_VERSION_5:
            raise ValueError(f"Resolving over SOCKS needs a SOCKS5 proxy, got {proxy}")

        transport = self.transport_factory(proxy.host, proxy.port, self.timeout)
        try:
            negotiator = SocksNegotiator(transport, proxy)
            negotiator.authenticate()
            return negotiator.resolve(host).bound_address
        finally:
            transport.close()


def build_tunnel(
    chain: ChainLike, destination: Destination, timeout: Optional[float] = DEFAULT_TIMEOUT
) -> SocketTransport:
    """Open a tunnel to destination through chain"""
    return ChainBuilder(timeout=timeout).build(chain, destination)


def resolve_via_socks5(
    proxy: ProxyInfo, host: str, timeout: Optional[float] = DEFAULT_TIMEOUT
) -> str:
    """Resolve host at a SOCKS5 proxy without opening a data connection"""
    return ChainBuilder(timeout=timeout).resolve(proxy, host)
