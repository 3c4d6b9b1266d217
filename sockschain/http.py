"""urllib3 connections that reach their host through a SOCKS proxy chain.

Only plain ``http://`` is routed; TLS is not handled here.

.. code-block:: python

    from sockschain import ProxyInfo
    from sockschain.http import SocksProxyManager

    manager = SocksProxyManager([ProxyInfo("proxy1", 1080), ProxyInfo("proxy2", 1080)])
    response = manager.request("GET", "http://example.com/")
"""
import logging
import socket
import typing

from python_socks import ProxyConnectionError, ProxyError, ProxyTimeoutError
from urllib3.connection import HTTPConnection
from urllib3.connectionpool import HTTPConnectionPool
from urllib3.exceptions import ConnectTimeoutError, NewConnectionError
from urllib3.poolmanager import PoolManager

from sockschain.proxy.chain import ChainLike, build_tunnel
from sockschain.proxy.proxy_info import Destination, ProxyChain
from sockschain.proxy.transport import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


class SocksHTTPConnection(HTTPConnection):
    """A plain-text HTTP connection tunnelled through a proxy chain"""

    def __init__(
        self,
        _socks_options: typing.Mapping[str, typing.Any],
        *args: typing.Any,
        **kwargs: typing.Any,
    ) -> None:
        self._socks_options = _socks_options
        super().__init__(*args, **kwargs)

    def _new_conn(self) -> socket.socket:
        """Establish a new connection via the proxy chain"""
        # urllib3 uses a sentinel for "socket default"
        timeout = self.timeout if isinstance(self.timeout, (int, float)) else DEFAULT_TIMEOUT
        chain = self._socks_options["chain"]
        try:
            transport = build_tunnel(chain, Destination(self.host, self.port), timeout=timeout)
        except ProxyTimeoutError as e:
            raise ConnectTimeoutError(
                self,
                f"Connection to {self.host} timed out. (connect timeout={timeout})",
            ) from e
        except (ProxyConnectionError, ProxyError) as e:
            raise NewConnectionError(
                self, f"Failed to establish a new connection: {e}"
            ) from e
        except OSError as e:
            raise NewConnectionError(
                self, f"Failed to establish a new connection: {e}"
            ) from e

        return transport.sock


class SocksHTTPConnectionPool(HTTPConnectionPool):
    ConnectionCls = SocksHTTPConnection


class SocksProxyManager(PoolManager):
    """A PoolManager routing every http:// request through a proxy chain"""

    pool_classes_by_scheme = {"http": SocksHTTPConnectionPool}

    def __init__(
        self,
        chain: ChainLike,
        num_pools: int = 10,
        headers: typing.Optional[typing.Mapping[str, str]] = None,
        **connection_pool_kw: typing.Any,
    ) -> None:
        self.chain = ProxyChain.of(chain)
        connection_pool_kw["_socks_options"] = {"chain": self.chain}

        super().__init__(num_pools, headers, **connection_pool_kw)

        self.pool_classes_by_scheme = SocksProxyManager.pool_classes_by_scheme
        # Unknown schemes (https) fail with URLSchemeUnknown instead of going direct
        self.key_fn_by_scheme = {"http": self.key_fn_by_scheme["http"]}
        logger.debug("HTTP requests will be routed via %s", self.chain)
