"""Core proxy library components."""

from .proxy_server import SocksProxy, TunnelProxy, create_proxy_server, create_socks_server
from .proxy_stats import ProxyStats, proxy_stats
from .socks_handler import SocksHandler

__all__ = [
    "create_proxy_server",
    "create_socks_server",
    "ProxyStats",
    "proxy_stats",
    "SocksHandler",
    "SocksProxy",
    "TunnelProxy",
]
