"""Core proxy functionality and main entry point for the tunnel proxy.

This module serves as the main entry point for the proxy functionality.
It exposes the few pieces callers need and hides the wiring between:
- The SSH transport and its heartbeat supervisor
- The dial multiplexer shared by all client connections
- The threaded SOCKS5 listener

Example:
    from ssh_socks_proxy.core.proxy import create_proxy_server

    # Serve SOCKS5 on the configured address until the tunnel dies
    exit_code = create_proxy_server(config)

Attributes:
    __all__ (list): List of public components exposed by this module
"""

from .dialer import DialMultiplexer
from .lib import TunnelProxy, create_proxy_server, create_socks_server
from .supervisor import LivenessSupervisor, TransportStatus
from .transport import SSHTransport, connect_transport

__all__ = [
    "connect_transport",
    "create_proxy_server",
    "create_socks_server",
    "DialMultiplexer",
    "LivenessSupervisor",
    "SSHTransport",
    "TransportStatus",
    "TunnelProxy",
]
