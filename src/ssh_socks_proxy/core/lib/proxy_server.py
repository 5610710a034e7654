"""SOCKS proxy server running on top of the SSH tunnel.

This module wires the pieces of the proxy together:
- A threaded SOCKS5 listener, one thread per client connection
- The dial multiplexer as the listener's only outbound connection factory
- The liveness supervisor watching the SSH transport in the background
- Clean shutdown of all of them, either on Ctrl+C or when the tunnel dies
- Optional UI and clipboard integration

When the supervisor gives up on the transport every tunneled stream is closed
and ``create_proxy_server`` returns, so a process manager can start a new
session. The initial handshake is never retried here.

Example:
    # Connect, serve until the tunnel dies or Ctrl+C is pressed
    exit_code = create_proxy_server(config)
"""

import socket
import socketserver
import threading
from typing import Final

import pyperclip
from loguru import logger
from rich.console import Console

from ssh_socks_proxy.core.config import ResolveMode, TunnelConfig
from ssh_socks_proxy.core.dialer import DialMultiplexer
from ssh_socks_proxy.core.network import is_local_address
from ssh_socks_proxy.core.supervisor import LivenessSupervisor
from ssh_socks_proxy.core.transport import connect_transport
from ssh_socks_proxy.core.utils.prompt.proxy_ui import create_proxy_ui
from ssh_socks_proxy.core.utils.utils import join_host_port

from .dns_handler import dns_resolver
from .proxy_stats import proxy_stats
from .socks_handler import SocksHandler

console = Console()

# Constants
POLL_INTERVAL: Final = 1.0  # Seconds between checks of the tunnel status
THREAD_JOIN_TIMEOUT: Final = 2.0  # Seconds

# Exit codes
EXIT_OK: Final = 0
EXIT_TUNNEL_DIED: Final = 2


class SocksProxy(socketserver.ThreadingMixIn, socketserver.TCPServer):
    """SOCKS proxy server implementation."""

    allow_reuse_address = True
    daemon_threads = True
    request_queue_size = 100

    def __init__(self, server_address, handler_class, dialer, resolver=None) -> None:
        """Bind the listener.

        Args:
            server_address: ``(host, port)`` to listen on
            handler_class: Request handler class
            dialer: Object whose ``dial(network, address)`` opens outbound streams
            resolver: Optional local DNS resolver for domain targets
        """
        if ":" in server_address[0]:
            self.address_family = socket.AF_INET6
        self.dialer = dialer
        self.resolver = resolver
        super().__init__(server_address, handler_class)


def create_socks_server(host: str, port: int, dialer, resolver=None) -> SocksProxy:
    """Create a SOCKS5 server bound to ``host:port`` that dials through ``dialer``."""
    return SocksProxy((host, port), SocksHandler, dialer=dialer, resolver=resolver)


class TunnelProxy:
    """A SOCKS5 listener whose connections all travel over one supervised transport."""

    def __init__(self, config: TunnelConfig, transport, stats=proxy_stats) -> None:
        """Wire the supervisor and the dialer to an established transport.

        Args:
            config: Tunnel configuration
            transport: Established transport handle
            stats: Statistics tracker for dials and heartbeats
        """
        self.config = config
        self.transport = transport
        self.supervisor = LivenessSupervisor(
            transport,
            interval=config.heartbeat_interval,
            max_failures=config.max_heartbeat_failures,
            probe_timeout=config.heartbeat_timeout,
            stats=stats,
        )
        self.dialer = DialMultiplexer(transport, self.supervisor, stats=stats)
        self.server: SocksProxy | None = None
        self._server_thread: threading.Thread | None = None

    @property
    def listen_address(self) -> str:
        """Address the listener is actually bound to."""
        if self.server is None:
            return self.config.listen_address
        host, port = self.server.server_address[:2]
        return join_host_port(host, port)

    @property
    def terminated(self) -> bool:
        return self.supervisor.terminated

    def start(self) -> None:
        """Bind the listener, then start the heartbeat and the accept loop."""
        host, port = self.config.listen_endpoint
        if not is_local_address(host):
            logger.warning(f"{host} is not an address of any active local interface")

        resolver = dns_resolver if self.config.resolve is ResolveMode.LOCAL else None
        self.server = create_socks_server(host, port, self.dialer, resolver)
        self.supervisor.start()

        self._server_thread = threading.Thread(
            target=self.server.serve_forever,
            name="socks-listener",
            daemon=True,
        )
        self._server_thread.start()
        logger.info(f"Starting SOCKS5 proxy on {self.listen_address}")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the tunnel is terminated or ``timeout`` elapses."""
        return self.supervisor.wait_terminated(timeout)

    def shutdown(self) -> None:
        """Stop accepting, close every stream and close the transport."""
        self.supervisor.stop()
        if self._server_thread is not None:
            # shutdown() blocks until serve_forever returns, only call it once running
            self.server.shutdown()
            self._server_thread.join(timeout=THREAD_JOIN_TIMEOUT)
        if self.server is not None:
            self.server.server_close()
        self.dialer.close()
        self.transport.close()
        self.supervisor.join(timeout=THREAD_JOIN_TIMEOUT)
        logger.info("Proxy shut down")


def create_proxy_server(config: TunnelConfig) -> int:
    """Connect the tunnel and serve SOCKS5 until it dies or Ctrl+C is pressed.

    Args:
        config: Validated tunnel configuration

    Returns:
        int: EXIT_OK after Ctrl+C, EXIT_TUNNEL_DIED after heartbeat termination

    Raises:
        ConfigError: If the private key cannot be loaded
        HandshakeError: If the SSH transport cannot be established
    """
    transport = connect_transport(config)
    proxy = TunnelProxy(config, transport)
    ui = None

    try:
        proxy.start()
        console.print(f"[green]SOCKS5 proxy listening on {proxy.listen_address} via {transport.endpoint}")

        if config.copy_to_clipboard:
            try:
                pyperclip.copy(proxy.listen_address)
                console.print("[bold green]Proxy address copied to clipboard")
            except pyperclip.PyperclipException as e:
                console.print(f"[yellow]Could not copy to clipboard: {e}")

        if config.show_ui:
            ui, ui_thread = create_proxy_ui(proxy.listen_address, transport.endpoint, proxy.supervisor)
            ui_thread.start()

        try:
            while not proxy.wait(POLL_INTERVAL):
                pass
        except KeyboardInterrupt:
            logger.info("Received shutdown signal")
            console.print("\n[yellow]Shutting down proxy server...")
            return EXIT_OK

        logger.error("Tunnel terminated after repeated heartbeat failures")
        console.print("[red]SSH tunnel is dead, shutting down")
        return EXIT_TUNNEL_DIED

    finally:
        if ui is not None:
            ui.stop()
        try:
            proxy.shutdown()
        except Exception:
            logger.exception("Error during shutdown")
