"""SSH tunnel health check.

This module provides functionality for:
- Connecting to the SSH server with the proxy's settings
- Sending a series of heartbeats through the session
- Measuring heartbeat round-trip times
- Checking that the server allows direct-tcpip streams

Results are presented in a formatted table using Rich, which makes it easy
to tune the heartbeat interval and timeout before running the proxy.

Example:
    # Send five heartbeats and show their round-trip times
    ok = check_tunnel(config, count=5)
"""

import time
from contextlib import suppress

from loguru import logger
from rich.console import Console
from rich.table import Table

from ssh_socks_proxy.core.config import TunnelConfig
from ssh_socks_proxy.core.exceptions import ProxyError
from ssh_socks_proxy.core.transport import connect_transport

console = Console()

PROBE_SPACING = 0.5  # seconds between heartbeats


def check_tunnel(config: TunnelConfig, count: int = 3, dial_target: str | None = None) -> bool:
    """Connect, send ``count`` heartbeats and optionally open one stream.

    Args:
        config: Tunnel configuration
        count: Number of heartbeats to send
        dial_target: ``host:port`` to open a test stream to

    Returns:
        bool: True if every heartbeat and the test stream succeeded

    Raises:
        ConfigError: If the private key cannot be loaded
        HandshakeError: If the SSH transport cannot be established
    """
    transport = connect_transport(config)
    table = Table(title=f"Tunnel check: {transport.endpoint}")
    table.add_column("Step", style="cyan")
    table.add_column("Result")
    table.add_column("Time", justify="right")

    ok = True
    try:
        for i in range(1, count + 1):
            try:
                rtt = transport.probe(config.heartbeat_timeout)
                table.add_row(f"Heartbeat {i}", "[green]ok", f"{rtt * 1000:.1f} ms")
            except ProxyError as e:
                ok = False
                table.add_row(f"Heartbeat {i}", f"[red]{e}", "-")
            if i < count:
                time.sleep(PROBE_SPACING)

        if dial_target:
            started = time.monotonic()
            try:
                stream = transport.open_stream("tcp", dial_target)
            except (ProxyError, ValueError) as e:
                ok = False
                table.add_row(f"Dial {dial_target}", f"[red]{e}", "-")
            else:
                elapsed = time.monotonic() - started
                with suppress(Exception):
                    stream.close()
                table.add_row(f"Dial {dial_target}", "[green]ok", f"{elapsed * 1000:.1f} ms")
    finally:
        transport.close()

    console.print(table)
    logger.debug(f"Tunnel check finished, ok={ok}")
    return ok
