"""SOCKS proxy command interface.

This module provides a high-level interface for:
- Starting the tunnel and the SOCKS proxy server
- Reporting startup failures in a readable form
- Translating the proxy's outcome into a process exit code

The module integrates with the core proxy implementation and provides
a user-friendly way to start and manage the proxy server.

Example:
    # Start a SOCKS proxy with a validated configuration
    exit_code = run_socks_proxy(config)
"""

from loguru import logger
from rich.console import Console

from ssh_socks_proxy.core.config import TunnelConfig
from ssh_socks_proxy.core.exceptions import ConfigError, HandshakeError
from ssh_socks_proxy.core.proxy import create_proxy_server

console = Console()

EXIT_STARTUP_FAILED = 1


def run_socks_proxy(config: TunnelConfig) -> int:
    """Run the tunneled SOCKS proxy and return the process exit code."""
    console.print(
        f"[cyan]Tunneling SOCKS5 on {config.listen_address} "
        f"through {config.user}@{config.ssh_address}"
    )

    try:
        return create_proxy_server(config)
    except (ConfigError, HandshakeError) as e:
        logger.error(str(e))
        console.print(f"[red]Error: {e}")
        return EXIT_STARTUP_FAILED
    except OSError as e:
        logger.error(f"Unable to listen on {config.listen_address}: {e}")
        console.print(f"[red]Unable to listen on {config.listen_address}: {e}")
        return EXIT_STARTUP_FAILED
