"""Command-line interface for the SSH tunnel SOCKS proxy.

This module provides the main command-line interface for the proxy, handling:
- Command-line argument parsing
- Configuration from options and environment variables
- Logging setup
- Error reporting
- Process exit codes

The CLI is built using Typer and provides a user-friendly interface for:
- Starting the tunneled SOCKS5 proxy
- Checking that the SSH server answers heartbeats
- Tuning heartbeat sensitivity

Example:
    # Run from command line:
    $ ssh-socks-proxy proxy ~/.ssh/id_ed25519 bastion.example.com 127.0.0.1:1080
"""

from pathlib import Path

import typer
from loguru import logger
from rich.console import Console

from ssh_socks_proxy import __version__
from ssh_socks_proxy.cmd.check import check_tunnel
from ssh_socks_proxy.cmd.socks import EXIT_STARTUP_FAILED, run_socks_proxy
from ssh_socks_proxy.core.config import (
    DEFAULT_DIAL_TIMEOUT,
    DEFAULT_HANDSHAKE_TIMEOUT,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_HEARTBEAT_TIMEOUT,
    DEFAULT_MAX_HEARTBEAT_FAILURES,
    HostKeyPolicy,
    ResolveMode,
    TunnelConfig,
)
from ssh_socks_proxy.core.exceptions import ConfigError, HandshakeError
from ssh_socks_proxy.core.utils.log_config import configure_logging

console = Console()
app = typer.Typer(help="SOCKS5 proxy that tunnels every connection through one SSH session")

ENV_PREFIX = "SSH_SOCKS_"

KEY_ARG = typer.Argument(..., help="Private key used to log in", envvar=f"{ENV_PREFIX}KEY")
SERVER_ARG = typer.Argument(..., help="SSH server as host[:port]", envvar=f"{ENV_PREFIX}SERVER")
USER_OPT = typer.Option(
    "", "--user", "-u", help="Remote login name (default: local user)", envvar=f"{ENV_PREFIX}USER"
)
PASSPHRASE_OPT = typer.Option(
    None, "--passphrase", help="Passphrase of an encrypted key", envvar=f"{ENV_PREFIX}KEY_PASSPHRASE"
)
HOST_KEY_OPT = typer.Option(
    HostKeyPolicy.STRICT,
    "--host-key-policy",
    case_sensitive=False,
    help="strict: known_hosts only; warn: accept unknown keys with a warning; "
    "insecure: accept any key (allows server impersonation)",
    envvar=f"{ENV_PREFIX}HOST_KEY_POLICY",
)
KNOWN_HOSTS_OPT = typer.Option(
    None, "--known-hosts", help="Extra known_hosts file", envvar=f"{ENV_PREFIX}KNOWN_HOSTS"
)
HANDSHAKE_TIMEOUT_OPT = typer.Option(
    DEFAULT_HANDSHAKE_TIMEOUT,
    "--handshake-timeout",
    help="Seconds allowed for connect and login",
    envvar=f"{ENV_PREFIX}HANDSHAKE_TIMEOUT",
)
HEARTBEAT_TIMEOUT_OPT = typer.Option(
    DEFAULT_HEARTBEAT_TIMEOUT,
    "--heartbeat-timeout",
    help="Seconds to wait for each heartbeat reply",
    envvar=f"{ENV_PREFIX}HEARTBEAT_TIMEOUT",
)
DEBUG_OPT = typer.Option(default=False, help="Enable debug logging", envvar=f"{ENV_PREFIX}DEBUG")


def _build_config(**kwargs) -> TunnelConfig:
    """Create and validate the configuration, exiting on errors."""
    try:
        config = TunnelConfig(**kwargs)
        config.validate()
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}")
        raise typer.Exit(EXIT_STARTUP_FAILED) from e
    return config


@app.callback(invoke_without_command=True)
def version_callback():
    """Show version information."""
    console.print(f"[cyan]SSH SOCKS Proxy v{__version__}[/cyan]")


@app.command(name="proxy")
def start_proxy(
    key_path: Path = KEY_ARG,
    ssh_addr: str = SERVER_ARG,
    listen_addr: str = typer.Argument(
        "127.0.0.1:1080", help="Local SOCKS5 listen address", envvar=f"{ENV_PREFIX}LISTEN"
    ),
    user: str = USER_OPT,
    passphrase: str | None = PASSPHRASE_OPT,
    host_key_policy: HostKeyPolicy = HOST_KEY_OPT,
    known_hosts: Path | None = KNOWN_HOSTS_OPT,
    handshake_timeout: float = HANDSHAKE_TIMEOUT_OPT,
    heartbeat_interval: float = typer.Option(
        DEFAULT_HEARTBEAT_INTERVAL,
        "--heartbeat-interval",
        help="Seconds between heartbeats",
        envvar=f"{ENV_PREFIX}HEARTBEAT_INTERVAL",
    ),
    heartbeat_timeout: float = HEARTBEAT_TIMEOUT_OPT,
    max_heartbeat_failures: int = typer.Option(
        DEFAULT_MAX_HEARTBEAT_FAILURES,
        "--max-heartbeat-failures",
        help="Consecutive missed heartbeats before the tunnel is closed",
        envvar=f"{ENV_PREFIX}MAX_HEARTBEAT_FAILURES",
    ),
    dial_timeout: float = typer.Option(
        DEFAULT_DIAL_TIMEOUT,
        "--dial-timeout",
        help="Seconds allowed to open each tunneled connection",
        envvar=f"{ENV_PREFIX}DIAL_TIMEOUT",
    ),
    resolve: ResolveMode = typer.Option(
        ResolveMode.REMOTE,
        "--resolve",
        case_sensitive=False,
        help="Resolve domain names on the SSH server (remote) or on this machine (local)",
        envvar=f"{ENV_PREFIX}RESOLVE",
    ),
    ui: bool = typer.Option(default=False, help="Show a live dashboard", envvar=f"{ENV_PREFIX}UI"),
    clipboard: bool = typer.Option(
        default=False, help="Copy the listen address to the clipboard", envvar=f"{ENV_PREFIX}CLIPBOARD"
    ),
    debug: bool = DEBUG_OPT,
):
    """Start the SOCKS5 proxy and tunnel it through the SSH server."""
    log_file = configure_logging(debug)
    logger.debug(f"Logging to {log_file}")

    config = _build_config(
        key_path=key_path,
        ssh_address=ssh_addr,
        listen_address=listen_addr,
        user=user,
        key_passphrase=passphrase,
        host_key_policy=host_key_policy,
        known_hosts=known_hosts,
        handshake_timeout=handshake_timeout,
        heartbeat_interval=heartbeat_interval,
        heartbeat_timeout=heartbeat_timeout,
        max_heartbeat_failures=max_heartbeat_failures,
        dial_timeout=dial_timeout,
        resolve=resolve,
        show_ui=ui,
        copy_to_clipboard=clipboard,
    )

    logger.info("Starting SSH SOCKS proxy")
    try:
        exit_code = run_socks_proxy(config)
    except Exception as e:
        logger.exception("Error running proxy")
        console.print(f"[red]Error: {e}")
        exit_code = EXIT_STARTUP_FAILED
    raise typer.Exit(exit_code)


@app.command(name="check")
def check(
    key_path: Path = KEY_ARG,
    ssh_addr: str = SERVER_ARG,
    user: str = USER_OPT,
    passphrase: str | None = PASSPHRASE_OPT,
    host_key_policy: HostKeyPolicy = HOST_KEY_OPT,
    known_hosts: Path | None = KNOWN_HOSTS_OPT,
    handshake_timeout: float = HANDSHAKE_TIMEOUT_OPT,
    heartbeat_timeout: float = HEARTBEAT_TIMEOUT_OPT,
    count: int = typer.Option(
        3, "--count", "-c", min=1, help="Number of heartbeats to send", envvar=f"{ENV_PREFIX}CHECK_COUNT"
    ),
    dial: str | None = typer.Option(
        None, "--dial", help="Also open a test connection to host:port", envvar=f"{ENV_PREFIX}CHECK_DIAL"
    ),
    debug: bool = DEBUG_OPT,
):
    """Connect to the SSH server and measure heartbeat round trips."""
    configure_logging(debug)

    config = _build_config(
        key_path=key_path,
        ssh_address=ssh_addr,
        listen_address="127.0.0.1:0",
        user=user,
        key_passphrase=passphrase,
        host_key_policy=host_key_policy,
        known_hosts=known_hosts,
        handshake_timeout=handshake_timeout,
        heartbeat_timeout=heartbeat_timeout,
    )

    try:
        ok = check_tunnel(config, count=count, dial_target=dial)
    except (ConfigError, HandshakeError) as e:
        console.print(f"[red]Error: {e}")
        raise typer.Exit(EXIT_STARTUP_FAILED) from e
    raise typer.Exit(0 if ok else 1)


if __name__ == "__main__":
    app()
