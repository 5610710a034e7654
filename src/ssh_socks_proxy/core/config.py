"""Tunnel configuration.

This module holds every tunable the proxy reads at startup:
- Where the private key lives and which user logs in
- Which SSH server to tunnel through and how to verify its host key
- Where the local SOCKS5 listener binds
- Heartbeat interval, per-probe timeout and failure threshold
- Handshake and channel-open timeouts
- Whether domain names are resolved locally or by the SSH server

Host key verification defaults to ``strict`` (known_hosts only). Accepting
unknown host keys is available as ``insecure`` but it allows a
man-in-the-middle to impersonate the server, so it is never the default.

Example:
    config = TunnelConfig(
        key_path=Path("~/.ssh/id_ed25519"),
        ssh_address="bastion.example.com:22",
        listen_address="127.0.0.1:1080",
    )
    config.validate()
"""

import getpass
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Final

from .exceptions import ConfigError
from .utils.utils import split_host_port

DEFAULT_SSH_PORT: Final = 22
DEFAULT_HANDSHAKE_TIMEOUT: Final = 30.0  # seconds
DEFAULT_HEARTBEAT_INTERVAL: Final = 60.0  # seconds
DEFAULT_HEARTBEAT_TIMEOUT: Final = 15.0  # seconds
DEFAULT_MAX_HEARTBEAT_FAILURES: Final = 3
DEFAULT_DIAL_TIMEOUT: Final = 30.0  # seconds


class HostKeyPolicy(str, Enum):
    """How unknown SSH host keys are treated."""

    STRICT = "strict"  # reject hosts missing from known_hosts
    WARN = "warn"  # accept with a warning, do not persist
    INSECURE = "insecure"  # accept silently


class ResolveMode(str, Enum):
    """Where SOCKS domain names are resolved."""

    REMOTE = "remote"
    LOCAL = "local"


def default_user() -> str:
    """Return the local login name, used when no SSH user is configured."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "root"


@dataclass
class TunnelConfig:
    """Process configuration for the tunnel proxy.

    Attributes:
        key_path: Private key used to authenticate
        ssh_address: SSH server as ``host[:port]``
        listen_address: Local SOCKS5 listener as ``host:port``
        user: Remote login name
        key_passphrase: Passphrase for an encrypted key
        host_key_policy: Treatment of unknown host keys
        known_hosts: Extra known_hosts file loaded after the system one
        handshake_timeout: Seconds allowed for connect, banner and auth
        heartbeat_interval: Seconds between heartbeats
        heartbeat_timeout: Seconds to wait for each heartbeat reply
        max_heartbeat_failures: Consecutive failures that kill the tunnel
        dial_timeout: Seconds allowed for the server to open a stream
        resolve: Where SOCKS domain names are resolved
        show_ui: Show the live terminal dashboard
        copy_to_clipboard: Copy the listen address to the clipboard
    """

    key_path: Path
    ssh_address: str
    listen_address: str
    user: str = ""
    key_passphrase: str | None = None
    host_key_policy: HostKeyPolicy = HostKeyPolicy.STRICT
    known_hosts: Path | None = None
    handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT
    max_heartbeat_failures: int = DEFAULT_MAX_HEARTBEAT_FAILURES
    dial_timeout: float = DEFAULT_DIAL_TIMEOUT
    resolve: ResolveMode = ResolveMode.REMOTE
    show_ui: bool = False
    copy_to_clipboard: bool = False

    def __post_init__(self) -> None:
        self.key_path = Path(self.key_path).expanduser()
        if self.known_hosts is not None:
            self.known_hosts = Path(self.known_hosts).expanduser()
        if not self.user:
            self.user = default_user()
        try:
            self.host_key_policy = HostKeyPolicy(self.host_key_policy)
        except ValueError as e:
            raise ConfigError(f"Unknown host key policy: {self.host_key_policy}") from e
        try:
            self.resolve = ResolveMode(self.resolve)
        except ValueError as e:
            raise ConfigError(f"Unknown resolve mode: {self.resolve}") from e

    @property
    def ssh_endpoint(self) -> tuple[str, int]:
        """SSH server host and port."""
        return split_host_port(self.ssh_address, DEFAULT_SSH_PORT)

    @property
    def listen_endpoint(self) -> tuple[str, int]:
        """Local listener host and port."""
        return split_host_port(self.listen_address)

    def validate(self, check_key: bool = True) -> None:
        """Check the configuration for consistency.

        Args:
            check_key: Also require the key file to exist

        Raises:
            ConfigError: On the first invalid setting found
        """
        try:
            ssh_host, _ = self.ssh_endpoint
        except ValueError as e:
            raise ConfigError(f"Invalid SSH address: {e}") from e
        if not ssh_host:
            raise ConfigError("SSH address has no host")

        try:
            self.listen_endpoint
        except ValueError as e:
            raise ConfigError(f"Invalid listen address: {e}") from e

        for name in ("handshake_timeout", "heartbeat_interval", "heartbeat_timeout", "dial_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")

        if self.max_heartbeat_failures < 1:
            raise ConfigError("max_heartbeat_failures must be at least 1")

        if check_key and not self.key_path.is_file():
            raise ConfigError(f"Private key not found: {self.key_path}")

        if self.known_hosts is not None and not self.known_hosts.is_file():
            raise ConfigError(f"known_hosts file not found: {self.known_hosts}")
