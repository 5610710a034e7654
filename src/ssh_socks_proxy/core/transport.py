"""SSH transport handle built on paramiko.

This module owns the one authenticated SSH session every tunneled connection
travels through. It provides:
- Connection setup with key authentication and host key verification
- Heartbeats using the ``keepalive@openssh.com`` global request
- Stream opening via ``direct-tcpip`` channels
- Idempotent shutdown that force-closes every stream it opened

paramiko's ``Transport.open_channel`` is safe to call from many threads at
once, so ``open_stream`` takes no lock around the channel open itself. The
internal lock only guards the closed flag and the stream registry.

Example:
    transport = connect_transport(config)
    transport.probe(timeout=15)
    channel = transport.open_stream("tcp", "example.com:443")
"""

import threading
import time
import weakref
from contextlib import suppress
from typing import Final, Protocol, runtime_checkable

import paramiko
from loguru import logger

from .config import HostKeyPolicy, TunnelConfig
from .exceptions import (
    ConfigError,
    HandshakeError,
    ProbeTimeoutError,
    StreamOpenError,
    TransportError,
    TransportUnavailableError,
    UnsupportedNetworkError,
)
from .utils.utils import join_host_port, split_host_port

# Same request name OpenSSH uses for ServerAliveInterval
KEEPALIVE_REQUEST: Final = "keepalive@openssh.com"
TCP_NETWORKS: Final = frozenset({"tcp", "tcp4", "tcp6"})
# Originator address reported in direct-tcpip requests
ORIGIN_ADDR: Final = ("0.0.0.0", 0)

HOST_KEY_POLICIES: Final = {
    HostKeyPolicy.STRICT: paramiko.RejectPolicy,
    HostKeyPolicy.WARN: paramiko.WarningPolicy,
    HostKeyPolicy.INSECURE: paramiko.AutoAddPolicy,
}


@runtime_checkable
class Stream(Protocol):
    """Socket-like byte channel returned by a dial."""

    def recv(self, nbytes: int) -> bytes: ...

    def sendall(self, data: bytes) -> None: ...

    def shutdown(self, how: int) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class TransportHandle(Protocol):
    """What the supervisor and the dial multiplexer need from a transport."""

    endpoint: str

    @property
    def closed(self) -> bool: ...

    def probe(self, timeout: float) -> float | None: ...

    def open_stream(self, network: str, address: str) -> Stream: ...

    def close(self) -> None: ...


class SSHTransport:
    """Authenticated SSH session used as the tunnel transport."""

    def __init__(
        self,
        transport: paramiko.Transport,
        endpoint: str,
        client: paramiko.SSHClient | None = None,
        dial_timeout: float | None = None,
    ) -> None:
        """Wrap an established paramiko transport.

        Args:
            transport: Active, authenticated paramiko transport
            endpoint: ``host:port`` of the SSH server, used in logs
            client: Owning SSHClient, closed together with the transport
            dial_timeout: Seconds to wait for the server to open a channel
        """
        self.endpoint = endpoint
        self.dial_timeout = dial_timeout
        self._transport = transport
        self._client = client
        self._lock = threading.Lock()
        self._closed = False
        self._streams: weakref.WeakSet = weakref.WeakSet()
        # At most one heartbeat in flight; paramiko keeps a single
        # completion event per transport for global requests
        self._probe_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        """True once closed locally or when the session has dropped."""
        with self._lock:
            if self._closed:
                return True
        return not self._transport.is_active()

    @property
    def open_streams(self) -> int:
        with self._lock:
            return len(self._streams)

    def probe(self, timeout: float) -> float:
        """Send one heartbeat and wait for the server to answer.

        Any reply counts as an acknowledgement, including a refusal of the
        request, since either proves the peer is processing our packets.

        Args:
            timeout: Seconds to wait for the reply

        Returns:
            float: Round-trip time in seconds

        Raises:
            ProbeTimeoutError: No reply in time, or a previous probe is still pending
            TransportError: The session is closed or failed during the probe
        """
        if self.closed:
            raise TransportError("SSH session is closed")
        if not self._probe_lock.acquire(blocking=False):
            raise ProbeTimeoutError("previous heartbeat is still awaiting a reply")

        done = threading.Event()
        outcome: dict = {}
        started = time.monotonic()

        def _send() -> None:
            try:
                outcome["reply"] = self._transport.global_request(KEEPALIVE_REQUEST, wait=True)
            except Exception as e:  # handed to the waiting thread
                outcome["error"] = e
            finally:
                self._probe_lock.release()
                done.set()

        threading.Thread(target=_send, name="ssh-heartbeat", daemon=True).start()

        if not done.wait(timeout):
            raise ProbeTimeoutError(f"no heartbeat reply within {timeout:.1f}s")
        if "error" in outcome:
            error = outcome["error"]
            raise TransportError(f"heartbeat failed: {error}") from error
        if outcome["reply"] is None and not self._transport.is_active():
            raise TransportError("SSH session closed while awaiting heartbeat reply")
        return time.monotonic() - started

    def open_stream(self, network: str, address: str) -> paramiko.Channel:
        """Open a direct-tcpip channel to ``address`` through the SSH server.

        Args:
            network: Network name, only TCP variants are supported
            address: Destination as ``host:port``

        Returns:
            paramiko.Channel: Connected channel

        Raises:
            UnsupportedNetworkError: If network is not TCP
            TransportUnavailableError: If the transport has been closed
            StreamOpenError: If the server refuses to open the channel
            TransportError: If the session fails while opening
        """
        if network not in TCP_NETWORKS:
            raise UnsupportedNetworkError(f"unsupported network for SSH tunnel: {network}")
        host, port = split_host_port(address)

        with self._lock:
            if self._closed:
                raise TransportUnavailableError("SSH transport is closed")

        try:
            channel = self._transport.open_channel(
                "direct-tcpip",
                dest_addr=(host, port),
                src_addr=ORIGIN_ADDR,
                timeout=self.dial_timeout,
            )
        except paramiko.ChannelException as e:
            raise StreamOpenError(e.code, e.text) from e
        except paramiko.SSHException as e:
            raise TransportError(str(e)) from e
        except (EOFError, OSError) as e:
            # paramiko re-raises the error that killed the session
            raise TransportError(f"SSH session failed while opening stream: {e!r}") from e

        with self._lock:
            if self._closed:
                channel.close()
                raise TransportUnavailableError("SSH transport closed while opening stream")
            self._streams.add(channel)
        return channel

    def close(self) -> None:
        """Close every open channel and then the session. Safe to call twice."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            streams = list(self._streams)
            self._streams.clear()

        for channel in streams:
            with suppress(Exception):
                channel.close()

        if self._client is not None:
            self._client.close()
        else:
            self._transport.close()
        logger.info(f"SSH transport to {self.endpoint} closed ({len(streams)} streams force-closed)")


def load_private_key(path, passphrase: str | None = None) -> paramiko.PKey:
    """Load a private key of any type paramiko understands.

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    try:
        return paramiko.PKey.from_path(path, passphrase=passphrase.encode() if passphrase else None)
    except Exception as e:
        raise ConfigError(f"Unable to load private key {path}: {e}") from e


def connect_transport(config: TunnelConfig) -> SSHTransport:
    """Establish and authenticate the SSH transport.

    Args:
        config: Tunnel configuration

    Returns:
        SSHTransport: Ready-to-use transport handle

    Raises:
        ConfigError: If the private key cannot be loaded
        HandshakeError: If connecting, host verification or authentication fails
    """
    host, port = config.ssh_endpoint
    endpoint = join_host_port(host, port)
    pkey = load_private_key(config.key_path, config.key_passphrase)

    client = paramiko.SSHClient()
    client.load_system_host_keys()
    if config.known_hosts is not None:
        client.load_host_keys(str(config.known_hosts))
    if config.host_key_policy is HostKeyPolicy.INSECURE:
        logger.warning(f"Host key verification disabled for {endpoint}; the server identity is not checked")
    client.set_missing_host_key_policy(HOST_KEY_POLICIES[config.host_key_policy]())

    logger.info(f"Connecting to SSH server {endpoint} as {config.user}")
    try:
        client.connect(
            host,
            port=port,
            username=config.user,
            pkey=pkey,
            timeout=config.handshake_timeout,
            banner_timeout=config.handshake_timeout,
            auth_timeout=config.handshake_timeout,
            allow_agent=False,
            look_for_keys=False,
        )
    except paramiko.BadHostKeyException as e:
        client.close()
        raise HandshakeError(f"Host key for {endpoint} does not match known_hosts: {e}") from e
    except paramiko.AuthenticationException as e:
        client.close()
        raise HandshakeError(f"Authentication as {config.user} to {endpoint} failed: {e}") from e
    except (paramiko.SSHException, OSError) as e:
        client.close()
        raise HandshakeError(f"Unable to connect to SSH server {endpoint}: {e}") from e

    transport = client.get_transport()
    if transport is None or not transport.is_active():
        client.close()
        raise HandshakeError(f"SSH session to {endpoint} closed right after authentication")

    logger.info(f"Connected to SSH server at {endpoint}")
    return SSHTransport(transport, endpoint, client=client, dial_timeout=config.dial_timeout)
