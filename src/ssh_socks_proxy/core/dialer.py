"""Concurrent dialing through the shared transport.

The dial multiplexer is the only outbound connection factory the SOCKS
front-end sees. It:
- Forwards every dial straight to the transport without serializing callers
- Fails fast with TransportUnavailableError once the transport is terminated
- Passes transport errors through untouched so the front-end can map them
- Tracks the streams it handed out and force-closes them on termination

The lock here only covers the stream registry and the terminated flag. It is
never held while a stream is being opened.

Example:
    dialer = DialMultiplexer(transport, supervisor)
    stream = dialer.dial("tcp", "10.0.0.5:80")
    try:
        stream.sendall(b"GET / HTTP/1.0\\r\\n\\r\\n")
    finally:
        dialer.release(stream)
        stream.close()
"""

import socket
import threading
import weakref
from contextlib import suppress

from loguru import logger

from .exceptions import TransportUnavailableError
from .transport import Stream, TransportHandle


def force_close(stream: Stream) -> None:
    """Shut down and close a stream so blocked readers and writers wake up."""
    with suppress(Exception):
        stream.shutdown(socket.SHUT_RDWR)
    with suppress(Exception):
        stream.close()


class DialMultiplexer:
    """Thread-safe ``dial`` facade over one transport handle."""

    def __init__(self, transport: TransportHandle, supervisor=None, stats=None) -> None:
        """Initialize the multiplexer.

        Args:
            transport: Transport handle providing ``open_stream``
            supervisor: Optional LivenessSupervisor whose termination closes all streams
            stats: Optional ProxyStats receiving dial counts
        """
        self.transport = transport
        self._supervisor = supervisor
        self._stats = stats
        self._lock = threading.Lock()
        self._terminated = False
        self._streams: weakref.WeakSet = weakref.WeakSet()

        if supervisor is not None:
            supervisor.add_termination_callback(self._on_transport_terminated)

    @property
    def terminated(self) -> bool:
        if self._supervisor is not None and self._supervisor.terminated:
            return True
        with self._lock:
            return self._terminated

    @property
    def active_streams(self) -> int:
        with self._lock:
            return len(self._streams)

    def dial(self, network: str, address: str) -> Stream:
        """Open a stream to ``address`` through the transport.

        Args:
            network: Network name such as ``tcp``
            address: Destination as ``host:port``

        Returns:
            Stream: Connected stream owned by the caller

        Raises:
            TransportUnavailableError: If the transport has been terminated
            Exception: Whatever the transport raised, unmodified
        """
        if self.terminated:
            raise TransportUnavailableError(f"transport unavailable, cannot dial {address}")

        if self._stats is not None:
            self._stats.dial_started()
        try:
            stream = self.transport.open_stream(network, address)
        except Exception as e:
            if self._stats is not None:
                self._stats.dial_failed()
            logger.debug(f"Dial {network}/{address} failed: {e}")
            raise

        with self._lock:
            if not self._terminated:
                self._streams.add(stream)
                return stream

        # Terminated while the open was in flight
        force_close(stream)
        if self._stats is not None:
            self._stats.dial_failed()
        raise TransportUnavailableError(f"transport terminated while dialing {address}")

    def release(self, stream: Stream) -> None:
        """Forget a stream the caller is done with."""
        with self._lock:
            self._streams.discard(stream)

    def close(self) -> None:
        """Refuse further dials and force-close every outstanding stream."""
        with self._lock:
            self._terminated = True
            streams = list(self._streams)
            self._streams.clear()

        for stream in streams:
            force_close(stream)
        if streams:
            logger.info(f"Closed {len(streams)} tunneled stream(s)")

    def _on_transport_terminated(self) -> None:
        logger.warning("Transport terminated, closing all tunneled streams")
        self.close()
