"""Statistics tracking and monitoring for the tunnel proxy.

This module provides real-time statistics tracking for the proxy, including:
- Active connection counting
- Bandwidth monitoring
- Data transfer tracking
- Dial and heartbeat outcome counters

The statistics are maintained in a thread-safe manner using a lock, since
they are updated from every connection handler thread and from the
heartbeat thread at the same time.

Example:
    # Global stats object is automatically created
    from .proxy_stats import proxy_stats

    # Track new connection
    proxy_stats.connection_started()

    # Update transfer statistics
    proxy_stats.update_bytes(sent=1024, received=2048)
"""

import threading
import time
from collections import deque
from datetime import datetime, timezone

BANDWIDTH_WINDOW = 5  # seconds


class ProxyStats:
    """Thread-safe statistics tracker for the tunnel proxy.

    Maintains real-time statistics about proxy operations including:
    - Active connection count
    - Bandwidth usage and history
    - Total bytes transferred
    - Dials attempted and failed
    - Heartbeat failures

    All operations are thread-safe using internal locking mechanisms.
    """

    def __init__(self) -> None:
        """Initialize proxy statistics tracker.

        Creates a new statistics tracker with zeroed counters and
        an empty bandwidth history buffer. Initializes thread lock
        and records start time with timezone awareness.
        """
        self.active_connections = 0
        self.total_bytes_sent = 0
        self.total_bytes_received = 0
        self.dials_total = 0
        self.dials_failed = 0
        self.heartbeat_failures = 0
        self.bandwidth_history = deque(maxlen=600)
        self.start_time = datetime.now(tz=timezone.utc)
        self._lock = threading.Lock()

    def update_bytes(self, sent: int, received: int) -> None:
        """Update byte transfer statistics.

        Args:
            sent: Number of bytes sent to the remote side
            received: Number of bytes received from the remote side
        """
        with self._lock:
            self.total_bytes_sent += sent
            self.total_bytes_received += received
            self.bandwidth_history.append((sent + received, time.time()))

    def get_bandwidth(self) -> float:
        """Calculate current bandwidth usage in bytes per second.

        Returns:
            float: Average bandwidth usage over the last few seconds in bytes/second
        """
        with self._lock:
            cutoff = time.time() - BANDWIDTH_WINDOW
            total_bytes = sum(bytes_ for bytes_, ts in self.bandwidth_history if ts > cutoff)
            return total_bytes / BANDWIDTH_WINDOW

    def connection_started(self) -> None:
        """Increment the active connection counter."""
        with self._lock:
            self.active_connections += 1

    def connection_ended(self) -> None:
        """Decrement the active connection counter."""
        with self._lock:
            self.active_connections -= 1

    def dial_started(self) -> None:
        with self._lock:
            self.dials_total += 1

    def dial_failed(self) -> None:
        with self._lock:
            self.dials_failed += 1

    def heartbeat_failed(self) -> None:
        with self._lock:
            self.heartbeat_failures += 1

    @property
    def uptime(self) -> float:
        """Seconds since the tracker was created."""
        return (datetime.now(tz=timezone.utc) - self.start_time).total_seconds()


# Global statistics object
proxy_stats = ProxyStats()
