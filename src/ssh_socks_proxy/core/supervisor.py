"""Heartbeat supervision of the SSH transport.

This module implements the liveness supervisor that watches the one shared
transport for the lifetime of the process:
- A daemon thread probes the transport once per interval
- Consecutive failures are counted, a single success resets the count
- Reaching the failure threshold terminates the transport for good
- Termination is observable through a status flag, a wait call and callbacks

Only the supervisor thread writes the liveness state. Other threads read the
status through a ``threading.Event``, so no lock is needed on the hot path of
``dial``. Termination is one-way; a terminated supervisor never restarts.

Example:
    supervisor = LivenessSupervisor(transport, interval=60, max_failures=3)
    supervisor.add_termination_callback(lambda: print("tunnel died"))
    supervisor.start()
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

from loguru import logger

from .exceptions import TransportError
from .transport import TransportHandle


class TransportStatus(str, Enum):
    """Lifecycle status of a transport under supervision."""

    ACTIVE = "active"
    TERMINATED = "terminated"


@dataclass
class LivenessState:
    """Heartbeat bookkeeping for one transport.

    Attributes:
        consecutive_failures: Failed probes since the last success
        last_probe_at: Wall-clock time of the most recent probe
        status: ACTIVE until the failure threshold is reached
    """

    consecutive_failures: int = 0
    last_probe_at: float | None = None
    status: TransportStatus = TransportStatus.ACTIVE


class LivenessSupervisor:
    """Periodically probe a transport and terminate it when it stops answering."""

    def __init__(
        self,
        transport: TransportHandle,
        interval: float,
        max_failures: int,
        probe_timeout: float | None = None,
        stats=None,
    ) -> None:
        """Initialize the supervisor without starting it.

        Args:
            transport: Transport handle with ``probe``, ``close`` and ``closed``
            interval: Seconds between probes
            max_failures: Consecutive failures that terminate the transport
            probe_timeout: Seconds to wait for each probe (default: interval)
            stats: Optional ProxyStats receiving heartbeat failure counts
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        if max_failures < 1:
            raise ValueError("max_failures must be at least 1")

        self.transport = transport
        self.interval = interval
        self.max_failures = max_failures
        self.probe_timeout = probe_timeout if probe_timeout is not None else interval
        self._stats = stats

        self._state = LivenessState()
        self._terminated = threading.Event()
        self._stop_event = threading.Event()
        self._callbacks: list[Callable[[], None]] = []
        self._callbacks_lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def status(self) -> TransportStatus:
        if self._terminated.is_set():
            return TransportStatus.TERMINATED
        return TransportStatus.ACTIVE

    @property
    def terminated(self) -> bool:
        return self._terminated.is_set()

    @property
    def state(self) -> LivenessState:
        """Snapshot of the current liveness state."""
        return replace(self._state)

    def add_termination_callback(self, callback: Callable[[], None]) -> None:
        """Register ``callback`` to run once when the transport is terminated.

        A callback added after termination runs immediately in the caller's thread.
        """
        with self._callbacks_lock:
            if not self._terminated.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def wait_terminated(self, timeout: float | None = None) -> bool:
        """Block until terminated or ``timeout`` elapses. Returns True if terminated."""
        return self._terminated.wait(timeout)

    def start(self) -> None:
        """Start the heartbeat loop in a daemon thread."""
        if self._thread is not None:
            raise RuntimeError("supervisor already started")
        self._thread = threading.Thread(target=self._run, name="liveness-supervisor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the heartbeat loop without terminating the transport."""
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def tick(self) -> TransportStatus:
        """Run one probe cycle and update the liveness state.

        Returns:
            TransportStatus: Status after this cycle
        """
        if self._terminated.is_set():
            return TransportStatus.TERMINATED

        self._state.last_probe_at = time.time()
        try:
            if self.transport.closed:
                raise TransportError("transport reports closed")
            self.transport.probe(self.probe_timeout)
        except Exception as e:  # every probe error counts the same
            return self._record_failure(e)

        if self._state.consecutive_failures:
            logger.info(f"Heartbeat recovered after {self._state.consecutive_failures} failure(s)")
        else:
            logger.debug("Heartbeat acknowledged")
        self._state.consecutive_failures = 0
        return TransportStatus.ACTIVE

    def _record_failure(self, error: Exception) -> TransportStatus:
        self._state.consecutive_failures += 1
        failures = self._state.consecutive_failures
        logger.warning(f"Heartbeat failed ({failures}/{self.max_failures}): {error}")
        if self._stats is not None:
            self._stats.heartbeat_failed()

        if failures >= self.max_failures:
            logger.error("Max heartbeat failures reached. Closing transport.")
            self._terminate()
        return self.status

    def _terminate(self) -> None:
        self._state.status = TransportStatus.TERMINATED
        with self._callbacks_lock:
            self._terminated.set()
            callbacks = self._callbacks
            self._callbacks = []
        self._stop_event.set()

        try:
            self.transport.close()
        except Exception:
            logger.exception("Error closing transport")

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Termination callback failed")

    def _run(self) -> None:
        logger.info(
            f"Heartbeat started: every {self.interval:g}s, "
            f"timeout {self.probe_timeout:g}s, max {self.max_failures} failures"
        )
        while not self._stop_event.wait(self.interval):
            if self.tick() is TransportStatus.TERMINATED:
                break
        logger.debug("Heartbeat loop stopped")
