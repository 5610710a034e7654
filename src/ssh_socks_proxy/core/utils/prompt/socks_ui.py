"""SOCKS-specific UI components."""

import threading
import time

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ssh_socks_proxy.core.utils.prompt.prompt import PromptHandler

MAX_ROWS = 10


class SocksUI(PromptHandler):
    """UI handler for SOCKS connections."""

    def __init__(self) -> None:
        """Initialize the SOCKS UI handler.

        Sets up active connection tracking.
        """
        super().__init__()
        self._active_connections: dict[tuple, tuple[float, str]] = {}  # addr: (start_time, target)
        self._lock = threading.Lock()

    def connection_started(self, addr: tuple) -> None:
        """Log new connection."""
        with self._lock:
            self._active_connections[addr] = (time.monotonic(), "negotiating")

    def target_connected(self, addr: tuple, target: str) -> None:
        """Record the destination once the tunnel stream is open."""
        with self._lock:
            started, _ = self._active_connections.get(addr, (time.monotonic(), ""))
            self._active_connections[addr] = (started, target)

    def connection_ended(self, addr: tuple) -> None:
        """Log connection end."""
        with self._lock:
            self._active_connections.pop(addr, None)

    def _generate_table(self) -> Table:
        """Generate SOCKS connection table, longest-lived first."""
        table = Table(show_header=True, box=None, padding=(0, 1))
        table.add_column("Client", style="cyan", no_wrap=True)
        table.add_column("Target", style="green", no_wrap=True)
        table.add_column("Age", justify="right", no_wrap=True)

        now = time.monotonic()
        with self._lock:
            rows = sorted(self._active_connections.items(), key=lambda item: item[1][0])

        for addr, (start_time, target) in rows[:MAX_ROWS]:
            table.add_row(f"{addr[0]}:{addr[1]}", target, f"{now - start_time:.1f}s")
        if len(rows) > MAX_ROWS:
            table.add_row("...", f"{len(rows) - MAX_ROWS} more", "")

        return table

    def _generate_display(self) -> Panel:
        """Generate the connections panel."""
        title = Text("SOCKS Connections", style="bold cyan")
        return Panel(self._generate_table(), title=title, border_style="blue", padding=(0, 1))


# Global UI instance
socks_ui = SocksUI()
