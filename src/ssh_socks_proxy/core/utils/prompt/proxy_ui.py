"""Tunnel dashboard UI components."""

import threading

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ssh_socks_proxy.core.lib.proxy_stats import proxy_stats
from ssh_socks_proxy.core.utils.utils import format_bytes

from .prompt import PromptHandler
from .socks_ui import socks_ui

# Ignore bandwidth changes smaller than this to avoid jitter
BANDWIDTH_THRESHOLD = 100  # bytes


class ProxyUI(PromptHandler):
    """Live dashboard for the tunnel and its SOCKS listener."""

    def __init__(self, listen_address: str, endpoint: str, supervisor=None) -> None:
        """Initialize the dashboard.

        Args:
            listen_address: Local SOCKS5 listener address
            endpoint: SSH server the tunnel runs through
            supervisor: LivenessSupervisor to report heartbeat state from
        """
        super().__init__(refresh_rate=0.5)
        self.listen_address = listen_address
        self.endpoint = endpoint
        self.supervisor = supervisor
        self._last_bandwidth = 0.0

    def _tunnel_status(self) -> Text:
        if self.supervisor is None:
            return Text("unsupervised", style="yellow")
        state = self.supervisor.state
        if self.supervisor.terminated:
            return Text("TERMINATED", style="bold red")
        if state.consecutive_failures:
            return Text(
                f"degraded ({state.consecutive_failures}/{self.supervisor.max_failures} heartbeats missed)",
                style="yellow",
            )
        return Text("active", style="green")

    def _generate_table(self) -> Table:
        """Generate statistics table."""
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Property", style="cyan", no_wrap=True)
        table.add_column("Value", style="green", no_wrap=True)

        bandwidth = proxy_stats.get_bandwidth()
        if abs(bandwidth - self._last_bandwidth) > BANDWIDTH_THRESHOLD:
            self._last_bandwidth = bandwidth

        table.add_row("SSH Server", self.endpoint)
        table.add_row("Tunnel", self._tunnel_status())
        table.add_row("Bandwidth", f"{self.spinner_frame()} {format_bytes(self._last_bandwidth)}/s")
        table.add_row("Active Connections", str(proxy_stats.active_connections))
        table.add_row(
            "Total Data Transferred",
            format_bytes(proxy_stats.total_bytes_sent + proxy_stats.total_bytes_received),
        )
        table.add_row("Dials (failed)", f"{proxy_stats.dials_total} ({proxy_stats.dials_failed})")
        table.add_row("Heartbeat Failures", str(proxy_stats.heartbeat_failures))
        return table

    def _generate_display(self) -> Panel:
        """Generate the main display panel."""
        title = Text(f"SOCKS5 Proxy: {self.listen_address}", style="bold cyan")
        body = Group(self._generate_table(), socks_ui._generate_display())
        return Panel(
            body,
            title=title,
            subtitle="Press Ctrl+C to exit",
            border_style="blue",
            padding=(1, 2),
        )


def create_proxy_ui(listen_address: str, endpoint: str, supervisor=None) -> tuple[ProxyUI, threading.Thread]:
    """Create the dashboard and its (unstarted) thread."""
    ui = ProxyUI(listen_address, endpoint, supervisor)
    return ui, ui.create_thread()
