"""Base class for live terminal panels."""

import threading
import time

from rich.console import Console, RenderableType
from rich.live import Live
from rich.spinner import Spinner

console = Console()


class PromptHandler:
    """Base class for panels that redraw themselves in a background thread."""

    def __init__(self, refresh_rate: float = 1.0) -> None:
        """Initialize the handler.

        Args:
            refresh_rate: Seconds between redraws
        """
        self._refresh_rate = refresh_rate
        self._spinner = Spinner("dots", text="")
        self._start_time = time.monotonic()
        self._stop_event = threading.Event()

    def _generate_display(self) -> RenderableType:
        raise NotImplementedError

    def spinner_frame(self):
        """Current spinner frame, driven by elapsed time."""
        return self._spinner.render(time.monotonic() - self._start_time)

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:
        """Redraw the panel until stopped."""
        with Live(
            self._generate_display(),
            console=console,
            refresh_per_second=4,
            transient=False,
            auto_refresh=False,
        ) as live:
            while not self._stop_event.wait(self._refresh_rate):
                live.update(self._generate_display(), refresh=True)

    def create_thread(self) -> threading.Thread:
        """Return an unstarted daemon thread running the panel."""
        return threading.Thread(target=self.run, name=type(self).__name__, daemon=True)
