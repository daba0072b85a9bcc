"""Dump file loading and change watching for gorotop."""

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from queue import Queue

from gorotop.errors import DumpParseError, StreamError
from gorotop.models import Goroutine
from gorotop.parser import parse_dump

logger = logging.getLogger(__name__)


def load_dump(
    path: str | os.PathLike[str], diagnostics: list[DumpParseError] | None = None
) -> list[Goroutine]:
    """
    Parse the goroutine dump stored at path.

    Raises:
        StreamError: If the file cannot be opened or read.
    """
    try:
        stream = open(path, encoding="utf-8")
    except OSError as exc:
        raise StreamError(f"Cannot open {path}: {exc}") from exc
    with stream:
        return parse_dump(stream, diagnostics)


@dataclass(slots=True)
class DumpSnapshot:
    """Result of loading a dump file once."""

    path: str
    goroutines: list[Goroutine]
    loaded_at: float  # Epoch seconds
    diagnostics: list[DumpParseError] = field(default_factory=list)
    error: str | None = None  # Set when the file could not be read


class DumpWatcher:
    """
    Watches a dump file and re-parses it whenever it changes.

    Runs in a separate daemon thread and pushes snapshots to a thread-safe
    Queue. A file that cannot be read produces a snapshot carrying the error,
    and the watcher keeps polling.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        update_queue: Queue[DumpSnapshot],
        poll_rate: float = 2.0,
    ) -> None:
        """
        Initialize the DumpWatcher.

        Args:
            path: Dump file to watch.
            update_queue: Thread-safe queue to push snapshots to.
            poll_rate: How often to check the file (in seconds). Default 2.0s.
        """
        self._path = Path(path)
        self._queue = update_queue
        self._poll_rate = max(0.1, poll_rate)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_signature: tuple[int, int] | None = None

    @property
    def path(self) -> Path:
        """Path of the watched dump file."""
        return self._path

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the watcher thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the watcher thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._last_signature = None
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="DumpWatcher",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the watcher thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def load_once(self) -> DumpSnapshot:
        """Load and parse the file now, capturing read failures in the snapshot."""
        diagnostics: list[DumpParseError] = []
        try:
            goroutines = load_dump(self._path, diagnostics)
        except StreamError as exc:
            logger.warning("Failed to load %s: %s", self._path, exc)
            return DumpSnapshot(
                path=str(self._path),
                goroutines=[],
                loaded_at=time.time(),
                error=str(exc),
            )

        logger.info(
            "Loaded %d goroutines from %s (%d skipped entries)",
            len(goroutines),
            self._path,
            len(diagnostics),
        )
        return DumpSnapshot(
            path=str(self._path),
            goroutines=goroutines,
            loaded_at=time.time(),
            diagnostics=diagnostics,
        )

    def _file_signature(self) -> tuple[int, int] | None:
        """Modification time and size of the file, None when it is missing."""
        try:
            stat = self._path.stat()
        except OSError:
            return None
        return stat.st_mtime_ns, stat.st_size

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        first = True
        while not self._stop_event.is_set():
            signature = self._file_signature()
            if first or signature != self._last_signature:
                first = False
                self._last_signature = signature
                self._queue.put(self.load_once())

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)
