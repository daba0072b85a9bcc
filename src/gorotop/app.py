"""gorotop - Main Textual application."""

import argparse
import logging
from enum import Enum
from queue import Empty, Queue

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Input, Static

from gorotop.models import Goroutine, stack_contains, summarize_statuses
from gorotop.watcher import DumpSnapshot, DumpWatcher

logger = logging.getLogger(__name__)


class SortKey(Enum):
    """Sort keys for the goroutine table."""

    ID = "id"
    STATUS = "status"
    WAIT = "wait"
    FRAMES = "frames"


def format_wait(minutes: int) -> str:
    """Format a wait duration in minutes, empty when nothing was reported."""
    if minutes <= 0:
        return ""
    if minutes < 60:
        return f"{minutes}m"
    return f"{minutes // 60}h{minutes % 60:02d}m"


def matches_filter(goroutine: Goroutine, search: str) -> bool:
    """Check whether a goroutine matches the search text by status or stack."""
    if not search:
        return True
    return search.lower() in goroutine.status.lower() or stack_contains(
        goroutine.full_stack(), search
    )


class SummaryStats(Static):
    """Header widget showing dump-wide goroutine statistics."""

    DEFAULT_CSS = """
    SummaryStats {
        height: auto;
        min-height: 4;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize SummaryStats."""
        super().__init__("Loading dump...", *args, **kwargs)
        self._path: str = ""
        self._total: int = 0
        self._status_counts: list[tuple[str, int]] = []
        self._locked: int = 0
        self._longest_wait: int = 0
        self._skipped: int = 0
        self._error: str | None = None

    def update_stats(self, snapshot: DumpSnapshot) -> None:
        """Update the statistics from a dump snapshot."""
        goroutines = snapshot.goroutines
        self._path = snapshot.path
        self._total = len(goroutines)
        self._status_counts = summarize_statuses(goroutines)
        self._locked = sum(1 for g in goroutines if g.locked_to_thread)
        self._longest_wait = max((g.wait_since_min for g in goroutines), default=0)
        self._skipped = len(snapshot.diagnostics)
        self._error = snapshot.error
        self.update(self._render_text())

    def _render_text(self) -> str:
        """Build the header text."""
        if self._error is not None:
            return f"[b]{escape(self._path)}[/b]\n[red]{escape(self._error)}[/red]"

        statuses = "  ".join(
            f"{escape(status)}: {count}" for status, count in self._status_counts[:6]
        )
        lines = [
            f"[b]{escape(self._path)}[/b]  goroutines: {self._total}",
            statuses or "no goroutines",
            f"locked to thread: {self._locked}  "
            f"longest wait: {format_wait(self._longest_wait) or '-'}",
        ]
        if self._skipped:
            lines.append(f"[yellow]skipped {self._skipped} unparsable entries[/yellow]")
        return "\n".join(lines)


class GoroutineTable(Container):
    """Container for the goroutine data table."""

    DEFAULT_CSS = """
    GoroutineTable {
        height: 2fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize GoroutineTable."""
        super().__init__(*args, **kwargs)
        self._goroutines: list[Goroutine] = []
        self._current_ids: set[int] = set()
        self._sort_key: SortKey = SortKey.ID
        self._sort_reverse: bool = False
        self._search: str = ""

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    @property
    def search(self) -> str:
        """Get current search text."""
        return self._search

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        current_index = keys.index(self._sort_key)
        next_index = (current_index + 1) % len(keys)
        self._sort_key = keys[next_index]
        # Longest waits and deepest stacks first
        self._sort_reverse = self._sort_key in (SortKey.WAIT, SortKey.FRAMES)
        self._refresh_rows()
        return self._sort_key

    def set_search(self, search: str) -> None:
        """Filter rows to goroutines matching search."""
        self._search = search.strip()
        self._refresh_rows()

    def get_goroutine(self, goroutine_id: int) -> Goroutine | None:
        """Look up a goroutine from the last update by id."""
        for goroutine in self._goroutines:
            if goroutine.id == goroutine_id:
                return goroutine
        return None

    def compose(self) -> ComposeResult:
        """Compose the goroutine table."""
        yield DataTable(id="goroutine-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#goroutine-table", DataTable)
        table.cursor_type = "row"

        table.add_column("ID", key="id", width=8)
        table.add_column("STATUS", key="status", width=20)
        table.add_column("WAIT", key="wait", width=7)
        table.add_column("LOCKED", key="locked", width=6)
        table.add_column("FRAMES", key="frames", width=6)
        table.add_column("TOP FRAME", key="top")

    def update_goroutines(self, goroutines: list[Goroutine]) -> None:
        """Replace the table contents with a freshly parsed dump."""
        self._goroutines = goroutines
        self._refresh_rows()

    def _refresh_rows(self) -> None:
        """
        Rebuild the rows from the current goroutines, sort key and search.

        Rows are rebuilt rather than patched so the displayed order always
        follows the sort key. The highlighted goroutine stays highlighted
        when it is still visible.
        """
        table = self.query_one("#goroutine-table", DataTable)
        selected = self.highlighted_key()
        table.clear()

        visible = [g for g in self._goroutines if matches_filter(g, self._search)]
        self._current_ids = set()
        for goroutine in self._sort_goroutines(visible):
            row_key = str(goroutine.id)
            if goroutine.id in self._current_ids:
                logger.debug("Duplicate goroutine id %d in dump, showing first", goroutine.id)
                continue
            self._add_row(table, row_key, goroutine)
            self._current_ids.add(goroutine.id)

        if selected is not None and int(selected) in self._current_ids:
            table.move_cursor(row=table.get_row_index(selected))

    def highlighted_key(self) -> str | None:
        """Row key of the goroutine under the cursor, None for an empty table."""
        table = self.query_one("#goroutine-table", DataTable)
        if not table.row_count:
            return None
        row = min(table.cursor_row, table.row_count - 1)
        return table.ordered_rows[row].key.value

    def highlighted_goroutine(self) -> Goroutine | None:
        """The goroutine under the cursor."""
        key = self.highlighted_key()
        return self.get_goroutine(int(key)) if key is not None else None

    def _sort_goroutines(self, goroutines: list[Goroutine]) -> list[Goroutine]:
        """Sort goroutines based on the current sort key."""
        key_func = {
            SortKey.ID: lambda g: g.id,
            SortKey.STATUS: lambda g: g.status.lower(),
            SortKey.WAIT: lambda g: g.wait_since_min,
            SortKey.FRAMES: lambda g: len(g.stack_trace),
        }
        return sorted(goroutines, key=key_func[self._sort_key], reverse=self._sort_reverse)

    def _add_row(self, table: DataTable, row_key: str, goroutine: Goroutine) -> None:
        """Add a new row to the table."""
        top = goroutine.top_frame
        table.add_row(
            str(goroutine.id),
            Text(goroutine.status[:20]),
            format_wait(goroutine.wait_since_min),
            "yes" if goroutine.locked_to_thread else "",
            str(len(goroutine.stack_trace)),
            Text(top.func_name if top is not None else ""),
            key=row_key,
        )


class StackView(Static):
    """Full stack of the highlighted goroutine."""

    DEFAULT_CSS = """
    StackView {
        height: 1fr;
        border: solid $secondary;
        padding: 0 1;
        overflow-y: auto;
    }
    """

    _goroutine: Goroutine | None = None

    @property
    def goroutine(self) -> Goroutine | None:
        """The goroutine currently shown."""
        return self._goroutine

    def show_goroutine(self, goroutine: Goroutine | None) -> None:
        """Render the stack of goroutine, or clear the view."""
        self._goroutine = goroutine
        if goroutine is None:
            self.update("")
            return
        lines = [f"goroutine {goroutine.id} [{goroutine.status}]"]
        if not goroutine.stack_trace:
            lines.append("(no frames)")
        lines.extend(str(frame) for frame in goroutine.stack_trace)
        if goroutine.created_by is not None:
            lines.append(f"created by {goroutine.created_by}")
        self.update("\n".join(lines))


class GorotopApp(App):
    """Main gorotop application."""

    TITLE = "gorotop"
    SUB_TITLE = "Go Goroutine Dump Viewer"

    CSS = """
    Screen {
        layout: vertical;
    }

    #summary-stats {
        dock: top;
        height: auto;
        min-height: 4;
    }

    #search {
        dock: bottom;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("slash", "search", "Search"),
        ("c", "clear_search", "Clear search"),
        ("r", "reload", "Reload"),
    ]

    def __init__(self, path: str, poll_rate: float = 2.0, watch: bool = True) -> None:
        """
        Initialize the GorotopApp.

        Args:
            path: Goroutine dump file to show.
            poll_rate: How often to check the file for changes (seconds).
            watch: Re-parse the file when it changes. When False the file
                is loaded once on mount and on explicit reload.
        """
        super().__init__()
        self._update_queue: Queue[DumpSnapshot] = Queue()
        self._watcher = DumpWatcher(path, self._update_queue, poll_rate=poll_rate)
        self._watch = watch

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield SummaryStats(id="summary-stats")
        yield GoroutineTable()
        # Go signatures contain brackets, render them literally
        yield StackView(id="stack-view", markup=False)
        # Hidden inputs must not take focus or they swallow the key bindings
        search = Input(
            placeholder="Search status or stack, Enter to apply",
            id="search",
            disabled=True,
        )
        search.display = False
        yield search
        yield Footer()

    def on_mount(self) -> None:
        """Start watching the dump file when the app is mounted."""
        self.query_one("#goroutine-table", DataTable).focus()
        if self._watch:
            self._watcher.start()
        else:
            self._load_in_background()
        # Set up a timer to poll the queue for updates
        self.set_interval(0.5, self._check_for_updates)

    def _load_in_background(self) -> None:
        """Parse the dump in a worker thread; the timer picks up the result."""
        self.run_worker(
            self._load_to_queue,
            name="load-dump",
            group="load-dump",
            exclusive=True,
            thread=True,
        )

    def _load_to_queue(self) -> None:
        """Worker body: load the dump once and queue the snapshot."""
        self._update_queue.put(self._watcher.load_once())

    def _check_for_updates(self) -> None:
        """Check the queue for new snapshots and refresh the UI."""
        # Drain the queue to get the most recent snapshot
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: DumpSnapshot) -> None:
        """Update the UI with a new dump snapshot."""
        self.query_one("#summary-stats", SummaryStats).update_stats(snapshot)
        self.query_one(GoroutineTable).update_goroutines(snapshot.goroutines)
        self._show_highlighted()

    def _show_highlighted(self) -> None:
        """Show the stack of the goroutine under the table cursor."""
        goroutine = self.query_one(GoroutineTable).highlighted_goroutine()
        self.query_one("#stack-view", StackView).show_goroutine(goroutine)

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        """Follow the table cursor in the stack view."""
        goroutine_table = event.data_table.parent
        if not isinstance(goroutine_table, GoroutineTable):
            return
        goroutine = None
        if event.row_key.value is not None:
            goroutine = goroutine_table.get_goroutine(int(event.row_key.value))
        try:
            stack_view = self.query_one("#stack-view", StackView)
        except NoMatches:
            # Highlight messages can still arrive while the screen is torn down
            return
        stack_view.show_goroutine(goroutine)

    def _hide_search(self) -> None:
        """Hide the search input and hand focus back to the table."""
        search = self.query_one("#search", Input)
        search.display = False
        search.disabled = True
        self.query_one("#goroutine-table", DataTable).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Apply the search text and return focus to the table."""
        self.query_one(GoroutineTable).set_search(event.value)
        self._hide_search()
        self._show_highlighted()
        if event.value.strip():
            self.notify(f"Search: {event.value.strip()}")

    def action_sort(self) -> None:
        """Handle sort action - cycle through sort keys."""
        goroutine_table = self.query_one(GoroutineTable)
        new_sort_key = goroutine_table.cycle_sort()
        self._show_highlighted()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_search(self) -> None:
        """Show the search input."""
        search = self.query_one("#search", Input)
        search.value = self.query_one(GoroutineTable).search
        search.disabled = False
        search.display = True
        search.focus()

    def action_clear_search(self) -> None:
        """Hide the search input and drop the current filter."""
        self.query_one("#search", Input).value = ""
        self._hide_search()
        self.query_one(GoroutineTable).set_search("")
        self._show_highlighted()

    def action_reload(self) -> None:
        """Re-parse the dump file now, off the event loop."""
        self._load_in_background()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._watcher.stop()
        self.exit()


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="gorotop",
        description="Browse the goroutines of a Go stack dump",
    )
    parser.add_argument("path", help="Goroutine dump file (SIGQUIT output, debug=2 profile)")
    parser.add_argument(
        "--poll-rate",
        type=float,
        default=2.0,
        help="Seconds between checks for changes to the dump file",
    )
    parser.add_argument(
        "--no-watch",
        action="store_true",
        help="Load the dump once instead of following changes",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for the log file",
    )
    parser.add_argument(
        "--log-file",
        default="gorotop.log",
        help="Where to write logs; the terminal is used by the UI",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for gorotop application."""
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        filename=args.log_file,
        level=args.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = GorotopApp(args.path, poll_rate=args.poll_rate, watch=not args.no_watch)
    app.run()


if __name__ == "__main__":
    main()
