"""ptop - Main Textual application and command-line entry point."""

import argparse
import asyncio
import logging
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path
from queue import Empty, Queue
from typing import TextIO

import psutil
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from ptop.config import Settings
from ptop.errors import OSReleaseError, PtopError, SourceUnavailable
from ptop.logging_setup import setup_logging
from ptop.models import LOAD_FIELDS, CpuSnapshot, LoadRecord, utilization
from ptop.monitor import StatMonitor
from ptop.osinfo import get_os_name
from ptop.stat import CpuStat

logger = logging.getLogger(__name__)

BAR_WIDTH = 20


def usage_bar(percent: float, width: int = BAR_WIDTH) -> str:
    """Render a percentage as a markup bar of fixed width."""
    filled = min(max(int(percent * width / 100), 0), width)
    return "[green]█[/green]" * filled + "[dim]░[/dim]" * (width - filled)


def format_uptime(seconds: float) -> str:
    """Format an uptime in seconds as [N days, ]HH:MM:SS."""
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class HeaderStats(Static):
    """Header widget showing system identity and kernel counters."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, os_name: str | None = None, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._os_name = os_name or "unknown"
        self._snapshot: CpuSnapshot | None = None
        self._load_avg: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_system_info(), id="system-info"),
            Static(self._get_counter_info(), id="counter-info"),
        )

    def update_stats(
        self,
        snapshot: CpuSnapshot,
        load_avg: tuple[float, float, float] = (0.0, 0.0, 0.0),
    ) -> None:
        """Update the statistics from a CPU snapshot."""
        self._snapshot = snapshot
        self._load_avg = load_avg
        self._refresh_display()

    def _refresh_display(self) -> None:
        """Refresh the display with current data."""
        try:
            self.query_one("#system-info", Static).update(self._get_system_info())
            self.query_one("#counter-info", Static).update(self._get_counter_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_system_info(self) -> str:
        """Get OS, boot time and load display."""
        lines = [f"OS: {self._os_name}"]
        snapshot = self._snapshot
        if snapshot is None or snapshot.boot_time is None:
            lines.append("Boot time: ...")
        else:
            boot_local = snapshot.boot_time.astimezone()
            lines.append(f"Boot time: {boot_local:%Y-%m-%d %H:%M:%S}")
            lines.append(f"Uptime: {format_uptime(snapshot.uptime_seconds())}")
        load = self._load_avg
        lines.append(f"Load average: {load[0]:.2f} {load[1]:.2f} {load[2]:.2f}")
        return "\n".join(lines)

    def _get_counter_info(self) -> str:
        """Get kernel counter display."""
        snapshot = self._snapshot
        if snapshot is None:
            return "Loading counters..."
        return (
            f"Interrupts: {snapshot.interrupts:,}\n"
            f"Context switches: {snapshot.context_switches:,}\n"
            f"Processes: {snapshot.processes:,} "
            f"(running {snapshot.procs_running}, blocked {snapshot.procs_blocked})"
        )


class CoreTable(Container):
    """Container for the per-CPU load table."""

    DEFAULT_CSS = """
    CoreTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    PACKAGE_KEY = "cpu"

    def __init__(self, *args, **kwargs) -> None:
        """Initialize CoreTable."""
        super().__init__(*args, **kwargs)
        self._row_keys: list[str] = []

    @property
    def row_keys(self) -> list[str]:
        """Keys of the rows currently shown, package first."""
        return list(self._row_keys)

    def compose(self) -> ComposeResult:
        """Compose the load table."""
        yield DataTable(id="core-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#core-table", DataTable)
        table.cursor_type = "row"

        table.add_column("CPU", key="cpu", width=6)
        table.add_column("Usage", key="bar", width=BAR_WIDTH)
        table.add_column("%", key="percent", width=6)
        for name in LOAD_FIELDS:
            table.add_column(name, key=name)

    def update_loads(self, previous: CpuSnapshot | None, current: CpuSnapshot) -> None:
        """
        Update the table from two consecutive snapshots.

        Rows are only ever added: a core that has been seen keeps its row.
        """
        table = self.query_one("#core-table", DataTable)

        rows: list[tuple[str, str, LoadRecord | None, LoadRecord | None]] = [
            (
                self.PACKAGE_KEY,
                "all",
                previous.package if previous else None,
                current.package,
            )
        ]
        for core_id, load in enumerate(current.cores):
            before = None
            if previous is not None and core_id < len(previous.cores):
                before = previous.cores[core_id]
            rows.append((f"cpu{core_id}", str(core_id), before, load))

        for key, label, before, load in rows:
            cells = self._format_cells(label, before, load)
            if key in self._row_keys:
                self._update_row(table, key, cells)
            else:
                table.add_row(*cells, key=key)
                self._row_keys.append(key)

    def _format_cells(
        self, label: str, before: LoadRecord | None, load: LoadRecord | None
    ) -> list[str]:
        """Build the cell values for one CPU row."""
        if load is None:
            return [label, usage_bar(0.0), "-"] + ["-"] * len(LOAD_FIELDS)
        percent = utilization(before, load)
        return [label, usage_bar(percent), f"{percent:5.1f}"] + [
            str(getattr(load, name)) for name in LOAD_FIELDS
        ]

    def _update_row(self, table: DataTable, row_key: str, cells: list[str]) -> None:
        """Update an existing row using update_cell for performance."""
        column_keys = ["cpu", "bar", "percent", *LOAD_FIELDS]
        try:
            for column_key, value in zip(column_keys, cells):
                table.update_cell(row_key, column_key, value)
        except Exception:
            pass  # Row may have been removed


class PtopApp(App):
    """Main ptop application."""

    TITLE = "ptop"
    SUB_TITLE = "CPU Statistics Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #system-info {
        width: 1fr;
        padding-right: 2;
    }

    #counter-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        settings: Settings | None = None,
        stat: CpuStat | None = None,
        os_name: str | None = None,
    ) -> None:
        """
        Initialize the PtopApp.

        Args:
            settings: Runtime settings. Defaults to Settings().
            stat: Open statistics engine. If omitted one is opened from
                settings.stat_path when the app mounts and closed when it
                unmounts.
            os_name: Operating system name for the header.
        """
        super().__init__()
        self._settings = settings or Settings()
        self._owns_stat = stat is None
        self._stat = stat
        self._os_name = os_name
        self._update_queue: Queue[CpuSnapshot] = Queue()
        self._monitor: StatMonitor | None = None
        self._last_snapshot: CpuSnapshot | None = None

    @property
    def last_snapshot(self) -> CpuSnapshot | None:
        """Most recent snapshot shown on screen."""
        return self._last_snapshot

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats", os_name=self._os_name)
        yield CoreTable()
        yield Footer()

    def on_mount(self) -> None:
        """Open the source and start the monitor when the app is mounted."""
        if self._stat is None:
            try:
                self._stat = CpuStat.open(self._settings.stat_path)
            except SourceUnavailable as exc:
                logger.error("%s", exc)
                self.exit(return_code=1, message=f"ptop: {exc}")
                return
        self._monitor = StatMonitor(
            self._stat, self._update_queue, poll_rate=self._settings.poll_rate
        )
        try:
            asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, self.action_quit)
        except (NotImplementedError, RuntimeError, ValueError):
            pass  # Not on the main thread or no signal support
        self._monitor.start()
        # Set up a timer to poll the queue for updates
        self.set_interval(0.5, self._check_for_updates)

    def on_unmount(self) -> None:
        """Stop polling and release the source."""
        try:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGTERM)
        except (NotImplementedError, RuntimeError, ValueError):
            pass
        if self._monitor is not None:
            self._monitor.stop()
        if self._owns_stat and self._stat is not None:
            self._stat.close()

    def _check_for_updates(self) -> None:
        """Check the queue for new snapshots and refresh the UI."""
        # Drain the queue but keep the last two snapshots for utilization deltas
        latest: CpuSnapshot | None = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break
            if latest is not None:
                self._last_snapshot = latest
            latest = snapshot

        if latest is not None:
            self._update_ui(self._last_snapshot, latest)
            self._last_snapshot = latest

        if self._monitor is not None and self._monitor.failed:
            self.exit(return_code=1, message=f"ptop: {self._monitor.last_error}")

    def _update_ui(self, previous: CpuSnapshot | None, snapshot: CpuSnapshot) -> None:
        """Update the UI with a new snapshot."""
        try:
            load_avg = psutil.getloadavg()
        except OSError:
            load_avg = (0.0, 0.0, 0.0)

        try:
            header = self.query_one("#header-stats", HeaderStats)
            header.update_stats(snapshot, load_avg)
        except Exception:
            logger.exception("failed to update header")

        try:
            core_table = self.query_one(CoreTable)
            core_table.update_loads(previous, snapshot)
        except Exception:
            logger.exception("failed to update core table")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        if self._monitor is not None:
            self._monitor.stop()
        self.exit()


def run_plain(stat: CpuStat, poll_rate: float, out: TextIO | None = None) -> int:
    """
    Print the statistics summary every poll_rate seconds without a TUI.

    Runs until SIGINT/SIGTERM or the first failed update.

    Returns:
        Process exit code: 0 on signal shutdown, 1 after a failed update.
    """
    out = out or sys.stdout
    stop = threading.Event()

    def _handle_sig(signum: int, _frame: object) -> None:
        logger.info("shutdown requested by signal %d", signum)
        stop.set()

    previous = {
        sig: signal.signal(sig, _handle_sig) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        while not stop.is_set():
            try:
                stat.update()
            except PtopError as exc:
                logger.error("update failed: %s", exc)
                return 1
            print(stat, file=out, flush=True)
            stop.wait(timeout=poll_rate)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    return 0


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="ptop", description="Monitor CPU statistics.")
    p.add_argument("--stat-path", type=Path, help="Statistics file (default /proc/stat)")
    p.add_argument("--os-release", type=Path, help="os-release file (default /etc/os-release)")
    p.add_argument("--interval", type=float, help="Seconds between updates (default 1.0)")
    p.add_argument("--log-level", type=str, help="Log level (default INFO)")
    p.add_argument("--log-file", type=Path, help="Write logs to a rotating file")
    p.add_argument("--plain", action="store_true", help="Print text summaries instead of the TUI")
    return p.parse_args(argv)


def _settings_from_args(args: argparse.Namespace) -> Settings:
    """Environment settings with command-line flags applied on top."""
    settings = Settings.from_env()
    return Settings(
        stat_path=args.stat_path or settings.stat_path,
        os_release_path=args.os_release or settings.os_release_path,
        poll_rate=args.interval if args.interval is not None else settings.poll_rate,
        log_level=args.log_level or settings.log_level,
        log_file=args.log_file or settings.log_file,
    )


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ptop application."""
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    try:
        settings = _settings_from_args(args)
    except ValueError as exc:
        print(f"ptop: {exc}", file=sys.stderr)
        return 2

    setup_logging(settings.log_level, settings.log_file, console=args.plain)
    logger.info("starting at %s", datetime.now().isoformat(timespec="seconds"))

    try:
        os_name = get_os_name(settings.os_release_path)
        stat = CpuStat.open(settings.stat_path)
    except (OSReleaseError, SourceUnavailable) as exc:
        logger.error("%s", exc)
        print(f"ptop: {exc}", file=sys.stderr)
        return 1

    with stat:
        if args.plain:
            print(f"OS: {os_name}", flush=True)
            code = run_plain(stat, settings.poll_rate)
        else:
            app = PtopApp(settings=settings, stat=stat, os_name=os_name)
            app.run()
            code = app.return_code or 0

    logger.info("stopped")
    return code


if __name__ == "__main__":
    raise SystemExit(main())
