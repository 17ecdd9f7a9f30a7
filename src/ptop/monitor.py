"""Background polling of the CPU statistics for ptop."""

import logging
import math
import threading
from queue import Queue

from ptop.config import MIN_POLL_RATE
from ptop.errors import MalformedScalarLine, SourceUnavailable
from ptop.models import CpuSnapshot
from ptop.stat import CpuStat

logger = logging.getLogger(__name__)


def _checked_poll_rate(value: float) -> float:
    """Clamp a poll rate to the minimum, rejecting inf and nan."""
    if not math.isfinite(value):
        raise ValueError(f"poll rate must be a finite number, got {value!r}")
    return max(MIN_POLL_RATE, value)


class StatMonitor:
    """
    Polls a CpuStat on a fixed interval from a daemon thread.

    After every successful update an immutable CpuSnapshot is pushed to a
    thread-safe Queue, so readers never see a half-parsed state. A cycle
    that hits a malformed line is logged and skipped; the loop tries again
    on the next tick. If the source becomes unavailable, or anything else
    goes wrong, the loop ends and the error is kept in last_error.
    """

    def __init__(
        self,
        stat: CpuStat,
        update_queue: Queue[CpuSnapshot],
        poll_rate: float = 1.0,
    ) -> None:
        """
        Initialize the StatMonitor.

        Args:
            stat: Open statistics engine to update. The monitor does not own it.
            update_queue: Thread-safe queue to push snapshots to.
            poll_rate: How often to update (in seconds). Default 1.0s.
        """
        self._stat = stat
        self._queue = update_queue
        self._poll_rate = _checked_poll_rate(poll_rate)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_error: Exception | None = None
        self._failed = False

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = _checked_poll_rate(value)

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_error(self) -> Exception | None:
        """Error raised by the most recent failed cycle, if any."""
        return self._last_error

    @property
    def failed(self) -> bool:
        """True once polling has ended on an unrecoverable error."""
        return self._failed

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="StatMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread between cycles.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def run_once(self) -> CpuSnapshot:
        """
        Run a single update cycle and queue the resulting snapshot.

        Raises:
            SourceUnavailable: The statistics source cannot be read.
            MalformedScalarLine: The source contained an unparseable line.
        """
        applied = self._stat.update()
        snapshot = self._stat.snapshot()
        self._queue.put(snapshot)
        logger.debug("applied %d lines, %d cores", applied, len(snapshot.cores))
        return snapshot

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except MalformedScalarLine as exc:
                # Values may be partially refreshed; the next good cycle fixes them
                self._last_error = exc
                logger.warning("update of %s failed: %s", self._stat.path, exc)
            except SourceUnavailable as exc:
                self._last_error = exc
                self._failed = True
                logger.error("statistics source unavailable: %s", exc)
                return
            except Exception as exc:
                self._last_error = exc
                self._failed = True
                logger.exception("polling stopped by unexpected error")
                return

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)
