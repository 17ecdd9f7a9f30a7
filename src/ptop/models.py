"""Data models for ptop."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from ptop.errors import MalformedLoadLine

LOAD_FIELDS = ("user", "nice", "system", "idle", "iowait", "irq", "softirq")

_DIGITS = re.compile(r"[0-9]+")


@dataclass(slots=True, frozen=True)
class LoadRecord:
    """Cumulative CPU time counters (in clock ticks) since boot."""

    user: int
    nice: int
    system: int
    idle: int
    iowait: int
    irq: int  # servicing interrupts
    softirq: int  # servicing soft interrupts

    @classmethod
    def parse(cls, text: str) -> "LoadRecord":
        """
        Parse the load fields of a cpu line with its prefix already removed.

        Only the first seven tokens are read; newer kernels append steal and
        guest columns which are ignored.

        Raises:
            MalformedLoadLine: Fewer than seven tokens, or a token that is not
                a non-negative integer.
        """
        tokens = text.split()
        if len(tokens) < len(LOAD_FIELDS):
            raise MalformedLoadLine(
                text, f"expected {len(LOAD_FIELDS)} load fields, got {len(tokens)}"
            )

        values = []
        for name, token in zip(LOAD_FIELDS, tokens):
            if not _DIGITS.fullmatch(token):
                raise MalformedLoadLine(text, f"invalid {name} value {token!r}")
            values.append(int(token))
        return cls(*values)

    @property
    def total(self) -> int:
        """Sum of all seven counters."""
        return (
            self.user
            + self.nice
            + self.system
            + self.idle
            + self.iowait
            + self.irq
            + self.softirq
        )

    @property
    def busy(self) -> int:
        """Ticks spent doing work (everything except idle and I/O wait)."""
        return self.total - self.idle - self.iowait

    def __str__(self) -> str:
        return " ".join(f"{name}={getattr(self, name)}" for name in LOAD_FIELDS)


def utilization(previous: LoadRecord | None, current: LoadRecord | None) -> float:
    """
    Busy percentage between two samples of the same CPU.

    Returns 0.0 when either sample is missing or no ticks elapsed in between.
    """
    if previous is None or current is None:
        return 0.0
    total = current.total - previous.total
    if total <= 0:
        return 0.0
    busy = max(current.busy - previous.busy, 0)
    return min(100.0, 100.0 * busy / total)


@dataclass(slots=True, frozen=True)
class CpuSnapshot:
    """Immutable copy of the parsed statistics, safe to hand to other threads."""

    package: LoadRecord | None
    cores: tuple[LoadRecord | None, ...]
    interrupts: int
    context_switches: int
    boot_time: datetime | None
    processes: int
    procs_running: int
    procs_blocked: int
    taken_at: float  # time.monotonic() at capture

    def uptime_seconds(self, now: datetime | None = None) -> float:
        """Seconds elapsed since boot, 0.0 if boot time is unknown."""
        if self.boot_time is None:
            return 0.0
        now = now or datetime.now(timezone.utc)
        return max((now - self.boot_time).total_seconds(), 0.0)
