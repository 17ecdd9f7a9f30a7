"""Parser and update engine for the kernel CPU statistics file (/proc/stat)."""

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from os import PathLike
from typing import IO

from ptop.errors import MalformedLoadLine, MalformedScalarLine, SourceUnavailable
from ptop.models import CpuSnapshot, LoadRecord

DEFAULT_STAT_PATH = "/proc/stat"

logger = logging.getLogger(__name__)

# "cpu" or "cpuN", followed by the load fields or the end of the line
_CPU_PREFIX = re.compile(r"cpu([0-9]*)(?=\s|$)")
_DIGITS = re.compile(r"[0-9]+")

# line prefix -> CpuStat attribute, longest prefix first
_SCALAR_PREFIXES = sorted(
    {
        "intr": "interrupts",
        "ctxt": "context_switches",
        "btime": "boot_time",
        "processes": "processes",
        "procs_running": "procs_running",
        "procs_blocked": "procs_blocked",
    }.items(),
    key=lambda item: len(item[0]),
    reverse=True,
)


class LineStatus(Enum):
    """Outcome of classifying a single line of the statistics source."""

    PARSED = "parsed"
    SKIPPED = "skipped"  # cpu-prefixed, but not a cpu load line
    UNRECOGNIZED = "unrecognized"
    MALFORMED = "malformed"


@dataclass(slots=True, frozen=True)
class ParsedLine:
    """Tagged result of classifying one line."""

    status: LineStatus
    field: str | None = None  # "package", "cores" or a scalar attribute name
    value: LoadRecord | int | datetime | None = None
    core_id: int | None = None
    error: MalformedScalarLine | None = None


def classify_line(line: str) -> ParsedLine:
    """
    Classify one line of the statistics source and parse its value.

    Never raises: parse failures are returned with status MALFORMED and the
    error attached, so the caller decides what is fatal.
    """
    line = line.rstrip("\r\n")

    if line.startswith("cpu"):
        match = _CPU_PREFIX.match(line)
        if match is None:
            return ParsedLine(LineStatus.SKIPPED)
        try:
            load = LoadRecord.parse(line[match.end() :])
        except MalformedLoadLine as exc:
            return ParsedLine(LineStatus.MALFORMED, error=MalformedLoadLine(line, exc.reason))

        ident = match.group(1)
        if not ident:
            return ParsedLine(LineStatus.PARSED, field="package", value=load)
        return ParsedLine(LineStatus.PARSED, field="cores", value=load, core_id=int(ident))

    for prefix, field in _SCALAR_PREFIXES:
        if line.startswith(prefix):
            return _parse_scalar(line, prefix, field)

    return ParsedLine(LineStatus.UNRECOGNIZED)


def _parse_scalar(line: str, prefix: str, field: str) -> ParsedLine:
    """Parse the first integer following a scalar prefix."""
    tokens = line[len(prefix) :].split()
    if not tokens or not _DIGITS.fullmatch(tokens[0]):
        return ParsedLine(
            LineStatus.MALFORMED,
            error=MalformedScalarLine(line, f"invalid {prefix} value"),
        )

    value: int | datetime = int(tokens[0])
    if field == "boot_time":
        try:
            value = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return ParsedLine(
                LineStatus.MALFORMED,
                error=MalformedScalarLine(line, "boot time out of range"),
            )
    return ParsedLine(LineStatus.PARSED, field=field, value=value)


class CpuStat:
    """
    Live view of the kernel CPU statistics.

    Holds the statistics file open for its whole lifetime and re-parses it
    from the start on every update(). Values are overwritten in place; an
    update that fails part-way leaves the fields it already reached updated
    and the rest at their previous values.

    Not safe for concurrent reads while updating: hand snapshot() results to
    other threads instead.
    """

    def __init__(self, path: str | PathLike[str] = DEFAULT_STAT_PATH) -> None:
        """
        Open the statistics source.

        Args:
            path: Location of the statistics file. Default /proc/stat.

        Raises:
            SourceUnavailable: The file cannot be opened.
        """
        self._path = str(path)
        try:
            self._fp: IO[str] | None = open(self._path, encoding="utf-8", errors="replace")
        except OSError as exc:
            raise SourceUnavailable(self._path, exc.strerror or str(exc)) from exc
        logger.debug("opened %s", self._path)

        self._package: LoadRecord | None = None
        self._cores: list[LoadRecord | None] = []
        self._interrupts = 0
        self._context_switches = 0
        self._boot_time: datetime | None = None
        self._processes = 0
        self._procs_running = 0
        self._procs_blocked = 0

    @classmethod
    def open(cls, path: str | PathLike[str] = DEFAULT_STAT_PATH) -> "CpuStat":
        """Open the statistics source at path."""
        return cls(path)

    def close(self) -> None:
        """Release the file handle. Safe to call more than once."""
        if self._fp is not None:
            self._fp.close()
            self._fp = None
            logger.debug("closed %s", self._path)

    def __enter__(self) -> "CpuStat":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def path(self) -> str:
        """Location of the statistics source."""
        return self._path

    @property
    def closed(self) -> bool:
        """Whether the source handle has been released."""
        return self._fp is None

    @property
    def package(self) -> LoadRecord | None:
        """Aggregate load across all cores."""
        return self._package

    @property
    def cores(self) -> list[LoadRecord | None]:
        """Per-core loads indexed by core id; unseen ids are None."""
        return list(self._cores)

    @property
    def interrupts(self) -> int:
        return self._interrupts

    @property
    def context_switches(self) -> int:
        return self._context_switches

    @property
    def boot_time(self) -> datetime | None:
        return self._boot_time

    @property
    def processes(self) -> int:
        """Processes created since boot."""
        return self._processes

    @property
    def procs_running(self) -> int:
        return self._procs_running

    @property
    def procs_blocked(self) -> int:
        return self._procs_blocked

    def update(self) -> int:
        """
        Rewind the source and re-parse it completely.

        Returns:
            Number of lines whose values were applied.

        Raises:
            SourceUnavailable: The source is closed or cannot be read.
            MalformedScalarLine: A recognized line could not be parsed. The
                update stops at that line.
        """
        if self._fp is None:
            raise SourceUnavailable(self._path, "source is closed")

        applied = 0
        try:
            self._fp.seek(0)
            for line_number, line in enumerate(self._fp, start=1):
                parsed = classify_line(line)
                if parsed.status is LineStatus.MALFORMED:
                    raise parsed.error.at_line(line_number)
                if parsed.status is LineStatus.SKIPPED:
                    logger.debug("skipping cpu line %d: %r", line_number, line.rstrip())
                elif parsed.status is LineStatus.PARSED:
                    self._apply(parsed)
                    applied += 1
        except OSError as exc:
            raise SourceUnavailable(self._path, exc.strerror or str(exc)) from exc
        return applied

    def _apply(self, parsed: ParsedLine) -> None:
        """Store a parsed value in the matching field."""
        if parsed.field == "package":
            self._package = parsed.value
        elif parsed.field == "cores":
            self._set_core(parsed.core_id, parsed.value)
        else:
            setattr(self, f"_{parsed.field}", parsed.value)

    def _set_core(self, core_id: int, load: LoadRecord) -> None:
        """Store a core's load, growing the core list to fit core_id."""
        if core_id >= len(self._cores):
            logger.debug("growing core list from %d to %d", len(self._cores), core_id + 1)
            self._cores.extend([None] * (core_id + 1 - len(self._cores)))
        self._cores[core_id] = load

    def snapshot(self) -> CpuSnapshot:
        """Return an immutable copy of the current values."""
        return CpuSnapshot(
            package=self._package,
            cores=tuple(self._cores),
            interrupts=self._interrupts,
            context_switches=self._context_switches,
            boot_time=self._boot_time,
            processes=self._processes,
            procs_running=self._procs_running,
            procs_blocked=self._procs_blocked,
            taken_at=time.monotonic(),
        )

    def __str__(self) -> str:
        boot = self._boot_time.isoformat() if self._boot_time else "unknown"
        lines = [f"package: {self._package}"]
        for core_id, load in enumerate(self._cores):
            lines.append(f"cpu{core_id}: {load}")
        lines.append(
            f"interrupts: {self._interrupts}, context switches: {self._context_switches}, "
            f"boot time: {boot}, processes: {self._processes}, "
            f"processes running: {self._procs_running}, "
            f"processes blocked: {self._procs_blocked}"
        )
        return "\n".join(lines)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<CpuStat {self._path!r} {state} cores={len(self._cores)}>"
