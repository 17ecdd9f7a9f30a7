"""Exceptions raised by ptop."""


class PtopError(Exception):
    """Base class for all ptop errors."""


class SourceUnavailable(PtopError):
    """The statistics source could not be opened or read."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class MalformedScalarLine(PtopError):
    """A line with a recognized prefix carries an unparseable value."""

    def __init__(self, line: str, reason: str, line_number: int | None = None) -> None:
        self.line = line
        self.reason = reason
        self.line_number = line_number
        super().__init__(self._describe())

    def _describe(self) -> str:
        where = f"line {self.line_number}: " if self.line_number is not None else ""
        return f"{where}{self.reason}: {self.line!r}"

    def at_line(self, line_number: int) -> "MalformedScalarLine":
        """Return a copy of this error annotated with its line number."""
        return type(self)(self.line, self.reason, line_number)


class MalformedLoadLine(MalformedScalarLine):
    """A cpu load line has fewer than seven valid integer fields."""


class OSReleaseError(PtopError):
    """The operating system name could not be determined."""
