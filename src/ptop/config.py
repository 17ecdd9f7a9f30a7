"""Runtime configuration for ptop."""

import math
import os
from dataclasses import dataclass, replace
from pathlib import Path

from ptop.osinfo import DEFAULT_OS_RELEASE_PATH
from ptop.stat import DEFAULT_STAT_PATH

MIN_POLL_RATE = 0.1  # seconds

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    """Where to read from, how often, and where to log."""

    stat_path: Path = Path(DEFAULT_STAT_PATH)
    os_release_path: Path = Path(DEFAULT_OS_RELEASE_PATH)
    poll_rate: float = 1.0  # seconds
    log_level: str = "INFO"
    log_file: Path | None = None

    def __post_init__(self) -> None:
        poll_rate = float(self.poll_rate)
        if not math.isfinite(poll_rate):
            raise ValueError(f"poll rate must be a finite number, got {self.poll_rate!r}")
        # frozen, so normalize through object.__setattr__
        object.__setattr__(self, "poll_rate", max(MIN_POLL_RATE, poll_rate))
        level = self.log_level.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level: {self.log_level!r}")
        object.__setattr__(self, "log_level", level)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from PTOP_* environment variables."""
        env = os.environ if environ is None else environ
        settings = cls()

        overrides: dict[str, object] = {}
        if "PTOP_STAT_PATH" in env:
            overrides["stat_path"] = Path(env["PTOP_STAT_PATH"])
        if "PTOP_OS_RELEASE" in env:
            overrides["os_release_path"] = Path(env["PTOP_OS_RELEASE"])
        if "PTOP_POLL_RATE" in env:
            try:
                overrides["poll_rate"] = float(env["PTOP_POLL_RATE"])
            except ValueError:
                raise ValueError(
                    f"PTOP_POLL_RATE must be a number, got {env['PTOP_POLL_RATE']!r}"
                ) from None
        if "PTOP_LOG_LEVEL" in env:
            overrides["log_level"] = env["PTOP_LOG_LEVEL"]
        if env.get("PTOP_LOG_FILE"):
            overrides["log_file"] = Path(env["PTOP_LOG_FILE"])

        return replace(settings, **overrides) if overrides else settings
