"""Shared fixtures for ptop tests."""

import logging
from pathlib import Path

import pytest

SAMPLE_STAT = """\
cpu  10132153 290696 3084719 46828483 16683 0 25195 0 0 0
cpu0 1393280 32966 572056 13343292 6130 0 17875 0 0 0
cpu1 1335271 28690 553219 13478346 2766 0 1954 0 0 0
cpu2 3695428 114393 998633 9914437 4022 0 2695 0 0 0
cpu3 3708174 114647 960811 10092408 3765 0 2671 0 0 0
intr 199292311 43 0 0 0 0 0 0 0 1 0 0 0
ctxt 438016489
btime 1609459200
processes 1053264
procs_running 3
procs_blocked 1
softirq 8234532 0 2178327 137 403651 0 0 5049 2129093 0 3518275
"""


@pytest.fixture
def restore_root_logger():
    """Undo setup_logging changes to the root logger after a test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def stat_file(tmp_path: Path):
    """Return a function that writes statistics text and returns its path."""
    path = tmp_path / "stat"

    def write(text: str = SAMPLE_STAT) -> Path:
        # Rewrite in place so an already-open handle sees the new content
        with open(path, "w", encoding="utf-8") as fp:
            fp.write(text)
        return path

    return write
