"""Tests for ptop data models."""

from datetime import datetime, timedelta, timezone

import pytest

from ptop.errors import MalformedLoadLine, MalformedScalarLine
from ptop.models import CpuSnapshot, LoadRecord, utilization


class TestLoadRecordParse:
    """Tests for LoadRecord.parse."""

    def test_parse_fields_in_order(self):
        """Test the seven tokens map to fields in their documented order."""
        load = LoadRecord.parse(" 100 200 300 400 500 600 700")

        assert load.user == 100
        assert load.nice == 200
        assert load.system == 300
        assert load.idle == 400
        assert load.iowait == 500
        assert load.irq == 600
        assert load.softirq == 700

    def test_parse_all_zero(self):
        """Test a freshly booted CPU with all counters at zero."""
        assert LoadRecord.parse("0 0 0 0 0 0 0") == LoadRecord(0, 0, 0, 0, 0, 0, 0)

    def test_parse_values_beyond_32_bits(self):
        """Test counters larger than 2**32 are kept exactly."""
        big = 2**40 + 7
        load = LoadRecord.parse(f"{big} 1 2 {big * 3} 4 5 6")

        assert load.user == big
        assert load.idle == big * 3

    def test_parse_ignores_extra_tokens(self):
        """Test steal/guest columns after the seventh field are ignored."""
        load = LoadRecord.parse("1 2 3 4 5 6 7 8 9 10")
        assert load == LoadRecord(1, 2, 3, 4, 5, 6, 7)

    def test_parse_too_few_fields(self):
        """Test fewer than seven tokens is a parse failure."""
        with pytest.raises(MalformedLoadLine, match="expected 7 load fields, got 6"):
            LoadRecord.parse("1 2 3 4 5 6")

    def test_parse_empty(self):
        """Test an empty remainder is a parse failure."""
        with pytest.raises(MalformedLoadLine):
            LoadRecord.parse("")

    @pytest.mark.parametrize("token", ["x", "-1", "1.5", "+3", "0x10"])
    def test_parse_invalid_token(self, token):
        """Test tokens that are not non-negative decimal integers are rejected."""
        with pytest.raises(MalformedLoadLine, match="invalid iowait value"):
            LoadRecord.parse(f"1 2 3 4 {token} 6 7")

    def test_malformed_load_is_malformed_scalar(self):
        """Test load errors can be caught together with scalar errors."""
        with pytest.raises(MalformedScalarLine):
            LoadRecord.parse("a b c")


class TestLoadRecord:
    """Tests for LoadRecord behavior."""

    def test_load_record_is_frozen(self):
        """Test that LoadRecord is immutable (frozen)."""
        load = LoadRecord(1, 2, 3, 4, 5, 6, 7)

        with pytest.raises(AttributeError):
            load.user = 999

    def test_load_record_uses_slots(self):
        """Test that LoadRecord uses __slots__ for memory efficiency."""
        load = LoadRecord(1, 2, 3, 4, 5, 6, 7)
        assert not hasattr(load, "__dict__")

    def test_total_and_busy(self):
        """Test derived tick totals."""
        load = LoadRecord(user=10, nice=1, system=5, idle=80, iowait=2, irq=1, softirq=1)

        assert load.total == 100
        assert load.busy == 18

    def test_str(self):
        """Test the text rendering names every field."""
        text = str(LoadRecord(1, 2, 3, 4, 5, 6, 7))
        assert text == "user=1 nice=2 system=3 idle=4 iowait=5 irq=6 softirq=7"


class TestUtilization:
    """Tests for utilization between two samples."""

    def test_half_busy(self):
        """Test equal busy and idle deltas give 50%."""
        before = LoadRecord(100, 0, 0, 100, 0, 0, 0)
        after = LoadRecord(150, 0, 0, 150, 0, 0, 0)
        assert utilization(before, after) == pytest.approx(50.0)

    def test_iowait_counts_as_idle(self):
        """Test I/O wait time is not counted as busy."""
        before = LoadRecord(0, 0, 0, 0, 0, 0, 0)
        after = LoadRecord(25, 0, 0, 50, 25, 0, 0)
        assert utilization(before, after) == pytest.approx(25.0)

    def test_no_elapsed_ticks(self):
        """Test identical samples give 0% instead of dividing by zero."""
        load = LoadRecord(1, 2, 3, 4, 5, 6, 7)
        assert utilization(load, load) == 0.0

    def test_missing_sample(self):
        """Test a missing sample gives 0%."""
        load = LoadRecord(1, 2, 3, 4, 5, 6, 7)
        assert utilization(None, load) == 0.0
        assert utilization(load, None) == 0.0


class TestCpuSnapshot:
    """Tests for CpuSnapshot."""

    def _snapshot(self, boot_time):
        return CpuSnapshot(
            package=LoadRecord(1, 2, 3, 4, 5, 6, 7),
            cores=(None, LoadRecord(1, 1, 1, 1, 1, 1, 1)),
            interrupts=10,
            context_switches=20,
            boot_time=boot_time,
            processes=30,
            procs_running=1,
            procs_blocked=0,
            taken_at=0.0,
        )

    def test_snapshot_is_frozen(self):
        """Test that CpuSnapshot is immutable (frozen)."""
        snapshot = self._snapshot(None)

        with pytest.raises(AttributeError):
            snapshot.interrupts = 0

    def test_uptime(self):
        """Test uptime is measured from boot time."""
        boot = datetime(2021, 1, 1, tzinfo=timezone.utc)
        snapshot = self._snapshot(boot)

        assert snapshot.uptime_seconds(boot + timedelta(hours=2)) == 7200.0

    def test_uptime_unknown_boot_time(self):
        """Test uptime is zero before boot time is known."""
        assert self._snapshot(None).uptime_seconds() == 0.0
