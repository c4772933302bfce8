"""Tests for the Process base class."""

import pytest

from keezer.base.process import NS_PER_SECOND, Process, seconds_to_ns

from .mocks import FailingMixin, MockProcess


class ThreeMethodProcess(Process):
    """Process that records the order of the three-method pattern."""

    calls: list[str] = []

    def _import_state(self) -> None:
        self.calls.append("import")

    def _think(self) -> None:
        self.calls.append("think")

    def _export_state(self) -> None:
        self.calls.append("export")


@pytest.mark.unit
class TestProcess:
    """Test Process timing and execution."""

    def test_seconds_to_ns(self) -> None:
        assert seconds_to_ns(30) == 30 * NS_PER_SECOND
        assert seconds_to_ns(0.5) == NS_PER_SECOND // 2

    def test_default_interval_is_thirty_seconds(self) -> None:
        process = MockProcess(name="proc")

        assert process.interval_ns == 30 * NS_PER_SECOND

    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            MockProcess(name="proc", interval_ns=0)

    def test_three_method_pattern_order(self) -> None:
        """Test _execute() runs import, think, export in order."""
        process = ThreeMethodProcess(name="three", calls=[])
        process.execute()

        assert process.calls == ["import", "think", "export"]
        assert process.execution_count == 1

    def test_failed_execution_does_not_count(self) -> None:
        """Test execution_count only counts successful executions."""

        class FailingProcess(FailingMixin, MockProcess):
            pass

        process = FailingProcess(name="failing", fail_after=1)
        process.execute()

        with pytest.raises(RuntimeError):
            process.execute()

        assert process.execution_count == 1

    def test_next_execution_time_uses_fixed_cadence(self) -> None:
        """Test the schedule is start_time + count * interval."""
        process = MockProcess(name="proc", interval_ns=1000)
        process.start_time = 5000
        process.execution_count = 3

        assert process.get_next_execution_time() == 8000

    def test_initialize_resets_timing(self) -> None:
        process = MockProcess(name="proc")
        process.execution_count = 7

        process.initialize()

        assert process.execution_count == 0
        assert process.start_time > 0

    def test_get_time_without_runner_is_monotonic(self) -> None:
        process = MockProcess(name="proc")

        first = process.get_time()
        second = process.get_time()

        assert second >= first > 0
