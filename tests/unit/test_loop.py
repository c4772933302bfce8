"""Tests for the control loop on a virtual clock.

With the default timings (30s ticks, 300s rest, 120s run) the first
tick arms the startup delay, so the earliest the compressor can start
is the tick at 300s.
"""

import logging

import pytest

from keezer.base.process import NS_PER_SECOND
from keezer.base.runner import FastRunner
from keezer.config import Configuration
from keezer.controllers.protection import (
    FREEZE_FLOOR,
    MINIMUM_REST,
    MINIMUM_RUN,
    STARTUP_DELAY,
)
from keezer.logsink import LogRecord, MemoryLogSink
from keezer.loop import CONTROL, PROTECTION, SHUTDOWN, ControlLoop, LoopPhase

from .base.mocks import RecordingActuator, ScriptedProbeReader


def seconds(value: float) -> int:
    return int(value * NS_PER_SECOND)


def transitions(records: list[LogRecord]) -> list[tuple[float, bool]]:
    """(seconds, power) for every record where the power level changed."""
    changes = []
    power = None
    for record in records:
        if record.power_on is not None and record.power_on != power:
            changes.append((record.timestamp / NS_PER_SECOND, record.power_on))
            power = record.power_on
    return changes


def record_at(records: list[LogRecord], at_seconds: float) -> LogRecord:
    return next(r for r in records if r.timestamp == seconds(at_seconds))


class Harness:
    """Loop wired to scripted probes, a recording relay and a fast clock."""

    def __init__(self, temperature: float | None = 70.0, **overrides) -> None:
        values = {
            "target_temperature": 60.0,
            "enclosure_probe_id": "enclosure",
            "log_paths": [],
        }
        values.update(overrides)
        self.config = Configuration(**values)
        self.probes = ScriptedProbeReader(name="probes", values={"enclosure": temperature})
        if self.config.secondary_probe_id is not None:
            self.probes.set(self.config.secondary_probe_id, 65.0)
        self.actuator = RecordingActuator(name="relay")
        self.sink = MemoryLogSink(name="log")
        self.loop = ControlLoop.build(self.config, self.probes, self.actuator, self.sink, name="test")
        self.runner = FastRunner(name="test", main_process=self.loop)

    def run_until(self, at_seconds: float) -> None:
        """Run every tick strictly before the given time."""
        remaining = at_seconds - self.runner.get_time() / NS_PER_SECOND
        self.runner.run_for_duration(remaining)

    def set_temperature(self, value: float | None) -> None:
        self.probes.set("enclosure", value)

    @property
    def records(self) -> list[LogRecord]:
        return self.sink.records


@pytest.fixture
def harness() -> Harness:
    return Harness()


class TestConstruction:
    def test_interval_from_config(self) -> None:
        harness = Harness(control_interval_seconds=10)

        assert harness.loop.interval_ns == seconds(10)

    def test_execute_before_start_fails(self, harness: Harness) -> None:
        assert harness.loop.phase is LoopPhase.STOPPED

        with pytest.raises(RuntimeError, match="stopped"):
            harness.loop.execute()

    def test_initialize_resets_state(self, harness: Harness) -> None:
        harness.run_until(330)
        assert harness.loop.state.power_on is True

        harness.loop.initialize()

        assert harness.loop.state.last_tick_time is None
        assert harness.loop.state.power_on is None
        assert harness.loop.phase is LoopPhase.RUNNING


class TestStartupAndRest:
    """Test the startup delay and minimum rest."""

    def test_power_off_commanded_on_first_tick(self, harness: Harness) -> None:
        harness.run_until(30)

        assert harness.actuator.calls == [False]
        assert harness.records[0].power_on is False
        assert harness.records[0].reason == PROTECTION
        assert harness.records[0].note == STARTUP_DELAY

    def test_first_start_waits_full_rest(self, harness: Harness) -> None:
        harness.run_until(600)

        assert transitions(harness.records)[:2] == [(0.0, False), (300.0, True)]
        assert all(r.power_on is False for r in harness.records if r.timestamp < seconds(300))

    def test_waits_even_when_warm(self) -> None:
        harness = Harness(temperature=90.0, min_compressor_rest_seconds=180)

        harness.run_until(600)

        assert transitions(harness.records)[1] == (180.0, True)

    def test_minimum_rest_between_cycles(self, harness: Harness) -> None:
        harness.run_until(450)
        harness.set_temperature(50.0)
        harness.run_until(480)
        harness.set_temperature(70.0)
        harness.run_until(1200)

        # Off at 450, so the next start is no earlier than 750
        assert transitions(harness.records)[:4] == [
            (0.0, False),
            (300.0, True),
            (450.0, False),
            (750.0, True),
        ]
        assert record_at(harness.records, 480).note == MINIMUM_REST
        assert record_at(harness.records, 510).note == ""


class TestMinimumRun:
    """Test that a started compressor keeps running."""

    def test_runs_for_minimum_time(self, harness: Harness) -> None:
        harness.run_until(330)
        harness.set_temperature(50.0)
        harness.run_until(600)

        assert transitions(harness.records)[1:3] == [(300.0, True), (420.0, False)]
        held = record_at(harness.records, 330)
        assert held.power_on is True
        assert held.reason == PROTECTION
        assert held.note == MINIMUM_RUN

    def test_freeze_floor_overrides_minimum_run(self, harness: Harness) -> None:
        harness.run_until(330)
        harness.set_temperature(30.0)
        harness.run_until(600)

        assert transitions(harness.records)[1:3] == [(300.0, True), (330.0, False)]
        assert record_at(harness.records, 330).note == FREEZE_FLOOR

    def test_freeze_floor_blocks_start(self) -> None:
        harness = Harness(temperature=20.0, target_temperature=10.0)

        harness.run_until(900)

        assert harness.actuator.calls == [False]
        assert record_at(harness.records, 300).note == FREEZE_FLOOR
        assert record_at(harness.records, 600).reason == PROTECTION


class TestHysteresis:
    """Test the dead band around the target."""

    def test_holds_power_inside_band(self, harness: Harness) -> None:
        harness.run_until(450)
        harness.set_temperature(60.5)
        harness.run_until(600)
        harness.set_temperature(59.5)
        harness.run_until(900)

        assert transitions(harness.records) == [(0.0, False), (300.0, True)]

    def test_turns_off_below_band(self, harness: Harness) -> None:
        harness.run_until(450)
        harness.set_temperature(58.9)
        harness.run_until(510)

        assert transitions(harness.records)[-1] == (450.0, False)
        assert record_at(harness.records, 450).reason == CONTROL

    def test_stays_off_inside_band(self) -> None:
        harness = Harness(temperature=60.0)

        harness.run_until(900)

        assert harness.actuator.calls == [False]

    def test_actuator_only_called_on_change(self, harness: Harness) -> None:
        harness.run_until(900)

        assert harness.actuator.calls == [False, True]
        assert len(harness.records) == 30


class TestLogging:
    """Test the control log contents."""

    def test_one_record_per_tick(self, harness: Harness) -> None:
        harness.run_until(300)

        assert [r.timestamp for r in harness.records] == [seconds(s) for s in range(0, 300, 30)]

    def test_repeated_note_is_blanked(self, harness: Harness) -> None:
        harness.run_until(300)

        notes = [r.note for r in harness.records]
        assert notes[0] == STARTUP_DELAY
        assert notes[1] == MINIMUM_REST
        assert notes[2:] == [""] * 8
        assert all(r.reason == PROTECTION for r in harness.records)

    def test_secondary_temperature_logged(self) -> None:
        harness = Harness(secondary_probe_id="secondary")

        harness.run_until(30)

        assert harness.records[0].enclosure_temp == 70.0
        assert harness.records[0].secondary_temp == 65.0
        assert harness.records[0].mode == "enclosure"


class TestProbeFailures:
    """Test behaviour when a probe stops answering."""

    def test_keeps_last_reading(self, harness: Harness, caplog: pytest.LogCaptureFixture) -> None:
        harness.run_until(330)
        harness.set_temperature(None)

        with caplog.at_level(logging.WARNING):
            harness.run_until(600)

        assert harness.loop.state.enclosure_temp.is_stale
        assert record_at(harness.records, 450).enclosure_temp == 70.0
        assert record_at(harness.records, 450).power_on is True
        assert caplog.text.count("keeping last known reading") == 1

    def test_recovery_logged(self, harness: Harness, caplog: pytest.LogCaptureFixture) -> None:
        harness.run_until(60)
        harness.set_temperature(None)
        harness.run_until(120)

        harness.set_temperature(72.0)
        with caplog.at_level(logging.INFO):
            harness.run_until(150)

        assert "is reading again" in caplog.text
        assert not harness.loop.state.enclosure_temp.is_stale

    def test_expired_reading_requests_power_off(
        self, harness: Harness, caplog: pytest.LogCaptureFixture
    ) -> None:
        harness.run_until(330)
        harness.set_temperature(None)

        with caplog.at_level(logging.WARNING):
            harness.run_until(1200)

        # Last good read at 300; the limit of 600s passes after 900
        assert transitions(harness.records)[1:] == [(300.0, True), (930.0, False)]
        assert "requesting power off" in caplog.text

    def test_no_reading_ever_keeps_power_off(self) -> None:
        harness = Harness(temperature=None)

        harness.run_until(900)

        assert harness.actuator.calls == [False]
        assert harness.records[-1].enclosure_temp is None

    def test_missing_secondary_does_not_affect_control(self) -> None:
        harness = Harness(secondary_probe_id="secondary")
        harness.probes.set("secondary", None)

        harness.run_until(330)

        assert transitions(harness.records)[1] == (300.0, True)
        assert harness.records[-1].secondary_temp is None


class TestActuatorFailures:
    def test_failed_switch_is_retried(
        self, harness: Harness, caplog: pytest.LogCaptureFixture
    ) -> None:
        harness.run_until(300)
        harness.actuator.failing = True
        with caplog.at_level(logging.ERROR):
            harness.run_until(330)
        harness.actuator.failing = False
        harness.run_until(360)

        assert record_at(harness.records, 300).power_on is False
        assert transitions(harness.records)[1] == (330.0, True)
        assert "will retry next tick" in caplog.text


class TestShutdown:
    """Test the stop path."""

    def test_forces_power_off(self, harness: Harness) -> None:
        harness.run_until(330)
        assert harness.loop.state.power_on is True

        harness.runner.stop()

        assert harness.actuator.calls[-1] is False
        assert harness.actuator.released
        assert harness.sink.closed
        assert harness.loop.phase is LoopPhase.STOPPED

        last = harness.records[-1]
        assert last.reason == SHUTDOWN
        assert last.power_on is False
        assert last.timestamp == seconds(330)

    def test_only_once(self, harness: Harness) -> None:
        harness.run_until(60)

        harness.runner.stop()
        harness.loop.shutdown()

        assert [r.reason for r in harness.records].count(SHUTDOWN) == 1

    def test_relay_failure_still_releases(
        self, harness: Harness, caplog: pytest.LogCaptureFixture
    ) -> None:
        harness.run_until(330)
        harness.actuator.failing = True

        with caplog.at_level(logging.ERROR):
            harness.runner.stop()

        assert harness.actuator.released
        assert "Failed to force power off" in caplog.text

    def test_no_ticks_after_shutdown(self, harness: Harness) -> None:
        harness.run_until(60)
        harness.runner.stop()

        with pytest.raises(RuntimeError):
            harness.loop.execute()


class TestReentrancy:
    def test_overlapping_tick_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        harness = Harness()
        harness.loop.initialize()

        harness.loop._tick_lock.acquire()
        try:
            with caplog.at_level(logging.WARNING):
                harness.loop.execute()
        finally:
            harness.loop._tick_lock.release()

        assert harness.records == []
        assert "still in progress" in caplog.text


class PhaseRecordingLoop(ControlLoop):
    """ControlLoop that records which tick phases ran."""

    def __init__(self, **data) -> None:
        super().__init__(**data)
        self._phases: list[str] = []

    @property
    def phases(self) -> list[str]:
        return list(self._phases)

    def _import_state(self) -> None:
        self._phases.append("import")
        super()._import_state()

    def _think(self) -> None:
        self._phases.append("think")
        super()._think()

    def _export_state(self) -> None:
        self._phases.append("export")
        super()._export_state()


class TestTickPhases:
    """Test that a tick is split into import, think and export."""

    def test_phases_run_in_order(self) -> None:
        harness = Harness()
        loop = PhaseRecordingLoop.build(
            harness.config, harness.probes, harness.actuator, harness.sink
        )
        runner = FastRunner(name="phases", main_process=loop)

        runner.run_for_duration(60)

        assert loop.phases == ["import", "think", "export"] * 2
        assert len(harness.sink.records) == 2

    def test_state_committed_only_on_export(self) -> None:
        harness = Harness()
        harness.loop.initialize()

        harness.loop._now = 0
        harness.loop._import_state()
        harness.loop._think()

        assert harness.loop.state.last_tick_time is None
        assert harness.records == []

        harness.loop._export_state()

        assert harness.loop.state.last_tick_time == 0
        assert len(harness.records) == 1
