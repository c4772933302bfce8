"""Accelerated simulation runs and their timing checks."""

import logging
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field

from keezer.base.process import NS_PER_SECOND, seconds_to_ns
from keezer.base.runner import FastRunner
from keezer.config import Configuration
from keezer.environments.simulation import (
    SimulatedEnvironment,
    ThermalSimulator,
)
from keezer.logsink import LogRecord, MemoryLogSink
from keezer.loop import SHUTDOWN, ControlLoop

logger = logging.getLogger(__name__)


def _shortest(current: int | None, candidate: int) -> int:
    return candidate if current is None else min(current, candidate)


class SimulationReport(BaseModel):
    """Summary of a control log, with any compressor timing violations."""

    model_config = ConfigDict(frozen=True)

    ticks: int = 0
    power_on_count: int = 0
    first_power_on: int | None = Field(
        default=None, description="Nanosecond time power first came on"
    )
    shortest_run: int | None = None
    shortest_rest: int | None = None
    min_enclosure_temp: float | None = None
    max_enclosure_temp: float | None = None
    violations: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    @classmethod
    def from_records(
        cls, records: Iterable[LogRecord], config: Configuration
    ) -> "SimulationReport":
        """Replay a control log and check the rest and run timings.

        A run cut short is only a violation when neither the freeze
        floor nor shutdown explains it.
        """
        rest_ns = seconds_to_ns(config.min_compressor_rest_seconds)
        run_ns = seconds_to_ns(config.min_compressor_run_seconds)

        ticks = 0
        power_on_count = 0
        first_tick: int | None = None
        first_on: int | None = None
        last_on: int | None = None
        last_off: int | None = None
        shortest_run: int | None = None
        shortest_rest: int | None = None
        temps: list[float] = []
        violations: list[str] = []
        power: bool | None = None

        for record in records:
            if record.reason != SHUTDOWN:
                ticks += 1
                if first_tick is None:
                    first_tick = record.timestamp
            if record.enclosure_temp is not None:
                temps.append(record.enclosure_temp)

            if record.power_on == power or record.power_on is None:
                continue

            seconds = record.timestamp / NS_PER_SECOND
            now = record.timestamp
            if record.power_on:
                power_on_count += 1
                if first_on is None:
                    first_on = now
                    if first_tick is not None and now - first_tick < rest_ns:
                        violations.append(
                            f"power on at {seconds:.0f}s, inside the "
                            "startup delay"
                        )
                if last_off is not None:
                    rest = now - last_off
                    shortest_rest = _shortest(shortest_rest, rest)
                    if rest < rest_ns:
                        violations.append(
                            f"power on at {seconds:.0f}s after only "
                            f"{rest / NS_PER_SECOND:.0f}s rest"
                        )
                last_on = now
            else:
                if last_on is not None:
                    run = now - last_on
                    shortest_run = _shortest(shortest_run, run)
                    excused = record.reason == SHUTDOWN or (
                        record.enclosure_temp is not None
                        and record.enclosure_temp
                        < config.low_temperature_floor
                    )
                    if run < run_ns and not excused:
                        violations.append(
                            f"power off at {seconds:.0f}s after only "
                            f"{run / NS_PER_SECOND:.0f}s run"
                        )
                last_off = now
            power = record.power_on

        return cls(
            ticks=ticks,
            power_on_count=power_on_count,
            first_power_on=first_on,
            shortest_run=shortest_run,
            shortest_rest=shortest_rest,
            min_enclosure_temp=min(temps) if temps else None,
            max_enclosure_temp=max(temps) if temps else None,
            violations=violations,
        )


def simulation_config(
    target_temperature: float = 60.0, **overrides: object
) -> Configuration:
    """Configuration wired to the simulated probe ids."""
    values: dict[str, object] = {
        "target_temperature": target_temperature,
        "enclosure_probe_id": "enclosure",
        "secondary_probe_id": "secondary",
        "log_paths": [],
    }
    values.update(overrides)
    return Configuration.model_validate(values)


def run_simulation(
    config: Configuration,
    hours: float,
    start_temperature: float = 72.0,
    simulator: ThermalSimulator | None = None,
) -> tuple[SimulationReport, list[LogRecord]]:
    """Run the control loop against the thermal model on a virtual clock.

    Returns:
        The timing report and the full control log

    """
    if simulator is None:
        simulator = ThermalSimulator(start_temperature=start_temperature)
    environment = SimulatedEnvironment(
        name="simulation",
        simulator=simulator,
        enclosure_probe_id=config.enclosure_probe_id,
        secondary_probe_id=config.secondary_probe_id,
    )
    sink = MemoryLogSink(name="simulation-log")
    loop = ControlLoop.build(
        config, environment, environment, sink, name="simulated"
    )
    runner = FastRunner(
        name="simulation",
        main_process=loop,
        max_duration_ns=seconds_to_ns(hours * 3600) + NS_PER_SECOND,
    )

    logger.info(f"Simulating {hours} hours from {start_temperature}F")
    runner.run_for_duration(hours * 3600)
    runner.stop()

    records = sink.records
    return SimulationReport.from_records(records, config), records
