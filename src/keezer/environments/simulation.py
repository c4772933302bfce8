"""Deterministic thermal simulation of a freezer and its contents.

The enclosure is modelled as a single lumped thermal mass:

- heat leaks in from the room at a rate proportional to
  (ambient - enclosure)
- while powered, the coils pull heat out at a rate proportional to
  (enclosure - coil minimum), capped at the compressor's maximum rate

The contents (what the optional secondary probe measures) follow the
enclosure air through a slower first-order transfer. Rates are in
degrees per second per degree of difference, temperatures in degrees
Fahrenheit.

Nothing here reads the wall clock: the same starting temperature, power
schedule and timestamps always produce the same trajectory.
"""

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from keezer.base.process import NS_PER_SECOND
from keezer.base.runner import TimeSource
from keezer.environments.interfaces import PowerActuator, ProbeReader
from keezer.errors import ActuatorFailureError, ProbeUnavailableError


class ThermalSimulator(BaseModel):
    """Lumped-capacitance model of a chest freezer.

    Parameters are set at construction; advance() and set_power() change
    the model's private state.
    """

    model_config = ConfigDict(frozen=False)

    ambient_temperature: float = Field(
        default=72.0, description="Room temperature"
    )
    coil_min_temperature: float = Field(
        default=-30.0,
        description="Coldest the evaporator coils get with the compressor "
        "running",
    )
    coil_transfer_rate: float = Field(default=0.0005, ge=0)
    coil_max_rate: float = Field(
        default=0.5,
        ge=0,
        description="Fastest the coils can cool the enclosure, degrees "
        "per second",
    )
    ambient_transfer_rate: float = Field(default=0.0001, ge=0)
    load_transfer_rate: float = Field(default=0.00005, ge=0)
    start_temperature: float = Field(default=72.0)
    start_load_temperature: float | None = Field(
        default=None,
        description="Starting temperature of the contents; defaults to "
        "start_temperature",
    )
    start_time: int = Field(
        default=0, description="Nanosecond time of the start state"
    )
    max_step_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Longest single integration step",
    )

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        self.reset()

    def reset(self) -> None:
        """Return to the configured starting conditions."""
        self._enclosure = self.start_temperature
        self._load = (
            self.start_temperature
            if self.start_load_temperature is None
            else self.start_load_temperature
        )
        self._power = False
        self._timestamp = self.start_time

    @property
    def enclosure_temperature(self) -> float:
        return self._enclosure

    @property
    def load_temperature(self) -> float:
        return self._load

    @property
    def power(self) -> bool:
        return self._power

    @property
    def timestamp(self) -> int:
        return self._timestamp

    def set_power(self, on: bool) -> None:
        """Change the compressor state from the current timestamp on."""
        self._power = bool(on)

    def advance(self, timestamp: int) -> float:
        """Advance the model to timestamp under the current power state.

        Args:
            timestamp: Nanosecond time, not earlier than the last one

        Returns:
            The new enclosure temperature

        Raises:
            ValueError: If timestamp is earlier than the model's time

        """
        if timestamp < self._timestamp:
            raise ValueError(
                "Simulator time cannot go backwards "
                f"({timestamp} < {self._timestamp})"
            )

        elapsed = (timestamp - self._timestamp) / NS_PER_SECOND
        if elapsed > 0:
            steps = max(1, math.ceil(elapsed / self.max_step_seconds))
            dt = elapsed / steps
            for _ in range(steps):
                self._step(dt)
        self._timestamp = timestamp
        return self._enclosure

    def coil_flux(self) -> float:
        """Degrees per second currently removed by the coils."""
        if not self._power:
            return 0.0
        flux = (
            self._enclosure - self.coil_min_temperature
        ) * self.coil_transfer_rate
        return math.copysign(min(abs(flux), self.coil_max_rate), flux)

    def _step(self, seconds: float) -> None:
        ambient_flux = (
            self.ambient_temperature - self._enclosure
        ) * self.ambient_transfer_rate
        load_flux = (self._enclosure - self._load) * self.load_transfer_rate
        self._enclosure += (ambient_flux - self.coil_flux()) * seconds
        self._load += load_flux * seconds


class SimulatedEnvironment(ProbeReader, PowerActuator):
    """Probes and power relay backed by a ThermalSimulator.

    The simulator is advanced to the current time source before every
    probe read and before every power change, so under a FastRunner it
    follows the virtual clock. Every set_power() call is recorded, and
    probe or relay failures can be switched on to exercise the loop's
    error handling.
    """

    model_config = ConfigDict(frozen=False)

    simulator: ThermalSimulator = Field(default_factory=ThermalSimulator)
    enclosure_probe_id: str = Field(default="enclosure", min_length=1)
    secondary_probe_id: str | None = Field(default="secondary")

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        self._power_calls: list[tuple[int, bool]] = []
        self._released = False
        self._failing_probes: set[str] = set()
        self._actuator_failing = False

    @property
    def power_calls(self) -> list[tuple[int, bool]]:
        """Every successful set_power() as (time, on)."""
        return list(self._power_calls)

    @property
    def released(self) -> bool:
        return self._released

    def _sync(self) -> int:
        now = TimeSource.now()
        self.simulator.advance(now)
        return now

    def fail_probe(self, probe_id: str, failing: bool = True) -> None:
        """Make reads of probe_id fail until called with failing=False."""
        if failing:
            self._failing_probes.add(probe_id)
        else:
            self._failing_probes.discard(probe_id)

    def fail_actuator(self, failing: bool = True) -> None:
        """Make set_power() fail until called with failing=False."""
        self._actuator_failing = failing

    def read(self, probe_id: str) -> float:
        if probe_id in self._failing_probes:
            raise ProbeUnavailableError(probe_id, "simulated probe failure")
        self._sync()
        if probe_id == self.enclosure_probe_id:
            return self.simulator.enclosure_temperature
        if probe_id == self.secondary_probe_id:
            return self.simulator.load_temperature
        raise ProbeUnavailableError(probe_id, "no such simulated probe")

    def discover(self) -> list[str]:
        probes = [self.enclosure_probe_id]
        if self.secondary_probe_id is not None:
            probes.append(self.secondary_probe_id)
        return probes

    def set_power(self, on: bool) -> None:
        if self._actuator_failing:
            raise ActuatorFailureError("simulated relay failure")
        now = self._sync()
        self.simulator.set_power(on)
        self._power_calls.append((now, bool(on)))

    def release(self) -> None:
        self._released = True
