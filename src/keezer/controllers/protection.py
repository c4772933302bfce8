"""Compressor and contents protection.

The protector can veto any request from the temperature controller. It
enforces, in priority order:

1. A full rest period after the process starts, because the real time
   the compressor has been off is unknown after a restart
2. The minimum rest time between run cycles
3. The freeze floor, which cuts power even inside a minimum run
4. The minimum run time once the compressor has started

The protector never writes to ControllerState. When it needs a timer
armed it says so in its decision and the control loop applies it.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field, model_validator

from keezer.base.entity import Entity
from keezer.base.process import seconds_to_ns
from keezer.base.state import ControllerState
from keezer.config import Configuration

STARTUP_DELAY = "Startup delay to prevent premature start after power failure"
MINIMUM_REST = "Ensure minimum compressor off time between run cycles"
MINIMUM_RUN = "Ensure minimum compressor run time"
FREEZE_FLOOR = "Prevent freezing the contents"


class ProtectionDecision(BaseModel):
    """Outcome of a protection check for one tick."""

    model_config = ConfigDict(frozen=True)

    force_off: bool = False
    force_on: bool = False
    reason: str = ""
    stay_off_until: int | None = Field(
        default=None,
        description="New earliest power-on time, when the check arms one",
    )

    @model_validator(mode="after")
    def _one_direction(self) -> "ProtectionDecision":
        if self.force_off and self.force_on:
            raise ValueError("A decision cannot force power both off and on")
        return self

    @property
    def overrides(self) -> bool:
        return self.force_off or self.force_on

    def resolve(self, requested: bool) -> bool:
        """Apply this decision to the controller's request."""
        if self.force_off:
            return False
        if self.force_on:
            return True
        return requested


NO_OVERRIDE = ProtectionDecision()


class EquipmentProtector(Entity, ABC):
    """Guards the compressor and the enclosure contents."""

    @abstractmethod
    def evaluate(self, state: ControllerState, now: int) -> ProtectionDecision:
        """Check the current state and return an override, if any.

        Args:
            state: Read-only snapshot holding this tick's readings
            now: Current time in nanoseconds

        """


class CompressorProtector(EquipmentProtector):
    """Minimum rest/run times plus an absolute low-temperature cutoff."""

    min_rest_ns: int = Field(ge=0, description="Minimum off time")
    min_run_ns: int = Field(ge=0, description="Minimum run time")
    low_temperature_floor: float = Field(
        description="Power is cut whenever the enclosure is colder"
    )

    @classmethod
    def from_config(cls, config: Configuration) -> "CompressorProtector":
        return cls(
            name="compressor",
            min_rest_ns=seconds_to_ns(config.min_compressor_rest_seconds),
            min_run_ns=seconds_to_ns(config.min_compressor_run_seconds),
            low_temperature_floor=config.low_temperature_floor,
        )

    def evaluate(self, state: ControllerState, now: int) -> ProtectionDecision:
        if state.last_tick_time is None:
            return ProtectionDecision(
                force_off=True,
                reason=STARTUP_DELAY,
                stay_off_until=now + self.min_rest_ns,
            )

        if now < state.stay_off_until:
            return ProtectionDecision(force_off=True, reason=MINIMUM_REST)

        temperature = state.enclosure_value
        floor = self.low_temperature_floor
        if temperature is not None and temperature < floor:
            return ProtectionDecision(force_off=True, reason=FREEZE_FLOOR)

        if state.power_on and now < state.stay_on_until:
            return ProtectionDecision(force_on=True, reason=MINIMUM_RUN)

        return NO_OVERRIDE
