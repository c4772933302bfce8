"""Snapshot classes for controller state and probe readings."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Quality(str, Enum):
    """How trustworthy a probe reading is."""

    VALID = "valid"
    STALE = "stale"


class Reading(BaseModel):
    """A single temperature reading from one probe.

    Readings are immutable. When a probe stops answering, the loop keeps
    the last reading it had and marks it stale instead of inventing a
    new value.
    """

    model_config = ConfigDict(frozen=True)

    probe_id: str = Field(
        min_length=1, description="Probe the value came from"
    )
    value: float = Field(description="Temperature in degrees Fahrenheit")
    timestamp: int = Field(description="Nanosecond time the value was read")
    quality: Quality = Field(default=Quality.VALID)

    def as_stale(self) -> "Reading":
        """Return a copy of this reading marked stale."""
        if self.quality is Quality.STALE:
            return self
        return self.model_copy(update={"quality": Quality.STALE})

    @property
    def is_stale(self) -> bool:
        return self.quality is Quality.STALE


class ControllerState(BaseModel):
    """Everything the control loop remembers between ticks.

    ControllerState is owned by exactly one ControlLoop. It is frozen:
    the controller and protector only ever see it as a read-only
    snapshot, and the loop replaces it wholesale once per tick with
    with_updates().

    Timestamps are nanoseconds on the loop's time source. power_on is
    None until the first command reaches the actuator, so the first
    decision is always treated as a transition.
    """

    model_config = ConfigDict(frozen=True)

    last_tick_time: int | None = Field(
        default=None,
        description="Time of the previous tick, None until the first tick",
    )
    power_on: bool | None = Field(
        default=None,
        description="Last power level successfully commanded; None is unknown",
    )
    stay_off_until: int = Field(
        default=0,
        description="Earliest time power may next turn on",
    )
    stay_on_until: int = Field(
        default=0,
        description="Earliest time power may next turn off",
    )
    enclosure_temp: Reading | None = None
    secondary_temp: Reading | None = None
    previous_decision_reason: str = ""
    previous_decision_note: str = ""

    def with_updates(self, **changes: Any) -> "ControllerState":
        """Return a new state with the given fields replaced."""
        return self.model_copy(update=changes)

    @property
    def enclosure_value(self) -> float | None:
        if self.enclosure_temp is None:
            return None
        return self.enclosure_temp.value

    @property
    def secondary_value(self) -> float | None:
        if self.secondary_temp is None:
            return None
        return self.secondary_temp.value
