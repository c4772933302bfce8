"""Abstract contracts for the hardware the control loop talks to."""

from abc import ABC, abstractmethod

from keezer.base.entity import Entity


class ProbeReader(Entity, ABC):
    """Source of temperature readings for named probes.

    A read must come back, with a value or an error, well within one
    control interval.
    """

    @abstractmethod
    def read(self, probe_id: str) -> float:
        """Read one probe.

        Returns:
            Temperature in degrees Fahrenheit

        Raises:
            ProbeUnavailableError: If the probe did not answer

        """

    @abstractmethod
    def discover(self) -> list[str]:
        """Return the ids of all attached probes."""


class PowerActuator(Entity, ABC):
    """On/off power output to the compressor.

    set_power() must be safe to call with the level already in effect.
    """

    @abstractmethod
    def set_power(self, on: bool) -> None:
        """Switch power on or off.

        Raises:
            ActuatorFailureError: If the output could not be set

        """

    @abstractmethod
    def release(self) -> None:
        """Give the output back to the system. Idempotent."""
