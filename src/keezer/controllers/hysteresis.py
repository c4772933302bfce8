"""Hysteresis temperature control."""

from abc import ABC, abstractmethod

from pydantic import Field

from keezer.base.entity import Entity
from keezer.config import Configuration


def hysteresis_request(
    current_power: bool | None,
    temperature: float | None,
    target: float,
    band: float,
) -> bool:
    """Decide whether cooling power should be on.

    Above target + band asks for power, below target - band asks for
    none, and anywhere inside the band keeps the current level. With no
    temperature at all the answer is always off.
    """
    if temperature is None:
        return False
    if temperature > target + band:
        return True
    if temperature < target - band:
        return False
    return bool(current_power)


class TemperatureController(Entity, ABC):
    """Maps the enclosure temperature to a requested power level.

    Controllers only make requests. They hold no runtime state and never
    touch the loop's ControllerState; the EquipmentProtector has the
    final say on what reaches the compressor.
    """

    @abstractmethod
    def request_power(
        self, current_power: bool | None, temperature: float | None
    ) -> bool:
        """Return the requested power level.

        Args:
            current_power: Level currently commanded, None if unknown
            temperature: Enclosure temperature, None if never read

        """


class HysteresisController(TemperatureController):
    """Bang-bang controller with a symmetric dead zone around the target."""

    target_temperature: float = Field(description="Temperature to hold")
    hysteresis_band: float = Field(
        default=1.0, gt=0, description="Dead zone either side of the target"
    )

    @classmethod
    def from_config(cls, config: Configuration) -> "HysteresisController":
        return cls(
            name="hysteresis",
            target_temperature=config.target_temperature,
            hysteresis_band=config.hysteresis_band,
        )

    def request_power(
        self, current_power: bool | None, temperature: float | None
    ) -> bool:
        return hysteresis_request(
            current_power,
            temperature,
            self.target_temperature,
            self.hysteresis_band,
        )
