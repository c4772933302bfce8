"""Raspberry Pi adapters for DS18B20 probes and a GPIO power relay.

Probes are read from the kernel's 1-Wire sysfs tree, so tests can
point the reader at a fake tree. The relay is driven with RPi.GPIO,
which is imported only when a relay is constructed.
"""

import logging
from pathlib import Path
from types import ModuleType
from typing import Any

from pydantic import Field

from keezer.environments.interfaces import PowerActuator, ProbeReader
from keezer.errors import ActuatorFailureError, ProbeUnavailableError

logger = logging.getLogger(__name__)

# 1-Wire family code for DS18B20 temperature sensors
DS18B20_FAMILY = "28-"


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9.0 / 5.0 + 32.0


def parse_w1_slave(text: str) -> float:
    """Parse the contents of a w1_slave file.

    The first line ends in YES when the CRC matched; the second line
    ends in t=<millidegrees Celsius>.

    Returns:
        Temperature in degrees Fahrenheit

    Raises:
        ValueError: If the CRC failed or the text is malformed

    """
    lines = text.strip().splitlines()
    if len(lines) < 2:
        raise ValueError("truncated reading")
    if not lines[0].strip().endswith("YES"):
        raise ValueError("CRC check failed")

    _, sep, raw = lines[1].rpartition("t=")
    if not sep:
        raise ValueError("no temperature field")
    return celsius_to_fahrenheit(int(raw) / 1000.0)


class W1ProbeReader(ProbeReader):
    """Reads DS18B20 probes from the 1-Wire sysfs tree."""

    devices_path: str = Field(
        default="/sys/bus/w1/devices",
        description="Directory holding one entry per 1-Wire device",
    )
    attempts: int = Field(
        default=4,
        ge=1,
        description="Reads tried before a probe is reported unavailable",
    )

    def read(self, probe_id: str) -> float:
        path = Path(self.devices_path) / probe_id / "w1_slave"
        last_error = "no attempt made"

        for attempt in range(1, self.attempts + 1):
            try:
                return parse_w1_slave(path.read_text(encoding="ascii"))
            except (OSError, ValueError) as e:
                last_error = str(e)
                logger.debug(
                    f"Read {attempt}/{self.attempts} of {probe_id} "
                    f"failed: {e}"
                )

        raise ProbeUnavailableError(probe_id, last_error)

    def discover(self) -> list[str]:
        root = Path(self.devices_path)
        if not root.is_dir():
            logger.warning(f"1-Wire device directory {root} does not exist")
            return []
        return sorted(
            entry.name
            for entry in root.iterdir()
            if entry.name.startswith(DS18B20_FAMILY)
        )


def load_gpio() -> ModuleType:
    """Import RPi.GPIO.

    Raises:
        ActuatorFailureError: If the library is not installed or this is
            not a Raspberry Pi

    """
    try:
        import RPi.GPIO as GPIO
    except (ImportError, RuntimeError) as e:
        raise ActuatorFailureError(f"RPi.GPIO is unavailable: {e}") from e
    return GPIO


class GpioActuator(PowerActuator):
    """Drives the compressor relay through RPi.GPIO.

    Pins use BCM numbering. The line is set up as an output already at
    the off level as soon as the actuator is constructed, before any
    control decision is made.
    """

    pin: int = Field(ge=0, description="BCM GPIO line number")
    active_low: bool = Field(
        default=False,
        description="Relay energises when the line is driven low",
    )

    def __init__(self, **data: Any) -> None:
        if "pin" in data:
            data.setdefault("unique_id", f"bcm{data['pin']}")
        super().__init__(**data)
        self._gpio = load_gpio()
        self._released = False
        self._claim()

    def _level(self, on: bool) -> int:
        if on != self.active_low:
            return self._gpio.HIGH
        return self._gpio.LOW

    def _claim(self) -> None:
        gpio = self._gpio
        try:
            gpio.setmode(gpio.BCM)
            gpio.setwarnings(False)
            gpio.setup(self.pin, gpio.OUT, initial=self._level(False))
        except (RuntimeError, ValueError) as e:
            raise ActuatorFailureError(
                f"Cannot set up GPIO {self.pin} as an output: {e}"
            ) from e
        logger.info(f"Claimed GPIO {self.pin}, power off")

    def set_power(self, on: bool) -> None:
        if self._released:
            raise ActuatorFailureError(f"GPIO {self.pin} has been released")
        try:
            self._gpio.output(self.pin, self._level(on))
        except (RuntimeError, ValueError) as e:
            raise ActuatorFailureError(
                f"Cannot drive GPIO {self.pin} {'on' if on else 'off'}: {e}"
            ) from e

    def release(self) -> None:
        if self._released:
            return
        try:
            self.set_power(False)
        finally:
            self._released = True
            self._gpio.cleanup(self.pin)
            logger.info(f"Released GPIO {self.pin}")
