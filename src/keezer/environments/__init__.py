"""Hardware adapters and the simulated freezer."""

from .hardware import GpioActuator, W1ProbeReader
from .interfaces import PowerActuator, ProbeReader
from .simulation import SimulatedEnvironment, ThermalSimulator

__all__ = [
    "GpioActuator",
    "PowerActuator",
    "ProbeReader",
    "SimulatedEnvironment",
    "ThermalSimulator",
    "W1ProbeReader",
]
