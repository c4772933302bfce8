"""Temperature control and equipment protection."""

from .hysteresis import (
    HysteresisController,
    TemperatureController,
    hysteresis_request,
)
from .protection import (
    CompressorProtector,
    EquipmentProtector,
    NO_OVERRIDE,
    ProtectionDecision,
)

__all__ = [
    "NO_OVERRIDE",
    "CompressorProtector",
    "EquipmentProtector",
    "HysteresisController",
    "ProtectionDecision",
    "TemperatureController",
    "hysteresis_request",
]
