"""Compressor-safe temperature control for a freezer-based enclosure."""

# Core classes
from .base import (
    ControllerState,
    Entity,
    FastRunner,
    Process,
    Reading,
    Runner,
    StandardRunner,
    TimeSource,
)
from .config import Configuration, load_config, resolve_probes
from .controllers import (
    CompressorProtector,
    EquipmentProtector,
    HysteresisController,
    ProtectionDecision,
    TemperatureController,
)
from .environments import (
    GpioActuator,
    PowerActuator,
    ProbeReader,
    SimulatedEnvironment,
    ThermalSimulator,
    W1ProbeReader,
)
from .errors import (
    ActuatorFailureError,
    ConfigurationError,
    KeezerError,
    ProbeUnavailableError,
)
from .logsink import CsvFileLogSink, LogRecord, LogSink, MemoryLogSink
from .loop import ControlLoop, LoopPhase

__all__ = [
    "ActuatorFailureError",
    "CompressorProtector",
    "Configuration",
    "ConfigurationError",
    "ControlLoop",
    "ControllerState",
    "CsvFileLogSink",
    "Entity",
    "EquipmentProtector",
    "FastRunner",
    "GpioActuator",
    "HysteresisController",
    "KeezerError",
    "LogRecord",
    "LogSink",
    "LoopPhase",
    "MemoryLogSink",
    "PowerActuator",
    "ProbeReader",
    "ProbeUnavailableError",
    "Process",
    "ProtectionDecision",
    "Reading",
    "Runner",
    "SimulatedEnvironment",
    "StandardRunner",
    "TemperatureController",
    "ThermalSimulator",
    "TimeSource",
    "W1ProbeReader",
    "load_config",
    "resolve_probes",
]
