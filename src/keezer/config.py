"""Run configuration for the keezer controller.

Configuration is immutable for the lifetime of a run. Timing values that
would damage the compressor or defeat temperature control are clamped
into a safe range with a warning; values the controller cannot run
without raise ConfigurationError.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from keezer.errors import ConfigurationError

logger = logging.getLogger(__name__)

MIN_REST_SECONDS = 120
MAX_REST_SECONDS = 600
MAX_RUN_SECONDS = 600
MIN_INTERVAL_SECONDS = 1
MAX_INTERVAL_SECONDS = 60

# Beyond these the controller still works, but probably not as intended
HIGH_TARGET_NOTICE = 72.0
LOW_TARGET_WARNING = 0.0


def default_log_paths() -> list[str]:
    """Candidate control log files, tried in order."""
    return [
        str(Path.home() / "keezer" / "control.log"),
        os.path.join(tempfile.gettempdir(), "keezer", "control.log"),
    ]


def _clamp(
    name: str, value: float, low: float | None, high: float | None
) -> float:
    if low is not None and value < low:
        logger.warning(
            f"{name}={value} is below the safe minimum; using {low}"
        )
        return low
    if high is not None and value > high:
        logger.warning(
            f"{name}={value} is above the safe maximum; using {high}"
        )
        return high
    return value


class Configuration(BaseModel):
    """Settings consumed by the control loop.

    Temperatures are degrees Fahrenheit, durations are seconds.
    NaN and infinity are rejected.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, allow_inf_nan=False)

    target_temperature: float = Field(
        description="Enclosure temperature to hold"
    )
    hysteresis_band: float = Field(
        default=1.0,
        gt=0,
        description="Dead zone either side of the target",
    )
    min_compressor_rest_seconds: float = Field(
        default=300,
        description="Minimum off time between compressor run cycles",
    )
    min_compressor_run_seconds: float = Field(
        default=120,
        description="Minimum compressor run time once started",
    )
    low_temperature_floor: float = Field(
        default=32.0,
        description="Below this enclosure temperature power is always cut",
    )
    control_interval_seconds: float = Field(
        default=30,
        description="Time between control ticks",
    )
    enclosure_probe_id: str = Field(
        min_length=1,
        description="1-Wire id of the probe inside the enclosure",
    )
    secondary_probe_id: str | None = Field(
        default=None,
        description="1-Wire id of the probe in the contents, if fitted",
    )
    mode: Literal["enclosure"] = Field(
        default="enclosure",
        description="Which temperature is controlled",
    )
    power_pin: int = Field(
        default=17,
        ge=0,
        description="GPIO line driving the compressor power relay",
    )
    power_pin_active_low: bool = Field(
        default=False,
        description="Relay energises when the GPIO line is driven low",
    )
    stale_reading_limit_seconds: float = Field(
        default=600,
        gt=0,
        description="How long a stale enclosure reading may still be used "
        "for control",
    )
    log_paths: list[str] = Field(
        default_factory=default_log_paths,
        description="Candidate control log files, first writable one wins",
    )

    @field_validator("min_compressor_rest_seconds")
    @classmethod
    def _clamp_rest(cls, value: float) -> float:
        return _clamp(
            "min_compressor_rest_seconds",
            value,
            MIN_REST_SECONDS,
            MAX_REST_SECONDS,
        )

    @field_validator("min_compressor_run_seconds")
    @classmethod
    def _clamp_run(cls, value: float) -> float:
        return _clamp("min_compressor_run_seconds", value, 0, MAX_RUN_SECONDS)

    @field_validator("control_interval_seconds")
    @classmethod
    def _clamp_interval(cls, value: float) -> float:
        return _clamp(
            "control_interval_seconds",
            value,
            MIN_INTERVAL_SECONDS,
            MAX_INTERVAL_SECONDS,
        )

    @model_validator(mode="after")
    def _check_target(self) -> "Configuration":
        if self.target_temperature > HIGH_TARGET_NOTICE:
            logger.warning(
                f"target_temperature={self.target_temperature} is above "
                f"{HIGH_TARGET_NOTICE}; "
                "the appliance will rarely be powered"
            )
        elif self.target_temperature < LOW_TARGET_WARNING:
            logger.warning(
                f"target_temperature={self.target_temperature} is below "
                f"{LOW_TARGET_WARNING}; "
                "power will stay on and the contents will freeze"
            )
        if self.secondary_probe_id == self.enclosure_probe_id:
            raise ValueError(
                "secondary_probe_id must differ from enclosure_probe_id"
            )
        return self


def load_config(path: str | Path) -> Configuration:
    """Read a JSON configuration file.

    Raises:
        ConfigurationError: If the file is missing, is not JSON, or does
            not describe a usable configuration

    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read configuration {path}: {e}"
        ) from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Configuration {path} is not valid JSON: {e}"
        ) from e

    try:
        config = Configuration.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Configuration {path} is invalid:\n{e}"
        ) from e

    logger.info(f"Loaded configuration from {path}: {config.model_dump()}")
    return config


def resolve_probes(
    config: Configuration, discovered: Iterable[str]
) -> Configuration:
    """Match configured probe ids against the probes actually attached.

    Returns:
        The configuration, with secondary_probe_id cleared when that
        probe is not attached

    Raises:
        ConfigurationError: If the enclosure probe is not attached

    """
    attached = list(discovered)
    logger.info(f"Discovered probes: {attached}")

    if config.enclosure_probe_id not in attached:
        raise ConfigurationError(
            f"enclosure_probe_id is {config.enclosure_probe_id} but no such "
            "probe is connected; "
            f"attached probes: {attached}"
        )

    configured = (config.enclosure_probe_id, config.secondary_probe_id)
    for probe_id in attached:
        if probe_id not in configured:
            logger.warning(
                f"Probe {probe_id} is attached but not configured. "
                "Is this intentional?"
            )

    secondary = config.secondary_probe_id
    if secondary is not None and secondary not in attached:
        logger.warning(
            f"secondary_probe_id is {secondary} but no such probe is "
            "connected; "
            "continuing without it"
        )
        return config.model_copy(update={"secondary_probe_id": None})

    return config
