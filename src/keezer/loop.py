"""The control loop: probes → controller → protector → actuator."""

import threading
from enum import Enum
from typing import Any

from pydantic import Field

from keezer.base.process import Process, seconds_to_ns
from keezer.base.state import ControllerState, Reading
from keezer.config import Configuration
from keezer.controllers.hysteresis import (
    HysteresisController,
    TemperatureController,
)
from keezer.controllers.protection import (
    NO_OVERRIDE,
    CompressorProtector,
    EquipmentProtector,
    ProtectionDecision,
)
from keezer.environments.interfaces import PowerActuator, ProbeReader
from keezer.errors import ActuatorFailureError, ProbeUnavailableError
from keezer.logsink import LogRecord, LogSink

CONTROL = "control"
PROTECTION = "protection"
SHUTDOWN = "shutdown"


class LoopPhase(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


class ControlLoop(Process):
    """Runs one control tick per interval and owns all mutable state.

    Each tick follows the three-method pattern:
    - _import_state(): read the probes, keeping the last reading when
      one fails
    - _think(): ask the controller for a power level, then ask the
      protector whether to override it
    - _export_state(): switch the actuator only if the final level
      differs, arm the rest/run timers on a transition and append one
      record to the control log

    The controller and protector only ever receive a frozen
    ControllerState snapshot. The loop replaces its state once per
    tick, at the end.

    shutdown() is the one path that commands power off without asking
    the protector.
    """

    config: Configuration
    controller: TemperatureController
    protector: EquipmentProtector
    probes: ProbeReader
    actuator: PowerActuator
    log_sink: LogSink

    def __init__(self, **data: Any) -> None:
        config = data.get("config")
        if isinstance(config, Configuration) and "interval_ns" not in data:
            data["interval_ns"] = seconds_to_ns(
                config.control_interval_seconds
            )
        super().__init__(**data)
        self._state = ControllerState()
        self._phase = LoopPhase.STOPPED
        self._tick_lock = threading.Lock()
        self._released = False
        self._unavailable_probes: set[str] = set()
        self._expired_probes: set[str] = set()

        # Working values passed between the phases of one tick
        self._now = 0
        self._working = self._state
        self._decision = NO_OVERRIDE
        self._target_power = False

    @classmethod
    def build(
        cls,
        config: Configuration,
        probes: ProbeReader,
        actuator: PowerActuator,
        log_sink: LogSink,
        name: str = "keezer",
    ) -> "ControlLoop":
        """Assemble a loop with the standard controller and protector."""
        return cls(
            name=name,
            config=config,
            controller=HysteresisController.from_config(config),
            protector=CompressorProtector.from_config(config),
            probes=probes,
            actuator=actuator,
            log_sink=log_sink,
        )

    @property
    def state(self) -> ControllerState:
        """Snapshot of the state after the most recent tick."""
        return self._state

    @property
    def phase(self) -> LoopPhase:
        return self._phase

    def initialize(self) -> None:
        """Start a fresh run, as after a power failure."""
        super().initialize()
        self._state = ControllerState()
        self._unavailable_probes.clear()
        self._expired_probes.clear()
        self._released = False
        self._phase = LoopPhase.RUNNING
        self._logger.info(
            f"Control loop running: target {self.config.target_temperature}"
            f"±{self.config.hysteresis_band}, interval "
            f"{self.config.control_interval_seconds}s"
        )

    def _execute(self) -> None:
        """Run one tick through the three-method pattern.

        The whole tick holds the tick lock, so shutdown() waits for it
        and an overlapping tick is skipped.
        """
        if self._phase is not LoopPhase.RUNNING:
            raise RuntimeError(
                f"Control loop {self.name} is {self._phase.value}"
            )

        if not self._tick_lock.acquire(blocking=False):
            self._logger.warning("Previous tick still in progress, skipping")
            return
        try:
            self._now = self.get_time()
            super()._execute()
        finally:
            self._tick_lock.release()

    def _import_state(self) -> None:
        """Read the probes into this tick's working state."""
        state = self._state
        config = self.config

        enclosure = self._read_probe(
            config.enclosure_probe_id, state.enclosure_temp
        )
        secondary = None
        if config.secondary_probe_id is not None:
            secondary = self._read_probe(
                config.secondary_probe_id, state.secondary_temp
            )
        self._working = state.with_updates(
            enclosure_temp=enclosure, secondary_temp=secondary
        )

    def _think(self) -> None:
        """Ask the controller, then let the protector override it."""
        state = self._working
        now = self._now

        requested = self.controller.request_power(
            state.power_on,
            self._control_temperature(state.enclosure_temp, now),
        )
        decision = self.protector.evaluate(state, now)
        if decision.stay_off_until is not None:
            state = state.with_updates(
                stay_off_until=decision.stay_off_until
            )

        self._working = state
        self._decision = decision
        self._target_power = decision.resolve(requested)

    def _export_state(self) -> None:
        """Switch the actuator, commit the state and log the tick."""
        now = self._now
        state = self._apply_power(self._working, self._target_power, now)

        reason, note = self._describe(self._decision)
        previous = (
            state.previous_decision_reason,
            state.previous_decision_note,
        )
        logged_note = note
        if (reason, note) == previous:
            logged_note = ""
        else:
            self._logger.info(
                f"Decision: {reason}" + (f" ({note})" if note else "")
            )

        self._state = state.with_updates(
            last_tick_time=now,
            previous_decision_reason=reason,
            previous_decision_note=note,
        )
        self._emit(now, reason, logged_note)

    def _read_probe(
        self, probe_id: str, previous: Reading | None
    ) -> Reading | None:
        """Read a probe, falling back to the last reading marked stale."""
        try:
            value = self.probes.read(probe_id)
        except ProbeUnavailableError as e:
            if probe_id not in self._unavailable_probes:
                self._unavailable_probes.add(probe_id)
                self._logger.warning(f"{e}; keeping last known reading")
            return previous.as_stale() if previous is not None else None

        if probe_id in self._unavailable_probes:
            self._unavailable_probes.discard(probe_id)
            self._expired_probes.discard(probe_id)
            self._logger.info(f"Probe {probe_id} is reading again")
        return Reading(
            probe_id=probe_id, value=value, timestamp=self.get_time()
        )

    def _control_temperature(
        self, reading: Reading | None, now: int
    ) -> float | None:
        """Temperature the controller may act on.

        A stale reading is used until it is older than the configured
        limit; after that the controller sees no reading at all.
        """
        if reading is None:
            return None
        limit_seconds = self.config.stale_reading_limit_seconds
        if reading.is_stale and now - reading.timestamp > seconds_to_ns(
            limit_seconds
        ):
            if reading.probe_id not in self._expired_probes:
                self._expired_probes.add(reading.probe_id)
                self._logger.warning(
                    f"Probe {reading.probe_id} has not been read for over "
                    f"{limit_seconds}s; requesting power off"
                )
            return None
        return reading.value

    def _apply_power(
        self, state: ControllerState, on: bool, now: int
    ) -> ControllerState:
        """Command the actuator on a change and arm the matching timer."""
        if state.power_on is on:
            return state

        level = "on" if on else "off"
        try:
            self.actuator.set_power(on)
        except ActuatorFailureError as e:
            self._logger.error(
                f"Failed to switch power {level}: {e}; will retry next tick"
            )
            return state

        self._logger.info(f"Power {level}")
        config = self.config
        if on:
            return state.with_updates(
                power_on=True,
                stay_on_until=now
                + seconds_to_ns(config.min_compressor_run_seconds),
            )
        return state.with_updates(
            power_on=False,
            stay_off_until=now
            + seconds_to_ns(config.min_compressor_rest_seconds),
        )

    @staticmethod
    def _describe(decision: ProtectionDecision) -> tuple[str, str]:
        if decision.overrides:
            return PROTECTION, decision.reason
        return CONTROL, ""

    def _emit(self, now: int, reason: str, note: str) -> None:
        state = self._state
        self.log_sink.append(
            LogRecord(
                timestamp=now,
                power_on=state.power_on,
                enclosure_temp=state.enclosure_value,
                secondary_temp=state.secondary_value,
                mode=self.config.mode,
                reason=reason,
                note=note,
            )
        )

    def shutdown(self) -> None:
        """Force power off and release the hardware.

        Waits for an in-flight tick to finish first. Safe to call more
        than once; only the first call acts.
        """
        with self._tick_lock:
            if self._released:
                return
            self._released = True
            self._phase = LoopPhase.STOPPING
            self._logger.info("Stopping: forcing power off")

            now = self.get_time()
            try:
                self.actuator.set_power(False)
                self._state = self._state.with_updates(power_on=False)
            except ActuatorFailureError as e:
                self._logger.error(
                    f"Failed to force power off during shutdown: {e}"
                )

            try:
                self.actuator.release()
            except ActuatorFailureError as e:
                self._logger.error(f"Failed to release power output: {e}")

            self._emit(now, SHUTDOWN, "Power forced off")
            self.log_sink.close()
            self._phase = LoopPhase.STOPPED
            self._logger.info("Control loop stopped")
