"""Runner classes for autonomous execution of the control loop."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ConfigDict, Field

from .entity import Entity
from .process import NS_PER_SECOND, Process, seconds_to_ns


class TimeSource:
    """Thread-local time source discovery for process execution.

    This class manages thread-local storage of runner instances to
    provide time sources for processes executing in different threads.
    The encapsulation allows for future changes to the time source
    discovery mechanism without modifying Process code.
    """

    _thread_locals = threading.local()

    @classmethod
    def set_current(cls, runner: "Runner") -> None:
        """Set time source (runner) for current thread.

        Args:
            runner: The runner instance to use as time source

        """
        cls._thread_locals.runner = runner

    @classmethod
    def get_current(cls) -> "Runner | None":
        """Get time source (runner) for current thread.

        Returns:
            The runner instance for this thread, or None if not set

        """
        return getattr(cls._thread_locals, "runner", None)

    @classmethod
    def clear_current(cls) -> None:
        """Clear time source for current thread."""
        if hasattr(cls._thread_locals, "runner"):
            del cls._thread_locals.runner

    @classmethod
    def now(cls) -> int:
        """Current time in nanoseconds from the active runner.

        Falls back to time.monotonic_ns() outside of a runner.
        """
        runner = cls.get_current()
        if runner:
            return runner.get_time()
        return time.monotonic_ns()


class Runner(Entity, ABC):
    """Base class for autonomous execution of processes.

    Runner manages the execution lifecycle of a main process, calling
    its execute() method according to the process's timing preferences.

    Key characteristics:
    - Runs in separate thread for non-blocking operation
    - Respects process timing preferences
    - Provides time source for executed processes
    - Never overlaps executions: one thread, one execution at a time
    - Calls the process's shutdown() exactly once when stopped
    """

    model_config = ConfigDict(extra="allow", frozen=False)

    main_process: Process = Field(
        description="The root process to execute autonomously"
    )
    join_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long stop() waits for the execution thread",
    )

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}."
            f"{self.name}"
        )
        self._thread: threading.Thread | None = None
        self._stop_requested = False
        self._shutdown_done = False

    @abstractmethod
    def get_time(self) -> int:
        """Get current time in nanoseconds."""

    @abstractmethod
    def _execution_loop(self) -> None:
        """Main execution loop run in separate thread."""

    def start(self) -> None:
        """Start autonomous execution in background thread.

        Initializes the main process's timing state and starts a thread
        that executes the process according to its timing preferences.

        Raises:
            RuntimeError: If runner is already started

        """
        if self._thread and self._thread.is_alive():
            raise RuntimeError(f"Runner {self.name} already started")

        self._logger.info(f"Starting runner {self.name}")

        self.main_process.initialize()

        self._stop_requested = False
        self._shutdown_done = False
        self._thread = threading.Thread(
            target=self._execution_loop,
            name=f"Runner-{self.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop autonomous execution gracefully.

        Signals the execution thread to stop, waits for it to finish
        and then lets the main process shut down.
        """
        self._stop_requested = True

        if self._thread:
            self._logger.info(f"Stopping runner {self.name}")
            self._thread.join(timeout=self.join_timeout_seconds)
            if self._thread.is_alive():
                self._logger.warning(
                    f"Runner {self.name} thread did not stop within timeout"
                )
            self._thread = None

        self._shutdown_process()

    def is_running(self) -> bool:
        """Check if the execution thread is active."""
        return self._thread is not None and self._thread.is_alive()

    def _shutdown_process(self) -> None:
        """Call the main process's shutdown() once, on our clock."""
        if self._shutdown_done:
            return
        self._shutdown_done = True

        TimeSource.set_current(self)
        try:
            self.main_process.shutdown()
        finally:
            TimeSource.clear_current()

    def _execute_process_once(self) -> None:
        """Execute the main process once."""
        self._logger.debug(f"Executing {self.main_process.name}")
        self.main_process.execute()


class StandardRunner(Runner):
    """Runner that respects real time.

    StandardRunner executes the main process on its interval, sleeping
    between executions. This is the production runner.
    """

    error_backoff_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Pause after an execution raised, to avoid a tight "
        "error loop",
    )

    def get_time(self) -> int:
        """Get current monotonic time in nanoseconds."""
        return time.monotonic_ns()

    def _execution_loop(self) -> None:
        """Main execution loop that respects process timing."""
        TimeSource.set_current(self)

        try:
            while not self._stop_requested:
                try:
                    next_time = self.main_process.get_next_execution_time()
                    current_time = self.get_time()

                    if next_time <= current_time:
                        self._execute_process_once()
                    else:
                        # Sleep in short slices so stop() is honoured
                        # promptly even with long intervals
                        sleep_duration = min(
                            (next_time - current_time) / NS_PER_SECOND,
                            0.25,
                        )
                        time.sleep(sleep_duration)

                except Exception as e:
                    # Log error but continue execution
                    self._logger.error(
                        f"Error in execution loop: {e}", exc_info=True
                    )
                    time.sleep(self.error_backoff_seconds)

        finally:
            TimeSource.clear_current()
            self._logger.info(f"Runner {self.name} execution loop ended")


class FastRunner(Runner):
    """Test runner that accelerates time for rapid testing.

    FastRunner executes processes as quickly as possible on a virtual
    clock. Hundreds of simulated hours of compressor cycling run in a
    fraction of a second, deterministically.

    Key characteristics:
    - Maintains internal simulation time starting at zero
    - Advances time instantly to next execution
    - No sleeping between executions
    """

    max_duration_ns: int = Field(
        default=1000 * 3600 * NS_PER_SECOND,
        description="Maximum simulation duration to prevent infinite loops",
    )

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        self._simulation_time = 0
        self._start_time = 0
        self._initialized = False

    def get_time(self) -> int:
        """Get current simulation time in nanoseconds."""
        return self._simulation_time

    def _advance_time_to(self, target_time: int) -> None:
        """Advance simulation time to target, never backwards."""
        if target_time > self._simulation_time:
            self._simulation_time = target_time

    def _should_continue_execution(self) -> bool:
        """Check stop flag and safety limits."""
        if self._stop_requested:
            return False

        if self._simulation_time - self._start_time > self.max_duration_ns:
            self._logger.warning("FastRunner exceeded max duration, stopping")
            return False

        return True

    def _execute_one_cycle(self) -> None:
        """Execute one cycle if process is ready."""
        next_time = self.main_process.get_next_execution_time()

        if next_time <= self._simulation_time:
            self._execute_process_once()
        else:
            self._advance_time_to(next_time)

    def run_for_duration(self, duration_seconds: float) -> None:
        """Run simulation for specified duration without delays.

        The first call starts the virtual clock at zero and initializes
        the main process. Later calls continue from where the previous
        one stopped, so a scenario can be driven in stages.

        Args:
            duration_seconds: Simulation duration in seconds

        """
        TimeSource.set_current(self)

        if not self._initialized:
            self._simulation_time = 0
            self._start_time = 0
            self._shutdown_done = False
            self.main_process.initialize()
            self._initialized = True

        try:
            end_time = self._simulation_time + seconds_to_ns(duration_seconds)

            while (
                self._simulation_time < end_time
                and self._should_continue_execution()
            ):
                self._execute_one_cycle()

        finally:
            TimeSource.clear_current()

    def _execution_loop(self) -> None:
        """FastRunner uses run_for_duration instead of threading."""
        raise NotImplementedError(
            "FastRunner uses run_for_duration() instead of start()"
        )

    def start(self) -> None:
        """FastRunner doesn't support threaded execution."""
        raise NotImplementedError(
            "FastRunner uses run_for_duration() instead of start()"
        )
