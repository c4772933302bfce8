"""Process base class for timed execution.

A Process is the unit a Runner drives. It owns its timing fields and a
logger; anything else a concrete process remembers between executions
lives in its own runtime attributes, created in initialize().
"""

import logging
from abc import ABC
from typing import Any

from pydantic import ConfigDict, Field

from keezer.base.entity import Entity

NS_PER_SECOND = 1_000_000_000


def seconds_to_ns(seconds: float) -> int:
    """Convert seconds to integer nanoseconds."""
    return int(round(seconds * NS_PER_SECOND))


class Process(Entity, ABC):
    """Base class for computational units executed on a fixed cadence.

    Key characteristics:
    - Template method execution: execute() wraps _execute() and counts
      successful executions
    - Three-method pattern: _import_state() → _think() →
      _export_state()
    - Fixed cadence: the next execution time is computed from the start
      time and execution count, so a slow execution does not shift the
      schedule
    - Pluggable time: get_time() uses the current runner's clock, which
      may be simulated

    Subclasses override the three-method pattern, or _execute() when
    they need a different flow.
    """

    model_config = ConfigDict(extra="allow", frozen=False)

    # Timing configuration
    interval_ns: int = Field(
        default=30 * NS_PER_SECOND,
        gt=0,
        description="Execution interval in nanoseconds",
    )

    # Runtime timing state (mutable during execution)
    start_time: int = Field(
        default=0,
        description="Start time of current timing loop execution "
        "(nanoseconds)",
    )
    execution_count: int = Field(
        default=0,
        description="Number of completed execution cycles",
    )

    def __init__(self, **data: Any) -> None:
        """Initialize process with logging and execution tracking."""
        super().__init__(**data)
        # Create a logger specific to this process instance
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}."
            f"{self.__class__.__name__}."
            f"{self.name}"
        )

    def execute(self) -> None:
        """Execute this process once.

        Template method that calls _execute() and updates the execution
        count only when _execute() returns normally.
        """
        self._execute()
        self.update_execution_count()

    def _execute(self) -> None:
        """Execute this process using the three-method pattern.

        _import_state() → _think() → _export_state()
        """
        self._import_state()
        self._think()
        self._export_state()

    def _import_state(self) -> None:
        """Gather inputs from the outside world.

        Default implementation does nothing.
        """

    def _think(self) -> None:
        """Core computation on the gathered inputs.

        Default implementation does nothing.
        """

    def _export_state(self) -> None:
        """Push results back out to the world.

        Default implementation does nothing.
        """

    def get_time(self) -> int:
        """Get current time in nanoseconds.

        When running under a Runner, returns the runner's time source
        which may be simulated time for testing. Otherwise falls back
        to the monotonic clock.
        """
        # Import here to avoid circular dependency
        from keezer.base.runner import TimeSource

        return TimeSource.now()

    def update_execution_count(self) -> None:
        """Increment execution_count after a successful execution."""
        self.execution_count += 1

    def get_next_execution_time(self) -> int:
        """Calculate when the next execution should occur."""
        return self.start_time + (self.execution_count * self.interval_ns)

    def initialize(self) -> None:
        """Reset timing state before a run begins."""
        self.start_time = self.get_time()
        self.execution_count = 0

    def shutdown(self) -> None:
        """Release resources after the last execution.

        Runners call this exactly once, after their execution loop has
        finished. Default implementation does nothing.
        """
