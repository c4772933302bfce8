"""Exception types raised by keezer components."""


class KeezerError(Exception):
    """Base class for all keezer errors."""


class ConfigurationError(KeezerError):
    """Configuration is missing or unusable.

    Always fatal: raised before the control loop starts.
    """


class ProbeUnavailableError(KeezerError):
    """A temperature probe could not be read."""

    def __init__(self, probe_id: str, message: str) -> None:
        super().__init__(f"Probe {probe_id}: {message}")
        self.probe_id = probe_id


class ActuatorFailureError(KeezerError):
    """The power output could not be set."""
