from uuid import UUID

import pytest

from keezer.config import Configuration
from keezer.environments.simulation import SimulatedEnvironment, ThermalSimulator
from keezer.logsink import MemoryLogSink


@pytest.fixture
def sample_uuid() -> UUID:
    """Provides a consistent UUID for testing."""
    return UUID("12345678-1234-5678-9abc-123456789abc")


@pytest.fixture
def sample_name() -> str:
    """Provides a consistent name for testing."""
    return "test_entity"


@pytest.fixture
def config() -> Configuration:
    """Configuration with the default timings and simulated probe ids."""
    return Configuration(
        target_temperature=60.0,
        enclosure_probe_id="enclosure",
        secondary_probe_id="secondary",
        log_paths=[],
    )


@pytest.fixture
def environment() -> SimulatedEnvironment:
    """Simulated freezer starting at room temperature."""
    return SimulatedEnvironment(
        name="test_environment",
        simulator=ThermalSimulator(start_temperature=72.0),
    )


@pytest.fixture
def log_sink() -> MemoryLogSink:
    return MemoryLogSink(name="test_log")


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "simulation: marks tests as simulation tests")
    config.addinivalue_line("markers", "hardware: marks tests of hardware adapters (fake sysfs, fake GPIO)")
    config.addinivalue_line("markers", "slow: marks tests as slow running")
