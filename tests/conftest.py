"""Pytest configuration and shared fixtures."""

from typing import List

import pytest

from src.adapters.simulated import SimulatedApplication, SimulationProfile
from src.models.config import BridgeConfig
from src.monitoring.logger import StructuredLogger
from src.pool.handle_pool import HandlePool
from src.resilience.circuit_breaker import CircuitBreakerRegistry
from src.resilience.retry_handler import RetryHandler
from src.routing.orchestrator import NON_FAULTS, RoutingOrchestrator
from src.scripting.store import ScriptStore


class FakeClock:
    """Fake clock for testing."""

    def __init__(self, initial_time: float = 0.0):
        self._current_time = initial_time

    def now(self) -> float:
        return self._current_time

    def advance(self, seconds: float) -> None:
        self._current_time += seconds


class RecordingSleeper:
    """Async sleep replacement that records delays instead of waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sleeper():
    return RecordingSleeper()


@pytest.fixture
def quiet_logger():
    """Logger that only emits errors."""
    return StructuredLogger(name="cadbridge.test", level="ERROR")


@pytest.fixture
def sample_config(tmp_path):
    """Provide a sample configuration for testing."""
    return BridgeConfig(
        circuit_breaker_failure_threshold=3,
        circuit_breaker_open_duration=15.0,
        pool_max_size=2,
        pool_acquire_timeout=1.0,
        pool_poll_interval=0.01,
        max_retries=2,
        retry_base_delay=0.01,
        retry_max_delay=0.05,
        call_timeout=5.0,
        script_directory=str(tmp_path / "scripts"),
        log_level="ERROR",
    )


@pytest.fixture
def application():
    return SimulatedApplication(SimulationProfile())


@pytest.fixture
def script_dir(tmp_path):
    return tmp_path / "scripts"


@pytest.fixture
def make_orchestrator(application, script_dir, fake_clock, sleeper, quiet_logger):
    """Build an orchestrator over the simulated application with instant retries."""

    def build(
        app: SimulatedApplication = None,
        pool_size: int = 2,
        threshold: int = 3,
        scope: str = "pool",
        max_retries: int = 2,
        call_timeout: float = 5.0,
        acquire_timeout: float = 1.0,
    ) -> RoutingOrchestrator:
        app = app or application
        pool = HandlePool(
            app.connect,
            max_size=pool_size,
            acquire_timeout=acquire_timeout,
            poll_interval=0.01,
            logger=quiet_logger,
        )
        breakers = CircuitBreakerRegistry(
            failure_threshold=threshold,
            open_duration=15.0,
            clock=fake_clock,
            ignored=NON_FAULTS,
            logger=quiet_logger,
        )
        return RoutingOrchestrator(
            pool=pool,
            store=ScriptStore(script_dir, logger=quiet_logger),
            breakers=breakers,
            retry_handler=RetryHandler(max_retries=max_retries, base_delay=0.1, max_delay=1.0, sleeper=sleeper),
            logger=quiet_logger,
            breaker_scope=scope,
            call_timeout=call_timeout,
        )

    return build
