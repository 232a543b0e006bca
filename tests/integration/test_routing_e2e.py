"""End-to-end routing tests: config -> context -> orchestrator -> simulated application."""

import asyncio

import pytest

from src.adapters.simulated import SimulatedApplication, SimulationProfile
from src.models.data_models import (
    CircuitState,
    ErrorKind,
    NoFallback,
    OperationRequest,
    Strategy,
    StrategyFallback,
)
from src.models.errors import PoolClosedError
from src.routing.context import BridgeContext


class FakeClock:
    """Fake clock for testing."""

    def __init__(self, initial_time: float = 0.0):
        self._current_time = initial_time

    def now(self) -> float:
        return self._current_time

    def advance(self, seconds: float) -> None:
        self._current_time += seconds


pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_mixed_workload(sample_config, quiet_logger):
    """Direct, hybrid and script requests share one pool without interference."""
    app = SimulatedApplication(SimulationProfile(latency=0.005))
    requests = [
        OperationRequest("extrude", {"depth": 25}),
        OperationRequest("extrude", {"depth": 25, "thinFeature": True, "thinThickness": 2}),
        OperationRequest("sweep", {"profileSketch": "Sketch1", "pathSketch": "Sketch2"}),
        OperationRequest("loft", {"profiles": ["Sketch1", "Sketch2"], "guideCurves": ["Sketch3"]}),
        OperationRequest("sketch_line", {"x1": 0, "y1": 0, "x2": 50, "y2": 0}),
        OperationRequest("revolve", {"angle": 360, "axis": "Axis1"}),
    ]

    async with BridgeContext.from_config(sample_config, app.connect, logger=quiet_logger) as context:
        results = await asyncio.gather(*[context.orchestrator.execute(r) for r in requests])
        health = context.orchestrator.health().unwrap()

    assert all(r.ok for r in results), [getattr(r, "reason", None) for r in results]

    executed = [r.metadata.executed_strategy for r in results]
    assert executed == [
        Strategy.DIRECT,
        Strategy.SCRIPT,
        Strategy.SCRIPT,
        Strategy.DIRECT,
        Strategy.DIRECT,
        Strategy.DIRECT,
    ]
    assert results[1].metadata.requested_strategy is Strategy.HYBRID
    assert results[3].metadata.requested_strategy is Strategy.HYBRID

    assert health.metrics.requests == 6
    assert health.metrics.successes == 6
    assert health.pool.total <= sample_config.pool_max_size
    assert all(h.max_concurrency == 1 for h in app.handles)
    assert all(h.connected is False for h in app.handles)

    scripts_dir = sample_config.script_path
    assert list(scripts_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_degraded_application_trips_breaker_then_recovers(sample_config, quiet_logger):
    app = SimulatedApplication(SimulationProfile(fail_direct=True))
    clock = FakeClock()
    request = OperationRequest("extrude", {"depth": 25})

    context = BridgeContext.from_config(sample_config, app.connect, logger=quiet_logger, clock=clock)
    try:
        for _ in range(sample_config.circuit_breaker_failure_threshold):
            result = await context.orchestrator.execute(request)
            assert result.kind is ErrorKind.EXTERNAL_CALL

        calls_before = len(app.all_calls)
        rejected = await context.orchestrator.execute(request)
        assert rejected.kind is ErrorKind.CIRCUIT_OPEN
        assert len(app.all_calls) == calls_before

        app.profile.fail_direct = False
        clock.advance(sample_config.circuit_breaker_open_duration)
        recovered = await context.orchestrator.execute(request)

        assert recovered.ok
        assert context.breakers.get("pool").state is CircuitState.CLOSED
    finally:
        await context.close()


@pytest.mark.asyncio
async def test_hybrid_combined_failure(sample_config, quiet_logger):
    app = SimulatedApplication(SimulationProfile(fail_direct=True, fail_scripts=True))

    async with BridgeContext.from_config(sample_config, app.connect, logger=quiet_logger) as context:
        result = await context.orchestrator.execute(
            OperationRequest("extrude", {"depth": 25, "bothDirections": True, "draft": 2})
        )

    assert not result.ok
    assert result.metadata.requested_strategy is Strategy.HYBRID
    assert result.metadata.fallback_used is True
    assert [c.kind for c in result.causes] == [ErrorKind.EXTERNAL_CALL, ErrorKind.EXTERNAL_CALL]


@pytest.mark.asyncio
async def test_closed_context_rejects_requests(sample_config, quiet_logger):
    app = SimulatedApplication()
    context = BridgeContext.from_config(sample_config, app.connect, logger=quiet_logger)
    await context.close()

    result = await context.orchestrator.execute(
        OperationRequest("extrude", {"depth": 25}), fallback=StrategyFallback()
    )

    assert not result.ok
    assert isinstance(result.cause, PoolClosedError)
    assert result.retryable is False
    assert result.metadata.fallback_used is False
    assert context.orchestrator.health().unwrap().healthy is False


@pytest.mark.asyncio
async def test_handle_scope_isolates_bad_handle(sample_config, quiet_logger):
    config = sample_config.model_copy(update={"circuit_breaker_scope": "handle"})
    app = SimulatedApplication()

    async with BridgeContext.from_config(config, app.connect, logger=quiet_logger) as context:
        result = await context.orchestrator.execute(OperationRequest("extrude", {"depth": 5}), NoFallback())
        names = [s.name for s in context.breakers.snapshots()]

    assert result.ok
    assert names == ["sim-1"]
