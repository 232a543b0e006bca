"""Routing orchestrator: analyze, acquire, attempt, fall back, report."""

import asyncio
import time
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional

from src.adapters.handle import ExternalHandle
from src.models.data_models import (
    CircuitState,
    DirectCall,
    ErrorKind,
    Failure,
    Fallback,
    FixedFallback,
    GeneratedScript,
    HealthReport,
    NoFallback,
    OperationRequest,
    Result,
    RouteMetadata,
    Strategy,
    StrategyFallback,
    Success,
)
from src.models.errors import (
    AcquisitionTimeoutError,
    BridgeError,
    CircuitOpenError,
    CombinedFailureError,
    ExternalCallError,
    HandleConnectionError,
    PoolClosedError,
)
from src.models.operations import OperationParameters, validate_parameters
from src.monitoring.logger import StructuredLogger
from src.pool.handle_pool import HandlePool
from src.resilience.circuit_breaker import CircuitBreakerRegistry
from src.resilience.retry_handler import RetryHandler
from src.routing.complexity_analyzer import ComplexityAnalyzer
from src.routing.direct_calls import build_direct_calls, script_target
from src.routing.metrics import RoutingMetrics
from src.scripting.script_generator import ScriptGenerator
from src.scripting.store import ScriptStore


POOL_BREAKER = "pool"

# Failures that say nothing about the application's health
NON_FAULTS = (AcquisitionTimeoutError, PoolClosedError)


class RoutingOrchestrator:
    """
    Executes operation requests against pooled application handles.

    Pipeline per request:
    - Validate parameters (nothing malformed reaches the application)
    - Analyze complexity and pick a strategy
    - Attempt the strategy under the circuit breaker, retrying transient failures
    - Fall back to a script where the strategy or the caller allows it
    - Convert the outcome into a Result

    No exception escapes ``execute`` or ``health``.
    """

    def __init__(
        self,
        pool: HandlePool,
        analyzer: Optional[ComplexityAnalyzer] = None,
        generator: Optional[ScriptGenerator] = None,
        store: Optional[ScriptStore] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        retry_handler: Optional[RetryHandler] = None,
        metrics: Optional[RoutingMetrics] = None,
        logger: Optional[StructuredLogger] = None,
        breaker_scope: str = "pool",
        call_timeout: Optional[float] = 60.0,
    ):
        """
        Initialize orchestrator.

        Args:
            pool: Pool handing out application handles
            analyzer: Complexity analyzer deciding the strategy
            generator: Script generator for the script path
            store: Where generated scripts are written while they run
            breakers: Breaker registry; keyed by handle id or a single pool-wide key
            retry_handler: Retry policy for transient failures
            metrics: Routing counters
            logger: Structured logger
            breaker_scope: "pool" for one breaker around acquire+call, "handle" for one per handle
            call_timeout: Default seconds to wait for one external call (None waits forever)
        """
        self.logger = logger or StructuredLogger()
        self.pool = pool
        self.analyzer = analyzer or ComplexityAnalyzer()
        self.generator = generator or ScriptGenerator()
        self.store = store or ScriptStore(logger=self.logger)
        self.breakers = breakers or CircuitBreakerRegistry(ignored=NON_FAULTS, logger=self.logger)
        self.retry_handler = retry_handler or RetryHandler()
        self.metrics = metrics or RoutingMetrics()
        self.breaker_scope = breaker_scope
        self.call_timeout = call_timeout

    async def execute(
        self,
        request: OperationRequest,
        fallback: Fallback = NoFallback(),
        timeout: Optional[float] = None
    ) -> Result:
        """
        Route and execute one operation request.

        Args:
            request: Operation name and parameters
            fallback: What to do if a direct-strategy call fails
            timeout: Per-call wait limit overriding the configured call_timeout

        Returns:
            Success with the operation's payload, or Failure with a classified
            reason; both carry RouteMetadata
        """
        started = time.perf_counter()
        metadata = RouteMetadata(operation=request.operation)
        self.metrics.record_request()

        try:
            value = await self._route(request, fallback, timeout, metadata)
            result: Result = Success(value=value, metadata=metadata)
        except BridgeError as e:
            result = Failure.from_error(e, metadata)
        except Exception as e:
            error = ExternalCallError(f"Unexpected error during {request.operation}: {e}", cause=e)
            result = Failure.from_error(error, metadata)

        metadata.elapsed_ms = (time.perf_counter() - started) * 1000
        self.metrics.record_outcome(result.ok, metadata.elapsed_ms)
        self.logger.request_complete(
            operation=request.operation,
            ok=result.ok,
            strategy=metadata.executed_strategy.value if metadata.executed_strategy else None,
            elapsed_ms=metadata.elapsed_ms,
            kind=None if result.ok else result.kind.value,
        )
        return result

    def health(self) -> Result:
        """Snapshot metrics, breakers and pool."""
        try:
            breakers = self.breakers.snapshots()
            pool = self.pool.stats()
            healthy = not pool.closed and all(b.state is not CircuitState.OPEN for b in breakers)
            return Success(value=HealthReport(
                healthy=healthy,
                metrics=self.metrics.snapshot(),
                breakers=breakers,
                pool=pool,
            ))
        except Exception as e:
            return Failure(kind=ErrorKind.EXTERNAL_CALL, reason=f"Health check failed: {e}", cause=e)

    async def _route(
        self,
        request: OperationRequest,
        fallback: Fallback,
        timeout: Optional[float],
        metadata: RouteMetadata
    ) -> Any:
        family = request.operation
        parameters = request.as_dict()
        model = validate_parameters(family, parameters)

        report = self.analyzer.analyze(family, parameters)
        metadata.report = report
        metadata.requested_strategy = report.strategy
        self.logger.route_decision(
            operation=family,
            strategy=report.strategy.value,
            count=report.effective_count,
            confidence=report.confidence,
            reason=report.reason,
        )

        strategy = report.strategy
        if strategy is Strategy.DIRECT:
            return await self._run_direct(family, model, parameters, fallback, timeout, metadata)
        if strategy is Strategy.HYBRID:
            return await self._run_hybrid(family, model, parameters, timeout, metadata)
        if strategy is Strategy.SCRIPT:
            return await self._attempt(Strategy.SCRIPT, family, model, parameters, timeout, metadata)
        raise ValueError(f"Unhandled strategy: {strategy}")

    async def _run_direct(
        self,
        family: str,
        model: Optional[OperationParameters],
        parameters: Mapping[str, Any],
        fallback: Fallback,
        timeout: Optional[float],
        metadata: RouteMetadata
    ) -> Any:
        try:
            return await self._attempt(Strategy.DIRECT, family, model, parameters, timeout, metadata)
        except (CircuitOpenError, AcquisitionTimeoutError, PoolClosedError):
            raise
        except BridgeError as primary:
            if isinstance(fallback, NoFallback):
                raise
            self._note_fallback(family, primary, metadata)
            try:
                if isinstance(fallback, StrategyFallback):
                    return await self._attempt(Strategy.SCRIPT, family, model, parameters, timeout, metadata)
                if isinstance(fallback, FixedFallback):
                    return await self._run_fixed(fallback.command, timeout, metadata)
                raise ValueError(f"Unhandled fallback policy: {fallback!r}")
            except BridgeError as secondary:
                raise CombinedFailureError(primary, secondary, strategy=secondary.strategy) from secondary

    async def _run_hybrid(
        self,
        family: str,
        model: Optional[OperationParameters],
        parameters: Mapping[str, Any],
        timeout: Optional[float],
        metadata: RouteMetadata
    ) -> Any:
        try:
            return await self._attempt(Strategy.DIRECT, family, model, parameters, timeout, metadata)
        except BridgeError as primary:
            self._note_fallback(family, primary, metadata)
            try:
                return await self._attempt(Strategy.SCRIPT, family, model, parameters, timeout, metadata)
            except BridgeError as secondary:
                raise CombinedFailureError(primary, secondary, strategy=Strategy.SCRIPT) from secondary

    async def _run_fixed(self, command: OperationRequest, timeout: Optional[float], metadata: RouteMetadata) -> Any:
        """Run a caller-supplied fallback command once, on its own analyzed path."""
        parameters = command.as_dict()
        model = validate_parameters(command.operation, parameters)
        report = self.analyzer.analyze(command.operation, parameters)
        path = Strategy.SCRIPT if report.strategy is Strategy.SCRIPT else Strategy.DIRECT
        return await self._attempt(
            path, command.operation, model, parameters, timeout, metadata, retry=False
        )

    async def _attempt(
        self,
        path: Strategy,
        family: str,
        model: Optional[OperationParameters],
        parameters: Mapping[str, Any],
        timeout: Optional[float],
        metadata: RouteMetadata,
        retry: bool = True
    ) -> Any:
        """Run one strategy path, with retries for transient failures."""
        try:
            if path is Strategy.SCRIPT:
                script = self._generate(family, model, parameters)
                metadata.script_id = script.script_id
                with self.store.materialize(script) as script_path:
                    work = self._script_work(script, script_path)
                    return await self._with_retries(path, family, work, timeout, metadata, retry)

            calls = build_direct_calls(family, model, parameters)
            work = self._direct_work(calls)
            return await self._with_retries(path, family, work, timeout, metadata, retry)
        except BridgeError as e:
            if e.strategy is None:
                e.strategy = path
            raise

    async def _with_retries(
        self,
        path: Strategy,
        family: str,
        work: Callable[[ExternalHandle], Any],
        timeout: Optional[float],
        metadata: RouteMetadata,
        retry: bool
    ) -> Any:
        def on_retry(attempt: int, delay: float, error: BaseException) -> None:
            self.metrics.record_retry()
            self.logger.retry_scheduled(operation=family, attempt=attempt, delay=delay, error=str(error))

        if not retry:
            return await self._attempt_once(path, family, work, timeout, metadata)
        return await self.retry_handler.execute(
            self._attempt_once, path, family, work, timeout, metadata, on_retry=on_retry
        )

    async def _attempt_once(
        self,
        path: Strategy,
        family: str,
        work: Callable[[ExternalHandle], Any],
        timeout: Optional[float],
        metadata: RouteMetadata
    ) -> Any:
        metadata.attempts += 1
        metadata.executed_strategy = path
        attempt = metadata.attempts
        started = time.perf_counter()
        self.metrics.record_attempt(path)
        self.logger.attempt_start(operation=family, path=path.value, attempt=attempt)

        try:
            if self.breaker_scope == "handle":
                result = await self._per_handle(work, timeout, metadata)
            else:
                breaker = self.breakers.get(POOL_BREAKER)
                result = await breaker.protect(lambda: self._leased(work, timeout, metadata))
        except BridgeError as e:
            self.logger.attempt_error(
                operation=family, path=path.value, attempt=attempt, error=e.message, kind=e.kind.value
            )
            raise

        self.logger.attempt_success(
            operation=family,
            path=path.value,
            attempt=attempt,
            elapsed_ms=(time.perf_counter() - started) * 1000,
            handle=metadata.handle_id,
        )
        return result

    async def _leased(self, work: Callable[[ExternalHandle], Any], timeout: Optional[float], metadata: RouteMetadata) -> Any:
        async with self.pool.lease() as handle:
            return await self._invoke(handle, work, timeout, metadata)

    async def _per_handle(self, work: Callable[[ExternalHandle], Any], timeout: Optional[float], metadata: RouteMetadata) -> Any:
        async with self.pool.lease() as handle:
            breaker = self.breakers.get(handle.handle_id)
            return await breaker.protect(lambda: self._invoke(handle, work, timeout, metadata))

    async def _invoke(
        self,
        handle: ExternalHandle,
        work: Callable[[ExternalHandle], Any],
        timeout: Optional[float],
        metadata: RouteMetadata
    ) -> Any:
        """
        Run blocking handle work in the default executor.

        A timeout stops waiting but cannot stop the call, so the handle is
        discarded rather than returned to the pool.
        """
        metadata.handle_id = handle.handle_id
        limit = timeout if timeout is not None else self.call_timeout
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, work, handle)

        try:
            if limit is None:
                return await future
            return await asyncio.wait_for(future, timeout=limit)
        except asyncio.TimeoutError as e:
            self._discard(handle)
            raise ExternalCallError(
                f"{handle.handle_id} did not respond within {limit:.2f}s", cause=e
            ) from e
        except BridgeError:
            raise
        except OSError as e:
            self._discard(handle)
            raise HandleConnectionError(f"{handle.handle_id}: {e}", cause=e) from e
        except Exception as e:
            raise ExternalCallError(f"{handle.handle_id} raised {type(e).__name__}: {e}", cause=e) from e

    def _discard(self, handle: ExternalHandle) -> None:
        self.pool.discard(handle)
        if self.breaker_scope == "handle":
            self.breakers.remove(handle.handle_id)

    def _generate(
        self,
        family: str,
        model: Optional[OperationParameters],
        parameters: Mapping[str, Any]
    ) -> GeneratedScript:
        if self.generator.has_template(family):
            return self.generator.generate(family, model)
        target = script_target(family, model, parameters)
        return self.generator.generate_generic(target.method, target.args, family=family)

    def _direct_work(self, calls: List[DirectCall]) -> Callable[[ExternalHandle], Any]:
        def work(handle: ExternalHandle) -> Any:
            result = None
            for call in calls:
                result = handle.call(call.method, call.args)
                if result is None or result is False:
                    raise ExternalCallError(
                        f"{call.method} returned no result", strategy=Strategy.DIRECT
                    )
            return result
        return work

    def _script_work(self, script: GeneratedScript, path: Path) -> Callable[[ExternalHandle], Any]:
        creates_feature = self.generator.has_template(script.family)

        def work(handle: ExternalHandle) -> Any:
            if not handle.run_script(str(path), script.module, script.procedure):
                raise ExternalCallError(
                    f"Script {script.module}.{script.procedure} failed", strategy=Strategy.SCRIPT
                )
            if not creates_feature:
                return True
            feature = handle.last_feature()
            if feature is None:
                raise ExternalCallError(
                    f"Script {script.procedure} ran but created no feature", strategy=Strategy.SCRIPT
                )
            return feature
        return work

    def _note_fallback(self, family: str, error: BridgeError, metadata: RouteMetadata) -> None:
        metadata.fallback_used = True
        self.metrics.record_fallback()
        self.logger.fallback(
            operation=family,
            from_path=Strategy.DIRECT.value,
            to_path=Strategy.SCRIPT.value,
            error=error.message,
        )
