"""Explicitly constructed wiring of the routing layer."""

from dataclasses import dataclass
from typing import Optional

from src.adapters.handle import HandleFactory
from src.models.config import BridgeConfig
from src.models.errors import ParameterValidationError, ScriptGenerationError
from src.monitoring.logger import StructuredLogger
from src.pool.handle_pool import HandlePool
from src.resilience.circuit_breaker import CircuitBreakerRegistry, Clock
from src.resilience.retry_handler import RetryHandler
from src.routing.complexity_analyzer import ComplexityAnalyzer
from src.routing.metrics import RoutingMetrics
from src.routing.orchestrator import NON_FAULTS, RoutingOrchestrator
from src.scripting.script_generator import ScriptGenerator
from src.scripting.store import ScriptStore


@dataclass
class BridgeContext:
    """
    Everything a running bridge needs, built once by the entry point.

    Owns the handle pool; call ``close()`` on shutdown to disconnect every
    handle.
    """
    config: BridgeConfig
    logger: StructuredLogger
    pool: HandlePool
    breakers: CircuitBreakerRegistry
    orchestrator: RoutingOrchestrator

    @classmethod
    def from_config(
        cls,
        config: BridgeConfig,
        handle_factory: HandleFactory,
        logger: Optional[StructuredLogger] = None,
        clock: Optional[Clock] = None
    ) -> "BridgeContext":
        """
        Build the routing layer from configuration.

        Args:
            config: Loaded bridge configuration
            handle_factory: Callable opening a new application handle
            logger: Logger to share (built from config if omitted)
            clock: Clock for the circuit breakers (monotonic if omitted)
        """
        logger = logger or StructuredLogger(
            level=config.log_level, structured=config.structured_logging
        )
        pool = HandlePool(
            handle_factory,
            max_size=config.pool_max_size,
            acquire_timeout=config.pool_acquire_timeout,
            poll_interval=config.pool_poll_interval,
            logger=logger,
        )
        breakers = CircuitBreakerRegistry(
            failure_threshold=config.circuit_breaker_failure_threshold,
            open_duration=config.circuit_breaker_open_duration,
            clock=clock,
            ignored=NON_FAULTS + (ParameterValidationError, ScriptGenerationError),
            logger=logger,
        )
        orchestrator = RoutingOrchestrator(
            pool=pool,
            analyzer=ComplexityAnalyzer(config.analyzer),
            generator=ScriptGenerator(module=config.script_module),
            store=ScriptStore(config.script_path, config.script_extension, logger=logger),
            breakers=breakers,
            retry_handler=RetryHandler(
                max_retries=config.max_retries,
                base_delay=config.retry_base_delay,
                max_delay=config.retry_max_delay,
            ),
            metrics=RoutingMetrics(),
            logger=logger,
            breaker_scope=config.circuit_breaker_scope,
            call_timeout=config.call_timeout,
        )
        logger.log(
            "bridge_ready",
            pool_size=config.pool_max_size,
            cb_scope=config.circuit_breaker_scope,
            cb_threshold=config.circuit_breaker_failure_threshold,
        )
        return cls(
            config=config,
            logger=logger,
            pool=pool,
            breakers=breakers,
            orchestrator=orchestrator,
        )

    async def close(self) -> None:
        self.pool.destroy()
        self.logger.log("bridge_closed")

    async def __aenter__(self) -> "BridgeContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
