"""Circuit breaker implementation with explicit state management."""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple, Type, TypeVar, Union

from src.models.data_models import BreakerSnapshot, CircuitState, HalfOpenToken
from src.models.errors import CircuitOpenError


T = TypeVar("T")


class Clock(Protocol):
    """Clock interface for testable time management."""

    def now(self) -> float:
        """Return current time in seconds."""
        ...


class MonotonicClock:
    """Default clock implementation using time.monotonic."""

    def now(self) -> float:
        """Return current monotonic time in seconds."""
        return time.monotonic()


@dataclass
class CircuitBreakerState:
    """Mutable state of one breaker, guarded by the breaker's lock."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float = 0.0
    half_open_token: Optional[HalfOpenToken] = None


class CircuitBreaker:
    """
    Circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Short-circuits calls to a degraded external application:
    - Opens after ``failure_threshold`` consecutive counted failures
    - Rejects every call while open, without invoking it
    - After ``open_duration`` the next call runs as the single probe
    - Closes on a successful probe, reopens (and restarts the timer) on a failed one

    State transitions are serialized by a lock; the protected call itself
    runs outside the lock.
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        open_duration: float = 60.0,
        clock: Optional[Clock] = None,
        ignored: Tuple[Type[BaseException], ...] = (),
        logger: Optional[Any] = None
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Identifier used in errors, logs and snapshots
            failure_threshold: Number of failures before opening circuit
            open_duration: Seconds to wait before attempting a half-open probe
            clock: Clock interface for time management (defaults to MonotonicClock)
            ignored: Exception types that count neither as failure nor success
            logger: Optional structured logger for state transitions
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.open_duration = open_duration
        self.clock = clock or MonotonicClock()
        self.ignored = ignored
        self.logger = logger
        self._circuit = CircuitBreakerState()
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Current state (does not trigger the OPEN -> HALF_OPEN transition)."""
        with self._lock:
            return self._circuit.state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._circuit.failure_count

    def should_allow(self) -> Union[bool, HalfOpenToken]:
        """
        Check if a call should be allowed.

        Returns:
            - True if circuit is CLOSED (allow call)
            - False if circuit is OPEN or a probe is already in flight (reject)
            - HalfOpenToken if this caller is the half-open probe
        """
        with self._lock:
            circuit = self._circuit
            current_time = self.clock.now()

            if circuit.state == CircuitState.CLOSED:
                return True

            if circuit.state == CircuitState.OPEN:
                if current_time - circuit.last_failure_time >= self.open_duration:
                    circuit.state = CircuitState.HALF_OPEN
                    token = HalfOpenToken(breaker=self.name, timestamp=current_time)
                    circuit.half_open_token = token
                    self._log_state(circuit)
                    return token
                return False

            # HALF_OPEN: only one probe at a time
            if circuit.half_open_token is not None:
                return False
            token = HalfOpenToken(breaker=self.name, timestamp=current_time)
            circuit.half_open_token = token
            return token

    def record_success(self, token: Optional[HalfOpenToken] = None) -> None:
        """Record a successful call; a successful probe closes the circuit."""
        with self._lock:
            circuit = self._circuit
            if circuit.state == CircuitState.HALF_OPEN:
                # Only the probe decides; calls admitted while CLOSED finish unheard
                if token is None or token is not circuit.half_open_token:
                    return
                circuit.state = CircuitState.CLOSED
                circuit.failure_count = 0
                circuit.half_open_token = None
                self._log_state(circuit)
                return

            if circuit.state == CircuitState.CLOSED:
                circuit.failure_count = 0

    def record_failure(self, token: Optional[HalfOpenToken] = None) -> None:
        """Record a failed call; may open or reopen the circuit."""
        with self._lock:
            circuit = self._circuit
            current_time = self.clock.now()

            if circuit.state == CircuitState.CLOSED:
                circuit.failure_count += 1
                circuit.last_failure_time = current_time
                if circuit.failure_count >= self.failure_threshold:
                    circuit.state = CircuitState.OPEN
                    self._log_state(circuit)

            elif circuit.state == CircuitState.HALF_OPEN:
                if token is None or token is not circuit.half_open_token:
                    return
                # Failed probe - reopen circuit and restart the timer
                circuit.state = CircuitState.OPEN
                circuit.failure_count = max(circuit.failure_count, self.failure_threshold)
                circuit.last_failure_time = current_time
                circuit.half_open_token = None
                self._log_state(circuit)

            else:
                circuit.last_failure_time = current_time

    def release_probe(self, token: HalfOpenToken) -> None:
        """Give up a probe slot without deciding the circuit's fate."""
        with self._lock:
            if self._circuit.half_open_token is token:
                self._circuit.half_open_token = None

    async def protect(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Execute ``operation`` under the breaker's state machine.

        Args:
            operation: Zero-argument callable returning an awaitable

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: If the circuit rejected the call (operation not invoked)
            Exception: Whatever the operation raised
        """
        permit = self.should_allow()
        if permit is False:
            raise CircuitOpenError(
                f"Circuit breaker '{self.name}' is open",
                retry_after=self.retry_after(),
            )
        token = permit if isinstance(permit, HalfOpenToken) else None

        try:
            result = await operation()
        except asyncio.CancelledError:
            if token is not None:
                self.record_failure(token)
            raise
        except self.ignored:
            if token is not None:
                self.release_probe(token)
            raise
        except Exception:
            self.record_failure(token)
            raise

        self.record_success(token)
        return result

    def retry_after(self) -> float:
        """Seconds until the next probe would be admitted (0 if not open)."""
        with self._lock:
            if self._circuit.state != CircuitState.OPEN:
                return 0.0
            elapsed = self.clock.now() - self._circuit.last_failure_time
            return max(0.0, self.open_duration - elapsed)

    def snapshot(self) -> BreakerSnapshot:
        with self._lock:
            return BreakerSnapshot(
                name=self.name,
                state=self._circuit.state,
                failure_count=self._circuit.failure_count,
                last_failure_time=self._circuit.last_failure_time,
                probe_in_flight=self._circuit.half_open_token is not None,
            )

    def reset(self) -> None:
        """Reset circuit breaker (useful for testing and manual recovery)."""
        with self._lock:
            self._circuit = CircuitBreakerState()

    def _log_state(self, circuit: CircuitBreakerState) -> None:
        if self.logger:
            self.logger.circuit_breaker_state(
                breaker=self.name,
                state=circuit.state.value,
                failures=circuit.failure_count,
            )


class CircuitBreakerRegistry:
    """
    One breaker per key, created on first use.

    Used to give every pooled handle its own breaker; a single key gives one
    breaker for the whole pool.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        open_duration: float = 60.0,
        clock: Optional[Clock] = None,
        ignored: Tuple[Type[BaseException], ...] = (),
        logger: Optional[Any] = None
    ):
        self.failure_threshold = failure_threshold
        self.open_duration = open_duration
        self.clock = clock or MonotonicClock()
        self.ignored = ignored
        self.logger = logger
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CircuitBreaker:
        """Get or create the breaker for ``key``."""
        with self._lock:
            breaker = self._breakers.get(key)
            if breaker is None:
                breaker = CircuitBreaker(
                    name=key,
                    failure_threshold=self.failure_threshold,
                    open_duration=self.open_duration,
                    clock=self.clock,
                    ignored=self.ignored,
                    logger=self.logger,
                )
                self._breakers[key] = breaker
            return breaker

    def remove(self, key: str) -> None:
        with self._lock:
            self._breakers.pop(key, None)

    def snapshots(self) -> List[BreakerSnapshot]:
        with self._lock:
            breakers = list(self._breakers.values())
        return [b.snapshot() for b in breakers]

    def reset(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()
