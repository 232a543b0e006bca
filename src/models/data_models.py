"""Core data models for the CAD request router."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, TypeVar, Union


T = TypeVar("T")


class Strategy(Enum):
    """Execution strategies chosen by the complexity analyzer."""
    DIRECT = "direct"
    HYBRID = "hybrid"
    SCRIPT = "script"


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class ErrorKind(Enum):
    """Failure classification carried by Failure results."""
    VALIDATION = "validation_error"
    CONNECTION = "connection_error"
    CIRCUIT_OPEN = "circuit_open"
    ACQUISITION_TIMEOUT = "acquisition_timeout"
    EXTERNAL_CALL = "external_call_error"
    SCRIPT_GENERATION = "script_generation_error"


def freeze(value: Any) -> Any:
    """Recursively convert lists and dicts into tuples and read-only mappings."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of freeze, producing plain dicts and lists."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class OperationRequest:
    """An operation name plus its named parameters. Immutable once built."""
    operation: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "operation", self.operation.strip().lower())
        object.__setattr__(self, "parameters", freeze(dict(self.parameters)))

    def as_dict(self) -> Dict[str, Any]:
        return thaw(self.parameters)


@dataclass(frozen=True)
class ComplexityReport:
    """Routing decision for a single request."""
    operation: str
    effective_count: int
    strategy: Strategy
    confidence: float
    reason: Optional[str] = None
    features: Tuple[str, ...] = ()
    known: bool = True


@dataclass(frozen=True)
class Simplification:
    """Advisory parameter reduction proposed for a script-bound request."""
    feature: str
    suggestion: str
    saves: int
    resulting_count: int


@dataclass(frozen=True)
class FeatureDescriptor:
    """Feature created inside the external application."""
    name: str
    feature_type: str
    suppressed: bool = False


@dataclass(frozen=True)
class DirectCall:
    """A method name plus its ordered positional arguments."""
    method: str
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class GeneratedScript:
    """Generated script text plus the substituted values, for audit."""
    script_id: str
    family: str
    module: str
    procedure: str
    text: str
    parameters: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class HalfOpenToken:
    """Token held by the single in-flight half-open probe."""
    breaker: str
    timestamp: float


@dataclass(frozen=True)
class NoFallback:
    """A failed direct call is terminal."""


@dataclass(frozen=True)
class FixedFallback:
    """Run this command once if the direct call fails."""
    command: OperationRequest


@dataclass(frozen=True)
class StrategyFallback:
    """Fall back to the generated-script path for the same request."""


Fallback = Union[NoFallback, FixedFallback, StrategyFallback]


@dataclass
class RouteMetadata:
    """Timing and strategy information attached to every result."""
    operation: str
    requested_strategy: Optional[Strategy] = None
    executed_strategy: Optional[Strategy] = None
    fallback_used: bool = False
    attempts: int = 0
    elapsed_ms: float = 0.0
    handle_id: Optional[str] = None
    script_id: Optional[str] = None
    report: Optional[ComplexityReport] = None


@dataclass
class Success(Generic[T]):
    """Successful outcome carrying a typed payload."""
    value: T
    metadata: Optional[RouteMetadata] = None

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass
class Failure:
    """Failed outcome carrying an error classification and optional cause."""
    kind: ErrorKind
    reason: str
    cause: Optional[BaseException] = None
    causes: Tuple[BaseException, ...] = ()
    retryable: bool = False
    strategy: Optional[Strategy] = None
    metadata: Optional[RouteMetadata] = None

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        if self.cause is not None:
            raise self.cause
        raise RuntimeError(self.reason)

    @classmethod
    def from_error(cls, error, metadata: Optional[RouteMetadata] = None) -> "Failure":
        """Build a failure from a BridgeError-like exception."""
        return cls(
            kind=error.kind,
            reason=error.message,
            cause=error,
            causes=tuple(getattr(error, "causes", ())),
            retryable=error.retryable,
            strategy=error.strategy,
            metadata=metadata,
        )


Result = Union[Success[T], Failure]


@dataclass
class PoolEntry:
    """A handle owned by the pool."""
    handle: Any
    created_at: float
    in_use: bool = False
    use_count: int = 0
    last_used: float = 0.0


@dataclass(frozen=True)
class PoolStats:
    """Point-in-time view of the handle pool."""
    max_size: int
    total: int
    available: int
    in_use: int
    pending: int
    waiting: int
    closed: bool


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of a circuit breaker."""
    name: str
    state: CircuitState
    failure_count: int
    last_failure_time: float
    probe_in_flight: bool


@dataclass(frozen=True)
class MetricsSnapshot:
    """Counters and latency collected by the orchestrator."""
    requests: int
    successes: int
    direct_calls: int
    script_calls: int
    fallbacks: int
    failures: int
    retries: int
    average_latency_ms: float


@dataclass
class HealthReport:
    """Aggregate health of the routing layer."""
    healthy: bool
    metrics: MetricsSnapshot
    breakers: List[BreakerSnapshot]
    pool: PoolStats
