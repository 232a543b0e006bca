"""Error taxonomy for the routing and resilience layer."""

from typing import Optional, Sequence

from src.models.data_models import ErrorKind, Strategy


class BridgeError(Exception):
    """
    Base class for every error raised inside the routing layer.

    Attributes:
        kind: Classification reported in a Failure result
        retryable: Whether the calling layer may sensibly retry the request
        transient: Whether the orchestrator retries it with its own backoff budget
    """

    kind: ErrorKind = ErrorKind.EXTERNAL_CALL
    retryable: bool = False
    transient: bool = False

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        strategy: Optional[Strategy] = None
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.strategy = strategy

    def __str__(self) -> str:
        return self.message


class ParameterValidationError(BridgeError):
    """Malformed or out-of-range parameters, caught before any external call."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, errors: Sequence[str] = (), **kwargs):
        super().__init__(message, **kwargs)
        self.errors = list(errors)


class HandleConnectionError(BridgeError):
    """The external application could not be reached or a handle not established."""

    kind = ErrorKind.CONNECTION
    retryable = True
    transient = True


class PoolClosedError(HandleConnectionError):
    """Acquire attempted on a pool that has been destroyed."""

    retryable = False
    transient = False


class CircuitOpenError(BridgeError):
    """The breaker rejected the call without attempting it."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, message: str, retry_after: float = 0.0, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class AcquisitionTimeoutError(BridgeError):
    """No handle became available within the pool's acquisition timeout."""

    kind = ErrorKind.ACQUISITION_TIMEOUT
    retryable = True


class ExternalCallError(BridgeError):
    """The external application returned a null or failure signal."""

    kind = ErrorKind.EXTERNAL_CALL


class ScriptGenerationError(BridgeError):
    """Internal templating failure. Always a bug, never retried."""

    kind = ErrorKind.SCRIPT_GENERATION


class CombinedFailureError(BridgeError):
    """Both the direct attempt and its script fallback failed."""

    def __init__(self, primary: BridgeError, fallback: BridgeError, **kwargs):
        message = (
            f"direct call failed: {primary.message}; "
            f"script fallback failed: {fallback.message}"
        )
        super().__init__(message, cause=fallback, **kwargs)
        self.primary = primary
        self.fallback = fallback
        self.kind = fallback.kind
        self.retryable = fallback.retryable

    @property
    def causes(self) -> Sequence[BridgeError]:
        return (self.primary, self.fallback)
