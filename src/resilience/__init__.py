"""Resilience patterns guarding calls into the external application."""

from .circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from .retry_handler import RetryHandler

__all__ = ["CircuitBreaker", "CircuitBreakerRegistry", "RetryHandler"]
