"""Structured logging for request routing."""

import json
import logging
from typing import Any, Optional


class StructuredLogger:
    """Structured logger with uniform schema."""

    def __init__(self, name: str = "cadbridge", level: str = "INFO", structured: bool = True):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.structured = structured

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        """
        Log structured event.

        Standard keys: event, operation, strategy, path, attempt, elapsed_ms,
                      handle, cb_state, script_id, error
        """
        if not self.logger.isEnabledFor(level):
            return
        log_data = {"event": event, **kwargs}
        if self.structured:
            message = json.dumps(log_data, default=str)
        else:
            message = " ".join(f"{k}={v}" for k, v in log_data.items())
        self.logger.log(level, message)

    def route_decision(self, operation: str, strategy: str, count: int, confidence: float, reason: Optional[str]) -> None:
        self.log("route_decision", operation=operation, strategy=strategy,
                 effective_count=count, confidence=confidence, reason=reason)

    def attempt_start(self, operation: str, path: str, attempt: int) -> None:
        self.log("attempt_start", logging.DEBUG, operation=operation, path=path, attempt=attempt)

    def attempt_success(self, operation: str, path: str, attempt: int, elapsed_ms: float, handle: Optional[str]) -> None:
        self.log("attempt_success", operation=operation, path=path, attempt=attempt,
                 elapsed_ms=round(elapsed_ms, 3), handle=handle)

    def attempt_error(self, operation: str, path: str, attempt: int, error: str, kind: str) -> None:
        self.log("attempt_error", logging.WARNING, operation=operation, path=path,
                 attempt=attempt, error=error, kind=kind)

    def retry_scheduled(self, operation: str, attempt: int, delay: float, error: str) -> None:
        self.log("retry_scheduled", logging.WARNING, operation=operation, attempt=attempt,
                 delay=delay, error=error)

    def fallback(self, operation: str, from_path: str, to_path: str, error: str) -> None:
        self.log("fallback", logging.WARNING, operation=operation, from_path=from_path,
                 to_path=to_path, error=error)

    def circuit_breaker_state(self, breaker: str, state: str, failures: int) -> None:
        self.log("circuit_breaker", logging.WARNING, breaker=breaker, cb_state=state, failures=failures)

    def pool_acquire(self, handle: str, in_use: int, available: int, created: bool) -> None:
        self.log("pool_acquire", logging.DEBUG, handle=handle, in_use=in_use,
                 available=available, created=created)

    def pool_release(self, handle: str, in_use: int, available: int) -> None:
        self.log("pool_release", logging.DEBUG, handle=handle, in_use=in_use, available=available)

    def pool_timeout(self, waited: float, max_size: int) -> None:
        self.log("pool_timeout", logging.WARNING, waited=round(waited, 3), max_size=max_size)

    def script_written(self, script_id: str, family: str, path: str) -> None:
        self.log("script_written", logging.DEBUG, script_id=script_id, family=family, path=path)

    def script_cleanup(self, script_id: str, path: str, removed: bool) -> None:
        self.log("script_cleanup", logging.DEBUG, script_id=script_id, path=path, removed=removed)

    def request_complete(self, operation: str, ok: bool, strategy: Optional[str], elapsed_ms: float, kind: Optional[str] = None) -> None:
        self.log("request_complete", operation=operation, ok=ok, strategy=strategy,
                 elapsed_ms=round(elapsed_ms, 3), kind=kind)
