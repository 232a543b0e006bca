"""Bounded pool of independent external-application handles."""

import asyncio
import inspect
import threading
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from src.adapters.handle import ExternalHandle, HandleFactory
from src.models.data_models import PoolEntry, PoolStats
from src.models.errors import AcquisitionTimeoutError, HandleConnectionError, PoolClosedError


class HandlePool:
    """
    Hands out one handle per concurrent caller.

    Handles are created lazily through the injected factory, never more than
    ``max_size`` at a time. When every handle is busy, ``acquire`` re-checks
    every ``poll_interval`` seconds until one is released or
    ``acquire_timeout`` elapses.

    The pool does no health-based eviction; a handle stays until it is
    discarded or the pool is destroyed.
    """

    def __init__(
        self,
        factory: HandleFactory,
        max_size: int = 3,
        acquire_timeout: float = 30.0,
        poll_interval: float = 0.05,
        now: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Optional[Any] = None,
    ):
        """
        Initialize the pool.

        Args:
            factory: Sync or async callable that opens a new handle
            max_size: Maximum number of handles alive at once
            acquire_timeout: Seconds a caller may wait for a free handle
            poll_interval: Seconds between availability re-checks while waiting
            now: Clock function (default: time.monotonic)
            sleeper: Async sleep function (default: asyncio.sleep)
            logger: Optional structured logger
        """
        if max_size < 1:
            raise ValueError("Pool size must be at least 1")
        self._factory = factory
        self.max_size = max_size
        self.acquire_timeout = acquire_timeout
        self.poll_interval = poll_interval
        self._now = now
        self._sleep = sleeper
        self.logger = logger

        self._entries: Dict[int, PoolEntry] = {}
        self._pending = 0
        self._waiting = 0
        self._closed = False
        self._lock = threading.Lock()

    async def acquire(self) -> ExternalHandle:
        """
        Borrow a handle. The caller must release (or discard) it.

        Raises:
            AcquisitionTimeoutError: If no handle frees up within acquire_timeout
            HandleConnectionError: If a new handle could not be created
            PoolClosedError: If the pool has been destroyed
        """
        started = self._now()
        deadline = started + self.acquire_timeout
        waiting = False

        try:
            while True:
                create = False
                with self._lock:
                    if self._closed:
                        raise PoolClosedError("Handle pool has been destroyed")

                    entry = self._take_available()
                    if entry is not None:
                        in_use, available = self._counts()
                    elif len(self._entries) + self._pending < self.max_size:
                        self._pending += 1
                        create = True
                    elif not waiting:
                        waiting = True
                        self._waiting += 1

                if entry is not None:
                    self._log_acquire(entry.handle, in_use, available, created=False)
                    return entry.handle
                if create:
                    return await self._create()

                remaining = deadline - self._now()
                if remaining <= 0:
                    if self.logger:
                        self.logger.pool_timeout(waited=self._now() - started, max_size=self.max_size)
                    raise AcquisitionTimeoutError(
                        f"No handle available after {self.acquire_timeout:.2f}s "
                        f"(pool size {self.max_size})"
                    )
                await self._sleep(min(self.poll_interval, remaining))
        finally:
            if waiting:
                with self._lock:
                    self._waiting -= 1

    def release(self, handle: ExternalHandle) -> None:
        """Return a borrowed handle. Releasing a handle not in use is a no-op."""
        with self._lock:
            entry = self._entries.get(id(handle))
            if entry is None or not entry.in_use:
                return
            entry.in_use = False
            entry.last_used = self._now()
            in_use, available = self._counts()
        if self.logger:
            self.logger.pool_release(handle=handle.handle_id, in_use=in_use, available=available)

    def discard(self, handle: ExternalHandle) -> None:
        """Drop a handle from the pool and disconnect it, freeing its slot."""
        with self._lock:
            entry = self._entries.pop(id(handle), None)
        if entry is not None:
            self._disconnect(handle)

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[ExternalHandle]:
        """Acquire a handle for the duration of a ``async with`` block."""
        handle = await self.acquire()
        try:
            yield handle
        finally:
            self.release(handle)

    def destroy(self) -> None:
        """Disconnect every managed handle and close the pool."""
        with self._lock:
            self._closed = True
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            self._disconnect(entry.handle)

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def stats(self) -> PoolStats:
        with self._lock:
            in_use, available = self._counts()
            return PoolStats(
                max_size=self.max_size,
                total=len(self._entries),
                available=available,
                in_use=in_use,
                pending=self._pending,
                waiting=self._waiting,
                closed=self._closed,
            )

    def entries(self) -> List[PoolEntry]:
        with self._lock:
            return list(self._entries.values())

    async def _create(self) -> ExternalHandle:
        """Open a new handle for a slot already reserved in ``_pending``."""
        try:
            if inspect.iscoroutinefunction(self._factory):
                handle = await self._factory()
            else:
                loop = asyncio.get_running_loop()
                handle = await loop.run_in_executor(None, self._factory)
        except BaseException as e:
            with self._lock:
                self._pending -= 1
            if isinstance(e, Exception):
                raise HandleConnectionError(f"Failed to open application handle: {e}", cause=e) from e
            raise

        entry = None
        with self._lock:
            self._pending -= 1
            if not self._closed:
                now = self._now()
                entry = PoolEntry(handle=handle, created_at=now, in_use=True, use_count=1, last_used=now)
                self._entries[id(handle)] = entry
                in_use, available = self._counts()

        if entry is not None:
            self._log_acquire(handle, in_use, available, created=True)
            return handle

        self._disconnect(handle)
        raise PoolClosedError("Handle pool was destroyed while a handle was being created")

    def _take_available(self) -> Optional[PoolEntry]:
        for entry in self._entries.values():
            if not entry.in_use:
                entry.in_use = True
                entry.use_count += 1
                entry.last_used = self._now()
                return entry
        return None

    def _counts(self):
        in_use = sum(1 for e in self._entries.values() if e.in_use)
        return in_use, len(self._entries) - in_use

    def _log_acquire(self, handle: ExternalHandle, in_use: int, available: int, created: bool) -> None:
        if self.logger:
            self.logger.pool_acquire(
                handle=handle.handle_id, in_use=in_use, available=available, created=created
            )

    def _disconnect(self, handle: ExternalHandle) -> None:
        try:
            handle.disconnect()
        except Exception as e:
            if self.logger:
                self.logger.log("pool_disconnect_error", handle=handle.handle_id, error=str(e))
