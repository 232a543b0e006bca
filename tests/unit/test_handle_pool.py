"""Unit tests for the handle pool."""

import asyncio

import pytest

from src.adapters.simulated import SimulatedApplication, SimulatedHandle
from src.models.errors import AcquisitionTimeoutError, HandleConnectionError, PoolClosedError
from src.pool.handle_pool import HandlePool


class TestAcquireRelease:

    @pytest.mark.asyncio
    async def test_creates_lazily(self):
        app = SimulatedApplication()
        pool = HandlePool(app.connect, max_size=3)

        assert pool.stats().total == 0
        handle = await pool.acquire()

        assert len(app.handles) == 1
        assert pool.stats().in_use == 1
        pool.release(handle)
        assert pool.stats().available == 1

    @pytest.mark.asyncio
    async def test_reuses_released_handle(self):
        app = SimulatedApplication()
        pool = HandlePool(app.connect, max_size=3)

        first = await pool.acquire()
        pool.release(first)
        second = await pool.acquire()

        assert second is first
        assert len(app.handles) == 1
        assert pool.entries()[0].use_count == 2

    @pytest.mark.asyncio
    async def test_release_of_idle_handle_is_noop(self):
        app = SimulatedApplication()
        pool = HandlePool(app.connect, max_size=1)

        handle = await pool.acquire()
        pool.release(handle)
        pool.release(handle)
        pool.release(SimulatedHandle("stranger"))

        stats = pool.stats()
        assert stats.available == 1
        assert stats.in_use == 0

    @pytest.mark.asyncio
    async def test_logs_outside_the_pool_lock(self):
        class LockCheckingLogger:
            def __init__(self):
                self.events = []

            def pool_acquire(self, handle, in_use, available, created):
                assert not pool._lock.locked()
                self.events.append(("acquire", handle, in_use, available, created))

            def pool_release(self, handle, in_use, available):
                assert not pool._lock.locked()
                self.events.append(("release", handle, in_use, available))

        logger = LockCheckingLogger()
        pool = HandlePool(SimulatedApplication().connect, max_size=2, logger=logger)

        first = await pool.acquire()
        pool.release(first)
        await pool.acquire()

        assert logger.events == [
            ("acquire", "sim-1", 1, 0, True),
            ("release", "sim-1", 0, 1),
            ("acquire", "sim-1", 1, 0, False),
        ]

    @pytest.mark.asyncio
    async def test_async_factory(self):
        async def connect():
            return SimulatedHandle("async-1")

        pool = HandlePool(connect, max_size=1)
        handle = await pool.acquire()

        assert handle.handle_id == "async-1"

    @pytest.mark.asyncio
    async def test_lease_releases_on_error(self):
        app = SimulatedApplication()
        pool = HandlePool(app.connect, max_size=1)

        with pytest.raises(RuntimeError):
            async with pool.lease():
                raise RuntimeError("boom")

        assert pool.stats().available == 1


class TestCapacity:

    @pytest.mark.asyncio
    async def test_never_exceeds_max_size_under_concurrency(self):
        app = SimulatedApplication()
        pool = HandlePool(app.connect, max_size=3, acquire_timeout=5.0, poll_interval=0.001)
        peak = 0
        active = 0

        async def worker():
            nonlocal peak, active
            async with pool.lease():
                active += 1
                peak = max(peak, active)
                stats = pool.stats()
                assert stats.total + stats.pending <= 3
                await asyncio.sleep(0.005)
                active -= 1

        await asyncio.gather(*[worker() for _ in range(20)])

        assert peak <= 3
        assert len(app.handles) <= 3
        assert pool.stats().in_use == 0

    @pytest.mark.asyncio
    async def test_times_out_when_exhausted(self):
        app = SimulatedApplication()
        pool = HandlePool(app.connect, max_size=1, acquire_timeout=0.05, poll_interval=0.01)

        await pool.acquire()
        with pytest.raises(AcquisitionTimeoutError):
            await pool.acquire()

        assert pool.stats().waiting == 0

    @pytest.mark.asyncio
    async def test_waiter_gets_released_handle(self):
        app = SimulatedApplication()
        pool = HandlePool(app.connect, max_size=1, acquire_timeout=1.0, poll_interval=0.005)

        held = await pool.acquire()

        async def release_later():
            await asyncio.sleep(0.02)
            pool.release(held)

        waiter, _ = await asyncio.gather(pool.acquire(), release_later())
        assert waiter is held

    @pytest.mark.asyncio
    async def test_discard_frees_slot(self):
        app = SimulatedApplication()
        pool = HandlePool(app.connect, max_size=1, acquire_timeout=0.05, poll_interval=0.01)

        handle = await pool.acquire()
        pool.discard(handle)
        replacement = await pool.acquire()

        assert replacement is not handle
        assert handle.connected is False
        assert pool.stats().total == 1


class TestFailures:

    @pytest.mark.asyncio
    async def test_factory_failure_frees_reserved_slot(self):
        app = SimulatedApplication()
        app.connect_failures = 1
        pool = HandlePool(app.connect, max_size=1)

        with pytest.raises(HandleConnectionError) as exc_info:
            await pool.acquire()

        assert exc_info.value.transient is True
        assert pool.stats().pending == 0
        assert (await pool.acquire()).handle_id == "sim-1"

    @pytest.mark.asyncio
    async def test_destroy_disconnects_and_closes(self):
        app = SimulatedApplication()
        pool = HandlePool(app.connect, max_size=2)

        first = await pool.acquire()
        second = await pool.acquire()
        pool.release(first)
        pool.destroy()

        assert first.connected is False
        assert second.connected is False
        assert pool.stats().total == 0
        assert pool.closed is True
        with pytest.raises(PoolClosedError):
            await pool.acquire()

    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            HandlePool(SimulatedApplication().connect, max_size=0)
