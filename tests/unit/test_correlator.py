"""
Unit tests for RequestCorrelator

Tests cover:
- Id allocation
- Exactly-once completion of slots
- Timeout timers
"""

import asyncio
import time

import pytest

from mcphost.connection.correlator import RequestCorrelator
from mcphost.connection.errors import RequestTimeoutError


class TestAllocation:
    """Test request id allocation."""

    async def test_ids_strictly_increase(self):
        correlator = RequestCorrelator()
        loop = asyncio.get_running_loop()
        ids = [correlator.add(loop.create_future(), "m") for _ in range(5)]
        assert ids == [1, 2, 3, 4, 5]
        assert correlator.pending_ids() == ids
        assert len(correlator) == 5

    async def test_custom_first_id(self):
        correlator = RequestCorrelator(first_id=100)
        assert correlator.add(asyncio.get_running_loop().create_future()) == 100


class TestCompletion:
    """Test resolving and failing slots."""

    async def test_resolve_delivers_result_once(self):
        correlator = RequestCorrelator()
        future = asyncio.get_running_loop().create_future()
        request_id = correlator.add(future, "ping")

        assert correlator.resolve(request_id, "ok") is True
        assert await future == "ok"
        assert request_id not in correlator
        assert correlator.resolve(request_id, "again") is False
        assert correlator.fail(request_id, RuntimeError()) is False

    async def test_fail_sets_exception(self):
        correlator = RequestCorrelator()
        future = asyncio.get_running_loop().create_future()
        request_id = correlator.add(future)
        correlator.fail(request_id, RuntimeError("boom"))
        with pytest.raises(RuntimeError, match="boom"):
            await future

    async def test_unknown_id_is_ignored(self):
        correlator = RequestCorrelator()
        assert correlator.resolve(42, None) is False

    async def test_remove_all_drains(self):
        correlator = RequestCorrelator()
        loop = asyncio.get_running_loop()
        for _ in range(3):
            correlator.add(loop.create_future())
        drained = correlator.remove_all()
        assert sorted(drained) == [1, 2, 3]
        assert len(correlator) == 0


class TestTimeouts:
    """Test per-request timeout timers."""

    async def test_timeout_fails_request(self):
        correlator = RequestCorrelator()
        future = asyncio.get_running_loop().create_future()
        request_id = correlator.add(future, "tools/call")
        correlator.schedule_timeout(request_id, 0.05)

        started = time.monotonic()
        with pytest.raises(RequestTimeoutError):
            await future
        assert time.monotonic() - started < 1.0
        assert request_id not in correlator

    async def test_resolved_request_cancels_timer(self):
        correlator = RequestCorrelator()
        future = asyncio.get_running_loop().create_future()
        request_id = correlator.add(future)
        correlator.schedule_timeout(request_id, 0.05)
        correlator.resolve(request_id, 1)
        await asyncio.sleep(0.1)
        assert future.result() == 1

    async def test_pending_age(self):
        correlator = RequestCorrelator()
        request_id = correlator.add(asyncio.get_running_loop().create_future())
        pending = correlator.remove(request_id)
        assert pending.age >= 0
        assert pending.timer is None
