"""
Request correlation for outgoing JSON-RPC requests.

The correlator is the only place that knows which outgoing ids are
still waiting for an answer. Every slot is removed exactly once; the
first of response, timeout or cancellation to arrive wins and the
others find an empty slot.
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import RequestTimeoutError


@dataclass
class PendingRequest:
    """An outgoing request waiting for its response."""
    id: int
    method: str
    future: asyncio.Future
    created_at: float = field(default_factory=time.monotonic)
    timer: Optional[asyncio.TimerHandle] = None

    @property
    def age(self) -> float:
        """Seconds since the request was sent."""
        return time.monotonic() - self.created_at


class RequestCorrelator:
    """
    Maps outgoing request ids to the futures awaiting them.

    Ids are allocated from a per-instance counter and are strictly
    increasing. All table access happens under a lock so ids stay unique
    even if requests are created from helper threads.
    """

    def __init__(self, first_id: int = 1):
        self._lock = threading.Lock()
        self._next_id = first_id
        self._pending: Dict[int, PendingRequest] = {}

    def add(self, future: asyncio.Future, method: str = "") -> int:
        """
        Register a future and allocate its id.

        Args:
            future: Future resolved with the result or failed with an error
            method: Method name, kept for diagnostics

        Returns:
            The id to put on the wire
        """
        with self._lock:
            request_id = self._next_id
            self._next_id += 1
            self._pending[request_id] = PendingRequest(request_id, method, future)
        return request_id

    def remove(self, request_id: int) -> Optional[PendingRequest]:
        """Pop a slot. Returns None if it was already resolved."""
        with self._lock:
            pending = self._pending.pop(request_id, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()
        return pending

    def remove_all(self) -> Dict[int, PendingRequest]:
        """Drain the table for teardown. Timers are cancelled."""
        with self._lock:
            drained, self._pending = self._pending, {}
        for pending in drained.values():
            if pending.timer is not None:
                pending.timer.cancel()
        return drained

    def resolve(self, request_id: int, result: Any) -> bool:
        """Complete a request successfully. False if the slot was empty."""
        pending = self.remove(request_id)
        if pending is None:
            return False
        if not pending.future.done():
            pending.future.set_result(result)
        return True

    def fail(self, request_id: int, exc: BaseException) -> bool:
        """Complete a request with an error. False if the slot was empty."""
        pending = self.remove(request_id)
        if pending is None:
            return False
        if not pending.future.done():
            pending.future.set_exception(exc)
        return True

    def schedule_timeout(self, request_id: int, timeout: float,
                         loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """
        Arm an independent timer that fails the request after timeout seconds.

        The timer is cancelled automatically when the slot is removed by
        any other path.
        """
        loop = loop or asyncio.get_running_loop()
        with self._lock:
            pending = self._pending.get(request_id)
            if pending is None:
                return
            method = pending.method
            pending.timer = loop.call_later(
                timeout,
                self.fail,
                request_id,
                RequestTimeoutError(f"Request {request_id} ({method}) timed out after {timeout}s"),
            )

    def pending_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._pending)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._pending

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
