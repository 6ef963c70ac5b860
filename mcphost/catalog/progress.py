"""
Progress tracking for long-running server requests.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from ..connection.types import Progress

logger = logging.getLogger(__name__)


class ProgressTracker:
    """
    Latest progress per token.

    An entry is created by the first notification for its token and
    updated in place afterwards. Once progress reaches total, the entry
    is removed expiry seconds later.
    """

    def __init__(self, expiry: float = 2.0):
        self.expiry = expiry
        self._active: Dict[str, Progress] = {}
        self._expiry_handles: Dict[str, asyncio.TimerHandle] = {}

    def update(self, progress: Progress) -> None:
        handle = self._expiry_handles.pop(progress.token, None)
        if handle is not None:
            handle.cancel()

        current = self._active.get(progress.token)
        if current is None:
            self._active[progress.token] = progress
            current = progress
        else:
            current.progress = progress.progress
            current.total = progress.total
            current.message = progress.message
            current.updated_at = progress.updated_at

        if current.is_complete:
            loop = asyncio.get_running_loop()
            self._expiry_handles[progress.token] = loop.call_later(
                self.expiry, self._expire, progress.token
            )

    def _expire(self, token: str) -> None:
        self._expiry_handles.pop(token, None)
        self._active.pop(token, None)
        logger.debug(f"Progress {token} expired")

    def get(self, token: str) -> Optional[Progress]:
        return self._active.get(token)

    def active(self) -> List[Progress]:
        return list(self._active.values())

    def clear(self) -> None:
        for handle in self._expiry_handles.values():
            handle.cancel()
        self._expiry_handles.clear()
        self._active.clear()
