"""Collapse concurrent identical async calls into one in-flight call."""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import Awaitable, Callable
from typing import Any


class SingleFlight:
    """Share one running call between all callers that use the same key.

    Keys are hashed before being held, so secrets (refresh tokens) can be
    used as keys without keeping them in memory longer than the call.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future[Any]] = {}

    @staticmethod
    def _digest(key: str) -> str:
        return hashlib.sha256(key.encode("utf-8")).hexdigest()

    def pending(self) -> int:
        return len(self._inflight)

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``factory()`` unless a call for ``key`` is already running.

        Every caller receives the same result or exception. Cancelling one
        waiter does not cancel the shared call.
        """
        digest = self._digest(key)
        task = self._inflight.get(digest)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[digest] = task
            task.add_done_callback(lambda t: self._finished(digest, t))
        return await asyncio.shield(task)

    def _finished(self, digest: str, task: asyncio.Future[Any]) -> None:
        self._inflight.pop(digest, None)
        # Mark the exception retrieved even when every waiter was cancelled.
        if not task.cancelled():
            task.exception()
