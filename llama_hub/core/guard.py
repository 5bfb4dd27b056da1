from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from ..capabilities.interfaces import InferenceEngine


class EngineGuard:
    """Owns the single engine instance behind an asyncio lock.

    The engine keeps one execution context, so at most one generation runs at a
    time; concurrent requests queue on `acquire()`. No timeout: a stuck engine
    call holds the lock until it returns.
    """

    def __init__(self, engine: InferenceEngine) -> None:
        self._engine = engine
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[InferenceEngine]:
        async with self._lock:
            yield self._engine

    async def close(self) -> None:
        close = getattr(self._engine, "close", None)
        if close is not None:
            async with self._lock:
                await close()
