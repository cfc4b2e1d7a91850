"""Single-permit gate for token acquisition.

Only one browser acquisition may run at a time. Both the request path and
the refresh timer must acquire this gate before fetching a token.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable


class AcquisitionGate:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    async def acquire(self) -> Callable[[], None]:
        """Wait for the permit and return a one-shot release callable."""
        await self._lock.acquire()
        released = False

        def release() -> None:
            nonlocal released
            if released:
                raise RuntimeError("AcquisitionGate permit released twice")
            released = True
            self._lock.release()

        return release

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        release = await self.acquire()
        try:
            yield
        finally:
            release()
