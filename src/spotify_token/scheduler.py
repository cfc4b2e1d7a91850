"""Background timer that refreshes the token after it expires.

The next fire is armed for 100ms *after* the credential's expiration, not
before it, so the cache is briefly stale right before each scheduled
refresh; demand-driven requests cover that window. A failed scheduled fetch
is retried after ``REFRESH_RETRY_SECONDS``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from .config import REFRESH_LAG_MS, REFRESH_RETRY_SECONDS
from .gate import AcquisitionGate
from .models import AccessCredential, now_ms
from .store import CredentialStore

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Keeps a single pending refresh task, replaced on every arm."""

    def __init__(
        self,
        gate: AcquisitionGate,
        store: CredentialStore,
        fetch: Callable[[], Awaitable[AccessCredential]],
        *,
        clock: Callable[[], int] = now_ms,
        lag_ms: int = REFRESH_LAG_MS,
        retry_seconds: float = REFRESH_RETRY_SECONDS,
    ) -> None:
        self._gate = gate
        self._store = store
        self._fetch = fetch
        self._clock = clock
        self.lag_ms = lag_ms
        self.retry_seconds = retry_seconds
        self._task: asyncio.Task | None = None
        self._next_fire_at: int | None = None
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def next_fire_at(self) -> int | None:
        """Epoch milliseconds of the pending fire, if any."""
        return self._next_fire_at if self.pending else None

    def delay_ms(self, credential: AccessCredential) -> int:
        return max(credential.expiration_timestamp_ms - self._clock() + self.lag_ms, 0)

    def arm(self, credential: AccessCredential) -> None:
        """Replace any pending refresh with one timed off ``credential``."""
        delay = self.delay_ms(credential)
        logger.debug("Next token refresh in %dms", delay)
        self._schedule(delay)

    def stop(self) -> None:
        """Cancel the pending refresh. Arms after this are ignored."""
        self._stopped = True
        self._cancel_pending()
        self._next_fire_at = None

    def _schedule(self, delay_ms: int) -> None:
        if self._stopped:
            logger.debug("Scheduler stopped, not arming refresh")
            return
        self._cancel_pending()
        self._next_fire_at = self._clock() + delay_ms
        self._task = asyncio.create_task(self._fire_after(delay_ms / 1000))

    def _cancel_pending(self) -> None:
        task, self._task = self._task, None
        # A fire re-arms from inside its own task; never cancel that one.
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _fire_after(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
        await self._fire()

    async def _fire(self) -> None:
        try:
            async with self._gate.hold():
                credential = await self._fetch()
                self._store.set(credential)
        except Exception:
            logger.warning(
                "Failed to auto-refresh token — retrying in %.0fs",
                self.retry_seconds,
                exc_info=True,
            )
            self._schedule(int(self.retry_seconds * 1000))
            return
        logger.info("Token auto-refreshed (timer)")
        self.arm(credential)
