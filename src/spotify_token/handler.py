"""Serves the cached token and refreshes it through the gate when needed."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Protocol

from .browser import BrowserAutomationClient
from .gate import AcquisitionGate
from .models import AccessCredential, now_ms
from .scheduler import RefreshScheduler
from .store import CredentialStore

logger = logging.getLogger(__name__)


class TokenClient(Protocol):
    async def fetch(self) -> AccessCredential: ...

    async def close(self) -> None: ...


class CredentialHandler:
    """Owns the store, gate, scheduler and browser client for one process."""

    def __init__(
        self,
        client: TokenClient | None = None,
        *,
        store: CredentialStore | None = None,
        gate: AcquisitionGate | None = None,
        clock: Callable[[], int] = now_ms,
        retry_seconds: float | None = None,
    ) -> None:
        self.client: TokenClient = client if client is not None else BrowserAutomationClient()
        self.store = store if store is not None else CredentialStore(clock=clock)
        self.gate = gate if gate is not None else AcquisitionGate()
        scheduler_options: dict[str, Any] = {"clock": clock}
        if retry_seconds is not None:
            scheduler_options["retry_seconds"] = retry_seconds
        self.scheduler = RefreshScheduler(self.gate, self.store, self.client.fetch, **scheduler_options)
        self._warm_up_task: asyncio.Task | None = None

    async def request_credential(self, force: bool = False) -> AccessCredential:
        """Return a valid credential, fetching a new one if stale or forced.

        Concurrent callers on a stale cache share a single fetch: the first
        to take the gate fetches, the rest find the new credential on the
        re-check. Fetch errors propagate unchanged.
        """
        if not force and self.store.is_valid():
            return self.store.get()

        async with self.gate.hold():
            if not force and self.store.is_valid():
                return self.store.get()
            credential = await self.client.fetch()
            self.store.set(credential)
            self.scheduler.arm(credential)
            return credential

    def start(self) -> None:
        """Fetch the first token in the background."""
        if self._warm_up_task is None or self._warm_up_task.done():
            self._warm_up_task = asyncio.create_task(self._warm_up())

    async def _warm_up(self) -> None:
        started = time.monotonic()
        try:
            await self.request_credential()
        except Exception:
            logger.warning("Failed to fetch initial token", exc_info=True)
            return
        logger.info("Initial token fetched in %dms", (time.monotonic() - started) * 1000)

    async def shutdown(self) -> None:
        """Cancel pending refreshes and close the browser."""
        if self._warm_up_task is not None and not self._warm_up_task.done():
            self._warm_up_task.cancel()
        self._warm_up_task = None
        self.scheduler.stop()
        await self.client.close()
        logger.info("Credential handler shut down")
