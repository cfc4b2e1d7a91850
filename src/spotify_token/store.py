"""In-memory holder for the current access credential."""

from __future__ import annotations

from typing import Callable

from .config import SAFETY_MARGIN_MS
from .models import AccessCredential, now_ms


class CredentialStore:
    """Holds at most one credential.

    Not locked: only the holder of the acquisition gate writes, and a write
    replaces the whole credential, so readers see either the old or the new
    value.
    """

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock
        self._credential: AccessCredential | None = None

    def get(self) -> AccessCredential | None:
        return self._credential

    def set(self, credential: AccessCredential) -> None:
        self._credential = credential

    def is_valid(self, margin_ms: int = SAFETY_MARGIN_MS) -> bool:
        credential = self._credential
        if credential is None:
            return False
        return credential.expiration_timestamp_ms - margin_ms > self._clock()
