"""Access credential data model."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DIAGNOSTIC_FIELD = "_notes"
_PASSTHROUGH_FIELDS = ("client_id", "is_anonymous")


def now_ms() -> int:
    return int(time.time() * 1000)


class AccessCredential(BaseModel):
    """Anonymous web-player token as issued upstream.

    Unknown upstream fields are kept as extras so the payload round-trips
    unchanged, minus the diagnostic ``_notes`` field.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    expiration_timestamp_ms: int = Field(alias="accessTokenExpirationTimestampMs")
    client_id: str | None = Field(default=None, alias="clientId")
    is_anonymous: bool | None = Field(default=None, alias="isAnonymous")

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AccessCredential:
        data = {k: v for k, v in payload.items() if k != DIAGNOSTIC_FIELD}
        return cls.model_validate(data)

    def to_payload(self) -> dict[str, Any]:
        """Serialize with upstream key names, only keys that were present."""
        payload = self.model_dump(mode="json", by_alias=True)
        for name in _PASSTHROUGH_FIELDS:
            if name not in self.model_fields_set:
                payload.pop(type(self).model_fields[name].alias, None)
        return payload

    def expires_in_ms(self, now: int | None = None) -> int:
        return self.expiration_timestamp_ms - (now_ms() if now is None else now)
