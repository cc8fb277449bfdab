from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict

from clypse.constants import DEFAULT_CONTENT_TYPE
from clypse.utils.devices import format_file_size


class SharedItem(BaseModel):
    """Stored file record; `payload` is the base64 encoding of the raw bytes.

    Timestamps must carry a timezone; records without one are rejected as undecodable.
    """
    id: str
    code: str
    file_name: str
    content_type: str = DEFAULT_CONTENT_TYPE
    size: int
    payload: str
    created_at: AwareDatetime
    expires_at: Optional[AwareDatetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class SharedItemOut(BaseModel):
    """File metadata returned to clients (never the payload)."""
    code: str
    file_name: str
    content_type: str
    size: int
    size_label: str
    created_at: datetime
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_item(cls, item: SharedItem) -> "SharedItemOut":
        return cls(
            code=item.code,
            file_name=item.file_name,
            content_type=item.content_type,
            size=item.size,
            size_label=format_file_size(item.size),
            created_at=item.created_at,
            expires_at=item.expires_at,
        )
