"""Notification schemas."""

from typing import Any

from rescue_engine.schemas.common import CamelModel, UtcDatetime


class NotificationRead(CamelModel):
    id: int
    user_id: int
    type: str
    title: str | None
    message: str | None
    data: dict[str, Any] | None
    created_at: UtcDatetime
    read_at: UtcDatetime | None
