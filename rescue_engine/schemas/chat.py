"""Rescue chat schemas."""

from rescue_engine.schemas.common import CamelModel, UtcDatetime


class MessageCreate(CamelModel):
    # Length and emptiness are checked by the chat service so callers get
    # the EMPTY_CONTENT / CONTENT_TOO_LONG codes.
    content: str


class MessageRead(CamelModel):
    id: int
    rescue_id: int
    author_id: int
    content: str
    created_at: UtcDatetime
