"""Per-user notifications for rescue lifecycle events.

Rows are staged inside the caller's transaction and pushed to live channels
only after that transaction commits, so a rolled-back mutation never notifies
anyone.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from rescue_engine.core.clock import utcnow
from rescue_engine.core.errors import Forbidden, NotFound
from rescue_engine.models.notification import Notification
from rescue_engine.schemas.notification import NotificationRead
from rescue_engine.services.stream_hub import stream_hub

logger = logging.getLogger(__name__)

RESCUE_CANDIDATE = "rescue_candidate"
RESCUE_ASSIGNED = "rescue_assigned"
RESCUE_CANDIDATE_REJECTED = "rescue_candidate_rejected"
RESCUE_MESSAGE = "rescue_message"
RESCUE_RESOLVED = "rescue_resolved"

_TITLES = {
    RESCUE_CANDIDATE: "New rescue candidate",
    RESCUE_ASSIGNED: "Rescue assigned to you",
    RESCUE_CANDIDATE_REJECTED: "Rescue offer declined",
    RESCUE_MESSAGE: "New rescue message",
    RESCUE_RESOLVED: "Rescue resolved",
}


def stage(
    db: Session,
    user_ids: Iterable[int],
    type_: str,
    rescue_id: int,
    *,
    message: str | None = None,
    data: dict[str, Any] | None = None,
) -> list[Notification]:
    """Add one notification per distinct user to the session (not committed)."""
    notes = []
    for uid in dict.fromkeys(user_ids):
        note = Notification(
            user_id=uid,
            type=type_,
            title=_TITLES.get(type_),
            message=message,
            data={"rescueId": rescue_id, **(data or {})},
        )
        db.add(note)
        notes.append(note)
    if notes:
        db.flush()
    return notes


def dispatch(notes: Iterable[Notification]) -> None:
    """Push committed notifications to any open channel of their user."""
    for note in notes:
        payload = NotificationRead.model_validate(note).model_dump(mode="json", by_alias=True)
        stream_hub.notify(note.user_id, payload)


def notify(
    db: Session,
    user_id: int,
    type_: str,
    rescue_id: int,
    *,
    message: str | None = None,
    data: dict[str, Any] | None = None,
) -> Notification:
    """Store and deliver a single notification."""
    note = stage(db, [user_id], type_, rescue_id, message=message, data=data)[0]
    db.commit()
    db.refresh(note)
    dispatch([note])
    return note


def list_unread(db: Session, user_id: int, limit: int = 100) -> list[Notification]:
    """Unread notifications, oldest first so ids arrive in order."""
    result = db.execute(
        select(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
        .order_by(Notification.id)
        .limit(limit)
    )
    return list(result.scalars().all())


def mark_read(db: Session, notification_id: int, user_id: int) -> Notification:
    note = db.get(Notification, notification_id)
    if not note:
        raise NotFound("Notification not found")
    if note.user_id != user_id:
        raise Forbidden("Not your notification")
    if note.read_at is None:
        db.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.read_at.is_(None))
            .values(read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(note)
    return note
