"""Notifications API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from rescue_engine.api.sse import event_stream, notification_frame, sse_response
from rescue_engine.core.config import settings
from rescue_engine.core.deps import Actor, get_current_actor, get_stream_actor
from rescue_engine.db.session import get_db
from rescue_engine.schemas.notification import NotificationRead
from rescue_engine.services import notification_service
from rescue_engine.services.stream_hub import stream_hub

router = APIRouter(prefix=f"{settings.api_prefix}/notifications", tags=["notifications"])


def _unread_payloads(db: Session, user_id: int) -> list[dict]:
    return [
        NotificationRead.model_validate(note).model_dump(mode="json", by_alias=True)
        for note in notification_service.list_unread(db, user_id)
    ]


@router.get("", response_model=list[NotificationRead])
def list_unread(
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Unread notifications, oldest first."""
    return notification_service.list_unread(db, actor.user_id, limit)


@router.get("/stream")
async def stream(
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_stream_actor),
):
    """Unread backlog, then live notifications. Clients dedupe by id."""
    # Subscribe before reading the backlog so nothing falls in between.
    sub = stream_hub.subscribe_user(actor.user_id)
    try:
        backlog = await run_in_threadpool(_unread_payloads, db, actor.user_id)
    except Exception:
        stream_hub.unsubscribe(sub)
        raise
    return sse_response(event_stream(request, sub, notification_frame, backlog))


@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return notification_service.mark_read(db, notification_id, actor.user_id)
