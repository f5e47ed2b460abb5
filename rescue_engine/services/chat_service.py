"""Chat gate: rescue-scoped messages between the requester and the assigned party."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from rescue_engine.core.config import settings
from rescue_engine.core.errors import AlreadyResolved, ContentTooLong, EmptyContent, Forbidden
from rescue_engine.core.locks import rescue_locks
from rescue_engine.models.rescue_message import RescueMessage
from rescue_engine.models.rescue_request import RescueRequest
from rescue_engine.services import notification_service, rescue_service

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 140


def _can_chat(db: Session, rescue: RescueRequest, actor_id: int) -> bool:
    return rescue.is_assigned and rescue_service.is_party(db, rescue, actor_id)


def can_chat(db: Session, rescue_id: int, actor_id: int) -> bool:
    """Assigned rescue and actor is requester, assigned user or assigned team member."""
    return _can_chat(db, rescue_service.get_rescue(db, rescue_id), actor_id)


def post(db: Session, rescue_id: int, actor_id: int, content: str) -> RescueMessage:
    with rescue_locks.hold(rescue_id):
        rescue = rescue_service.get_rescue(db, rescue_id)
        if not _can_chat(db, rescue, actor_id):
            raise Forbidden("You cannot chat on this rescue", rescue_id=rescue_id)
        if rescue.is_resolved:
            # History stays readable; new messages are closed
            raise AlreadyResolved("Rescue is already resolved", rescue_id=rescue_id)

        text = (content or "").strip()
        if not text:
            raise EmptyContent("Message cannot be empty", rescue_id=rescue_id, field="content")
        if len(text) > settings.chat_max_length:
            raise ContentTooLong(
                f"Message exceeds {settings.chat_max_length} characters",
                rescue_id=rescue_id,
                field="content",
            )

        msg = RescueMessage(rescue_id=rescue_id, author_id=actor_id, content=text)
        try:
            db.add(msg)
            db.flush()
            recipients = [uid for uid in rescue_service.party_user_ids(db, rescue) if uid != actor_id]
            notes = notification_service.stage(
                db,
                recipients,
                notification_service.RESCUE_MESSAGE,
                rescue_id,
                message=text[:PREVIEW_LENGTH],
                data={"messageId": msg.id, "authorId": actor_id},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(msg)
        logger.info("Rescue message: rescue=%s author=%s id=%s", rescue_id, actor_id, msg.id)
        notification_service.dispatch(notes)
        return msg


def list_messages(db: Session, rescue_id: int, actor_id: int) -> list[RescueMessage]:
    if not can_chat(db, rescue_id, actor_id):
        raise Forbidden("You cannot chat on this rescue", rescue_id=rescue_id)
    result = db.execute(
        select(RescueMessage)
        .where(RescueMessage.rescue_id == rescue_id)
        .order_by(RescueMessage.created_at, RescueMessage.id)
    )
    return list(result.scalars().all())
