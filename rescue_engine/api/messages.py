"""Rescue chat API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from rescue_engine.core.config import settings
from rescue_engine.core.deps import Actor, get_current_actor
from rescue_engine.db.session import get_db
from rescue_engine.schemas.chat import MessageCreate, MessageRead
from rescue_engine.services import chat_service

router = APIRouter(prefix=f"{settings.api_prefix}/rescue", tags=["messages"])


@router.get("/{rescue_id}/messages", response_model=list[MessageRead])
def list_messages(
    rescue_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return chat_service.list_messages(db, rescue_id, actor.user_id)


@router.post("/{rescue_id}/messages", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
def post_message(
    rescue_id: int,
    body: MessageCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return chat_service.post(db, rescue_id, actor.user_id, body.content)
