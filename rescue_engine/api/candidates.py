"""Rescue candidates and assignment API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from rescue_engine.core.config import settings
from rescue_engine.core.deps import Actor, get_current_actor
from rescue_engine.db.session import get_db
from rescue_engine.schemas.candidate import AssignRequest, AssignResponse, CandidateCreate, CandidateRead
from rescue_engine.services import assignment_service, candidate_service

router = APIRouter(prefix=f"{settings.api_prefix}/rescue", tags=["candidates"])


@router.get("/{rescue_id}/candidates", response_model=list[CandidateRead])
def list_candidates(
    rescue_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """All offers for the requester; your own (or your teams') for anyone else."""
    return candidate_service.visible_candidates(db, rescue_id, actor.user_id)


@router.post("/{rescue_id}/candidates", response_model=CandidateRead, status_code=status.HTTP_201_CREATED)
def register_candidate(
    rescue_id: int,
    body: CandidateCreate | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Offer to help, personally or with {"teamId": ...} for one of your teams."""
    return candidate_service.register(db, rescue_id, actor.user_id, team_id=body.team_id if body else None)


@router.post("/{rescue_id}/candidates/{candidate_id}/reject", response_model=CandidateRead)
def reject_candidate(
    rescue_id: int,
    candidate_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return candidate_service.reject(db, rescue_id, candidate_id, actor.user_id)


@router.post("/{rescue_id}/assign", response_model=AssignResponse)
def assign_candidate(
    rescue_id: int,
    body: AssignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Accept one pending offer; every other open offer is rejected."""
    rescue = assignment_service.assign(db, rescue_id, body.candidate_id, actor.user_id)
    return AssignResponse(rescue=rescue, candidates=candidate_service.list_candidates(db, rescue_id))
