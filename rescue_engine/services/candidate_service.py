"""Candidate registry: offers to help from users or teams."""

from __future__ import annotations

import logging

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rescue_engine.core.clock import utcnow
from rescue_engine.core.enums import CandidateStatus
from rescue_engine.core.errors import (
    DuplicateCandidate,
    Forbidden,
    InvalidState,
    NotFound,
    RescueClosed,
    SelfCandidacy,
)
from rescue_engine.core.locks import rescue_locks
from rescue_engine.models.rescue_candidate import RescueCandidate
from rescue_engine.services import notification_service, rescue_service, team_service

logger = logging.getLogger(__name__)


def get_candidate(db: Session, rescue_id: int, candidate_id: int) -> RescueCandidate:
    candidate = db.get(RescueCandidate, candidate_id)
    if not candidate or candidate.rescue_id != rescue_id:
        raise NotFound("Candidate not found", rescue_id=rescue_id, field="candidateId")
    return candidate


def pending_count(db: Session, rescue_id: int) -> int:
    result = db.execute(
        select(RescueCandidate.id).where(
            RescueCandidate.rescue_id == rescue_id,
            RescueCandidate.status == CandidateStatus.PENDING.value,
        )
    )
    return len(result.all())


def _open_offer_exists(db: Session, rescue_id: int, user_id: int | None, team_id: int | None) -> bool:
    stmt = select(RescueCandidate.id).where(
        RescueCandidate.rescue_id == rescue_id,
        RescueCandidate.status != CandidateStatus.REJECTED.value,
    )
    if team_id is not None:
        stmt = stmt.where(RescueCandidate.team_id == team_id)
    else:
        stmt = stmt.where(RescueCandidate.user_id == user_id)
    return db.execute(stmt.limit(1)).first() is not None


def register(db: Session, rescue_id: int, actor_id: int, team_id: int | None = None) -> RescueCandidate:
    """Offer help on a rescue, personally or on behalf of one of the actor's teams."""
    with rescue_locks.hold(rescue_id):
        rescue = rescue_service.get_rescue(db, rescue_id)
        if rescue.is_resolved or rescue.is_assigned:
            raise RescueClosed("Rescue is no longer accepting candidates", rescue_id=rescue_id)
        if team_id is None and actor_id == rescue.user_id:
            raise SelfCandidacy("Requester cannot offer to rescue themselves", rescue_id=rescue_id)
        if team_id is not None and not team_service.is_member(db, actor_id, team_id):
            raise Forbidden("You are not a member of this team", rescue_id=rescue_id, field="teamId")

        user_id = actor_id if team_id is None else None
        if _open_offer_exists(db, rescue_id, user_id, team_id):
            raise DuplicateCandidate("An open offer already exists", rescue_id=rescue_id)

        candidate = RescueCandidate(
            rescue_id=rescue_id,
            user_id=user_id,
            team_id=team_id,
            registered_by_id=actor_id,
            status=CandidateStatus.PENDING.value,
        )
        try:
            db.add(candidate)
            db.flush()
            rescue_service.bump_version(db, rescue_id)
            notes = notification_service.stage(
                db,
                [rescue.user_id],
                notification_service.RESCUE_CANDIDATE,
                rescue_id,
                data={"candidateId": candidate.id, "userId": user_id, "teamId": team_id},
            )
            db.commit()
        except IntegrityError:
            # Another process inserted the same open offer first
            db.rollback()
            raise DuplicateCandidate("An open offer already exists", rescue_id=rescue_id) from None
        except Exception:
            db.rollback()
            raise

        db.refresh(candidate)
        db.refresh(rescue)
        logger.info("Candidate registered: rescue=%s candidate=%s user=%s team=%s", rescue_id, candidate.id, user_id, team_id)
        rescue_service.publish(rescue, "candidate", {"pendingCandidates": pending_count(db, rescue_id)})
        notification_service.dispatch(notes)
        return candidate


def list_candidates(db: Session, rescue_id: int) -> list[RescueCandidate]:
    """Every candidate for a rescue, any status, oldest first."""
    result = db.execute(
        select(RescueCandidate)
        .where(RescueCandidate.rescue_id == rescue_id)
        .order_by(RescueCandidate.created_at, RescueCandidate.id)
    )
    return list(result.scalars().all())


def visible_candidates(db: Session, rescue_id: int, actor_id: int) -> list[RescueCandidate]:
    """Owner sees all; anyone else only offers they hold personally or via a team."""
    rescue = rescue_service.get_rescue(db, rescue_id)
    if rescue.user_id == actor_id:
        return list_candidates(db, rescue_id)
    teams = team_service.team_ids_for(db, actor_id)
    conditions = [RescueCandidate.user_id == actor_id]
    if teams:
        conditions.append(RescueCandidate.team_id.in_(teams))
    result = db.execute(
        select(RescueCandidate)
        .where(RescueCandidate.rescue_id == rescue_id, or_(*conditions))
        .order_by(RescueCandidate.created_at, RescueCandidate.id)
    )
    return list(result.scalars().all())


def reject(db: Session, rescue_id: int, candidate_id: int, actor_id: int) -> RescueCandidate:
    """Owner declines a pending offer."""
    with rescue_locks.hold(rescue_id):
        rescue = rescue_service.get_rescue(db, rescue_id)
        if rescue.user_id != actor_id:
            raise Forbidden("Only the requester can reject candidates", rescue_id=rescue_id)
        candidate = get_candidate(db, rescue_id, candidate_id)
        if candidate.status != CandidateStatus.PENDING.value:
            raise InvalidState(f"Candidate is already {candidate.status}", rescue_id=rescue_id, field="candidateId")

        try:
            result = db.execute(
                update(RescueCandidate)
                .where(
                    RescueCandidate.id == candidate_id,
                    RescueCandidate.status == CandidateStatus.PENDING.value,
                )
                .values(status=CandidateStatus.REJECTED.value, responded_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidState("Candidate is no longer pending", rescue_id=rescue_id, field="candidateId")
            rescue_service.bump_version(db, rescue_id)
            notes = notification_service.stage(
                db,
                team_service.recipient_ids(db, candidate.user_id, candidate.team_id),
                notification_service.RESCUE_CANDIDATE_REJECTED,
                rescue_id,
                data={"candidateId": candidate_id},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(candidate)
        db.refresh(rescue)
        logger.info("Candidate rejected: rescue=%s candidate=%s", rescue_id, candidate_id)
        rescue_service.publish(rescue, "candidate", {"pendingCandidates": pending_count(db, rescue_id)})
        notification_service.dispatch(notes)
        return candidate
