"""Assignment resolver: turn one pending candidate into the rescue's assignment."""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from rescue_engine.core.clock import utcnow
from rescue_engine.core.enums import CandidateStatus
from rescue_engine.core.errors import (
    AlreadyAssigned,
    AlreadyResolved,
    Forbidden,
    InvalidCandidate,
    InvalidState,
)
from rescue_engine.core.locks import rescue_locks
from rescue_engine.models.rescue_candidate import RescueCandidate
from rescue_engine.models.rescue_request import RescueRequest
from rescue_engine.services import notification_service, rescue_service, team_service

logger = logging.getLogger(__name__)


def assign(db: Session, rescue_id: int, candidate_id: int, actor_id: int) -> RescueRequest:
    """Accept ``candidate_id`` and reject every other open offer, atomically.

    Rescue status is left as is; only an explicit resolve closes a rescue.
    Of two concurrent calls on one rescue, the loser sees AlreadyAssigned.
    """
    with rescue_locks.hold(rescue_id):
        rescue = rescue_service.get_rescue(db, rescue_id)
        if rescue.user_id != actor_id:
            raise Forbidden("Only the requester can assign a rescuer", rescue_id=rescue_id)
        if rescue.is_resolved:
            raise AlreadyResolved("Rescue is already resolved", rescue_id=rescue_id)
        if rescue.is_assigned:
            raise AlreadyAssigned("Rescue is already assigned", rescue_id=rescue_id)

        candidate = db.get(RescueCandidate, candidate_id)
        if (
            candidate is None
            or candidate.rescue_id != rescue_id
            or candidate.status != CandidateStatus.PENDING.value
        ):
            raise InvalidCandidate("Candidate is not a pending offer for this rescue", rescue_id=rescue_id, field="candidateId")

        now = utcnow()
        try:
            # (a) accept the chosen offer
            accepted = db.execute(
                update(RescueCandidate)
                .where(
                    RescueCandidate.id == candidate_id,
                    RescueCandidate.status == CandidateStatus.PENDING.value,
                )
                .values(status=CandidateStatus.ACCEPTED.value, responded_at=now)
                .execution_options(synchronize_session=False)
            )
            if accepted.rowcount != 1:
                raise InvalidCandidate("Candidate is no longer pending", rescue_id=rescue_id, field="candidateId")

            # (b) close out the rest
            losers = list(
                db.execute(
                    select(RescueCandidate).where(
                        RescueCandidate.rescue_id == rescue_id,
                        RescueCandidate.id != candidate_id,
                        RescueCandidate.status == CandidateStatus.PENDING.value,
                    )
                ).scalars().all()
            )
            db.execute(
                update(RescueCandidate)
                .where(
                    RescueCandidate.rescue_id == rescue_id,
                    RescueCandidate.id != candidate_id,
                    RescueCandidate.status == CandidateStatus.PENDING.value,
                )
                .values(status=CandidateStatus.REJECTED.value, responded_at=now)
                .execution_options(synchronize_session=False)
            )

            # (c) bind the rescue; compare-and-set guards other processes
            rescue_service.update_assignment(
                db,
                rescue_id,
                rescuer_id=candidate.user_id,
                team_id=candidate.team_id,
            )

            notes = notification_service.stage(
                db,
                team_service.recipient_ids(db, candidate.user_id, candidate.team_id),
                notification_service.RESCUE_ASSIGNED,
                rescue_id,
                data={"candidateId": candidate_id},
            )
            for loser in losers:
                notes += notification_service.stage(
                    db,
                    team_service.recipient_ids(db, loser.user_id, loser.team_id),
                    notification_service.RESCUE_CANDIDATE_REJECTED,
                    rescue_id,
                    data={"candidateId": loser.id},
                )
            db.commit()
        except (AlreadyAssigned, AlreadyResolved, InvalidState):
            db.rollback()
            raise
        except Exception:
            db.rollback()
            logger.exception("Assignment failed: rescue=%s candidate=%s", rescue_id, candidate_id)
            raise

        db.refresh(rescue)
        logger.info(
            "Rescue assigned: id=%s candidate=%s rescuer=%s team=%s",
            rescue_id,
            candidate_id,
            rescue.assigned_rescuer_id,
            rescue.assigned_team_id,
        )
        # (e) announce
        rescue_service.publish(rescue, "assigned")
        notification_service.dispatch(notes)
        return rescue
