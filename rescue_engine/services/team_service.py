"""Team membership lookups against the team service's table."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from rescue_engine.models.team_member import TeamMember


def is_member(db: Session, user_id: int, team_id: int) -> bool:
    stmt = select(TeamMember.id).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id).limit(1)
    return db.execute(stmt).first() is not None


def member_ids(db: Session, team_id: int) -> list[int]:
    stmt = select(TeamMember.user_id).where(TeamMember.team_id == team_id).order_by(TeamMember.user_id)
    return list(db.execute(stmt).scalars().all())


def team_ids_for(db: Session, user_id: int) -> list[int]:
    stmt = select(TeamMember.team_id).where(TeamMember.user_id == user_id).order_by(TeamMember.team_id)
    return list(db.execute(stmt).scalars().all())


def recipient_ids(db: Session, user_id: int | None, team_id: int | None) -> list[int]:
    """Users behind an assignment or candidacy: the individual, or every team member."""
    if user_id is not None:
        return [user_id]
    if team_id is not None:
        return member_ids(db, team_id)
    return []
