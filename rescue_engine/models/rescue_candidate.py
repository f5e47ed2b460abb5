"""Rescue candidate model - an offer to help from a user or a team."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from rescue_engine.core.clock import utcnow
from rescue_engine.db.base import Base

_OPEN = text("status != 'rejected'")


class RescueCandidate(Base):
    """Offer to handle a rescue. Exactly one of user_id / team_id is set."""

    __tablename__ = "rescue_candidates"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) != (team_id IS NULL)",
            name="user_xor_team",
        ),
        # At most one non-rejected offer per (rescue, user) and (rescue, team)
        Index(
            "uq_rescue_candidates_open_user",
            "rescue_id",
            "user_id",
            unique=True,
            sqlite_where=_OPEN,
            postgresql_where=_OPEN,
        ),
        Index(
            "uq_rescue_candidates_open_team",
            "rescue_id",
            "team_id",
            unique=True,
            sqlite_where=_OPEN,
            postgresql_where=_OPEN,
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    rescue_id: Mapped[int] = mapped_column(
        ForeignKey("rescue_requests.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    team_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    registered_by_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending | accepted | rejected
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
