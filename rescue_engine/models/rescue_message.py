"""Chat message scoped to a rescue."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from rescue_engine.core.clock import utcnow
from rescue_engine.db.base import Base


class RescueMessage(Base):
    """Append-only chat line between the requester and the assigned party."""

    __tablename__ = "rescue_messages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    rescue_id: Mapped[int] = mapped_column(
        ForeignKey("rescue_requests.id", ondelete="CASCADE"), index=True, nullable=False
    )
    author_id: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
