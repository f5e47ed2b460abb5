"""SQLAlchemy models."""

from __future__ import annotations

from rescue_engine.models.notification import Notification
from rescue_engine.models.rescue_candidate import RescueCandidate
from rescue_engine.models.rescue_message import RescueMessage
from rescue_engine.models.rescue_request import RescueRequest
from rescue_engine.models.team_member import TeamMember

__all__ = [
    "Notification",
    "RescueCandidate",
    "RescueMessage",
    "RescueRequest",
    "TeamMember",
]
