"""Rescue filters shared by bounding-box queries and live subscriptions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import ColumnElement

from rescue_engine.core.clock import as_utc
from rescue_engine.core.enums import METADATA_CHOICES, RescueStatus, StatusScope
from rescue_engine.core.errors import ValidationError
from rescue_engine.models.rescue_request import RescueRequest


def parse_choice(enum_cls: type[enum.Enum], value: Any, field_name: str) -> str | None:
    """Return the enumeration value for ``value`` or raise ValidationError."""
    if value is None or value == "":
        return None
    if isinstance(value, enum_cls):
        return value.value
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field_name} must be one of: {allowed}", field=field_name) from None


@dataclass(frozen=True)
class RescueSnapshot:
    """The fields a subscription needs to decide whether a rescue is visible."""

    id: int
    latitude: float
    longitude: float
    status: str
    created_at: datetime
    metadata: dict[str, str | None] = field(default_factory=dict)

    @classmethod
    def of(cls, rescue: RescueRequest) -> RescueSnapshot:
        return cls(
            id=rescue.id,
            latitude=rescue.latitude,
            longitude=rescue.longitude,
            status=rescue.status,
            created_at=as_utc(rescue.created_at),
            metadata={name: getattr(rescue, name) for name in METADATA_CHOICES},
        )


@dataclass(frozen=True)
class RescueFilters:
    """Exact-match metadata filters plus status scope and creation range."""

    scope: StatusScope = StatusScope.ACTIVE
    created_from: datetime | None = None
    created_to: datetime | None = None
    choices: dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        scope: str | StatusScope | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        **choices: Any,
    ) -> RescueFilters:
        unknown = set(choices) - set(METADATA_CHOICES)
        if unknown:
            raise ValidationError(f"Unknown filter: {sorted(unknown)[0]}", field=sorted(unknown)[0])
        parsed = {}
        for name, value in choices.items():
            choice = parse_choice(METADATA_CHOICES[name], value, name)
            if choice is not None:
                parsed[name] = choice
        resolved_scope = StatusScope(parse_choice(StatusScope, scope, "status") or StatusScope.ACTIVE.value)
        created_from, created_to = as_utc(created_from), as_utc(created_to)
        if created_from and created_to and created_from > created_to:
            raise ValidationError("from must not be after to", field="from")
        return cls(scope=resolved_scope, created_from=created_from, created_to=created_to, choices=parsed)

    def clauses(self) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if self.scope is StatusScope.ACTIVE:
            clauses.append(RescueRequest.status != RescueStatus.RESOLVED.value)
        elif self.scope is StatusScope.RESOLVED:
            clauses.append(RescueRequest.status == RescueStatus.RESOLVED.value)
        if self.created_from is not None:
            clauses.append(RescueRequest.created_at >= self.created_from)
        if self.created_to is not None:
            clauses.append(RescueRequest.created_at <= self.created_to)
        for name, value in self.choices.items():
            clauses.append(getattr(RescueRequest, name) == value)
        return clauses

    def matches(self, snapshot: RescueSnapshot, *, kind: str | None = None) -> bool:
        """In-memory twin of ``clauses`` used by the stream hub.

        A ``status`` delta that resolves a rescue still reaches active-scope
        viewers so they can drop the record; every other delta must match
        the scope.
        """
        resolved = snapshot.status == RescueStatus.RESOLVED.value
        leaving = kind == "status" and resolved and self.scope is StatusScope.ACTIVE
        if not leaving:
            if self.scope is StatusScope.ACTIVE and resolved:
                return False
            if self.scope is StatusScope.RESOLVED and not resolved:
                return False
        if self.created_from is not None and snapshot.created_at < self.created_from:
            return False
        if self.created_to is not None and snapshot.created_at > self.created_to:
            return False
        return all(snapshot.metadata.get(name) == value for name, value in self.choices.items())
