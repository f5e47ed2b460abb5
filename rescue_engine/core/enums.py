"""Closed enumerations for rescue records and candidacies."""

from __future__ import annotations

import enum


class RescueStatus(str, enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class CandidateStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class VehicleType(str, enum.Enum):
    CAR = "car"
    SUV = "suv"
    UTV = "utv"
    TRUCK = "truck"
    BUS = "bus"
    ATV = "atv"
    MOTORCYCLE = "motorcycle"
    VAN = "van"
    OTHER = "other"


class Drivetrain(str, enum.Enum):
    TWO_WD = "two_wd"
    FOUR_WD = "four_wd"
    AWD = "awd"


class TerrainType(str, enum.Enum):
    ASPHALT = "asphalt"
    SAND = "sand"
    MUD = "mud"
    ROCK = "rock"
    SNOW = "snow"
    WATER = "water"
    GRAVEL = "gravel"
    OTHER = "other"


class ProblemType(str, enum.Enum):
    STUCK = "stuck"
    MECHANICAL = "mechanical"
    FLAT_TIRE = "flat_tire"
    BATTERY = "battery"
    FUEL = "fuel"
    ACCIDENT = "accident"
    OTHER = "other"


class AssistanceStatus(str, enum.Enum):
    NONE = "none"
    EN_ROUTE = "en_route"
    ON_SITE = "on_site"
    NEEDS_MORE_HELP = "needs_more_help"
    RESOLVED = "resolved"


class AssistanceChannel(str, enum.Enum):
    NONE = "none"
    COMMUNITY = "community"
    OFFICIAL = "official"
    COMMERCIAL = "commercial"
    PRIVATE = "private"


class StatusScope(str, enum.Enum):
    """Status filter used by viewport queries and subscriptions."""

    ACTIVE = "active"
    RESOLVED = "resolved"
    ALL = "all"


# Metadata field name -> enumeration it must belong to
METADATA_CHOICES: dict[str, type[enum.Enum]] = {
    "vehicle_type": VehicleType,
    "drivetrain": Drivetrain,
    "terrain_type": TerrainType,
    "problem_type": ProblemType,
    "assistance_status": AssistanceStatus,
    "assistance_channel": AssistanceChannel,
}

ASSISTANCE_FIELDS = ("assistance_status", "assistance_channel", "assistance_provider")
