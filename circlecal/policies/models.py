"""
Tool: Calendar Policy Models
Purpose: Data structures shared by the access resolver, redactor and store

Usage:
    from circlecal.policies.models import CalendarPermission, DetailLevel, EventRecord

CalendarPermission and RedactedEvent are computed per request and never
persisted. The remaining records mirror rows owned by the data-access layer.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class DetailLevel(str, Enum):
    """How much event content a viewer may see."""

    DETAILS = "DETAILS"
    BUSY_ONLY = "BUSY_ONLY"


class FriendshipStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    BLOCKED = "BLOCKED"


class EventVisibility(str, Enum):
    PRIVATE = "PRIVATE"
    FRIENDS = "FRIENDS"
    PUBLIC = "PUBLIC"


class CoverMode(str, Enum):
    """Event-level override; BUSY_ONLY hides content from every non-owner."""

    NONE = "NONE"
    BUSY_ONLY = "BUSY_ONLY"


class AttendeeRole(str, Enum):
    HOST = "HOST"
    ATTENDEE = "ATTENDEE"


class AttendeeStatus(str, Enum):
    INVITED = "INVITED"
    GOING = "GOING"
    MAYBE = "MAYBE"
    DECLINED = "DECLINED"


class Anonymity(str, Enum):
    NAMED = "NAMED"
    ANONYMOUS = "ANONYMOUS"


@dataclass(frozen=True)
class CalendarPermission:
    """
    Result of resolving whether a viewer may see an owner's calendar.

    detail_level is None exactly when allowed is False.
    """

    allowed: bool
    detail_level: DetailLevel | None = None

    @classmethod
    def denied(cls) -> CalendarPermission:
        return cls(allowed=False, detail_level=None)

    @classmethod
    def granted(cls, detail_level: DetailLevel) -> CalendarPermission:
        return cls(allowed=True, detail_level=detail_level)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "detail_level": self.detail_level.value if self.detail_level else None,
        }


@dataclass
class FriendRelationship:
    """
    Directed friendship edge.

    One row exists per unordered pair of users. requester_id is whoever sent
    the original request; the owner-side sharing settings live on the row.
    """

    requester_id: str
    addressee_id: str
    status: FriendshipStatus
    can_view_calendar: bool = True
    detail_level: DetailLevel | None = None  # per-friend override


@dataclass
class EventRecord:
    """Calendar event as stored. Owner always sees every field."""

    id: str
    owner_id: str
    start_at: datetime
    end_at: datetime
    title: str
    description: str | None = None
    location_name: str | None = None
    visibility: EventVisibility = EventVisibility.FRIENDS
    cover_mode: CoverMode = CoverMode.NONE
    timezone: str = "UTC"

    @property
    def is_private(self) -> bool:
        return self.visibility == EventVisibility.PRIVATE


@dataclass
class Attendee:
    id: str
    event_id: str
    user_id: str
    role: AttendeeRole = AttendeeRole.ATTENDEE
    status: AttendeeStatus = AttendeeStatus.INVITED
    anonymity: Anonymity = Anonymity.NAMED
    name: str | None = None
    email: str | None = None


@dataclass
class RedactedEvent:
    """
    Event projection safe to return to a viewer.

    When redacted is True the title is a placeholder and description and
    location are None.
    """

    id: str
    start_at: datetime
    end_at: datetime
    title: str
    redacted: bool
    description: str | None = None
    location_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict, omitting hidden fields."""
        d = asdict(self)
        d["start_at"] = self.start_at.isoformat()
        d["end_at"] = self.end_at.isoformat()
        if self.redacted:
            d.pop("description")
            d.pop("location_name")
        return d


@dataclass
class RedactedAttendee:
    id: str
    user_id: str | None
    name: str | None
    email: str | None
    status: AttendeeStatus
    role: AttendeeRole

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        d["role"] = self.role.value
        return d


@dataclass
class EventFields:
    """Write-side fields supplied when a chosen slot becomes an event."""

    title: str
    timezone: str = "UTC"
    visibility: EventVisibility = EventVisibility.FRIENDS
    cover_mode: CoverMode = CoverMode.NONE
    location_name: str | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventFields:
        data = data.copy()
        if isinstance(data.get("visibility"), str):
            data["visibility"] = EventVisibility(data["visibility"])
        if isinstance(data.get("cover_mode"), str):
            data["cover_mode"] = CoverMode(data["cover_mode"])
        return cls(**data)


@dataclass
class EventView:
    """Single-event read result: the redacted event and its attendee list."""

    event: RedactedEvent
    detail_level: DetailLevel
    attendees: list[RedactedAttendee] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event.to_dict(),
            "detail_level": self.detail_level.value,
            "attendees": [a.to_dict() for a in self.attendees],
        }
