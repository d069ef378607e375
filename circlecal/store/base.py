"""
Tool: Calendar Store Base
Purpose: Abstract data-access interface consumed by the availability engine

Defines every read and write the engine needs from the surrounding system.
The engine never touches persistence directly, so any backend (SQLite,
an ORM, a remote API) can sit behind this interface.

Usage:
    from circlecal.store.base import CalendarStore
    from circlecal.store.sqlite_store import SqliteCalendarStore

    store: CalendarStore = SqliteCalendarStore()
    busy = await store.fetch_busy_intervals("alice", start_ms, end_ms)
"""

from abc import ABC, abstractmethod

from circlecal.availability.intervals import Interval
from circlecal.policies.models import (
    Attendee,
    DetailLevel,
    EventFields,
    EventRecord,
    FriendRelationship,
)


class CalendarStore(ABC):
    """
    Abstract base class for calendar data access.

    Implementations must make create_event_with_host_and_invites atomic.
    Every other method is a read and may be called concurrently.
    """

    # =========================================================================
    # Availability
    # =========================================================================

    @abstractmethod
    async def fetch_busy_intervals(
        self,
        participant_id: str,
        window_start: int,
        window_end: int,
    ) -> list[Interval]:
        """
        Busy time for one participant overlapping the window.

        Covers events the participant owns plus events they attend with any
        status other than DECLINED.

        Args:
            participant_id: User whose calendar is read
            window_start: Window start, epoch ms
            window_end: Window end, epoch ms

        Returns:
            Unmerged intervals in any order
        """
        pass

    # =========================================================================
    # Relationships and settings
    # =========================================================================

    @abstractmethod
    async def fetch_relationship(
        self,
        requester_id: str,
        addressee_id: str,
    ) -> FriendRelationship | None:
        """
        Directed lookup of the row requester_id -> addressee_id.

        Returns None when no row exists in that direction. Callers wanting
        either direction go through policies.friendship.relationship_between.
        """
        pass

    @abstractmethod
    async def fetch_default_detail_level(self, user_id: str) -> DetailLevel | None:
        """Account-wide default detail level, or None if the user has no settings."""
        pass

    # =========================================================================
    # Events
    # =========================================================================

    @abstractmethod
    async def fetch_event(self, event_id: str) -> EventRecord | None:
        pass

    @abstractmethod
    async def fetch_attendees(self, event_id: str) -> list[Attendee]:
        pass

    @abstractmethod
    async def fetch_owner_events(
        self,
        owner_id: str,
        window_start: int,
        window_end: int,
    ) -> list[EventRecord]:
        """Events owned by owner_id overlapping the window, ordered by start."""
        pass

    @abstractmethod
    async def create_event_with_host_and_invites(
        self,
        owner_id: str,
        fields: EventFields,
        slot: Interval,
        invitee_ids: list[str],
    ) -> str:
        """
        Create an event with its host row, invite rows and invite notifications.

        All rows are written in one transaction; on any failure nothing is
        committed and the original exception propagates.

        Returns:
            The new event id
        """
        pass

    @abstractmethod
    async def notify_invited(self, user_id: str, event_id: str, title: str) -> None:
        """
        Deliver an invite notification outside the transaction.

        Fire-and-forget from the engine's perspective; failures are logged by
        the caller and never undo the event.
        """
        pass
