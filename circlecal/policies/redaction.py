"""
Tool: Event Redaction
Purpose: Single source of truth for what a viewer sees of someone's events

One rule covers every read path. A non-owner gets only
{id, start_at, end_at, redacted: True} with a placeholder title when any of
these hold:
- the viewer's effective detail level is BUSY_ONLY
- the event's cover_mode is BUSY_ONLY
- the event is PRIVATE
Permission is evaluated per relationship and visibility per event; the
stricter of the two wins.

Attendee anonymity is a separate concern: ANONYMOUS attendees are shown as
a placeholder to everyone except the event owner and the attendee.

Usage:
    from circlecal.policies.redaction import filter_events_for_viewer, view_event

    events = filter_events_for_viewer(raw_events, permission, viewer_id="alice")
    view = await view_event(event_id, viewer_id="alice", store=store)
"""

import logging
from collections.abc import Sequence
from datetime import datetime

from circlecal.availability.intervals import Interval
from circlecal.config_models import RedactionConfig
from circlecal.errors import PermissionDenied, ValidationError
from circlecal.policies.calendar_access import resolve_permission
from circlecal.policies.friendship import is_blocked
from circlecal.policies.models import (
    Anonymity,
    Attendee,
    AttendeeStatus,
    CalendarPermission,
    CoverMode,
    DetailLevel,
    EventRecord,
    EventView,
    EventVisibility,
    RedactedAttendee,
    RedactedEvent,
)
from circlecal.store.base import CalendarStore

logger = logging.getLogger(__name__)

_DEFAULT_REDACTION = RedactionConfig()


def effective_detail_level(
    event: EventRecord,
    viewer_id: str,
    detail_level: DetailLevel | None,
) -> DetailLevel:
    """Combine a relationship-level detail level with the event's own flags."""
    if event.owner_id == viewer_id:
        return DetailLevel.DETAILS
    if event.is_private or event.cover_mode == CoverMode.BUSY_ONLY:
        return DetailLevel.BUSY_ONLY
    return detail_level or DetailLevel.BUSY_ONLY


def redact_event_for_viewer(
    event: EventRecord,
    detail_level: DetailLevel,
    busy_title: str = _DEFAULT_REDACTION.busy_title,
) -> RedactedEvent:
    """Project an event at an already-decided detail level."""
    if detail_level == DetailLevel.DETAILS:
        return RedactedEvent(
            id=event.id,
            start_at=event.start_at,
            end_at=event.end_at,
            title=event.title,
            redacted=False,
            description=event.description,
            location_name=event.location_name,
        )

    return RedactedEvent(
        id=event.id,
        start_at=event.start_at,
        end_at=event.end_at,
        title=busy_title,
        redacted=True,
    )


def filter_events_for_viewer(
    events: Sequence[EventRecord],
    permission: CalendarPermission,
    viewer_id: str,
    busy_title: str = _DEFAULT_REDACTION.busy_title,
) -> list[RedactedEvent]:
    """
    Bulk calendar view.

    Returns an empty list when the permission is denied. Otherwise every
    event is kept (busy time is never hidden) and redacted per event.
    """
    if not permission.allowed:
        return []

    return [
        redact_event_for_viewer(
            event,
            effective_detail_level(event, viewer_id, permission.detail_level),
            busy_title,
        )
        for event in events
    ]


async def can_viewer_see_event(event: EventRecord, viewer_id: str, store: CalendarStore) -> bool:
    """
    Whether a viewer may see an event at all, through calendar sharing.

    Owner always; otherwise requires an accepted, unblocked friendship with
    sharing on, and the event must not be PRIVATE.
    """
    if event.owner_id == viewer_id:
        return True

    permission = await resolve_permission(event.owner_id, viewer_id, store)
    if not permission.allowed:
        return False

    return event.visibility in (EventVisibility.FRIENDS, EventVisibility.PUBLIC)


async def viewer_detail_level(event: EventRecord, viewer_id: str, store: CalendarStore) -> DetailLevel:
    """
    Detail level for the single-event view.

    cover_mode BUSY_ONLY applies to every non-owner without consulting the
    relationship at all.
    """
    if event.owner_id == viewer_id:
        return DetailLevel.DETAILS
    if event.cover_mode == CoverMode.BUSY_ONLY:
        return DetailLevel.BUSY_ONLY

    permission = await resolve_permission(event.owner_id, viewer_id, store)
    return effective_detail_level(event, viewer_id, permission.detail_level)


def is_attendee_anonymous(anonymity: Anonymity | str) -> bool:
    return anonymity == Anonymity.ANONYMOUS


def redact_attendees(
    attendees: Sequence[Attendee],
    owner_id: str,
    viewer_id: str,
    anonymous_name: str = _DEFAULT_REDACTION.anonymous_attendee_name,
) -> list[RedactedAttendee]:
    """Hide anonymous attendees' identity; status and role stay visible."""
    redacted = []
    for attendee in attendees:
        hidden = (
            is_attendee_anonymous(attendee.anonymity)
            and viewer_id != owner_id
            and viewer_id != attendee.user_id
        )
        redacted.append(
            RedactedAttendee(
                id=attendee.id,
                user_id=None if hidden else attendee.user_id,
                name=anonymous_name if hidden else attendee.name,
                email=None if hidden else attendee.email,
                status=attendee.status,
                role=attendee.role,
            )
        )
    return redacted


# =============================================================================
# Read paths
# =============================================================================


async def view_event(
    event_id: str,
    viewer_id: str,
    store: CalendarStore,
    config: RedactionConfig | None = None,
) -> EventView:
    """
    Single-event detail view.

    The owner and anyone on the attendee list (other than a decliner) may
    open the event; other viewers go through calendar sharing. A block in
    either direction shuts out everyone but the owner, attendee or not.
    Unknown events and forbidden ones raise the same PermissionDenied.

    Attendees are subject to the same PRIVATE and cover-mode redaction as
    any other non-owner.

    The attendee list is included for the owner, attendees, and viewers
    with DETAILS access.
    """
    config = config or _DEFAULT_REDACTION

    event = await store.fetch_event(event_id)
    if event is None:
        raise PermissionDenied()

    attendees = await store.fetch_attendees(event.id)
    is_owner = event.owner_id == viewer_id
    is_attendee = any(
        a.user_id == viewer_id and a.status != AttendeeStatus.DECLINED for a in attendees
    )

    if not is_owner and await is_blocked(store, event.owner_id, viewer_id):
        raise PermissionDenied()

    if is_owner:
        level = DetailLevel.DETAILS
    elif is_attendee:
        level = effective_detail_level(event, viewer_id, DetailLevel.DETAILS)
    elif await can_viewer_see_event(event, viewer_id, store):
        level = await viewer_detail_level(event, viewer_id, store)
    else:
        raise PermissionDenied()

    show_attendees = is_owner or is_attendee or level == DetailLevel.DETAILS
    return EventView(
        event=redact_event_for_viewer(event, level, config.busy_title),
        detail_level=level,
        attendees=(
            redact_attendees(attendees, event.owner_id, viewer_id, config.anonymous_attendee_name)
            if show_attendees
            else []
        ),
    )


async def view_friend_calendar(
    owner_id: str,
    viewer_id: str,
    window_start: datetime,
    window_end: datetime,
    store: CalendarStore,
    config: RedactionConfig | None = None,
) -> tuple[CalendarPermission, list[RedactedEvent]]:
    """
    Bulk calendar view of owner_id's events inside a window.

    Raises:
        ValidationError: window_start is not before window_end
        PermissionDenied: viewer may not see this calendar
    """
    config = config or _DEFAULT_REDACTION

    # Naive datetimes count as UTC
    window = Interval.from_datetimes(window_start, window_end)
    if window.is_empty:
        raise ValidationError('"from" must be before "to"')

    permission = await resolve_permission(owner_id, viewer_id, store)
    if not permission.allowed:
        raise PermissionDenied(participant_ids=[owner_id])

    events = await store.fetch_owner_events(owner_id, window.start, window.end)
    logger.debug("Calendar view of %s for %s: %d events", owner_id, viewer_id, len(events))

    return permission, filter_events_for_viewer(events, permission, viewer_id, config.busy_title)
