"""
Tool: Find-Time Orchestrator
Purpose: Find common free slots across friends and turn a chosen slot into an event

find_common_slots:
    1. Validate the request and normalise participants (dedupe, add requester)
    2. Resolve calendar permission for every other participant, concurrently
    3. Fail closed if anyone is not viewable; no busy data is read in that case
    4. Fetch busy intervals per participant, concurrently; merge and invert
    5. Intersect everyone's free time and pick up to max_slots slots

confirm_slot:
    1. Validate the slot and event fields
    2. Re-check every invitee is an unblocked, accepted friend
    3. Create event + host row + invite rows + notification rows atomically
    4. Dispatch invite notifications; delivery failures never undo the event

Usage:
    from circlecal.availability.orchestrator import confirm_slot, find_common_slots

    slots = await find_common_slots("alice", ["bob", "carol"], start, end, 30, store)
    event_id = await confirm_slot("alice", slots[0], ["bob", "carol"], EventFields(title="Lunch"), store)
"""

import asyncio
from collections.abc import Sequence
from datetime import datetime

from circlecal.availability.intervals import (
    MINUTE_MS,
    Interval,
    intersect_free,
    invert_to_free,
    merge_intervals,
    pick_slots,
)
from circlecal.config_models import AvailabilityConfig
from circlecal.errors import CircleCalError, PermissionDenied, TransactionFailed, ValidationError
from circlecal.fanout import bounded_map
from circlecal.logging_config import get_logger, request_context
from circlecal.policies.calendar_access import resolve_permissions
from circlecal.policies.friendship import find_invalid_invitees
from circlecal.policies.models import EventFields
from circlecal.store.base import CalendarStore

logger = get_logger(__name__)

# A candidate slot is a plain interval of the requested duration
CandidateSlot = Interval

MAX_TITLE_LENGTH = 255


def _normalize_participants(requester_id: str, participant_ids: Sequence[str]) -> list[str]:
    """Deduplicate preserving order and make sure the requester is included."""
    participants = list(dict.fromkeys(participant_ids))
    if requester_id not in participants:
        participants.append(requester_id)
    return participants


def _validate_find_time(
    participant_ids: Sequence[str],
    window: Interval,
    duration_minutes: int,
    config: AvailabilityConfig,
) -> None:
    if not participant_ids:
        raise ValidationError("participant_ids must contain at least one user")

    if window.is_empty:
        raise ValidationError('"from" must be before "to"')

    bounds = config.find_time
    if (
        isinstance(duration_minutes, bool)
        or not isinstance(duration_minutes, int)
        or not bounds.min_duration_minutes <= duration_minutes <= bounds.max_duration_minutes
    ):
        raise ValidationError(
            f"duration_minutes must be a whole number between "
            f"{bounds.min_duration_minutes} and {bounds.max_duration_minutes}",
            detail={"duration_minutes": duration_minutes},
        )


async def _free_intervals(
    store: CalendarStore,
    participant_id: str,
    window: Interval,
) -> list[Interval]:
    busy = await store.fetch_busy_intervals(participant_id, window.start, window.end)
    return invert_to_free(merge_intervals(busy), window)


async def find_common_slots(
    requester_id: str,
    participant_ids: Sequence[str],
    window_start: datetime,
    window_end: datetime,
    duration_minutes: int,
    store: CalendarStore,
    config: AvailabilityConfig | None = None,
) -> list[CandidateSlot]:
    """
    Find up to max_slots common free slots, earliest first.

    Args:
        requester_id: User asking; always included as a participant
        participant_ids: Other users to schedule with (duplicates ignored)
        window_start: Search window start
        window_end: Search window end
        duration_minutes: Meeting length
        store: Data-access collaborator
        config: Engine settings (defaults when omitted)

    Returns:
        Candidate slots aligned to the step grid anchored at window_start

    Raises:
        ValidationError: Empty participants, bad window or duration
        PermissionDenied: Some participants' calendars are not viewable;
            participant_ids on the error lists all of them
    """
    config = config or AvailabilityConfig()
    # Naive datetimes count as UTC
    window = Interval.from_datetimes(window_start, window_end)
    _validate_find_time(participant_ids, window, duration_minutes, config)

    participants = _normalize_participants(requester_id, participant_ids)
    max_concurrency = config.find_time.max_concurrency

    with request_context("find_common_slots", requester_id):
        others = [pid for pid in participants if pid != requester_id]
        permissions = await resolve_permissions(others, requester_id, store, max_concurrency)

        not_viewable = [pid for pid in others if not permissions[pid].allowed]
        if not_viewable:
            logger.info("find_time_denied", not_viewable_count=len(not_viewable))
            raise PermissionDenied(
                "Cannot view calendar for some participants. They must be accepted "
                "friends with calendar sharing enabled.",
                participant_ids=not_viewable,
            )

        free_lists = await bounded_map(
            lambda pid: _free_intervals(store, pid, window),
            participants,
            max_concurrency,
        )

        common_free = intersect_free(free_lists)
        slots = pick_slots(
            common_free,
            duration_minutes * MINUTE_MS,
            limit=config.find_time.max_slots,
            origin=window.start,
            step_ms=config.find_time.slot_step_minutes * MINUTE_MS,
        )

        logger.info(
            "find_time_complete",
            participant_count=len(participants),
            common_free_count=len(common_free),
            slot_count=len(slots),
        )
        return slots


def _validate_event_fields(slot: Interval, fields: EventFields) -> None:
    if slot.end <= slot.start:
        raise ValidationError("Event end time must be after start time")

    if not fields.title or not fields.title.strip():
        raise ValidationError("title must not be empty")

    if len(fields.title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"title must be at most {MAX_TITLE_LENGTH} characters")


async def _dispatch_invites(
    store: CalendarStore,
    invitee_ids: list[str],
    event_id: str,
    title: str,
) -> None:
    results = await asyncio.gather(
        *(store.notify_invited(invitee_id, event_id, title) for invitee_id in invitee_ids),
        return_exceptions=True,
    )
    for invitee_id, result in zip(invitee_ids, results):
        if isinstance(result, Exception):
            logger.warning(
                "invite_notification_failed",
                invitee_id=invitee_id,
                event_id=event_id,
                error=str(result),
            )


async def confirm_slot(
    requester_id: str,
    slot: CandidateSlot,
    invitee_ids: Sequence[str],
    fields: EventFields,
    store: CalendarStore,
    config: AvailabilityConfig | None = None,
) -> str:
    """
    Turn a chosen slot into an event owned by the requester.

    Invitees are re-validated here because this is a separate request from
    the search. If any invitee is blocked or not an accepted friend, the
    whole request is rejected and nothing is written. An empty invitee list
    creates a solo event.

    Returns:
        The new event id

    Raises:
        ValidationError: Bad slot or fields, or invalid invitees
            (detail["invalid_ids"] lists them)
        TransactionFailed: The store could not write the event; nothing
            was committed
    """
    config = config or AvailabilityConfig()
    _validate_event_fields(slot, fields)

    invitees = [pid for pid in dict.fromkeys(invitee_ids) if pid != requester_id]

    with request_context("confirm_slot", requester_id):
        if invitees:
            invalid_ids = await find_invalid_invitees(
                store, requester_id, invitees, config.find_time.max_concurrency
            )
            if invalid_ids:
                raise ValidationError(
                    "Some invitees are not accepted friends or are blocked",
                    detail={"invalid_ids": invalid_ids},
                )

        try:
            event_id = await store.create_event_with_host_and_invites(
                requester_id, fields, slot, invitees
            )
        except CircleCalError:
            raise
        except Exception as e:
            logger.error("confirm_slot_write_failed", error=str(e), invitee_count=len(invitees))
            raise TransactionFailed() from e

        logger.info("confirm_slot_created", event_id=event_id, invitee_count=len(invitees))

        await _dispatch_invites(store, invitees, event_id, fields.title)
        return event_id
