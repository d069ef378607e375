"""Tests for circlecal/availability/orchestrator.py

find_common_slots and confirm_slot are the two outward operations. Key behaviors:
- Requests fail closed when any participant's calendar is not viewable
- Busy data is only read after every permission check passes
- Per-participant work fans out under a concurrency bound
- Confirming a slot writes all rows or none

These tests run against the SQLite reference store.
"""

import asyncio
import uuid
from datetime import datetime
from unittest.mock import patch

import pytest

from circlecal.availability.intervals import Interval
from circlecal.availability.orchestrator import confirm_slot, find_common_slots
from circlecal.config_models import AvailabilityConfig
from circlecal.errors import PermissionDenied, TransactionFailed, ValidationError
from circlecal.policies.models import AttendeeRole, AttendeeStatus, EventFields, FriendshipStatus


@pytest.fixture
def busy_spy(friend_graph, monkeypatch):
    """Record which participants' busy intervals were read."""
    calls: list[str] = []
    original = friend_graph.fetch_busy_intervals

    async def spy(participant_id, window_start, window_end):
        calls.append(participant_id)
        return await original(participant_id, window_start, window_end)

    monkeypatch.setattr(friend_graph, "fetch_busy_intervals", spy)
    return calls


# ─────────────────────────────────────────────────────────────────────────────
# find_common_slots Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestFindCommonSlots:
    """Tests for the happy path of find-time."""

    @pytest.mark.asyncio
    async def test_first_slot_is_earliest_common_gap(self, friend_graph, day):
        """A busy 9-10 and 11-12, B busy 9:30-10:30 -> first slot 10:30-11:00."""
        friend_graph.add_event("alice", day(9), day(10))
        friend_graph.add_event("alice", day(11), day(12))
        friend_graph.add_event("bob", day(9, 30), day(10, 30))

        slots = await find_common_slots("alice", ["bob"], day(9), day(13), 30, friend_graph)

        assert slots[0] == Interval.from_datetimes(day(10, 30), day(11))
        assert slots == [
            Interval.from_datetimes(day(10, 30), day(11)),
            Interval.from_datetimes(day(12), day(12, 30)),
            Interval.from_datetimes(day(12, 15), day(12, 45)),
            Interval.from_datetimes(day(12, 30), day(13)),
        ]

    @pytest.mark.asyncio
    async def test_caps_at_five_slots(self, friend_graph, day):
        slots = await find_common_slots("alice", ["bob"], day(9), day(17), 30, friend_graph)
        assert len(slots) == 5

    @pytest.mark.asyncio
    async def test_requester_is_always_included(self, friend_graph, day, busy_spy):
        """Listing only others still checks the requester's calendar."""
        friend_graph.add_event("alice", day(9), day(12))

        slots = await find_common_slots("alice", ["bob"], day(9), day(13), 60, friend_graph)

        assert sorted(busy_spy) == ["alice", "bob"]
        assert slots == [Interval.from_datetimes(day(12), day(13))]

    @pytest.mark.asyncio
    async def test_duplicates_are_ignored(self, friend_graph, day, busy_spy):
        await find_common_slots("alice", ["bob", "bob", "alice"], day(9), day(10), 30, friend_graph)
        assert sorted(busy_spy) == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_self_only_request(self, friend_graph, day):
        friend_graph.add_event("alice", day(9), day(9, 30))
        slots = await find_common_slots("alice", ["alice"], day(9), day(10), 30, friend_graph)
        assert slots == [Interval.from_datetimes(day(9, 30), day(10))]

    @pytest.mark.asyncio
    async def test_attended_events_count_as_busy(self, friend_graph, day):
        event_id = friend_graph.add_event("carol", day(9), day(10))
        friend_graph.add_attendee(event_id, "bob", status=AttendeeStatus.GOING)

        slots = await find_common_slots("alice", ["bob"], day(9), day(10, 30), 30, friend_graph)

        assert slots == [Interval.from_datetimes(day(10), day(10, 30))]

    @pytest.mark.asyncio
    async def test_declined_events_are_not_busy(self, friend_graph, day):
        event_id = friend_graph.add_event("carol", day(9), day(10))
        friend_graph.add_attendee(event_id, "bob", status=AttendeeStatus.DECLINED)

        slots = await find_common_slots("alice", ["bob"], day(9), day(10), 60, friend_graph)

        assert slots == [Interval.from_datetimes(day(9), day(10))]

    @pytest.mark.asyncio
    async def test_touching_events_leave_no_gap(self, friend_graph, day):
        friend_graph.add_event("alice", day(9), day(10))
        friend_graph.add_event("bob", day(10), day(11))

        slots = await find_common_slots("alice", ["bob"], day(9), day(11), 15, friend_graph)

        assert slots == []

    @pytest.mark.asyncio
    async def test_duration_longer_than_any_gap_is_empty(self, friend_graph, day):
        friend_graph.add_event("bob", day(10), day(11))
        slots = await find_common_slots("alice", ["bob"], day(9), day(12), 90, friend_graph)
        assert slots == []

    @pytest.mark.asyncio
    async def test_grid_anchored_at_window_start(self, friend_graph, day):
        slots = await find_common_slots("alice", ["bob"], day(9, 5), day(10), 15, friend_graph)
        assert [s.to_datetimes()[0] for s in slots[:3]] == [day(9, 5), day(9, 20), day(9, 35)]

    @pytest.mark.asyncio
    async def test_reverse_direction_friendship_is_viewable(self, friend_graph, day):
        """carol sent the request to alice; alice may still schedule with carol."""
        slots = await find_common_slots("alice", ["carol"], day(9), day(10), 30, friend_graph)
        assert slots


class TestFindCommonSlotsPermissions:
    """Tests for the fail-closed permission gate."""

    @pytest.mark.asyncio
    async def test_pending_friend_is_rejected_before_any_fetch(self, friend_graph, day, busy_spy):
        with pytest.raises(PermissionDenied) as exc_info:
            await find_common_slots("alice", ["dave"], day(9), day(13), 30, friend_graph)

        assert exc_info.value.participant_ids == ["dave"]
        assert exc_info.value.status_code == 403
        assert busy_spy == []

    @pytest.mark.asyncio
    async def test_all_unreachable_participants_are_named(self, friend_graph, day, busy_spy):
        with pytest.raises(PermissionDenied) as exc_info:
            await find_common_slots(
                "alice", ["bob", "dave", "eve", "nobody"], day(9), day(13), 30, friend_graph
            )

        assert exc_info.value.participant_ids == ["dave", "eve", "nobody"]
        assert busy_spy == []

    @pytest.mark.asyncio
    async def test_reason_is_not_disclosed(self, friend_graph, day):
        """Blocked and never-friended users produce the same error text."""
        with pytest.raises(PermissionDenied) as blocked:
            await find_common_slots("alice", ["eve"], day(9), day(13), 30, friend_graph)
        with pytest.raises(PermissionDenied) as unknown:
            await find_common_slots("alice", ["nobody"], day(9), day(13), 30, friend_graph)

        assert str(blocked.value) == str(unknown.value)

    @pytest.mark.asyncio
    async def test_sharing_disabled_is_rejected(self, friend_graph, day):
        friend_graph.add_friendship(
            "alice", "bob", status=FriendshipStatus.ACCEPTED, can_view_calendar=False
        )

        with pytest.raises(PermissionDenied) as exc_info:
            await find_common_slots("alice", ["bob"], day(9), day(13), 30, friend_graph)

        assert exc_info.value.participant_ids == ["bob"]

    @pytest.mark.asyncio
    async def test_error_payload_lists_ids(self, friend_graph, day):
        with pytest.raises(PermissionDenied) as exc_info:
            await find_common_slots("alice", ["dave"], day(9), day(13), 30, friend_graph)

        payload = exc_info.value.to_dict()
        assert payload["success"] is False
        assert payload["not_viewable_participant_ids"] == ["dave"]


class TestFindCommonSlotsValidation:
    """Tests for request validation."""

    @pytest.mark.asyncio
    async def test_empty_participants(self, friend_graph, day):
        with pytest.raises(ValidationError):
            await find_common_slots("alice", [], day(9), day(13), 30, friend_graph)

    @pytest.mark.asyncio
    async def test_inverted_window(self, friend_graph, day):
        with pytest.raises(ValidationError):
            await find_common_slots("alice", ["bob"], day(13), day(9), 30, friend_graph)

    @pytest.mark.asyncio
    async def test_zero_length_window(self, friend_graph, day):
        with pytest.raises(ValidationError):
            await find_common_slots("alice", ["bob"], day(9), day(9), 30, friend_graph)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration", [0, -30, 14, 241, True])
    async def test_duration_out_of_bounds(self, friend_graph, day, duration):
        with pytest.raises(ValidationError) as exc_info:
            await find_common_slots("alice", ["bob"], day(9), day(13), duration, friend_graph)
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_naive_bound_is_treated_as_utc(self, friend_graph, day):
        friend_graph.add_event("bob", day(9), day(10))
        naive_start = datetime(2026, 3, 2, 9, 0)

        slots = await find_common_slots("alice", ["bob"], naive_start, day(13), 30, friend_graph)

        assert slots[0] == Interval.from_datetimes(day(10), day(10, 30))

    @pytest.mark.asyncio
    async def test_mixed_naive_and_aware_inverted_window(self, friend_graph, day):
        naive_end = datetime(2026, 3, 2, 9, 0)
        with pytest.raises(ValidationError):
            await find_common_slots("alice", ["bob"], day(13), naive_end, 30, friend_graph)

    @pytest.mark.asyncio
    async def test_validation_runs_before_permission_checks(self, friend_graph, day):
        """A malformed request is a 400 even if participants are unreachable."""
        with pytest.raises(ValidationError):
            await find_common_slots("alice", ["dave"], day(13), day(9), 30, friend_graph)


class TestFindCommonSlotsConcurrency:
    """Tests for the bounded per-participant fan-out."""

    async def _peak_in_flight(self, store, day, config):
        in_flight = 0
        peak = 0
        original = store.fetch_busy_intervals

        async def slow(participant_id, window_start, window_end):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return await original(participant_id, window_start, window_end)

        with patch.object(store, "fetch_busy_intervals", slow):
            await find_common_slots("alice", ["bob", "carol"], day(9), day(10), 30, store, config)
        return peak

    @pytest.mark.asyncio
    async def test_fetches_run_concurrently(self, friend_graph, day):
        peak = await self._peak_in_flight(friend_graph, day, AvailabilityConfig())
        assert peak == 3

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, friend_graph, day):
        config = AvailabilityConfig(find_time={"max_concurrency": 1})
        peak = await self._peak_in_flight(friend_graph, day, config)
        assert peak == 1

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, friend_graph, day):
        async def boom(participant_id, window_start, window_end):
            raise ConnectionError("calendar backend unavailable")

        with patch.object(friend_graph, "fetch_busy_intervals", boom):
            with pytest.raises(ConnectionError):
                await find_common_slots("alice", ["bob"], day(9), day(10), 30, friend_graph)


# ─────────────────────────────────────────────────────────────────────────────
# confirm_slot Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestConfirmSlot:
    """Tests for turning a slot into an event."""

    @pytest.mark.asyncio
    async def test_creates_event_attendees_and_notifications(self, friend_graph, day):
        slot = Interval.from_datetimes(day(10, 30), day(11))

        event_id = await confirm_slot(
            "alice", slot, ["bob", "carol"], EventFields(title="Coffee"), friend_graph
        )

        event = await friend_graph.fetch_event(event_id)
        assert event.owner_id == "alice"
        assert event.title == "Coffee"
        assert (event.start_at, event.end_at) == (day(10, 30), day(11))

        attendees = {a.user_id: a for a in await friend_graph.fetch_attendees(event_id)}
        assert attendees["alice"].role == AttendeeRole.HOST
        assert attendees["alice"].status == AttendeeStatus.GOING
        assert attendees["bob"].status == AttendeeStatus.INVITED
        assert attendees["carol"].role == AttendeeRole.ATTENDEE

        assert friend_graph.count_rows("notifications", user_id="bob") == 1
        assert friend_graph.count_rows("notifications", user_id="carol") == 1
        assert friend_graph.count_rows("notifications", user_id="alice") == 0

    @pytest.mark.asyncio
    async def test_new_event_blocks_later_searches(self, friend_graph, day):
        slot = Interval.from_datetimes(day(9), day(9, 30))
        await confirm_slot("alice", slot, ["bob"], EventFields(title="Sync"), friend_graph)

        slots = await find_common_slots("alice", ["bob"], day(9), day(10), 30, friend_graph)

        assert slot not in slots
        assert slots[0] == Interval.from_datetimes(day(9, 30), day(10))

    @pytest.mark.asyncio
    async def test_solo_event_with_no_invitees(self, friend_graph, day):
        slot = Interval.from_datetimes(day(9), day(9, 30))
        event_id = await confirm_slot("alice", slot, [], EventFields(title="Focus"), friend_graph)

        attendees = await friend_graph.fetch_attendees(event_id)
        assert [a.user_id for a in attendees] == ["alice"]
        assert friend_graph.count_rows("notifications") == 0

    @pytest.mark.asyncio
    async def test_dedupes_invitees_and_skips_self(self, friend_graph, day):
        slot = Interval.from_datetimes(day(9), day(9, 30))
        event_id = await confirm_slot(
            "alice", slot, ["bob", "bob", "alice"], EventFields(title="Sync"), friend_graph
        )

        assert friend_graph.count_rows("attendees", event_id=event_id) == 2
        assert friend_graph.count_rows("notifications", user_id="bob") == 1

    @pytest.mark.asyncio
    async def test_blocked_invitee_rejects_whole_request(self, friend_graph, day):
        slot = Interval.from_datetimes(day(9), day(9, 30))

        with pytest.raises(ValidationError) as exc_info:
            await confirm_slot("alice", slot, ["eve"], EventFields(title="Sync"), friend_graph)

        assert exc_info.value.detail["invalid_ids"] == ["eve"]
        assert friend_graph.count_rows("events") == 0

    @pytest.mark.asyncio
    async def test_one_invalid_invitee_writes_nothing(self, friend_graph, day):
        slot = Interval.from_datetimes(day(9), day(9, 30))

        with pytest.raises(ValidationError) as exc_info:
            await confirm_slot(
                "alice", slot, ["bob", "dave", "nobody"], EventFields(title="Sync"), friend_graph
            )

        assert exc_info.value.detail["invalid_ids"] == ["dave", "nobody"]
        assert friend_graph.count_rows("events") == 0
        assert friend_graph.count_rows("attendees") == 0
        assert friend_graph.count_rows("notifications") == 0

    @pytest.mark.asyncio
    async def test_rejects_inverted_slot(self, friend_graph, day):
        slot = Interval(2_000, 1_000)
        with pytest.raises(ValidationError):
            await confirm_slot("alice", slot, ["bob"], EventFields(title="Sync"), friend_graph)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title", ["", "   ", "x" * 256])
    async def test_rejects_bad_title(self, friend_graph, day, title):
        slot = Interval.from_datetimes(day(9), day(9, 30))
        with pytest.raises(ValidationError):
            await confirm_slot("alice", slot, ["bob"], EventFields(title=title), friend_graph)

    @pytest.mark.asyncio
    async def test_write_failure_rolls_back_everything(self, friend_graph, day):
        """A failure on the second insert leaves no event behind."""
        slot = Interval.from_datetimes(day(9), day(9, 30))
        fixed = uuid.UUID(int=1)

        with patch("circlecal.store.sqlite_store.uuid.uuid4", return_value=fixed):
            with pytest.raises(TransactionFailed) as exc_info:
                await confirm_slot("alice", slot, ["bob"], EventFields(title="Sync"), friend_graph)

        assert exc_info.value.status_code == 500
        assert friend_graph.count_rows("events") == 0
        assert friend_graph.count_rows("attendees") == 0
        assert friend_graph.count_rows("notifications") == 0

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_event(self, friend_graph, day):
        slot = Interval.from_datetimes(day(9), day(9, 30))

        with patch.object(friend_graph, "notify_invited", side_effect=RuntimeError("push down")):
            event_id = await confirm_slot(
                "alice", slot, ["bob", "carol"], EventFields(title="Sync"), friend_graph
            )

        assert await friend_graph.fetch_event(event_id) is not None
        assert friend_graph.count_rows("attendees", event_id=event_id) == 3

    @pytest.mark.asyncio
    async def test_notifies_each_invitee_after_commit(self, friend_graph, day):
        slot = Interval.from_datetimes(day(9), day(9, 30))

        with patch.object(friend_graph, "notify_invited") as notify:
            event_id = await confirm_slot(
                "alice", slot, ["bob", "carol"], EventFields(title="Sync"), friend_graph
            )

        notified = sorted(call.args[0] for call in notify.await_args_list)
        assert notified == ["bob", "carol"]
        assert all(call.args[1] == event_id for call in notify.await_args_list)
