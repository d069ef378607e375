"""
Tool: Find-Time CLI
Purpose: Command-line access to the availability engine

Usage:
    # Find common slots with friends
    python -m circlecal.cli --user alice --find-time --participants bob,carol \
        --from 2026-03-02T09:00:00+00:00 --to 2026-03-02T13:00:00+00:00 --duration 30

    # Confirm a slot as an event and invite friends
    python -m circlecal.cli --user alice --confirm --title "Lunch" \
        --start 2026-03-02T10:30:00+00:00 --end 2026-03-02T11:00:00+00:00 --invitees bob,carol

    # Check calendar permission for a viewer
    python -m circlecal.cli --user alice --permission bob

    # View a friend's calendar (redacted)
    python -m circlecal.cli --user alice --calendar bob --from ... --to ...

    # View a single event
    python -m circlecal.cli --user alice --event <event-id>

Dependencies:
    - pyyaml, pydantic (config)
    - structlog (logging)
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from circlecal.availability.intervals import Interval
from circlecal.availability.orchestrator import confirm_slot, find_common_slots
from circlecal.config_models import AvailabilityConfig, load_availability_config
from circlecal.errors import CircleCalError
from circlecal.logging_config import setup_logging
from circlecal.policies.calendar_access import resolve_permission
from circlecal.policies.models import CoverMode, EventFields, EventVisibility
from circlecal.policies.redaction import view_event, view_friend_calendar
from circlecal.store.sqlite_store import SqliteCalendarStore


def _split_ids(value: str | None) -> list[str]:
    return [x.strip() for x in value.split(",") if x.strip()] if value else []


def _parse_time(value: str | None, flag: str) -> datetime:
    if not value:
        raise CircleCalError(f"{flag} is required")
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise CircleCalError(f"{flag} must be an ISO-8601 datetime, got {value!r}") from None


async def run(args: argparse.Namespace, store: SqliteCalendarStore, config: AvailabilityConfig) -> dict[str, Any]:
    """Dispatch one CLI action and return a tool-result dict."""
    try:
        if args.find_time:
            slots = await find_common_slots(
                requester_id=args.user,
                participant_ids=_split_ids(args.participants),
                window_start=_parse_time(args.from_time, "--from"),
                window_end=_parse_time(args.to_time, "--to"),
                duration_minutes=args.duration,
                store=store,
                config=config,
            )
            return {"success": True, "slots": [slot.to_dict() for slot in slots]}

        if args.confirm:
            slot = Interval.from_datetimes(
                _parse_time(args.start, "--start"),
                _parse_time(args.end, "--end"),
            )
            fields = EventFields.from_dict(
                {
                    "title": args.title or "",
                    "timezone": args.timezone,
                    "visibility": args.visibility,
                    "cover_mode": args.cover_mode,
                    "location_name": args.location,
                }
            )
            event_id = await confirm_slot(
                args.user, slot, _split_ids(args.invitees), fields, store, config
            )
            return {"success": True, "event_id": event_id}

        if args.permission:
            permission = await resolve_permission(owner_id=args.permission, viewer_id=args.user, store=store)
            return {"success": True, "permission": permission.to_dict()}

        if args.calendar:
            permission, events = await view_friend_calendar(
                owner_id=args.calendar,
                viewer_id=args.user,
                window_start=_parse_time(args.from_time, "--from"),
                window_end=_parse_time(args.to_time, "--to"),
                store=store,
                config=config.redaction,
            )
            return {
                "success": True,
                "permission": permission.to_dict(),
                "events": [e.to_dict() for e in events],
            }

        if args.event:
            view = await view_event(args.event, args.user, store, config.redaction)
            return {"success": True, **view.to_dict()}

    except CircleCalError as e:
        return e.to_dict()

    return {"success": False, "error": "No action given"}


def main():
    parser = argparse.ArgumentParser(
        description="Find common free time with friends and manage calendar privacy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--user", required=True, help="Acting user id")
    parser.add_argument("--db", help="SQLite database path (default: data/calendar.db)")

    # Actions (mutually exclusive)
    actions = parser.add_mutually_exclusive_group(required=True)
    actions.add_argument("--find-time", action="store_true", help="Find common free slots")
    actions.add_argument("--confirm", action="store_true", help="Create an event from a slot")
    actions.add_argument("--permission", metavar="OWNER_ID", help="Show calendar permission for an owner")
    actions.add_argument("--calendar", metavar="OWNER_ID", help="View an owner's calendar")
    actions.add_argument("--event", metavar="EVENT_ID", help="View a single event")

    # Window arguments
    parser.add_argument("--from", dest="from_time", help="Window start (ISO format)")
    parser.add_argument("--to", dest="to_time", help="Window end (ISO format)")

    # Find-time arguments
    parser.add_argument("--participants", help="Participant ids (comma-separated)")
    parser.add_argument("--duration", type=int, default=30, help="Duration in minutes")

    # Confirm arguments
    parser.add_argument("--start", help="Slot start (ISO format)")
    parser.add_argument("--end", help="Slot end (ISO format)")
    parser.add_argument("--title", help="Event title")
    parser.add_argument("--invitees", help="Invitee ids (comma-separated)")
    parser.add_argument("--timezone", default="UTC", help="Event timezone")
    parser.add_argument("--location", help="Location name")
    parser.add_argument(
        "--visibility",
        default=EventVisibility.FRIENDS.value,
        choices=[v.value for v in EventVisibility],
    )
    parser.add_argument(
        "--cover-mode",
        default=CoverMode.NONE.value,
        choices=[c.value for c in CoverMode],
    )

    args = parser.parse_args()

    setup_logging()
    config = load_availability_config()
    store = SqliteCalendarStore(Path(args.db) if args.db else None, invites=config.invites)

    result = asyncio.run(run(args, store, config))

    if result.get("success"):
        print("OK")
    else:
        print(f"ERROR: {result.get('error')}")

    print(json.dumps(result, indent=2, default=str))

    if not result.get("success"):
        sys.exit(1)


if __name__ == "__main__":
    main()
