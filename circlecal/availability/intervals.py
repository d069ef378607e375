"""
Tool: Interval Algebra
Purpose: Pure functions over half-open time intervals for find-time

All instants are epoch milliseconds and every interval is half-open
[start, end). Nothing here performs I/O or knows about permissions.

Pipeline per request:
    busy -> merge_intervals -> invert_to_free   (once per participant)
    free lists -> intersect_free -> pick_slots  (once per request)

Usage:
    from circlecal.availability.intervals import Interval, merge_intervals

    merged = merge_intervals([Interval(0, 10), Interval(10, 20)])
    # [Interval(start=0, end=20)]
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

MINUTE_MS = 60 * 1000
STEP_MS = 15 * MINUTE_MS


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_epoch_ms(ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


@dataclass(frozen=True, order=True)
class Interval:
    """
    Half-open time span [start, end) in epoch milliseconds.

    Ordering compares start first, then end.
    """

    start: int
    end: int

    @property
    def duration_ms(self) -> int:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def contains(self, other: Interval) -> bool:
        """True if other lies entirely within this interval."""
        return self.start <= other.start and other.end <= self.end

    def to_datetimes(self) -> tuple[datetime, datetime]:
        return from_epoch_ms(self.start), from_epoch_ms(self.end)

    def to_dict(self) -> dict[str, str]:
        """ISO-8601 projection used in API and CLI output."""
        start, end = self.to_datetimes()
        return {"start_at": start.isoformat(), "end_at": end.isoformat()}

    @classmethod
    def from_datetimes(cls, start: datetime, end: datetime) -> Interval:
        return cls(to_epoch_ms(start), to_epoch_ms(end))


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """
    Merge overlapping or touching intervals.

    Input does not need to be sorted. Empty intervals are dropped. The
    result is sorted and non-overlapping; [10:00, 11:00) and [11:00, 12:00)
    merge into [10:00, 12:00).
    """
    ordered = sorted(iv for iv in intervals if not iv.is_empty)
    if not ordered:
        return []

    merged = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)

    return merged


def invert_to_free(busy: Sequence[Interval], bounds: Interval) -> list[Interval]:
    """
    Return the free gaps of bounds not covered by busy.

    Args:
        busy: Merged, sorted busy intervals (output of merge_intervals)
        bounds: Query window

    Returns:
        Sorted free intervals clipped to bounds
    """
    free: list[Interval] = []
    cursor = bounds.start

    for block in busy:
        if block.start > cursor:
            free.append(Interval(cursor, min(block.start, bounds.end)))
        cursor = max(cursor, block.end)
        if cursor >= bounds.end:
            break

    if cursor < bounds.end:
        free.append(Interval(cursor, bounds.end))

    return free


def _intersect_two(a: Sequence[Interval], b: Sequence[Interval]) -> list[Interval]:
    """Two-pointer sweep over two sorted interval lists."""
    out: list[Interval] = []
    i = j = 0

    while i < len(a) and j < len(b):
        start = max(a[i].start, b[j].start)
        end = min(a[i].end, b[j].end)
        if start < end:
            out.append(Interval(start, end))

        # Advance whichever interval ends first
        if a[i].end < b[j].end:
            i += 1
        else:
            j += 1

    return out


def intersect_free(participant_free_lists: Sequence[Sequence[Interval]]) -> list[Interval]:
    """
    Time spans free for every participant.

    Folds the pairwise sweep across all lists and stops as soon as the
    running intersection is empty.
    """
    if not participant_free_lists:
        return []

    result = list(participant_free_lists[0])
    for free in participant_free_lists[1:]:
        if not result:
            break
        result = _intersect_two(result, free)

    return result


def align_up(ms: int, origin: int = 0, step_ms: int = STEP_MS) -> int:
    """Round ms up to the next step boundary counted from origin."""
    remainder = (ms - origin) % step_ms
    return ms if remainder == 0 else ms + (step_ms - remainder)


def pick_slots(
    free_intervals: Sequence[Interval],
    duration_ms: int,
    limit: int = 5,
    origin: int = 0,
    step_ms: int = STEP_MS,
) -> list[Interval]:
    """
    Enumerate candidate slots of a fixed duration, earliest first.

    Within each free interval the first candidate starts on the next grid
    boundary and later candidates step by step_ms, so slots from the same
    gap may overlap each other.

    Args:
        free_intervals: Sorted free intervals
        duration_ms: Slot length, must be positive
        limit: Maximum number of slots returned overall
        origin: Grid anchor, normally the query window start
        step_ms: Grid spacing

    Returns:
        Up to limit slots, each fully inside one free interval
    """
    if duration_ms <= 0:
        raise ValueError(f"duration_ms must be positive, got {duration_ms}")

    slots: list[Interval] = []
    if limit <= 0:
        return slots

    for free in free_intervals:
        slot_start = align_up(free.start, origin, step_ms)
        while slot_start + duration_ms <= free.end:
            slots.append(Interval(slot_start, slot_start + duration_ms))
            if len(slots) >= limit:
                return slots
            slot_start += step_ms

    return slots


__all__ = [
    "Interval",
    "MINUTE_MS",
    "STEP_MS",
    "align_up",
    "from_epoch_ms",
    "intersect_free",
    "invert_to_free",
    "merge_intervals",
    "pick_slots",
    "to_epoch_ms",
]
