"""
Tool: Calendar Access Policy
Purpose: Decide whether, and in how much detail, a viewer may see a calendar

Enforces, in order:
1. Self-view is always full detail
2. Blocks (either direction) deny everything
3. Only an accepted friendship with calendar sharing on grants access
4. Detail level: per-friend override, else the owner's account default,
   else BUSY_ONLY

Friendship direction:
- Prefers the viewer -> owner row (owner accepted the viewer's request and
  may have set an override for that viewer)
- Falls back to owner -> viewer

Permissions are recomputed on every call. Nothing is cached, and being
allowed to see one owner's calendar says nothing about another's.

Usage:
    from circlecal.policies.calendar_access import resolve_permission

    permission = await resolve_permission(owner_id="bob", viewer_id="alice", store=store)
    if permission.allowed:
        ...
"""

import logging
from collections.abc import Sequence

from circlecal.fanout import bounded_map
from circlecal.policies.friendship import relationship_between
from circlecal.policies.models import CalendarPermission, DetailLevel
from circlecal.store.base import CalendarStore

logger = logging.getLogger(__name__)

FALLBACK_DETAIL_LEVEL = DetailLevel.BUSY_ONLY


async def resolve_permission(
    owner_id: str,
    viewer_id: str,
    store: CalendarStore,
) -> CalendarPermission:
    """
    Effective permission for viewer_id to see owner_id's calendar.

    Args:
        owner_id: Calendar owner
        viewer_id: User asking to see it
        store: Source of friendship rows and account defaults

    Returns:
        CalendarPermission; denied results carry no detail level
    """
    if owner_id == viewer_id:
        return CalendarPermission.granted(DetailLevel.DETAILS)

    relationship = await relationship_between(store, viewer_id, owner_id)

    if relationship.blocked:
        return CalendarPermission.denied()

    edge = relationship.accepted
    if edge is None or not edge.can_view_calendar:
        return CalendarPermission.denied()

    if edge.detail_level is not None:
        return CalendarPermission.granted(edge.detail_level)

    default_level = await store.fetch_default_detail_level(owner_id)
    return CalendarPermission.granted(default_level or FALLBACK_DETAIL_LEVEL)


async def resolve_permissions(
    owner_ids: Sequence[str],
    viewer_id: str,
    store: CalendarStore,
    max_concurrency: int = 8,
) -> dict[str, CalendarPermission]:
    """
    Resolve one permission per owner concurrently.

    Each owner is resolved independently; results are keyed by owner id.
    """
    owners = list(dict.fromkeys(owner_ids))
    permissions = await bounded_map(
        lambda owner_id: resolve_permission(owner_id, viewer_id, store),
        owners,
        max_concurrency,
    )
    denied = [owner for owner, perm in zip(owners, permissions) if not perm.allowed]
    if denied:
        logger.debug("Viewer %s denied for %d of %d calendars", viewer_id, len(denied), len(owners))
    return dict(zip(owners, permissions))
