"""
Friendship authorization helpers.

A pair of users has one friendship row, stored with a direction (who sent
the request). Every question about a pair goes through relationship_between,
which reads both orderings so no call site repeats the two-lookup pattern.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from circlecal.fanout import bounded_map
from circlecal.policies.models import FriendRelationship, FriendshipStatus
from circlecal.store.base import CalendarStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Relationship:
    """
    Both directed rows between user_a and user_b.

    forward is the row user_a -> user_b, reverse is user_b -> user_a.
    """

    user_a: str
    user_b: str
    forward: FriendRelationship | None = None
    reverse: FriendRelationship | None = None

    @property
    def edges(self) -> list[FriendRelationship]:
        return [edge for edge in (self.forward, self.reverse) if edge is not None]

    @property
    def exists(self) -> bool:
        return bool(self.edges)

    @property
    def blocked(self) -> bool:
        """A block in either direction."""
        return any(edge.status == FriendshipStatus.BLOCKED for edge in self.edges)

    @property
    def accepted(self) -> FriendRelationship | None:
        """
        The accepted edge, preferring user_a -> user_b.

        The forward row carries any override user_b set when accepting
        user_a's request, so it wins when both exist.
        """
        for edge in self.edges:
            if edge.status == FriendshipStatus.ACCEPTED:
                return edge
        return None

    @property
    def are_friends(self) -> bool:
        return not self.blocked and self.accepted is not None


async def relationship_between(store: CalendarStore, user_a: str, user_b: str) -> Relationship:
    """Read the friendship rows between two users in both directions."""
    forward, reverse = await asyncio.gather(
        store.fetch_relationship(user_a, user_b),
        store.fetch_relationship(user_b, user_a),
    )
    return Relationship(user_a=user_a, user_b=user_b, forward=forward, reverse=reverse)


async def is_blocked(store: CalendarStore, user_id: str, target_user_id: str) -> bool:
    relationship = await relationship_between(store, user_id, target_user_id)
    return relationship.blocked


async def are_friends(store: CalendarStore, user_id: str, target_user_id: str) -> bool:
    """Accepted friends in either direction, with no block between them."""
    relationship = await relationship_between(store, user_id, target_user_id)
    return relationship.are_friends


async def relationship_status(store: CalendarStore, user_id: str, target_user_id: str) -> str:
    """
    Relationship from user_id's point of view, for display.

    Returns one of 'none', 'pending_incoming', 'pending_outgoing', 'friends'.
    A block reads as 'none' so its existence is not revealed.
    """
    relationship = await relationship_between(store, user_id, target_user_id)

    if relationship.blocked:
        return "none"
    if relationship.accepted is not None:
        return "friends"
    if relationship.forward and relationship.forward.status == FriendshipStatus.PENDING:
        return "pending_outgoing"
    if relationship.reverse and relationship.reverse.status == FriendshipStatus.PENDING:
        return "pending_incoming"
    return "none"


async def find_invalid_invitees(
    store: CalendarStore,
    requester_id: str,
    invitee_ids: Sequence[str],
    max_concurrency: int = 8,
) -> list[str]:
    """
    Invitees that are blocked or not accepted friends of the requester.

    Returns:
        Invalid ids in the order they were supplied
    """
    relationships = await bounded_map(
        lambda invitee_id: relationship_between(store, requester_id, invitee_id),
        list(invitee_ids),
        max_concurrency,
    )
    invalid = [rel.user_b for rel in relationships if not rel.are_friends]
    if invalid:
        logger.info("%d of %d invitees failed friendship checks", len(invalid), len(invitee_ids))
    return invalid
