"""
Friend service for managing friend requests and friendships.

A connection row is directed (user_id sent the request to friend_id) and
moves pending -> accepted. Rejecting or unfriending deletes the row. At most
one connection exists per unordered pair of users.
"""

from typing import List, Dict, Set, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, and_, or_, case
from sqlalchemy.exc import IntegrityError
from sports_buddy.database.models import (
    Connection,
    ConnectionStatus,
    Profile,
)
from sports_buddy.services.profile_service import profile_summary
from sports_buddy.utils.constants import (
    DEFAULT_SUGGESTION_RADIUS_KM,
    MAX_FRIEND_SUGGESTIONS,
    MAX_USER_SEARCH_RESULTS,
    MIN_SEARCH_QUERY_LENGTH,
    SUGGESTION_DISTANCE_MAX_POINTS,
    SUGGESTION_DISTANCE_METERS_PER_POINT,
    SUGGESTION_MIN_SCORE,
    SUGGESTION_MUTUAL_FRIEND_POINTS,
    SUGGESTION_MUTUAL_SPORT_POINTS,
    SUGGESTION_SKILL_MATCH_POINTS,
)
from sports_buddy.utils.datetime_utils import isoformat
from sports_buddy.utils.errors import ConflictError, NotFoundError, ValidationError
from sports_buddy.utils.geo_utils import haversine_distance_meters
import logging

logger = logging.getLogger(__name__)


def connection_to_dict(connection: Connection) -> Dict:
    return {
        "id": connection.id,
        "user_id": connection.user_id,
        "friend_id": connection.friend_id,
        "status": connection.status,
        "created_at": isoformat(connection.created_at),
        "user": profile_summary(connection.user),
        "friend": profile_summary(connection.friend),
    }


def _pair_filter(user_id: str, other_id: str):
    return or_(
        and_(Connection.user_id == user_id, Connection.friend_id == other_id),
        and_(Connection.user_id == other_id, Connection.friend_id == user_id),
    )


async def get_connection_between(
    session: AsyncSession, user_id: str, other_id: str
) -> Optional[Connection]:
    """
    Get the connection between two users in either direction, whatever its status.
    """
    result = await session.execute(select(Connection).where(_pair_filter(user_id, other_id)))
    return result.scalars().first()


async def get_friend_ids(session: AsyncSession, user_id: str) -> Set[str]:
    """
    Get the set of all accepted friend ids for a given user.

    Args:
        session: Database session
        user_id: User to look up friends for

    Returns:
        Set of friend user IDs
    """
    result = await session.execute(
        select(
            case(
                (Connection.user_id == user_id, Connection.friend_id),
                else_=Connection.user_id,
            )
        ).where(
            and_(
                or_(Connection.user_id == user_id, Connection.friend_id == user_id),
                Connection.status == ConnectionStatus.ACCEPTED.value,
            )
        )
    )
    return set(result.scalars().all())


async def get_connected_ids(session: AsyncSession, user_id: str) -> Set[str]:
    """Ids of every user with a connection to ``user_id`` in any status."""
    result = await session.execute(
        select(Connection.user_id, Connection.friend_id).where(
            or_(Connection.user_id == user_id, Connection.friend_id == user_id)
        )
    )
    return {friend if owner == user_id else owner for owner, friend in result.all()}


async def send_friend_request(session: AsyncSession, user_id: str, friend_id: Optional[str]) -> Dict:
    """
    Send a friend request from one user to another.

    Validates that the users aren't already connected in either direction.

    Args:
        session: Database session
        user_id: User sending the request
        friend_id: User receiving the request

    Returns:
        Dict with connection data

    Raises:
        ValidationError: If friend_id is missing or is the sender
        NotFoundError: If the receiving profile does not exist
        ConflictError: If the users are already friends or a request exists
    """
    if not friend_id:
        raise ValidationError("Friend ID is required")
    if friend_id == user_id:
        raise ValidationError("Cannot send friend request to yourself")

    target = await session.execute(select(Profile.id).where(Profile.id == friend_id))
    if target.scalar_one_or_none() is None:
        raise NotFoundError("User not found")

    existing = await get_connection_between(session, user_id, friend_id)
    if existing:
        if existing.status == ConnectionStatus.ACCEPTED.value:
            raise ConflictError("Already friends")
        raise ConflictError("Friend request already exists")

    connection = Connection(
        user_id=user_id,
        friend_id=friend_id,
        status=ConnectionStatus.PENDING.value,
    )
    # A crossed request from the other side may commit between the check above
    # and this insert; the unordered-pair index rejects it.
    try:
        async with session.begin_nested():
            session.add(connection)
            await session.flush()
    except IntegrityError:
        logger.info(f"Concurrent friend request between {user_id} and {friend_id} rejected")
        raise ConflictError("Friend request already exists")

    result = await session.execute(
        select(Connection)
        .where(Connection.id == connection.id)
        .execution_options(populate_existing=True)
    )
    connection = result.scalar_one()

    logger.info(f"Friend request {connection.id} sent from {user_id} to {friend_id}")
    return connection_to_dict(connection)


async def accept_friend_request(session: AsyncSession, connection_id: str, user_id: str) -> Dict:
    """
    Accept a pending friend request. Only the receiver can accept.

    Raises:
        NotFoundError: If no pending request with this id is addressed to the user
    """
    result = await session.execute(
        select(Connection).where(
            and_(
                Connection.id == connection_id,
                Connection.friend_id == user_id,
                Connection.status == ConnectionStatus.PENDING.value,
            )
        )
    )
    connection = result.scalar_one_or_none()
    if connection is None:
        raise NotFoundError("Friend request not found or already processed")

    connection.status = ConnectionStatus.ACCEPTED.value
    await session.flush()
    return connection_to_dict(connection)


async def reject_friend_request(session: AsyncSession, connection_id: str, user_id: str) -> int:
    """
    Reject (delete) a pending friend request addressed to the user.

    Returns:
        Number of rows deleted; zero is not an error
    """
    result = await session.execute(
        delete(Connection).where(
            and_(
                Connection.id == connection_id,
                Connection.friend_id == user_id,
                Connection.status == ConnectionStatus.PENDING.value,
            )
        )
    )
    await session.flush()
    return result.rowcount


async def remove_friend(session: AsyncSession, user_id: str, friend_id: str) -> int:
    """
    Remove an accepted friendship, whichever side sent the original request.

    Returns:
        Number of rows deleted
    """
    result = await session.execute(
        delete(Connection).where(
            and_(
                _pair_filter(user_id, friend_id),
                Connection.status == ConnectionStatus.ACCEPTED.value,
            )
        )
    )
    await session.flush()
    return result.rowcount


async def get_friends(session: AsyncSession, user_id: str) -> List[Dict]:
    """
    List accepted friendships, each projected onto the other party.

    Returns:
        List of dicts with connection_id, friend, created_at
    """
    result = await session.execute(
        select(Connection)
        .where(
            and_(
                or_(Connection.user_id == user_id, Connection.friend_id == user_id),
                Connection.status == ConnectionStatus.ACCEPTED.value,
            )
        )
        .order_by(Connection.created_at.desc())
    )
    friends = []
    for connection in result.scalars().all():
        other = connection.friend if connection.user_id == user_id else connection.user
        friends.append(
            {
                "connection_id": connection.id,
                "friend": profile_summary(other),
                "created_at": isoformat(connection.created_at),
            }
        )
    return friends


async def get_pending_requests(session: AsyncSession, user_id: str) -> List[Dict]:
    """Incoming pending requests, newest first."""
    result = await session.execute(
        select(Connection)
        .where(
            and_(
                Connection.friend_id == user_id,
                Connection.status == ConnectionStatus.PENDING.value,
            )
        )
        .order_by(Connection.created_at.desc())
    )
    return [
        {
            "id": connection.id,
            "created_at": isoformat(connection.created_at),
            "user": profile_summary(connection.user),
        }
        for connection in result.scalars().all()
    ]


async def search_users(session: AsyncSession, user_id: str, query: Optional[str]) -> List[Dict]:
    """
    Case-insensitive username search annotated with the caller's relationship.

    relationship_status is one of none, friends, request_sent, request_received.

    Raises:
        ValidationError: If the query is shorter than two characters
    """
    if not query or len(query.strip()) < MIN_SEARCH_QUERY_LENGTH:
        raise ValidationError("Search query must be at least 2 characters")

    pattern = f"%{query.strip().lower()}%"
    result = await session.execute(
        select(Profile)
        .where(and_(func.lower(Profile.username).like(pattern), Profile.id != user_id))
        .order_by(Profile.username)
        .limit(MAX_USER_SEARCH_RESULTS)
    )
    profiles = result.scalars().all()

    conn_result = await session.execute(
        select(Connection).where(
            or_(Connection.user_id == user_id, Connection.friend_id == user_id)
        )
    )
    by_other = {}
    for connection in conn_result.scalars().all():
        other = connection.friend_id if connection.user_id == user_id else connection.user_id
        by_other[other] = connection

    users = []
    for profile in profiles:
        data = profile_summary(profile)
        connection = by_other.get(profile.id)
        if connection is None:
            status = "none"
        elif connection.status == ConnectionStatus.ACCEPTED.value:
            status = "friends"
        elif connection.user_id == user_id:
            status = "request_sent"
        else:
            status = "request_received"
        data["relationship_status"] = status
        data["connection_id"] = connection.id if connection else None
        users.append(data)
    return users


def suggestion_score(
    distance_meters: float, mutual_sports: int, mutual_friends: int, same_skill: bool
) -> float:
    """Closer, shared sports, shared friends and matching skill all raise the score."""
    score = max(
        0.0,
        SUGGESTION_DISTANCE_MAX_POINTS - distance_meters / SUGGESTION_DISTANCE_METERS_PER_POINT,
    )
    score += mutual_sports * SUGGESTION_MUTUAL_SPORT_POINTS
    score += mutual_friends * SUGGESTION_MUTUAL_FRIEND_POINTS
    if same_skill:
        score += SUGGESTION_SKILL_MATCH_POINTS
    return score


async def get_friend_suggestions(
    session: AsyncSession, user_id: str, radius_km: float = DEFAULT_SUGGESTION_RADIUS_KM
) -> List[Dict]:
    """
    Suggest nearby users the caller has no connection with.

    Candidates are profiles within ``radius_km`` of the caller, excluding the
    caller and every user they already have a connection with (pending or
    accepted). Each is scored with ``suggestion_score``; only scores above the
    minimum are kept, ordered by score then distance.

    Raises:
        NotFoundError: If the caller has no profile
        ValidationError: If the caller has no location
    """
    result = await session.execute(select(Profile).where(Profile.id == user_id))
    me = result.scalar_one_or_none()
    if me is None:
        raise NotFoundError("Profile not found")
    if me.location is None:
        raise ValidationError("Location required for suggestions")

    radius_meters = radius_km * 1000
    excluded = await get_connected_ids(session, user_id)
    excluded.add(user_id)

    candidates_result = await session.execute(
        select(Profile).where(and_(Profile.location.isnot(None), Profile.id.notin_(excluded)))
    )
    nearby = []
    for candidate in candidates_result.scalars().all():
        distance = haversine_distance_meters(me.location, candidate.location)
        if distance <= radius_meters:
            nearby.append((candidate, distance))
    if not nearby:
        return []

    my_sports = {us.sport_id for us in me.user_sports}
    my_friends = await get_friend_ids(session, user_id)

    suggestions = []
    for candidate, distance in nearby:
        mutual_sports = len(my_sports & {us.sport_id for us in candidate.user_sports})
        mutual_friends = len(my_friends & await get_friend_ids(session, candidate.id))
        same_skill = me.skill_level is not None and candidate.skill_level == me.skill_level
        score = suggestion_score(distance, mutual_sports, mutual_friends, same_skill)
        if score <= SUGGESTION_MIN_SCORE:
            continue
        data = profile_summary(candidate)
        data.update(
            {
                "distance_meters": distance,
                "distance_km": round(distance / 1000, 1),
                "mutual_sports_count": mutual_sports,
                "mutual_friends_count": mutual_friends,
                "suggestion_score": score,
            }
        )
        suggestions.append(data)

    suggestions.sort(key=lambda s: (-s["suggestion_score"], s["distance_meters"]))
    return suggestions[:MAX_FRIEND_SUGGESTIONS]
