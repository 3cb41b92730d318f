"""
Match service: listing, creation, updates and membership (join, leave, invite).

Capacity counts confirmed participants only. The match status follows the
count: it becomes "full" when the last slot is taken and returns to "open"
when someone leaves a full match. All writes for one operation happen in the
caller's transaction, so the status flip commits or rolls back together with
the membership change.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, and_, or_
from sports_buddy.database.models import (
    Match,
    MatchParticipant,
    MatchStatus,
    ParticipantStatus,
    Profile,
    Sport,
)
from sports_buddy.services.profile_service import profile_summary, profile_to_dict
from sports_buddy.services.sport_service import sport_to_dict
from sports_buddy.utils.constants import (
    DEFAULT_MATCH_DURATION,
    DEFAULT_MAX_PARTICIPANTS,
    DEFAULT_SEARCH_RADIUS,
    DEFAULT_SKILL_LEVEL_REQUIRED,
    MAX_SEARCH_RESULTS,
    NEARBY_CANDIDATE_LIMIT,
)
from sports_buddy.utils.datetime_utils import ensure_utc, isoformat, utcnow
from sports_buddy.utils.errors import (
    CapacityError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from sports_buddy.utils.geo_utils import GeoPoint, filter_by_distance, point_from_pair
import logging

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "sport_id",
    "title",
    "description",
    "location",
    "location_name",
    "scheduled_at",
    "duration",
    "max_participants",
    "skill_level_required",
    "status",
)


def participant_to_dict(participant: MatchParticipant) -> Dict:
    return {
        "id": participant.id,
        "match_id": participant.match_id,
        "user_id": participant.user_id,
        "status": participant.status,
        "joined_at": isoformat(participant.joined_at),
        "user": profile_summary(participant.user),
    }


def match_to_dict(match: Match, include_participants: bool = True) -> Dict:
    """Serialize a match with nested sport and creator (and participants)."""
    data = {
        "id": match.id,
        "created_by": match.created_by,
        "sport_id": match.sport_id,
        "title": match.title,
        "description": match.description,
        "location": match.location.to_dict() if match.location else None,
        "location_name": match.location_name,
        "scheduled_at": isoformat(match.scheduled_at),
        "duration": match.duration,
        "max_participants": match.max_participants,
        "skill_level_required": match.skill_level_required,
        "status": match.status,
        "created_at": isoformat(match.created_at),
        "updated_at": isoformat(match.updated_at),
        "sport": sport_to_dict(match.sport),
        "creator": profile_to_dict(match.creator, include_sports=False),
    }
    if include_participants:
        data["participants"] = [participant_to_dict(p) for p in match.participants]
    return data


async def _load_match(
    session: AsyncSession, match_id: str, for_update: bool = False
) -> Optional[Match]:
    query = select(Match).where(Match.id == match_id).execution_options(populate_existing=True)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def _load_participant(session: AsyncSession, participant_id: str) -> MatchParticipant:
    result = await session.execute(
        select(MatchParticipant)
        .where(MatchParticipant.id == participant_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def count_confirmed(session: AsyncSession, match_id: str) -> int:
    """Number of confirmed participants in a match."""
    result = await session.execute(
        select(func.count(MatchParticipant.id)).where(
            and_(
                MatchParticipant.match_id == match_id,
                MatchParticipant.status == ParticipantStatus.CONFIRMED.value,
            )
        )
    )
    return result.scalar_one() or 0


async def get_match(session: AsyncSession, match_id: str) -> Optional[Dict]:
    """
    Get full match detail with nested sport, creator and participants.

    Returns:
        Match dict or None if not found
    """
    match = await _load_match(session, match_id)
    return match_to_dict(match) if match else None


async def get_match_creator_id(session: AsyncSession, match_id: str) -> Optional[str]:
    result = await session.execute(select(Match.created_by).where(Match.id == match_id))
    return result.scalar_one_or_none()


async def list_matches(
    session: AsyncSession,
    status: str = MatchStatus.OPEN.value,
    sport_id: Optional[str] = None,
    skill_level: Optional[str] = None,
    search: Optional[str] = None,
    search_type: Optional[str] = None,
    location: Optional[GeoPoint] = None,
    radius: float = DEFAULT_SEARCH_RADIUS,
    limit: int = MAX_SEARCH_RESULTS,
) -> List[Dict]:
    """
    List upcoming matches with optional filters.

    Only matches scheduled in the future are returned, ordered by schedule
    time. Text search applies when ``search`` is longer than two characters:
    ``search_type`` "location" matches the location label, "title" matches
    title or description, "creator" matches the creator's username or full
    name, and anything else matches title, description or location label.
    With a ``location``, results are restricted to ``radius`` meters and
    ordered nearest first with a ``distance`` in meters.
    """
    query = select(Match).where(
        and_(Match.status == status, Match.scheduled_at >= utcnow())
    )
    if sport_id:
        query = query.where(Match.sport_id == sport_id)
    if skill_level and skill_level != "any":
        query = query.where(Match.skill_level_required == skill_level)

    term = search.strip().lower() if search else ""
    if len(term) > 2:
        pattern = f"%{term}%"
        if search_type == "location":
            query = query.where(func.lower(Match.location_name).like(pattern))
        elif search_type == "title":
            query = query.where(
                or_(
                    func.lower(Match.title).like(pattern),
                    func.lower(Match.description).like(pattern),
                )
            )
        elif search_type == "creator":
            query = query.join(Profile, Profile.id == Match.created_by).where(
                or_(
                    func.lower(Profile.username).like(pattern),
                    func.lower(Profile.full_name).like(pattern),
                )
            )
        else:
            query = query.where(
                or_(
                    func.lower(Match.title).like(pattern),
                    func.lower(Match.description).like(pattern),
                    func.lower(Match.location_name).like(pattern),
                )
            )

    result = await session.execute(
        query.order_by(Match.scheduled_at).limit(NEARBY_CANDIDATE_LIMIT)
    )
    matches = result.scalars().all()

    if location is None:
        return [match_to_dict(m) for m in matches[:limit]]

    nearby = filter_by_distance(matches, location, radius, lambda m: m.location)
    items = []
    for match, distance in nearby[:limit]:
        data = match_to_dict(match)
        data["distance"] = distance
        items.append(data)
    return items


async def get_user_matches(session: AsyncSession, user_id: str) -> Dict[str, List[Dict]]:
    """
    Matches a user created and matches they participate in (excluding their own).

    Both lists are ordered by schedule time, latest first.
    """
    created_result = await session.execute(
        select(Match).where(Match.created_by == user_id).order_by(Match.scheduled_at.desc())
    )
    created = created_result.scalars().all()

    participated_result = await session.execute(
        select(Match)
        .join(MatchParticipant, MatchParticipant.match_id == Match.id)
        .where(and_(MatchParticipant.user_id == user_id, Match.created_by != user_id))
        .order_by(Match.scheduled_at.desc())
    )
    participated = participated_result.scalars().unique().all()

    return {
        "created": [match_to_dict(m) for m in created],
        "participated": [match_to_dict(m) for m in participated],
    }


async def create_match(
    session: AsyncSession,
    creator_id: str,
    sport_id: str,
    title: str,
    location: Any,
    location_name: str,
    scheduled_at: datetime,
    description: Optional[str] = None,
    duration: Optional[int] = None,
    max_participants: Optional[int] = None,
    skill_level_required: Optional[str] = None,
) -> Dict:
    """
    Create a match and enroll the creator as its first confirmed participant.

    Args:
        location: GeoPoint or a [longitude, latitude] pair

    Raises:
        NotFoundError: If the sport does not exist
        ValidationError: If the location is invalid
    """
    point = location if isinstance(location, GeoPoint) else point_from_pair(location)

    sport_result = await session.execute(select(Sport.id).where(Sport.id == sport_id))
    if sport_result.scalar_one_or_none() is None:
        raise NotFoundError("Sport not found")

    match = Match(
        created_by=creator_id,
        sport_id=sport_id,
        title=title,
        description=description,
        location=point,
        location_name=location_name,
        scheduled_at=ensure_utc(scheduled_at),
        duration=duration or DEFAULT_MATCH_DURATION,
        max_participants=max_participants or DEFAULT_MAX_PARTICIPANTS,
        skill_level_required=skill_level_required or DEFAULT_SKILL_LEVEL_REQUIRED,
        status=MatchStatus.OPEN.value,
    )
    session.add(match)
    await session.flush()

    session.add(
        MatchParticipant(
            match_id=match.id,
            user_id=creator_id,
            status=ParticipantStatus.CONFIRMED.value,
        )
    )
    if match.max_participants <= 1:
        match.status = MatchStatus.FULL.value
    await session.flush()

    logger.info(f"Match {match.id} created by {creator_id}")
    return match_to_dict(await _load_match(session, match.id))


async def update_match(session: AsyncSession, match_id: str, fields: Dict[str, Any]) -> Dict:
    """
    Partially update a match. A location pair is re-encoded as a point.

    Unless the match is cancelled, its status is recomputed from the confirmed
    count and the (possibly new) max_participants. An explicit "open" or
    "full" is only accepted when it agrees with that count.

    Raises:
        NotFoundError: If the match does not exist
        ValidationError: If a field value is invalid
    """
    match = await _load_match(session, match_id, for_update=True)
    if match is None:
        raise NotFoundError("Match not found")

    clean = {k: v for k, v in fields.items() if v is not None and k in UPDATABLE_FIELDS}
    if "location" in clean and not isinstance(clean["location"], GeoPoint):
        clean["location"] = point_from_pair(clean["location"])
    if "scheduled_at" in clean:
        clean["scheduled_at"] = ensure_utc(clean["scheduled_at"])

    confirmed = await count_confirmed(session, match_id)
    max_participants = clean.get("max_participants", match.max_participants)
    if max_participants < confirmed:
        raise ValidationError("max_participants cannot be below the confirmed participant count")

    status = clean.get("status", match.status)
    if status != MatchStatus.CANCELLED.value:
        derived = (
            MatchStatus.FULL.value if confirmed >= max_participants else MatchStatus.OPEN.value
        )
        if "status" in clean and clean["status"] != derived:
            raise ValidationError(
                f"Match status must be '{derived}' with {confirmed} of "
                f"{max_participants} places taken"
            )
        clean["status"] = derived

    for key, value in clean.items():
        setattr(match, key, value)
    match.updated_at = utcnow()
    await session.flush()

    return match_to_dict(await _load_match(session, match_id))


async def join_match(session: AsyncSession, match_id: str, user_id: str) -> Dict:
    """
    Join an open match as a confirmed participant.

    Flips the match to "full" when this join takes the last slot.

    Raises:
        NotFoundError: If the match does not exist or is not open
        CapacityError: If confirmed participants already reach max_participants
        ConflictError: If the user already joined
    """
    match = await _load_match(session, match_id, for_update=True)
    if match is None or match.status != MatchStatus.OPEN.value:
        raise NotFoundError("Match not found or not open")

    confirmed = await count_confirmed(session, match_id)
    if confirmed >= match.max_participants:
        raise CapacityError("Match is full")

    existing = await session.execute(
        select(MatchParticipant.id).where(
            and_(MatchParticipant.match_id == match_id, MatchParticipant.user_id == user_id)
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("User already joined this match")

    participant = MatchParticipant(
        match_id=match_id, user_id=user_id, status=ParticipantStatus.CONFIRMED.value
    )
    session.add(participant)

    if confirmed + 1 >= match.max_participants:
        match.status = MatchStatus.FULL.value
        match.updated_at = utcnow()
    await session.flush()

    data = participant_to_dict(await _load_participant(session, participant.id))
    data["match_status"] = match.status
    return data


async def leave_match(session: AsyncSession, match_id: str, user_id: str) -> bool:
    """
    Remove the user from a match. A full match becomes open again.

    Returns:
        True if the user was a participant
    """
    match = await _load_match(session, match_id, for_update=True)
    result = await session.execute(
        delete(MatchParticipant).where(
            and_(MatchParticipant.match_id == match_id, MatchParticipant.user_id == user_id)
        )
    )
    removed = result.rowcount > 0

    if removed and match is not None and match.status == MatchStatus.FULL.value:
        match.status = MatchStatus.OPEN.value
        match.updated_at = utcnow()
    await session.flush()
    return removed


async def invite_to_match(session: AsyncSession, match_id: str, user_id: str) -> Dict:
    """
    Invite a user to a match; the invitee gets a pending participant row.

    The caller must already be verified as the match creator.

    Raises:
        NotFoundError: If the match or the invited profile does not exist
        ValidationError: If the match is not open
        CapacityError: If the match is at capacity
        ConflictError: If the user is already invited or joined
    """
    match = await _load_match(session, match_id, for_update=True)
    if match is None:
        raise NotFoundError("Match not found")
    if match.status != MatchStatus.OPEN.value:
        raise ValidationError("Match is not open for invitations")

    profile = await session.execute(select(Profile.id).where(Profile.id == user_id))
    if profile.scalar_one_or_none() is None:
        raise NotFoundError("User not found")

    if await count_confirmed(session, match_id) >= match.max_participants:
        raise CapacityError("Match is full")

    existing = await session.execute(
        select(MatchParticipant.id).where(
            and_(MatchParticipant.match_id == match_id, MatchParticipant.user_id == user_id)
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("User already invited or joined this match")

    participant = MatchParticipant(
        match_id=match_id, user_id=user_id, status=ParticipantStatus.PENDING.value
    )
    session.add(participant)
    await session.flush()
    return participant_to_dict(await _load_participant(session, participant.id))


async def respond_to_invitation(
    session: AsyncSession, match_id: str, user_id: str, response: str
) -> Dict:
    """
    Accept or decline a pending invitation.

    Accepting re-checks capacity and flips the match to "full" when the
    confirmed count reaches max_participants.

    Raises:
        ValidationError: If response is not "accept" or "decline"
        NotFoundError: If there is no pending invitation
        CapacityError: If the match filled up in the meantime
    """
    if response not in ("accept", "decline"):
        raise ValidationError("Valid response (accept/decline) is required")

    match = await _load_match(session, match_id, for_update=True)
    result = await session.execute(
        select(MatchParticipant).where(
            and_(
                MatchParticipant.match_id == match_id,
                MatchParticipant.user_id == user_id,
                MatchParticipant.status == ParticipantStatus.PENDING.value,
            )
        )
    )
    invitation = result.scalar_one_or_none()
    if match is None or invitation is None:
        raise NotFoundError("Invitation not found")

    if response == "decline":
        invitation.status = ParticipantStatus.DECLINED.value
        await session.flush()
        return participant_to_dict(invitation)

    confirmed = await count_confirmed(session, match_id)
    if confirmed >= match.max_participants:
        raise CapacityError("Match is now full")

    invitation.status = ParticipantStatus.CONFIRMED.value
    if confirmed + 1 >= match.max_participants:
        match.status = MatchStatus.FULL.value
        match.updated_at = utcnow()
    await session.flush()
    return participant_to_dict(invitation)
