"""
SQLAlchemy ORM models for the sports matchmaking service.
"""

import enum
import uuid
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    case,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator
from sports_buddy.database.db import Base
from sports_buddy.utils.datetime_utils import utcnow
from sports_buddy.utils.geo_utils import GeoPoint, decode_point, encode_point


def _uuid() -> str:
    return str(uuid.uuid4())


class SkillLevel(str, enum.Enum):
    """Player skill level."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class MatchStatus(str, enum.Enum):
    """Match status enum. Only open <-> full transitions happen automatically."""

    OPEN = "open"
    FULL = "full"
    CANCELLED = "cancelled"


class ParticipantStatus(str, enum.Enum):
    """Match participant status enum. Only confirmed rows count toward capacity."""

    CONFIRMED = "confirmed"
    PENDING = "pending"
    DECLINED = "declined"


class ConnectionStatus(str, enum.Enum):
    """Friend connection status enum."""

    PENDING = "pending"
    ACCEPTED = "accepted"


class PointType(TypeDecorator):
    """
    Geographic point stored as ``POINT(lng lat)`` text.

    Python side always sees ``GeoPoint`` (or None). Raw strings are accepted on
    write only if they decode as a point.
    """

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, GeoPoint):
            return encode_point(value)
        if isinstance(value, str):
            point = decode_point(value)
            if point is None:
                raise ValueError(f"Invalid point value: {value!r}")
            return encode_point(point)
        raise TypeError(f"Unsupported point value: {value!r}")

    def process_result_value(self, value, dialect):
        return decode_point(value)


class Profile(Base):
    """User profiles. The id is the identity provider's user id."""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    username = Column(String(50), nullable=False, unique=True)
    full_name = Column(String(255), nullable=True)
    avatar_url = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    age = Column(Integer, nullable=True)
    skill_level = Column(String(20), nullable=True)
    location = Column(PointType, nullable=True)
    location_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    user_sports = relationship(
        "UserSport", back_populates="user", cascade="all, delete-orphan", lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint(
            "skill_level IS NULL OR skill_level IN ('beginner', 'intermediate', 'advanced', 'expert')",
            name="ck_profiles_skill_level",
        ),
        Index("idx_profiles_username", "username"),
        Index("idx_profiles_location_name", "location_name"),
    )


class Sport(Base):
    """Static sports catalog."""

    __tablename__ = "sports"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    min_players = Column(Integer, default=1)
    max_players = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class UserSport(Base):
    """Sport preference of a user (Profile <-> Sport)."""

    __tablename__ = "user_sports"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    sport_id = Column(String(36), ForeignKey("sports.id", ondelete="CASCADE"), nullable=False)
    skill_level = Column(String(20), nullable=True)
    preferred = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    user = relationship("Profile", back_populates="user_sports")
    sport = relationship("Sport", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("user_id", "sport_id", name="uq_user_sports_user_sport"),
        Index("idx_user_sports_sport", "sport_id"),
    )


class Match(Base):
    """A scheduled sports session with a capacity and location."""

    __tablename__ = "matches"

    id = Column(String(36), primary_key=True, default=_uuid)
    created_by = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    sport_id = Column(String(36), ForeignKey("sports.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(PointType, nullable=False)
    location_name = Column(String(255), nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    duration = Column(Integer, default=60, nullable=False)  # minutes
    max_participants = Column(Integer, default=2, nullable=False)
    skill_level_required = Column(String(20), default="any", nullable=False)
    status = Column(String(20), default=MatchStatus.OPEN.value, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    sport = relationship("Sport", lazy="selectin")
    creator = relationship("Profile", foreign_keys=[created_by], lazy="selectin")
    participants = relationship(
        "MatchParticipant",
        back_populates="match",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MatchParticipant.joined_at",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'full', 'cancelled')", name="ck_matches_status"
        ),
        Index("idx_matches_status_scheduled", "status", "scheduled_at"),
        Index("idx_matches_created_by", "created_by"),
        Index("idx_matches_sport", "sport_id"),
    )


class MatchParticipant(Base):
    """Membership of a user in a match."""

    __tablename__ = "match_participants"

    id = Column(String(36), primary_key=True, default=_uuid)
    match_id = Column(String(36), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), default=ParticipantStatus.CONFIRMED.value, nullable=False)
    joined_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    match = relationship("Match", back_populates="participants")
    user = relationship("Profile", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("match_id", "user_id", name="uq_match_participants_match_user"),
        Index("idx_match_participants_user", "user_id"),
    )


class Connection(Base):
    """Directed friend request; becomes a friendship once accepted."""

    __tablename__ = "user_connections"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    friend_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), default=ConnectionStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    user = relationship("Profile", foreign_keys=[user_id], lazy="selectin")
    friend = relationship("Profile", foreign_keys=[friend_id], lazy="selectin")

    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_user_connections_pair"),
        CheckConstraint("user_id != friend_id", name="ck_user_connections_not_self"),
        Index("idx_user_connections_friend_status", "friend_id", "status"),
        Index("idx_user_connections_user", "user_id"),
    )


# At most one connection per unordered pair: (A, B) and (B, A) collide here.
Index(
    "uq_user_connections_unordered_pair",
    case((Connection.user_id < Connection.friend_id, Connection.user_id), else_=Connection.friend_id),
    case((Connection.user_id < Connection.friend_id, Connection.friend_id), else_=Connection.user_id),
    unique=True,
)
