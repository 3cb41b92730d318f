"""
Pydantic models for API request validation.
"""

import re
from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, field_validator, model_validator

from sports_buddy.utils.constants import (
    MAX_AGE,
    MAX_BIO_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    MAX_MATCH_DURATION,
    MAX_PARTICIPANTS,
    MAX_TITLE_LENGTH,
    MIN_AGE,
    MIN_MATCH_DURATION,
    MIN_PARTICIPANTS,
    MIN_PASSWORD_LENGTH,
)
from sports_buddy.utils.geo_utils import is_valid_coordinate

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]{3,50}$")

SkillLevelValue = Literal["beginner", "intermediate", "advanced", "expert"]
RequiredSkillValue = Literal["any", "beginner", "intermediate", "advanced", "expert"]


def _check_lng_lat_pair(value: Optional[List[float]]) -> Optional[List[float]]:
    if value is None:
        return value
    if len(value) != 2:
        raise ValueError("Location must be a [longitude, latitude] pair")
    if not is_valid_coordinate(value[1], value[0]):
        raise ValueError("Invalid latitude or longitude")
    return value


# ============================================================================
# Auth
# ============================================================================


class SignUpRequest(BaseModel):
    """Request to create an account. Username is normalized to lowercase."""

    email: str
    password: str
    username: str
    full_name: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not EMAIL_RE.match(v.strip()):
            raise ValueError("Invalid email format")
        return v.strip()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError("Password must be at least 6 characters")
        return v

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not USERNAME_RE.match(v):
            raise ValueError(
                "Username must be 3-50 characters, alphanumeric and underscores only"
            )
        return v.lower()


class SignInRequest(BaseModel):
    """Request to sign in with email and password."""

    email: str
    password: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not EMAIL_RE.match(v.strip()):
            raise ValueError("Invalid email format")
        return v.strip()


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1)
    type: str = Field(min_length=1)


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


# ============================================================================
# Profiles
# ============================================================================


class ProfileUpdate(BaseModel):
    """Partial profile update. Location is a [longitude, latitude] pair."""

    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=MAX_BIO_LENGTH)
    age: Optional[int] = Field(None, ge=MIN_AGE, le=MAX_AGE)
    skill_level: Optional[SkillLevelValue] = None
    location: Optional[List[float]] = None
    location_name: Optional[str] = None

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        return _check_lng_lat_pair(v)


class ProfileSetupRequest(BaseModel):
    """Initial profile setup with preferred sports."""

    full_name: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=MAX_BIO_LENGTH)
    age: Optional[int] = Field(None, ge=MIN_AGE, le=MAX_AGE)
    skill_level: Optional[SkillLevelValue] = None
    location: Optional[List[float]] = None
    location_name: Optional[str] = None
    preferred_sports: List[str] = []

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        return _check_lng_lat_pair(v)


class UserSportCreate(BaseModel):
    sport_id: str = Field(min_length=1)
    skill_level: Optional[SkillLevelValue] = None
    preferred: bool = False


class UserSportsReplace(BaseModel):
    """Bulk replacement of a user's sport preferences."""

    sports: List[UserSportCreate]


# ============================================================================
# Matches
# ============================================================================


class MatchCreate(BaseModel):
    """Request to create a match. Location is a [longitude, latitude] pair."""

    sport_id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    location: List[float]
    location_name: str = Field(min_length=1)
    scheduled_at: datetime
    duration: int = Field(60, ge=MIN_MATCH_DURATION, le=MAX_MATCH_DURATION)
    max_participants: int = Field(2, ge=MIN_PARTICIPANTS, le=MAX_PARTICIPANTS)
    skill_level_required: RequiredSkillValue = "any"

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        return _check_lng_lat_pair(v)


class MatchUpdate(BaseModel):
    """Partial match update; only provided fields are written."""

    sport_id: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    location: Optional[List[float]] = None
    location_name: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    duration: Optional[int] = Field(None, ge=MIN_MATCH_DURATION, le=MAX_MATCH_DURATION)
    max_participants: Optional[int] = Field(None, ge=MIN_PARTICIPANTS, le=MAX_PARTICIPANTS)
    skill_level_required: Optional[RequiredSkillValue] = None
    status: Optional[Literal["open", "full", "cancelled"]] = None

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        return _check_lng_lat_pair(v)


class MatchInviteRequest(BaseModel):
    user_id: str = Field(min_length=1)


class InvitationResponseRequest(BaseModel):
    response: Optional[str] = None


# ============================================================================
# Location
# ============================================================================


class LocationUpdate(BaseModel):
    """Request to set the caller's location."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_name: Optional[str] = None

    @model_validator(mode="after")
    def validate_coordinates(self):
        """Both coordinates are required and must be in range."""
        if self.latitude is None or self.longitude is None:
            raise ValueError("Latitude and longitude are required")
        if not is_valid_coordinate(self.latitude, self.longitude):
            raise ValueError("Invalid latitude or longitude")
        return self


# ============================================================================
# Friends
# ============================================================================


class FriendRequestCreate(BaseModel):
    friend_id: Optional[str] = None
