"""
Database Schemas for Sporty

Each Pydantic model corresponds to a MongoDB collection.
Collection name = lowercase class name.

A user's role-specific data lives in `profile`, a union discriminated by
`role`, so a player can only ever carry a player profile.
"""
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, model_validator

Role = Literal["player", "scout", "coach", "club"]
PlayerStatus = Literal["Free Agent", "Signed", "Looking to be Scouted"]
Recommendation = Literal["Highly Recommend", "Recommend", "Consider", "Pass"]
ClubTier = Literal["Professional", "Semi-Professional", "Amateur", "Youth"]
AchievementLevel = Literal["Club", "Regional", "National", "International"]
JoinRequestStatus = Literal["pending", "approved", "rejected"]
EventType = Literal["match", "training", "meeting", "tournament", "trial"]
EventStatus = Literal["scheduled", "ongoing", "completed", "cancelled"]
NotificationType = Literal["like", "comment", "message", "scout_report", "club_invitation"]

ShortText = Annotated[str, StringConstraints(strip_whitespace=True, max_length=200)]


# Role profiles
class PlayerStats(BaseModel):
    matches: int = Field(0, ge=0)
    goals: int = Field(0, ge=0)
    assists: int = Field(0, ge=0)


class PlayerProfile(BaseModel):
    role: Literal["player"] = "player"
    sport: Optional[str] = None
    position: Optional[str] = None
    age: Optional[int] = Field(None, ge=5, le=100)
    status: PlayerStatus = "Free Agent"
    club_id: Optional[str] = None
    club_name: Optional[str] = None
    stats: PlayerStats = Field(default_factory=PlayerStats)

    @model_validator(mode="after")
    def _club_matches_status(self):
        signed = self.status == "Signed"
        if signed != bool(self.club_id and self.club_name):
            raise ValueError("club_id and club_name are set exactly when status is Signed")
        return self


class ScoutProfile(BaseModel):
    role: Literal["scout"] = "scout"
    club_id: Optional[str] = None
    club_name: Optional[str] = None
    shortlisted_players: List[str] = Field(default_factory=list)
    reports: List[str] = Field(default_factory=list, description="Scout report ids, oldest first")

    @model_validator(mode="after")
    def _unique_shortlist(self):
        if len(set(self.shortlisted_players)) != len(self.shortlisted_players):
            raise ValueError("shortlisted_players must not contain duplicates")
        return self


class CoachAchievement(BaseModel):
    id: str
    title: str
    year: int
    description: Optional[str] = None
    level: AchievementLevel


class CoachProfile(BaseModel):
    role: Literal["coach"] = "coach"
    specialization: Optional[str] = None
    experience_years: int = Field(0, ge=0)
    certifications: List[str] = Field(default_factory=list)
    club_id: Optional[str] = None
    club_name: Optional[str] = None
    players_coached: List[str] = Field(default_factory=list)
    achievements: List[CoachAchievement] = Field(default_factory=list)


class ClubAchievement(BaseModel):
    id: str
    title: str
    year: int
    description: Optional[str] = None
    level: Optional[AchievementLevel] = None


class ClubProfile(BaseModel):
    role: Literal["club"] = "club"
    name: Optional[str] = None
    logo: Optional[str] = None
    location: Optional[str] = None
    founded_year: Optional[int] = Field(None, ge=1800, le=2100)
    description: Optional[str] = None
    verified: bool = False
    website: Optional[str] = None
    tier: Optional[ClubTier] = None
    league: Optional[str] = None
    coaches: List[str] = Field(default_factory=list)
    players: List[str] = Field(default_factory=list)
    scouts: List[str] = Field(default_factory=list)
    achievements: List[ClubAchievement] = Field(default_factory=list)
    facilities: List[str] = Field(default_factory=list)


RoleProfile = Annotated[
    Union[PlayerProfile, ScoutProfile, CoachProfile, ClubProfile],
    Field(discriminator="role"),
]

PROFILE_MODELS = {
    "player": PlayerProfile,
    "scout": ScoutProfile,
    "coach": CoachProfile,
    "club": ClubProfile,
}

# Which roster on a club profile holds members of a given role
CLUB_ROSTERS = {"player": "players", "coach": "coaches", "scout": "scouts"}


# Profile fields a user may edit directly. Status, rosters, shortlists and
# reports are changed only through their own endpoints.
class PlayerProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sport: Optional[str] = None
    position: Optional[str] = None
    age: Optional[int] = Field(None, ge=5, le=100)


class ScoutProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CoachProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    specialization: Optional[str] = None
    experience_years: Optional[int] = Field(None, ge=0)
    certifications: Optional[List[str]] = None


class ClubProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    logo: Optional[str] = None
    location: Optional[str] = None
    founded_year: Optional[int] = Field(None, ge=1800, le=2100)
    description: Optional[str] = None
    website: Optional[str] = None
    tier: Optional[ClubTier] = None
    league: Optional[str] = None
    facilities: Optional[List[str]] = None


PROFILE_UPDATE_MODELS = {
    "player": PlayerProfileUpdate,
    "scout": ScoutProfileUpdate,
    "coach": CoachProfileUpdate,
    "club": ClubProfileUpdate,
}


def default_profile(role: str, name: Optional[str] = None) -> BaseModel:
    if role == "club":
        return ClubProfile(name=name)
    return PROFILE_MODELS[role]()


# Core users
class User(BaseModel):
    name: str
    email: EmailStr
    password_hash: str
    role: Role
    profile_image: Optional[str] = None
    is_verified: bool = False
    profile: RoleProfile

    @model_validator(mode="after")
    def _profile_matches_role(self):
        if self.profile.role != self.role:
            raise ValueError("profile does not belong to role %s" % self.role)
        return self


# Feed
class MediaFile(BaseModel):
    type: Literal["image", "video"]
    url: str
    thumbnail: Optional[str] = None
    filename: str
    size: int = Field(..., ge=0, description="Size in bytes")


class Post(BaseModel):
    author_id: str
    content: str = Field(..., min_length=1, max_length=2000)
    media: List[MediaFile] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    likes: List[str] = Field(default_factory=list)
    comments: List[str] = Field(default_factory=list, description="Comment ids in creation order")
    share_count: int = Field(0, ge=0)


class Comment(BaseModel):
    post_id: str
    author_id: str
    content: str = Field(..., min_length=1, max_length=500)


# Messaging
class Message(BaseModel):
    sender_id: str
    receiver_id: str
    content: str = Field(..., min_length=1, max_length=1000)
    read: bool = False
    edited: bool = False
    edited_at: Optional[datetime] = None


# Scouting
class Scoutreport(BaseModel):
    scout_id: str
    player_id: str
    rating: int = Field(..., ge=1, le=10)
    notes: str = Field(..., min_length=10, max_length=2000)
    recommendation: Recommendation
    strengths: List[ShortText] = Field(default_factory=list)
    weaknesses: List[ShortText] = Field(default_factory=list)
    potential_fee: Optional[float] = Field(None, ge=0)


# Clubs
class Joinrequest(BaseModel):
    club_id: str
    user_id: str
    status: JoinRequestStatus = "pending"
    message: Optional[str] = None
    request_date: datetime
    processed_date: Optional[datetime] = None
    processed_by: Optional[str] = None


class Event(BaseModel):
    club_id: str
    title: str
    date: datetime
    type: EventType
    description: str
    location: Optional[str] = None
    participants: List[str] = Field(default_factory=list)
    status: EventStatus = "scheduled"
    created_by: str


class Notification(BaseModel):
    user_id: str
    type: NotificationType
    title: str = Field(..., max_length=100)
    message: str = Field(..., max_length=300)
    read: bool = False
    related_entity_id: Optional[str] = None
