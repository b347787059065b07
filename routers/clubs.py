"""
Clubs, their rosters, join requests, events and achievements.

A club is a user with role "club"; its id doubles as the club id. Roster
membership is recorded twice: the member id sits in one of the club's
rosters and the member's own profile carries club_id/club_name.
"""
import logging
import re
from datetime import datetime
from typing import Annotated, List, Literal, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, find_by_id, find_user, get_db, naive_utc, parse_object_id, users_by_ids, utcnow
from errors import ConflictError, DuplicateError, NotFoundError, ValidationError
from policy import require_owner, require_role
from responses import NEWEST_FIRST, PageParams, envelope, paginate, serialize_doc
from routers.notifications import notify
from routers.users import profile_changes
from schemas import (
    CLUB_ROSTERS,
    AchievementLevel,
    ClubAchievement,
    ClubProfileUpdate,
    ClubTier,
    Event as EventSchema,
    EventStatus,
    EventType,
    Joinrequest as JoinRequestSchema,
    JoinRequestStatus,
)
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clubs", tags=["clubs"])

MemberRole = Literal["player", "coach", "scout"]
Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Description = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]

CLUB_LISTING_SORT = [("profile.verified", -1), ("created_at", -1), ("_id", -1)]


def club_admin(action: str):
    return require_owner("club_id", action, roles=("club",))


class CreateClubPayload(BaseModel):
    name: Title
    location: Title
    founded_year: int = Field(..., ge=1800, le=2100)
    description: Description
    tier: ClubTier
    website: Optional[str] = None
    league: Optional[str] = None


class JoinRequestPayload(BaseModel):
    message: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None


class ProcessJoinRequestPayload(BaseModel):
    status: Literal["approved", "rejected"]


class CreateEventPayload(BaseModel):
    title: Title
    date: datetime
    type: EventType
    description: Description
    location: Optional[str] = None
    participants: List[str] = Field(default_factory=list)


class UpdateEventPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[Title] = None
    date: Optional[datetime] = None
    type: Optional[EventType] = None
    description: Optional[Description] = None
    location: Optional[str] = None
    participants: Optional[List[str]] = None
    status: Optional[EventStatus] = None


class AchievementPayload(BaseModel):
    title: Title
    year: int = Field(..., ge=1800, le=2100)
    description: Optional[str] = None
    level: Optional[AchievementLevel] = None


def _get_club(db: Database, club_id: str) -> dict:
    club = db["user"].find_one({"_id": parse_object_id(club_id), "role": "club"})
    if not club:
        raise NotFoundError("Club not found")
    return club


def club_display_name(club: dict) -> str:
    return club.get("profile", {}).get("name") or club["name"]


def member_summary(user: dict) -> dict:
    profile = user.get("profile", {})
    summary = {
        "id": str(user["_id"]),
        "name": user["name"],
        "role": user["role"],
        "profile_image": user.get("profile_image"),
    }
    if user["role"] == "player":
        summary["position"] = profile.get("position")
        summary["status"] = profile.get("status")
    elif user["role"] == "coach":
        summary["specialization"] = profile.get("specialization")
    return summary


def _roster_ids(club: dict, role: Optional[str] = None) -> List[str]:
    profile = club.get("profile", {})
    roles = [role] if role else list(CLUB_ROSTERS)
    ids = []
    for r in roles:
        ids.extend(profile.get(CLUB_ROSTERS[r], []))
    return ids


def _members(db: Database, club: dict, role: Optional[str] = None) -> List[dict]:
    ids = _roster_ids(club, role)
    users = users_by_ids(db, ids)
    return [member_summary(users[i]) for i in ids if i in users]


def _club_view(db: Database, club: dict) -> dict:
    view = serialize_doc(club)
    members = _members(db, club)
    for role, roster in CLUB_ROSTERS.items():
        view["profile"][roster] = [m for m in members if m["role"] == role]
    return view


def _leave_club(db: Database, club_id: str, member_ids: List[str]) -> None:
    """Clear club references on members that still point at `club_id`."""
    oids = [ObjectId(i) for i in member_ids if ObjectId.is_valid(i)]
    if not oids:
        return
    unset = {"profile.club_id": "", "profile.club_name": ""}
    base = {"_id": {"$in": oids}, "profile.club_id": club_id}
    db["user"].update_many(
        {**base, "role": "player"},
        {"$unset": unset, "$set": {"profile.status": "Free Agent", "updated_at": utcnow()}},
    )
    db["user"].update_many(
        {**base, "role": {"$in": ["coach", "scout"]}},
        {"$unset": unset, "$set": {"updated_at": utcnow()}},
    )


def drop_from_roster(db: Database, club_id: Optional[str], member: dict) -> None:
    """Pull `member` off the matching roster of club `club_id`, if that club exists."""
    if not club_id or not ObjectId.is_valid(club_id) or member["role"] not in CLUB_ROSTERS:
        return
    roster = "profile.%s" % CLUB_ROSTERS[member["role"]]
    db["user"].update_one(
        {"_id": ObjectId(club_id), "role": "club"},
        {"$pull": {roster: str(member["_id"])}, "$set": {"updated_at": utcnow()}},
    )


def _join_club(db: Database, club: dict, user: dict) -> None:
    club_id = str(club["_id"])
    user_id = str(user["_id"])
    previous = (user.get("profile") or {}).get("club_id")
    if previous and previous != club_id:
        # a member belongs to one club at a time
        drop_from_roster(db, previous, user)
    db["user"].update_one(
        {"_id": club["_id"]},
        {"$addToSet": {"profile.%s" % CLUB_ROSTERS[user["role"]]: user_id}, "$set": {"updated_at": utcnow()}},
    )
    changes = {"profile.club_id": club_id, "profile.club_name": club_display_name(club), "updated_at": utcnow()}
    if user["role"] == "player":
        changes["profile.status"] = "Signed"
    db["user"].update_one({"_id": user["_id"]}, {"$set": changes})


# Clubs
@router.get("")
def list_clubs(
    verified: Optional[bool] = None,
    location: Optional[str] = Query(None, max_length=100),
    tier: Optional[ClubTier] = None,
    page: PageParams = Depends(),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    q = {"role": "club"}
    if verified is not None:
        q["profile.verified"] = verified
    if location:
        q["profile.location"] = {"$regex": re.escape(location), "$options": "i"}
    if tier:
        q["profile.tier"] = tier
    clubs, pagination = paginate(db["user"], q, CLUB_LISTING_SORT, page)
    return envelope([serialize_doc(c) for c in clubs], "Clubs retrieved successfully", pagination)


@router.post("", status_code=201)
def create_club_profile(
    payload: CreateClubPayload,
    current=Depends(require_role("club")),
    db: Database = Depends(get_db),
):
    changes = {"profile.%s" % k: v for k, v in payload.model_dump().items()}
    changes["updated_at"] = utcnow()
    club = db["user"].find_one_and_update(
        {"_id": current["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Club profile %s filled in", current["id"])
    return envelope(serialize_doc(club), "Club profile created successfully")


@router.get("/{club_id}")
def get_club(club_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    return envelope(_club_view(db, _get_club(db, club_id)), "Club retrieved successfully")


@router.patch("/{club_id}")
def update_club(
    club_id: str,
    payload: ClubProfileUpdate,
    current=Depends(club_admin("update your own club")),
    db: Database = Depends(get_db),
):
    changes = profile_changes(current, payload.model_dump(exclude_unset=True))
    changes["updated_at"] = utcnow()
    club = db["user"].find_one_and_update(
        {"_id": current["_id"], "role": "club"},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if not club:
        raise NotFoundError("Club not found")
    return envelope(serialize_doc(club), "Club updated successfully")


@router.delete("/{club_id}")
def delete_club(
    club_id: str,
    current=Depends(club_admin("delete your own club")),
    db: Database = Depends(get_db),
):
    club = _get_club(db, club_id)
    _leave_club(db, str(club["_id"]), _roster_ids(club))
    db["user"].delete_one({"_id": club["_id"]})
    logger.info("Club %s deleted", club_id)
    return envelope(message="Club deleted successfully")


# Members
@router.get("/{club_id}/members")
def list_members(
    club_id: str,
    role: Optional[MemberRole] = None,
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    club = _get_club(db, club_id)
    return envelope(_members(db, club, role), "Club members retrieved successfully")


@router.delete("/{club_id}/members/{member_id}")
def remove_member(
    club_id: str,
    member_id: str,
    current=Depends(club_admin("remove members from your own club")),
    db: Database = Depends(get_db),
):
    member = find_user(db, member_id)
    if not member or member["role"] not in CLUB_ROSTERS:
        raise NotFoundError("Member not found")
    roster = "profile.%s" % CLUB_ROSTERS[member["role"]]
    club = db["user"].find_one_and_update(
        {"_id": current["_id"], roster: member_id},
        {"$pull": {roster: member_id}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if club is None:
        raise NotFoundError("Member not found in club")
    _leave_club(db, current["id"], [member_id])
    return envelope(_club_view(db, club), "Member removed from club successfully")


# Join requests
def join_request_view(request: dict, users: dict) -> dict:
    view = serialize_doc(request)
    user = users.get(request["user_id"])
    view["user"] = member_summary(user) if user else None
    return view


@router.post("/{club_id}/join-request", status_code=201)
def request_to_join(
    club_id: str,
    payload: JoinRequestPayload,
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    club = _get_club(db, club_id)
    club_id = str(club["_id"])
    if current["role"] not in CLUB_ROSTERS:
        raise ValidationError("Only players, coaches, and scouts can join clubs")
    if current["id"] in _roster_ids(club):
        raise DuplicateError("You are already a member of this club")

    now = utcnow()
    reopened = db["joinrequest"].find_one_and_update(
        {"club_id": club_id, "user_id": current["id"], "status": {"$ne": "pending"}},
        {
            "$set": {"status": "pending", "message": payload.message, "request_date": now, "updated_at": now},
            "$unset": {"processed_date": "", "processed_by": ""},
        },
        return_document=ReturnDocument.AFTER,
    )
    if reopened:
        request = reopened
    else:
        if db["joinrequest"].find_one({"club_id": club_id, "user_id": current["id"]}):
            raise DuplicateError("You already have a pending request for this club")
        request = JoinRequestSchema(club_id=club_id, user_id=current["id"], message=payload.message, request_date=now)
        # the unique (club_id, user_id) index rejects a concurrent duplicate
        request = find_by_id(db, "joinrequest", create_document(db, "joinrequest", request))

    logger.info("User %s asked to join club %s", current["id"], club_id)
    return envelope(join_request_view(request, {current["id"]: current}), "Join request sent successfully")


@router.get("/{club_id}/join-requests")
def list_join_requests(
    club_id: str,
    status: Optional[JoinRequestStatus] = None,
    current=Depends(club_admin("view requests for your own club")),
    db: Database = Depends(get_db),
):
    q = {"club_id": current["id"]}
    if status:
        q["status"] = status
    requests = list(db["joinrequest"].find(q).sort(NEWEST_FIRST))
    users = users_by_ids(db, [r["user_id"] for r in requests])
    return envelope([join_request_view(r, users) for r in requests], "Join requests retrieved successfully")


@router.patch("/{club_id}/join-requests/{request_id}")
def process_join_request(
    club_id: str,
    request_id: str,
    payload: ProcessJoinRequestPayload,
    current=Depends(club_admin("respond to requests for your own club")),
    db: Database = Depends(get_db),
):
    request_oid = parse_object_id(request_id)
    request = db["joinrequest"].find_one({"_id": request_oid, "club_id": current["id"]})
    if not request:
        raise NotFoundError("Join request not found")
    if request["status"] != "pending":
        raise ConflictError("This request has already been processed")
    user = find_user(db, request["user_id"])
    if payload.status == "approved" and not user:
        raise NotFoundError("User not found")

    now = utcnow()
    request = db["joinrequest"].find_one_and_update(
        {"_id": request_oid, "status": "pending"},
        {"$set": {"status": payload.status, "processed_date": now, "processed_by": current["id"], "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    if request is None:
        # processed by someone else in the meantime
        raise ConflictError("This request has already been processed")

    if payload.status == "approved":
        _join_club(db, current, user)
        notify(
            db,
            request["user_id"],
            "club_invitation",
            "Join request approved",
            "You are now a member of %s" % club_display_name(current),
            current["id"],
        )
    users = {request["user_id"]: user} if user else {}
    return envelope(join_request_view(request, users), "Join request %s" % payload.status)


# Events
@router.post("/{club_id}/events", status_code=201)
def create_event(
    club_id: str,
    payload: CreateEventPayload,
    current=Depends(club_admin("create events for your own club")),
    db: Database = Depends(get_db),
):
    event = EventSchema(
        club_id=current["id"],
        title=payload.title,
        date=naive_utc(payload.date),
        type=payload.type,
        description=payload.description,
        location=payload.location,
        participants=payload.participants,
        created_by=current["id"],
    )
    event_id = create_document(db, "event", event)
    return envelope(serialize_doc(find_by_id(db, "event", event_id)), "Event created successfully")


@router.get("/{club_id}/events")
def list_events(
    club_id: str,
    status: Optional[EventStatus] = None,
    type: Optional[EventType] = None,
    upcoming: bool = False,
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    club = _get_club(db, club_id)
    q = {"club_id": str(club["_id"])}
    if status:
        q["status"] = status
    if type:
        q["type"] = type
    if upcoming:
        q["date"] = {"$gte": utcnow()}
    events = db["event"].find(q).sort([("date", 1), ("_id", 1)])
    return envelope([serialize_doc(e) for e in events], "Club events retrieved successfully")


@router.patch("/{club_id}/events/{event_id}")
def update_event(
    club_id: str,
    event_id: str,
    payload: UpdateEventPayload,
    current=Depends(club_admin("update events for your own club")),
    db: Database = Depends(get_db),
):
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError("Invalid updates")
    if "date" in changes:
        changes["date"] = naive_utc(changes["date"])
    changes["updated_at"] = utcnow()
    event = db["event"].find_one_and_update(
        {"_id": parse_object_id(event_id), "club_id": current["id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if not event:
        raise NotFoundError("Event not found")
    return envelope(serialize_doc(event), "Event updated successfully")


@router.delete("/{club_id}/events/{event_id}")
def delete_event(
    club_id: str,
    event_id: str,
    current=Depends(club_admin("delete events for your own club")),
    db: Database = Depends(get_db),
):
    result = db["event"].delete_one({"_id": parse_object_id(event_id), "club_id": current["id"]})
    if not result.deleted_count:
        raise NotFoundError("Event not found")
    return envelope(message="Event deleted successfully")


# Stats and achievements
@router.get("/{club_id}/stats")
def club_stats(club_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    club = _get_club(db, club_id)
    club_id = str(club["_id"])
    profile = club.get("profile", {})
    players = len(profile.get("players", []))
    coaches = len(profile.get("coaches", []))
    scouts = len(profile.get("scouts", []))
    stats = {
        "total_members": players + coaches + scouts,
        "total_players": players,
        "total_coaches": coaches,
        "total_scouts": scouts,
        "upcoming_events": db["event"].count_documents(
            {"club_id": club_id, "status": "scheduled", "date": {"$gte": utcnow()}}
        ),
        "matches_played": db["event"].count_documents({"club_id": club_id, "type": "match", "status": "completed"}),
        "trophies_won": len(profile.get("achievements", [])),
        "membership_requests": db["joinrequest"].count_documents({"club_id": club_id, "status": "pending"}),
    }
    return envelope(stats, "Club statistics retrieved successfully")


@router.post("/{club_id}/achievements", status_code=201)
def add_achievement(
    club_id: str,
    payload: AchievementPayload,
    current=Depends(club_admin("add achievements to your own club")),
    db: Database = Depends(get_db),
):
    achievement = ClubAchievement(id=str(ObjectId()), **payload.model_dump())
    club = db["user"].find_one_and_update(
        {"_id": current["_id"], "role": "club"},
        {"$push": {"profile.achievements": achievement.model_dump()}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not club:
        raise NotFoundError("Club not found")
    return envelope(achievement.model_dump(), "Achievement added successfully")


@router.delete("/{club_id}/achievements/{achievement_id}")
def delete_achievement(
    club_id: str,
    achievement_id: str,
    current=Depends(club_admin("delete achievements from your own club")),
    db: Database = Depends(get_db),
):
    club = db["user"].find_one_and_update(
        {"_id": current["_id"], "profile.achievements.id": achievement_id},
        {"$pull": {"profile.achievements": {"id": achievement_id}}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if club is None:
        raise NotFoundError("Achievement not found")
    return envelope(serialize_doc(club)["profile"]["achievements"], "Achievement deleted successfully")
