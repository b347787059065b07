from typing import Annotated, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, StringConstraints
from pymongo import ReturnDocument
from pymongo.database import Database

from database import find_user, get_db, parse_object_id, users_by_ids, utcnow
from errors import DuplicateError, NotFoundError
from policy import require_owner
from responses import PageParams, envelope, paginate, serialize_doc
from schemas import AchievementLevel, CoachAchievement
from security import get_current_user

router = APIRouter(prefix="/coaches", tags=["coaches"])

MOST_EXPERIENCED_FIRST = [("profile.experience_years", -1), ("created_at", -1), ("_id", -1)]


class CoachAchievementPayload(BaseModel):
    title: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
    year: int = Field(..., ge=1900, le=2100)
    description: Optional[str] = None
    level: AchievementLevel


def _coached_players(db: Database, coach: dict) -> List[dict]:
    ids = coach.get("profile", {}).get("players_coached", [])
    players = users_by_ids(db, ids)
    return [serialize_doc(players[i]) for i in ids if i in players]


@router.get("")
def list_coaches(
    specialization: Optional[str] = Query(None, max_length=100),
    club_id: Optional[str] = None,
    page: PageParams = Depends(),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    q = {"role": "coach"}
    if specialization:
        q["profile.specialization"] = specialization
    if club_id:
        q["profile.club_id"] = club_id
    coaches, pagination = paginate(db["user"], q, MOST_EXPERIENCED_FIRST, page)
    return envelope([serialize_doc(c) for c in coaches], "Coaches retrieved successfully", pagination)


@router.get("/specializations")
def list_specializations(current=Depends(get_current_user), db: Database = Depends(get_db)):
    values = db["user"].distinct("profile.specialization", {"role": "coach"})
    return envelope(sorted(v for v in values if v), "Coach specializations retrieved successfully")


@router.get("/{coach_id}/players")
def coached_players(coach_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    coach = db["user"].find_one({"_id": parse_object_id(coach_id), "role": "coach"})
    if not coach:
        raise NotFoundError("Coach not found")
    return envelope(_coached_players(db, coach), "Players coached retrieved successfully")


@router.post("/{coach_id}/players/{player_id}")
def add_player(
    coach_id: str,
    player_id: str,
    current=Depends(require_owner("coach_id", "manage your own player list", roles=("coach",))),
    db: Database = Depends(get_db),
):
    if not find_user(db, player_id, role="player"):
        raise NotFoundError("Player not found")
    coach = db["user"].find_one_and_update(
        {"_id": current["_id"], "profile.players_coached": {"$ne": player_id}},
        {"$addToSet": {"profile.players_coached": player_id}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if coach is None:
        raise DuplicateError("Player is already in your coaching list")
    return envelope(_coached_players(db, coach), "Player added to coaching list successfully")


@router.delete("/{coach_id}/players/{player_id}")
def remove_player(
    coach_id: str,
    player_id: str,
    current=Depends(require_owner("coach_id", "manage your own player list", roles=("coach",))),
    db: Database = Depends(get_db),
):
    coach = db["user"].find_one_and_update(
        {"_id": current["_id"], "profile.players_coached": player_id},
        {"$pull": {"profile.players_coached": player_id}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if coach is None:
        raise NotFoundError("Player not found in coaching list")
    return envelope(_coached_players(db, coach), "Player removed from coaching list successfully")


@router.post("/{coach_id}/achievements", status_code=201)
def add_achievement(
    coach_id: str,
    payload: CoachAchievementPayload,
    current=Depends(require_owner("coach_id", "manage your own achievements", roles=("coach",))),
    db: Database = Depends(get_db),
):
    achievement = CoachAchievement(id=str(ObjectId()), **payload.model_dump())
    db["user"].update_one(
        {"_id": current["_id"]},
        {"$push": {"profile.achievements": achievement.model_dump()}, "$set": {"updated_at": utcnow()}},
    )
    return envelope(achievement.model_dump(), "Achievement added successfully")
