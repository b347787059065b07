import re
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, model_validator
from pymongo import ReturnDocument
from pymongo.database import Database

from database import get_db, parse_object_id, utcnow
from errors import NotFoundError
from policy import require_owner
from responses import NEWEST_FIRST, PageParams, envelope, paginate, serialize_doc
from routers.clubs import drop_from_roster
from schemas import PlayerStats, PlayerStatus
from security import get_current_user

router = APIRouter(prefix="/players", tags=["players"])

TRENDING_SORT = [("profile.stats.goals", -1), ("profile.stats.assists", -1), ("_id", -1)]


class UpdateStatsPayload(BaseModel):
    matches: Optional[int] = Field(None, ge=0)
    goals: Optional[int] = Field(None, ge=0)
    assists: Optional[int] = Field(None, ge=0)


class UpdateStatusPayload(BaseModel):
    status: PlayerStatus
    club_id: Optional[str] = None
    club_name: Optional[str] = None

    @model_validator(mode="after")
    def _signed_needs_club(self):
        if self.status == "Signed" and not (self.club_id and self.club_name):
            raise ValueError("club_id and club_name are required when status is Signed")
        return self


def _get_player(db: Database, player_id: str) -> dict:
    player = db["user"].find_one({"_id": parse_object_id(player_id), "role": "player"})
    if not player:
        raise NotFoundError("Player not found")
    return player


@router.get("/search")
def search_players(
    sport: Optional[str] = Query(None, max_length=50),
    position: Optional[str] = Query(None, max_length=50),
    status: Optional[PlayerStatus] = None,
    page: PageParams = Depends(),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    q = {"role": "player"}
    if sport:
        q["profile.sport"] = {"$regex": re.escape(sport), "$options": "i"}
    if position:
        q["profile.position"] = {"$regex": re.escape(position), "$options": "i"}
    if status:
        q["profile.status"] = status
    players, pagination = paginate(db["user"], q, NEWEST_FIRST, page)
    return envelope([serialize_doc(p) for p in players], "Players retrieved successfully", pagination)


@router.get("/trending")
def trending_players(
    limit: int = Query(10, ge=1, le=50),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    players = db["user"].find({"role": "player"}).sort(TRENDING_SORT).limit(limit)
    return envelope([serialize_doc(p) for p in players], "Trending players retrieved successfully")


@router.get("/{player_id}/stats")
def get_stats(player_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    player = _get_player(db, player_id)
    stats = player.get("profile", {}).get("stats") or PlayerStats().model_dump()
    return envelope(
        {"player_id": str(player["_id"]), "player_name": player["name"], "stats": stats},
        "Player stats retrieved successfully",
    )


@router.patch("/{player_id}/stats")
def update_stats(
    player_id: str,
    payload: UpdateStatsPayload,
    current=Depends(require_owner("player_id", "update your own statistics")),
    db: Database = Depends(get_db),
):
    changes = {"profile.stats.%s" % k: v for k, v in payload.model_dump(exclude_none=True).items()}
    changes["updated_at"] = utcnow()
    player = db["user"].find_one_and_update(
        {"_id": parse_object_id(player_id), "role": "player"},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if not player:
        raise NotFoundError("Player not found")
    return envelope(
        {"player_id": str(player["_id"]), "player_name": player["name"], "stats": player["profile"]["stats"]},
        "Player stats updated successfully",
    )


@router.patch("/{player_id}/status")
def update_status(
    player_id: str,
    payload: UpdateStatusPayload,
    current=Depends(require_owner("player_id", "update your own status")),
    db: Database = Depends(get_db),
):
    update = {"$set": {"profile.status": payload.status, "updated_at": utcnow()}}
    if payload.status == "Signed":
        update["$set"]["profile.club_id"] = payload.club_id
        update["$set"]["profile.club_name"] = payload.club_name
    else:
        update["$unset"] = {"profile.club_id": "", "profile.club_name": ""}

    player = db["user"].find_one_and_update(
        {"_id": parse_object_id(player_id), "role": "player"},
        update,
        return_document=ReturnDocument.AFTER,
    )
    if not player:
        raise NotFoundError("Player not found")
    previous = (current.get("profile") or {}).get("club_id")
    if previous and previous != player["profile"].get("club_id"):
        drop_from_roster(db, previous, player)
    return envelope(serialize_doc(player), "Player status updated successfully")
