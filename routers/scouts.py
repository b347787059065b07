import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, find_by_id, find_user, get_db, users_by_ids, utcnow
from errors import DuplicateError, NotFoundError
from policy import require_owner, require_role
from responses import NEWEST_FIRST, PageParams, envelope, paginate, serialize_doc
from routers.notifications import notify
from schemas import Recommendation, Scoutreport as ScoutReportSchema, ShortText
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scouts", tags=["scouts"])


class ShortlistPayload(BaseModel):
    player_id: str


class CreateReportPayload(BaseModel):
    player_id: str
    rating: int = Field(..., ge=1, le=10)
    notes: str = Field(..., min_length=10, max_length=2000)
    recommendation: Recommendation
    strengths: List[ShortText] = Field(default_factory=list)
    weaknesses: List[ShortText] = Field(default_factory=list)
    potential_fee: Optional[float] = Field(None, ge=0)


def _shortlisted_players(db: Database, scout: dict) -> List[dict]:
    ids = scout.get("profile", {}).get("shortlisted_players", [])
    players = users_by_ids(db, ids)
    # keep shortlist order, skip players that no longer exist
    return [serialize_doc(players[i]) for i in ids if i in players and players[i]["role"] == "player"]


def report_views(db: Database, reports: List[dict]) -> List[dict]:
    ids = {r["player_id"] for r in reports} | {r["scout_id"] for r in reports}
    people = users_by_ids(db, list(ids), {"name": 1, "profile": 1})
    views = []
    for report in reports:
        view = serialize_doc(report)
        player = people.get(report["player_id"])
        scout = people.get(report["scout_id"])
        view["player"] = {
            "id": report["player_id"],
            "name": player["name"],
            "position": player["profile"].get("position"),
            "sport": player["profile"].get("sport"),
        } if player else None
        view["scout"] = {
            "id": report["scout_id"],
            "name": scout["name"],
            "club_name": scout["profile"].get("club_name"),
        } if scout else None
        views.append(view)
    return views


@router.post("/reports", status_code=201)
def create_report(
    payload: CreateReportPayload,
    current=Depends(require_role("scout")),
    db: Database = Depends(get_db),
):
    player = find_user(db, payload.player_id, role="player")
    if not player:
        raise NotFoundError("Player not found")

    report = ScoutReportSchema(scout_id=current["id"], **payload.model_dump())
    report_id = create_document(db, "scoutreport", report)
    try:
        db["user"].update_one(
            {"_id": current["_id"]},
            {"$push": {"profile.reports": report_id}, "$set": {"updated_at": utcnow()}},
        )
    except PyMongoError:
        logger.warning("Report %s saved but not linked to scout %s", report_id, current["id"], exc_info=True)

    notify(
        db,
        payload.player_id,
        "scout_report",
        "New scout report",
        "%s wrote a scouting report about you" % current["name"],
        report_id,
    )
    view = report_views(db, [find_by_id(db, "scoutreport", report_id)])[0]
    return envelope(view, "Scout report created successfully")


@router.get("/reports")
def list_reports(
    scout_id: Optional[str] = None,
    player_id: Optional[str] = None,
    page: PageParams = Depends(),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    q = {}
    if scout_id:
        q["scout_id"] = scout_id
    if player_id:
        q["player_id"] = player_id
    if not q:
        q["$or"] = [{"scout_id": current["id"]}, {"player_id": current["id"]}]
    reports, pagination = paginate(db["scoutreport"], q, NEWEST_FIRST, page)
    return envelope(report_views(db, reports), "Scout reports retrieved successfully", pagination)


@router.get("/{scout_id}/shortlist")
def get_shortlist(
    scout_id: str,
    current=Depends(require_owner("scout_id", "access your own shortlist", roles=("scout",))),
    db: Database = Depends(get_db),
):
    return envelope(_shortlisted_players(db, current), "Shortlisted players retrieved successfully")


@router.post("/{scout_id}/shortlist")
def add_to_shortlist(
    scout_id: str,
    payload: ShortlistPayload,
    current=Depends(require_owner("scout_id", "modify your own shortlist", roles=("scout",))),
    db: Database = Depends(get_db),
):
    if not find_user(db, payload.player_id, role="player"):
        raise NotFoundError("Player not found")

    scout = db["user"].find_one_and_update(
        {"_id": current["_id"], "profile.shortlisted_players": {"$ne": payload.player_id}},
        {"$addToSet": {"profile.shortlisted_players": payload.player_id}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if scout is None:
        raise DuplicateError("Player is already in shortlist")
    return envelope(_shortlisted_players(db, scout), "Player added to shortlist successfully")


@router.delete("/{scout_id}/shortlist/{player_id}")
def remove_from_shortlist(
    scout_id: str,
    player_id: str,
    current=Depends(require_owner("scout_id", "modify your own shortlist", roles=("scout",))),
    db: Database = Depends(get_db),
):
    scout = db["user"].find_one_and_update(
        {"_id": current["_id"], "profile.shortlisted_players": player_id},
        {"$pull": {"profile.shortlisted_players": player_id}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if scout is None:
        raise NotFoundError("Player not found in shortlist")
    return envelope(_shortlisted_players(db, scout), "Player removed from shortlist successfully")
