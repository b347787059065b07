import re
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, HttpUrl, StringConstraints
from pymongo import ReturnDocument
from pymongo.database import Database

from database import get_db, parse_object_id, utcnow
from errors import NotFoundError
from policy import require_owner
from responses import NEWEST_FIRST, PageParams, envelope, paginate, serialize_doc
from schemas import PROFILE_MODELS, PROFILE_UPDATE_MODELS, Role
from security import get_current_user

router = APIRouter(prefix="/users", tags=["users"])


class UpdateProfilePayload(BaseModel):
    name: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=50)]] = None
    profile_image: Optional[HttpUrl] = None
    profile: Optional[dict] = None


def profile_changes(user: dict, raw: dict) -> dict:
    """Validate `raw` against the editable fields of the user's role.

    Returns a `$set` document for the changed fields. The merged profile is
    re-validated as a whole so role invariants still hold afterwards.
    """
    role = user["role"]
    changes = PROFILE_UPDATE_MODELS[role].model_validate(raw).model_dump(exclude_unset=True)
    merged = {**user.get("profile", {}), **changes, "role": role}
    PROFILE_MODELS[role].model_validate(merged)
    return {"profile.%s" % field: value for field, value in changes.items()}


@router.get("/me")
def me(current=Depends(get_current_user)):
    return envelope(serialize_doc(current), "User profile retrieved successfully")


@router.get("")
def search_users(
    query: Optional[str] = Query(None, min_length=1, max_length=100),
    role: Optional[Role] = None,
    location: Optional[str] = Query(None, max_length=100),
    page: PageParams = Depends(),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    clauses = []
    if query and query.strip():
        pattern = re.escape(query.strip())
        clauses.append({"$or": [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
        ]})
    if role:
        clauses.append({"role": role})
    if location:
        pattern = re.escape(location)
        clauses.append({"$or": [
            {"profile.location": {"$regex": pattern, "$options": "i"}},
            {"profile.club_name": {"$regex": pattern, "$options": "i"}},
        ]})
    q = {"$and": clauses} if clauses else {}
    users, pagination = paginate(db["user"], q, NEWEST_FIRST, page)
    return envelope([serialize_doc(u) for u in users], "Users retrieved successfully", pagination)


@router.get("/{user_id}")
def get_user(user_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    user = db["user"].find_one({"_id": parse_object_id(user_id)})
    if not user:
        raise NotFoundError("User not found")
    return envelope(serialize_doc(user), "User retrieved successfully")


@router.patch("/{user_id}")
def update_user(
    user_id: str,
    payload: UpdateProfilePayload,
    current=Depends(require_owner("user_id", "update your own profile")),
    db: Database = Depends(get_db),
):
    updates = {}
    if payload.name is not None:
        updates["name"] = payload.name
    if payload.profile_image is not None:
        updates["profile_image"] = str(payload.profile_image)
    if payload.profile:
        updates.update(profile_changes(current, payload.profile))
    updates["updated_at"] = utcnow()

    user = db["user"].find_one_and_update(
        {"_id": parse_object_id(user_id)},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise NotFoundError("User not found")
    return envelope(serialize_doc(user), "Profile updated successfully")


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    current=Depends(require_owner("user_id", "delete your own account")),
    db: Database = Depends(get_db),
):
    # Posts, comments and messages stay behind; read paths show "Unknown User"
    result = db["user"].delete_one({"_id": parse_object_id(user_id)})
    if not result.deleted_count:
        raise NotFoundError("User not found")
    return envelope(message="Account deleted successfully")
