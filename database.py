"""
MongoDB access helpers

Collections are named after the lowercased schema class (see schemas.py).
Documents are created through create_document() so every record gets
created_at / updated_at stamps.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from errors import ValidationError
from settings import Settings

logger = logging.getLogger(__name__)


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.database_url)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    db["user"].create_index("email", unique=True)
    db["user"].create_index("role")
    db["user"].create_index([("profile.sport", ASCENDING), ("profile.position", ASCENDING)])
    db["post"].create_index([("author_id", ASCENDING), ("created_at", DESCENDING)])
    db["comment"].create_index([("post_id", ASCENDING), ("created_at", ASCENDING)])
    db["message"].create_index([("sender_id", ASCENDING), ("receiver_id", ASCENDING), ("created_at", DESCENDING)])
    db["scoutreport"].create_index([("scout_id", ASCENDING), ("created_at", DESCENDING)])
    db["scoutreport"].create_index("player_id")
    db["joinrequest"].create_index([("club_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
    db["event"].create_index([("club_id", ASCENDING), ("date", ASCENDING)])
    db["notification"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    logger.info("Indexes ensured on %s", db.name)


def utcnow() -> datetime:
    # stored naive, always UTC, matching what pymongo hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid ID format")


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict], timestamps: bool = True) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict["created_at"] = now
    if timestamps:
        data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)



def find_by_id(db: Database, collection_name: str, doc_id: str, **extra) -> Optional[dict]:
    """Look a document up by its string id; malformed ids simply do not match."""
    if not ObjectId.is_valid(doc_id):
        return None
    return db[collection_name].find_one({"_id": ObjectId(doc_id), **extra})


def find_user(db: Database, user_id: Optional[str], role: Optional[str] = None) -> Optional[dict]:
    if not user_id:
        return None
    if role:
        return find_by_id(db, "user", user_id, role=role)
    return find_by_id(db, "user", user_id)


def users_by_ids(db: Database, ids: List[str], projection: Optional[dict] = None) -> Dict[str, dict]:
    oids = [ObjectId(i) for i in ids if ObjectId.is_valid(i)]
    if not oids:
        return {}
    return {str(u["_id"]): u for u in db["user"].find({"_id": {"$in": oids}}, projection)}


def get_db(request: Request) -> Database:
    return request.app.state.db
