from typing import Optional

from fastapi import APIRouter, Depends
from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_db, parse_object_id
from errors import NotFoundError
from responses import NEWEST_FIRST, PageParams, envelope, paginate, serialize_doc
from schemas import Notification as NotificationSchema
from security import get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


def notify(db: Database, user_id: str, type: str, title: str, message: str, related_entity_id: Optional[str] = None) -> str:
    notif = NotificationSchema(
        user_id=user_id,
        type=type,
        title=title[:100],
        message=message[:300],
        related_entity_id=related_entity_id,
    )
    return create_document(db, "notification", notif, timestamps=False)


@router.get("")
def my_notifications(
    unread: Optional[bool] = None,
    page: PageParams = Depends(),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    q = {"user_id": current["id"]}
    if unread is not None:
        q["read"] = not unread
    notifs, pagination = paginate(db["notification"], q, NEWEST_FIRST, page)
    return envelope([serialize_doc(n) for n in notifs], "Notifications retrieved successfully", pagination)


@router.patch("/read-all")
def mark_all_read(current=Depends(get_current_user), db: Database = Depends(get_db)):
    result = db["notification"].update_many({"user_id": current["id"], "read": False}, {"$set": {"read": True}})
    return envelope({"modified_count": result.modified_count}, "Notifications marked as read")


@router.patch("/{notif_id}/read")
def mark_read(notif_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    notif = db["notification"].find_one_and_update(
        {"_id": parse_object_id(notif_id), "user_id": current["id"]},
        {"$set": {"read": True}},
        return_document=ReturnDocument.AFTER,
    )
    if not notif:
        raise NotFoundError("Notification not found")
    return envelope(serialize_doc(notif), "Notification marked as read")
