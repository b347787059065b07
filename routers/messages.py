from datetime import timedelta
from typing import Annotated, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, StringConstraints
from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, find_by_id, find_user, get_db, parse_object_id, users_by_ids, utcnow
from errors import NotFoundError, ValidationError
from responses import envelope, serialize_doc
from routers.notifications import notify
from schemas import Message as MessageSchema
from security import get_current_user
from settings import Settings, get_settings

router = APIRouter(prefix="/messages", tags=["messages"])

MessageText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]


class SendMessagePayload(BaseModel):
    receiver_id: str
    content: MessageText


class EditMessagePayload(BaseModel):
    content: MessageText


def _between(user_id: str, partner_id: str) -> dict:
    return {"$or": [
        {"sender_id": user_id, "receiver_id": partner_id},
        {"sender_id": partner_id, "receiver_id": user_id},
    ]}


def _person(user: dict) -> dict:
    return {"id": str(user["_id"]), "name": user["name"], "profile_image": user.get("profile_image")}


def message_views(db: Database, messages: List[dict]) -> List[dict]:
    ids = {m["sender_id"] for m in messages} | {m["receiver_id"] for m in messages}
    people = users_by_ids(db, list(ids), {"name": 1, "profile_image": 1})
    views = []
    for message in messages:
        view = serialize_doc(message)
        sender = people.get(message["sender_id"])
        receiver = people.get(message["receiver_id"])
        view["sender"] = _person(sender) if sender else None
        view["receiver"] = _person(receiver) if receiver else None
        views.append(view)
    return views


@router.get("")
def list_conversations(current=Depends(get_current_user), db: Database = Depends(get_db)):
    """One entry per conversation partner, most recent conversation first."""
    me = current["id"]
    cursor = db["message"].find({"$or": [{"sender_id": me}, {"receiver_id": me}]}).sort([("created_at", -1), ("_id", -1)])

    conversations = {}
    for message in cursor:
        partner_id = message["receiver_id"] if message["sender_id"] == me else message["sender_id"]
        entry = conversations.get(partner_id)
        if entry is None:
            entry = conversations[partner_id] = {"last_message": serialize_doc(message), "unread_count": 0}
        if message["receiver_id"] == me and not message.get("read"):
            entry["unread_count"] += 1

    partners = users_by_ids(db, list(conversations), {"name": 1, "profile_image": 1, "role": 1})
    data = []
    # insertion order follows the newest message of each conversation
    for partner_id, entry in conversations.items():
        partner = partners.get(partner_id)
        if not partner:
            continue
        data.append({
            "partner": {**_person(partner), "role": partner["role"]},
            "last_message": entry["last_message"],
            "unread_count": entry["unread_count"],
        })
    return envelope(data, "Conversations retrieved successfully")


@router.post("", status_code=201)
def send_message(payload: SendMessagePayload, current=Depends(get_current_user), db: Database = Depends(get_db)):
    receiver = find_user(db, payload.receiver_id)
    if not receiver:
        raise NotFoundError("Receiver not found")

    message = MessageSchema(sender_id=current["id"], receiver_id=str(receiver["_id"]), content=payload.content)
    message_id = create_document(db, "message", message)
    notify(
        db,
        str(receiver["_id"]),
        "message",
        "New message",
        "%s: %s" % (current["name"], payload.content),
        message_id,
    )
    return envelope(message_views(db, [find_by_id(db, "message", message_id)])[0], "Message sent successfully")


@router.patch("/conversations/{partner_id}/mark-read")
def mark_conversation_read(partner_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    partner_id = str(parse_object_id(partner_id))
    result = db["message"].update_many(
        {"sender_id": partner_id, "receiver_id": current["id"], "read": False},
        {"$set": {"read": True}},
    )
    return envelope({"modified_count": result.modified_count}, "Conversation marked as read")


@router.delete("/conversations/{partner_id}")
def delete_conversation(partner_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    partner_id = str(parse_object_id(partner_id))
    result = db["message"].delete_many(_between(current["id"], partner_id))
    return envelope({"deleted_count": result.deleted_count}, "Conversation deleted successfully")


@router.get("/{partner_id}")
def get_conversation(partner_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    partner_id = str(parse_object_id(partner_id))
    messages = list(db["message"].find(_between(current["id"], partner_id)).sort([("created_at", 1), ("_id", 1)]))
    db["message"].update_many(
        {"sender_id": partner_id, "receiver_id": current["id"], "read": False},
        {"$set": {"read": True}},
    )
    return envelope(message_views(db, messages), "Messages retrieved successfully")


@router.put("/{message_id}")
def edit_message(
    message_id: str,
    payload: EditMessagePayload,
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    message = db["message"].find_one({"_id": parse_object_id(message_id), "sender_id": current["id"]})
    if not message:
        raise NotFoundError("Message not found or you are not the sender")

    window = settings.message_edit_window_minutes
    if utcnow() - message["created_at"] > timedelta(minutes=window):
        raise ValidationError("Message can only be edited within %d minutes of sending" % window)

    now = utcnow()
    message = db["message"].find_one_and_update(
        {"_id": message["_id"]},
        {"$set": {"content": payload.content, "edited": True, "edited_at": now, "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    return envelope(message_views(db, [message])[0], "Message updated successfully")


@router.delete("/{message_id}")
def delete_message(message_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    result = db["message"].delete_one({"_id": parse_object_id(message_id), "sender_id": current["id"]})
    if not result.deleted_count:
        raise NotFoundError("Message not found or you are not the sender")
    return envelope(message="Message deleted successfully")


@router.patch("/{message_id}/read")
def mark_message_read(message_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    message = db["message"].find_one_and_update(
        {"_id": parse_object_id(message_id), "receiver_id": current["id"]},
        {"$set": {"read": True}},
        return_document=ReturnDocument.AFTER,
    )
    if not message:
        raise NotFoundError("Message not found or you are not the receiver")
    return envelope(serialize_doc(message), "Message marked as read")
