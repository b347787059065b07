import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, StringConstraints
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, find_by_id, get_db, parse_object_id, users_by_ids, utcnow
from errors import NotFoundError
from policy import check_owner
from responses import NEWEST_FIRST, PageParams, envelope, paginate, serialize_doc
from routers.notifications import notify
from schemas import Comment as CommentSchema, MediaFile, Post as PostSchema, Role
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])

UNKNOWN_AUTHOR = "Unknown User"
FEED_COMMENT_PREVIEW = 3


class CreatePostPayload(BaseModel):
    content: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=2000)]
    tags: List[Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]] = Field(default_factory=list)
    media: List[MediaFile] = Field(default_factory=list)


class CreateCommentPayload(BaseModel):
    content: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=500)]


def comment_view(comment: dict, authors: dict) -> dict:
    view = serialize_doc(comment)
    author = authors.get(comment["author_id"])
    view["author_name"] = author["name"] if author else UNKNOWN_AUTHOR
    view["author_profile_image"] = author.get("profile_image") if author else None
    return view


def post_views(db: Database, posts: List[dict], caller_id: Optional[str], comment_limit: Optional[int] = None) -> List[dict]:
    """Attach author info, like state and comments to raw post documents.

    With `comment_limit` only the newest comments are kept; either way they
    are returned in creation order.
    """
    comments_by_post = {str(p["_id"]): [] for p in posts}
    if comments_by_post:
        cursor = db["comment"].find({"post_id": {"$in": list(comments_by_post)}}).sort([("created_at", 1), ("_id", 1)])
        for comment in cursor:
            comments_by_post[comment["post_id"]].append(comment)
    if comment_limit:
        comments_by_post = {k: v[-comment_limit:] for k, v in comments_by_post.items()}

    author_ids = {p["author_id"] for p in posts}
    for found in comments_by_post.values():
        author_ids.update(c["author_id"] for c in found)
    authors = users_by_ids(db, list(author_ids), {"name": 1, "role": 1, "profile_image": 1, "is_verified": 1})

    views = []
    for post in posts:
        view = serialize_doc(post)
        author = authors.get(post["author_id"])
        view["author_name"] = author["name"] if author else UNKNOWN_AUTHOR
        view["author_role"] = author["role"] if author else None
        view["author_profile_image"] = author.get("profile_image") if author else None
        view["author_verified"] = bool(author and author.get("is_verified"))
        view["likes_count"] = len(post.get("likes", []))
        view["is_liked"] = caller_id in post.get("likes", [])
        view["comments"] = [comment_view(c, authors) for c in comments_by_post[str(post["_id"])]]
        views.append(view)
    return views


def _get_post(db: Database, post_id: str) -> dict:
    post = db["post"].find_one({"_id": parse_object_id(post_id)})
    if not post:
        raise NotFoundError("Post not found")
    return post


@router.get("")
def list_posts(
    author_id: Optional[str] = None,
    role: Optional[Role] = None,
    page: PageParams = Depends(),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    q = {}
    if author_id:
        q["author_id"] = author_id
    elif role:
        ids = [str(u["_id"]) for u in db["user"].find({"role": role}, {"_id": 1})]
        q["author_id"] = {"$in": ids}
    posts, pagination = paginate(db["post"], q, NEWEST_FIRST, page)
    data = post_views(db, posts, current["id"], comment_limit=FEED_COMMENT_PREVIEW)
    return envelope(data, "Posts retrieved successfully", pagination)


@router.post("", status_code=201)
def create_post(payload: CreatePostPayload, current=Depends(get_current_user), db: Database = Depends(get_db)):
    post = PostSchema(author_id=current["id"], content=payload.content, tags=payload.tags, media=payload.media)
    post_id = create_document(db, "post", post)
    view = post_views(db, [find_by_id(db, "post", post_id)], current["id"])[0]
    return envelope(view, "Post created successfully")


@router.get("/{post_id}")
def get_post(post_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    post = _get_post(db, post_id)
    return envelope(post_views(db, [post], current["id"])[0], "Post retrieved successfully")


@router.post("/{post_id}/like")
def toggle_like(post_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    oid = parse_object_id(post_id)
    user_id = current["id"]
    post = db["post"].find_one_and_update(
        {"_id": oid, "likes": {"$ne": user_id}},
        {"$addToSet": {"likes": user_id}},
        return_document=ReturnDocument.AFTER,
    )
    liked = post is not None
    if not liked:
        post = db["post"].find_one_and_update(
            {"_id": oid, "likes": user_id},
            {"$pull": {"likes": user_id}},
            return_document=ReturnDocument.AFTER,
        )
    if post is None:
        raise NotFoundError("Post not found")

    if liked and post["author_id"] != user_id:
        notify(db, post["author_id"], "like", "New like", "%s liked your post" % current["name"], post_id)
    return envelope(
        {"liked": liked, "likes_count": len(post.get("likes", []))},
        "Post liked" if liked else "Post unliked",
    )


@router.post("/{post_id}/share")
def share_post(post_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    # Every call counts, repeated shares by the same user included
    post = db["post"].find_one_and_update(
        {"_id": parse_object_id(post_id)},
        {"$inc": {"share_count": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if not post:
        raise NotFoundError("Post not found")
    return envelope({"share_count": post["share_count"]}, "Post shared successfully")


@router.post("/{post_id}/comments", status_code=201)
def add_comment(
    post_id: str,
    payload: CreateCommentPayload,
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    post = _get_post(db, post_id)
    comment = CommentSchema(post_id=str(post["_id"]), author_id=current["id"], content=payload.content)
    comment_id = create_document(db, "comment", comment)
    try:
        db["post"].update_one({"_id": post["_id"]}, {"$push": {"comments": comment_id}, "$set": {"updated_at": utcnow()}})
    except PyMongoError:
        logger.warning("Comment %s saved but not linked to post %s", comment_id, post_id, exc_info=True)

    if post["author_id"] != current["id"]:
        notify(db, post["author_id"], "comment", "New comment", "%s commented on your post" % current["name"], post_id)
    view = comment_view(find_by_id(db, "comment", comment_id), {current["id"]: current})
    return envelope(view, "Comment added successfully")


@router.delete("/{post_id}")
def delete_post(post_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    post = _get_post(db, post_id)
    check_owner(current, post["author_id"], "delete your own posts")
    db["comment"].delete_many({"post_id": str(post["_id"])})
    db["post"].delete_one({"_id": post["_id"]})
    return envelope(message="Post deleted successfully")
