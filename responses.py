"""
Response envelope and Mongo document shaping.

Every successful response is {success: true, data?, message?, pagination?}.
"""
import math
from typing import Any, List, Optional, Tuple

from bson import ObjectId
from fastapi import Query
from pymongo.collection import Collection

# Never leaves the server
PRIVATE_FIELDS = ("password_hash",)

# _id breaks ties between documents created in the same millisecond
NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


def _clean(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _clean(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_clean(v) for v in value]
    return value


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    for field in PRIVATE_FIELDS:
        doc.pop(field, None)
    return _clean(doc)


def envelope(data: Any = None, message: Optional[str] = None, pagination: Optional[dict] = None) -> dict:
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination
    return body


class PageParams:
    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
    ):
        self.page = page
        self.limit = limit

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "pages": math.ceil(total / self.limit),
        }


def paginate(collection: Collection, query: dict, sort: List[Tuple[str, int]], page: PageParams) -> Tuple[List[dict], dict]:
    total = collection.count_documents(query)
    docs = list(collection.find(query).sort(sort).skip(page.skip).limit(page.limit))
    return docs, page.meta(total)
