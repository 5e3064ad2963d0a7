"""
MongoDB helpers

`db` is None when DATABASE_URL is not configured. Every helper looks the
module-level `db` up at call time so the connection can be swapped (tests use
mongomock).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from config import settings

logger = logging.getLogger(__name__)


class DatabaseUnavailable(Exception):
    pass


db = None
if settings.DATABASE_URL:
    try:
        _client = MongoClient(settings.DATABASE_URL, tz_aware=True)
        db = _client[settings.DATABASE_NAME]
    except PyMongoError as e:
        logger.error("Could not connect to MongoDB: %s", e)
        db = None


def _get_db():
    if db is None:
        raise DatabaseUnavailable("Database not available. Check DATABASE_URL and DATABASE_NAME")
    return db


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _serialize(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def _id_filter(doc_id: str) -> Dict[str, Any]:
    try:
        return {"_id": ObjectId(str(doc_id))}
    except (InvalidId, TypeError):
        # Not an ObjectId; documents imported from elsewhere keep their own id
        return {"id": doc_id}


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document with created_at/updated_at and return its id as a string."""
    database = _get_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude={"id"})
    else:
        data_dict = {k: v for k, v in data.items() if k != "id"}
    now = _now()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[dict] = None,
    sort: Optional[List[tuple]] = None,
    limit: Optional[int] = None,
) -> List[dict]:
    database = _get_db()
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [_serialize(d) for d in cursor]


def get_document(collection_name: str, filter_dict: dict) -> Optional[dict]:
    database = _get_db()
    return _serialize(database[collection_name].find_one(filter_dict))


def get_document_by_id(collection_name: str, doc_id: str) -> Optional[dict]:
    return get_document(collection_name, _id_filter(doc_id))


def update_document(collection_name: str, filter_dict: dict, values: dict, upsert: bool = False) -> Optional[dict]:
    """Apply a $set (plus updated_at) and return the updated document."""
    database = _get_db()
    update = {"$set": {**values, "updated_at": _now()}}
    if upsert:
        update["$setOnInsert"] = {"created_at": _now()}
    doc = database[collection_name].find_one_and_update(
        filter_dict, update, upsert=upsert, return_document=ReturnDocument.AFTER
    )
    return _serialize(doc)


def update_document_by_id(collection_name: str, doc_id: str, values: dict) -> Optional[dict]:
    return update_document(collection_name, _id_filter(doc_id), values)


def increment_field(collection_name: str, doc_id: str, field: str, amount: int = 1) -> Optional[dict]:
    database = _get_db()
    doc = database[collection_name].find_one_and_update(
        _id_filter(doc_id),
        {"$inc": {field: amount}, "$set": {"updated_at": _now()}},
        return_document=ReturnDocument.AFTER,
    )
    return _serialize(doc)


def delete_document(collection_name: str, doc_id: str) -> bool:
    database = _get_db()
    res = database[collection_name].delete_one(_id_filter(doc_id))
    return res.deleted_count > 0


def ensure_indexes():
    database = _get_db()
    database["order"].create_index([("reference", ASCENDING)], unique=True)
    database["checkout"].create_index([("reference", ASCENDING)], unique=True)
    database["cart"].create_index([("session_id", ASCENDING)], unique=True)
