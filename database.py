"""
Database Helper Functions

MongoDB helpers shared by the routes, the synchronizer and the cart manager.
Every helper talks to the module level ``db`` handle, so tests can swap it
for an in-memory database.
"""

from pymongo import MongoClient, ReturnDocument
from bson import ObjectId
from datetime import datetime, timezone
import os
from dotenv import load_dotenv
from typing import Union, Optional, Dict, Any, List
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]


def _ensure_db():
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def _as_oid(_id: Union[str, ObjectId]) -> ObjectId:
    return _id if isinstance(_id, ObjectId) else ObjectId(_id)


def now() -> datetime:
    return datetime.now(timezone.utc)


# CRUD helpers

def create_document(collection_name: str, data: Union[BaseModel, dict]) -> dict:
    """Insert a document and return it with its generated ``_id`` and timestamps."""
    _ensure_db()
    payload = _to_dict(data)
    stamp = now()
    payload['created_at'] = stamp
    payload['updated_at'] = stamp
    result = db[collection_name].insert_one(payload)
    payload['_id'] = result.inserted_id
    return payload


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, sort: Optional[list] = None) -> List[dict]:
    _ensure_db()
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(int(limit))
    return list(cursor)


def get_document_by_id(collection_name: str, _id: Union[str, ObjectId]) -> Optional[dict]:
    _ensure_db()
    return db[collection_name].find_one({"_id": _as_oid(_id)})


def find_document(collection_name: str, filter_dict: dict) -> Optional[dict]:
    _ensure_db()
    return db[collection_name].find_one(filter_dict)


def update_document(collection_name: str, _id: Union[str, ObjectId], update_data: Dict[str, Any]) -> Optional[dict]:
    """``$set`` the given fields and return the document after the update, or None."""
    _ensure_db()
    update = {"$set": _to_dict(update_data)}
    update["$set"]["updated_at"] = now()
    return db[collection_name].find_one_and_update(
        {"_id": _as_oid(_id)}, update, return_document=ReturnDocument.AFTER
    )


def update_documents(collection_name: str, filter_dict: dict, update: Dict[str, Any]) -> int:
    """Apply a raw update operator document to every match. Returns the modified count."""
    _ensure_db()
    result = db[collection_name].update_many(filter_dict, update)
    return result.modified_count


def replace_document(collection_name: str, doc: dict) -> bool:
    _ensure_db()
    doc['updated_at'] = now()
    result = db[collection_name].replace_one({"_id": doc["_id"]}, doc)
    return result.matched_count > 0


def delete_document(collection_name: str, _id: Union[str, ObjectId]) -> Optional[dict]:
    """Delete by id and return the removed document, or None when nothing matched."""
    _ensure_db()
    return db[collection_name].find_one_and_delete({"_id": _as_oid(_id)})


def delete_documents(collection_name: str, filter_dict: dict) -> int:
    _ensure_db()
    result = db[collection_name].delete_many(filter_dict)
    return result.deleted_count


# Utility

def serialize_doc(doc: Any) -> Any:
    """Convert ObjectIds to strings, including those inside embedded arrays."""
    if doc is None:
        return None
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, dict):
        return {k: serialize_doc(v) for k, v in doc.items()}
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    return doc
