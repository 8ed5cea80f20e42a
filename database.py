"""
Database Helper Functions

MongoDB helper functions used by the store collaborator and the admin endpoints.
Every pymongo failure leaves this module as a StoreError carrying an explicit kind.
"""

import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Union, Optional, Dict, Any, List

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import ConnectionFailure, OperationFailure, PyMongoError

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")
database_timeout_ms = int(os.getenv("DATABASE_TIMEOUT_MS", 5000))

if database_url and database_name:
    _client = MongoClient(database_url, serverSelectionTimeoutMS=database_timeout_ms)
    db = _client[database_name]


class StoreErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    QUOTA_EXCEEDED = "quota_exceeded"
    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class StoreError(Exception):
    """A document store failure with an explicit kind."""

    def __init__(self, kind: StoreErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self):
        return f"{self.kind.value}: {self.message}"


# Server error codes: Unauthorized, AuthenticationFailed
_PERMISSION_CODES = {13, 18}
# OutOfDiskSpace, Atlas space quota
_QUOTA_CODES = {14031, 8000}


def classify_error(exc: Exception) -> StoreErrorKind:
    if isinstance(exc, ConnectionFailure):
        return StoreErrorKind.UNAVAILABLE
    if isinstance(exc, OperationFailure):
        if exc.code in _PERMISSION_CODES:
            return StoreErrorKind.PERMISSION_DENIED
        if exc.code in _QUOTA_CODES or "quota" in str(exc).lower():
            return StoreErrorKind.QUOTA_EXCEEDED
    return StoreErrorKind.UNKNOWN


@contextmanager
def _store_errors(action: str):
    try:
        yield
    except PyMongoError as e:
        kind = classify_error(e)
        logger.error("%s failed (%s): %s", action, kind.value, e)
        raise StoreError(kind, f"{action} failed: {e}") from e


def _ensure_db():
    if db is None:
        raise StoreError(
            StoreErrorKind.UNAVAILABLE,
            "Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.",
        )


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"id"})
    return dict(data)


def _object_id(_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(_id)
    except (InvalidId, TypeError):
        return None


# CRUD helpers

def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    _ensure_db()
    payload = _to_dict(data)
    now = datetime.now(timezone.utc)
    payload['created_at'] = now
    payload['updated_at'] = now
    with _store_errors(f"insert into {collection_name}"):
        result = db[collection_name].insert_one(payload)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, sort: Optional[list] = None) -> List[dict]:
    _ensure_db()
    with _store_errors(f"query {collection_name}"):
        cursor = db[collection_name].find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(int(limit))
        return [serialize_doc(doc) for doc in cursor]


def find_document(collection_name: str, filter_dict: dict) -> Optional[dict]:
    _ensure_db()
    with _store_errors(f"query {collection_name}"):
        doc = db[collection_name].find_one(filter_dict)
    return serialize_doc(doc) if doc else None


def get_document_by_id(collection_name: str, _id: str) -> Optional[dict]:
    oid = _object_id(_id)
    if oid is None:
        return None
    return find_document(collection_name, {"_id": oid})


def update_document(collection_name: str, _id: str, update_data: Dict[str, Any]) -> bool:
    _ensure_db()
    oid = _object_id(_id)
    if oid is None:
        return False
    update = {"$set": _to_dict(update_data)}
    update["$set"]["updated_at"] = datetime.now(timezone.utc)
    with _store_errors(f"update {collection_name}"):
        result = db[collection_name].update_one({"_id": oid}, update)
    return result.matched_count > 0


def delete_document(collection_name: str, _id: str) -> bool:
    _ensure_db()
    oid = _object_id(_id)
    if oid is None:
        return False
    with _store_errors(f"delete from {collection_name}"):
        result = db[collection_name].delete_one({"_id": oid})
    return result.deleted_count > 0


def increment_field(collection_name: str, _id: str, field: str, amount: int = 1) -> dict:
    """
    Atomically add `amount` to a numeric field and return the updated document.

    The read-modify-write happens server-side in one operation, so concurrent
    callers never lose an increment. Raises StoreError(NOT_FOUND) when the
    document does not exist.
    """
    _ensure_db()
    oid = _object_id(_id)
    if oid is None:
        raise StoreError(StoreErrorKind.NOT_FOUND, f"{collection_name} {_id} not found")
    with _store_errors(f"increment {collection_name}.{field}"):
        doc = db[collection_name].find_one_and_update(
            {"_id": oid},
            {"$inc": {field: amount}, "$set": {"updated_at": datetime.now(timezone.utc)}},
            return_document=ReturnDocument.AFTER,
        )
    if doc is None:
        raise StoreError(StoreErrorKind.NOT_FOUND, f"{collection_name} {_id} not found")
    return serialize_doc(doc)


def list_collections() -> List[str]:
    _ensure_db()
    with _store_errors("list collections"):
        return db.list_collection_names()


# Utility

def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    d = dict(doc)
    if "_id" in d:
        d["_id"] = str(d["_id"])  # convert ObjectId to string
    return d
