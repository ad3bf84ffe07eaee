"""
MongoDB access for the Medication Schedule API.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; every
helper then raises so routes can turn it into a 500.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]


def _require_db():
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with created/updated timestamps and return its id."""
    database = _require_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    logger.info("Inserted %s into %s", result.inserted_id, collection_name)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
) -> List[Dict[str, Any]]:
    database = _require_db()
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(collection_name: str, document_id: str) -> Optional[Dict[str, Any]]:
    """Raises bson.errors.InvalidId for a malformed id."""
    database = _require_db()
    return database[collection_name].find_one({"_id": ObjectId(document_id)})


def update_document(collection_name: str, document_id: str, updates: Dict[str, Any]) -> int:
    database = _require_db()
    updates = dict(updates)
    updates["updated_at"] = datetime.now(timezone.utc)
    result = database[collection_name].update_one({"_id": ObjectId(document_id)}, {"$set": updates})
    return result.matched_count


def delete_document(collection_name: str, document_id: str) -> int:
    database = _require_db()
    result = database[collection_name].delete_one({"_id": ObjectId(document_id)})
    return result.deleted_count
