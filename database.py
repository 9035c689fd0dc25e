"""
MongoDB access for the task management service.

A single client is created lazily on first use and shared by every request.
Routes receive the database handle through the ``get_db`` dependency.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient, ReturnDocument
from pymongo.database import Database

from config import settings
from logging_config import logger

USERS = "users"
ADMINS = "admins"
TEAMS = "teams"
PROJECTS = "projects"
ASSIGNED_PROJECT_LOGS = "assignedprojectlogs"
TASKS = "tasks"
SUBTASKS = "subtasks"
COUNTERS = "counters"

# Fields never sent back to a client
SECRET_FIELDS = {"password"}

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        logger.info("Connecting to MongoDB", extra={"database_name": settings.DATABASE_NAME})
        _client = MongoClient(settings.DATABASE_URL, tz_aware=True)
    return _client


def get_db() -> Database:
    return get_client()[settings.DATABASE_NAME]


def close_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None


def ensure_indexes(db: Database) -> None:
    db[USERS].create_index("UserId", unique=True)
    db[USERS].create_index("email", unique=True)
    db[ADMINS].create_index("AdminId", unique=True)
    db[ADMINS].create_index("email", unique=True)
    db[TEAMS].create_index("teamId", unique=True)
    db[PROJECTS].create_index("ProjectId", unique=True)
    db[ASSIGNED_PROJECT_LOGS].create_index("AssignProjectId", unique=True)
    db[ASSIGNED_PROJECT_LOGS].create_index([("projectId", 1), ("teamId", 1)])
    db[TASKS].create_index("TaskId", unique=True)
    db[SUBTASKS].create_index("SubtaskId", unique=True)
    db[SUBTASKS].create_index("parentTaskId")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_id(db: Database, prefix: str) -> str:
    """Allocate the next ``<prefix>-NNNNN`` id from an atomic counter."""
    counter = db[COUNTERS].find_one_and_update(
        {"_id": prefix},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return f"{prefix}-{counter['seq']:05d}"


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Insert a document with timestamps and return what was stored."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    now = utcnow()
    data_dict["createdAt"] = now
    data_dict["updatedAt"] = now
    result = db[collection_name].insert_one(data_dict)
    data_dict["_id"] = result.inserted_id
    return data_dict


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, projection: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {}, projection)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize(doc) for doc in cursor]


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = {k: v for k, v in doc.items() if k not in SECRET_FIELDS}
    d.pop("_id", None)
    for k, v in list(d.items()):
        if isinstance(v, datetime):
            if v.tzinfo is None:
                v = v.replace(tzinfo=timezone.utc)
            d[k] = v.astimezone(timezone.utc).isoformat()
        elif isinstance(v, ObjectId):
            d[k] = str(v)
    return d
