"""
MongoDB access for the task board.

Collections (one per record kind):
- user
- project
- task
- comment

Every document is created through `create_document` so it carries
`created_at`/`updated_at` timestamps. Ids are ObjectIds in storage and plain
strings everywhere else, including cross-document references.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger("taskboard.database")

USERS = "user"
PROJECTS = "project"
TASKS = "task"
COMMENTS = "comment"


def connect(url: Optional[str] = None, name: Optional[str] = None) -> Database:
    client = MongoClient(url or config.DATABASE_URL)
    return client[name or config.DATABASE_NAME]


def ensure_indexes(db: Database) -> None:
    db[USERS].create_index([("email", ASCENDING)], unique=True)
    db[PROJECTS].create_index([("key", ASCENDING)], unique=True)
    db[TASKS].create_index([("project_id", ASCENDING), ("status", ASCENDING), ("position", ASCENDING)])
    db[TASKS].create_index([("assignee_id", ASCENDING)])
    db[COMMENTS].create_index([("task_id", ASCENDING)])
    logger.info("Indexes ensured on %s", db.name)


def now() -> datetime:
    return datetime.now(timezone.utc)


def object_id(value: Optional[str]) -> Optional[ObjectId]:
    """Coerce an id string to ObjectId; malformed ids resolve to None."""
    if value is None:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def find_by_id(db: Database, collection_name: str, doc_id: Optional[str]) -> Optional[dict]:
    oid = object_id(doc_id)
    if oid is None:
        return None
    return db[collection_name].find_one({"_id": oid})


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    data_dict["created_at"] = now()
    data_dict["updated_at"] = now()
    result = db[collection_name].insert_one(data_dict)
    data_dict["_id"] = result.inserted_id
    return data_dict


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    out = dict(doc)
    out["id"] = str(out.pop("_id"))
    return out
