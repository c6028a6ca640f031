import logging
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from accounts import public_user
from board import task_key
from database import COMMENTS, PROJECTS, TASKS, USERS, create_document, find_by_id, now, serialize
from events import COMMENT_ADDED, EventBus
from guard import require_caller, require_comment_author, require_found
from schemas import Comment as CommentSchema, CommentCreate, CommentUpdate

logger = logging.getLogger("taskboard.comments")


def task_summary(db: Database, task: Optional[dict]) -> Optional[dict]:
    if task is None:
        return None
    project = find_by_id(db, PROJECTS, task["project_id"])
    return {"id": str(task["_id"]), "task_key": task_key(project, task), "title": task["title"]}


def comment_out(db: Database, comment: dict, task: Optional[dict] = None) -> dict:
    if task is None:
        task = find_by_id(db, TASKS, comment["task_id"])
    out = serialize(comment)
    out["author"] = public_user(find_by_id(db, USERS, comment["author_id"]))
    out["task"] = task_summary(db, task)
    return out


def list_comments(db: Database, task_id: str) -> List[dict]:
    task = find_by_id(db, TASKS, task_id)
    cursor = db[COMMENTS].find({"task_id": task_id}).sort([("created_at", 1), ("_id", 1)])
    return [comment_out(db, c, task) for c in cursor]


def create_comment(db: Database, events: EventBus, caller: Optional[str], payload: CommentCreate) -> dict:
    caller = require_caller(caller)
    task = require_found(find_by_id(db, TASKS, payload.task_id), "Task")
    comment = CommentSchema(task_id=str(task["_id"]), author_id=caller, content=payload.content)
    doc = comment_out(db, create_document(db, COMMENTS, comment), task)
    events.publish(COMMENT_ADDED, doc["task_id"], doc)
    return doc


def update_comment(db: Database, caller: Optional[str], comment_id: str, payload: CommentUpdate) -> dict:
    caller = require_caller(caller)
    comment = require_found(find_by_id(db, COMMENTS, comment_id), "Comment")
    require_comment_author(comment, caller, "update")

    edited_at = now()
    comment = db[COMMENTS].find_one_and_update(
        {"_id": comment["_id"]},
        {"$set": {"content": payload.content, "is_edited": True, "edited_at": edited_at, "updated_at": edited_at}},
        return_document=ReturnDocument.AFTER,
    )
    return comment_out(db, require_found(comment, "Comment"))


def delete_comment(db: Database, caller: Optional[str], comment_id: str) -> bool:
    caller = require_caller(caller)
    comment = require_found(find_by_id(db, COMMENTS, comment_id), "Comment")
    require_comment_author(comment, caller, "delete")
    db[COMMENTS].delete_one({"_id": comment["_id"]})
    logger.info("Comment %s deleted by %s", comment_id, caller)
    return True
