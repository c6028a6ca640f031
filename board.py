"""
Task board engine.

Tasks live in columns: the set of tasks sharing a (project, status) pair,
ordered by ``position``. Positions are caller-supplied integers; they are
never compacted or renumbered, so columns may contain gaps and, after a
same-column move, duplicates.

Every mutation publishes a ``TASK_UPDATED`` event keyed by the task's project
id once its writes are persisted.
"""
import logging
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from accounts import public_user
from database import COMMENTS, PROJECTS, TASKS, USERS, create_document, find_by_id, now, object_id, serialize
from events import TASK_UPDATED, EventBus
from guard import require_caller, require_found
from schemas import Task as TaskSchema, TaskCreate, TaskMove, TaskUpdate

logger = logging.getLogger("taskboard.board")

# Fields applied only when sent with a non-null value.
_VALUE_FIELDS = ("title", "status", "priority")
# Fields where an explicit null clears the stored value.
_NULLABLE_FIELDS = ("description", "assignee_id")


def task_key(project: Optional[dict], task: dict) -> str:
    key = project.get("key") if project else None
    return f"{key}-{task['task_number']}"


def project_summary(project: Optional[dict]) -> Optional[dict]:
    if project is None:
        return None
    return {"id": str(project["_id"]), "key": project["key"], "name": project["name"]}


def task_out(db: Database, task: dict, project: Optional[dict] = None) -> dict:
    """Serialize a task with its key and the related project and users resolved."""
    if project is None:
        project = find_by_id(db, PROJECTS, task["project_id"])
    out = serialize(task)
    out["task_key"] = task_key(project, task)
    out["project"] = project_summary(project)
    out["reporter"] = public_user(find_by_id(db, USERS, task["reporter_id"]))
    assignee_id = task.get("assignee_id")
    out["assignee"] = public_user(find_by_id(db, USERS, assignee_id)) if assignee_id else None
    return out


def _publish(events: EventBus, action: str, task: dict) -> None:
    events.publish(TASK_UPDATED, task["project_id"], {"action": action, "task": task})


# Queries

def list_tasks(db: Database, project_id: str) -> List[dict]:
    project = find_by_id(db, PROJECTS, project_id)
    cursor = db[TASKS].find({"project_id": project_id}).sort([("status", 1), ("position", 1)])
    return [task_out(db, t, project) for t in cursor]


def get_task(db: Database, task_id: str) -> dict:
    return task_out(db, require_found(find_by_id(db, TASKS, task_id), "Task"))


def my_tasks(db: Database, caller: Optional[str]) -> List[dict]:
    caller = require_caller(caller)
    cursor = db[TASKS].find({"assignee_id": caller}).sort([("created_at", -1), ("_id", -1)])
    return [task_out(db, t) for t in cursor]


# Mutations

def next_task_number(db: Database, project_id: str) -> tuple:
    """Advance the project's task counter and return (project, new number).

    The increment is a single atomic ``$inc`` so concurrent creations never
    mint the same number.
    """
    oid = object_id(project_id)
    project = None
    if oid is not None:
        project = db[PROJECTS].find_one_and_update(
            {"_id": oid}, {"$inc": {"task_counter": 1}}, return_document=ReturnDocument.AFTER
        )
    project = require_found(project, "Project")
    return project, project["task_counter"]


def create_task(db: Database, events: EventBus, caller: Optional[str], payload: TaskCreate) -> dict:
    caller = require_caller(caller)
    project, number = next_task_number(db, payload.project_id)
    task = TaskSchema(
        project_id=str(project["_id"]),
        title=payload.title,
        description=payload.description,
        priority=payload.priority or "MEDIUM",
        assignee_id=payload.assignee_id,
        reporter_id=caller,
        task_number=number,
    )
    doc = task_out(db, create_document(db, TASKS, task), project)
    logger.info("Task %s created by %s", doc["task_key"], caller)
    _publish(events, "CREATED", doc)
    return doc


def update_task(db: Database, events: EventBus, caller: Optional[str], task_id: str, payload: TaskUpdate) -> dict:
    caller = require_caller(caller)
    task = require_found(find_by_id(db, TASKS, task_id), "Task")

    update = {"updated_at": now()}
    for field in _VALUE_FIELDS:
        value = getattr(payload, field)
        if value:
            update[field] = value
    for field in _NULLABLE_FIELDS:
        if field in payload.model_fields_set:
            update[field] = getattr(payload, field)

    task = db[TASKS].find_one_and_update(
        {"_id": task["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    doc = task_out(db, require_found(task, "Task"))
    _publish(events, "UPDATED", doc)
    return doc


def delete_task(db: Database, events: EventBus, caller: Optional[str], task_id: str) -> bool:
    caller = require_caller(caller)
    task = require_found(find_by_id(db, TASKS, task_id), "Task")
    snapshot = task_out(db, task)

    db[COMMENTS].delete_many({"task_id": snapshot["id"]})
    db[TASKS].delete_one({"_id": task["_id"]})
    logger.info("Task %s deleted by %s", snapshot["task_key"], caller)
    _publish(events, "DELETED", snapshot)
    return True


def move_task(db: Database, events: EventBus, caller: Optional[str], task_id: str, payload: TaskMove) -> dict:
    """Move a task to ``payload.status`` at ``payload.position``.

    Moving into another column first shifts every other task in the
    destination column at or after the target position down by one, opening a
    slot, and only then writes the moved task. The two writes are separate
    operations. Reordering within the same column only overwrites the moved
    task's position.
    """
    caller = require_caller(caller)
    task = require_found(find_by_id(db, TASKS, task_id), "Task")

    if task["status"] != payload.status:
        shifted = db[TASKS].update_many(
            {
                "project_id": task["project_id"],
                "status": payload.status,
                "_id": {"$ne": task["_id"]},
                "position": {"$gte": payload.position},
            },
            {"$inc": {"position": 1}},
        )
        logger.debug("Shifted %d tasks in %s/%s", shifted.modified_count, task["project_id"], payload.status)

    task = db[TASKS].find_one_and_update(
        {"_id": task["_id"]},
        {"$set": {"status": payload.status, "position": payload.position, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    doc = task_out(db, require_found(task, "Task"))
    logger.info("Task %s moved to %s@%d by %s", doc["task_key"], payload.status, payload.position, caller)
    _publish(events, "MOVED", doc)
    return doc
