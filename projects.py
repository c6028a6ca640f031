import logging
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from accounts import public_user
from database import COMMENTS, PROJECTS, TASKS, USERS, create_document, find_by_id, now, object_id, serialize
from errors import InvalidArgument
from guard import (
    require_caller,
    require_found,
    require_not_member,
    require_project_access,
    require_project_owner,
    require_removable_member,
)
from schemas import Project as ProjectSchema, ProjectCreate, ProjectUpdate

logger = logging.getLogger("taskboard.projects")


def project_out(db: Database, project: dict) -> dict:
    out = serialize(project)
    member_oids = [oid for oid in (object_id(m) for m in project.get("member_ids", [])) if oid is not None]
    members = {str(u["_id"]): u for u in db[USERS].find({"_id": {"$in": member_oids}})}
    out["members"] = [public_user(members[m]) for m in project.get("member_ids", []) if m in members]
    out["owner"] = public_user(members.get(project["owner_id"]) or find_by_id(db, USERS, project["owner_id"]))
    return out


def list_projects(db: Database, caller: Optional[str]) -> List[dict]:
    caller = require_caller(caller)
    q = {"$or": [{"owner_id": caller}, {"member_ids": caller}]}
    return [project_out(db, p) for p in db[PROJECTS].find(q).sort([("created_at", 1), ("_id", 1)])]


def get_project(db: Database, caller: Optional[str], project_id: str) -> dict:
    caller = require_caller(caller)
    project = require_found(find_by_id(db, PROJECTS, project_id), "Project")
    require_project_access(project, caller)
    return project_out(db, project)


def create_project(db: Database, caller: Optional[str], payload: ProjectCreate) -> dict:
    caller = require_caller(caller)
    key = payload.key.upper()
    if db[PROJECTS].find_one({"key": key}):
        raise InvalidArgument("Project key already exists")
    project = ProjectSchema(
        name=payload.name,
        key=key,
        description=payload.description,
        owner_id=caller,
        member_ids=[caller],
    )
    try:
        doc = create_document(db, PROJECTS, project)
    except DuplicateKeyError:
        raise InvalidArgument("Project key already exists")
    logger.info("Project %s (%s) created by %s", doc["_id"], key, caller)
    return project_out(db, doc)


def update_project(db: Database, caller: Optional[str], project_id: str, payload: ProjectUpdate) -> dict:
    caller = require_caller(caller)
    project = require_found(find_by_id(db, PROJECTS, project_id), "Project")
    require_project_owner(project, caller, "update project")

    update = {"updated_at": now()}
    if payload.name:
        update["name"] = payload.name
    if "description" in payload.model_fields_set:
        update["description"] = payload.description
    project = db[PROJECTS].find_one_and_update(
        {"_id": project["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    return project_out(db, require_found(project, "Project"))


def delete_project(db: Database, caller: Optional[str], project_id: str) -> bool:
    caller = require_caller(caller)
    project = require_found(find_by_id(db, PROJECTS, project_id), "Project")
    require_project_owner(project, caller, "delete project")

    pid = str(project["_id"])
    task_ids = [str(t["_id"]) for t in db[TASKS].find({"project_id": pid}, {"_id": 1})]
    if task_ids:
        db[COMMENTS].delete_many({"task_id": {"$in": task_ids}})
    db[TASKS].delete_many({"project_id": pid})
    db[PROJECTS].delete_one({"_id": project["_id"]})
    logger.info("Project %s deleted by %s with %d tasks", pid, caller, len(task_ids))
    return True


def add_member(db: Database, caller: Optional[str], project_id: str, user_id: str) -> dict:
    caller = require_caller(caller)
    project = require_found(find_by_id(db, PROJECTS, project_id), "Project")
    require_project_access(project, caller)
    user = require_found(find_by_id(db, USERS, user_id), "User")
    new_member = str(user["_id"])
    require_not_member(project, new_member)

    project = db[PROJECTS].find_one_and_update(
        {"_id": project["_id"]},
        {"$push": {"member_ids": new_member}, "$set": {"updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("User %s added to project %s by %s", new_member, project_id, caller)
    return project_out(db, require_found(project, "Project"))


def remove_member(db: Database, caller: Optional[str], project_id: str, user_id: str) -> dict:
    caller = require_caller(caller)
    project = require_found(find_by_id(db, PROJECTS, project_id), "Project")
    require_removable_member(project, user_id)
    require_project_owner(project, caller, "remove members")

    project = db[PROJECTS].find_one_and_update(
        {"_id": project["_id"]},
        {"$pull": {"member_ids": user_id}, "$set": {"updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("User %s removed from project %s", user_id, project_id)
    return project_out(db, require_found(project, "Project"))
