"""
Authorization rules applied before every mutation.

All checks are pure: they take the caller identity (a user id string, or None
for anonymous requests) and the already-loaded target document, and either
return or raise. Callers run them in this order:

1. `require_caller` - anonymous callers are rejected.
2. `require_found` - a missing target is NOT_FOUND before any field is read.
3. The entity rule (`require_project_*`, `require_comment_author`, ...).
"""
import logging
from typing import Optional

from errors import Forbidden, InvalidArgument, NotFound, Unauthenticated

logger = logging.getLogger("taskboard.guard")


def require_caller(caller: Optional[str]) -> str:
    if not caller:
        raise Unauthenticated()
    return caller


def require_found(doc: Optional[dict], kind: str) -> dict:
    if doc is None:
        raise NotFound(f"{kind} not found")
    return doc


def is_project_owner(project: dict, user_id: str) -> bool:
    return project.get("owner_id") == user_id


def is_project_member(project: dict, user_id: str) -> bool:
    return user_id in project.get("member_ids", [])


def require_project_access(project: dict, caller: str) -> None:
    """Owner or member; used for reads and for adding members."""
    if not is_project_owner(project, caller) and not is_project_member(project, caller):
        logger.warning("User %s denied access to project %s", caller, project.get("_id"))
        raise Forbidden("Access denied")


def require_project_owner(project: dict, caller: str, action: str) -> None:
    if not is_project_owner(project, caller):
        logger.warning("User %s is not owner of project %s (%s)", caller, project.get("_id"), action)
        raise Forbidden(f"Only owner can {action}")


def require_not_member(project: dict, user_id: str) -> None:
    if is_project_member(project, user_id):
        raise InvalidArgument("User is already a member")


def require_removable_member(project: dict, user_id: str) -> None:
    if is_project_owner(project, user_id):
        raise InvalidArgument("Cannot remove project owner")


def require_comment_author(comment: dict, caller: str, action: str) -> None:
    if comment.get("author_id") != caller:
        logger.warning("User %s is not author of comment %s", caller, comment.get("_id"))
        raise Forbidden(f"Only author can {action} comment")
