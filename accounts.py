import logging
from typing import List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import USERS, create_document, find_by_id
from errors import InvalidArgument
from guard import require_caller, require_found
from schemas import LoginRequest, RegisterRequest, User as UserSchema
from security import create_token, hash_password, verify_password

logger = logging.getLogger("taskboard.accounts")


def public_user(user: Optional[dict]) -> Optional[dict]:
    if user is None:
        return None
    return {
        "id": str(user["_id"]),
        "email": user["email"],
        "name": user.get("name", ""),
        "avatar": user.get("avatar"),
        "role": user.get("role", "MEMBER"),
    }


def get_user_by_email(db: Database, email: str) -> Optional[dict]:
    return db[USERS].find_one({"email": email})


def register(db: Database, payload: RegisterRequest) -> dict:
    if get_user_by_email(db, payload.email):
        raise InvalidArgument("Email already exists")
    user = UserSchema(
        email=payload.email,
        name=payload.name,
        password_hash=hash_password(payload.password),
    )
    try:
        doc = create_document(db, USERS, user)
    except DuplicateKeyError:
        raise InvalidArgument("Email already exists")
    user_id = str(doc["_id"])
    logger.info("Registered user %s", user_id)
    return {"token": create_token(user_id), "user": public_user(doc)}


def login(db: Database, payload: LoginRequest) -> dict:
    user = get_user_by_email(db, payload.email)
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise InvalidArgument("Invalid credentials")
    return {"token": create_token(str(user["_id"])), "user": public_user(user)}


def me(db: Database, caller: Optional[str]) -> dict:
    caller = require_caller(caller)
    return public_user(require_found(find_by_id(db, USERS, caller), "User"))


def list_users(db: Database, caller: Optional[str]) -> List[dict]:
    require_caller(caller)
    return [public_user(u) for u in db[USERS].find().sort([("created_at", 1), ("_id", 1)])]
