"""
Stored record shapes and API payloads for the task board.

One MongoDB collection per record kind: users in "user", projects in
"project", tasks in "task" and comments in "comment". The document models
fix field defaults at insert time (a task starts in TODO at position 0, a
comment starts unedited). The request models further down only validate
what clients send; services decide what actually gets written.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

# Users
Role = Literal["ADMIN", "MEMBER"]


class User(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=120)
    password_hash: str
    avatar: Optional[str] = None
    role: Role = "MEMBER"


# Projects
PROJECT_KEY_PATTERN = r"^[A-Za-z0-9]+$"


class Project(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    key: str = Field(..., min_length=3, max_length=10, pattern=PROJECT_KEY_PATTERN)
    description: Optional[str] = Field(None, max_length=2000)
    owner_id: str
    member_ids: List[str] = []
    task_counter: int = Field(0, ge=0)

    @field_validator("key")
    @classmethod
    def _uppercase_key(cls, v: str) -> str:
        return v.upper()


# Tasks
TaskStatus = Literal["TODO", "IN_PROGRESS", "DONE"]
TaskPriority = Literal["LOW", "MEDIUM", "HIGH"]
TaskAction = Literal["CREATED", "UPDATED", "DELETED", "MOVED"]


class Task(BaseModel):
    project_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: TaskStatus = "TODO"
    priority: TaskPriority = "MEDIUM"
    assignee_id: Optional[str] = None
    reporter_id: str
    position: int = 0
    task_number: int = Field(..., ge=1)


# Comments
class Comment(BaseModel):
    task_id: str
    author_id: str
    content: str = Field(..., min_length=1, max_length=10000)
    is_edited: bool = False
    edited_at: Optional[datetime] = None


# Request payloads
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=120)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    key: str = Field(..., min_length=3, max_length=10, pattern=PROJECT_KEY_PATTERN)
    description: Optional[str] = Field(None, max_length=2000)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)


class MemberAdd(BaseModel):
    user_id: str


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    project_id: str
    description: Optional[str] = Field(None, max_length=5000)
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[str] = None


class TaskUpdate(BaseModel):
    """Partial task update.

    Which keys the client actually sent is read from ``model_fields_set``:
    an absent key means "no change", while ``description``/``assignee_id``
    sent as null mean "clear". An empty or null title is ignored.
    """

    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[str] = None


class TaskMove(BaseModel):
    status: TaskStatus
    position: int = Field(..., ge=0)


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)
    task_id: str


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)
