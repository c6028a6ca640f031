from uuid import uuid4

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import COMMENTS, PROJECTS, TASKS, USERS, create_document
from events import EventBus
from main import create_app
from schemas import Comment, Project, Task, User
from security import create_token


class RecordingBus(EventBus):
    """EventBus that also keeps every published event for assertions."""

    def __init__(self):
        super().__init__()
        self.published = []

    def publish(self, topic, key, payload):
        self.published.append((topic, key, payload))
        super().publish(topic, key, payload)


@pytest.fixture
def db():
    # mongomock clients share data per host, so isolate each test by name.
    return mongomock.MongoClient()[f"taskboard_test_{uuid4().hex}"]


@pytest.fixture
def events():
    return RecordingBus()


@pytest.fixture
def client(db, events):
    with TestClient(create_app(db=db, events=events)) as c:
        yield c


@pytest.fixture
def make_user(db):
    def _make(email=None, name="Test User"):
        email = email or f"user-{uuid4().hex[:8]}@example.com"
        doc = create_document(db, USERS, User(email=email, name=name, password_hash="not-a-real-hash"))
        return str(doc["_id"])

    return _make


@pytest.fixture
def make_project(db):
    def _make(owner_id, key="ABC", members=None, name="Board"):
        doc = create_document(
            db,
            PROJECTS,
            Project(name=name, key=key, owner_id=owner_id, member_ids=[owner_id] + list(members or [])),
        )
        return str(doc["_id"])

    return _make


@pytest.fixture
def make_task(db):
    """Insert a task directly, bypassing the counter, for column layout tests."""

    def _make(project_id, reporter_id, status="TODO", position=0, number=None, title=None):
        number = number or db[TASKS].count_documents({"project_id": project_id}) + 1
        doc = create_document(
            db,
            TASKS,
            Task(
                project_id=project_id,
                title=title or f"Task {number}",
                status=status,
                position=position,
                reporter_id=reporter_id,
                task_number=number,
            ),
        )
        return str(doc["_id"])

    return _make


@pytest.fixture
def make_comment(db):
    def _make(task_id, author_id, content="Looks good"):
        doc = create_document(db, COMMENTS, Comment(task_id=task_id, author_id=author_id, content=content))
        return str(doc["_id"])

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user_id):
        return {"Authorization": f"Bearer {create_token(user_id)}"}

    return _headers
