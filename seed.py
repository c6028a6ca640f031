"""Reset the database and load a small demo board.

Usage: python seed.py
"""
import logging

from database import COMMENTS, PROJECTS, TASKS, USERS, connect, create_document, ensure_indexes
from schemas import Comment, Project, Task, User
from security import hash_password

logger = logging.getLogger("taskboard.seed")


def seed(db) -> dict:
    logger.info("Clearing existing data...")
    for name in (USERS, PROJECTS, TASKS, COMMENTS):
        db[name].delete_many({})
    ensure_indexes(db)

    hashed = hash_password("password123")
    admin = create_document(db, USERS, User(name="Admin User", email="admin@example.com", password_hash=hashed, role="ADMIN"))
    member = create_document(db, USERS, User(name="Member User", email="member@example.com", password_hash=hashed))
    admin_id, member_id = str(admin["_id"]), str(member["_id"])

    tasks = [
        ("Setup project structure", "Initialize the API skeleton and database access.", "DONE", "HIGH", admin_id),
        ("Implement authentication", "Register and login with bearer tokens.", "IN_PROGRESS", "HIGH", member_id),
        ("Build the task board", "Columns, drag-and-drop ordering and live updates.", "TODO", "MEDIUM", member_id),
    ]
    project = create_document(
        db,
        PROJECTS,
        Project(
            name="Task Board",
            key="JCP",
            description="Demo project for the task board backend.",
            owner_id=admin_id,
            member_ids=[admin_id, member_id],
            task_counter=len(tasks),
        ),
    )
    project_id = str(project["_id"])

    created = []
    for number, (title, description, status, priority, assignee) in enumerate(tasks, start=1):
        created.append(create_document(
            db,
            TASKS,
            Task(
                project_id=project_id,
                title=title,
                description=description,
                status=status,
                priority=priority,
                assignee_id=assignee,
                reporter_id=admin_id,
                task_number=number,
            ),
        ))

    create_document(db, COMMENTS, Comment(task_id=str(created[1]["_id"]), author_id=admin_id, content="Use bcrypt for the password hashes."))
    create_document(db, COMMENTS, Comment(task_id=str(created[1]["_id"]), author_id=member_id, content="On it."))

    logger.info("Seeded %d users, 1 project, %d tasks", 2, len(created))
    return {"users": [admin_id, member_id], "project": project_id, "tasks": [str(t["_id"]) for t in created]}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    seed(connect())
