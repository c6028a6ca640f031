import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError

import accounts
import board
import comments
import config
import projects
from database import connect, ensure_indexes
from errors import InvalidArgument, ServiceError
from events import COMMENT_ADDED, TASK_UPDATED, EventBus
from schemas import (
    CommentCreate,
    CommentUpdate,
    LoginRequest,
    MemberAdd,
    ProjectCreate,
    ProjectUpdate,
    RegisterRequest,
    TaskCreate,
    TaskMove,
    TaskUpdate,
)
from security import caller_from_header, get_caller

logger = logging.getLogger("taskboard.api")


# Dependencies

def get_db(request: Request) -> Database:
    return request.app.state.db


def get_events(request: Request) -> EventBus:
    return request.app.state.events


# Error handlers

async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid input"
    return JSONResponse(
        status_code=InvalidArgument.status_code,
        content={"detail": message, "code": InvalidArgument.code},
    )


async def storage_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": "INTERNAL_SERVER_ERROR"},
    )


# Subscriptions

async def stream_events(websocket: WebSocket, topic: str, key: str) -> None:
    events: EventBus = websocket.app.state.events
    caller = caller_from_header(websocket.headers.get("authorization"))
    subscription = events.subscribe(topic, key)
    try:
        await websocket.accept()
        logger.info("Subscriber %s attached to %s/%s", caller or "anonymous", topic, key)

        async def forward():
            async for payload in subscription:
                await websocket.send_json({"data": jsonable_encoder(payload)})

        async def listen():
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    return

        forwarder = asyncio.ensure_future(forward())
        listener = asyncio.ensure_future(listen())
        done, pending = await asyncio.wait({forwarder, listener}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                raise exc
        if forwarder in done and listener not in done:
            # Bus shut down underneath a live client.
            await websocket.close()
    finally:
        subscription.close()
        logger.info("Subscriber detached from %s/%s", topic, key)


def create_app(db: Optional[Database] = None, events: Optional[EventBus] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.db is None:
            app.state.db = connect()
        ensure_indexes(app.state.db)
        logger.info("Task board API started")
        yield
        app.state.events.close()
        logger.info("Task board API stopped")

    app = FastAPI(title="Task Board API", version="1.0.0", lifespan=lifespan)
    app.state.db = db
    app.state.events = events if events is not None else EventBus()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(PyMongoError, storage_error_handler)

    # Auth Routes
    @app.post("/api/v1/auth/register")
    def register(payload: RegisterRequest, db: Database = Depends(get_db)):
        return accounts.register(db, payload)

    @app.post("/api/v1/auth/login")
    def login(payload: LoginRequest, db: Database = Depends(get_db)):
        return accounts.login(db, payload)

    @app.get("/api/v1/me")
    def me(caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return accounts.me(db, caller)

    @app.get("/api/v1/users")
    def list_users(caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return accounts.list_users(db, caller)

    # Project Routes
    @app.get("/api/v1/projects")
    def list_projects(caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return projects.list_projects(db, caller)

    @app.post("/api/v1/projects")
    def create_project(payload: ProjectCreate, caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return projects.create_project(db, caller, payload)

    @app.get("/api/v1/projects/{project_id}")
    def get_project(project_id: str, caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return projects.get_project(db, caller, project_id)

    @app.put("/api/v1/projects/{project_id}")
    def update_project(project_id: str, payload: ProjectUpdate, caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return projects.update_project(db, caller, project_id, payload)

    @app.delete("/api/v1/projects/{project_id}")
    def delete_project(project_id: str, caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return {"success": projects.delete_project(db, caller, project_id)}

    # Members management
    @app.post("/api/v1/projects/{project_id}/members")
    def add_member(project_id: str, payload: MemberAdd, caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return projects.add_member(db, caller, project_id, payload.user_id)

    @app.delete("/api/v1/projects/{project_id}/members/{member_user_id}")
    def remove_member(project_id: str, member_user_id: str, caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return projects.remove_member(db, caller, project_id, member_user_id)

    # Task Routes
    @app.get("/api/v1/projects/{project_id}/tasks")
    def list_tasks(project_id: str, db: Database = Depends(get_db)):
        return board.list_tasks(db, project_id)

    @app.get("/api/v1/my-tasks")
    def my_tasks(caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return board.my_tasks(db, caller)

    @app.get("/api/v1/tasks/{task_id}")
    def get_task(task_id: str, db: Database = Depends(get_db)):
        return board.get_task(db, task_id)

    @app.post("/api/v1/tasks")
    def create_task(
        payload: TaskCreate,
        caller: Optional[str] = Depends(get_caller),
        db: Database = Depends(get_db),
        events: EventBus = Depends(get_events),
    ):
        return board.create_task(db, events, caller, payload)

    @app.put("/api/v1/tasks/{task_id}")
    def update_task(
        task_id: str,
        payload: TaskUpdate,
        caller: Optional[str] = Depends(get_caller),
        db: Database = Depends(get_db),
        events: EventBus = Depends(get_events),
    ):
        return board.update_task(db, events, caller, task_id, payload)

    @app.delete("/api/v1/tasks/{task_id}")
    def delete_task(
        task_id: str,
        caller: Optional[str] = Depends(get_caller),
        db: Database = Depends(get_db),
        events: EventBus = Depends(get_events),
    ):
        return {"success": board.delete_task(db, events, caller, task_id)}

    @app.post("/api/v1/tasks/{task_id}/move")
    def move_task(
        task_id: str,
        payload: TaskMove,
        caller: Optional[str] = Depends(get_caller),
        db: Database = Depends(get_db),
        events: EventBus = Depends(get_events),
    ):
        return board.move_task(db, events, caller, task_id, payload)

    # Comments
    @app.get("/api/v1/tasks/{task_id}/comments")
    def list_comments(task_id: str, db: Database = Depends(get_db)):
        return comments.list_comments(db, task_id)

    @app.post("/api/v1/comments")
    def create_comment(
        payload: CommentCreate,
        caller: Optional[str] = Depends(get_caller),
        db: Database = Depends(get_db),
        events: EventBus = Depends(get_events),
    ):
        return comments.create_comment(db, events, caller, payload)

    @app.put("/api/v1/comments/{comment_id}")
    def update_comment(comment_id: str, payload: CommentUpdate, caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return comments.update_comment(db, caller, comment_id, payload)

    @app.delete("/api/v1/comments/{comment_id}")
    def delete_comment(comment_id: str, caller: Optional[str] = Depends(get_caller), db: Database = Depends(get_db)):
        return {"success": comments.delete_comment(db, caller, comment_id)}

    # Subscriptions
    @app.websocket("/api/v1/ws/projects/{project_id}/tasks")
    async def task_updated(websocket: WebSocket, project_id: str):
        await stream_events(websocket, TASK_UPDATED, project_id)

    @app.websocket("/api/v1/ws/tasks/{task_id}/comments")
    async def comment_added(websocket: WebSocket, task_id: str):
        await stream_events(websocket, COMMENT_ADDED, task_id)

    # Healthcheck
    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/api/v1/healthcheck/")
    def healthcheck():
        return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}

    @app.get("/")
    def read_root():
        return {"message": "Task Board API"}

    return app


logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
