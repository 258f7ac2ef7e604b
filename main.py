import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import errors
from auth import AuthService, current_identity, get_auth_service
from config import Settings, get_settings
from logging_setup import setup_logging
from models import (AuthResult, Health, Identity, LoginRequest, Message,
                    OpenTask, RegisterRequest, Stats, Task, TaskCreate,
                    TaskUpdate)
from stores import TaskStore, UserStore, build_stores

logger = logging.getLogger(__name__)


def get_task_store(request: Request) -> TaskStore:
    return request.app.state.tasks


# ---------------------------------------------------------------------------
# Routes shared by both profiles
# ---------------------------------------------------------------------------

common = APIRouter(prefix="/api")


@common.get("/health", response_model=Health)
def health():
    return Health(status="OK", timestamp=datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Accounts + owned tasks
# ---------------------------------------------------------------------------

protected = APIRouter(prefix="/api")


@protected.post("/register", response_model=AuthResult, status_code=201)
def register(body: RegisterRequest, auth: AuthService = Depends(get_auth_service)):
    return auth.register(body.username, body.email, body.password)


@protected.post("/login", response_model=AuthResult)
def login(body: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    return auth.login(body.email, body.password)

# 🔵 Read - the caller's tasks


@protected.get("/todos", response_model=List[Task])
def list_todos(identity: Identity = Depends(current_identity),
               store: TaskStore = Depends(get_task_store)):
    return store.list(identity.user_id)


@protected.get("/todos/{task_id}", response_model=Task)
def read_todo(task_id: int, identity: Identity = Depends(current_identity),
              store: TaskStore = Depends(get_task_store)):
    return store.get(identity.user_id, task_id)

# 🟢 Create


@protected.post("/todos", response_model=Task, status_code=201)
def create_todo(body: TaskCreate, identity: Identity = Depends(current_identity),
                store: TaskStore = Depends(get_task_store)):
    return store.create(identity.user_id, body.title, body.description, body.priority)

# 🟠 Update - omitted fields keep their value


@protected.put("/todos/{task_id}", response_model=Task)
def update_todo(task_id: int, body: TaskUpdate, identity: Identity = Depends(current_identity),
                store: TaskStore = Depends(get_task_store)):
    return store.update(identity.user_id, task_id, body.changes())

# 🔴 Delete


@protected.delete("/todos/{task_id}", response_model=Message)
def delete_todo(task_id: int, identity: Identity = Depends(current_identity),
                store: TaskStore = Depends(get_task_store)):
    store.delete(identity.user_id, task_id)
    return Message(message="Todo deleted successfully")


@protected.get("/stats", response_model=Stats)
def stats(identity: Identity = Depends(current_identity),
          store: TaskStore = Depends(get_task_store)):
    return store.stats(identity.user_id)


# ---------------------------------------------------------------------------
# Open profile: one shared list, no accounts, no priority
# ---------------------------------------------------------------------------

open_router = APIRouter(prefix="/api")


@open_router.get("/todos", response_model=List[OpenTask])
def list_shared_todos(store: TaskStore = Depends(get_task_store)):
    return [OpenTask.from_task(t) for t in store.list(None)]


@open_router.get("/todos/{task_id}", response_model=OpenTask)
def read_shared_todo(task_id: int, store: TaskStore = Depends(get_task_store)):
    return OpenTask.from_task(store.get(None, task_id))


@open_router.post("/todos", response_model=OpenTask, status_code=201)
def create_shared_todo(body: TaskCreate, store: TaskStore = Depends(get_task_store)):
    return OpenTask.from_task(store.create(None, body.title, body.description))


@open_router.put("/todos/{task_id}", response_model=OpenTask)
def update_shared_todo(task_id: int, body: TaskUpdate, store: TaskStore = Depends(get_task_store)):
    changes = body.changes()
    changes.pop("priority", None)
    return OpenTask.from_task(store.update(None, task_id, changes))


@open_router.delete("/todos/{task_id}", response_model=Message)
def delete_shared_todo(task_id: int, store: TaskStore = Depends(get_task_store)):
    store.delete(None, task_id)
    return Message(message="Todo deleted successfully")


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

def todo_error_handler(request: Request, exc: errors.TodoError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # unknown routes, wrong methods
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail},
                        headers=getattr(exc, "headers", None))


def request_validation_handler(request: Request, exc: RequestValidationError):
    # a task id that is not a number cannot name an existing task
    if any(err.get("loc", ("",))[0] == "path" for err in exc.errors()):
        return todo_error_handler(request, errors.NotFound())
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"error": "; ".join(parts) or "Invalid request"})


def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    # never echo the original exception to the caller
    return todo_error_handler(request, errors.InternalError())


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start
    logger.info("%s %s - %s - %.4fs", request.method, request.url.path, response.status_code, elapsed)
    return response


def create_app(settings: Optional[Settings] = None,
               task_store: Optional[TaskStore] = None,
               user_store: Optional[UserStore] = None) -> FastAPI:
    settings = settings or get_settings()
    if task_store is None or user_store is None:
        default_tasks, default_users = build_stores(settings)
        task_store = default_tasks if task_store is None else task_store
        user_store = default_users if user_store is None else user_store

    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.tasks = task_store
    app.state.auth = AuthService(user_store, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)

    app.add_exception_handler(errors.TodoError, todo_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(common)
    app.include_router(protected if settings.auth_enabled else open_router)
    logger.info("%s ready (auth=%s, storage=%s)",
                settings.app_name, settings.auth_enabled, settings.storage)
    return app


_settings = get_settings()
setup_logging(_settings.log_level, _settings.log_dir)
app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=_settings.host, port=_settings.port)
