"""
Task and credential stores.

Both come in two flavours behind one contract: an in-memory store (dict per
process) and a SQLite store using direct parameterized queries. An
``owner_id`` of ``None`` means the task belongs to nobody and is visible to
every caller of the open profile.
"""
import itertools
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import errors
from config import Settings
from database import get_db_connection, init_db
from models import Stats, Task, User

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = "medium"
UPDATABLE_FIELDS = ("title", "description", "priority", "completed")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _touch(previous: datetime) -> datetime:
    # updated_at must move forward even when two writes land in the same tick
    now = _now()
    if now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


def _require_title(title: Optional[str]) -> None:
    if not title:
        raise errors.ValidationError("Title is required")


def _clean_changes(changes: dict) -> dict:
    changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
    if "title" in changes:
        _require_title(changes["title"])
    return changes


def _stats(tasks: List[Task]) -> Stats:
    total = len(tasks)
    completed = sum(1 for t in tasks if t.completed)
    return Stats(
        total=total,
        completed=completed,
        pending=total - completed,
        high_priority=sum(1 for t in tasks if t.priority == "high"),
    )


# ---------------------------------------------------------------------------
# Task store
# ---------------------------------------------------------------------------

class TaskStore(ABC):
    @abstractmethod
    def list(self, owner_id: Optional[int]) -> List[Task]: ...

    @abstractmethod
    def get(self, owner_id: Optional[int], task_id: int) -> Task: ...

    @abstractmethod
    def create(self, owner_id: Optional[int], title: Optional[str],
               description: Optional[str] = None, priority: Optional[str] = None) -> Task: ...

    @abstractmethod
    def update(self, owner_id: Optional[int], task_id: int, changes: dict) -> Task: ...

    @abstractmethod
    def delete(self, owner_id: Optional[int], task_id: int) -> None: ...

    @abstractmethod
    def count(self) -> int: ...

    def stats(self, owner_id: Optional[int]) -> Stats:
        return _stats(self.list(owner_id))


class MemoryTaskStore(TaskStore):
    def __init__(self):
        self._tasks: Dict[int, Task] = {}
        self._ids = itertools.count(1)
        # sync FastAPI routes run in a thread pool
        self._lock = threading.Lock()

    def list(self, owner_id):
        with self._lock:
            return [t for t in self._tasks.values() if t.owner_id == owner_id]

    def _find(self, owner_id, task_id) -> Task:
        task = self._tasks.get(task_id)
        if task is None or task.owner_id != owner_id:
            raise errors.NotFound()
        return task

    def get(self, owner_id, task_id):
        with self._lock:
            return self._find(owner_id, task_id)

    def create(self, owner_id, title, description=None, priority=None):
        _require_title(title)
        now = _now()
        with self._lock:
            task = Task(
                id=next(self._ids),
                owner_id=owner_id,
                title=title,
                description=description or "",
                priority=priority or DEFAULT_PRIORITY,
                completed=False,
                created_at=now,
                updated_at=now,
            )
            self._tasks[task.id] = task
        return task

    def update(self, owner_id, task_id, changes):
        with self._lock:
            existing = self._find(owner_id, task_id)
            changes = _clean_changes(changes)
            changes["updated_at"] = _touch(existing.updated_at)
            task = existing.model_copy(update=changes)
            self._tasks[task_id] = task
        return task

    def delete(self, owner_id, task_id):
        with self._lock:
            self._find(owner_id, task_id)
            del self._tasks[task_id]

    def count(self):
        with self._lock:
            return len(self._tasks)


class SqliteTaskStore(TaskStore):
    def __init__(self, path: str):
        self.path = path
        init_db(path)

    def _fetch(self, conn, owner_id, task_id) -> Task:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND owner_id IS ?", (task_id, owner_id)
        ).fetchone()
        if row is None:
            raise errors.NotFound()
        return Task(**dict(row))

    def list(self, owner_id):
        conn = get_db_connection(self.path)
        try:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE owner_id IS ? ORDER BY created_at DESC, id DESC",
                (owner_id,),
            ).fetchall()
        finally:
            conn.close()
        return [Task(**dict(row)) for row in rows]

    def get(self, owner_id, task_id):
        conn = get_db_connection(self.path)
        try:
            return self._fetch(conn, owner_id, task_id)
        finally:
            conn.close()

    def create(self, owner_id, title, description=None, priority=None):
        _require_title(title)
        now = _now().isoformat(timespec="microseconds")
        conn = get_db_connection(self.path)
        try:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO tasks (owner_id, title, description, priority, completed, created_at, updated_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?)",
                (owner_id, title, description or "", priority or DEFAULT_PRIORITY, False, now, now),
            )
            conn.commit()
            return self._fetch(conn, owner_id, cursor.lastrowid)
        finally:
            conn.close()

    def update(self, owner_id, task_id, changes):
        conn = get_db_connection(self.path)
        try:
            existing = self._fetch(conn, owner_id, task_id)
            changes = _clean_changes(changes)
            merged = existing.model_copy(update=changes)
            conn.execute(
                "UPDATE tasks SET title = ?, description = ?, priority = ?, completed = ?, updated_at = ?"
                " WHERE id = ? AND owner_id IS ?",
                (merged.title, merged.description, merged.priority, merged.completed,
                 _touch(existing.updated_at).isoformat(timespec="microseconds"), task_id, owner_id),
            )
            conn.commit()
            return self._fetch(conn, owner_id, task_id)
        finally:
            conn.close()

    def delete(self, owner_id, task_id):
        conn = get_db_connection(self.path)
        try:
            cursor = conn.execute(
                "DELETE FROM tasks WHERE id = ? AND owner_id IS ?", (task_id, owner_id)
            )
            conn.commit()
            deleted = cursor.rowcount
        finally:
            conn.close()
        if deleted == 0:
            raise errors.NotFound()

    def count(self):
        conn = get_db_connection(self.path)
        try:
            return conn.execute("SELECT COUNT(*) FROM tasks").fetchone()[0]
        finally:
            conn.close()

    def stats(self, owner_id):
        conn = get_db_connection(self.path)
        try:
            row = conn.execute(
                "SELECT COUNT(*) AS total,"
                " COALESCE(SUM(completed), 0) AS completed,"
                " COALESCE(SUM(priority = 'high'), 0) AS high_priority"
                " FROM tasks WHERE owner_id IS ?",
                (owner_id,),
            ).fetchone()
        finally:
            conn.close()
        return Stats(
            total=row["total"],
            completed=row["completed"],
            pending=row["total"] - row["completed"],
            high_priority=row["high_priority"],
        )


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------

class UserStore(ABC):
    @abstractmethod
    def find_by_email_or_username(self, email: str, username: str) -> Optional[User]: ...

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    def insert(self, username: str, email: str, password_hash: str) -> User:
        """Store a new user; raises ``errors.Conflict`` on a duplicate identity."""

    @abstractmethod
    def count(self) -> int: ...


class MemoryUserStore(UserStore):
    def __init__(self):
        self._users: Dict[int, User] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _match(self, email, username):
        for user in self._users.values():
            if user.email == email or user.username == username:
                return user
        return None

    def find_by_email_or_username(self, email, username):
        with self._lock:
            return self._match(email, username)

    def find_by_email(self, email):
        with self._lock:
            return next((u for u in self._users.values() if u.email == email), None)

    def insert(self, username, email, password_hash):
        with self._lock:
            if self._match(email, username) is not None:
                raise errors.Conflict()
            user = User(
                id=next(self._ids),
                username=username,
                email=email,
                password_hash=password_hash,
                created_at=_now(),
            )
            self._users[user.id] = user
        return user

    def count(self):
        with self._lock:
            return len(self._users)


class SqliteUserStore(UserStore):
    def __init__(self, path: str):
        self.path = path
        init_db(path)

    def _one(self, sql, params) -> Optional[User]:
        conn = get_db_connection(self.path)
        try:
            row = conn.execute(sql, params).fetchone()
        finally:
            conn.close()
        return User(**dict(row)) if row is not None else None

    def find_by_email_or_username(self, email, username):
        return self._one("SELECT * FROM users WHERE email = ? OR username = ?", (email, username))

    def find_by_email(self, email):
        return self._one("SELECT * FROM users WHERE email = ?", (email,))

    def insert(self, username, email, password_hash):
        conn = get_db_connection(self.path)
        try:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO users (username, email, password_hash, created_at) VALUES (?, ?, ?, ?)",
                (username, email, password_hash, _now().isoformat(timespec="microseconds")),
            )
            conn.commit()
            user_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            raise errors.Conflict()
        finally:
            conn.close()
        return self._one("SELECT * FROM users WHERE id = ?", (user_id,))

    def count(self):
        conn = get_db_connection(self.path)
        try:
            return conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
        finally:
            conn.close()


def build_stores(settings: Settings):
    """Return ``(task_store, user_store)`` for the configured backend."""
    if settings.storage == "sqlite":
        logger.info("Using SQLite storage at %s", settings.database_path)
        return SqliteTaskStore(settings.database_path), SqliteUserStore(settings.database_path)
    logger.info("Using in-memory storage")
    return MemoryTaskStore(), MemoryUserStore()
