"""
Python client for the to-do API.

Mirrors what the browser front end does: keeps a cached copy of the task list
and stats, persists the token and profile between runs, re-fetches after every
confirmed mutation, filters locally, and reports failures through a banner
that clears itself after a few seconds.

Against a server running without accounts (``with_accounts=False``) there is
no /stats route: the cache is patched with the record the server returns and
the counts are worked out locally.
"""
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

FILTERS = ("all", "pending", "completed")
TOKEN_KEY = "token"
USER_KEY = "user"


def _local_stats(todos: List[Dict[str, Any]]) -> Dict[str, int]:
    completed = sum(1 for t in todos if t["completed"])
    return {
        "total": len(todos),
        "completed": completed,
        "pending": len(todos) - completed,
        "highPriority": sum(1 for t in todos if t.get("priority") == "high"),
    }


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class ClientStorage:
    """Small durable key-value store backed by a JSON file."""

    def __init__(self, path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("Ignoring unreadable client storage at %s", self.path)
            return {}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)


class TodoClient:
    def __init__(self, base_url: str = "http://localhost:3001", storage: Optional[ClientStorage] = None,
                 session=None, banner_seconds: float = 5.0,
                 clock: Callable[[], float] = time.monotonic, with_accounts: bool = True):
        self.api_url = base_url.rstrip("/") + "/api"
        self.storage = storage or ClientStorage(".todo_client.json")
        # anything with a requests-style .request(); fastapi's TestClient works too
        self.session = session or requests.Session()
        self.banner_seconds = banner_seconds
        self.clock = clock
        # False for a server running without accounts: no /stats route, cache is spliced
        self.with_accounts = with_accounts

        self.user: Optional[Dict[str, Any]] = None
        self.todos: List[Dict[str, Any]] = []
        self.stats: Dict[str, int] = _local_stats([])
        self.filter = "all"
        self._banner: Optional[str] = None
        self._banner_until = 0.0

        self._restore()

    # --- state ---

    @property
    def state(self) -> str:
        return "authenticated" if self.user is not None else "unauthenticated"

    @property
    def token(self) -> Optional[str]:
        return self.storage.get(TOKEN_KEY)

    @property
    def banner(self) -> Optional[str]:
        if self._banner is not None and self.clock() >= self._banner_until:
            self._banner = None
        return self._banner

    def _show_error(self, message: str) -> None:
        logger.info("Client error: %s", message)
        self._banner = message
        self._banner_until = self.clock() + self.banner_seconds

    def _restore(self) -> None:
        if not self.with_accounts:
            self.refresh()
            return
        token, raw_user = self.storage.get(TOKEN_KEY), self.storage.get(USER_KEY)
        if not token or not raw_user:
            return
        try:
            self.user = json.loads(raw_user)
        except ValueError:
            self._clear_storage()
            return
        self.refresh()

    def _clear_storage(self) -> None:
        self.storage.remove(TOKEN_KEY)
        self.storage.remove(USER_KEY)

    # --- transport ---

    def _request(self, method: str, endpoint: str, body: Optional[dict] = None):
        headers = {"Content-Type": "application/json"}
        token = self.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = self.session.request(method, f"{self.api_url}{endpoint}", json=body, headers=headers)
        except requests.RequestException as exc:
            raise ApiError(0, str(exc))

        if response.status_code >= 400:
            try:
                message = response.json().get("error") or "Something went wrong"
            except ValueError:
                message = "Something went wrong"
            raise ApiError(response.status_code, message)
        return response.json()

    def _attempt(self, method: str, endpoint: str, body: Optional[dict] = None):
        try:
            return self._request(method, endpoint, body)
        except ApiError as exc:
            self._show_error(exc.message)
            return None

    # --- session ---

    def _authenticate(self, endpoint: str, body: dict) -> bool:
        result = self._attempt("POST", endpoint, body)
        if result is None:
            return False
        self.storage.set(TOKEN_KEY, result["token"])
        self.storage.set(USER_KEY, json.dumps(result["user"]))
        self.user = result["user"]
        self.refresh()
        return True

    def register(self, username: str, email: str, password: str) -> bool:
        return self._authenticate("/register", {"username": username, "email": email, "password": password})

    def login(self, email: str, password: str) -> bool:
        return self._authenticate("/login", {"email": email, "password": password})

    def logout(self) -> None:
        self._clear_storage()
        self.user = None
        self.todos = []
        self.stats = _local_stats([])

    # --- tasks ---

    def refresh(self) -> None:
        todos = self._attempt("GET", "/todos")
        if todos is not None:
            self.todos = todos
        if not self.with_accounts:
            self.stats = _local_stats(self.todos)
            return
        stats = self._attempt("GET", "/stats")
        if stats is not None:
            self.stats = stats

    def _mutate(self, method: str, endpoint: str, body: Optional[dict] = None):
        result = self._attempt(method, endpoint, body)
        if result is not None and self.with_accounts:
            self.refresh()
        return result

    def _splice(self, todo_id: int, replacement: Optional[Dict[str, Any]]) -> None:
        # no-accounts server: patch the cache with what the server confirmed
        todos = [t for t in self.todos if t["id"] != todo_id]
        if replacement is not None:
            index = next((i for i, t in enumerate(self.todos) if t["id"] == todo_id), 0)
            todos.insert(index, replacement)
        self.todos = todos
        self.stats = _local_stats(self.todos)

    def add_todo(self, title: str, description: str = "", priority: str = "medium"):
        title = title.strip()
        if not title:
            self._show_error("Title is required")
            return None
        body = {"title": title, "description": description.strip()}
        if self.with_accounts:
            body["priority"] = priority
        created = self._mutate("POST", "/todos", body)
        if created is not None and not self.with_accounts:
            self._splice(created["id"], created)
        return created

    def update_todo(self, todo_id: int, **changes):
        updated = self._mutate("PUT", f"/todos/{todo_id}", changes)
        if updated is not None and not self.with_accounts:
            self._splice(todo_id, updated)
        return updated

    def toggle_todo(self, todo_id: int):
        todo = next((t for t in self.todos if t["id"] == todo_id), None)
        if todo is None:
            return None
        return self.update_todo(todo_id, completed=not todo["completed"])

    def delete_todo(self, todo_id: int) -> bool:
        if self._mutate("DELETE", f"/todos/{todo_id}") is None:
            return False
        if not self.with_accounts:
            self._splice(todo_id, None)
        return True

    # --- filtering (no network) ---

    def set_filter(self, name: str) -> None:
        if name not in FILTERS:
            raise ValueError(f"unknown filter {name!r}, expected one of {FILTERS}")
        self.filter = name

    def visible_todos(self) -> List[Dict[str, Any]]:
        if self.filter == "completed":
            return [t for t in self.todos if t["completed"]]
        if self.filter == "pending":
            return [t for t in self.todos if not t["completed"]]
        return list(self.todos)
