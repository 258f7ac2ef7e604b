import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from stores import MemoryTaskStore, MemoryUserStore, SqliteTaskStore, SqliteUserStore


@pytest.fixture()
def settings():
    # lowest bcrypt cost keeps the suite fast
    return Settings(jwt_secret="test-secret", bcrypt_rounds=4, storage="memory", auth_enabled=True)


@pytest.fixture()
def task_store():
    return MemoryTaskStore()


@pytest.fixture()
def user_store():
    return MemoryUserStore()


@pytest.fixture()
def app(settings, task_store, user_store):
    return create_app(settings, task_store=task_store, user_store=user_store)


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def sqlite_path(tmp_path):
    return str(tmp_path / "todo.db")


@pytest.fixture()
def open_client(sqlite_path):
    settings = Settings(auth_enabled=False, storage="sqlite", database_path=sqlite_path)
    return TestClient(create_app(settings))


@pytest.fixture(params=["memory", "sqlite"])
def any_task_store(request, tmp_path):
    if request.param == "sqlite":
        return SqliteTaskStore(str(tmp_path / "tasks.db"))
    return MemoryTaskStore()


@pytest.fixture(params=["memory", "sqlite"])
def any_user_store(request, tmp_path):
    if request.param == "sqlite":
        return SqliteUserStore(str(tmp_path / "users.db"))
    return MemoryUserStore()


def register(client, username="alice", email="a@x.com", password="pw123"):
    r = client.post("/api/register", json={"username": username, "email": email, "password": password})
    assert r.status_code == 201, r.text
    return r.json()


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}
