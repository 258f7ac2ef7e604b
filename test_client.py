import json

import pytest

from client import ClientStorage, TodoClient


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingSession:
    """Wraps a TestClient and records every request made through it."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url))
        return self.inner.request(method, url, **kwargs)


@pytest.fixture()
def storage(tmp_path):
    return ClientStorage(tmp_path / "client.json")


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def session(client):
    return CountingSession(client)


@pytest.fixture()
def make_client(session, storage, clock):
    def make():
        return TodoClient("http://testserver", storage=storage, session=session, clock=clock)
    return make


def test_storage_round_trip(tmp_path):
    storage = ClientStorage(tmp_path / "nested" / "client.json")
    assert storage.get("token") is None

    storage.set("token", "abc")
    storage.set("user", "{}")
    assert ClientStorage(tmp_path / "nested" / "client.json").get("token") == "abc"

    storage.remove("token")
    assert storage.get("token") is None
    assert storage.get("user") == "{}"


def test_starts_unauthenticated(make_client):
    app = make_client()
    assert app.state == "unauthenticated"
    assert app.todos == []


def test_register_persists_session_and_loads(make_client, storage):
    app = make_client()

    assert app.register("alice", "a@x.com", "pw123")

    assert app.state == "authenticated"
    assert app.user == {"id": 1, "username": "alice", "email": "a@x.com"}
    assert storage.get("token")
    assert json.loads(storage.get("user"))["username"] == "alice"
    assert app.stats == {"total": 0, "completed": 0, "pending": 0, "highPriority": 0}


def test_reload_restores_authenticated_state(make_client):
    first = make_client()
    first.register("alice", "a@x.com", "pw123")
    first.add_todo("buy milk")

    reloaded = make_client()

    assert reloaded.state == "authenticated"
    assert [t["title"] for t in reloaded.todos] == ["buy milk"]


def test_mutations_refetch_list_and_stats(make_client, session):
    app = make_client()
    app.register("alice", "a@x.com", "pw123")
    session.calls.clear()

    created = app.add_todo("  buy milk ", priority="high")

    assert created["title"] == "buy milk"
    assert [m for m, _ in session.calls] == ["POST", "GET", "GET"]
    assert session.calls[1][1].endswith("/api/todos")
    assert session.calls[2][1].endswith("/api/stats")
    assert app.stats["highPriority"] == 1

    app.toggle_todo(created["id"])
    assert app.todos[0]["completed"] is True
    assert app.stats["completed"] == 1

    app.update_todo(created["id"], title="buy oat milk")
    assert app.todos[0]["title"] == "buy oat milk"

    assert app.delete_todo(created["id"])
    assert app.todos == []
    assert app.stats["total"] == 0


def test_filter_never_hits_the_network(make_client, session):
    app = make_client()
    app.register("alice", "a@x.com", "pw123")
    done = app.add_todo("done")
    app.add_todo("open")
    app.toggle_todo(done["id"])
    session.calls.clear()

    app.set_filter("completed")
    assert [t["title"] for t in app.visible_todos()] == ["done"]
    app.set_filter("pending")
    assert [t["title"] for t in app.visible_todos()] == ["open"]
    app.set_filter("all")
    assert len(app.visible_todos()) == 2

    assert session.calls == []


def test_unknown_filter_is_rejected(make_client):
    with pytest.raises(ValueError):
        make_client().set_filter("archived")


def test_empty_title_is_caught_before_sending(make_client, session):
    app = make_client()
    app.register("alice", "a@x.com", "pw123")
    session.calls.clear()

    assert app.add_todo("   ") is None
    assert app.banner == "Title is required"
    assert session.calls == []


def test_server_error_shows_banner_and_keeps_cache(make_client, clock):
    app = make_client()
    app.register("alice", "a@x.com", "pw123")
    app.add_todo("keep me")
    before = list(app.todos)

    assert app.delete_todo(999) is False

    assert app.banner == "Todo not found"
    assert app.todos == before

    clock.now += 5.0
    assert app.banner is None


def test_failed_login_stays_unauthenticated(make_client, storage):
    make_client().register("alice", "a@x.com", "pw123")
    storage.remove("token")
    storage.remove("user")

    app = make_client()
    assert not app.login("a@x.com", "wrong")

    assert app.state == "unauthenticated"
    assert app.banner == "Invalid credentials"
    assert storage.get("token") is None


def test_logout_clears_storage_and_cache(make_client, storage):
    app = make_client()
    app.register("alice", "a@x.com", "pw123")
    app.add_todo("buy milk")

    app.logout()

    assert app.state == "unauthenticated"
    assert app.todos == []
    assert storage.get("token") is None
    assert storage.get("user") is None
    assert make_client().state == "unauthenticated"


def test_login_after_logout(make_client):
    app = make_client()
    app.register("alice", "a@x.com", "pw123")
    app.add_todo("buy milk")
    app.logout()

    assert app.login("a@x.com", "pw123")
    assert [t["title"] for t in app.todos] == ["buy milk"]


@pytest.fixture()
def shared_client(open_client, storage, clock):
    session = CountingSession(open_client)
    return TodoClient("http://testserver", storage=storage, session=session, clock=clock,
                      with_accounts=False), session


def test_no_accounts_mode_never_asks_for_stats(shared_client):
    app, session = shared_client

    created = app.add_todo("shared")

    assert app.banner is None
    assert created["title"] == "shared"
    assert app.todos == [created]
    assert all(not url.endswith("/api/stats") for _, url in session.calls)
    assert app.stats == {"total": 1, "completed": 0, "pending": 1, "highPriority": 0}


def test_no_accounts_mode_splices_cache_without_refetch(shared_client):
    app, session = shared_client
    first = app.add_todo("first")
    second = app.add_todo("second")
    assert [t["id"] for t in app.todos] == [second["id"], first["id"]]
    session.calls.clear()

    app.toggle_todo(first["id"])
    assert session.calls == [("PUT", f"http://testserver/api/todos/{first['id']}")]
    assert [t["id"] for t in app.todos] == [second["id"], first["id"]]
    assert app.todos[1]["completed"] is True
    assert app.stats == {"total": 2, "completed": 1, "pending": 1, "highPriority": 0}

    session.calls.clear()
    assert app.delete_todo(second["id"])
    assert [m for m, _ in session.calls] == ["DELETE"]
    assert [t["id"] for t in app.todos] == [first["id"]]
    assert app.stats["total"] == 1


def test_no_accounts_mode_loads_on_start(open_client, storage, clock):
    open_client.post("/api/todos", json={"title": "already there"})

    app = TodoClient("http://testserver", storage=storage, session=open_client, clock=clock,
                     with_accounts=False)

    assert [t["title"] for t in app.todos] == ["already there"]
    assert app.stats["total"] == 1
    assert app.banner is None


def test_no_accounts_mode_failed_delete_keeps_cache(shared_client):
    app, _ = shared_client
    app.add_todo("keep me")
    before = list(app.todos)

    assert app.delete_todo(999) is False
    assert app.banner == "Todo not found"
    assert app.todos == before
