"""会话历史 API 测试"""
import pytest

from chat_gateway.history import MessageIn


def add(store, session_id, role, content, **flags):
    return store.append_message(session_id, MessageIn(role=role, content=content, **flags))


def test_list_empty(client):
    assert client.get("/api/chat-history").json() == {"sessions": []}


def test_list_sorted_by_recent_update(client, store):
    add(store, "a", "user", "older")
    add(store, "b", "user", "newer")
    add(store, "a", "bot", "touch a again")

    sessions = client.get("/api/chat-history").json()["sessions"]
    assert [s["id"] for s in sessions] == ["a", "b"]
    assert sessions[0]["messageCount"] == 2
    assert sessions[0]["title"] == "older"
    assert set(sessions[0]) == {"id", "title", "createdAt", "updatedAt", "messageCount"}


def test_get_unknown_session(client, store):
    resp = client.get("/api/chat-history/nope")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Session not found"}
    assert len(store) == 0


def test_get_session_serialization(client, store):
    add(store, "s1", "user", "look", has_image=True)
    add(store, "s1", "bot", "a cat")

    body = client.get("/api/chat-history/s1").json()
    assert set(body) == {"title", "createdAt", "updatedAt", "messages"}
    user_message, bot_message = body["messages"]
    assert user_message["hasImage"] is True
    assert "hasAudio" not in user_message
    assert "hasImage" not in bot_message
    assert user_message["timestamp"].endswith("Z")


def test_get_session_dedupes_without_mutating(client, store):
    add(store, "s1", "user", "A")
    add(store, "s1", "user", "A")
    add(store, "s1", "bot", "B")
    add(store, "s1", "user", "A")

    messages = client.get("/api/chat-history/s1").json()["messages"]
    assert [m["content"] for m in messages] == ["A", "B", "A"]
    assert len(store.get_session("s1").messages) == 4


def test_add_message_creates_session(client, store):
    resp = client.post("/api/chat-history/s1", json={"message": {"role": "user", "content": "hello there"}})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["session"]["id"] == "s1"
    assert body["session"]["title"] == "hello there"
    assert "updatedAt" in body["session"]
    assert len(store.get_session("s1").messages) == 1


def test_add_message_keeps_flags(client, store):
    client.post("/api/chat-history/s1", json={"message": {"role": "user", "content": "x", "hasAudio": True}})
    assert store.get_session("s1").messages[0].has_audio is True


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"message": None},
        {"message": {"role": "user"}},
        {"message": {"content": "no role"}},
        {"message": {"role": "assistant", "content": "bad role"}},
    ],
)
def test_add_message_invalid(client, store, body):
    resp = client.post("/api/chat-history/s1", json=body)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid message format"}
    assert len(store) == 0


def test_update_title(client, store):
    add(store, "s1", "user", "hello")
    resp = client.put("/api/chat-history/s1", json={"title": "Renamed"})
    assert resp.json() == {"success": True}
    assert store.get_session("s1").title == "Renamed"


def test_update_title_unknown_session(client):
    resp = client.put("/api/chat-history/nope", json={"title": "Renamed"})
    assert resp.status_code == 404
    assert resp.json() == {"error": "Session not found"}


@pytest.mark.parametrize("body", [{}, {"title": ""}, {"title": 5}])
def test_update_title_invalid(client, store, body):
    add(store, "s1", "user", "hello")
    resp = client.put("/api/chat-history/s1", json=body)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Valid title is required"}
    assert store.get_session("s1").title == "hello"


def test_delete_session(client, store):
    add(store, "s1", "user", "hello")
    assert client.delete("/api/chat-history/s1").json() == {"success": True}
    assert client.delete("/api/chat-history/s1").json() == {"success": False}
    assert client.get("/api/chat-history/s1").status_code == 404
