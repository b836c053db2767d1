"""Smoke tests for all Kaiwa API endpoints.

Uses FastAPI TestClient to verify every endpoint returns the expected
status code and response shape. No live server needed; the LLM provider
is forced to offline by conftest.
"""

import pytest


# --- Core endpoints ---

class TestCoreEndpoints:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"

    def test_status(self, client):
        r = client.get("/status")
        assert r.status_code == 200
        data = r.json()
        assert data["agent"] == "kaiwa"
        assert data["version"] == "0.1.0"
        assert data["llm_provider"] == "offline"
        assert "hostname" in data
        assert "uptime_seconds" in data

    def test_live_context(self, client):
        r = client.get("/context/live")
        assert r.status_code == 200
        data = r.json()
        assert "cpu" in data
        assert "status" in data

    def test_unknown_route(self, client):
        r = client.get("/nope")
        assert r.status_code == 404
        assert r.json()["error"] == "Not found"


# --- Chat endpoints ---

USERS = [{"id": i, "name": f"user{i}", "role": "admin" if i == 1 else "viewer"} for i in range(1, 13)]


class TestChatEndpoints:
    def test_chat_health(self, client):
        r = client.get("/chat/health")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "healthy"
        assert data["service"] == "Kaiwa Chat API"

    def test_message_creates_session(self, client):
        r = client.post("/chat/message", json={
            "message": "Show me all users",
            "userId": "alice",
            "systemContext": {"users": USERS},
        })
        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["sessionId"]
        assert data["responseFormat"] == "TABLE"
        assert len(data["content"]["rows"]) == 10
        assert data["metadata"]["table_type"] == "user_table"

    def test_message_history_and_sessions(self, client):
        first = client.post("/chat/message", json={"message": "hello", "userId": "bob"}).json()
        sid = first["sessionId"]
        client.post("/chat/message", json={"message": "again", "userId": "bob", "sessionId": sid})

        history = client.get(f"/chat/history/{sid}").json()
        assert history["count"] == 2
        assert [m["message"] for m in history["messages"]] == ["hello", "again"]

        sessions = client.get("/chat/sessions", params={"user_id": "bob"}).json()
        assert sid in [s["session_id"] for s in sessions["sessions"]]

    def test_end_and_clear_session(self, client):
        sid = client.post("/chat/message", json={"message": "hello"}).json()["sessionId"]

        r = client.delete(f"/chat/session/{sid}/history")
        assert r.status_code == 200
        assert r.json()["deleted"] == 1

        r = client.post(f"/chat/session/{sid}/end")
        assert r.status_code == 200
        assert r.json()["message"] == "Session ended successfully"

    def test_end_unknown_session(self, client):
        r = client.post("/chat/session/missing/end")
        assert r.status_code == 404
        assert r.json()["error"] == "Session not found"

    def test_demo_uses_demo_user(self, client):
        sid = client.post("/chat/public/demo", json={"message": "hello", "userId": "mallory"}).json()["sessionId"]
        sessions = client.get("/chat/sessions", params={"user_id": "demo-user"}).json()
        assert sid in [s["session_id"] for s in sessions["sessions"]]

    def test_user_preference_format(self, client):
        r = client.post("/chat/message", json={
            "message": "hello",
            "systemContext": {"cpu": 40, "memory": 70},
            "userPreferences": {"responseFormat": "chart"},
        })
        data = r.json()
        assert data["responseFormat"] == "CHART"
        assert data["metadata"]["format_source"] == "user_preference"

    @pytest.mark.parametrize("body", [
        {"message": ""},
        {"message": "   "},
        {"message": "x" * 2001},
        {},
    ])
    def test_invalid_message_rejected(self, client, body):
        r = client.post("/chat/message", json=body)
        assert r.status_code == 422

    @pytest.mark.parametrize("extra", [
        {"systemContext": [1, 2]},
        {"systemContext": "cpu=40"},
        {"userPreferences": "table"},
        {"userPreferences": [1]},
    ])
    def test_malformed_context_is_read_as_empty(self, client, extra):
        r = client.post("/chat/message", json={"message": "show system status", **extra})
        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["responseFormat"] == "TEXT"

    def test_sessions_requires_user_id(self, client):
        assert client.get("/chat/sessions").status_code == 422

    def test_analyze(self, client):
        r = client.post("/chat/analyze", json={"message": "Show me the user table", "context": {"users": USERS}})
        assert r.status_code == 200
        data = r.json()
        assert data["analysis"]["intent"] == "data_query"
        assert data["analysis"]["suggestedFormat"] == "table"
        assert data["context_analysis"]["has_table_data"] is True

    def test_analyze_malformed_context(self, client):
        r = client.post("/chat/analyze", json={"message": "Show me the user table", "context": [1, 2]})
        assert r.status_code == 200
        assert r.json()["context_analysis"]["complexity_score"] == 0

    def test_format(self, client):
        r = client.post("/chat/format", json={"message": "m", "content": {"rows": USERS}, "format": "table"})
        assert r.status_code == 200
        data = r.json()
        assert data["format"] == "table"
        assert data["content"]["pagination"]["total"] == 12

    def test_format_unknown_falls_back_to_text(self, client):
        r = client.post("/chat/format", json={"message": "m", "content": {"a": 1}, "format": "graphql"})
        assert r.json()["format"] == "text"
        assert r.json()["success"] is True
