"""End-to-end tests over the FastAPI app: health check and the /ws socket."""

import pytest
from fastapi.testclient import TestClient

from dm_table.app import create_app
from dm_table.config import Settings


@pytest.fixture
def client(stub_llm):
    settings = Settings(openai_api_key="test-key", model="gpt-test", fallback_models=[])
    app = create_app(settings, llm=stub_llm)
    stub_llm.queue("Bienvenidos a la taberna.")
    with TestClient(app) as client:
        yield client


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def _until(ws, event):
    while True:
        frame = ws.receive_json()
        if frame["event"] == event:
            return frame["data"]


def test_join_and_chat_over_socket(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"event": "join", "data": {"roomId": "taberna", "name": "Ana"}})
        assert _until(ws, "joined") == {"room_id": "taberna", "nickname": "Ana"}
        assert _until(ws, "presence")[0]["name"] == "Ana"

        ws.send_json({"event": "chat", "data": {"text": "@dm hola"}})
        assert _until(ws, "chat")["text"] == "@dm hola"
        assert _until(ws, "dm")["text"] == "Bienvenidos a la taberna."


def test_two_players_share_a_room(client):
    with client.websocket_connect("/ws") as ana, client.websocket_connect("/ws") as bruno:
        ana.send_json({"event": "join", "data": {"roomId": "r1", "name": "Ana"}})
        _until(ana, "presence")
        bruno.send_json({"event": "join", "data": {"roomId": "r1", "name": "Bruno"}})

        assert _until(ana, "system") == "Bruno se ha unido a la mesa."
        bruno.send_json({"event": "roll", "data": {"notation": "1d20+2"}})
        roll = _until(ana, "roll")
        assert roll["from"] == "Bruno"
        assert 3 <= roll["total"] <= 22


def test_malformed_frames_are_skipped(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        ws.send_json({"event": "join", "data": {"roomId": "r1", "name": "Ana"}})
        assert _until(ws, "joined")["room_id"] == "r1"
