"""FastAPI transport: WebSocket endpoint and status route."""
import asyncio
import json

from fastapi.testclient import TestClient

from server.app import create_app, make_outbox, pump


def test_status_route():
    with TestClient(create_app()) as client:
        response = client.get("/api/status")
        assert response.status_code == 200
        assert response.json() == {
            "phase": "waiting", "round_number": 1, "player_count": 0, "players": [],
        }


def test_websocket_join_and_reject():
    app = create_app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ana:
            ana.send_json({"type": "join", "player_name": "Ana"})
            joined = ana.receive_json()
            assert joined["type"] == "join_success"
            assert joined["seat"] == 0
            state = ana.receive_json()
            assert state["type"] == "game_state"
            assert state["state"]["players"][0]["name"] == "Ana"
            assert ana.receive_json()["type"] == "chat"

            with client.websocket_connect("/ws") as other:
                other.send_json({"type": "join", "player_name": "Ana"})
                error = other.receive_json()
                assert error["type"] == "error"
                assert error["kind"] == "lobby"

                other.send_text("{broken")
                assert other.receive_json()["kind"] == "protocol"

            assert app.state.session.status()["players"] == ["Ana"]


def test_binary_frames_are_handled_like_text():
    app = create_app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ana:
            ana.send_json({"type": "join", "player_name": "Ana"})
            for _ in range(3):
                ana.receive_json()

            ana.send_bytes(json.dumps({"type": "chat", "message": "hi"}).encode())
            chat = ana.receive_json()
            assert chat["type"] == "chat"
            assert chat["message"] == "Ana: hi"

            ana.send_bytes(b"\xff\xfe not json")
            assert ana.receive_json() == {
                "type": "error", "kind": "protocol", "message": "Invalid message format",
            }

            assert app.state.session.status()["players"] == ["Ana"]


class ClosedSocket:
    def __init__(self):
        self.attempts = 0

    async def send_json(self, message):
        self.attempts += 1
        raise RuntimeError("Cannot call \"send\" once a close message has been sent.")


def test_pump_stops_quietly_on_closed_socket():
    async def run():
        queue, send = make_outbox(4)
        send({"type": "chat"})
        socket = ClosedSocket()
        await asyncio.wait_for(pump(socket, queue), timeout=1)
        return socket.attempts

    assert asyncio.run(run()) == 1
