from typing import Dict, List, Tuple

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from server.app import create_app
from src.core.events import user_room

MEMORY_URL = "sqlite+aiosqlite://"


@pytest.fixture
def client(dice):
    app = create_app(database_url=MEMORY_URL, create_schema=True, rng=dice)
    with TestClient(app) as c:
        yield c


def _register(client: TestClient, name: str) -> Dict[str, str]:
    resp = client.post("/users", json={"display_name": name})
    assert resp.status_code == 201, resp.text
    return {"X-User-Id": resp.json()["id"]}


def _started_game(client: TestClient, players: int = 2) -> Tuple[str, List[Dict[str, str]]]:
    headers = [_register(client, f"player{i}") for i in range(1, players + 1)]
    resp = client.post("/api/games", json={"name": "Table", "token_color": "red"}, headers=headers[0])
    assert resp.status_code == 201, resp.text
    gid = resp.json()["data"]["game"]["id"]

    for h in headers[1:]:
        joined = client.post(f"/api/games/{gid}/join-auto", headers=h)
        assert joined.status_code == 200, joined.text

    started = client.post(f"/api/games/{gid}/start", headers=headers[0])
    assert started.status_code == 200, started.text
    return gid, headers


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_duplicate_user_name(client):
    _register(client, "alice")
    resp = client.post("/users", json={"display_name": "alice"})
    assert resp.status_code == 409
    assert resp.json()["detail"]["error"] == "name_taken"


def test_requests_need_a_known_user(client):
    assert client.get("/api/games").status_code == 401
    resp = client.get("/api/games", headers={"X-User-Id": "not-a-uuid"})
    assert resp.json()["detail"]["error"] == "unauthorized"
    resp = client.get("/api/games", headers={"X-User-Id": "00000000-0000-0000-0000-000000000000"})
    assert resp.status_code == 401
    assert resp.json()["detail"]["error"] == "unknown_user"


def test_lobby_flow(client):
    alice = _register(client, "alice")
    bob = _register(client, "bob")

    created = client.post("/api/games", json={"max_players": 2}, headers=alice).json()["data"]
    code = created["game"]["game_code"]
    gid = created["game"]["id"]

    listed = client.get("/api/games", headers=bob).json()
    assert listed["games"][0]["id"] == gid
    assert listed["games"][0]["current_players"] == 1
    assert listed["games"][0]["is_participant"] is False

    resp = client.post(
        "/api/games/join-by-code", json={"game_code": "ZZZZZZ", "token_color": "blue"}, headers=bob
    )
    assert resp.status_code == 404
    assert resp.json()["detail"]["error"] == "code_not_found"

    resp = client.post(
        "/api/games/join-by-code", json={"game_code": code, "token_color": "red"}, headers=bob
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["error"] == "color_taken"

    resp = client.post(
        "/api/games/join-by-code", json={"game_code": code, "token_color": "blue"}, headers=bob
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["game_id"] == gid

    resp = client.post(f"/api/games/{gid}/start", headers=bob)
    assert resp.status_code == 403
    assert client.post(f"/api/games/{gid}/start", headers=alice).status_code == 200


def test_roll_buy_and_end_turn(client, dice):
    gid, (p1, p2) = _started_game(client)
    dice.push((2, 4))

    rolled = client.post(f"/api/games/{gid}/roll", headers=p1)
    assert rolled.status_code == 200, rolled.text
    data = rolled.json()["data"]
    assert data["new_position"] == 6
    pending = data["pending_action"]
    assert pending["type"] == "buy_property"

    resp = client.post(f"/api/games/{gid}/roll", headers=p2)
    assert resp.status_code == 403
    assert resp.json()["detail"]["error"] == "not_your_turn"

    resp = client.post(
        f"/api/games/{gid}/buy",
        json={"pending_action_id": pending["id"], "property_id": pending["tile_id"]},
        headers=p1,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["balance"] == 1400

    state = client.get(f"/api/games/{gid}/state", headers=p1).json()
    assert state["self"]["balance"] == 1400
    assert state["self"]["pending_action"] is None
    union_square = next(t for t in state["board"] if t["position"] == 6)
    assert union_square["owner_participant_id"] == state["self"]["participant_id"]

    ended = client.post(f"/api/games/{gid}/end-turn", headers=p1)
    assert ended.status_code == 200
    assert ended.json()["data"]["ended"] is False
    state = client.get(f"/api/games/{gid}/state", headers=p2).json()
    assert state["current_player_id"] == state["self"]["participant_id"]


def test_failed_command_changes_nothing(client, dice):
    gid, (p1, _) = _started_game(client)
    dice.push((2, 4))
    pending = client.post(f"/api/games/{gid}/roll", headers=p1).json()["data"]["pending_action"]

    resp = client.post(
        f"/api/games/{gid}/pay-rent",
        json={"pending_action_id": pending["id"], "property_id": pending["tile_id"]},
        headers=p1,
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["error"] == "wrong_pending"

    state = client.get(f"/api/games/{gid}/state", headers=p1).json()
    assert state["self"]["pending_action"]["id"] == pending["id"]
    assert state["self"]["balance"] == 1500


def test_state_access(client):
    gid, _ = _started_game(client)
    outsider = _register(client, "outsider")

    assert client.get(f"/api/games/{gid}/state", headers=outsider).status_code == 403
    resp = client.get("/api/games/00000000-0000-0000-0000-000000000000/state", headers=outsider)
    assert resp.status_code == 404


def test_delete_game(client):
    gid, (p1, p2) = _started_game(client)
    assert client.delete(f"/api/games/{gid}", headers=p2).status_code == 403
    assert client.delete(f"/api/games/{gid}", headers=p1).status_code == 200
    assert client.get(f"/api/games/{gid}/state", headers=p1).status_code == 404


def test_websocket_receives_game_events(client):
    gid, (p1, p2) = _started_game(client)

    with client.websocket_connect(f"/ws?user_id={p2['X-User-Id']}&game_id={gid}") as ws:
        assert client.post(f"/api/games/{gid}/end-turn", headers=p1).status_code == 200
        events = [ws.receive_json()["event"] for _ in range(3)]

    assert events == ["game:state:update", "game:turn:changed", "game:player:options"]


def test_websocket_resends_open_options(client, dice):
    gid, (p1, _) = _started_game(client)
    dice.push((2, 4))
    client.post(f"/api/games/{gid}/roll", headers=p1)

    with client.websocket_connect(f"/ws?user_id={p1['X-User-Id']}&game_id={gid}") as ws:
        first = ws.receive_json()

    assert first["event"] == "game:player:options"
    assert first["payload"]["options"][0]["action"] == "buy_property"


def test_websocket_rejects_outsiders(client):
    gid, _ = _started_game(client)
    outsider = _register(client, "outsider")

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/ws?user_id={outsider['X-User-Id']}&game_id={gid}") as ws:
            ws.receive_json()
    assert exc.value.code == 4403

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws?user_id=nobody") as ws:
            ws.receive_json()
    assert exc.value.code == 4401


def test_websocket_closes_when_subscriber_is_dropped(client):
    _, (p1, _) = _started_game(client)
    gateway = client.app.state.gateway
    room = user_room(p1["X-User-Id"])

    with client.websocket_connect(f"/ws?user_id={p1['X-User-Id']}") as ws:
        (sub,) = gateway._rooms[room]
        client.portal.call(gateway._drop, sub)
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()

    assert exc.value.code == 4408
    assert gateway.subscriber_count(room) == 0


# ---- Chat ----


def test_chat_post_and_history(client):
    gid, (p1, p2) = _started_game(client)

    for headers, text in ((p1, "  hello table  "), (p2, "good luck"), (p1, "thanks")):
        resp = client.post(f"/api/games/{gid}/chat", json={"message": text}, headers=headers)
        assert resp.status_code == 201, resp.text

    posted = resp.json()["data"]["message"]
    assert posted["game_id"] == gid
    assert posted["user"] == {"id": p1["X-User-Id"], "display_name": "player1"}

    history = client.get(f"/api/games/{gid}/chat", headers=p2).json()["data"]["messages"]
    assert [m["message"] for m in history] == ["hello table", "good luck", "thanks"]
    assert history[1]["user"]["display_name"] == "player2"


def test_chat_is_for_participants_only(client):
    gid, (p1, _) = _started_game(client)
    outsider = _register(client, "outsider")

    resp = client.post(f"/api/games/{gid}/chat", json={"message": "hi"}, headers=outsider)
    assert resp.status_code == 403
    assert resp.json()["detail"]["error"] == "not_participant"
    assert client.get(f"/api/games/{gid}/chat", headers=outsider).status_code == 403

    missing = "00000000-0000-0000-0000-000000000000"
    assert client.get(f"/api/games/{missing}/chat", headers=p1).status_code == 404

    resp = client.post(f"/api/games/{gid}/chat", json={"message": "   "}, headers=p1)
    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "empty_message"
    assert client.get(f"/api/games/{gid}/chat", headers=p1).json()["data"]["messages"] == []


def test_chat_reaches_the_game_room(client):
    gid, (p1, p2) = _started_game(client)

    with client.websocket_connect(f"/ws?user_id={p2['X-User-Id']}&game_id={gid}") as ws:
        resp = client.post(f"/api/games/{gid}/chat", json={"message": "your move"}, headers=p1)
        assert resp.status_code == 201
        message = ws.receive_json()

    assert message["event"] == "chat:game:message"
    assert message["payload"]["message"] == "your move"
    assert message["payload"]["user"]["id"] == p1["X-User-Id"]
