import time

import pytest

from quemsoueu.config import Config
from quemsoueu.server import create_app


class GameTestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    TRUST_PROXY_HEADERS = False
    SOCKETIO_ASYNC_MODE = "threading"
    ROUND_TIME_SECONDS = 30
    REVEAL_TIME_SECONDS = 10
    COUNTDOWN_SECONDS = 3


class FastTimersConfig(GameTestConfig):
    ROUND_TIME_SECONDS = 0
    REVEAL_TIME_SECONDS = 0
    COUNTDOWN_SECONDS = 0


@pytest.fixture()
def app_and_socketio(runner):
    return create_app(GameTestConfig, task_runner=runner)


@pytest.fixture()
def flask_app(app_and_socketio):
    return app_and_socketio[0]


@pytest.fixture()
def socketio(app_and_socketio):
    return app_and_socketio[1]


@pytest.fixture()
def rooms(flask_app):
    return flask_app.extensions["room_registry"]


def _received(client, name):
    return [pkt["args"][0] for pkt in client.get_received() if pkt["name"] == name]


def _drain(client):
    return [(pkt["name"], pkt["args"][0] if pkt["args"] else None) for pkt in client.get_received()]


def _create(socketio, flask_app, total_rounds=2):
    host = socketio.test_client(flask_app)
    ack = host.emit("room:create", {"totalRounds": total_rounds}, callback=True)
    assert ack["ok"] is True
    return host, ack["roomCode"]


def test_create_and_join_broadcasts_room_state(socketio, flask_app):
    host, code = _create(socketio, flask_app)
    host.get_received()

    player = socketio.test_client(flask_app)
    ack = player.emit("room:join", {"roomCode": code.lower(), "name": "Ana", "team": "Azul"}, callback=True)

    assert ack["ok"] is True
    assert ack["roomCode"] == code
    states = _received(host, "room:state")
    assert states[-1]["code"] == code
    assert [m["name"] for m in states[-1]["members"]] == ["Host", "Ana"]


def test_create_with_bad_rounds_is_rejected(socketio, flask_app, rooms):
    client = socketio.test_client(flask_app)
    ack = client.emit("room:create", {"totalRounds": 0}, callback=True)

    assert ack == {"ok": False, "error": "invalid_rounds"}
    assert _received(client, "room:error") == [{"error": "invalid_rounds"}]
    assert len(rooms) == 0


def test_join_unknown_room_only_tells_the_caller(socketio, flask_app):
    host, code = _create(socketio, flask_app)
    host.get_received()

    stranger = socketio.test_client(flask_app)
    ack = stranger.emit("room:join", {"roomCode": "NOPE", "name": "Zé"}, callback=True)

    assert ack == {"ok": False, "error": "room_not_found"}
    assert _received(stranger, "room:error") == [{"error": "room_not_found"}]
    assert host.get_received() == []


def test_full_game_flow(socketio, flask_app, rooms, runner):
    host, code = _create(socketio, flask_app, total_rounds=2)
    ana = socketio.test_client(flask_app)
    bia = socketio.test_client(flask_app)
    projector = socketio.test_client(flask_app)
    ana.emit("room:join", {"roomCode": code, "name": "Ana", "team": "Azul"}, callback=True)
    bia.emit("room:join", {"roomCode": code, "name": "Bia", "team": "Verde"}, callback=True)
    projector.emit("room:join", {"roomCode": code, "name": "PROJETOR"}, callback=True)
    for c in (host, ana, bia, projector):
        c.get_received()

    # Only the host can start.
    ana.emit("game:start", {"roomCode": code})
    assert ana.get_received() == []

    host.emit("game:start", {"roomCode": code})
    assert _received(projector, "game:countdown:start") == [{"seconds": 3}]

    runner.run_pending()
    (round_start,) = _received(projector, "round:start")
    assert round_start["roundNumber"] == 1
    assert round_start["totalRounds"] == 2
    assert len(round_start["options"]) == 4
    for c in (host, ana, bia):
        c.get_received()

    correct = rooms.get(code).room.current_round.correct_name
    ana.emit("answer:send", {"roomCode": code, "answer": correct})
    bia.emit("answer:send", {"roomCode": code, "answer": correct})

    ana_events = _drain(ana)
    feedback = [p for n, p in ana_events if n == "answer:feedback"]
    assert feedback == [{"ok": True, "correctName": correct, "image": feedback[0]["image"]}]
    assert [p["name"] for n, p in ana_events if n == "round:reveal"] == [correct]

    bia_events = _drain(bia)
    assert [n for n, _ in bia_events if n == "answer:feedback"] == []
    assert len([n for n, _ in bia_events if n == "round:reveal"]) == 1

    host.emit("round:skip", {"roomCode": code})
    runner.run_pending()
    host.emit("round:skip", {"roomCode": code})

    (final,) = _received(projector, "game:final")
    assert [r["name"] for r in final["ranking"]] == ["Ana", "Bia"]
    assert final["ranking"][0]["corrects"] == 1
    assert final["podium"] == final["ranking"]
    assert [s["count"] for s in final["charStats"]] == [1, 0]


def test_host_disconnect_ends_room(socketio, flask_app, rooms, runner):
    host, code = _create(socketio, flask_app)
    player = socketio.test_client(flask_app)
    player.emit("room:join", {"roomCode": code, "name": "Ana"}, callback=True)
    host.emit("game:start", {"roomCode": code})
    runner.run_pending()
    player.get_received()

    host.disconnect()

    finals = _received(player, "game:final")
    assert finals == [{"podium": [], "ranking": [], "charStats": []}]
    assert rooms.get(code) is None

    runner.run_pending()
    assert player.get_received() == []


def test_leave_room_event(socketio, flask_app, rooms):
    host, code = _create(socketio, flask_app)
    player = socketio.test_client(flask_app)
    player.emit("room:join", {"roomCode": code, "name": "Ana"}, callback=True)
    host.get_received()

    assert player.emit("room:leave", {"roomCode": code}, callback=True) == {"ok": True}
    states = _received(host, "room:state")
    assert [m["name"] for m in states[-1]["members"]] == ["Host"]
    assert player.emit("room:leave", {"roomCode": "NOPE"}, callback=True)["error"] == "room_not_found"


def test_health_and_room_snapshot(socketio, flask_app):
    client = flask_app.test_client()
    assert client.get("/api/health").get_json() == {"ok": True, "rooms": 0}

    host, code = _create(socketio, flask_app)
    assert client.get("/api/health").get_json()["rooms"] == 1

    res = client.get(f"/api/rooms/{code.lower()}")
    assert res.status_code == 200
    body = res.get_json()
    assert body["code"] == code
    assert body["phase"] == "lobby"

    res = client.get("/api/rooms/NOPE")
    assert res.status_code == 404
    assert res.get_json() == {"error": "room_not_found"}


def test_game_runs_on_socketio_background_tasks():
    flask_app, socketio = create_app(FastTimersConfig)
    registry = flask_app.extensions["room_registry"]
    try:
        host, code = _create(socketio, flask_app, total_rounds=2)
        host.emit("game:start", {"roomCode": code})

        seen = []
        deadline = time.monotonic() + 5
        while "game:final" not in seen and time.monotonic() < deadline:
            seen += [pkt["name"] for pkt in host.get_received()]
            time.sleep(0.02)

        flow = [n for n in seen if n in ("round:start", "round:reveal", "game:final")]
        assert flow == ["round:start", "round:reveal", "round:start", "round:reveal", "game:final"]
    finally:
        registry.shutdown()
