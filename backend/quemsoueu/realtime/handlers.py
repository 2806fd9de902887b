from __future__ import annotations

import logging
from typing import Any

from flask import request
from flask_socketio import SocketIO, emit

from ..game.errors import GameError, InvalidPayload
from ..game.registry import RoomRegistry
from . import events


logger = logging.getLogger(__name__)


def _room_code(payload: dict) -> str:
    return str(payload.get("roomCode", "")).strip().upper()


def _fail(err: GameError) -> dict[str, Any]:
    # Only the caller hears about it: ack plus a unicast error event.
    emit(events.ROOM_ERROR, {"error": err.code}, to=request.sid)
    return {"ok": False, "error": err.code}


def register_socketio_handlers(socketio: SocketIO, registry: RoomRegistry) -> None:
    @socketio.on(events.ROOM_CREATE)
    def room_create(data=None):
        payload = data if isinstance(data, dict) else {}
        try:
            session = registry.create_room(request.sid, payload.get("totalRounds"))
        except GameError as err:
            return _fail(err)
        return {"ok": True, "roomCode": session.code, "totalRounds": session.room.total_rounds}

    @socketio.on(events.ROOM_JOIN)
    def room_join(data=None):
        payload = data if isinstance(data, dict) else {}
        room_code = _room_code(payload)
        name = str(payload.get("name") or "").strip()
        team = str(payload.get("team") or "").strip()
        role = payload.get("role") if payload.get("role") == "projector" else None

        if not room_code:
            return _fail(InvalidPayload())

        try:
            session = registry.join_room(room_code, request.sid, name=name, team=team, role=role)
        except GameError as err:
            return _fail(err)

        return {"ok": True, "roomCode": session.code, "state": session.public_state()}

    @socketio.on(events.ROOM_LEAVE)
    def room_leave(data=None):
        payload = data if isinstance(data, dict) else {}
        room_code = _room_code(payload)
        if not room_code:
            return _fail(InvalidPayload())

        try:
            registry.leave_room(room_code, request.sid)
        except GameError as err:
            return _fail(err)
        return {"ok": True}

    @socketio.on(events.GAME_START)
    def game_start(data=None):
        payload = data if isinstance(data, dict) else {}
        session = registry.get(_room_code(payload))
        if not session:
            return
        session.start(request.sid)

    @socketio.on(events.ANSWER_SEND)
    def answer_send(data=None):
        payload = data if isinstance(data, dict) else {}
        session = registry.get(_room_code(payload))
        if not session:
            return
        session.answer(request.sid, str(payload.get("answer") or ""))

    @socketio.on(events.ROUND_SKIP)
    def round_skip(data=None):
        payload = data if isinstance(data, dict) else {}
        session = registry.get(_room_code(payload))
        if not session:
            return
        session.skip(request.sid)

    @socketio.on("disconnect")
    def on_disconnect(reason=None):
        closed = registry.remove_connection(request.sid)
        if closed:
            logger.info("Host %s disconnected, closed rooms %s", request.sid, closed)
