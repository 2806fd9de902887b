from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:  # pragma: no cover
    from flask_socketio import SocketIO


class Broadcaster(Protocol):
    """Transport boundary: the game core only knows room codes and connection ids."""

    def broadcast_to_room(self, room_code: str, event: str, payload: dict[str, Any]) -> None: ...

    def send_to_connection(self, connection_id: str, event: str, payload: dict[str, Any]) -> None: ...

    def join_group(self, connection_id: str, room_code: str) -> None: ...

    def leave_group(self, connection_id: str, room_code: str) -> None: ...


class SocketIOGateway:
    def __init__(self, socketio: "SocketIO", namespace: str = "/") -> None:
        self.socketio = socketio
        self.namespace = namespace

    def broadcast_to_room(self, room_code: str, event: str, payload: dict[str, Any]) -> None:
        self.socketio.emit(event, payload, to=room_code, namespace=self.namespace)

    def send_to_connection(self, connection_id: str, event: str, payload: dict[str, Any]) -> None:
        self.socketio.emit(event, payload, to=connection_id, namespace=self.namespace)

    def join_group(self, connection_id: str, room_code: str) -> None:
        self.socketio.server.enter_room(connection_id, room_code, namespace=self.namespace)

    def leave_group(self, connection_id: str, room_code: str) -> None:
        self.socketio.server.leave_room(connection_id, room_code, namespace=self.namespace)
