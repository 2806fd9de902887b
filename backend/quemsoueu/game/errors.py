from __future__ import annotations


class GameError(Exception):
    """Base error for requests the caller should hear about.

    ``code`` is the short machine-readable string sent back in acks and
    ``room:error`` events.
    """

    code = "game_error"

    def __init__(self, code: str | None = None, message: str = "") -> None:
        if code:
            self.code = code
        super().__init__(message or self.code)


class RoomNotFound(GameError):
    code = "room_not_found"

    def __init__(self, room_code: str) -> None:
        super().__init__(message=f"no live room with code {room_code!r}")
        self.room_code = room_code


class InvalidPayload(GameError):
    code = "invalid_payload"
