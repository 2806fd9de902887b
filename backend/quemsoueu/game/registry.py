from __future__ import annotations

import logging
import random
import string
from threading import RLock
from typing import TYPE_CHECKING, Any, Mapping

from .catalog import CharacterCatalog
from .errors import InvalidPayload, RoomNotFound
from .models import Room
from .session import RoomSession
from .timers import TaskRunner

if TYPE_CHECKING:  # pragma: no cover
    from ..realtime.gateway import Broadcaster


logger = logging.getLogger(__name__)

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
PROJECTOR_NAME = "PROJETOR"
MAX_NAME_LENGTH = 24


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _validate_name(name: str) -> bool:
    n = (name or "").strip()
    if not n or len(n) > MAX_NAME_LENGTH:
        return False
    # Avoid obvious HTML/script injection.
    if "<" in n or ">" in n:
        return False
    return all(ord(ch) >= 32 for ch in n)


class RoomRegistry:
    """Owns every live :class:`RoomSession`, keyed by room code.

    The registry lock only guards the code -> session map; each session
    serializes its own state.
    """

    def __init__(
        self,
        catalog: CharacterCatalog,
        gateway: "Broadcaster",
        runner: TaskRunner,
        *,
        round_time: float = 30,
        reveal_time: float = 30,
        countdown_seconds: float = 3,
        default_total_rounds: int = 6,
        max_total_rounds: int = 30,
        code_length: int = 4,
        rng: random.Random | None = None,
    ) -> None:
        self.catalog = catalog
        self.gateway = gateway
        self.runner = runner
        self.round_time = round_time
        self.reveal_time = reveal_time
        self.countdown_seconds = countdown_seconds
        self.default_total_rounds = default_total_rounds
        self.max_total_rounds = max_total_rounds
        self.code_length = code_length
        self.rng = rng or random.Random()
        self._lock = RLock()
        self._rooms: dict[str, RoomSession] = {}

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        catalog: CharacterCatalog,
        gateway: "Broadcaster",
        runner: TaskRunner,
        rng: random.Random | None = None,
    ) -> "RoomRegistry":
        return cls(
            catalog,
            gateway,
            runner,
            round_time=config.get("ROUND_TIME_SECONDS", 30),
            reveal_time=config.get("REVEAL_TIME_SECONDS", 30),
            countdown_seconds=config.get("COUNTDOWN_SECONDS", 3),
            default_total_rounds=config.get("DEFAULT_TOTAL_ROUNDS", 6),
            max_total_rounds=config.get("MAX_TOTAL_ROUNDS", 30),
            code_length=config.get("ROOM_CODE_LENGTH", 4),
            rng=rng,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def _generate_code(self) -> str:
        code = "".join(self.rng.choices(ROOM_CODE_ALPHABET, k=self.code_length))
        while code in self._rooms:
            code = "".join(self.rng.choices(ROOM_CODE_ALPHABET, k=self.code_length))
        return code

    def create_room(self, host_connection_id: str, total_rounds: Any = None) -> RoomSession:
        if total_rounds is None:
            total_rounds = self.default_total_rounds
        if isinstance(total_rounds, bool):
            raise InvalidPayload("invalid_rounds")
        if isinstance(total_rounds, float) and not total_rounds.is_integer():
            raise InvalidPayload("invalid_rounds")
        try:
            rounds = int(total_rounds)
        except (TypeError, ValueError):
            raise InvalidPayload("invalid_rounds") from None
        if rounds < 1 or rounds > self.max_total_rounds:
            raise InvalidPayload("invalid_rounds")

        with self._lock:
            code = self._generate_code()
            session = RoomSession(
                Room(code=code, host_connection_id=host_connection_id, total_rounds=rounds),
                self.catalog,
                self.gateway,
                self.runner,
                round_time=self.round_time,
                reveal_time=self.reveal_time,
                countdown_seconds=self.countdown_seconds,
                rng=random.Random(self.rng.random()),
            )
            self._rooms[code] = session

        session.add_host(host_connection_id)
        logger.info("Room %s created by %s (%d rounds)", code, host_connection_id, rounds)
        return session

    def get(self, code: str) -> RoomSession | None:
        with self._lock:
            return self._rooms.get(normalize_code(code))

    def require(self, code: str) -> RoomSession:
        session = self.get(code)
        if session is None:
            raise RoomNotFound(normalize_code(code))
        return session

    def list_rooms(self) -> list[RoomSession]:
        with self._lock:
            return list(self._rooms.values())

    def join_room(
        self,
        code: str,
        connection_id: str,
        name: str = "",
        team: str = "",
        role: str | None = None,
    ) -> RoomSession:
        session = self.require(code)
        name = (name or "").strip()

        if role == "projector" or name == PROJECTOR_NAME:
            if session.add_projector(connection_id) is None:
                raise RoomNotFound(session.code)
            logger.info("Room %s: projector %s attached", session.code, connection_id)
            return session

        name = name or "Jogador"
        if not _validate_name(name):
            raise InvalidPayload("invalid_name")
        team = (team or "").strip() or "Equipe"
        if not _validate_name(team):
            raise InvalidPayload("invalid_team")

        if session.add_player(connection_id, name, team) is None:
            raise RoomNotFound(session.code)
        logger.info("Room %s: %s joined as %r", session.code, connection_id, name)
        return session

    def leave_room(self, code: str, connection_id: str) -> bool:
        session = self.require(code)
        self.gateway.leave_group(connection_id, session.code)
        was_host = session.remove_connection(connection_id)
        if was_host:
            self._discard(session)
        return was_host

    def remove_connection(self, connection_id: str) -> list[str]:
        """Disconnect cleanup. Returns the codes of rooms closed by host loss."""
        closed = []
        for session in self.list_rooms():
            if not session.has_connection(connection_id):
                continue
            if session.remove_connection(connection_id):
                self._discard(session)
                closed.append(session.code)
        return closed

    def _discard(self, session: RoomSession) -> None:
        with self._lock:
            if self._rooms.get(session.code) is session:
                del self._rooms[session.code]
        logger.info("Room %s removed", session.code)

    def shutdown(self) -> None:
        with self._lock:
            sessions = list(self._rooms.values())
            self._rooms.clear()
        for session in sessions:
            session.close()
        if sessions:
            logger.info("Closed %d live rooms on shutdown", len(sessions))
