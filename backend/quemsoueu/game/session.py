from __future__ import annotations

import logging
import random
from threading import RLock
from typing import TYPE_CHECKING, Any

from ..realtime import events
from .catalog import CharacterCatalog, normalize_answer
from .models import Member, Room, RoundState
from .timers import RoomTimers, TaskRunner, TimerHandle

if TYPE_CHECKING:  # pragma: no cover
    from ..realtime.gateway import Broadcaster


logger = logging.getLogger(__name__)

PODIUM_SIZE = 3


class RoomSession:
    """One game: membership, the round phase machine and its timers.

    Every public method and every timer callback runs under ``self._lock``,
    so a room's events are processed one at a time in arrival order. Rooms
    never share mutable state; the catalog is read-only.

    Reveal policy: the first correct answer reveals the round for everyone.
    Wrong answers are final for that member but keep the round open until
    the timer expires, the host skips, or every player has answered.
    Scoring is one point per correct answer.
    """

    def __init__(
        self,
        room: Room,
        catalog: CharacterCatalog,
        gateway: "Broadcaster",
        runner: TaskRunner,
        *,
        round_time: float = 30,
        reveal_time: float = 30,
        countdown_seconds: float = 3,
        rng: random.Random | None = None,
    ) -> None:
        self.room = room
        self.catalog = catalog
        self.gateway = gateway
        self.round_time = round_time
        self.reveal_time = reveal_time
        self.countdown_seconds = countdown_seconds
        self.rng = rng or random.Random()
        self.timers = RoomTimers(runner, label=room.code)
        self.closed = False
        self._lock = RLock()

    @property
    def code(self) -> str:
        return self.room.code

    @property
    def phase(self) -> str:
        return self.room.phase

    def is_host(self, connection_id: str) -> bool:
        return connection_id == self.room.host_connection_id

    def has_connection(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self.room.members or connection_id in self.room.projectors

    def add_host(self, connection_id: str) -> Member:
        with self._lock:
            member = Member(connection_id=connection_id, name="Host", team="Host", role="host")
            self.room.members[connection_id] = member
            self.gateway.join_group(connection_id, self.code)
            self.broadcast_state()
            return member

    def add_player(self, connection_id: str, name: str, team: str | None = None) -> Member | None:
        with self._lock:
            if self.closed:
                return None
            self.room.projectors.pop(connection_id, None)
            member = self.room.members.get(connection_id)
            if member is None:
                member = Member(connection_id=connection_id, name=name, team=team)
                self.room.members[connection_id] = member
            elif member.role == "player":
                # Rejoin from the same connection keeps arrival position and score.
                member.name = name
                member.team = team
            self.gateway.join_group(connection_id, self.code)
            self.broadcast_state()
            return member

    def add_projector(self, connection_id: str) -> Member | None:
        with self._lock:
            if self.closed:
                return None
            # A player switching to the projector view stops competing.
            existing = self.room.members.get(connection_id)
            if existing is not None and existing.is_player:
                del self.room.members[connection_id]
                if self.room.current_round is not None:
                    self.room.current_round.answered_by.discard(connection_id)
                self.broadcast_state()
                self._reveal_if_everyone_answered()
            member = Member(connection_id=connection_id, name="PROJETOR", role="projector")
            self.room.projectors[connection_id] = member
            self.gateway.join_group(connection_id, self.code)
            return member

    def remove_connection(self, connection_id: str) -> bool:
        """Drop a connection from this room. Returns True if it was the host."""
        with self._lock:
            removed = self.room.members.pop(connection_id, None)
            projector = self.room.projectors.pop(connection_id, None)
            if removed is None and projector is None:
                return False

            if self.room.current_round is not None:
                self.room.current_round.answered_by.discard(connection_id)

            if removed is not None and not self.closed:
                self.broadcast_state()

            if self.is_host(connection_id):
                self.terminate()
                return True

            self._reveal_if_everyone_answered()
            return False

    def terminate(self) -> None:
        """Host loss: cancel timers and send a terminal, empty result."""
        with self._lock:
            if self.closed:
                return
            already_ended = self.room.phase == "ended"
            self.close()
            if not already_ended:
                self.gateway.broadcast_to_room(
                    self.code, events.GAME_FINAL, {"podium": [], "ranking": [], "charStats": []}
                )
            logger.info("Room %s terminated (host left)", self.code)

    def close(self) -> None:
        with self._lock:
            self.timers.cancel_all()
            self.closed = True
            self.room.phase = "ended"
            self.room.current_round = None

    def start(self, connection_id: str) -> bool:
        with self._lock:
            if self.closed or not self.is_host(connection_id):
                logger.debug("Room %s: ignored start from %s", self.code, connection_id)
                return False
            if self.room.phase != "lobby":
                return False

            self.room.phase = "countdown"
            self.room.round_number = 0
            self.gateway.broadcast_to_room(
                self.code, events.COUNTDOWN_START, {"seconds": self.countdown_seconds}
            )
            self.broadcast_state()
            self.timers.arm("countdown", self.countdown_seconds, self._on_countdown_done)
            logger.info("Room %s: game started (%d rounds)", self.code, self.room.total_rounds)
            return True

    def skip(self, connection_id: str) -> bool:
        with self._lock:
            if self.closed or not self.is_host(connection_id):
                logger.debug("Room %s: ignored skip from %s", self.code, connection_id)
                return False

            if self.room.phase == "playing":
                self._reveal()
                return True
            if self.room.phase == "revealed":
                self.next_round()
                return True
            return False

    def answer(self, connection_id: str, answer: str) -> bool | None:
        """Returns the correctness of an accepted answer, None when ignored."""
        with self._lock:
            rnd = self.room.current_round
            if self.closed or self.room.phase != "playing" or rnd is None:
                return None

            member = self.room.members.get(connection_id)
            if member is None or not member.is_player:
                return None
            if connection_id in rnd.answered_by:
                return None

            rnd.answered_by.add(connection_id)
            ok = normalize_answer(answer) == normalize_answer(rnd.correct_name)

            if ok:
                member.correct_count += 1
                self.room.character_hit_counts[rnd.character_id] = (
                    self.room.character_hit_counts.get(rnd.character_id, 0) + 1
                )

            self.gateway.send_to_connection(
                connection_id,
                events.ANSWER_FEEDBACK,
                {"ok": ok, "correctName": rnd.correct_name, "image": rnd.image},
            )

            if ok:
                self.broadcast_state()
                self._reveal()
            else:
                self._reveal_if_everyone_answered()
            return ok

    def next_round(self) -> None:
        with self._lock:
            if self.closed or self.room.phase == "ended":
                return
            self.timers.cancel_all()

            if self.room.round_number + 1 > self.room.total_rounds:
                self._end_game()
                return

            self.room.round_number += 1
            ch = self.catalog.pick(self.room.used_character_ids, self.rng)
            if ch.id not in self.room.character_hit_counts:
                self.room.used_character_ids.append(ch.id)
                self.room.character_hit_counts[ch.id] = 0

            self.room.current_round = RoundState(
                character_id=ch.id,
                correct_name=ch.name,
                image=ch.image,
                options=self.catalog.build_options(ch, self.rng),
                hints=list(ch.hints),
            )
            self.room.phase = "playing"

            self.gateway.broadcast_to_room(
                self.code,
                events.ROUND_START,
                {
                    "roundNumber": self.room.round_number,
                    "totalRounds": self.room.total_rounds,
                    "hints": list(ch.hints),
                    "options": list(self.room.current_round.options),
                    "duration": self.round_time,
                },
            )
            self.timers.arm("round", self.round_time, self._on_round_timeout)
            logger.debug("Room %s: round %d/%d -> %s", self.code, self.room.round_number, self.room.total_rounds, ch.id)

    def _reveal(self) -> None:
        rnd = self.room.current_round
        if rnd is None or rnd.revealed:
            return
        rnd.revealed = True
        self.room.phase = "revealed"
        self.timers.cancel_all()
        self.gateway.broadcast_to_room(
            self.code, events.ROUND_REVEAL, {"name": rnd.correct_name, "image": rnd.image}
        )
        self.timers.arm("reveal", self.reveal_time, self._on_reveal_done)

    def _reveal_if_everyone_answered(self) -> None:
        rnd = self.room.current_round
        if self.closed or self.room.phase != "playing" or rnd is None:
            return
        players = [cid for cid, m in self.room.members.items() if m.is_player]
        if players and all(cid in rnd.answered_by for cid in players):
            self._reveal()

    def _end_game(self) -> None:
        self.timers.cancel_all()
        self.room.phase = "ended"
        self.room.current_round = None
        results = self.final_results()
        self.gateway.broadcast_to_room(self.code, events.GAME_FINAL, results)
        self.broadcast_state()
        logger.info("Room %s: game over after %d rounds", self.code, self.room.round_number)

    def _on_countdown_done(self, handle: TimerHandle) -> None:
        with self._lock:
            if not self.timers.consume(handle) or self.room.phase != "countdown":
                return
            self.next_round()

    def _on_round_timeout(self, handle: TimerHandle) -> None:
        with self._lock:
            if not self.timers.consume(handle) or self.room.phase != "playing":
                return
            self._reveal()

    def _on_reveal_done(self, handle: TimerHandle) -> None:
        with self._lock:
            if not self.timers.consume(handle) or self.room.phase != "revealed":
                return
            self.next_round()

    def ranking(self) -> list[dict[str, Any]]:
        with self._lock:
            players = [m for m in self.room.members.values() if m.is_player]
            # sorted() is stable: arrival order breaks ties.
            players = sorted(players, key=lambda m: m.correct_count, reverse=True)
            return [
                {
                    "connectionId": m.connection_id,
                    "name": m.name,
                    "team": m.team,
                    "corrects": m.correct_count,
                }
                for m in players
            ]

    def character_stats(self) -> list[dict[str, Any]]:
        with self._lock:
            stats = []
            for cid in self.room.used_character_ids:
                ch = self.catalog.get(cid)
                stats.append(
                    {
                        "id": cid,
                        "name": ch.name if ch else cid,
                        "count": self.room.character_hit_counts.get(cid, 0),
                    }
                )
            return sorted(stats, key=lambda s: s["count"], reverse=True)

    def final_results(self) -> dict[str, Any]:
        ranking = self.ranking()
        return {
            "podium": ranking[:PODIUM_SIZE],
            "ranking": ranking,
            "charStats": self.character_stats(),
        }

    def public_state(self) -> dict[str, Any]:
        with self._lock:
            members = [
                {
                    "id": m.connection_id,
                    "name": m.name,
                    "team": m.team,
                    "role": m.role,
                    "corrects": m.correct_count,
                }
                for m in self.room.members.values()
            ]
            return {
                "code": self.code,
                "phase": self.room.phase,
                "roundNumber": self.room.round_number,
                "totalRounds": self.room.total_rounds,
                "members": members,
            }

    def broadcast_state(self) -> None:
        self.gateway.broadcast_to_room(self.code, events.ROOM_STATE, self.public_state())
