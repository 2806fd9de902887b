from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


Phase = Literal["lobby", "countdown", "playing", "revealed", "ended"]
MemberRole = Literal["host", "projector", "player"]


@dataclass(frozen=True)
class Character:
    id: str
    name: str
    hints: tuple[str, ...] = ()
    image: str = ""


@dataclass
class Member:
    connection_id: str
    name: str
    team: str | None = None
    role: MemberRole = "player"
    correct_count: int = 0

    @property
    def is_player(self) -> bool:
        return self.role == "player"


@dataclass
class RoundState:
    character_id: str
    correct_name: str
    image: str
    options: list[str]
    hints: list[str] = field(default_factory=list)
    answered_by: set[str] = field(default_factory=set)
    revealed: bool = False


@dataclass
class Room:
    code: str
    host_connection_id: str
    total_rounds: int = 6
    phase: Phase = "lobby"
    round_number: int = 0
    current_round: RoundState | None = None
    # Insertion order is arrival order; ranking ties rely on it.
    members: dict[str, Member] = field(default_factory=dict)
    projectors: dict[str, Member] = field(default_factory=dict)
    # Append-only, in first-used order.
    used_character_ids: list[str] = field(default_factory=list)
    character_hit_counts: dict[str, int] = field(default_factory=dict)
