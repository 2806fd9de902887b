from __future__ import annotations

import json
import logging
import random
import re
import unicodedata
from pathlib import Path
from typing import Any, Iterable

from .models import Character


logger = logging.getLogger(__name__)


def normalize_answer(text: str) -> str:
    """Case-fold, strip accents and collapse whitespace."""
    t = unicodedata.normalize("NFD", text or "")
    t = "".join(ch for ch in t if not unicodedata.combining(ch))
    t = re.sub(r"\s+", " ", t.strip().lower())
    return t


def clean_image_ref(ref: str) -> str:
    # Images are served relative to the client base path.
    return (ref or "").lstrip("/")


class CharacterCatalog:
    """Read-only set of quiz subjects shared by every room."""

    def __init__(self, characters: Iterable[Character], extra_names: Iterable[str] = ()) -> None:
        self._characters: tuple[Character, ...] = tuple(characters)
        if not self._characters:
            raise ValueError("character catalog is empty")

        self._by_id: dict[str, Character] = {}
        for ch in self._characters:
            if ch.id in self._by_id:
                raise ValueError(f"duplicate character id {ch.id!r}")
            self._by_id[ch.id] = ch

        known = {c.name for c in self._characters}
        self._extra_names: tuple[str, ...] = tuple(
            n for n in dict.fromkeys(extra_names) if n and n not in known
        )

    @classmethod
    def from_data(cls, data: Any) -> "CharacterCatalog":
        # Accept either a bare list of characters or {"characters": [...], "extraNames": [...]}.
        if isinstance(data, list):
            raw_chars, extra = data, []
        elif isinstance(data, dict):
            raw_chars = data.get("characters") or []
            extra = data.get("extraNames") or []
        else:
            raise ValueError("unsupported character data")

        characters = []
        for i, raw in enumerate(raw_chars):
            if not isinstance(raw, dict) or not str(raw.get("name", "")).strip():
                raise ValueError(f"character #{i} has no name")
            characters.append(
                Character(
                    id=str(raw.get("id") or f"c{i + 1}"),
                    name=str(raw["name"]).strip(),
                    hints=tuple(str(h) for h in raw.get("hints") or ()),
                    image=clean_image_ref(str(raw.get("image") or "")),
                )
            )
        return cls(characters, extra_names=[str(n).strip() for n in extra if isinstance(n, str)])

    @classmethod
    def load(cls, path: str | Path) -> "CharacterCatalog":
        p = Path(path)
        with p.open(encoding="utf-8") as f:
            catalog = cls.from_data(json.load(f))
        logger.info("Loaded %d characters from %s", len(catalog), p)
        return catalog

    def __len__(self) -> int:
        return len(self._characters)

    def __iter__(self):
        return iter(self._characters)

    def get(self, character_id: str) -> Character | None:
        return self._by_id.get(character_id)

    def pick(self, used: Iterable[str], rng: random.Random) -> Character:
        """Pick an unused character; reuse the whole catalog once exhausted."""
        used_ids = set(used)
        pool = [c for c in self._characters if c.id not in used_ids]
        if not pool:
            pool = list(self._characters)
        return rng.choice(pool)

    def build_options(self, correct: Character, rng: random.Random, count: int = 4) -> list[str]:
        names = [c.name for c in self._characters if c.name != correct.name]
        names.extend(self._extra_names)
        names = list(dict.fromkeys(names))
        distractors = rng.sample(names, k=min(count - 1, len(names)))
        options = [correct.name, *distractors]
        rng.shuffle(options)
        return options
