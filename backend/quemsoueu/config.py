import os
from pathlib import Path


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Realtime
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Content
    CHARACTERS_PATH = os.environ.get(
        "CHARACTERS_PATH",
        str(Path(__file__).resolve().parent / "data" / "characters.json"),
    )

    # Game
    ROUND_TIME_SECONDS = int(os.environ.get("ROUND_TIME_SECONDS", "30"))
    REVEAL_TIME_SECONDS = int(os.environ.get("REVEAL_TIME_SECONDS", "30"))
    COUNTDOWN_SECONDS = int(os.environ.get("COUNTDOWN_SECONDS", "3"))
    DEFAULT_TOTAL_ROUNDS = int(os.environ.get("DEFAULT_TOTAL_ROUNDS", "6"))
    MAX_TOTAL_ROUNDS = int(os.environ.get("MAX_TOTAL_ROUNDS", "30"))
    ROOM_CODE_LENGTH = int(os.environ.get("ROOM_CODE_LENGTH", "4"))
