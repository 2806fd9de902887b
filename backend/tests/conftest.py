import os
import random
import sys
import threading
import time
from collections import defaultdict

import pytest

# Ensure the backend root (containing the `quemsoueu` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from quemsoueu.game.catalog import CharacterCatalog
from quemsoueu.game.models import Character
from quemsoueu.game.registry import RoomRegistry


class ManualRunner:
    """Stands in for SocketIO's task API; timers fire only when told to."""

    def __init__(self):
        self.tasks = []

    def start_background_task(self, target, *args, **kwargs):
        self.tasks.append((target, args, kwargs))

    def sleep(self, seconds=0):
        return None

    def run_pending(self):
        tasks, self.tasks = self.tasks, []
        for target, args, kwargs in tasks:
            target(*args, **kwargs)


class ThreadRunner:
    """Runs timers on real threads, like SocketIO in threading mode."""

    def __init__(self):
        self.threads = []

    def start_background_task(self, target, *args, **kwargs):
        thread = threading.Thread(target=target, args=args, kwargs=kwargs, daemon=True)
        self.threads.append(thread)
        thread.start()
        return thread

    def sleep(self, seconds=0):
        time.sleep(seconds)


class RecordingGateway:
    def __init__(self):
        self.broadcasts = []
        self.direct = []
        self.groups = defaultdict(set)

    def broadcast_to_room(self, room_code, event, payload):
        self.broadcasts.append((room_code, event, payload))

    def send_to_connection(self, connection_id, event, payload):
        self.direct.append((connection_id, event, payload))

    def join_group(self, connection_id, room_code):
        self.groups[room_code].add(connection_id)

    def leave_group(self, connection_id, room_code):
        self.groups[room_code].discard(connection_id)

    def sent(self, event, room_code=None):
        return [p for r, e, p in self.broadcasts if e == event and (room_code is None or r == room_code)]

    def sent_to(self, connection_id, event=None):
        return [p for c, e, p in self.direct if c == connection_id and (event is None or e == event)]


def make_catalog(n=5):
    characters = [
        Character(id=f"c{i}", name=f"Person {i}", hints=(f"hint {i}a", f"hint {i}b"), image=f"images/c{i}.png")
        for i in range(1, n + 1)
    ]
    return CharacterCatalog(characters, extra_names=["Extra One", "Extra Two", "Extra Three"])


@pytest.fixture()
def catalog():
    return make_catalog()


@pytest.fixture()
def runner():
    return ManualRunner()


@pytest.fixture()
def thread_runner():
    return ThreadRunner()


@pytest.fixture()
def gateway():
    return RecordingGateway()


@pytest.fixture()
def registry(catalog, gateway, runner):
    return RoomRegistry(
        catalog,
        gateway,
        runner,
        round_time=30,
        reveal_time=10,
        countdown_seconds=3,
        rng=random.Random(1234),
    )


@pytest.fixture()
def started(registry, runner):
    """A room with two players, past the countdown and in round 1."""
    session = registry.create_room("host", 3)
    registry.join_room(session.code, "p1", name="Ana", team="Azul")
    registry.join_room(session.code, "p2", name="Bruno", team="Verde")
    session.start("host")
    runner.run_pending()
    return session
