from __future__ import annotations

import logging
from typing import Any, Callable, Protocol


logger = logging.getLogger(__name__)

# Workers wake this often to notice cancellation.
SLEEP_SLICE_SEC = 0.25


class TaskRunner(Protocol):
    """The slice of ``flask_socketio.SocketIO`` used to run timers."""

    def start_background_task(self, target: Callable[..., Any], *args: Any, **kwargs: Any) -> Any: ...

    def sleep(self, seconds: float = 0) -> Any: ...


class TimerHandle:
    def __init__(self, name: str, delay: float) -> None:
        self.name = name
        self.delay = delay
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "pending"
        return f"<TimerHandle {self.name} {self.delay}s {state}>"


class RoomTimers:
    """Named, cancellable timers owned by one room.

    Arming always cancels every pending timer first, so a room never has two
    timers in flight. Callbacks receive their handle and must call
    :meth:`consume` (under the room lock) before acting on it. Workers sleep
    in short slices, so a cancelled timer releases its task within
    ``SLEEP_SLICE_SEC`` instead of holding it for the full delay.
    """

    def __init__(self, runner: TaskRunner, label: str = "") -> None:
        self._runner = runner
        self._label = label
        self._pending: dict[str, TimerHandle] = {}

    @property
    def pending(self) -> list[str]:
        return [name for name, h in self._pending.items() if not h.cancelled]

    def arm(self, name: str, delay: float, callback: Callable[[TimerHandle], None]) -> TimerHandle:
        self.cancel_all()
        handle = TimerHandle(name, delay)
        self._pending[name] = handle
        logger.debug("[timer-set] room=%s timer=%s delay=%ss", self._label, name, delay)
        self._runner.start_background_task(self._run, handle, callback)
        return handle

    def _run(self, handle: TimerHandle, callback: Callable[[TimerHandle], None]) -> None:
        slept = 0.0
        while slept < handle.delay and not handle.cancelled:
            step = min(SLEEP_SLICE_SEC, handle.delay - slept)
            self._runner.sleep(step)
            slept += step
        if handle.cancelled:
            logger.debug("[timer-abort] room=%s timer=%s cancelled", self._label, handle.name)
            return
        try:
            callback(handle)
        except Exception:
            logger.exception("[timer-error] room=%s timer=%s", self._label, handle.name)

    def consume(self, handle: TimerHandle) -> bool:
        """Claim a fired handle; False if it was cancelled or superseded."""
        if handle.cancelled or self._pending.get(handle.name) is not handle:
            return False
        del self._pending[handle.name]
        logger.debug("[timer-fire] room=%s timer=%s", self._label, handle.name)
        return True

    def cancel_all(self) -> None:
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
