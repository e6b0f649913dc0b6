import itertools
import logging
import threading
import time
from typing import Any, Callable, Dict, NamedTuple, Optional, Set, Tuple


TURN = 'turn'
COUNTER = 'counter'
ROUND_BREAK = 'round_break'
CLEANUP = 'cleanup'

TimerCallback = Callable[[str, int], None]


class ArmedTimer(NamedTuple):
    token: int
    deadline: float
    marker: Any


class BackgroundSpawner:
    """Run ``fn(*args)`` after ``delay`` seconds as a Socket.IO background task.

    With ``heartbeat`` > 0 the wait is split into steps and each step is logged,
    which helps when watching timers on a live server.
    """

    def __init__(self, socketio, logger: Optional[logging.Logger] = None, heartbeat: float = 0):
        self._socketio = socketio
        self._logger = logger or logging.getLogger(__name__)
        self._heartbeat = heartbeat

    def __call__(self, delay: float, fn: Callable, *args) -> None:
        self._socketio.start_background_task(self._worker, delay, fn, args)

    def _worker(self, delay: float, fn: Callable, args: Tuple) -> None:
        if self._heartbeat and self._heartbeat > 0:
            slept = 0.0
            while slept < delay:
                step = min(self._heartbeat, delay - slept)
                self._socketio.sleep(step)
                slept += step
                self._logger.info(f"[timer-heartbeat] args={args} remaining={max(0.0, delay - slept):.1f}s")
        else:
            self._socketio.sleep(delay)
        try:
            fn(*args)
        except Exception:
            self._logger.exception(f"[timer-error] args={args}")


def discard_spawn(delay: float, fn: Callable, *args) -> None:
    """Spawner that never runs anything; timers stay armed but never fire."""
    return None


class MatchTimers:
    """Bookkeeping for the timers of every live match.

    One timer per (match id, kind). Arming replaces the previous timer of the
    same kind; the superseded background task still wakes up but its token no
    longer matches, so ``claim`` refuses it. All arm/cancel/claim calls for a
    match happen while the caller holds that match's lock.
    """

    def __init__(self, spawn: Callable = discard_spawn, clock: Callable[[], float] = time.time,
                 logger: Optional[logging.Logger] = None):
        self._spawn = spawn
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._armed: Dict[Tuple[str, str], ArmedTimer] = {}

    def arm(self, match_id: str, kind: str, deadline: float, callback: TimerCallback, marker: Any = None) -> int:
        token = next(self._tokens)
        with self._lock:
            self._armed[(match_id, kind)] = ArmedTimer(token, deadline, marker)
        delay = max(0.0, deadline - self._clock())
        self._logger.info(f"[timer-set] match={match_id} kind={kind} delay={delay:.1f}s deadline={deadline}")
        self._spawn(delay, callback, match_id, token)
        return token

    def armed(self, match_id: str, kind: str) -> Optional[ArmedTimer]:
        with self._lock:
            return self._armed.get((match_id, kind))

    def armed_kinds(self, match_id: str) -> Set[str]:
        with self._lock:
            return {kind for (mid, kind) in self._armed if mid == match_id}

    def claim(self, match_id: str, kind: str, token: int) -> Optional[ArmedTimer]:
        """Take ownership of a firing timer if it is still the current one."""
        with self._lock:
            entry = self._armed.get((match_id, kind))
            if entry is None or entry.token != token:
                return None
            del self._armed[(match_id, kind)]
            return entry

    def cancel(self, match_id: str, *kinds: str) -> None:
        with self._lock:
            for kind in kinds:
                if self._armed.pop((match_id, kind), None) is not None:
                    self._logger.info(f"[timer-cancel] match={match_id} kind={kind}")

    def cancel_all(self, match_id: str) -> None:
        self.cancel(match_id, TURN, COUNTER, ROUND_BREAK, CLEANUP)
