"""FIFO queue for random matches."""
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass
class QueuedPlayer:
    visitor_id: str
    handle: str
    username: str = 'Player'
    avatar: str = '🎴'
    joined_at: float = field(default_factory=time.time)


class MatchmakingQueue:
    """Thread-safe waiting line.

    ``add`` returns the two oldest entries once two distinct visitors are
    waiting; they leave the queue in the same step, so a player is never
    paired twice.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[QueuedPlayer] = []

    def add(self, entry: QueuedPlayer) -> Optional[Tuple[QueuedPlayer, QueuedPlayer]]:
        with self._lock:
            self._entries = [e for e in self._entries if e.visitor_id != entry.visitor_id]
            self._entries.append(entry)
            if len(self._entries) < 2:
                return None
            first, second = self._entries[0], self._entries[1]
            del self._entries[:2]
            return first, second

    def remove(self, visitor_id: str) -> bool:
        with self._lock:
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.visitor_id != visitor_id]
            return len(self._entries) != before

    def remove_by_handle(self, handle: str) -> Optional[QueuedPlayer]:
        with self._lock:
            for i, entry in enumerate(self._entries):
                if entry.handle == handle:
                    return self._entries.pop(i)
        return None

    def contains(self, visitor_id: str) -> bool:
        with self._lock:
            return any(e.visitor_id == visitor_id for e in self._entries)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def position(self, visitor_id: str) -> Optional[int]:
        with self._lock:
            for i, entry in enumerate(self._entries):
                if entry.visitor_id == visitor_id:
                    return i + 1
        return None
