"""Domain events recorded by a match while it mutates.

The engine appends events as transitions happen; the orchestrator drains
them once the mutating step is complete and turns them into notifications
and stats writes. Each transition therefore produces exactly one event.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class EventType(Enum):
    ROUND_STARTED = 'round_started'
    ROUND_ENDED = 'round_ended'
    MATCH_ENDED = 'match_ended'
    EFFECT_ARMED = 'effect_armed'
    EFFECT_RESOLVED = 'effect_resolved'
    AUTO_PLAYED = 'auto_played'


@dataclass
class MatchEvent:
    event_type: EventType
    data: Dict[str, Any] = field(default_factory=dict)


class EventLog:
    def __init__(self):
        self._events: List[MatchEvent] = []

    def record(self, event_type: EventType, **data) -> MatchEvent:
        event = MatchEvent(event_type, data)
        self._events.append(event)
        return event

    def drain(self) -> List[MatchEvent]:
        events, self._events = self._events, []
        return events

    def __len__(self):
        return len(self._events)


@dataclass(frozen=True)
class RoundOutcome:
    match_id: str
    round_number: int
    winner_id: str
    player_ids: Tuple[str, str]


@dataclass(frozen=True)
class MatchOutcome:
    match_id: str
    winner_id: str
    reason: str
    rounds_won: Dict[str, int]
    rounds_played: int
    room_code: Optional[str] = None

    def won(self, player_id: str) -> bool:
        return player_id == self.winner_id
