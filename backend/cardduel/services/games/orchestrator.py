"""Owns every live match and everything that happens around it.

The service serializes actions per match, turns engine events into
notifications and stats writes, and keeps one timer of each kind armed
to match the engine's state. Delivery (``publish``) and persistence
(``stats``) happen only after the match lock has been released.

Each match also has a delivery gate. It is taken before the match lock
is let go and released once the outbox is flushed, so players see
updates in the order the match produced them.

Lock order: match lock, then delivery gate, then ``_registry_lock``.
"""
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from . import scheduler
from .engine import Match, MatchMode, MatchStatus, MatchTimings
from .errors import IllegalMove, MatchNotFound, PlayerNotFound
from .events import EventType, MatchOutcome, RoundOutcome
from .hand import Player
from .snapshots import match_over_for, round_over_for, state_for


@dataclass(frozen=True)
class Seat:
    player_id: str
    transport_handle: Optional[str] = None
    display_name: str = 'Player'
    avatar: str = '🎴'


@dataclass(frozen=True)
class Pairing:
    first: Seat
    second: Seat
    mode: MatchMode = MatchMode.RANDOM
    room_code: Optional[str] = None


@dataclass
class _Outbox:
    messages: List[Tuple[str, str, dict]] = field(default_factory=list)
    rounds: List[RoundOutcome] = field(default_factory=list)
    matches: List[MatchOutcome] = field(default_factory=list)

    def send(self, player_id: str, event: str, payload: dict) -> None:
        self.messages.append((player_id, event, payload))


def _drop(*args, **kwargs):
    return None


class MatchService:
    def __init__(self, timings: Optional[MatchTimings] = None, publish: Optional[Callable] = None,
                 stats=None, spawn: Optional[Callable] = None, clock: Callable[[], float] = time.time,
                 rng_factory: Callable[[], random.Random] = random.Random,
                 logger: Optional[logging.Logger] = None):
        self.timings = timings or MatchTimings()
        self.logger = logger or logging.getLogger(__name__)
        self._publish = publish or _drop
        self._stats = stats
        self._clock = clock
        self._rng_factory = rng_factory
        self.timers = scheduler.MatchTimers(spawn or scheduler.discard_spawn, clock, self.logger)

        self._matches: Dict[str, Match] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._gates: Dict[str, threading.Lock] = {}
        self._player_match: Dict[str, str] = {}
        self._handle_player: Dict[str, str] = {}
        self._registry_lock = threading.Lock()

    # ---- Identity ----

    def register_handle(self, handle: str, player_id: str) -> None:
        """Bind a transport handle to a player; a live match picks up the new handle."""
        with self._registry_lock:
            self._handle_player[handle] = player_id
            match = self._matches.get(self._player_match.get(player_id))
        if match is not None:
            with self._lock_for(match.id):
                try:
                    match.player(player_id).transport_handle = handle
                except PlayerNotFound:
                    pass

    def unregister_handle(self, handle: str) -> Optional[str]:
        with self._registry_lock:
            return self._handle_player.pop(handle, None)

    def player_for_handle(self, handle: str) -> Optional[str]:
        with self._registry_lock:
            return self._handle_player.get(handle)

    def match_id_for_player(self, player_id: str) -> Optional[str]:
        with self._registry_lock:
            return self._player_match.get(player_id)

    def in_live_match(self, player_id: str) -> bool:
        with self._registry_lock:
            match = self._matches.get(self._player_match.get(player_id))
        return match is not None and not match.is_terminal

    def get_match(self, match_id: str) -> Match:
        with self._registry_lock:
            match = self._matches.get(match_id)
        if match is None:
            raise MatchNotFound()
        return match

    def active_match_count(self) -> int:
        with self._registry_lock:
            return len(self._matches)

    def _lock_for(self, match_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(match_id)
        if lock is None:
            raise MatchNotFound()
        return lock

    def _guards_for(self, match_id: str) -> Tuple[threading.RLock, threading.Lock]:
        with self._registry_lock:
            lock = self._locks.get(match_id)
            gate = self._gates.get(match_id)
        if lock is None or gate is None:
            raise MatchNotFound()
        return lock, gate

    # ---- Lifecycle ----

    def create_match(self, pairing: Pairing) -> Match:
        if pairing.first.player_id == pairing.second.player_id:
            raise IllegalMove('A player cannot be matched against themselves')
        players = tuple(
            Player(seat.player_id, seat.transport_handle, seat.display_name, seat.avatar)
            for seat in (pairing.first, pairing.second)
        )
        match = Match(players, timings=self.timings, mode=pairing.mode, room_code=pairing.room_code,
                      clock=self._clock, rng=self._rng_factory(), logger=self.logger)
        lock = threading.RLock()
        gate = threading.Lock()
        outbox = _Outbox()
        with lock:
            with self._registry_lock:
                for p in players:
                    seated = self._matches.get(self._player_match.get(p.id))
                    if seated is not None and not seated.is_terminal:
                        raise IllegalMove(f'Player {p.id} is already in a live match')
                self._matches[match.id] = match
                self._locks[match.id] = lock
                self._gates[match.id] = gate
                for p in players:
                    self._player_match[p.id] = match.id
                    if p.transport_handle:
                        self._handle_player[p.transport_handle] = p.id
            match.start_round()
            # match_found carries the opening state, so round 1 needs no separate notice
            match.events.drain()
            for p in players:
                outbox.send(p.id, 'match_found', {
                    'match_id': match.id,
                    'opponent_id': match.opponent_of(p.id).id,
                    'opponent': match.opponent_of(p.id).to_info(),
                    'mode': match.mode.value,
                    'room_code': match.room_code,
                    'state': state_for(match, p.id),
                })
            self._sync_timers(match)
            self.logger.info(f"[match-created] match={match.id} mode={match.mode.value} "
                             f"players={[p.id for p in players]}")
            gate.acquire()
        self._flush(match, outbox, gate)
        return match

    def remove_match(self, match_id: str) -> None:
        self.timers.cancel_all(match_id)
        with self._registry_lock:
            match = self._matches.pop(match_id, None)
            self._locks.pop(match_id, None)
            self._gates.pop(match_id, None)
            if match is None:
                return
            for p in match.players:
                if self._player_match.get(p.id) == match_id:
                    del self._player_match[p.id]
        self.logger.info(f"[match-removed] match={match_id}")

    # ---- Player actions ----

    def play_card(self, match_id: str, player_id: str, card_id: str, suit=None):
        return self._mutate(match_id, lambda m: m.play_card(player_id, card_id, suit))

    def counter_decision(self, match_id: str, player_id: str, will_counter: bool, card_id: Optional[str] = None):
        return self._mutate(match_id, lambda m: m.decide_counter(player_id, will_counter, card_id))

    def draw_card(self, match_id: str, player_id: str):
        return self._mutate(match_id, lambda m: m.draw_card(player_id))

    def snapshot(self, match_id: str, player_id: str) -> dict:
        match = self.get_match(match_id)
        with self._lock_for(match_id):
            return state_for(match, player_id)

    def handle_disconnect(self, handle: str) -> Optional[str]:
        """Forfeit the live match of the player behind ``handle``. Returns the match id, if any."""
        with self._registry_lock:
            player_id = self._handle_player.pop(handle, None)
            match = self._matches.get(self._player_match.get(player_id)) if player_id else None
        if match is None:
            return None
        try:
            lock, gate = self._guards_for(match.id)
        except MatchNotFound:
            # Cleanup removed the match in between
            return None
        outbox = _Outbox()
        with lock:
            leaver = match.player(player_id)
            # A newer connection already took over this player
            if leaver.transport_handle not in (None, handle):
                self.logger.info(f"[disconnect-stale] match={match.id} player={player_id} handle={handle}")
                return None
            leaver.transport_handle = None
            if not match.abandon(player_id):
                return None
            opponent = match.opponent_of(player_id)
            self.logger.info(f"[player-left] match={match.id} player={player_id}")
            outbox.send(opponent.id, 'opponent_disconnected', {
                'match_id': match.id,
                'player_id': player_id,
            })
            self._settle(match, outbox)
            gate.acquire()
        self._flush(match, outbox, gate)
        return match.id

    def _mutate(self, match_id: str, fn: Callable[[Match], object]):
        match = self.get_match(match_id)
        lock, gate = self._guards_for(match_id)
        outbox = _Outbox()
        with lock:
            result = fn(match)
            self._settle(match, outbox)
            gate.acquire()
        self._flush(match, outbox, gate)
        return result

    # ---- Event handling ----

    def _settle(self, match: Match, outbox: _Outbox) -> None:
        """Translate drained engine events into an outbox and bring timers in line."""
        events = match.events.drain()
        notices = _Outbox()
        match_ended = any(e.event_type == EventType.MATCH_ENDED for e in events)
        ids = tuple(p.id for p in match.players)

        for event in events:
            data = event.data
            if event.event_type == EventType.ROUND_ENDED:
                outbox.rounds.append(RoundOutcome(match.id, data['round_number'], data['winner_id'], ids))
                self.logger.info(f"[round-over] match={match.id} round={data['round_number']} "
                                 f"winner={data['winner_id']} scores={data['scores']}")
                if not match_ended:
                    for pid in ids:
                        notices.send(pid, 'round_over',
                                     round_over_for(match, pid, data['round_number'], data['winner_id']))
            elif event.event_type == EventType.MATCH_ENDED:
                outbox.matches.append(MatchOutcome(
                    match_id=match.id,
                    winner_id=data['winner_id'],
                    reason=data['reason'].value,
                    rounds_won={p.id: match.scores[i] for i, p in enumerate(match.players)},
                    rounds_played=match.rounds_played,
                    room_code=match.room_code,
                ))
                self.logger.info(f"[match-over] match={match.id} winner={data['winner_id']} "
                                 f"reason={data['reason'].value} scores={data['scores']}")
                for pid in ids:
                    notices.send(pid, 'match_over', match_over_for(match, pid))
            elif event.event_type == EventType.ROUND_STARTED:
                for pid in ids:
                    notices.send(pid, 'round_start', {
                        'match_id': match.id,
                        'round_number': data['round_number'],
                    })
            elif event.event_type == EventType.AUTO_PLAYED:
                self.logger.info(f"[auto-play] match={match.id} player={data['player_id']} "
                                 f"action={data['action']} card={data['card_id']}")

        self._sync_timers(match)
        for pid in ids:
            outbox.send(pid, 'game_update', state_for(match, pid))
        outbox.messages.extend(notices.messages)

    # ---- Timers ----

    def _sync_timers(self, match: Match) -> None:
        """Arm the one timer the current state needs and cancel the rest. Caller holds the match lock."""
        mid = match.id
        if match.status == MatchStatus.PLAYING:
            self.timers.cancel(mid, scheduler.COUNTER, scheduler.ROUND_BREAK)
            armed = self.timers.armed(mid, scheduler.TURN)
            if armed is None or armed.marker != match.turn_serial:
                self.timers.arm(mid, scheduler.TURN, match.turn_deadline, self._on_turn_timeout,
                                marker=match.turn_serial)
        elif match.status == MatchStatus.WAITING_FOR_COUNTER:
            self.timers.cancel(mid, scheduler.TURN, scheduler.ROUND_BREAK)
            effect = match.pending_effect
            armed = self.timers.armed(mid, scheduler.COUNTER)
            if armed is None or armed.marker is not effect:
                self.timers.arm(mid, scheduler.COUNTER, effect.counter_deadline, self._on_counter_timeout,
                                marker=effect)
        elif match.status == MatchStatus.ROUND_OVER:
            self.timers.cancel(mid, scheduler.TURN, scheduler.COUNTER)
            armed = self.timers.armed(mid, scheduler.ROUND_BREAK)
            if armed is None or armed.marker != match.current_round:
                self.timers.arm(mid, scheduler.ROUND_BREAK, self._clock() + self.timings.round_break,
                                self._on_round_break, marker=match.current_round)
        elif match.is_terminal:
            self.timers.cancel(mid, scheduler.TURN, scheduler.COUNTER, scheduler.ROUND_BREAK)
            if self.timers.armed(mid, scheduler.CLEANUP) is None:
                self.timers.arm(mid, scheduler.CLEANUP, self._clock() + self.timings.cleanup_grace,
                                self._on_cleanup)

    def _on_turn_timeout(self, match_id: str, token: int) -> None:
        def still_due(match, entry):
            return match.status == MatchStatus.PLAYING and match.turn_serial == entry.marker

        self._fire(match_id, scheduler.TURN, token, still_due, lambda m: m.auto_play())

    def _on_counter_timeout(self, match_id: str, token: int) -> None:
        def still_due(match, entry):
            return match.status == MatchStatus.WAITING_FOR_COUNTER and match.pending_effect is entry.marker

        self._fire(match_id, scheduler.COUNTER, token, still_due, lambda m: m.expire_counter())

    def _on_round_break(self, match_id: str, token: int) -> None:
        def still_due(match, entry):
            return match.status == MatchStatus.ROUND_OVER and match.current_round == entry.marker

        self._fire(match_id, scheduler.ROUND_BREAK, token, still_due, lambda m: m.start_round())

    def _on_cleanup(self, match_id: str, token: int) -> None:
        if self.timers.claim(match_id, scheduler.CLEANUP, token) is None:
            return
        self.logger.info(f"[timer-fire] match={match_id} kind={scheduler.CLEANUP}")
        self.remove_match(match_id)

    def _fire(self, match_id: str, kind: str, token: int, still_due, apply) -> None:
        try:
            match = self.get_match(match_id)
            lock, gate = self._guards_for(match_id)
        except MatchNotFound:
            self.logger.info(f"[timer-abort] match={match_id} kind={kind} reason=match_gone")
            return
        outbox = _Outbox()
        with lock:
            entry = self.timers.claim(match_id, kind, token)
            if entry is None:
                self.logger.info(f"[timer-abort] match={match_id} kind={kind} reason=superseded")
                return
            if not still_due(match, entry):
                self.logger.info(f"[timer-abort] match={match_id} kind={kind} reason=state_changed")
                self._sync_timers(match)
                return
            if self._clock() < entry.deadline:
                # Woke up early; arm again for the remainder
                self.timers.arm(match_id, kind, entry.deadline, getattr(self, _CALLBACKS[kind]),
                                marker=entry.marker)
                return
            self.logger.info(f"[timer-fire] match={match_id} kind={kind}")
            apply(match)
            self._settle(match, outbox)
            gate.acquire()
        self._flush(match, outbox, gate)

    # ---- Delivery ----

    def _flush(self, match: Match, outbox: _Outbox, gate: threading.Lock) -> None:
        """Deliver an outbox, then release the gate the caller took under the match lock."""
        try:
            self._deliver(match, outbox)
        finally:
            gate.release()

    def _deliver(self, match: Match, outbox: _Outbox) -> None:
        for player_id, event, payload in outbox.messages:
            try:
                handle = match.player(player_id).transport_handle
            except PlayerNotFound:
                continue
            if handle is None:
                continue
            try:
                self._publish(handle, event, payload)
            except Exception:
                self.logger.exception(f"[publish-error] match={match.id} event={event} player={player_id}")

        if self._stats is None:
            return
        for outcome in outbox.rounds:
            try:
                self._stats.record_round(outcome)
            except Exception:
                self.logger.exception(f"[stats-error] match={match.id} round={outcome.round_number}")
        for outcome in outbox.matches:
            try:
                self._stats.record_match(outcome)
            except Exception:
                self.logger.exception(f"[stats-error] match={match.id} outcome={outcome.reason}")


_CALLBACKS = {
    scheduler.TURN: '_on_turn_timeout',
    scheduler.COUNTER: '_on_counter_timeout',
    scheduler.ROUND_BREAK: '_on_round_break',
}
