"""Match state machine: the only writable copy of a match's game state.

A ``Match`` is not thread-safe. Callers serialize access per match (the
orchestrator holds a per-match lock around every call that mutates it).
Every public mutator validates first and raises a ``GameError`` before
touching any state, so a rejected action is a no-op.
"""
import logging
import random
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from . import cards as deck_ops
from .cards import BLOCK_RANK, DRAW_RANK, SPECIAL_RANKS, WILD_RANK, Card, Suit
from .effects import Block, ForcedDraw, PendingEffect
from .errors import CardNotInHand, EmptyDeck, IllegalMove, MissingCounterCard, NotYourDecision, PlayerNotFound
from .events import EventLog, EventType
from .hand import Player


HAND_SIZE = 5
# Effects of these ranks have no valid target on an empty discard history
NO_OPENING_RANKS = SPECIAL_RANKS


class MatchStatus(str, Enum):
    WAITING = 'waiting'
    PLAYING = 'playing'
    WAITING_FOR_COUNTER = 'waiting_for_counter'
    ROUND_OVER = 'round_over'
    MATCH_OVER = 'match_over'
    ABANDONED = 'abandoned'


TERMINAL_STATUSES = frozenset({MatchStatus.MATCH_OVER, MatchStatus.ABANDONED})


class MatchMode(str, Enum):
    RANDOM = 'random'
    PRIVATE = 'private'


class EndReason(str, Enum):
    MATCH_WON = 'match_won'
    OPPONENT_DISCONNECTED = 'opponent_disconnected'


@dataclass(frozen=True)
class MatchTimings:
    """Durations in seconds plus the number of round wins that takes the match."""

    turn_timeout: float = 30
    block_window: float = 10
    draw_window: float = 15
    round_break: float = 3
    cleanup_grace: float = 5
    target_score: int = 5

    @classmethod
    def from_config(cls, config) -> 'MatchTimings':
        defaults = cls()
        return cls(
            turn_timeout=float(config.get('TURN_TIMEOUT_SEC', defaults.turn_timeout)),
            block_window=float(config.get('BLOCK_COUNTER_SEC', defaults.block_window)),
            draw_window=float(config.get('DRAW_COUNTER_SEC', defaults.draw_window)),
            round_break=float(config.get('ROUND_BREAK_SEC', defaults.round_break)),
            cleanup_grace=float(config.get('MATCH_CLEANUP_SEC', defaults.cleanup_grace)),
            target_score=int(config.get('TARGET_SCORE', defaults.target_score)),
        )


@dataclass(frozen=True)
class AutoAction:
    action: str  # 'play', 'draw' or 'pass'
    card: Optional[Card] = None
    suit: Optional[Suit] = None


def _coerce_suit(suit) -> Suit:
    if isinstance(suit, Suit):
        return suit
    try:
        return Suit(suit)
    except ValueError:
        raise IllegalMove(f"Unknown suit: {suit!r}") from None


class Match:
    def __init__(self, players: Tuple[Player, Player], timings: Optional[MatchTimings] = None,
                 mode: MatchMode = MatchMode.RANDOM, room_code: Optional[str] = None,
                 clock: Callable[[], float] = time.time, rng: Optional[random.Random] = None,
                 match_id: Optional[str] = None, logger: Optional[logging.Logger] = None):
        if len(players) != 2:
            raise ValueError('A match needs exactly two players')
        self.id = match_id or uuid.uuid4().hex
        self.players: Tuple[Player, Player] = tuple(players)
        self.timings = timings or MatchTimings()
        self.mode = MatchMode(mode)
        self.room_code = room_code
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._rng = rng or random.Random()

        self.deck: List[Card] = []
        self.discard_pile: List[Card] = []
        self.current_player_index = 0
        self.active_suit: Optional[Suit] = None
        self.status = MatchStatus.WAITING
        self.pending_effect: Optional[PendingEffect] = None
        self.turn_deadline: Optional[float] = None
        # Bumped on every new turn so timers can tell turns apart
        self.turn_serial = 0

        self.scores = [0, 0]
        self.current_round = 1
        self.round_starter_index = 0
        self.round_winner_id: Optional[str] = None
        self.match_winner_id: Optional[str] = None
        self.end_reason: Optional[EndReason] = None
        self.events = EventLog()

    # ---- Queries ----

    @property
    def current_player(self) -> Player:
        return self.players[self.current_player_index]

    @property
    def top_card(self) -> Optional[Card]:
        return self.discard_pile[-1] if self.discard_pile else None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def rounds_played(self) -> int:
        return sum(self.scores)

    def player(self, player_id: str) -> Player:
        for p in self.players:
            if p.id == player_id:
                return p
        raise PlayerNotFound()

    def index_of(self, player_id: str) -> int:
        return self.players.index(self.player(player_id))

    def opponent_of(self, player_id: str) -> Player:
        return self.players[1 - self.index_of(player_id)]

    def card_total(self) -> int:
        return len(self.deck) + len(self.discard_pile) + sum(len(p.hand) for p in self.players)

    def can_play(self, player_id: str, card: Card) -> bool:
        if self.status == MatchStatus.WAITING_FOR_COUNTER:
            effect = self.pending_effect
            return effect is not None and effect.target_id == player_id and card.rank == effect.counter_rank
        if self.status != MatchStatus.PLAYING or self.current_player.id != player_id:
            return False
        top = self.top_card
        return card.suit == self.active_suit or (top is not None and card.rank == top.rank)

    def legal_cards(self, player_id: str) -> List[Card]:
        return [c for c in self.player(player_id).hand if self.can_play(player_id, c)]

    def has_any_legal_move(self, player_id: str) -> bool:
        return bool(self.legal_cards(player_id))

    # ---- Round lifecycle ----

    def start_round(self) -> None:
        """Deal a fresh round and hand the first turn to this round's starter."""
        if self.status not in (MatchStatus.WAITING, MatchStatus.ROUND_OVER):
            raise IllegalMove('A round cannot be started now')

        for p in self.players:
            p.clear_hand()
        self.deck = deck_ops.shuffle(deck_ops.build_deck(), self._rng)
        self.discard_pile = []
        for _ in range(HAND_SIZE):
            for p in self.players:
                p.add_card(deck_ops.draw_top(self.deck))

        seed = deck_ops.draw_top(self.deck)
        while seed.rank in NO_OPENING_RANKS:
            self.deck.insert(0, seed)
            self.deck = deck_ops.shuffle(self.deck, self._rng)
            seed = deck_ops.draw_top(self.deck)
        self.discard_pile.append(seed)
        self.active_suit = seed.suit

        self.current_player_index = self.round_starter_index
        self.round_starter_index = 1 - self.round_starter_index
        self.pending_effect = None
        self.round_winner_id = None
        self.status = MatchStatus.PLAYING
        self._start_turn()
        self.events.record(EventType.ROUND_STARTED, round_number=self.current_round,
                           starter_id=self.current_player.id)

    def _end_round(self, winner: Player) -> None:
        idx = self.index_of(winner.id)
        self.scores[idx] += 1
        self.round_winner_id = winner.id
        self.turn_deadline = None
        self.pending_effect = None
        self.events.record(EventType.ROUND_ENDED, round_number=self.current_round,
                           winner_id=winner.id, scores=list(self.scores))
        if self.scores[idx] >= self.timings.target_score:
            self.status = MatchStatus.MATCH_OVER
            self.match_winner_id = winner.id
            self.end_reason = EndReason.MATCH_WON
            self.events.record(EventType.MATCH_ENDED, winner_id=winner.id,
                               reason=self.end_reason, scores=list(self.scores))
        else:
            self.status = MatchStatus.ROUND_OVER
            self.current_round += 1

    def abandon(self, player_id: str) -> bool:
        """Award the match to the opponent of a player who left. Returns False if already over."""
        leaver = self.player(player_id)
        if self.is_terminal:
            return False
        opponent = self.opponent_of(leaver.id)
        self.status = MatchStatus.ABANDONED
        self.match_winner_id = opponent.id
        self.end_reason = EndReason.OPPONENT_DISCONNECTED
        self.turn_deadline = None
        self.pending_effect = None
        self.events.record(EventType.MATCH_ENDED, winner_id=opponent.id, reason=self.end_reason,
                           scores=list(self.scores), leaver_id=leaver.id)
        return True

    # ---- Player actions ----

    def play_card(self, player_id: str, card_id: str, suit=None) -> Card:
        player = self.player(player_id)
        card = player.find_card(card_id)
        if card is None:
            raise CardNotInHand()
        if not self.can_play(player.id, card):
            raise IllegalMove(self._rejection_reason(player.id))
        if card.rank == WILD_RANK:
            if suit is None:
                raise IllegalMove('Choose a suit for the wild card')
            suit = _coerce_suit(suit)

        player.remove_card(card.id)
        self.discard_pile.append(card)

        if card.rank == BLOCK_RANK:
            self._play_block(player)
        elif card.rank == DRAW_RANK:
            self._play_forced_draw(player)
        elif card.rank == WILD_RANK:
            self.active_suit = suit
            self.pending_effect = None
            self._next_turn()
        else:
            self.active_suit = card.suit
            self.pending_effect = None
            self._next_turn()

        if player.has_emptied_hand:
            self._end_round(player)
        return card

    def decide_counter(self, player_id: str, will_counter: bool, card_id: Optional[str] = None) -> Optional[Card]:
        """Answer a pending Block or ForcedDraw: counter with a card or let it resolve."""
        if self.status != MatchStatus.WAITING_FOR_COUNTER or self.pending_effect is None:
            raise IllegalMove('No effect is waiting for a counter')
        player = self.player(player_id)
        if self.pending_effect.target_id != player.id:
            raise NotYourDecision()
        if will_counter:
            if not card_id:
                raise MissingCounterCard()
            return self.play_card(player.id, card_id)
        self.resolve_pending()
        return None

    def draw_card(self, player_id: str) -> List[Card]:
        """Draw for the turn, or take the cards of a pending ForcedDraw aimed at this player."""
        player = self.player(player_id)
        effect = self.pending_effect
        if (self.status == MatchStatus.WAITING_FOR_COUNTER and isinstance(effect, ForcedDraw)
                and effect.target_id == player.id):
            before = len(player.hand)
            self.resolve_pending()
            return player.hand[before:]
        if self.status != MatchStatus.PLAYING:
            raise IllegalMove(self._rejection_reason(player.id))
        if self.current_player.id != player.id:
            raise IllegalMove('Not your turn')
        if deck_ops.cards_available(self.deck, self.discard_pile) == 0:
            raise EmptyDeck()

        card = deck_ops.draw_card(self.deck, self.discard_pile, self._rng)
        player.add_card(card)
        self._next_turn()
        return [card]

    # ---- Effects ----

    def _play_block(self, player: Player) -> None:
        opponent = self.opponent_of(player.id)
        if opponent.has_rank(BLOCK_RANK):
            self._arm(Block(player.id, opponent.id, self._now() + self.timings.block_window))
        else:
            self._resolve_block(player.id)

    def _play_forced_draw(self, player: Player) -> None:
        previous = self.pending_effect
        count = previous.draw_count + 2 if isinstance(previous, ForcedDraw) else 2
        opponent = self.opponent_of(player.id)
        if opponent.has_rank(DRAW_RANK):
            self._arm(ForcedDraw(player.id, opponent.id, count, self._now() + self.timings.draw_window))
        else:
            self._resolve_forced_draw(player.id, opponent.id, count)

    def _arm(self, effect: PendingEffect) -> None:
        self.pending_effect = effect
        self.status = MatchStatus.WAITING_FOR_COUNTER
        self.turn_deadline = None
        self.events.record(EventType.EFFECT_ARMED, kind=effect.kind, source_id=effect.source_id,
                           target_id=effect.target_id, deadline=effect.counter_deadline)

    def resolve_pending(self) -> None:
        """Apply the pending effect as if its target declined to counter."""
        effect = self.pending_effect
        if isinstance(effect, Block):
            self._resolve_block(effect.source_id)
        elif isinstance(effect, ForcedDraw):
            self._resolve_forced_draw(effect.source_id, effect.target_id, effect.draw_count)
        else:
            raise IllegalMove('No effect is pending')

    def expire_counter(self, now: Optional[float] = None) -> bool:
        """Resolve the pending effect if its counter window has closed."""
        effect = self.pending_effect
        if self.status != MatchStatus.WAITING_FOR_COUNTER or effect is None:
            return False
        if (self._now() if now is None else now) < effect.counter_deadline:
            return False
        self.resolve_pending()
        return True

    def _resolve_block(self, source_id: str) -> None:
        self.active_suit = self.top_card.suit
        self.pending_effect = None
        self.status = MatchStatus.PLAYING
        self._give_turn_to(source_id)
        self.events.record(EventType.EFFECT_RESOLVED, kind=Block.kind, source_id=source_id)

    def _resolve_forced_draw(self, source_id: str, target_id: str, count: int) -> None:
        target = self.player(target_id)
        drawn = 0
        while drawn < count and deck_ops.cards_available(self.deck, self.discard_pile):
            target.add_card(deck_ops.draw_card(self.deck, self.discard_pile, self._rng))
            drawn += 1
        if drawn < count:
            self.logger.warning(f"[forced-draw-short] match={self.id} wanted={count} drew={drawn}")
        self.active_suit = self.top_card.suit
        self.pending_effect = None
        self.status = MatchStatus.PLAYING
        self._give_turn_to(source_id)
        self.events.record(EventType.EFFECT_RESOLVED, kind=ForcedDraw.kind, source_id=source_id,
                           target_id=target_id, drawn=drawn)

    # ---- Timeouts ----

    def choose_auto_action(self) -> AutoAction:
        """Pick what the current player does when their turn clock runs out."""
        if self.status != MatchStatus.PLAYING:
            raise IllegalMove('No turn in progress')
        player = self.current_player
        legal = self.legal_cards(player.id)
        card = next((c for c in legal if not c.is_special), None) or next(iter(legal), None)
        if card is not None:
            suit = self._preferred_suit(player, card) if card.rank == WILD_RANK else None
            return AutoAction('play', card, suit)
        if deck_ops.cards_available(self.deck, self.discard_pile):
            return AutoAction('draw')
        return AutoAction('pass')

    def auto_play(self) -> AutoAction:
        player = self.current_player
        action = self.choose_auto_action()
        if action.action == 'play':
            self.play_card(player.id, action.card.id, action.suit)
        elif action.action == 'draw':
            self.draw_card(player.id)
        else:
            self.logger.warning(f"[auto-pass] match={self.id} player={player.id} nothing to draw")
            self._next_turn()
        self.events.record(EventType.AUTO_PLAYED, player_id=player.id, action=action.action,
                           card_id=action.card.id if action.card else None)
        return action

    def _preferred_suit(self, player: Player, wild: Card) -> Suit:
        counts = Counter(c.suit for c in player.hand if c.id != wild.id)
        if not counts:
            return self.active_suit
        return max(Suit, key=lambda s: counts[s])

    # ---- Turn helpers ----

    def _now(self) -> float:
        return self._clock()

    def _start_turn(self) -> None:
        self.turn_serial += 1
        self.turn_deadline = self._now() + self.timings.turn_timeout

    def _next_turn(self) -> None:
        self.current_player_index = 1 - self.current_player_index
        self._start_turn()

    def _give_turn_to(self, player_id: str) -> None:
        self.current_player_index = self.index_of(player_id)
        self._start_turn()

    def _rejection_reason(self, player_id: str) -> str:
        if self.status == MatchStatus.WAITING_FOR_COUNTER:
            if self.pending_effect.target_id != player_id:
                return 'Waiting for your opponent to decide'
            return 'Only a counter card can be played now'
        if self.status != MatchStatus.PLAYING:
            return 'No round in progress'
        if self.current_player.id != player_id:
            return 'Not your turn'
        return 'Card must match the active suit or the top card rank'

    def __repr__(self):
        return f"Match({self.id!r}, status={self.status.value}, round={self.current_round}, scores={self.scores})"
