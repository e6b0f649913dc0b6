import random
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .errors import EmptyDeck


class Suit(str, Enum):
    COINS = 'coins'
    SWORDS = 'swords'
    CUPS = 'cups'
    CLUBS = 'clubs'


RANKS = (1, 2, 3, 4, 5, 6, 7, 10, 11, 12)
DECK_SIZE = len(Suit) * len(RANKS)

BLOCK_RANK = 1
DRAW_RANK = 2
WILD_RANK = 7
SPECIAL_RANKS = frozenset({BLOCK_RANK, DRAW_RANK, WILD_RANK})


def _new_card_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Card:
    suit: Suit
    rank: int
    id: str = field(default_factory=_new_card_id)

    @property
    def is_special(self) -> bool:
        return self.rank in SPECIAL_RANKS

    def to_dict(self):
        return {'id': self.id, 'suit': self.suit.value, 'rank': self.rank}

    def __str__(self) -> str:
        return f"{self.rank} of {self.suit.value}"


def build_deck() -> List[Card]:
    """Return the 40-card deck in fixed order: suit by suit, ranks ascending."""
    return [Card(suit, rank) for suit in Suit for rank in RANKS]


def shuffle(cards: List[Card], rng: Optional[random.Random] = None) -> List[Card]:
    """Return a uniformly shuffled copy of ``cards``; the input is left untouched."""
    shuffled = list(cards)
    (rng or random).shuffle(shuffled)
    return shuffled


def draw_top(deck: List[Card]) -> Card:
    if not deck:
        raise EmptyDeck()
    return deck.pop()


def recycle(deck: List[Card], discard_pile: List[Card], rng: Optional[random.Random] = None) -> bool:
    """Turn the discard pile (minus its top card) into a fresh deck.

    Only acts when the deck is empty and the discard pile holds more than one
    card. Both lists are mutated in place. Returns whether a recycle happened.
    """
    if deck or len(discard_pile) <= 1:
        return False
    top = discard_pile.pop()
    deck[:] = shuffle(discard_pile, rng)
    discard_pile[:] = [top]
    return True


def cards_available(deck: List[Card], discard_pile: List[Card]) -> int:
    """Number of cards that can still be drawn, counting one full recycle."""
    return len(deck) + max(0, len(discard_pile) - 1)


def draw_card(deck: List[Card], discard_pile: List[Card], rng: Optional[random.Random] = None) -> Card:
    recycle(deck, discard_pile, rng)
    return draw_top(deck)
