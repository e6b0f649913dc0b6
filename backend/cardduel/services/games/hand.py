from typing import List, Optional

from .cards import Card


DEFAULT_DISPLAY_NAME = 'Player'
DEFAULT_AVATAR = '🎴'


class Player:
    """A seat in a match: stable identity, current socket and held cards."""

    def __init__(self, player_id: str, transport_handle: Optional[str] = None,
                 display_name: str = DEFAULT_DISPLAY_NAME, avatar: str = DEFAULT_AVATAR):
        self.id = player_id
        self.transport_handle = transport_handle
        self.display_name = display_name or DEFAULT_DISPLAY_NAME
        self.avatar = avatar or DEFAULT_AVATAR
        self.hand: List[Card] = []

    def add_card(self, card: Card) -> None:
        self.hand.append(card)

    def find_card(self, card_id: str) -> Optional[Card]:
        return next((c for c in self.hand if c.id == card_id), None)

    def remove_card(self, card_id: str) -> Optional[Card]:
        card = self.find_card(card_id)
        if card is not None:
            self.hand.remove(card)
        return card

    def has_card(self, card_id: str) -> bool:
        return self.find_card(card_id) is not None

    def has_rank(self, rank: int) -> bool:
        return any(c.rank == rank for c in self.hand)

    def cards_with_rank(self, rank: int) -> List[Card]:
        return [c for c in self.hand if c.rank == rank]

    def clear_hand(self) -> None:
        self.hand = []

    @property
    def has_emptied_hand(self) -> bool:
        return not self.hand

    def to_info(self):
        return {'id': self.id, 'username': self.display_name, 'avatar': self.avatar}

    def __repr__(self):
        return f"Player({self.id!r}, cards={len(self.hand)})"
