"""Hand evaluation for blackjack."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, Sequence
from uuid import uuid4

from core.cards import Card


def score(cards: Iterable[Card]) -> int:
    """
    Calculate the best total of the face-up cards.

    Face-down cards never count. Aces start at 11 and drop to 1 one at a
    time while the total is over 21. Returns the highest value that doesn't
    bust, or the lowest bust value.
    """
    total = 0
    aces = 0

    for card in cards:
        if not card.face_up:
            continue
        if card.is_ace:
            aces += 1
        total += card.value

    # Reduce aces from 11 to 1 as needed
    while total > 21 and aces > 0:
        total -= 10
        aces -= 1

    return total


def is_soft(cards: Iterable[Card]) -> bool:
    """Check if an ace is still counted as 11 in the score."""
    visible = [card for card in cards if card.face_up]
    hard_total = sum(1 if card.is_ace else card.value for card in visible)
    return any(card.is_ace for card in visible) and hard_total + 10 <= 21


def is_blackjack(cards: Sequence[Card]) -> bool:
    """Check for a two-card 21."""
    return len(cards) == 2 and score(cards) == 21


def is_bust(cards: Iterable[Card]) -> bool:
    """Check if the score is over 21."""
    return score(cards) > 21


class HandStatus(Enum):
    """Lifecycle status of a wagered hand."""

    BETTING = "betting"
    ACTIVE = "active"
    STAND = "stand"
    BUST = "bust"
    BLACKJACK = "blackjack"
    SURRENDER = "surrender"
    DOUBLE = "double"
    WON = "won"
    LOST = "lost"
    PUSH = "push"

    @property
    def is_terminal(self) -> bool:
        """Check if the hand no longer takes player decisions."""
        return self not in (HandStatus.BETTING, HandStatus.ACTIVE)

    @property
    def is_settled(self) -> bool:
        """Check if the hand carries a settlement outcome."""
        return self in (HandStatus.WON, HandStatus.LOST, HandStatus.PUSH)


@dataclass
class Hand:
    """A single wagered hand at a seat."""

    player_id: str
    seat_position: int
    wager: int
    cards: list[Card] = field(default_factory=list)
    status: HandStatus = HandStatus.BETTING
    is_turn: bool = False
    insurance_wager: int | None = None
    is_split: bool = False
    id: str = field(default_factory=lambda: str(uuid4()))

    def add_card(self, card: Card) -> None:
        """Add a card to the hand."""
        self.cards.append(card)

    @property
    def value(self) -> int:
        """Return the hand's score."""
        return score(self.cards)

    @property
    def is_soft(self) -> bool:
        """Check if the hand is soft."""
        return is_soft(self.cards)

    @property
    def is_blackjack(self) -> bool:
        """Check if the hand is a natural (split hands never are)."""
        return is_blackjack(self.cards) and not self.is_split

    @property
    def is_busted(self) -> bool:
        """Check if the hand has busted (value > 21)."""
        return is_bust(self.cards)

    @property
    def num_cards(self) -> int:
        """Return the number of cards in the hand."""
        return len(self.cards)

    def __len__(self) -> int:
        return len(self.cards)

    def __iter__(self) -> Iterator[Card]:
        return iter(self.cards)

    def __str__(self) -> str:
        cards_str = " ".join(str(card) for card in self.cards)
        return f"seat {self.seat_position}: {cards_str} ({self.value}, {self.status.value})"


def can_split(hand: Hand) -> bool:
    """Check for exactly two cards of equal rank, or two ten-valued cards."""
    if len(hand.cards) != 2:
        return False
    first, second = hand.cards
    if first.is_ten_value and second.is_ten_value:
        return True
    return first.rank == second.rank


def can_double(hand: Hand) -> bool:
    """Check if the hand is still on its first two cards."""
    return len(hand.cards) == 2


def can_surrender(hand: Hand) -> bool:
    """Check if the hand is still on its first two cards."""
    return len(hand.cards) == 2
