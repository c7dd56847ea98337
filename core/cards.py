"""Card and Deck classes - immutable card representations."""

from dataclasses import dataclass, replace
from enum import Enum
from random import Random
from typing import Iterable, Iterator

from core.errors import EmptyDeckError


class Suit(Enum):
    """Card suits."""

    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"

    def __str__(self) -> str:
        symbols = {
            Suit.CLUBS: "♣",
            Suit.DIAMONDS: "♦",
            Suit.HEARTS: "♥",
            Suit.SPADES: "♠",
        }
        return symbols[self]


class Rank(Enum):
    """Card ranks, valued by their table label."""

    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"

    def __str__(self) -> str:
        return self.value

    @property
    def blackjack_value(self) -> int:
        """Return the blackjack point value (Ace = 11, face cards = 10)."""
        if self == Rank.ACE:
            return 11
        if self in (Rank.JACK, Rank.QUEEN, Rank.KING):
            return 10
        return int(self.value)

    @property
    def is_ace(self) -> bool:
        """Check if this rank is an Ace."""
        return self == Rank.ACE

    @property
    def is_ten_value(self) -> bool:
        """Check if this rank has a value of 10."""
        return self.blackjack_value == 10


@dataclass(frozen=True, slots=True)
class Card:
    """Immutable playing card.

    ``face_up`` is part of the value: flipping a card yields a new Card.
    """

    rank: Rank
    suit: Suit
    face_up: bool = True

    def __str__(self) -> str:
        if not self.face_up:
            return "??"
        return f"{self.rank}{self.suit}"

    def __repr__(self) -> str:
        orientation = "" if self.face_up else ", face_down"
        return f"Card({self.rank.name}, {self.suit.name}{orientation})"

    @property
    def value(self) -> int:
        """Return the blackjack point value."""
        return self.rank.blackjack_value

    @property
    def is_ace(self) -> bool:
        """Check if this card is an Ace."""
        return self.rank.is_ace

    @property
    def is_ten_value(self) -> bool:
        """Check if this card has a value of 10."""
        return self.rank.is_ten_value

    def turned(self, face_up: bool) -> "Card":
        """Return this card with the requested orientation."""
        if self.face_up == face_up:
            return self
        return replace(self, face_up=face_up)

    @classmethod
    def from_string(cls, s: str) -> "Card":
        """Create a face-up card from a string like '10♣', 'AS', 'Kh'."""
        s = s.strip().upper()
        if len(s) < 2:
            raise ValueError(f"Invalid card string: {s}")

        rank_str = s[:-1]
        suit_str = s[-1]
        if rank_str == "T":
            rank_str = "10"

        suit_map = {
            "C": Suit.CLUBS,
            "♣": Suit.CLUBS,
            "D": Suit.DIAMONDS,
            "♦": Suit.DIAMONDS,
            "H": Suit.HEARTS,
            "♥": Suit.HEARTS,
            "S": Suit.SPADES,
            "♠": Suit.SPADES,
        }

        try:
            rank = Rank(rank_str)
        except ValueError:
            raise ValueError(f"Invalid rank: {rank_str}") from None
        if suit_str not in suit_map:
            raise ValueError(f"Invalid suit: {suit_str}")

        return cls(rank, suit_map[suit_str])


def standard_cards() -> list[Card]:
    """Return the 52 distinct cards of a standard deck, unshuffled."""
    return [Card(rank, suit) for suit in Suit for rank in Rank]


class Deck:
    """A single 52-card deck consumed from the end of its card list.

    A deck is never refilled; a reshuffle replaces it with a new instance.
    """

    def __init__(self, cards: Iterable[Card] | None = None) -> None:
        self._cards: list[Card] = list(cards) if cards is not None else []

    @classmethod
    def create(cls, rng: Random | None = None) -> "Deck":
        """Return a uniformly shuffled 52-card deck."""
        cards = standard_cards()
        # random.shuffle is a Fisher-Yates permutation
        (rng or Random()).shuffle(cards)
        return cls(cards)

    @classmethod
    def stacked(cls, draw_order: Iterable[Card]) -> "Deck":
        """Build a deck whose draws come out in ``draw_order``."""
        return cls(reversed(list(draw_order)))

    def draw(self, face_up: bool = True) -> Card:
        """Remove one card from the draw end, oriented as requested."""
        if not self._cards:
            raise EmptyDeckError("Cannot draw from empty deck")
        return self._cards.pop().turned(face_up)

    def needs_reshuffle(self, threshold: int) -> bool:
        """Check if fewer than ``threshold`` cards remain."""
        return len(self._cards) < threshold

    @property
    def cards(self) -> list[Card]:
        """Return a copy of the remaining cards (draw end last)."""
        return list(self._cards)

    @property
    def cards_remaining(self) -> int:
        """Return the number of cards remaining."""
        return len(self._cards)

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self) -> Iterator[Card]:
        return iter(self._cards)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Deck):
            return NotImplemented
        return self._cards == other._cards

    def __repr__(self) -> str:
        return f"Deck({len(self._cards)} cards)"


def create_deck(rng: Random | None = None) -> Deck:
    """Return a freshly shuffled 52-card deck."""
    return Deck.create(rng)


def needs_reshuffle(deck: Deck, threshold: int = 15) -> bool:
    """Check the cut card: true once fewer than ``threshold`` cards remain."""
    return deck.needs_reshuffle(threshold)
