"""Table aggregate, players and replication update types."""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from core.cards import Card, Deck
from core.errors import InsufficientBalanceError
from core.game.state import Phase
from core.hand import Hand


def utcnow() -> datetime:
    """Return an aware UTC timestamp."""
    return datetime.now(timezone.utc)


@dataclass
class Player:
    """A player account; persists across rounds and tables."""

    name: str
    balance: int
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=utcnow)
    last_active_at: datetime = field(default_factory=utcnow)

    def withdraw(self, amount: int) -> None:
        """Take chips from the balance; never lets it go negative."""
        if amount < 0:
            raise ValueError("amount must not be negative")
        if amount > self.balance:
            raise InsufficientBalanceError(amount, self.balance)
        self.balance -= amount

    def credit(self, amount: int) -> None:
        """Return chips to the balance."""
        if amount < 0:
            raise ValueError("amount must not be negative")
        self.balance += amount


@dataclass
class Table:
    """
    The single live table aggregate.

    Owns the deck, the dealer hand and every wagered hand of the round.
    ``hands`` is kept in seat order; a split hand sits right after the hand
    it was split from. ``seats`` maps seat index to player id.
    """

    id: str = field(default_factory=lambda: str(uuid4()))
    deck: Deck = field(default_factory=Deck)
    dealer_hand: list[Card] = field(default_factory=list)
    dealer_score: int = 0
    hands: list[Hand] = field(default_factory=list)
    current_turn_index: int = -1
    phase: Phase = Phase.WAITING
    timer: int | None = None
    seats: dict[int, str] = field(default_factory=dict)
    settled: bool = False
    updated_at: datetime = field(default_factory=utcnow)

    def touch(self) -> None:
        """Stamp the aggregate as modified."""
        self.updated_at = utcnow()

    def find_hand(self, hand_id: str) -> Hand | None:
        """Return the hand with this id, if it is on the table."""
        for hand in self.hands:
            if hand.id == hand_id:
                return hand
        return None

    def hands_at(self, seat: int) -> list[Hand]:
        """Return the hands played from a seat."""
        return [hand for hand in self.hands if hand.seat_position == seat]

    @property
    def dealer_up_card(self) -> Card | None:
        """Return the dealer's first (face-up) card."""
        return self.dealer_hand[0] if self.dealer_hand else None

    def seat_of(self, player_id: str) -> int | None:
        """Return the seat a player occupies."""
        for seat, occupant in self.seats.items():
            if occupant == player_id:
                return seat
        return None


class _Unset:
    """Marker for patch fields that carry no change."""

    _instance = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass
class TablePatch:
    """
    A partial table change observed from another writer.

    Only fields not left at ``UNSET`` are applied; ``None`` is a real value
    (e.g. a cleared timer).
    """

    id: str
    deck: Deck = UNSET
    dealer_hand: list[Card] = UNSET
    dealer_score: int = UNSET
    current_turn_index: int = UNSET
    phase: Phase = UNSET
    timer: int | None = UNSET
    seats: dict[int, str] = UNSET
    settled: bool = UNSET
    updated_at: datetime = UNSET

    def changes(self) -> dict[str, Any]:
        """Return the fields this patch sets."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "id" and getattr(self, f.name) is not UNSET
        }


@dataclass(frozen=True)
class HandRemoval:
    """Another writer removed a hand from the live table."""

    hand_id: str
