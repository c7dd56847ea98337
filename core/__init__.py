"""Core shared-table blackjack engine - 100% I/O-agnostic."""

from core.cards import Card, Deck, Rank, Suit, create_deck, needs_reshuffle
from core.errors import (
    EmptyDeckError,
    IllegalActionError,
    InsufficientBalanceError,
    PersistenceFailure,
    TableError,
)
from core.hand import (
    Hand,
    HandStatus,
    can_double,
    can_split,
    can_surrender,
    is_blackjack,
    is_bust,
    score,
)
from core.rules import TableRules

__all__ = [
    "Card",
    "Deck",
    "Rank",
    "Suit",
    "create_deck",
    "needs_reshuffle",
    "EmptyDeckError",
    "IllegalActionError",
    "InsufficientBalanceError",
    "PersistenceFailure",
    "TableError",
    "Hand",
    "HandStatus",
    "can_double",
    "can_split",
    "can_surrender",
    "is_blackjack",
    "is_bust",
    "score",
    "TableRules",
]
