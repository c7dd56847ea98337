"""Errors raised by the table core and the persistence boundary."""


class TableError(Exception):
    """Base class for all table errors."""


class EmptyDeckError(TableError):
    """A card was drawn from an empty deck.

    The reshuffle check at round start should make this impossible.
    """


class InsufficientBalanceError(TableError):
    """A wager or withdrawal exceeds the player's balance."""

    def __init__(self, required: int, available: int) -> None:
        super().__init__(f"Insufficient balance: need {required}, have {available}")
        self.required = required
        self.available = available


class IllegalActionError(TableError):
    """The requested action is not legal in the current state."""


class PersistenceFailure(TableError):
    """A write or read through the persistence gateway failed."""
