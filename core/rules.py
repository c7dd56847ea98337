"""Shared-table rule configuration."""

from dataclasses import dataclass


@dataclass(frozen=True)
class TableRules:
    """
    Blackjack table rules and pacing.

    Everything the core needs to run a round; the service layer builds this
    from application configuration.
    """

    # Betting limits
    min_bet: int = 5
    max_bet: int = 1000

    # New players are credited this balance
    starting_balance: int = 10000

    # Seats are numbered 0 .. seats - 1
    seats: int = 5

    # Blackjack payout (3:2 = 1.5, 6:5 = 1.2)
    blackjack_payout: float = 1.5

    # Dealer draws while below this total, soft or hard
    dealer_stands_on: int = 17

    # Cut card: reshuffle once fewer cards than this remain
    reshuffle_threshold: int = 15

    # Countdowns, in ticks
    betting_seconds: int = 15
    reshuffle_seconds: int = 5

    def __post_init__(self) -> None:
        """Validate rule combinations."""
        if self.min_bet < 1:
            raise ValueError("min_bet must be at least 1")
        if self.max_bet < self.min_bet:
            raise ValueError("max_bet must not be below min_bet")
        if self.seats < 1:
            raise ValueError("seats must be at least 1")
        if self.blackjack_payout < 1.0:
            raise ValueError("blackjack_payout must be at least 1.0")
        if not 0 <= self.reshuffle_threshold <= 52:
            raise ValueError("reshuffle_threshold must be between 0 and 52")
        if self.betting_seconds < 1 or self.reshuffle_seconds < 1:
            raise ValueError("countdowns must be at least one tick")
