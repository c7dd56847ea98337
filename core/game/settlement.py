"""Round settlement: per-hand outcomes and payouts."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence

from core.cards import Card
from core.hand import Hand, HandStatus, is_blackjack, is_bust, score


class Outcome(Enum):
    """Result of one hand against the dealer."""

    WIN = "win"
    BLACKJACK = "blackjack"
    PUSH = "push"
    LOSE = "lose"
    SURRENDERED = "surrendered"


@dataclass(frozen=True)
class HandSettlement:
    """Chips returned to a player for one hand."""

    hand_id: str
    player_id: str
    outcome: Outcome
    credit: int
    insurance_credit: int = 0

    @property
    def total(self) -> int:
        """Return the main-hand and insurance credit together."""
        return self.credit + self.insurance_credit


@dataclass
class RoundSettlement:
    """All hand settlements of a round, with credits summed per player."""

    hands: list[HandSettlement] = field(default_factory=list)
    credits: dict[str, int] = field(default_factory=dict)

    @property
    def total_credited(self) -> int:
        """Return every chip credited this round."""
        return sum(self.credits.values())


def determine_outcome(hand: Hand, dealer_cards: Sequence[Card]) -> Outcome:
    """
    Compare a hand with the dealer's final cards.

    Rules are checked in order: player bust, dealer bust, blackjacks,
    then totals.
    """
    if hand.status is HandStatus.SURRENDER:
        return Outcome.SURRENDERED

    # Player busts always loses
    if hand.is_busted:
        return Outcome.LOSE

    # Dealer busts, player wins even money
    if is_bust(dealer_cards):
        return Outcome.WIN

    # Blackjack comparisons
    player_bj = hand.is_blackjack
    dealer_bj = is_blackjack(dealer_cards)

    if player_bj and not dealer_bj:
        return Outcome.BLACKJACK
    if dealer_bj and not player_bj:
        return Outcome.LOSE
    if player_bj and dealer_bj:
        return Outcome.PUSH

    # Compare values
    player_value = hand.value
    dealer_value = score(dealer_cards)
    if player_value > dealer_value:
        return Outcome.WIN
    if dealer_value > player_value:
        return Outcome.LOSE
    return Outcome.PUSH


def payout(wager: int, outcome: Outcome, blackjack_payout: float = 1.5) -> int:
    """
    Return the chips credited for a main wager, stake included.

    A win returns twice the wager, a blackjack the wager plus the payout
    ratio (rounded down to whole chips), a push the wager alone.
    """
    if outcome is Outcome.WIN:
        return wager * 2
    if outcome is Outcome.BLACKJACK:
        return wager + int(Decimal(wager) * Decimal(str(blackjack_payout)))
    if outcome is Outcome.PUSH:
        return wager
    return 0


def insurance_payout(insurance_wager: int | None, dealer_cards: Sequence[Card]) -> int:
    """Insurance credits twice its stake if and only if the dealer has blackjack."""
    if not insurance_wager:
        return 0
    if is_blackjack(dealer_cards):
        return insurance_wager * 2
    return 0


def settle_hand(
    hand: Hand,
    dealer_cards: Sequence[Card],
    blackjack_payout: float = 1.5,
) -> HandSettlement:
    """Settle one hand; insurance is settled independently of the main wager."""
    outcome = determine_outcome(hand, dealer_cards)
    return HandSettlement(
        hand_id=hand.id,
        player_id=hand.player_id,
        outcome=outcome,
        credit=payout(hand.wager, outcome, blackjack_payout),
        insurance_credit=insurance_payout(hand.insurance_wager, dealer_cards),
    )


def settle_round(
    hands: Iterable[Hand],
    dealer_cards: Sequence[Card],
    blackjack_payout: float = 1.5,
) -> RoundSettlement:
    """Settle every hand and sum the credits per player."""
    settlement = RoundSettlement()
    for hand in hands:
        result = settle_hand(hand, dealer_cards, blackjack_payout)
        settlement.hands.append(result)
        settlement.credits[result.player_id] = (
            settlement.credits.get(result.player_id, 0) + result.total
        )
    return settlement


# Hand status recorded for each outcome; surrendered hands keep their status
OUTCOME_STATUS: dict[Outcome, HandStatus] = {
    Outcome.WIN: HandStatus.WON,
    Outcome.BLACKJACK: HandStatus.WON,
    Outcome.PUSH: HandStatus.PUSH,
    Outcome.LOSE: HandStatus.LOST,
    Outcome.SURRENDERED: HandStatus.SURRENDER,
}
