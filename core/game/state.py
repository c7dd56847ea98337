"""Table phase enumeration."""

from enum import Enum


class Phase(Enum):
    """
    Table phase machine states.

    Flow: WAITING → BETTING → PLAYER_TURNS → DEALER_TURN → PAYOUT → BETTING ...
    RESHUFFLING slots in before BETTING when the deck is past the cut card.
    """

    # No round yet (fresh or reset table)
    WAITING = "waiting"

    # Bets accepted while the countdown runs
    BETTING = "betting"

    # Players act on their hands in seat order
    PLAYER_TURNS = "player_turns"

    # Dealer reveals and draws
    DEALER_TURN = "dealer_turn"

    # Hands settled, short pause before the next round
    PAYOUT = "payout"

    # New deck being prepared
    RESHUFFLING = "reshuffling"

    def __str__(self) -> str:
        return self.name.replace("_", " ").title()


# Valid phase transitions
VALID_TRANSITIONS: dict[Phase, list[Phase]] = {
    Phase.WAITING: [Phase.BETTING, Phase.RESHUFFLING],
    Phase.RESHUFFLING: [Phase.BETTING],
    Phase.BETTING: [Phase.PLAYER_TURNS],
    Phase.PLAYER_TURNS: [Phase.DEALER_TURN],
    Phase.DEALER_TURN: [Phase.PAYOUT],
    Phase.PAYOUT: [Phase.BETTING, Phase.RESHUFFLING],
}


def is_valid_transition(from_phase: Phase, to_phase: Phase) -> bool:
    """
    Check if a phase transition is valid.

    Args:
        from_phase: Current phase
        to_phase: Desired phase

    Returns:
        True if the transition is allowed
    """
    return to_phase in VALID_TRANSITIONS.get(from_phase, [])
