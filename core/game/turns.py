"""Turn coordination: player actions and the turn pointer."""

from enum import Enum

from core.errors import IllegalActionError, InsufficientBalanceError
from core.game.events import EventEmitter, EventType
from core.game.models import Player, Table
from core.hand import Hand, HandStatus, can_double, can_split, can_surrender


class Action(Enum):
    """Player decisions on a hand."""

    HIT = "hit"
    STAND = "stand"
    DOUBLE = "double"
    SPLIT = "split"
    SURRENDER = "surrender"
    INSURANCE = "insurance"


class TurnCoordinator:
    """
    Applies player actions and moves the turn pointer.

    Every check runs before the first mutation, so a rejected action leaves
    the table untouched. Methods that resolve a hand return True when some
    hand still holds the turn and False once the queue is exhausted.
    """

    def __init__(self, events: EventEmitter) -> None:
        self.events = events

    def start(self, table: Table) -> bool:
        """Give the turn to the first unresolved hand after the deal."""
        table.current_turn_index = -1
        for hand in table.hands:
            hand.is_turn = False
        return self.advance(table)

    def advance(self, table: Table) -> bool:
        """Move the pointer to the next hand that still needs decisions."""
        current = table.current_turn_index
        for hand in table.hands:
            hand.is_turn = False

        for index in range(current + 1, len(table.hands)):
            hand = table.hands[index]
            if hand.status is HandStatus.ACTIVE:
                hand.is_turn = True
                table.current_turn_index = index
                self.events.emit_new(
                    EventType.TURN_CHANGED,
                    hand_id=hand.id,
                    seat=hand.seat_position,
                    index=index,
                )
                return True

        table.current_turn_index = -1
        return False

    def legal_actions(self, table: Table, player: Player, hand: Hand) -> list[Action]:
        """List the actions whose preconditions currently hold for a hand."""
        if not hand.is_turn or hand.status is not HandStatus.ACTIVE:
            return []

        actions = [Action.HIT, Action.STAND]
        if can_double(hand) and player.balance >= hand.wager:
            actions.append(Action.DOUBLE)
        if can_split(hand) and player.balance >= hand.wager:
            actions.append(Action.SPLIT)
        if can_surrender(hand):
            actions.append(Action.SURRENDER)
        if self._insurance_open(table, hand) and player.balance >= hand.wager // 2:
            actions.append(Action.INSURANCE)
        return actions

    def apply(self, table: Table, player: Player, action: Action, hand: Hand) -> bool:
        """
        Apply one action to the hand holding the turn.

        Raises:
            IllegalActionError: Not this hand's turn or the action's
                eligibility rule fails
            InsufficientBalanceError: The action needs more chips than the
                player holds

        Returns:
            False once no hand is left to act
        """
        if not hand.is_turn or hand.status is not HandStatus.ACTIVE:
            raise IllegalActionError(f"Hand {hand.id} is not the active turn")

        handlers = {
            Action.HIT: self._hit,
            Action.STAND: self._stand,
            Action.DOUBLE: self._double,
            Action.SPLIT: self._split,
            Action.SURRENDER: self._surrender,
            Action.INSURANCE: self._insurance,
        }
        return handlers[action](table, player, hand)

    def _hit(self, table: Table, player: Player, hand: Hand) -> bool:
        hand.add_card(table.deck.draw(face_up=True))
        self.events.emit_new(EventType.PLAYER_HIT, hand_id=hand.id, hand_value=hand.value)

        if hand.is_busted:
            hand.status = HandStatus.BUST
            self.events.emit_new(EventType.PLAYER_BUSTS, hand_id=hand.id, hand_value=hand.value)
            return self.advance(table)
        return True

    def _stand(self, table: Table, player: Player, hand: Hand) -> bool:
        hand.status = HandStatus.STAND
        self.events.emit_new(EventType.PLAYER_STAND, hand_id=hand.id, hand_value=hand.value)
        return self.advance(table)

    def _double(self, table: Table, player: Player, hand: Hand) -> bool:
        if not can_double(hand):
            raise IllegalActionError("Can only double on the first two cards")
        if player.balance < hand.wager:
            raise InsufficientBalanceError(hand.wager, player.balance)

        player.withdraw(hand.wager)
        hand.add_card(table.deck.draw(face_up=True))
        hand.wager *= 2
        hand.status = HandStatus.BUST if hand.is_busted else HandStatus.DOUBLE
        self.events.emit_new(
            EventType.PLAYER_DOUBLE,
            hand_id=hand.id,
            hand_value=hand.value,
            new_wager=hand.wager,
        )
        return self.advance(table)

    def _split(self, table: Table, player: Player, hand: Hand) -> bool:
        if not can_split(hand):
            raise IllegalActionError("Can only split two cards of equal value")
        if player.balance < hand.wager:
            raise InsufficientBalanceError(hand.wager, player.balance)

        player.withdraw(hand.wager)
        first, second = hand.cards
        new_hand = Hand(
            player_id=hand.player_id,
            seat_position=hand.seat_position,
            wager=hand.wager,
            cards=[second],
            status=HandStatus.ACTIVE,
            is_split=True,
        )
        hand.cards = [first]
        hand.is_split = True

        # Deal one card to each hand
        hand.add_card(table.deck.draw(face_up=True))
        new_hand.add_card(table.deck.draw(face_up=True))

        table.hands.insert(table.hands.index(hand) + 1, new_hand)
        self.events.emit_new(
            EventType.PLAYER_SPLIT,
            hand_id=hand.id,
            new_hand_id=new_hand.id,
            hand1_value=hand.value,
            hand2_value=new_hand.value,
        )
        # The first hand keeps the turn
        return True

    def _surrender(self, table: Table, player: Player, hand: Hand) -> bool:
        if not can_surrender(hand):
            raise IllegalActionError("Can only surrender on the first two cards")

        refund = hand.wager // 2
        player.credit(refund)
        hand.status = HandStatus.SURRENDER
        self.events.emit_new(EventType.PLAYER_SURRENDER, hand_id=hand.id, refund=refund)
        return self.advance(table)

    def _insurance(self, table: Table, player: Player, hand: Hand) -> bool:
        if not self._insurance_open(table, hand):
            raise IllegalActionError("Insurance is not offered on this hand")
        stake = hand.wager // 2
        if player.balance < stake:
            raise InsufficientBalanceError(stake, player.balance)

        player.withdraw(stake)
        hand.insurance_wager = stake
        self.events.emit_new(EventType.PLAYER_INSURANCE, hand_id=hand.id, amount=stake)
        return True

    @staticmethod
    def _insurance_open(table: Table, hand: Hand) -> bool:
        up_card = table.dealer_up_card
        return (
            up_card is not None
            and up_card.is_ace
            and len(hand.cards) == 2
            and not hand.is_split
            and hand.insurance_wager is None
            and hand.wager // 2 > 0
        )
