"""Shared-table blackjack engine with phase state machine."""

import copy
from random import Random
from typing import Callable

from transitions import Machine

from core.cards import Deck, standard_cards
from core.errors import IllegalActionError, InsufficientBalanceError, TableError
from core.game.dealer import play_dealer
from core.game.events import EventEmitter, EventType, GameEvent
from core.game.models import HandRemoval, Player, Table, TablePatch, utcnow
from core.game.settlement import OUTCOME_STATUS, RoundSettlement, settle_round
from core.game.state import Phase, is_valid_transition
from core.game.turns import Action, TurnCoordinator
from core.hand import Hand, HandStatus, score
from core.rules import TableRules

ExternalUpdate = TablePatch | Hand | Player | HandRemoval

# Hand statuses whose main wager is still undecided
_OPEN_STATUSES = (
    HandStatus.BETTING,
    HandStatus.ACTIVE,
    HandStatus.STAND,
    HandStatus.BLACKJACK,
    HandStatus.DOUBLE,
)


class TableEngine:
    """
    Shared blackjack table driven by a phase state machine.

    This is the core table logic, completely I/O-free. The engine owns one
    Table aggregate plus the players seen at it; callers serialize access
    and persist the results. Every operation validates before mutating, so
    a raised TableError leaves the table as it was.
    """

    # State machine states
    STATES = [phase.value for phase in Phase]

    # State machine transitions
    TRANSITIONS = [
        {"trigger": "open_betting", "source": ["waiting", "payout", "reshuffling"], "dest": "betting"},
        {"trigger": "begin_reshuffle", "source": ["waiting", "payout"], "dest": "reshuffling"},
        {"trigger": "begin_player_turns", "source": "betting", "dest": "player_turns"},
        {"trigger": "begin_dealer_turn", "source": "player_turns", "dest": "dealer_turn"},
        {"trigger": "begin_payout", "source": "dealer_turn", "dest": "payout"},
    ]

    _TRIGGERS = {
        Phase.BETTING: "open_betting",
        Phase.RESHUFFLING: "begin_reshuffle",
        Phase.PLAYER_TURNS: "begin_player_turns",
        Phase.DEALER_TURN: "begin_dealer_turn",
        Phase.PAYOUT: "begin_payout",
    }

    def __init__(
        self,
        rules: TableRules | None = None,
        table: Table | None = None,
        players: dict[str, Player] | None = None,
        rng: Random | None = None,
    ) -> None:
        """
        Initialize a table engine.

        Args:
            rules: Table rules (uses defaults if not provided)
            table: Existing table to resume (a fresh waiting table if omitted)
            players: Known players keyed by id
            rng: Random number generator for reproducible shuffles
        """
        self.rules = rules or TableRules()
        self.rng = rng or Random()
        self.table = table or Table()
        self.players: dict[str, Player] = dict(players or {})
        self.events = EventEmitter()
        self.turns = TurnCoordinator(self.events)

        # Initialize state machine
        self.machine = Machine(
            model=self,
            states=self.STATES,
            transitions=self.TRANSITIONS,
            initial=self.table.phase.value,
            auto_transitions=False,
            model_attribute="_machine_state",
            after_state_change="_sync_phase",
        )

    @property
    def state(self) -> Phase:
        """Get current table phase as enum."""
        return Phase(self._machine_state)  # type: ignore[attr-defined]

    def subscribe(
        self,
        handler: Callable[[GameEvent], None],
        event_type: EventType | None = None,
    ) -> None:
        """Subscribe to table events."""
        self.events.subscribe(handler, event_type)

    def _sync_phase(self) -> None:
        self.table.phase = self.state
        self.table.touch()
        self.events.emit_new(EventType.PHASE_CHANGED, table_id=self.table.id, phase=self.state.value)

    def _transition(self, dest: Phase) -> None:
        if not is_valid_transition(self.state, dest):
            raise IllegalActionError(f"Cannot move from {self.state.value} to {dest.value}")
        getattr(self, self._TRIGGERS[dest])()

    def _require(self, *phases: Phase) -> None:
        if self.state not in phases:
            raise IllegalActionError(f"Not allowed during {self.state.value}")

    # Snapshots

    def snapshot(self) -> tuple[Table, dict[str, Player]]:
        """Return a deep copy of the aggregate for rollback."""
        return copy.deepcopy((self.table, self.players))

    def restore(self, snapshot: tuple[Table, dict[str, Player]]) -> None:
        """Put back a state captured by ``snapshot``."""
        self.table, self.players = snapshot
        self.machine.set_state(self.table.phase.value)

    # Seats and bets

    def join_seat(self, player: Player, seat: int) -> None:
        """Seat a player; a player holds at most one seat."""
        if not 0 <= seat < self.rules.seats:
            raise IllegalActionError(f"Seat must be between 0 and {self.rules.seats - 1}")
        occupant = self.table.seats.get(seat)
        if occupant is not None and occupant != player.id:
            raise IllegalActionError(f"Seat {seat} is taken")
        current = self.table.seat_of(player.id)
        if current is not None and current != seat:
            raise IllegalActionError(f"{player.name} already sits at seat {current}")

        player.last_active_at = utcnow()
        self.players[player.id] = player
        self.table.seats[seat] = player.id
        self.table.touch()
        self.events.emit_new(EventType.PLAYER_SEATED, player_id=player.id, name=player.name, seat=seat)

    def leave_seat(self, seat: int) -> Player:
        """
        Free a seat.

        Bets not yet dealt are refunded and removed; hands already in play
        stay and settle normally.
        """
        player_id = self.table.seats.get(seat)
        if player_id is None:
            raise IllegalActionError(f"Seat {seat} is empty")
        player = self.players[player_id]

        if self.state is Phase.BETTING:
            for hand in self.table.hands_at(seat):
                if hand.status is HandStatus.BETTING:
                    player.credit(hand.wager)
                    self.table.hands.remove(hand)
                    self.events.emit_new(EventType.BET_REFUNDED, hand_id=hand.id, amount=hand.wager)

        del self.table.seats[seat]
        self.table.touch()
        self.events.emit_new(EventType.PLAYER_LEFT, player_id=player_id, seat=seat)
        return player

    def place_bet(self, seat: int, amount: int) -> Hand:
        """
        Withdraw a wager and open a hand at a seat.

        Args:
            seat: Seat index holding the player
            amount: Wager, between the table minimum and maximum

        Returns:
            The new hand in ``betting`` status
        """
        self._require(Phase.BETTING)
        player_id = self.table.seats.get(seat)
        if player_id is None:
            raise IllegalActionError(f"Nobody is seated at seat {seat}")
        if self.table.hands_at(seat):
            raise IllegalActionError(f"Seat {seat} already has a bet this round")
        if amount < self.rules.min_bet or amount > self.rules.max_bet:
            raise IllegalActionError(
                f"Bet must be between {self.rules.min_bet} and {self.rules.max_bet}"
            )
        player = self.players[player_id]
        if amount > player.balance:
            raise InsufficientBalanceError(amount, player.balance)

        player.withdraw(amount)
        player.last_active_at = utcnow()
        hand = Hand(player_id=player.id, seat_position=seat, wager=amount)
        self._insert_in_seat_order(hand)
        self.table.touch()
        self.events.emit_new(EventType.BET_PLACED, hand_id=hand.id, seat=seat, amount=amount)
        return hand

    def _insert_in_seat_order(self, hand: Hand) -> None:
        position = len(self.table.hands)
        for index, other in enumerate(self.table.hands):
            if other.seat_position > hand.seat_position:
                position = index
                break
        self.table.hands.insert(position, hand)

    # Round flow

    def start_round(self) -> Phase:
        """
        Clear the previous round and open betting.

        A fresh table gets its first deck immediately; a deck past the cut
        card sends the table through the reshuffling countdown instead.

        Returns:
            The phase entered (betting or reshuffling)
        """
        self._require(Phase.WAITING, Phase.PAYOUT)
        if self.state is Phase.PAYOUT and not self.table.settled:
            raise IllegalActionError("Round has not been settled")

        table = self.table
        table.hands = []
        table.dealer_hand = []
        table.dealer_score = 0
        table.current_turn_index = -1
        table.settled = False

        if not table.deck:
            table.deck = Deck.create(self.rng)
            self.events.emit_new(EventType.DECK_REPLACED, cards=len(table.deck))
        elif table.deck.needs_reshuffle(self.rules.reshuffle_threshold):
            table.timer = self.rules.reshuffle_seconds
            self._transition(Phase.RESHUFFLING)
            return self.state

        table.timer = self.rules.betting_seconds
        self._transition(Phase.BETTING)
        return self.state

    def finish_reshuffle(self) -> None:
        """Replace the deck and open betting."""
        self._require(Phase.RESHUFFLING)
        self.table.deck = Deck.create(self.rng)
        self.events.emit_new(EventType.DECK_REPLACED, cards=len(self.table.deck))
        self.table.timer = self.rules.betting_seconds
        self._transition(Phase.BETTING)

    def replace_exhausted_deck(self) -> None:
        """
        Swap in a new shuffled deck in the middle of a round.

        Cards already on the table are left out of the new deck, so no
        physical card can be dealt twice.
        """
        table = self.table
        in_play = {
            (card.rank, card.suit)
            for card in table.dealer_hand + [card for hand in table.hands for card in hand.cards]
        }
        cards = [card for card in standard_cards() if (card.rank, card.suit) not in in_play]
        self.rng.shuffle(cards)
        table.deck = Deck(cards)
        table.touch()
        self.events.emit_new(EventType.DECK_REPLACED, cards=len(table.deck))

    def countdown(self) -> int:
        """Take one tick off the visible countdown and return what is left."""
        self._require(Phase.BETTING, Phase.RESHUFFLING)
        remaining = max((self.table.timer or 0) - 1, 0)
        self.table.timer = remaining
        self.table.touch()
        self.events.emit_new(EventType.COUNTDOWN_TICK, phase=self.state.value, remaining=remaining)
        return remaining

    def deal_initial_cards(self) -> None:
        """
        Deal the opening cards and start player turns.

        Order: one card to each bet-placed hand in seat order, the dealer's
        up-card, a second card to each hand, then the face-down hole card.
        Two-card 21s become blackjacks and skip the turn queue. With nobody
        left to act the table goes straight on to the dealer's turn.
        """
        self._require(Phase.BETTING)
        table = self.table
        dealt = [hand for hand in table.hands if hand.status is HandStatus.BETTING]

        for hand in dealt:
            hand.add_card(table.deck.draw(face_up=True))
            hand.status = HandStatus.ACTIVE
        table.dealer_hand = [table.deck.draw(face_up=True)]
        for hand in dealt:
            hand.add_card(table.deck.draw(face_up=True))
        table.dealer_hand.append(table.deck.draw(face_up=False))
        table.dealer_score = score(table.dealer_hand)

        for hand in dealt:
            self.events.emit_new(
                EventType.CARD_DEALT,
                hand_id=hand.id,
                cards=[str(card) for card in hand.cards],
                hand_value=hand.value,
            )
            if hand.is_blackjack:
                hand.status = HandStatus.BLACKJACK
                self.events.emit_new(EventType.PLAYER_BLACKJACK, hand_id=hand.id)

        table.timer = None
        self._transition(Phase.PLAYER_TURNS)
        if not self.turns.start(table):
            self._transition(Phase.DEALER_TURN)

    def act(self, action: Action | str, hand_id: str) -> None:
        """
        Apply a player action to the hand holding the turn.

        Raises:
            IllegalActionError: Wrong phase, unknown hand or action, or the
                action's precondition fails
            InsufficientBalanceError: Not enough chips for double, split or
                insurance
        """
        self._require(Phase.PLAYER_TURNS)
        try:
            action = Action(action)
        except ValueError:
            raise IllegalActionError(f"Unknown action: {action}") from None
        hand = self.table.find_hand(hand_id)
        if hand is None:
            raise IllegalActionError(f"No hand {hand_id} at this table")
        player = self.players.get(hand.player_id)
        if player is None:
            raise IllegalActionError(f"Hand {hand_id} has no known owner")

        if not self.turns.apply(self.table, player, action, hand):
            self._transition(Phase.DEALER_TURN)
        self.table.touch()

    def legal_actions(self, hand_id: str) -> list[Action]:
        """List the actions currently open to a hand."""
        if self.state is not Phase.PLAYER_TURNS:
            return []
        hand = self.table.find_hand(hand_id)
        if hand is None or hand.player_id not in self.players:
            return []
        return self.turns.legal_actions(self.table, self.players[hand.player_id], hand)

    def play_dealer(self) -> None:
        """Run the dealer's fixed drawing rule, then move to payout."""
        self._require(Phase.DEALER_TURN)
        play_dealer(self.table, self.events, self.rules.dealer_stands_on)
        self._transition(Phase.PAYOUT)

    def settle(self) -> RoundSettlement:
        """
        Pay out every hand of the round exactly once.

        Credits are summed per player and applied as a single balance
        update each.
        """
        self._require(Phase.PAYOUT)
        if self.table.settled:
            raise IllegalActionError("Round is already settled")

        settlement = settle_round(
            self.table.hands,
            self.table.dealer_hand,
            self.rules.blackjack_payout,
        )
        for player_id in settlement.credits:
            if player_id not in self.players:
                raise TableError(f"Cannot settle for unknown player {player_id}")

        for player_id, credit in settlement.credits.items():
            player = self.players[player_id]
            player.credit(credit)
            player.last_active_at = utcnow()

        for result in settlement.hands:
            hand = self.table.find_hand(result.hand_id)
            hand.status = OUTCOME_STATUS[result.outcome]
            hand.is_turn = False
            self.events.emit_new(
                EventType.HAND_SETTLED,
                hand_id=result.hand_id,
                outcome=result.outcome.value,
                credit=result.credit,
            )
            if result.insurance_credit:
                self.events.emit_new(
                    EventType.INSURANCE_SETTLED,
                    hand_id=result.hand_id,
                    credit=result.insurance_credit,
                )

        self.table.settled = True
        self.table.timer = None
        self.table.touch()
        self.events.emit_new(EventType.ROUND_SETTLED, credits=dict(settlement.credits))
        return settlement

    def reset(self) -> Table:
        """
        Discard the table for a fresh one with a new id.

        Stakes whose outcome was still open are refunded first.
        """
        old = self.table
        if not old.settled:
            for hand in old.hands:
                refund = self._outstanding_stake(hand)
                player = self.players.get(hand.player_id)
                if refund and player is not None:
                    player.credit(refund)
                    self.events.emit_new(EventType.BET_REFUNDED, hand_id=hand.id, amount=refund)

        self.table = Table()
        self.machine.set_state(Phase.WAITING.value)
        self.events.emit_new(EventType.TABLE_RESET, old_table_id=old.id, table_id=self.table.id)
        return self.table

    @staticmethod
    def _outstanding_stake(hand: Hand) -> int:
        stake = hand.insurance_wager or 0
        if hand.status in _OPEN_STATUSES:
            stake += hand.wager
        return stake

    # Replication

    def apply_external_update(self, update: ExternalUpdate) -> bool:
        """
        Merge a change observed from another writer.

        External state wins over local state. Updates for another table id
        are ignored.

        Returns:
            True if the update was applied
        """
        table = self.table
        if isinstance(update, TablePatch):
            if update.id != table.id:
                return False
            changes = update.changes()
            for name, value in changes.items():
                setattr(table, name, value)
            if "phase" in changes:
                self.machine.set_state(table.phase.value)
        elif isinstance(update, Hand):
            existing = table.find_hand(update.id)
            if existing is not None:
                table.hands[table.hands.index(existing)] = update
            else:
                self._insert_in_seat_order(update)
            if update.is_turn:
                for hand in table.hands:
                    hand.is_turn = hand is update
                table.current_turn_index = table.hands.index(update)
        elif isinstance(update, HandRemoval):
            hand = table.find_hand(update.hand_id)
            if hand is None:
                return False
            table.hands.remove(hand)
        elif isinstance(update, Player):
            self.players[update.id] = update
        else:
            raise TypeError(f"Unsupported update: {type(update).__name__}")

        self.events.emit_new(EventType.EXTERNAL_UPDATE, kind=type(update).__name__)
        return True
