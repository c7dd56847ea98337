"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from core.cards import Card
from core.game.models import Player, Table
from core.game.state import Phase
from core.hand import Hand

ActionName = Literal["hit", "stand", "double", "split", "surrender", "insurance"]


# Requests
class JoinRequest(BaseModel):
    """Request to take a seat."""

    name: str = Field(..., min_length=1, max_length=40, description="Player name")
    seat: int = Field(..., ge=0, description="Seat index")


class LeaveRequest(BaseModel):
    """Request to free a seat."""

    seat: int = Field(..., ge=0)


class BetRequest(BaseModel):
    """Request to place a bet."""

    seat: int = Field(..., ge=0)
    amount: int = Field(..., ge=1, description="Bet amount")


class ActionRequest(BaseModel):
    """Request for a player action on a hand."""

    hand_id: str
    action: ActionName


# Responses
class CardResponse(BaseModel):
    """Card representation; face-down cards carry no rank or suit."""

    rank: str | None
    suit: str | None
    face_up: bool
    value: int | None

    @classmethod
    def from_card(cls, card: Card) -> "CardResponse":
        if not card.face_up:
            return cls(rank=None, suit=None, face_up=False, value=None)
        return cls(
            rank=card.rank.value,
            suit=card.suit.value,
            face_up=True,
            value=card.rank.blackjack_value,
        )


class HandResponse(BaseModel):
    """Hand representation."""

    id: str
    player_id: str
    seat_position: int
    cards: list[CardResponse]
    value: int
    is_soft: bool
    wager: int
    status: str
    is_turn: bool
    insurance_wager: int | None
    is_split: bool
    legal_actions: list[ActionName] = Field(default_factory=list)

    @classmethod
    def from_hand(cls, hand: Hand, legal_actions: list[str] | None = None) -> "HandResponse":
        return cls(
            id=hand.id,
            player_id=hand.player_id,
            seat_position=hand.seat_position,
            cards=[CardResponse.from_card(card) for card in hand.cards],
            value=hand.value,
            is_soft=hand.is_soft,
            wager=hand.wager,
            status=hand.status.value,
            is_turn=hand.is_turn,
            insurance_wager=hand.insurance_wager,
            is_split=hand.is_split,
            legal_actions=legal_actions or [],
        )


class PlayerResponse(BaseModel):
    """Player account."""

    id: str
    name: str
    balance: int
    seat: int | None = None
    last_active_at: datetime

    @classmethod
    def from_player(cls, player: Player, seat: int | None = None) -> "PlayerResponse":
        return cls(
            id=player.id,
            name=player.name,
            balance=player.balance,
            seat=seat,
            last_active_at=player.last_active_at,
        )


class DealerResponse(BaseModel):
    """Dealer hand; the score only counts face-up cards."""

    cards: list[CardResponse]
    score: int


class TableStateResponse(BaseModel):
    """Current table state as seen by clients."""

    id: str
    phase: Phase
    timer: int | None
    dealer: DealerResponse
    hands: list[HandResponse]
    players: list[PlayerResponse]
    seats: dict[int, str]
    current_turn_index: int
    cards_remaining: int
    settled: bool
    updated_at: datetime

    @classmethod
    def from_table(
        cls,
        table: Table,
        players: dict[str, Player],
        legal_actions: dict[str, list[str]] | None = None,
    ) -> "TableStateResponse":
        legal_actions = legal_actions or {}
        seated = [
            PlayerResponse.from_player(players[player_id], seat)
            for seat, player_id in sorted(table.seats.items())
            if player_id in players
        ]
        return cls(
            id=table.id,
            phase=table.phase,
            timer=table.timer,
            dealer=DealerResponse(
                cards=[CardResponse.from_card(card) for card in table.dealer_hand],
                score=table.dealer_score,
            ),
            hands=[
                HandResponse.from_hand(hand, legal_actions.get(hand.id))
                for hand in table.hands
            ],
            players=seated,
            seats=dict(table.seats),
            current_turn_index=table.current_turn_index,
            cards_remaining=table.deck.cards_remaining,
            settled=table.settled,
            updated_at=table.updated_at,
        )


class ErrorResponse(BaseModel):
    """Error body."""

    detail: str
