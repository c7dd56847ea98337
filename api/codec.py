"""Typed records <-> JSON-compatible dicts at the persistence boundary."""

from datetime import datetime
from typing import Any

from core.cards import Card, Deck, Rank, Suit
from core.game.models import Player, Table
from core.game.state import Phase
from core.hand import Hand, HandStatus


def serialize_card(card: Card) -> dict[str, Any]:
    """Serialize a card to a dict."""
    return {"rank": card.rank.value, "suit": card.suit.value, "face_up": card.face_up}


def deserialize_card(data: dict[str, Any]) -> Card:
    """Deserialize a card from a dict."""
    return Card(Rank(data["rank"]), Suit(data["suit"]), bool(data.get("face_up", True)))


def serialize_hand(hand: Hand) -> dict[str, Any]:
    """Serialize a hand to a dict."""
    return {
        "id": hand.id,
        "player_id": hand.player_id,
        "seat_position": hand.seat_position,
        "cards": [serialize_card(c) for c in hand.cards],
        "wager": hand.wager,
        "status": hand.status.value,
        "is_turn": hand.is_turn,
        "insurance_wager": hand.insurance_wager,
        "is_split": hand.is_split,
    }


def deserialize_hand(data: dict[str, Any]) -> Hand:
    """Deserialize a hand from a dict."""
    return Hand(
        id=data["id"],
        player_id=data["player_id"],
        seat_position=data["seat_position"],
        cards=[deserialize_card(c) for c in data["cards"]],
        wager=data["wager"],
        status=HandStatus(data["status"]),
        is_turn=data["is_turn"],
        insurance_wager=data.get("insurance_wager"),
        is_split=data.get("is_split", False),
    )


def serialize_player(player: Player) -> dict[str, Any]:
    """Serialize a player to a dict."""
    return {
        "id": player.id,
        "name": player.name,
        "balance": player.balance,
        "created_at": player.created_at.isoformat(),
        "last_active_at": player.last_active_at.isoformat(),
    }


def deserialize_player(data: dict[str, Any]) -> Player:
    """Deserialize a player from a dict."""
    return Player(
        id=data["id"],
        name=data["name"],
        balance=data["balance"],
        created_at=datetime.fromisoformat(data["created_at"]),
        last_active_at=datetime.fromisoformat(data["last_active_at"]),
    )


def serialize_table(table: Table) -> dict[str, Any]:
    """Serialize the table row; hands are stored as their own records."""
    return {
        "id": table.id,
        "deck": [serialize_card(c) for c in table.deck],
        "dealer_hand": [serialize_card(c) for c in table.dealer_hand],
        "dealer_score": table.dealer_score,
        "current_turn_index": table.current_turn_index,
        "phase": table.phase.value,
        "timer": table.timer,
        "seats": {str(seat): player_id for seat, player_id in table.seats.items()},
        "hand_order": [hand.id for hand in table.hands],
        "settled": table.settled,
        "updated_at": table.updated_at.isoformat(),
    }


def deserialize_table(data: dict[str, Any], hands: list[Hand] | None = None) -> Table:
    """Restore a table row, attaching its hands in their recorded order."""
    order = {hand_id: index for index, hand_id in enumerate(data.get("hand_order", []))}
    hands = sorted(
        hands or [],
        key=lambda h: (h.seat_position, order.get(h.id, len(order))),
    )
    return Table(
        id=data["id"],
        deck=Deck(deserialize_card(c) for c in data.get("deck", [])),
        dealer_hand=[deserialize_card(c) for c in data.get("dealer_hand", [])],
        dealer_score=data.get("dealer_score", 0),
        hands=hands,
        current_turn_index=data.get("current_turn_index", -1),
        phase=Phase(data.get("phase", Phase.WAITING.value)),
        timer=data.get("timer"),
        seats={int(seat): player_id for seat, player_id in data.get("seats", {}).items()},
        settled=data.get("settled", False),
        updated_at=datetime.fromisoformat(data["updated_at"]),
    )
