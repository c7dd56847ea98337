"""Dealer autoplay."""

from core.cards import Card
from core.game.events import EventEmitter, EventType
from core.game.models import Table
from core.hand import is_bust, score


def dealer_should_hit(cards: list[Card], stands_on: int = 17) -> bool:
    """Dealer draws below ``stands_on``, soft or hard."""
    return score(cards) < stands_on


def play_dealer(table: Table, events: EventEmitter, stands_on: int = 17) -> list[Card]:
    """
    Reveal the hole card and draw until the dealer reaches ``stands_on``.

    The score never decreases as cards are added and is bounded, so the
    loop ends. Returns the cards drawn after the reveal.
    """
    table.dealer_hand = [card.turned(True) for card in table.dealer_hand]
    table.dealer_score = score(table.dealer_hand)
    events.emit_new(
        EventType.DEALER_REVEALS,
        cards=[str(card) for card in table.dealer_hand],
        hand_value=table.dealer_score,
    )

    drawn: list[Card] = []
    while dealer_should_hit(table.dealer_hand, stands_on):
        card = table.deck.draw(face_up=True)
        table.dealer_hand.append(card)
        drawn.append(card)
        table.dealer_score = score(table.dealer_hand)
        events.emit_new(EventType.DEALER_HITS, card=str(card), hand_value=table.dealer_score)

    if is_bust(table.dealer_hand):
        events.emit_new(EventType.DEALER_BUSTS, hand_value=table.dealer_score)
    else:
        events.emit_new(EventType.DEALER_STANDS, hand_value=table.dealer_score)
    return drawn
