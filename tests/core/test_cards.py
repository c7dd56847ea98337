"""Tests for Card and Deck classes."""

import pytest
from random import Random

from hypothesis import given, strategies as st

from core.cards import Card, Deck, Rank, Suit, create_deck, needs_reshuffle, standard_cards
from core.errors import EmptyDeckError


class TestCard:
    """Tests for the Card class."""

    def test_card_creation(self):
        """Test creating a card."""
        card = Card(Rank.ACE, Suit.SPADES)
        assert card.rank == Rank.ACE
        assert card.suit == Suit.SPADES
        assert card.face_up

    def test_card_immutability(self):
        """Test that cards are immutable."""
        card = Card(Rank.ACE, Suit.SPADES)
        with pytest.raises(AttributeError):
            card.rank = Rank.KING

    def test_card_value(self):
        """Test card blackjack values."""
        assert Card(Rank.TWO, Suit.HEARTS).value == 2
        assert Card(Rank.TEN, Suit.HEARTS).value == 10
        assert Card(Rank.JACK, Suit.HEARTS).value == 10
        assert Card(Rank.KING, Suit.HEARTS).value == 10
        assert Card(Rank.ACE, Suit.HEARTS).value == 11

    def test_turned_returns_new_card(self):
        """Test flipping a card keeps rank and suit."""
        card = Card(Rank.QUEEN, Suit.CLUBS)
        hidden = card.turned(False)
        assert not hidden.face_up
        assert hidden.rank == Rank.QUEEN
        assert card.face_up
        assert card.turned(True) is card

    def test_face_down_str_hides_card(self):
        """Test a face-down card prints no rank."""
        assert str(Card(Rank.ACE, Suit.SPADES, face_up=False)) == "??"

    def test_card_from_string(self):
        """Test creating cards from strings."""
        assert Card.from_string("AS") == Card(Rank.ACE, Suit.SPADES)
        assert Card.from_string("10D") == Card(Rank.TEN, Suit.DIAMONDS)
        assert Card.from_string("K♥") == Card(Rank.KING, Suit.HEARTS)

    def test_card_from_string_invalid(self):
        """Test invalid strings are rejected."""
        with pytest.raises(ValueError):
            Card.from_string("1X")


class TestDeck:
    """Tests for the Deck class."""

    def test_new_deck_is_empty(self):
        """A deck built without cards holds none."""
        assert len(Deck()) == 0

    def test_create_has_all_cards(self, rng):
        """Test that a created deck contains all 52 unique cards."""
        deck = Deck.create(rng)
        assert len(deck) == 52
        assert len(set(deck)) == 52

    def test_create_is_reproducible(self):
        """Test that the same seed gives the same order."""
        assert Deck.create(Random(7)) == Deck.create(Random(7))
        assert Deck.create(Random(7)) != Deck.create(Random(8))

    def test_draw_from_end(self):
        """Test that draws come off the end of the card list."""
        deck = Deck(Card.from_string(code) for code in ["2C", "3C", "4C"])
        assert deck.draw() == Card.from_string("4C")
        assert deck.cards_remaining == 2

    def test_draw_face_down(self):
        """Test drawing a hole card."""
        deck = Deck([Card.from_string("AS")])
        card = deck.draw(face_up=False)
        assert not card.face_up
        assert card.rank == Rank.ACE

    def test_stacked_draw_order(self):
        """Test that a stacked deck deals in the given order."""
        order = [Card.from_string(code) for code in ["AS", "KH", "2D"]]
        deck = Deck.stacked(order)
        assert [deck.draw(), deck.draw(), deck.draw()] == order

    def test_draw_empty_raises(self):
        """Test drawing from an empty deck."""
        deck = Deck()
        with pytest.raises(EmptyDeckError):
            deck.draw()

    def test_needs_reshuffle_threshold(self):
        """Test the cut card sits at 15 remaining cards."""
        assert needs_reshuffle(Deck(standard_cards()[:14]))
        assert not needs_reshuffle(Deck(standard_cards()[:15]))
        assert needs_reshuffle(Deck(standard_cards()[:20]), threshold=21)

    def test_create_deck_helper(self, rng):
        """Test the module-level constructor."""
        assert create_deck(rng).cards_remaining == 52

    @given(st.integers(min_value=0, max_value=2**32))
    def test_shuffle_is_permutation(self, seed):
        """Property: any shuffle is a permutation of the 52 standard cards."""
        deck = Deck.create(Random(seed))
        assert sorted(deck, key=repr) == sorted(standard_cards(), key=repr)
