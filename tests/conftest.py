"""Pytest fixtures for blackjack table tests."""

import asyncio
from random import Random

import pytest
import pytest_asyncio
from hypothesis import strategies as st

from api.persistence import InMemoryGateway
from api.scheduler import PhaseScheduler
from api.table_service import TableService
from config import GameConfig
from core.cards import Card, Deck, Rank, Suit
from core.errors import PersistenceFailure
from core.game.engine import TableEngine
from core.game.models import Player
from core.hand import Hand
from core.rules import TableRules


def cards(*codes: str) -> list[Card]:
    """Build face-up cards from strings like 'AS', '10H'."""
    return [Card.from_string(code) for code in codes]


def stacked_deck(*codes: str, filler: int = 20) -> Deck:
    """A deck that deals ``codes`` first, then ``filler`` low cards."""
    return Deck.stacked(cards(*codes) + [Card(Rank.TWO, Suit.CLUBS)] * filler)


class ManualClock:
    """Stands in for asyncio.sleep; time only moves on ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers: list[tuple[float, asyncio.Future]] = []

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + delay, future))
        await future

    async def advance(self, seconds: float, step: float = 1.0) -> None:
        """Move time forward one step at a time, letting woken tasks run."""
        target = self.now + seconds
        await self.settle()
        while self.now < target:
            self.now = min(self.now + step, target)
            due = [entry for entry in self._sleepers if entry[0] <= self.now]
            self._sleepers = [entry for entry in self._sleepers if entry[0] > self.now]
            for _, future in due:
                if not future.done():
                    future.set_result(None)
            await self.settle()

    @staticmethod
    async def settle(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)


class FlakyGateway(InMemoryGateway):
    """In-memory gateway whose player writes can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.player_failures = 0
        self.hand_failures = 0
        self.player_writes = 0

    async def save_player(self, player: Player) -> None:
        self.player_writes += 1
        if self.player_failures:
            self.player_failures -= 1
            raise PersistenceFailure("player write refused")
        await super().save_player(player)

    async def save_hand(self, table_id: str, hand: Hand) -> None:
        if self.hand_failures:
            self.hand_failures -= 1
            raise PersistenceFailure("hand write refused")
        await super().save_hand(table_id, hand)


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return Random(42)


@pytest.fixture
def rules():
    """Default rules with short countdowns."""
    return TableRules(betting_seconds=3, reshuffle_seconds=2)


@pytest.fixture
def engine(rules, rng):
    """A fresh waiting table."""
    return TableEngine(rules, rng=rng)


@pytest.fixture
def ann():
    return Player(name="ann", balance=1000)


@pytest.fixture
def bob():
    return Player(name="bob", balance=1000)


@pytest.fixture
def betting_engine(engine, ann, bob):
    """A table in betting with ann at seat 0 and bob at seat 1."""
    engine.join_seat(ann, 0)
    engine.join_seat(bob, 1)
    engine.start_round()
    return engine


@pytest.fixture
def settings():
    """Service settings with short countdowns and 1000-chip players."""
    return GameConfig(
        starting_balance=1000,
        betting_seconds=3,
        reshuffle_seconds=2,
        payout_delay=2.0,
        tick_interval=1.0,
        min_players=1,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def gateway():
    return FlakyGateway()


@pytest_asyncio.fixture
async def service(gateway, settings, clock, rng):
    """A started table service on an in-memory store and a manual clock."""
    table_service = TableService(
        gateway,
        settings=settings,
        scheduler=PhaseScheduler(sleep=clock.sleep),
        rng=rng,
        retries=1,
    )
    await table_service.start()
    yield table_service
    await table_service.stop()
    await clock.settle()


# Hypothesis strategies for property-based testing
@st.composite
def card_strategy(draw):
    """Generate a random face-up card."""
    rank = draw(st.sampled_from(list(Rank)))
    suit = draw(st.sampled_from(list(Suit)))
    return Card(rank, suit)
