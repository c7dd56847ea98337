"""The coordinating service that owns the live table."""

import asyncio
import logging
from random import Random
from typing import Awaitable, Callable, Iterable, TypeVar

from api.persistence import PersistenceGateway, get_gateway
from api.scheduler import PhaseScheduler
from config import GameConfig, config
from core.errors import EmptyDeckError, IllegalActionError, PersistenceFailure, TableError
from core.game.engine import ExternalUpdate, TableEngine
from core.game.events import GameEvent
from core.game.models import Player, Table
from core.game.state import Phase
from core.game.turns import Action
from core.hand import Hand

LOGGER = logging.getLogger("blackjack.table")

T = TypeVar("T")
Listener = Callable[[], Awaitable[None]]


class TableService:
    """
    Single writer for the live table.

    Player actions, timer ticks and replication updates all run under one
    asyncio lock, one at a time. A mutation counts as committed once every
    balance it changed has been acknowledged by the gateway; if that write
    fails the mutation is rolled back and the error reaches the caller.
    Table and hand rows are mirrored best-effort afterwards.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        settings: GameConfig | None = None,
        scheduler: PhaseScheduler | None = None,
        rng: Random | None = None,
        retries: int | None = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings or config.game
        self.rules = self.settings.to_rules()
        self.scheduler = scheduler or PhaseScheduler()
        self.rng = rng or Random()
        self.engine = self._build_engine()
        self._retries = config.persistence.retries if retries is None else retries
        self._lock = asyncio.Lock()
        self._listeners: list[Listener] = []

    @property
    def table(self) -> Table:
        """Return the live table."""
        return self.engine.table

    @property
    def phase(self) -> Phase:
        """Return the live table's phase."""
        return self.engine.state

    @property
    def players(self) -> dict[str, Player]:
        """Return the players known at the table, keyed by id."""
        return self.engine.players

    def subscribe(self, listener: Listener) -> None:
        """Call ``listener`` after every committed change."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        """Stop notifying a listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Lifecycle

    async def start(self) -> None:
        """Load the latest table, or create one, and re-arm its timers."""
        async with self._lock:
            table = await self.gateway.load_latest_table()
            if table is None:
                table = Table()
                LOGGER.info("Created table %s", table.id)
            else:
                LOGGER.info("Resuming table %s in %s", table.id, table.phase.value)

            player_ids = set(table.seats.values()) | {hand.player_id for hand in table.hands}
            players = await self.gateway.load_players(player_ids)
            self.engine = self._build_engine(table, {player.id: player for player in players})
            await self._mirror()
            await self._resume()

    async def stop(self) -> None:
        """Cancel every pending timer once any mutation in progress is done."""
        async with self._lock:
            await self.scheduler.cancel_all()

    def _build_engine(
        self,
        table: Table | None = None,
        players: dict[str, Player] | None = None,
    ) -> TableEngine:
        engine = TableEngine(self.rules, table=table, players=players, rng=self.rng)
        engine.subscribe(self._log_event)
        return engine

    @staticmethod
    def _log_event(event: GameEvent) -> None:
        LOGGER.debug("%s %s", event.event_type.name, event.data)

    async def _resume(self) -> None:
        phase = self.engine.state
        if phase in (Phase.BETTING, Phase.RESHUFFLING):
            self._arm_countdown()
        elif phase in (Phase.DEALER_TURN, Phase.PAYOUT):
            await self._finish_round()

    # Player-facing actions

    async def join_seat(self, name: str, seat: int) -> Player:
        """
        Seat a player by name, registering new names.

        Joining an idle table starts the first round.
        """
        name = name.strip()
        if not name:
            raise IllegalActionError("A player name is required")

        async with self._lock:
            stored = await self.gateway.find_player(name)
            if stored is None:
                player = Player(name=name, balance=self.rules.starting_balance)
                LOGGER.info("Registered player %s with %s chips", name, player.balance)
            else:
                player = self.engine.players.get(stored.id, stored)

            await self._mutate(lambda: self.engine.join_seat(player, seat), save=[player])
            LOGGER.info("%s sat down at seat %s on table %s", name, seat, self.table.id)

            if self.engine.state is Phase.WAITING:
                await self._start_round()
            return player

    async def leave_seat(self, seat: int) -> Player:
        """Free a seat, refunding bets that were not dealt yet."""
        async with self._lock:
            player = await self._mutate(lambda: self.engine.leave_seat(seat))
            LOGGER.info("%s left seat %s", player.name, seat)
            return player

    async def place_bet(self, seat: int, amount: int) -> Hand:
        """Place a wager for the player at a seat."""
        async with self._lock:
            return await self._mutate(lambda: self.engine.place_bet(seat, amount))

    async def act(self, action: Action | str, hand_id: str) -> Table:
        """Apply a player action; finishes the round once nobody is left to act."""
        async with self._lock:
            await self._dealing(lambda: self.engine.act(action, hand_id))
            await self._finish_round()
            return self.table

    def legal_actions(self, hand_id: str) -> list[Action]:
        """List the actions currently open to a hand."""
        return self.engine.legal_actions(hand_id)

    def legal_action_map(self) -> dict[str, list[str]]:
        """Map each hand id to the names of its open actions."""
        return {
            hand.id: [action.value for action in self.engine.legal_actions(hand.id)]
            for hand in self.table.hands
        }

    async def reset(self) -> Table:
        """Replace the table with a fresh one; timers of the old table die with it."""
        async with self._lock:
            await self._reset()
            return self.table

    # Replication intake

    async def apply_external_update(self, update: ExternalUpdate) -> bool:
        """
        Merge a change made by another writer.

        The change is taken as authoritative and is not written back.
        """
        async with self._lock:
            table_id, phase = self.table.id, self.engine.state
            if not self.engine.apply_external_update(update):
                LOGGER.debug("Ignored external %s update", type(update).__name__)
                return False
            if self.engine.state is not phase:
                self.scheduler.cancel((table_id, phase))
            await self._notify()
            return True

    # Timers

    async def tick(self, table_id: str, phase: Phase) -> bool:
        """
        Run one countdown tick for a timed phase.

        Ticks for a table or phase that is no longer current do nothing.

        Returns:
            True while the countdown should keep running
        """
        async with self._lock:
            if not self._is_current(table_id, phase):
                LOGGER.debug("Discarding stale %s tick for table %s", phase.value, table_id)
                return False

            remaining = await self._mutate(self.engine.countdown)
            if remaining > 0:
                return True

            if phase is Phase.RESHUFFLING:
                await self._mutate(self.engine.finish_reshuffle)
                LOGGER.info("Table %s reshuffled", table_id)
                self._arm_countdown()
            else:
                await self._dealing(self.engine.deal_initial_cards)
                LOGGER.info("Dealt %s hands on table %s", len(self.table.hands), table_id)
                await self._finish_round()
            return False

    async def payout_elapsed(self, table_id: str, phase: Phase = Phase.PAYOUT) -> None:
        """
        Move a finished round on once the payout delay has passed.

        A dealer turn or settlement that did not complete is retried first.
        A settled table rolls into the next round, or resets when too few
        seats are taken.
        """
        async with self._lock:
            if not self._is_current(table_id, phase):
                LOGGER.debug("Discarding stale payout timer for table %s", table_id)
                return
            if phase is Phase.DEALER_TURN or not self.table.settled:
                await self._finish_round()
                return
            if len(self.table.seats) < max(self.settings.min_players, 1):
                await self._reset()
                return
            await self._start_round()

    def _is_current(self, table_id: str, phase: Phase) -> bool:
        return self.table.id == table_id and self.engine.state is phase

    def _arm_countdown(self) -> None:
        table_id, phase = self.table.id, self.engine.state
        if phase not in (Phase.BETTING, Phase.RESHUFFLING):
            return
        self.scheduler.every(
            (table_id, phase),
            self.settings.tick_interval,
            lambda: self.tick(table_id, phase),
        )

    def _arm_payout(self) -> None:
        table_id, phase = self.table.id, self.engine.state
        if phase not in (Phase.DEALER_TURN, Phase.PAYOUT):
            return
        self.scheduler.once(
            (table_id, phase),
            self.settings.payout_delay,
            lambda: self.payout_elapsed(table_id, phase),
        )

    # Round flow, lock held

    async def _start_round(self) -> None:
        phase = await self._mutate(self.engine.start_round)
        LOGGER.info("Table %s entering %s", self.table.id, phase.value)
        self._arm_countdown()

    async def _finish_round(self) -> None:
        """
        Play the dealer, settle, then arm the payout timer.

        The timer is armed even when a step fails; it retries the step, so
        a round stuck on storage completes once storage is back.
        """
        if self.engine.state not in (Phase.DEALER_TURN, Phase.PAYOUT):
            return
        try:
            if self.engine.state is Phase.DEALER_TURN:
                await self._dealing(self.engine.play_dealer)
            if not self.table.settled:
                settlement = await self._mutate(self.engine.settle)
                LOGGER.info(
                    "Settled table %s: dealer %s, %s chips credited",
                    self.table.id,
                    self.table.dealer_score,
                    settlement.total_credited,
                )
        except (EmptyDeckError, PersistenceFailure) as exc:
            LOGGER.error(
                "Table %s stalled in %s, retrying in %ss: %s",
                self.table.id,
                self.engine.state.value,
                self.settings.payout_delay,
                exc,
            )
        self._arm_payout()

    async def _dealing(self, operation: Callable[[], T]) -> T:
        """Run an operation that draws cards, replacing an exhausted deck once."""
        try:
            return await self._mutate(operation)
        except EmptyDeckError:
            await self._mutate(self.engine.replace_exhausted_deck)
            LOGGER.warning("Replaced exhausted deck on table %s", self.table.id)
            return await self._mutate(operation)

    async def _reset(self) -> None:
        old_id = self.table.id
        await self._mutate(self.engine.reset)
        LOGGER.info("Table %s reset as %s", old_id, self.table.id)

    # Commit pipeline

    async def _mutate(self, operation: Callable[[], T], save: Iterable[Player] = ()) -> T:
        """
        Run an engine operation and commit it.

        Balance changes (and any ``save`` players) are written first and
        must succeed; otherwise the engine is rolled back. Timers of a phase
        or table that was left are cancelled.
        """
        engine = self.engine
        snapshot = engine.snapshot()
        balances = {player.id: player.balance for player in engine.players.values()}
        table_id, phase = engine.table.id, engine.state
        hand_ids = {hand.id for hand in engine.table.hands}

        try:
            result = operation()
        except EmptyDeckError:
            LOGGER.exception("Deck ran out on table %s during %s", table_id, phase.value)
            engine.restore(snapshot)
            raise
        except TableError:
            engine.restore(snapshot)
            raise

        critical = {player.id: player for player in save}
        for player in engine.players.values():
            if balances.get(player.id) != player.balance:
                critical[player.id] = player
        try:
            for player in critical.values():
                await self._save_critical(player)
        except PersistenceFailure:
            LOGGER.error("Rolled back %s on table %s: balance write failed", phase.value, table_id)
            engine.restore(snapshot)
            raise

        if engine.table.id != table_id:
            self.scheduler.cancel_table(table_id)
            hand_ids = set()
        elif engine.state is not phase:
            self.scheduler.cancel((table_id, phase))

        await self._mirror(hand_ids)
        await self._notify()
        return result

    async def _save_critical(self, player: Player) -> None:
        attempt = 0
        while True:
            try:
                await self.gateway.save_player(player)
                return
            except PersistenceFailure as exc:
                if attempt >= self._retries:
                    raise
                attempt += 1
                LOGGER.warning(
                    "Retrying balance write for %s (%s/%s): %s",
                    player.name,
                    attempt,
                    self._retries,
                    exc,
                )

    async def _mirror(self, previous_hand_ids: set[str] = frozenset()) -> None:
        table = self.table
        current = {hand.id for hand in table.hands}
        try:
            for hand_id in previous_hand_ids - current:
                await self.gateway.delete_hand(table.id, hand_id)
            for hand in table.hands:
                await self.gateway.save_hand(table.id, hand)
            await self.gateway.save_table(table)
        except PersistenceFailure as exc:
            LOGGER.warning("Dropped mirror write for table %s: %s", table.id, exc)

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                await listener()
            except Exception:
                LOGGER.exception("Table listener failed")


# Global table service instance
_table_service: TableService | None = None
_table_service_lock = asyncio.Lock()


async def get_table_service() -> TableService:
    """Get or create the table service."""
    global _table_service

    async with _table_service_lock:
        if _table_service is None:
            service = TableService(await get_gateway())
            await service.start()
            _table_service = service
    return _table_service
