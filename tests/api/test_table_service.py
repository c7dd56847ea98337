"""Tests for the coordinating table service."""

import asyncio
import logging

import pytest

from api import table_service
from api.persistence import InMemoryGateway
from api.scheduler import PhaseScheduler
from api.table_service import TableService, get_table_service
from conftest import stacked_deck
from core.errors import IllegalActionError, PersistenceFailure
from core.game.models import Player, TablePatch
from core.game.state import Phase
from core.hand import HandStatus


async def stored_balance(gateway, name):
    return (await gateway.find_player(name)).balance


class TestSeats:
    """Tests for joining and leaving."""

    @pytest.mark.asyncio
    async def test_join_registers_player_and_starts_round(self, service, gateway):
        ann = await service.join_seat("ann", 0)

        assert ann.balance == 1000
        assert await stored_balance(gateway, "ann") == 1000
        assert service.phase is Phase.BETTING
        assert service.table.timer == 3
        assert service.scheduler.is_scheduled((service.table.id, Phase.BETTING))

    @pytest.mark.asyncio
    async def test_rejoin_finds_player_by_name(self, service):
        ann = await service.join_seat("ann", 0)
        await service.leave_seat(0)
        again = await service.join_seat("ann", 2)

        assert again.id == ann.id
        assert service.table.seats == {2: ann.id}

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, service):
        with pytest.raises(IllegalActionError):
            await service.join_seat("   ", 0)

    @pytest.mark.asyncio
    async def test_leave_refunds_bet(self, service, gateway):
        await service.join_seat("ann", 0)
        await service.place_bet(0, 50)
        assert await stored_balance(gateway, "ann") == 950

        await service.leave_seat(0)
        assert await stored_balance(gateway, "ann") == 1000


class TestRound:
    """End-to-end rounds under the manual clock."""

    @pytest.mark.asyncio
    async def test_full_round_conserves_chips(self, service, gateway, clock):
        ann = await service.join_seat("ann", 0)
        bob = await service.join_seat("bob", 1)
        # ann 10-9, bob 10-6 then hits a 5, dealer 7-10
        service.table.deck = stacked_deck("10H", "10S", "7C", "9H", "6S", "10D", "5C")
        ann_hand = await service.place_bet(0, 50)
        bob_hand = await service.place_bet(1, 50)

        await clock.advance(3)
        assert service.phase is Phase.PLAYER_TURNS
        assert len(await gateway.load_hands(service.table.id)) == 2

        await service.act("stand", ann_hand.id)
        await service.act("hit", bob_hand.id)
        await service.act("stand", bob_hand.id)

        assert service.phase is Phase.PAYOUT
        assert service.table.settled
        assert service.table.dealer_score == 17
        # each player: +100 credited, -50 wagered
        assert service.players[ann.id].balance == 1050
        assert service.players[bob.id].balance == 1050
        assert sum(p.balance for p in service.players.values()) == 2000 - 100 + 200
        assert await stored_balance(gateway, "ann") == 1050
        assert await stored_balance(gateway, "bob") == 1050

        await clock.advance(2)
        assert service.phase is Phase.BETTING
        assert service.table.hands == []
        assert await gateway.load_hands(service.table.id) == []
        assert service.players[ann.id].balance == 1050

    @pytest.mark.asyncio
    async def test_blackjack_round_finishes_without_actions(self, service, clock):
        ann = await service.join_seat("ann", 0)
        service.table.deck = stacked_deck("AS", "9C", "KS", "8D")
        await service.place_bet(0, 50)

        await clock.advance(3)
        assert service.phase is Phase.PAYOUT
        assert service.table.hands[0].status is HandStatus.WON
        assert service.players[ann.id].balance == 1075

    @pytest.mark.asyncio
    async def test_empty_table_resets_after_payout(self, service, clock):
        await service.join_seat("ann", 0)
        service.table.deck = stacked_deck("AS", "9C", "KS", "8D")
        await service.place_bet(0, 50)
        await clock.advance(3)
        old_id = service.table.id

        await service.leave_seat(0)
        await clock.advance(2)

        assert service.phase is Phase.WAITING
        assert service.table.id != old_id

    @pytest.mark.asyncio
    async def test_depleted_deck_goes_through_reshuffle(self, service, clock):
        await service.join_seat("ann", 0)
        service.table.deck = stacked_deck("AS", "9C", "KS", "8D", filler=5)
        await service.place_bet(0, 50)
        await clock.advance(3)

        await clock.advance(2)
        assert service.phase is Phase.RESHUFFLING
        assert service.table.timer == 2

        await clock.advance(2)
        assert service.phase is Phase.BETTING
        assert service.table.deck.cards_remaining == 52

    @pytest.mark.asyncio
    async def test_empty_deck_at_deal_is_replaced(self, service, clock, caplog):
        await service.join_seat("ann", 0)
        service.table.deck = stacked_deck("AS", "9C", filler=0)
        await service.place_bet(0, 50)

        with caplog.at_level(logging.WARNING, logger="blackjack.table"):
            await clock.advance(3)

        assert "Deck ran out" in caplog.text
        assert "Replaced exhausted deck" in caplog.text
        assert service.phase in (Phase.PLAYER_TURNS, Phase.PAYOUT)
        table = service.table
        assert len(table.hands[0].cards) == 2
        in_play = table.hands[0].cards + table.dealer_hand
        assert table.deck.cards_remaining + len(in_play) == 52

    @pytest.mark.asyncio
    async def test_empty_deck_during_dealer_turn_is_replaced(self, service, clock, caplog):
        ann = await service.join_seat("ann", 0)
        # ann 10-9, dealer 7-6 must draw from an empty deck
        service.table.deck = stacked_deck("10S", "7C", "9H", "6D", filler=0)
        hand = await service.place_bet(0, 50)
        await clock.advance(3)

        with caplog.at_level(logging.ERROR, logger="blackjack.table"):
            await service.act("stand", hand.id)

        assert "Deck ran out" in caplog.text
        assert service.phase is Phase.PAYOUT
        assert service.table.settled
        dealer = service.table.dealer_hand
        assert len(dealer) >= 3
        in_play = [(card.rank, card.suit) for card in service.table.hands[0].cards + dealer]
        assert len(set(in_play)) == len(in_play)
        assert service.players[ann.id].balance in (950, 1000, 1050)


class TestRoundRecovery:
    """A round whose settlement cannot be stored completes later."""

    @pytest.mark.asyncio
    async def test_settlement_retried_until_storage_recovers(self, service, gateway, clock):
        ann = await service.join_seat("ann", 0)
        # ann 10-9 beats the dealer's 7-K
        service.table.deck = stacked_deck("10S", "7C", "9H", "KD")
        hand = await service.place_bet(0, 50)
        await clock.advance(3)
        gateway.player_failures = 10

        # the stand itself went through, so it is not reported as a failure
        table = await service.act("stand", hand.id)
        assert table.hands[0].status is HandStatus.STAND
        assert service.phase is Phase.PAYOUT
        assert not service.table.settled
        assert service.players[ann.id].balance == 950
        assert service.scheduler.is_scheduled((service.table.id, Phase.PAYOUT))

        await clock.advance(2)
        assert not service.table.settled
        assert service.scheduler.is_scheduled((service.table.id, Phase.PAYOUT))

        gateway.player_failures = 0
        await clock.advance(2)
        assert service.table.settled
        assert service.players[ann.id].balance == 1050
        assert await stored_balance(gateway, "ann") == 1050

        await clock.advance(2)
        assert service.phase is Phase.BETTING
        assert service.players[ann.id].balance == 1050

    @pytest.mark.asyncio
    async def test_restart_settles_unsettled_payout(self, service, gateway, settings, clock, rng):
        ann = await service.join_seat("ann", 0)
        service.table.deck = stacked_deck("10S", "7C", "9H", "KD")
        hand = await service.place_bet(0, 50)
        await clock.advance(3)
        gateway.player_failures = 2
        await service.act("stand", hand.id)
        await service.stop()

        restarted = TableService(
            gateway,
            settings=settings,
            scheduler=PhaseScheduler(sleep=clock.sleep),
            rng=rng,
        )
        await restarted.start()
        try:
            assert restarted.phase is Phase.PAYOUT
            assert restarted.table.settled
            assert restarted.players[ann.id].balance == 1050
            assert restarted.scheduler.is_scheduled((restarted.table.id, Phase.PAYOUT))
        finally:
            await restarted.stop()


class TestTimers:
    """Tests for timer invalidation."""

    @pytest.mark.asyncio
    async def test_reset_invalidates_old_timers(self, service, gateway, clock):
        ann = await service.join_seat("ann", 0)
        await service.place_bet(0, 50)
        old_id = service.table.id

        await service.reset()
        assert service.table.id != old_id
        assert service.phase is Phase.WAITING
        assert service.scheduler.keys == []
        assert service.players[ann.id].balance == 1000

        # a late tick for the old table does nothing
        assert await service.tick(old_id, Phase.BETTING) is False
        await clock.advance(5)
        assert service.phase is Phase.WAITING
        assert (await gateway.load_latest_table()).id == service.table.id

    @pytest.mark.asyncio
    async def test_tick_for_other_phase_is_ignored(self, service, clock):
        await service.join_seat("ann", 0)
        service.table.deck = stacked_deck("10S", "7C", "6H", "10D")
        await service.place_bet(0, 50)
        await clock.advance(3)
        assert service.phase is Phase.PLAYER_TURNS

        assert await service.tick(service.table.id, Phase.BETTING) is False
        assert service.phase is Phase.PLAYER_TURNS


class TestPersistence:
    """Tests for commit and rollback against the gateway."""

    @pytest.mark.asyncio
    async def test_failed_balance_write_rolls_back(self, service, gateway):
        ann = await service.join_seat("ann", 0)
        gateway.player_failures = 5

        with pytest.raises(PersistenceFailure):
            await service.place_bet(0, 50)

        assert service.table.hands == []
        assert service.players[ann.id].balance == 1000
        gateway.player_failures = 0
        assert await stored_balance(gateway, "ann") == 1000

    @pytest.mark.asyncio
    async def test_balance_write_is_retried(self, service, gateway):
        ann = await service.join_seat("ann", 0)
        gateway.player_failures = 1

        await service.place_bet(0, 50)
        assert service.players[ann.id].balance == 950
        assert await stored_balance(gateway, "ann") == 950

    @pytest.mark.asyncio
    async def test_mirror_failure_is_dropped(self, service, gateway, caplog):
        await service.join_seat("ann", 0)
        gateway.hand_failures = 1

        with caplog.at_level(logging.WARNING, logger="blackjack.table"):
            hand = await service.place_bet(0, 50)

        assert service.table.find_hand(hand.id) is not None
        assert "Dropped mirror write" in caplog.text

    @pytest.mark.asyncio
    async def test_restart_resumes_table(self, service, gateway, settings, clock, rng):
        ann = await service.join_seat("ann", 0)
        await service.place_bet(0, 50)

        restarted = TableService(
            gateway,
            settings=settings,
            scheduler=PhaseScheduler(sleep=clock.sleep),
            rng=rng,
        )
        await restarted.start()
        try:
            assert restarted.table.id == service.table.id
            assert restarted.phase is Phase.BETTING
            assert restarted.players[ann.id].balance == 950
            assert len(restarted.table.hands) == 1
            assert restarted.scheduler.is_scheduled((restarted.table.id, Phase.BETTING))
        finally:
            await restarted.stop()


class TestReplication:
    """Tests for external updates."""

    @pytest.mark.asyncio
    async def test_patch_for_other_table_ignored(self, service):
        await service.join_seat("ann", 0)
        assert not await service.apply_external_update(TablePatch(id="elsewhere", timer=1))

    @pytest.mark.asyncio
    async def test_player_update_not_written_back(self, service, gateway):
        ann = await service.join_seat("ann", 0)
        assert await service.apply_external_update(Player(name="ann", balance=5000, id=ann.id))

        assert service.players[ann.id].balance == 5000
        assert await stored_balance(gateway, "ann") == 1000

    @pytest.mark.asyncio
    async def test_external_phase_change_cancels_timer(self, service, clock):
        await service.join_seat("ann", 0)
        table_id = service.table.id

        patch = TablePatch(id=table_id, phase=Phase.PLAYER_TURNS, timer=None)
        assert await service.apply_external_update(patch)
        assert not service.scheduler.is_scheduled((table_id, Phase.BETTING))

        await clock.advance(5)
        assert service.phase is Phase.PLAYER_TURNS


class TestListeners:
    """Tests for change notifications."""

    @pytest.mark.asyncio
    async def test_listener_called_after_commit(self, service):
        calls = []

        async def listener():
            calls.append(service.phase)

        service.subscribe(listener)
        await service.join_seat("ann", 0)
        assert Phase.BETTING in calls

        service.unsubscribe(listener)
        count = len(calls)
        await service.place_bet(0, 50)
        assert len(calls) == count

    @pytest.mark.asyncio
    async def test_failed_mutation_not_broadcast(self, service):
        await service.join_seat("ann", 0)
        calls = []

        async def listener():
            calls.append(True)

        service.subscribe(listener)
        with pytest.raises(IllegalActionError):
            await service.place_bet(0, 1)
        assert calls == []

    @pytest.mark.asyncio
    async def test_engine_events_logged(self, service, caplog):
        with caplog.at_level(logging.DEBUG, logger="blackjack.table"):
            await service.join_seat("ann", 0)

        assert "PLAYER_SEATED" in caplog.text
        assert "PHASE_CHANGED" in caplog.text


class TestServiceAccessor:
    """Tests for the shared service instance."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_service(self, monkeypatch):
        async def slow_gateway():
            await asyncio.sleep(0)
            return InMemoryGateway()

        monkeypatch.setattr(table_service, "_table_service", None)
        monkeypatch.setattr(table_service, "_table_service_lock", asyncio.Lock())
        monkeypatch.setattr(table_service, "get_gateway", slow_gateway)

        first, second = await asyncio.gather(get_table_service(), get_table_service())
        try:
            assert first is second
        finally:
            await first.stop()

    @pytest.mark.asyncio
    async def test_stop_waits_for_timers(self, service):
        async def keep_going():
            return True

        await service.join_seat("ann", 0)
        task = service.scheduler.every((service.table.id, Phase.RESHUFFLING), 1.0, keep_going)

        await service.stop()

        assert task.done()
        assert service.scheduler.keys == []
