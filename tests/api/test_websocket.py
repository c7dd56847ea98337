"""Tests for the WebSocket push channel."""

import pytest

from api.websocket import ConnectionManager, _handle, state_message
from conftest import stacked_deck


class FakeWebSocket:
    """Records what the server sends."""

    def __init__(self):
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        self.sent.append(message)


class TestConnectionManager:
    """Tests for ConnectionManager."""

    @pytest.mark.asyncio
    async def test_connect_and_send(self):
        manager = ConnectionManager()
        websocket = FakeWebSocket()
        await manager.connect(websocket, "c1")

        await manager.send_message("c1", {"type": "ping"})
        assert websocket.accepted
        assert websocket.sent == [{"type": "ping"}]
        assert manager.active_connections == 1

        manager.disconnect("c1")
        assert manager.active_connections == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        manager = ConnectionManager(queue_size=2)
        await manager.connect(FakeWebSocket(), "c1")

        for n in range(3):
            manager.enqueue("c1", {"n": n})

        assert await manager.next_message("c1") == {"n": 1}
        assert await manager.next_message("c1") == {"n": 2}

    @pytest.mark.asyncio
    async def test_attached_service_pushes_snapshots(self, service):
        manager = ConnectionManager()
        await manager.connect(FakeWebSocket(), "c1")
        manager.attach(service)

        await service.join_seat("ann", 0)
        message = await manager.next_message("c1")
        assert message["type"] == "state_update"
        assert message["state"]["seats"] == {"0": service.table.seats[0]}


class TestMessages:
    """Tests for client message handling."""

    @pytest.mark.asyncio
    async def test_hole_card_masked(self, service, clock):
        await service.join_seat("ann", 0)
        service.table.deck = stacked_deck("10S", "7C", "9H", "KD")
        await service.place_bet(0, 50)
        await clock.advance(3)

        state = state_message(service)["state"]
        assert state["dealer"]["cards"][0]["rank"] == "7"
        assert state["dealer"]["cards"][1]["rank"] is None

    @pytest.mark.asyncio
    async def test_join_and_bet(self, service):
        reply = await _handle(service, {"type": "join", "name": "ann", "seat": 1})
        assert reply["type"] == "joined"
        assert reply["balance"] == 1000

        reply = await _handle(service, {"type": "bet", "seat": 1, "amount": 25})
        assert reply["type"] == "bet_placed"
        assert service.table.find_hand(reply["hand_id"]).wager == 25

    @pytest.mark.asyncio
    async def test_unknown_message(self, service):
        reply = await _handle(service, {"type": "dance"})
        assert reply == {"type": "error", "message": "Unknown message type: dance"}
