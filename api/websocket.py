"""WebSocket connection management with live table pushes."""

import asyncio
import json
import logging
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.routes.table import table_state
from api.table_service import TableService, get_table_service
from core.errors import PersistenceFailure, TableError

LOGGER = logging.getLogger("blackjack.websocket")

router = APIRouter()


class ConnectionManager:
    """Manage WebSocket connections and fan table snapshots out to them."""

    def __init__(self, queue_size: int = 16) -> None:
        self._connections: dict[str, WebSocket] = {}
        self._queues: dict[str, asyncio.Queue] = {}
        self._queue_size = queue_size
        self._service: TableService | None = None

    async def connect(self, websocket: WebSocket, connection_id: str) -> None:
        """Accept and register a new connection."""
        await websocket.accept()
        self._connections[connection_id] = websocket
        self._queues[connection_id] = asyncio.Queue(maxsize=self._queue_size)

    def disconnect(self, connection_id: str) -> None:
        """Remove a connection."""
        self._connections.pop(connection_id, None)
        self._queues.pop(connection_id, None)

    def attach(self, service: TableService) -> None:
        """Push a snapshot to every connection after each table change."""
        if self._service is service:
            return
        if self._service is not None:
            self._service.unsubscribe(self._on_change)
        service.subscribe(self._on_change)
        self._service = service

    async def _on_change(self) -> None:
        if self._service is None or not self._queues:
            return
        message = state_message(self._service)
        for connection_id in list(self._queues):
            self.enqueue(connection_id, message)

    def enqueue(self, connection_id: str, message: dict[str, Any]) -> None:
        """Queue a message; a full queue drops its oldest snapshot."""
        queue = self._queues.get(connection_id)
        if queue is None:
            return
        if queue.full():
            queue.get_nowait()
            LOGGER.debug("Dropped stale snapshot for %s", connection_id)
        queue.put_nowait(message)

    async def next_message(self, connection_id: str) -> dict[str, Any] | None:
        """Wait for the next queued message of a connection."""
        queue = self._queues.get(connection_id)
        if queue is None:
            return None
        return await queue.get()

    async def send_message(self, connection_id: str, message: dict[str, Any]) -> None:
        """Send a message to one connection."""
        websocket = self._connections.get(connection_id)
        if websocket is not None:
            await websocket.send_json(message)

    @property
    def active_connections(self) -> int:
        """Return number of active connections."""
        return len(self._connections)


# Global connection manager
manager = ConnectionManager()


def state_message(service: TableService) -> dict[str, Any]:
    """Wrap the table view for the wire; the hole card stays hidden."""
    return {"type": "state_update", "state": table_state(service).model_dump(mode="json")}


async def _handle(service: TableService, message: dict[str, Any]) -> dict[str, Any] | None:
    """Run one client message; returns a direct reply, if any."""
    msg_type = message.get("type")

    if msg_type == "get_state":
        return state_message(service)
    if msg_type == "join":
        player = await service.join_seat(str(message.get("name", "")), int(message["seat"]))
        return {"type": "joined", "player_id": player.id, "balance": player.balance}
    if msg_type == "leave":
        await service.leave_seat(int(message["seat"]))
        return None
    if msg_type == "bet":
        hand = await service.place_bet(int(message["seat"]), int(message["amount"]))
        return {"type": "bet_placed", "hand_id": hand.id}
    if msg_type == "action":
        await service.act(str(message.get("action")), str(message.get("hand_id")))
        return None
    return {"type": "error", "message": f"Unknown message type: {msg_type}"}


@router.websocket("/table")
async def table_websocket(websocket: WebSocket) -> None:
    """
    WebSocket endpoint for real-time table updates.

    Messages from client:
    - {"type": "get_state"}
    - {"type": "join", "name": "ann", "seat": 0}
    - {"type": "leave", "seat": 0}
    - {"type": "bet", "seat": 0, "amount": 50}
    - {"type": "action", "hand_id": "...", "action": "hit"|"stand"|...}

    Messages to client:
    - {"type": "state_update", "state": {...}}
    - {"type": "joined", ...} / {"type": "bet_placed", ...}
    - {"type": "error", "message": "..."}
    """
    service = await get_table_service()
    manager.attach(service)

    connection_id = str(uuid4())
    await manager.connect(websocket, connection_id)
    await manager.send_message(connection_id, state_message(service))

    async def push_updates() -> None:
        while True:
            message = await manager.next_message(connection_id)
            if message is None:
                return
            try:
                await manager.send_message(connection_id, message)
            except (WebSocketDisconnect, RuntimeError):
                LOGGER.debug("Push to %s failed; connection closing", connection_id)
                return

    push_task = asyncio.create_task(push_updates())

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
                reply = await _handle(service, message)
            except PersistenceFailure as exc:
                LOGGER.error("Table write failed for %s: %s", connection_id, exc)
                reply = {"type": "error", "message": "Table storage unavailable"}
            except TableError as exc:
                reply = {"type": "error", "message": str(exc)}
            except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as exc:
                reply = {"type": "error", "message": f"Malformed message: {exc}"}
            if reply is not None:
                await manager.send_message(connection_id, reply)

    except WebSocketDisconnect:
        LOGGER.debug("Connection %s closed", connection_id)
    finally:
        push_task.cancel()
        try:
            await push_task
        except asyncio.CancelledError:
            pass
        manager.disconnect(connection_id)
