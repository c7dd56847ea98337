"""Shared table API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from api.schemas import (
    ActionRequest,
    BetRequest,
    HandResponse,
    JoinRequest,
    LeaveRequest,
    PlayerResponse,
    TableStateResponse,
)
from api.table_service import TableService, get_table_service

router = APIRouter()

Service = Annotated[TableService, Depends(get_table_service)]


def table_state(service: TableService) -> TableStateResponse:
    """Build the client view of the live table."""
    return TableStateResponse.from_table(
        service.table,
        service.players,
        service.legal_action_map(),
    )


@router.get("/state")
async def get_state(service: Service) -> TableStateResponse:
    """Get the current table state."""
    return table_state(service)


@router.post("/join")
async def join_seat(request: JoinRequest, service: Service) -> PlayerResponse:
    """Take a seat, registering the player name on first use."""
    player = await service.join_seat(request.name, request.seat)
    return PlayerResponse.from_player(player, service.table.seat_of(player.id))


@router.post("/leave")
async def leave_seat(request: LeaveRequest, service: Service) -> PlayerResponse:
    """Free a seat."""
    player = await service.leave_seat(request.seat)
    return PlayerResponse.from_player(player)


@router.post("/bet")
async def place_bet(request: BetRequest, service: Service) -> HandResponse:
    """Place a bet for the player at a seat."""
    hand = await service.place_bet(request.seat, request.amount)
    return HandResponse.from_hand(hand)


@router.post("/action")
async def player_action(request: ActionRequest, service: Service) -> TableStateResponse:
    """Execute a player action on the hand holding the turn."""
    await service.act(request.action, request.hand_id)
    return table_state(service)


@router.post("/reset")
async def reset_table(service: Service) -> TableStateResponse:
    """Replace the table with a fresh one."""
    await service.reset()
    return table_state(service)
