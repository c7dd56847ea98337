"""Table engine and state management."""

from core.game.events import GameEvent, EventType
from core.game.state import Phase
from core.game.models import Player, Table, TablePatch, HandRemoval
from core.game.turns import Action
from core.game.engine import TableEngine

__all__ = [
    "GameEvent",
    "EventType",
    "Phase",
    "Player",
    "Table",
    "TablePatch",
    "HandRemoval",
    "Action",
    "TableEngine",
]
