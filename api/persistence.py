"""Persistence gateway with Redis backend and in-memory fallback."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable

import redis.asyncio as redis
from redis.exceptions import RedisError

from api.codec import (
    deserialize_hand,
    deserialize_player,
    deserialize_table,
    serialize_hand,
    serialize_player,
    serialize_table,
)
from config import config
from core.errors import PersistenceFailure
from core.game.models import Player, Table
from core.hand import Hand

LOGGER = logging.getLogger("blackjack.persistence")

_PREFIX = "blackjack:"
LATEST_TABLE_KEY = f"{_PREFIX}table:latest"
PLAYER_NAMES_KEY = f"{_PREFIX}player-names"


def table_key(table_id: str) -> str:
    return f"{_PREFIX}table:{table_id}"


def hands_key(table_id: str) -> str:
    return f"{_PREFIX}hands:{table_id}"


def player_key(player_id: str) -> str:
    return f"{_PREFIX}player:{player_id}"


class PersistenceGateway(ABC):
    """
    Durable store for the table, its hands and players.

    Every method takes and returns typed records; serialization stays
    behind this boundary. Failures surface as PersistenceFailure.
    """

    @abstractmethod
    async def load_latest_table(self) -> Table | None:
        """Load the most recently saved table with its hands."""
        ...

    @abstractmethod
    async def save_table(self, table: Table) -> None:
        """Save the table row and mark it as the latest table."""
        ...

    @abstractmethod
    async def load_hands(self, table_id: str) -> list[Hand]:
        """Load every hand stored for a table."""
        ...

    @abstractmethod
    async def save_hand(self, table_id: str, hand: Hand) -> None:
        """Insert or update one hand of a table."""
        ...

    @abstractmethod
    async def delete_hand(self, table_id: str, hand_id: str) -> None:
        """Remove one hand of a table."""
        ...

    @abstractmethod
    async def load_players(self, ids: Iterable[str]) -> list[Player]:
        """Load the players with these ids; unknown ids are skipped."""
        ...

    @abstractmethod
    async def save_player(self, player: Player) -> None:
        """Insert or update a player."""
        ...

    @abstractmethod
    async def find_player(self, name: str) -> Player | None:
        """Look a player up by name."""
        ...


class _DocumentGateway(PersistenceGateway):
    """Gateway over a key/value store holding JSON documents."""

    @abstractmethod
    async def _get(self, key: str) -> str | None: ...

    @abstractmethod
    async def _set(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def _hgetall(self, key: str) -> dict[str, str]: ...

    @abstractmethod
    async def _hget(self, key: str, field: str) -> str | None: ...

    @abstractmethod
    async def _hset(self, key: str, field: str, value: str) -> None: ...

    @abstractmethod
    async def _hdel(self, key: str, field: str) -> None: ...

    @staticmethod
    def _loads(raw: str) -> dict[str, Any]:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PersistenceFailure(f"Corrupt record: {exc}") from exc

    async def load_latest_table(self) -> Table | None:
        table_id = await self._get(LATEST_TABLE_KEY)
        if table_id is None:
            return None
        raw = await self._get(table_key(table_id))
        if raw is None:
            return None
        hands = await self.load_hands(table_id)
        return deserialize_table(self._loads(raw), hands)

    async def save_table(self, table: Table) -> None:
        await self._set(table_key(table.id), json.dumps(serialize_table(table)))
        await self._set(LATEST_TABLE_KEY, table.id)

    async def load_hands(self, table_id: str) -> list[Hand]:
        records = await self._hgetall(hands_key(table_id))
        return [deserialize_hand(self._loads(raw)) for raw in records.values()]

    async def save_hand(self, table_id: str, hand: Hand) -> None:
        await self._hset(hands_key(table_id), hand.id, json.dumps(serialize_hand(hand)))

    async def delete_hand(self, table_id: str, hand_id: str) -> None:
        await self._hdel(hands_key(table_id), hand_id)

    async def load_players(self, ids: Iterable[str]) -> list[Player]:
        players = []
        for player_id in dict.fromkeys(ids):
            raw = await self._get(player_key(player_id))
            if raw is not None:
                players.append(deserialize_player(self._loads(raw)))
        return players

    async def save_player(self, player: Player) -> None:
        await self._set(player_key(player.id), json.dumps(serialize_player(player)))
        await self._hset(PLAYER_NAMES_KEY, player.name, player.id)

    async def find_player(self, name: str) -> Player | None:
        player_id = await self._hget(PLAYER_NAMES_KEY, name)
        if player_id is None:
            return None
        players = await self.load_players([player_id])
        return players[0] if players else None


class InMemoryGateway(_DocumentGateway):
    """In-memory gateway for local development and tests."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._hashes: dict[str, dict[str, str]] = {}

    async def _get(self, key: str) -> str | None:
        return self._values.get(key)

    async def _set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def _hgetall(self, key: str) -> dict[str, str]:
        return dict(self._hashes.get(key, {}))

    async def _hget(self, key: str, field: str) -> str | None:
        return self._hashes.get(key, {}).get(field)

    async def _hset(self, key: str, field: str, value: str) -> None:
        self._hashes.setdefault(key, {})[field] = value

    async def _hdel(self, key: str, field: str) -> None:
        self._hashes.get(key, {}).pop(field, None)


class RedisGateway(_DocumentGateway):
    """Redis-backed gateway."""

    def __init__(self, redis_client: redis.Redis) -> None:
        self._redis = redis_client

    async def _call(self, method: str, *args: Any) -> Any:
        try:
            result = await getattr(self._redis, method)(*args)
        except RedisError as exc:
            raise PersistenceFailure(f"Redis {method} failed: {exc}") from exc
        if isinstance(result, bytes):
            return result.decode()
        return result

    async def _get(self, key: str) -> str | None:
        return await self._call("get", key)

    async def _set(self, key: str, value: str) -> None:
        await self._call("set", key, value)

    async def _hgetall(self, key: str) -> dict[str, str]:
        records = await self._call("hgetall", key)
        return {
            (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
            for k, v in records.items()
        }

    async def _hget(self, key: str, field: str) -> str | None:
        return await self._call("hget", key, field)

    async def _hset(self, key: str, field: str, value: str) -> None:
        await self._call("hset", key, field, value)

    async def _hdel(self, key: str, field: str) -> None:
        await self._call("hdel", key, field)


# Global gateway instance
_gateway: PersistenceGateway | None = None


async def get_gateway() -> PersistenceGateway:
    """Get or create the configured gateway."""
    global _gateway

    if _gateway is not None:
        return _gateway

    if config.persistence.backend == "redis":
        redis_client = redis.from_url(config.redis.url)
        try:
            await redis_client.ping()
        except RedisError as exc:
            LOGGER.warning("Redis unavailable at %s (%s); using in-memory store", config.redis.url, exc)
        else:
            _gateway = RedisGateway(redis_client)
            return _gateway

    _gateway = InMemoryGateway()
    return _gateway
