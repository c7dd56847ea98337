"""Configuration management with environment variable support."""

import os
from dataclasses import dataclass, field
from typing import Literal

from core.rules import TableRules


def _parse_cors_origins() -> list[str]:
    """Parse CORS_ORIGINS environment variable."""
    origins = os.getenv("CORS_ORIGINS", "http://localhost:8000")
    return [o.strip() for o in origins.split(",") if o.strip()]


@dataclass(frozen=True)
class CORSConfig:
    """CORS configuration."""

    allowed_origins: list[str] = field(default_factory=_parse_cors_origins)
    allow_credentials: bool = True
    allow_methods: list[str] = field(default_factory=lambda: ["*"])
    allow_headers: list[str] = field(default_factory=lambda: ["*"])


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limiting configuration."""

    enabled: bool = field(
        default_factory=lambda: os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    )
    requests_per_minute: int = field(
        default_factory=lambda: int(os.getenv("RATE_LIMIT_RPM", "120"))
    )


@dataclass(frozen=True)
class RedisConfig:
    """Redis connection configuration."""

    host: str = field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    port: int = field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    db: int = field(default_factory=lambda: int(os.getenv("REDIS_DB", "0")))
    password: str | None = field(default_factory=lambda: os.getenv("REDIS_PASSWORD"))

    @property
    def url(self) -> str:
        """Build Redis connection URL."""
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


@dataclass(frozen=True)
class PersistenceConfig:
    """Persistence gateway configuration."""

    backend: Literal["memory", "redis"] = field(
        default_factory=lambda: os.getenv("PERSISTENCE_BACKEND", "memory")  # type: ignore[arg-type, return-value]
    )
    # Extra attempts for balance-affecting writes
    retries: int = field(default_factory=lambda: int(os.getenv("PERSISTENCE_RETRIES", "2")))


@dataclass(frozen=True)
class GameConfig:
    """Default table configuration."""

    min_bet: int = field(default_factory=lambda: int(os.getenv("MIN_BET", "5")))
    max_bet: int = field(default_factory=lambda: int(os.getenv("MAX_BET", "1000")))
    starting_balance: int = field(
        default_factory=lambda: int(os.getenv("STARTING_BALANCE", "10000"))
    )
    seats: int = field(default_factory=lambda: int(os.getenv("SEATS", "5")))
    blackjack_payout: float = 1.5
    dealer_stands_on: int = 17
    reshuffle_threshold: int = field(
        default_factory=lambda: int(os.getenv("RESHUFFLE_THRESHOLD", "15"))
    )
    betting_seconds: int = field(default_factory=lambda: int(os.getenv("BETTING_SECONDS", "15")))
    reshuffle_seconds: int = field(
        default_factory=lambda: int(os.getenv("RESHUFFLE_SECONDS", "5"))
    )
    payout_delay: float = field(default_factory=lambda: float(os.getenv("PAYOUT_DELAY", "3")))
    tick_interval: float = 1.0
    # Seated players needed to roll into the next round
    min_players: int = 1

    def to_rules(self) -> TableRules:
        """Build the core table rules."""
        return TableRules(
            min_bet=self.min_bet,
            max_bet=self.max_bet,
            starting_balance=self.starting_balance,
            seats=self.seats,
            blackjack_payout=self.blackjack_payout,
            dealer_stands_on=self.dealer_stands_on,
            reshuffle_threshold=self.reshuffle_threshold,
            betting_seconds=self.betting_seconds,
            reshuffle_seconds=self.reshuffle_seconds,
        )


@dataclass(frozen=True)
class AppConfig:
    """Application configuration."""

    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    redis: RedisConfig = field(default_factory=RedisConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    game: GameConfig = field(default_factory=GameConfig)
    cors: CORSConfig = field(default_factory=CORSConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)


# Global configuration instance
config = AppConfig()
