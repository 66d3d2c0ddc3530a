"""
Checkout Service — Configuration

All settings come from environment variables, read once at start-up.
"""

import os
from dataclasses import dataclass
from datetime import timedelta

RESERVATION_STRATEGIES = ("atomic", "cas")


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite+aiosqlite:///./checkout.db"
    redis_url: str = "redis://localhost:6379"
    pix_ttl: timedelta = timedelta(minutes=5)
    reservation_strategy: str = "atomic"
    reservation_max_retries: int = 5
    public_base_url: str | None = None

    def __post_init__(self) -> None:
        if self.reservation_strategy not in RESERVATION_STRATEGIES:
            raise ValueError(
                f"RESERVATION_STRATEGY must be one of {RESERVATION_STRATEGIES}, "
                f"got {self.reservation_strategy!r}"
            )
        if self.reservation_max_retries < 1:
            raise ValueError("RESERVATION_MAX_RETRIES must be >= 1")
        if self.pix_ttl <= timedelta(0):
            raise ValueError("PIX_TTL_SECONDS must be > 0")

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        base_url = os.environ.get("PUBLIC_BASE_URL")
        return cls(
            database_url=os.environ.get("DATABASE_URL", defaults.database_url),
            redis_url=os.environ.get("REDIS_URL", defaults.redis_url),
            pix_ttl=timedelta(
                seconds=int(os.environ.get("PIX_TTL_SECONDS", defaults.pix_ttl.total_seconds()))
            ),
            reservation_strategy=os.environ.get(
                "RESERVATION_STRATEGY", defaults.reservation_strategy
            ),
            reservation_max_retries=int(
                os.environ.get("RESERVATION_MAX_RETRIES", defaults.reservation_max_retries)
            ),
            public_base_url=base_url.rstrip("/") if base_url else None,
        )
