"""
Cache Configuration — Backend selection, TTLs and rate-limit policy.

Reads settings from environment variables:
    REDIS_URL = redis://host:6379/0   (unset → in-process store)
    CACHE_SOCKET_TIMEOUT = <seconds>
    CACHE_MAX_FAILURES = <consecutive failures before demotion>
    CACHE_RECONNECT_ATTEMPTS = <connect attempts before demotion>
"""
import os
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

Entity = Literal["tasks", "habits", "goals", "journal", "pomodoro"]

ENTITIES: tuple[str, ...] = ("tasks", "habits", "goals", "journal", "pomodoro")

DEFAULT_TTL: dict[str, int] = {
    "tasks": 300,      # frequently changing
    "habits": 600,
    "goals": 1800,     # rarely changes
    "journal": 600,
    "pomodoro": 300,   # active during focus sessions
}


class RateLimitRule(BaseModel):
    """A fixed-window limit: ``limit`` hits per ``window`` seconds."""

    limit: int = Field(ge=1)
    window: int = Field(default=60, ge=1)


class CacheConfig(BaseModel):
    """Validated cache and rate-limit configuration."""

    redis_url: Optional[str] = None
    socket_timeout: float = Field(default=1.0, gt=0)
    max_failures: int = Field(default=3, ge=1)
    reconnect_attempts: int = Field(default=3, ge=1)
    ttl: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_TTL))
    auth_ip: RateLimitRule = RateLimitRule(limit=180)
    read_ip: RateLimitRule = RateLimitRule(limit=240)
    read_user: RateLimitRule = RateLimitRule(limit=120)

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Accept only redis URLs; empty means unconfigured."""
        if not v:
            return None
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError(f"Unsupported cache URL scheme: {v.split(':', 1)[0]}")
        return v

    @field_validator("ttl")
    @classmethod
    def validate_ttl(cls, v: dict[str, int]) -> dict[str, int]:
        """Every entity needs a positive TTL."""
        merged = {**DEFAULT_TTL, **v}
        unknown = set(merged) - set(ENTITIES)
        if unknown:
            raise ValueError(f"Unknown cache entities: {sorted(unknown)}")
        for entity, seconds in merged.items():
            if seconds <= 0:
                raise ValueError(f"TTL for {entity} must be positive, got {seconds}")
        return merged

    def ttl_for(self, entity: str) -> int:
        return self.ttl[entity]

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create CacheConfig by loading values from environment.

        Returns:
            Populated CacheConfig instance.
        """
        return cls(
            redis_url=os.environ.get("REDIS_URL"),
            socket_timeout=float(os.environ.get("CACHE_SOCKET_TIMEOUT", 1.0)),
            max_failures=int(os.environ.get("CACHE_MAX_FAILURES", 3)),
            reconnect_attempts=int(os.environ.get("CACHE_RECONNECT_ATTEMPTS", 3)),
        )
