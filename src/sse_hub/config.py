from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar

from sse_hub.models.subscriber import DEFAULT_OUTBOX_SIZE


ENV_PREFIX = "SSE_HUB_"

T = TypeVar("T")


def _read(env: Mapping[str, str], name: str, cast: Callable[[str], T], default: T, what: str) -> T:
    raw = env.get(ENV_PREFIX + name)
    if raw in (None, ""):
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be {what}, got {raw!r}") from None


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    # seconds between clock ticks; 0 disables the ticker
    tick_interval: float = 2.0
    outbox_size: int = DEFAULT_OUTBOX_SIZE

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"{ENV_PREFIX}PORT must be between 1 and 65535, got {self.port}")
        if self.tick_interval < 0:
            raise ValueError(f"{ENV_PREFIX}TICK_INTERVAL must not be negative, got {self.tick_interval}")
        # a zero-size asyncio.Queue is unbounded
        if self.outbox_size <= 0:
            raise ValueError(f"{ENV_PREFIX}OUTBOX_SIZE must be a positive integer, got {self.outbox_size}")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            host=env.get(ENV_PREFIX + "HOST") or cls.host,
            port=_read(env, "PORT", int, cls.port, "a port number"),
            tick_interval=_read(env, "TICK_INTERVAL", float, cls.tick_interval, "a number of seconds"),
            outbox_size=_read(env, "OUTBOX_SIZE", int, cls.outbox_size, "a positive integer"),
        )
