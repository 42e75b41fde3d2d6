from __future__ import annotations

from pydantic import BaseModel


class HubStats(BaseModel):
    """Point-in-time counters of a broadcast hub."""

    subscribers: int
    published: int = 0
    delivered: int = 0
    dropped: int = 0
