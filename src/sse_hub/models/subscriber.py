"""Per-connection subscriber state."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional


DEFAULT_OUTBOX_SIZE = 100


def _outbox() -> asyncio.Queue[Optional[str]]:
    return asyncio.Queue(maxsize=DEFAULT_OUTBOX_SIZE)


@dataclass
class Subscriber:
    """One connected client.

    - ``outbox`` is written only by the hub and read only by the transport.
    - ``None`` in the outbox marks the end of the stream.
    """

    id: int
    outbox: asyncio.Queue[Optional[str]] = field(default_factory=_outbox)
    dropped: int = 0
    closed: bool = False

    def offer(self, message: str) -> bool:
        """Append without waiting. Returns False (and counts a drop) if full."""
        if self.closed:
            return False
        try:
            self.outbox.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Pending messages stay readable; the oldest gives way if the end marker does not fit
        if self.outbox.full():
            self.outbox.get_nowait()
        self.outbox.put_nowait(None)
