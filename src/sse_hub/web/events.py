from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Dict, Optional, Tuple

from sse_hub.models import HubStats, Subscriber
from sse_hub.models.subscriber import DEFAULT_OUTBOX_SIZE


logger = logging.getLogger(__name__)

_REGISTER = "register"
_DEREGISTER = "deregister"
_PUBLISH = "publish"
_BARRIER = "barrier"
_STOP = "stop"

Command = Tuple[str, Any]


class Hub:
    """Actor-style pub/sub hub for server-sent events.

    - ``register``, ``deregister`` and ``publish`` only enqueue a command and
      return immediately; a single control loop task applies them in order.
    - The subscriber map is touched by that loop alone, so membership changes
      and broadcasts are totally ordered without locks.
    - Fan-out never waits on an outbox: a full outbox drops the message for
      that subscriber only.
    """

    def __init__(self, outbox_size: int = DEFAULT_OUTBOX_SIZE) -> None:
        if outbox_size <= 0:
            raise ValueError(f"outbox_size must be positive, got {outbox_size}")
        self.outbox_size = outbox_size
        self._subs: Dict[int, Subscriber] = {}
        self._commands: asyncio.Queue[Command] = asyncio.Queue()
        self._ids = itertools.count(1)
        self._task: Optional[asyncio.Task[None]] = None
        self._stopping = False
        self.published = 0
        self.delivered = 0
        self.dropped = 0

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="sse-hub")
        logger.debug("Hub loop started")

    async def stop(self) -> None:
        """Apply pending commands, close every outbox and end the loop."""
        if self._task is None:
            self._stopping = True
            self._discard_pending()
            self._close_all()
            return
        if not self._stopping:
            self._stopping = True
            self._commands.put_nowait((_STOP, None))
        await asyncio.shield(self._task)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -- requests ----------------------------------------------------------

    def new_subscriber(self) -> Subscriber:
        """Allocate a subscriber with a fresh id. It is not registered yet."""
        return Subscriber(id=next(self._ids), outbox=asyncio.Queue(maxsize=self.outbox_size))

    def subscribe(self) -> Subscriber:
        sub = self.new_subscriber()
        self.register(sub)
        return sub

    def register(self, subscriber: Subscriber) -> None:
        """Add ``subscriber`` to the membership set.

        Precondition: ``subscriber.id`` is not currently registered.
        """
        self._submit((_REGISTER, subscriber))

    def deregister(self, subscriber_id: int) -> None:
        """Remove and close the subscriber; a no-op if it is not registered."""
        self._submit((_DEREGISTER, subscriber_id))

    def publish(self, message: str) -> None:
        """Deliver ``message`` to everyone registered when it is processed."""
        self._submit((_PUBLISH, message))

    async def flush(self) -> None:
        """Wait until every command enqueued before this call is processed."""
        if not self.running:
            return
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._commands.put_nowait((_BARRIER, done))
        await done

    def _submit(self, command: Command) -> None:
        if self._stopping:
            logger.debug("Hub stopping, ignoring %s", command[0])
            if command[0] == _REGISTER:
                command[1].close()
            return
        self._commands.put_nowait(command)

    # -- introspection -----------------------------------------------------

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    def stats(self) -> HubStats:
        return HubStats(
            subscribers=len(self._subs),
            published=self.published,
            delivered=self.delivered,
            dropped=self.dropped,
        )

    # -- control loop ------------------------------------------------------

    async def _run(self) -> None:
        try:
            while True:
                kind, payload = await self._commands.get()
                if kind == _STOP:
                    break
                try:
                    self._apply(kind, payload)
                except Exception:
                    logger.exception("Hub failed to process %s", kind)
        finally:
            self._discard_pending()
            self._close_all()
            logger.debug("Hub loop stopped")

    def _apply(self, kind: str, payload: Any) -> None:
        if kind == _PUBLISH:
            self._broadcast(payload)
        elif kind == _REGISTER:
            sub: Subscriber = payload
            previous = self._subs.get(sub.id)
            if previous is not None and previous is not sub:
                logger.warning("Client %d registered twice, replacing", sub.id)
                previous.close()
            self._subs[sub.id] = sub
            logger.info("Client %d connected (%d total)", sub.id, len(self._subs))
        elif kind == _DEREGISTER:
            sub = self._subs.pop(payload, None)
            if sub is None:
                return
            sub.close()
            logger.info("Client %d disconnected (%d total)", payload, len(self._subs))
        elif kind == _BARRIER:
            if not payload.done():
                payload.set_result(None)

    def _broadcast(self, message: str) -> None:
        self.published += 1
        for sub in list(self._subs.values()):
            try:
                ok = sub.offer(message)
            except Exception:
                logger.exception("Client %d delivery failed", sub.id)
                ok = False
            if ok:
                self.delivered += 1
            else:
                # Drop if subscriber is too slow
                self.dropped += 1
                logger.debug("Client %d outbox full, dropped message", sub.id)

    def _discard_pending(self) -> None:
        while True:
            try:
                kind, payload = self._commands.get_nowait()
            except asyncio.QueueEmpty:
                break
            if kind == _BARRIER and not payload.done():
                payload.set_result(None)
            elif kind == _REGISTER:
                payload.close()

    def _close_all(self) -> None:
        for sub in list(self._subs.values()):
            sub.close()
        self._subs.clear()
