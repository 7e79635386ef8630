"""Merge concurrent per-speaker event channels into one ordered feed."""

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from enum import Enum

from ai_debate.errors import DebateCancelled
from ai_debate.events import DebateEvent, EventKind
from ai_debate.models import Phase, Role

logger = logging.getLogger(__name__)


class MergeMode(Enum):
    SEQUENTIAL = "sequential"
    INTERLEAVED = "interleaved"


@dataclass(frozen=True)
class _Closed:
    error: BaseException | None = None


class Channel:
    """Bounded queue carrying one Speaker Session's events."""

    def __init__(self, role: Role, phase: Phase, maxsize: int = 256) -> None:
        self.role = role
        self.phase = phase
        self._queue: asyncio.Queue[DebateEvent | _Closed] = asyncio.Queue(maxsize)
        self._closed = False

    async def put(self, event: DebateEvent) -> None:
        if self._closed:
            raise RuntimeError(f"Channel {self.role.value}/{self.phase.value} is closed")
        await self._queue.put(event)

    async def close(self, error: BaseException | None = None) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_Closed(error))

    async def get(self) -> DebateEvent | _Closed:
        return await self._queue.get()

    def __repr__(self) -> str:
        return f"Channel({self.role.value}, {self.phase.value})"


class EventMultiplexer:
    """Single consumer over a phase's session channels.

    SEQUENTIAL forwards the first speaker live and buffers the others until
    every earlier speaker has finished, so output is grouped per speaker in
    role order. INTERLEAVED forwards in arrival order and holds each
    ``phase_done`` until all sessions of the phase have finished.

    The ``channel_size`` bound applies back-pressure only while the consumer
    is behind. In SEQUENTIAL mode later speakers are read eagerly into an
    unbounded in-memory buffer so they keep streaming concurrently; their
    channels therefore never block the producer.
    """

    def __init__(self, mode: MergeMode = MergeMode.SEQUENTIAL, channel_size: int = 256) -> None:
        self.mode = mode
        self.channel_size = channel_size

    def channel(self, role: Role, phase: Phase) -> Channel:
        return Channel(role, phase, self.channel_size)

    async def merge(
        self,
        channels: Sequence[Channel],
        cancelled: asyncio.Event | None = None,
    ) -> AsyncIterator[DebateEvent]:
        """Yield merged events until every channel is closed.

        A channel closed with an error does not stop the others. They are
        drained to completion and every buffered event is released before
        the first recorded error is raised.

        Raises:
            BaseException: The first error a channel was closed with.
            DebateCancelled: ``cancelled`` was set.
        """
        order = list(channels)
        pending: dict[asyncio.Future, Channel] = {
            asyncio.ensure_future(ch.get()): ch for ch in order
        }
        cancel_wait = asyncio.ensure_future(cancelled.wait()) if cancelled is not None else None
        finished: set[Channel] = set()
        buffers: dict[Channel, deque[DebateEvent]] = {ch: deque() for ch in order}
        arrivals: deque[DebateEvent] = deque()
        held: dict[Channel, DebateEvent] = {}
        failure: BaseException | None = None

        try:
            while pending:
                waiters = set(pending)
                if cancel_wait is not None:
                    waiters.add(cancel_wait)
                done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
                if cancel_wait is not None and cancel_wait in done:
                    raise DebateCancelled()

                # Deterministic processing order when several are ready at once
                for fut in sorted((f for f in done if f in pending), key=lambda f: order.index(pending[f])):
                    ch = pending.pop(fut)
                    item = fut.result()
                    if isinstance(item, _Closed):
                        if item.error is not None:
                            logger.debug("%r closed with %r", ch, item.error)
                            if failure is None:
                                failure = item.error
                        finished.add(ch)
                        continue
                    if self.mode is MergeMode.SEQUENTIAL:
                        buffers[ch].append(item)
                    elif item.kind is EventKind.PHASE_DONE:
                        held[ch] = item
                    else:
                        arrivals.append(item)
                    pending[asyncio.ensure_future(ch.get())] = ch

                if self.mode is MergeMode.SEQUENTIAL:
                    ready = self._release_sequential(order, buffers, finished)
                else:
                    ready = list(arrivals)
                    arrivals.clear()
                for event in ready:
                    if cancelled is not None and cancelled.is_set():
                        raise DebateCancelled()
                    yield event

            if self.mode is MergeMode.INTERLEAVED:
                for ch in order:
                    if ch in held:
                        yield held[ch]
            if failure is not None:
                raise failure
        finally:
            for fut in pending:
                fut.cancel()
            if cancel_wait is not None:
                cancel_wait.cancel()

    @staticmethod
    def _release_sequential(
        order: list[Channel],
        buffers: dict[Channel, deque[DebateEvent]],
        finished: set[Channel],
    ) -> list[DebateEvent]:
        released: list[DebateEvent] = []
        for ch in order:
            while buffers[ch]:
                released.append(buffers[ch].popleft())
            if ch not in finished:
                break
        return released
