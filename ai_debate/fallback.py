"""Sequential fallback across a primary adapter and its ordered substitutes."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing

from ai_debate.errors import FallbackExhaustedError
from ai_debate.providers.base import (
    ChatRequest,
    ChunkKind,
    ErrorKind,
    ModelAdapter,
    ProviderError,
    StreamChunk,
)

logger = logging.getLogger(__name__)


class FallbackPolicy:
    """Run a request against a chain of adapters, one at a time.

    A retryable failure (auth, rate limit, transient) moves to the next
    adapter and re-issues the full request; anything else propagates. The
    active position is sticky: once substituted, later ``execute`` calls on
    the same policy start at the substitute. Use one policy per Turn.

    Every attempt is bounded by ``stall_timeout`` (max silence between
    chunks) and ``attempt_timeout`` (wall-clock budget of the backend
    reads); exceeding either counts as a transient failure.
    """

    def __init__(
        self,
        adapters: Sequence[ModelAdapter],
        stall_timeout: float | None = None,
        attempt_timeout: float | None = None,
    ) -> None:
        if not adapters:
            raise ValueError("FallbackPolicy needs at least one adapter")
        self._adapters = list(adapters)
        self._index = 0
        self._stall_timeout = stall_timeout
        self._attempt_timeout = attempt_timeout
        self.attempts: list[tuple[str, str]] = []

    @property
    def active(self) -> ModelAdapter:
        return self._adapters[self._index]

    @property
    def substitutions(self) -> int:
        return self._index

    async def execute(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Yield chunks from the active adapter, substituting on retryable errors.

        A SUBSTITUTION chunk is yielded before each restart so callers can
        discard state from the failed attempt.

        Raises:
            ProviderError: Non-retryable failure of the active adapter.
            FallbackExhaustedError: The last adapter failed with a retryable error.
        """
        while True:
            adapter = self.active
            try:
                async with aclosing(self._guarded(adapter, request)) as chunks:
                    async for chunk in chunks:
                        yield chunk
                return
            except ProviderError as exc:
                if not exc.retryable:
                    logger.error("%s failed with non-retryable %s error: %s", adapter.name(), exc.kind.value, exc)
                    raise
                self.attempts.append((adapter.name(), str(exc)))
                if self._index + 1 >= len(self._adapters):
                    logger.error("Fallback chain exhausted after %d attempt(s)", len(self.attempts))
                    raise FallbackExhaustedError(self.attempts) from exc
                self._index += 1
                logger.warning(
                    "%s failed (%s), substituting %s",
                    adapter.name(), exc.kind.value, self.active.name(),
                )
                yield StreamChunk(
                    ChunkKind.SUBSTITUTION,
                    text=str(exc),
                    adapter=self.active.name(),
                    failed=adapter.name(),
                )

    async def _guarded(self, adapter: ModelAdapter, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        iterator = aiter(adapter.stream(request))
        deadline = None if self._attempt_timeout is None else time.monotonic() + self._attempt_timeout
        try:
            while True:
                timeout = self._stall_timeout
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise ProviderError(adapter.name(), f"Attempt exceeded {self._attempt_timeout}s", ErrorKind.TRANSIENT)
                    timeout = remaining if timeout is None else min(timeout, remaining)
                try:
                    chunk = await asyncio.wait_for(anext(iterator), timeout)
                except StopAsyncIteration:
                    return
                except TimeoutError as exc:
                    raise ProviderError(
                        adapter.name(), f"Stream stalled (no data for {timeout:.1f}s)", ErrorKind.TRANSIENT
                    ) from exc
                yield chunk
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()
