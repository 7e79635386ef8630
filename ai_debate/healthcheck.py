"""Adapter health checks — ping each model endpoint before starting a debate."""

import asyncio
import logging

from ai_debate.providers.base import ChatRequest, Message, ModelAdapter

logger = logging.getLogger(__name__)

_PING_REQUEST = ChatRequest(
    messages=(Message.user("Reply with the word OK only."),),
    temperature=0.0,
    max_tokens=8,
)
_TIMEOUT_SEC = 15.0


async def _check_one(name: str, adapter: ModelAdapter, timeout: float) -> tuple[str, bool, str]:
    """Ping a single adapter. Returns (name, ok, error_message)."""
    try:
        await asyncio.wait_for(adapter.complete(_PING_REQUEST), timeout=timeout)
        return name, True, ""
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", name, exc)
        return name, False, str(exc) or type(exc).__name__


async def run_health_checks(
    adapters: dict[str, ModelAdapter],
    timeout: float | None = None,
) -> dict[str, tuple[bool, str]]:
    """Ping all adapters in parallel.

    Returns:
        Dict mapping adapter identifier -> (ok, error_message).
        error_message is "" when ok is True.
    """
    limit = _TIMEOUT_SEC if timeout is None else timeout
    results = await asyncio.gather(*(_check_one(n, a, limit) for n, a in adapters.items()))
    return {name: (ok, err) for name, ok, err in results}
