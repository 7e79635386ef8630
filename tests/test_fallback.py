"""Tests for ai_debate/fallback.py — sequential substitution across adapters."""

import logging

import pytest

from ai_debate.errors import FallbackExhaustedError
from ai_debate.fallback import FallbackPolicy
from ai_debate.providers.base import ChatRequest, ChunkKind, ErrorKind, Message, ProviderError, StreamChunk

from tests.conftest import ScriptedAdapter, text_reply

_REQUEST = ChatRequest(messages=(Message.user("Argue for the motion."),))


async def _drain(policy: FallbackPolicy) -> list[StreamChunk]:
    return [chunk async for chunk in policy.execute(_REQUEST)]


def _text(chunks: list[StreamChunk]) -> str:
    return "".join(c.text for c in chunks if c.kind is ChunkKind.TEXT)


async def test_primary_success_needs_no_fallback():
    primary = ScriptedAdapter("deepseek/deepseek-chat", script=[text_reply("Solar is cheap.")])
    backup = ScriptedAdapter("mistral/mistral-small-latest")
    policy = FallbackPolicy([primary, backup])

    chunks = await _drain(policy)

    assert _text(chunks) == "Solar is cheap."
    assert policy.active is primary
    assert policy.substitutions == 0
    assert backup.requests == []


async def test_rate_limited_primary_substitutes_once(caplog):
    primary = ScriptedAdapter(
        "deepseek/deepseek-chat",
        script=[ProviderError("deepseek/deepseek-chat", "429 Too Many Requests", ErrorKind.RATE_LIMIT)],
    )
    backup = ScriptedAdapter("mistral/mistral-small-latest", script=[text_reply("Backup take.")])
    policy = FallbackPolicy([primary, backup])

    with caplog.at_level(logging.WARNING):
        chunks = await _drain(policy)

    substitutions = [c for c in chunks if c.kind is ChunkKind.SUBSTITUTION]
    assert len(substitutions) == 1
    assert substitutions[0].failed == "deepseek/deepseek-chat"
    assert substitutions[0].adapter == "mistral/mistral-small-latest"
    assert _text(chunks) == "Backup take."
    assert policy.active is backup
    assert backup.requests == [_REQUEST]
    assert "substituting mistral/mistral-small-latest" in caplog.text


async def test_failure_mid_stream_restarts_on_substitute():
    primary = ScriptedAdapter(
        "groq/llama",
        script=[[StreamChunk.content("Partial "), ProviderError("groq/llama", "reset", ErrorKind.TRANSIENT)]],
    )
    backup = ScriptedAdapter("mistral/small", script=[text_reply("Fresh answer.")])
    policy = FallbackPolicy([primary, backup])

    chunks = await _drain(policy)

    kinds = [c.kind for c in chunks]
    assert kinds.index(ChunkKind.SUBSTITUTION) == 1
    assert chunks[0].text == "Partial "
    assert "".join(c.text for c in chunks[2:] if c.kind is ChunkKind.TEXT) == "Fresh answer."


async def test_non_retryable_error_propagates_without_fallback():
    primary = ScriptedAdapter("zhipu/glm", script=[ProviderError("zhipu/glm", "bad request", ErrorKind.FATAL)])
    backup = ScriptedAdapter("mistral/small")
    policy = FallbackPolicy([primary, backup])

    with pytest.raises(ProviderError) as exc_info:
        await _drain(policy)

    assert exc_info.value.kind is ErrorKind.FATAL
    assert not isinstance(exc_info.value, FallbackExhaustedError)
    assert backup.requests == []


async def test_exhausted_chain_reports_every_attempt():
    primary = ScriptedAdapter("a/one", script=[ProviderError("a/one", "401", ErrorKind.AUTH)])
    backup = ScriptedAdapter("b/two", script=[ProviderError("b/two", "503", ErrorKind.TRANSIENT)])
    policy = FallbackPolicy([primary, backup])

    with pytest.raises(FallbackExhaustedError) as exc_info:
        await _drain(policy)

    assert [name for name, _ in exc_info.value.attempts] == ["a/one", "b/two"]
    assert not exc_info.value.retryable


async def test_stalled_stream_counts_as_transient():
    primary = ScriptedAdapter("slow/model", script=[[StreamChunk.content("Hmm"), 5.0, StreamChunk.content("never")]])
    backup = ScriptedAdapter("mistral/small", script=[text_reply("Quick.")])
    policy = FallbackPolicy([primary, backup], stall_timeout=0.05)

    chunks = await _drain(policy)

    assert "never" not in _text(chunks)
    assert _text(chunks).endswith("Quick.")
    assert "stalled" in policy.attempts[0][1]


async def test_attempt_timeout_bounds_whole_attempt():
    primary = ScriptedAdapter(
        "slow/model",
        script=[[StreamChunk.content("a"), 0.04, StreamChunk.content("b"), 0.04, StreamChunk.content("c"), 0.04]],
    )
    backup = ScriptedAdapter("mistral/small", script=[text_reply("Done.")])
    policy = FallbackPolicy([primary, backup], stall_timeout=1.0, attempt_timeout=0.06)

    chunks = await _drain(policy)

    assert policy.active is backup
    assert _text(chunks).endswith("Done.")


async def test_substitution_is_sticky_for_later_requests():
    primary = ScriptedAdapter("a/one", script=[ProviderError("a/one", "429", ErrorKind.RATE_LIMIT)])
    backup = ScriptedAdapter("b/two")
    policy = FallbackPolicy([primary, backup])

    await _drain(policy)
    await _drain(policy)

    assert len(primary.requests) == 1
    assert len(backup.requests) == 2


def test_policy_needs_an_adapter():
    with pytest.raises(ValueError):
        FallbackPolicy([])
