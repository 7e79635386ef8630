"""Unit tests for ai_debate/healthcheck.py — no real API calls."""

from ai_debate import healthcheck as hc
from ai_debate.healthcheck import run_health_checks
from ai_debate.providers.base import ErrorKind, ProviderError, StreamChunk

from tests.conftest import ScriptedAdapter


async def test_all_adapters_pass():
    """All adapters succeed -> all marked ok, no errors."""
    adapters = {
        "deepseek/deepseek-chat": ScriptedAdapter("deepseek/deepseek-chat", default_text="OK"),
        "zhipu/glm-4-plus": ScriptedAdapter("zhipu/glm-4-plus", default_text="OK"),
    }

    results = await run_health_checks(adapters)

    assert results["deepseek/deepseek-chat"] == (True, "")
    assert results["zhipu/glm-4-plus"] == (True, "")


async def test_one_adapter_fails():
    """An adapter that raises returns ok=False with the error message."""
    adapters = {
        "deepseek/deepseek-chat": ScriptedAdapter("deepseek/deepseek-chat"),
        "xai/grok-3": ScriptedAdapter(
            "xai/grok-3", script=[ProviderError("xai/grok-3", "403 Forbidden", ErrorKind.AUTH)]
        ),
    }

    results = await run_health_checks(adapters)

    assert results["deepseek/deepseek-chat"] == (True, "")
    ok, err = results["xai/grok-3"]
    assert ok is False
    assert "403" in err


async def test_all_adapters_fail():
    """All fail -> all marked False."""
    adapters = {
        name: ScriptedAdapter(name, script=[RuntimeError("connection refused")])
        for name in ("groq/llama-3.3-70b-versatile", "mistral/mistral-small-latest")
    }

    results = await run_health_checks(adapters)

    assert all(not ok for ok, _ in results.values())
    assert all("connection refused" in err for _, err in results.values())


async def test_timeout_marks_adapter_failed(monkeypatch):
    """An adapter slower than the timeout is reported as failed."""
    monkeypatch.setattr(hc, "_TIMEOUT_SEC", 0.05)
    adapters = {"slow/model": ScriptedAdapter("slow/model", script=[[1.0, StreamChunk.content("OK")]])}

    results = await run_health_checks(adapters)

    ok, err = results["slow/model"]
    assert ok is False
    assert err == "TimeoutError"


async def test_ping_request_is_small_and_tool_free():
    adapter = ScriptedAdapter("fake/a", default_text="OK")
    await run_health_checks({"fake/a": adapter}, timeout=1.0)
    (request,) = adapter.requests
    assert request.tools == ()
    assert request.max_tokens <= 16


async def test_empty_adapter_dict():
    assert await run_health_checks({}) == {}
