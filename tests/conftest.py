"""Shared pytest fixtures."""

import asyncio
from pathlib import Path

import pytest

from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    PromptsConfig,
    ProviderConfig,
    RoleConfig,
    TimeoutsConfig,
)
from ai_debate.debate import DebateEngine
from ai_debate.errors import SearchError
from ai_debate.models import Phase, Role, Turn, Usage
from ai_debate.prompts import PromptBuilder
from ai_debate.providers.base import ChatRequest, ModelAdapter, StreamChunk, ToolCall
from ai_debate.providers.registry import AdapterRegistry
from ai_debate.tools import SearchHit, SearchProvider, SearchResponse, ToolBridge


class ScriptedAdapter(ModelAdapter):
    """Test double adapter that replays one scripted response per call.

    Each script entry is either an exception (raised immediately) or a list
    whose items are StreamChunks (yielded), floats (awaited as sleeps), or
    exceptions (raised mid-stream). When the script runs out, every call
    answers with ``default_text`` plus a usage chunk.
    """

    def __init__(self, identifier: str, script: list | None = None, default_text: str | None = None) -> None:
        super().__init__(identifier, api_key="test-key")
        self.script = list(script or [])
        self.default_text = default_text if default_text is not None else f"Argument from {identifier}."
        self.requests: list[ChatRequest] = []

    async def stream(self, request: ChatRequest):
        self.requests.append(request)
        entry = self.script.pop(0) if self.script else [
            StreamChunk.content(self.default_text),
            StreamChunk.tokens(20, 10),
        ]
        if isinstance(entry, BaseException):
            raise entry
        for item in entry:
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, (int, float)):
                await asyncio.sleep(item)
                continue
            yield item


class StaticSearch(SearchProvider):
    """Test double search provider that records queries."""

    def __init__(self, hits: list[SearchHit] | None = None, fail: bool = False, delay: float = 0.0) -> None:
        self.hits = hits if hits is not None else [
            SearchHit(title="Study", snippet="Remote workers were 13% more productive.", url="https://example.com/study"),
        ]
        self.fail = fail
        self.delay = delay
        self.queries: list[str] = []

    async def search(self, query: str) -> SearchResponse:
        self.queries.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise SearchError("backend unavailable")
        return SearchResponse(hits=list(self.hits), answer="")


def search_call(query: str = "remote work productivity", call_id: str = "call_1") -> StreamChunk:
    return StreamChunk.call(ToolCall(id=call_id, name="web_search", arguments=f'{{"query": "{query}"}}'))


def text_reply(text: str, prompt_tokens: int = 20, completion_tokens: int = 10) -> list[StreamChunk]:
    return [StreamChunk.content(text), StreamChunk.tokens(prompt_tokens, completion_tokens)]


JUDGE_TEXT = "## Reasoning\n- Pro cited evidence.\n\n## Verdict\nPro argued better.\nWinner: Pro"


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        side="{stance}\nMotion: {topic}\nPhase: {phase_goal}{tool_instruction}",
        judge="You are the judge.\nMotion: {topic}",
        history="Debate so far:\n{history}",
        turn="Deliver your {phase_title} now.",
        search_instruction="\nUse web_search for evidence.",
        recovery_notice="\n[{failed} -> {adapter}]\n",
        stances={"pro": "You argue FOR the motion.", "con": "You argue AGAINST the motion."},
        phase_goals={
            "opening": "Opening statement",
            "rebuttal": "Rebuttal",
            "defense": "Defense",
            "closing": "Closing statement",
        },
    )


@pytest.fixture
def sample_roles() -> dict[str, RoleConfig]:
    return {
        "pro": RoleConfig(model="fake/pro", fallbacks=("fake/backup",)),
        "con": RoleConfig(model="fake/con", fallbacks=("fake/backup",)),
        "judge": RoleConfig(model="fake/judge", fallbacks=("fake/backup",), temperature=0.3, max_tokens=1024),
    }


@pytest.fixture
def sample_app_config(
    tmp_path: Path,
    sample_prompts_config: PromptsConfig,
    sample_roles: dict[str, RoleConfig],
) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(
            tools_enabled=False,
            output_dir=tmp_path / "output",
            database=tmp_path / "debate.db",
        ),
        roles=sample_roles,
        providers={
            "fake": ProviderConfig(name="fake", sdk="fake", api_key_env="FAKE_API_KEY", api_key="test-key"),
        },
        prompts=sample_prompts_config,
        timeouts=TimeoutsConfig(stall_sec=2.0, attempt_sec=5.0, tool_sec=1.0, health_sec=1.0),
        available_providers=frozenset({"fake"}),
    )


@pytest.fixture
def prompt_builder(sample_prompts_config: PromptsConfig, sample_roles: dict[str, RoleConfig]) -> PromptBuilder:
    return PromptBuilder(sample_prompts_config, sample_roles)


@pytest.fixture
def adapters() -> dict[str, ScriptedAdapter]:
    judge = ScriptedAdapter("fake/judge", default_text=JUDGE_TEXT)
    return {
        "fake/pro": ScriptedAdapter("fake/pro"),
        "fake/con": ScriptedAdapter("fake/con"),
        "fake/judge": judge,
        "fake/backup": ScriptedAdapter("fake/backup", default_text="Backup argument."),
    }


@pytest.fixture
def registry(sample_app_config: AppConfig, adapters: dict[str, ScriptedAdapter]) -> AdapterRegistry:
    reg = AdapterRegistry(sample_app_config.providers, factories={})
    for adapter in adapters.values():
        reg.register(adapter)
    return reg


@pytest.fixture
def search_provider() -> StaticSearch:
    return StaticSearch()


@pytest.fixture
def engine(sample_app_config: AppConfig, registry: AdapterRegistry) -> DebateEngine:
    return DebateEngine(sample_app_config, registry)


@pytest.fixture
def tool_engine(
    sample_app_config: AppConfig,
    registry: AdapterRegistry,
    search_provider: StaticSearch,
) -> DebateEngine:
    return DebateEngine(sample_app_config, registry, tool_bridge=ToolBridge(search_provider, timeout=1.0))


@pytest.fixture
def sample_turns() -> tuple[Turn, ...]:
    return (
        Turn(Role.PRO, Phase.OPENING, "fake/pro", "Remote work raises productivity.", Usage(20, 10)),
        Turn(Role.CON, Phase.OPENING, "fake/con", "Remote work erodes collaboration.", Usage(22, 12)),
    )
