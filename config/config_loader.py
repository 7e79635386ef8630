"""Load settings.yaml into frozen dataclasses. Resolves API keys at startup."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

# Env vars that replace a role's primary model identifier
_ROLE_MODEL_ENV = {
    "pro": "PRO_MODEL_ID",
    "con": "CON_MODEL_ID",
    "judge": "JUDGE_MODEL_ID",
}


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    sdk: str
    api_key_env: str
    api_key: str = ""
    base_url: str | None = None
    stream_usage: bool = True


@dataclass(frozen=True)
class RoleConfig:
    model: str
    fallbacks: tuple[str, ...] = ()
    temperature: float = 0.7
    max_tokens: int = 2048
    context_tokens: int = 6000
    reserved_tokens: int = 2048


@dataclass(frozen=True)
class TimeoutsConfig:
    stall_sec: float = 45.0
    attempt_sec: float = 240.0
    tool_sec: float = 20.0
    health_sec: float = 15.0


@dataclass(frozen=True)
class SearchConfig:
    api_key_env: str = "TAVILY_API_KEY"
    api_key: str = ""
    base_url: str = "https://api.tavily.com/search"
    max_results: int = 3
    snippet_chars: int = 300
    search_depth: str = "basic"


@dataclass(frozen=True)
class PromptsConfig:
    side: str
    judge: str
    history: str
    turn: str
    search_instruction: str
    recovery_notice: str
    stances: dict[str, str] = field(default_factory=dict)
    phase_goals: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DefaultsConfig:
    tools_enabled: bool = True
    max_tool_calls: int = 3
    merge_mode: str = "sequential"
    channel_size: int = 256
    max_topic_chars: int = 2000
    output_dir: Path = Path("./output")
    database: Path = Path("./debate.db")


@dataclass(frozen=True)
class AppConfig:
    defaults: DefaultsConfig
    roles: dict[str, RoleConfig]
    providers: dict[str, ProviderConfig]
    prompts: PromptsConfig
    timeouts: TimeoutsConfig = TimeoutsConfig()
    search: SearchConfig = SearchConfig()
    available_providers: frozenset[str] = frozenset()

    @property
    def search_enabled(self) -> bool:
        return bool(self.search.api_key)


def load_config(
    settings_path: Path = _SETTINGS_PATH,
    env: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    ``env`` defaults to ``os.environ``; it is read here only, so the engine
    receives every key and override as part of the returned AppConfig.

    Raises FileNotFoundError if settings file missing.
    Logs missing API keys but does not raise -- an adapter without a key
    fails with an auth error at call time, which the fallback chain handles.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")
    if env is None:
        env = os.environ

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw.get("defaults", {})
    defaults = DefaultsConfig(
        tools_enabled=bool(defaults_raw.get("tools_enabled", True)),
        max_tool_calls=int(defaults_raw.get("max_tool_calls", 3)),
        merge_mode=str(defaults_raw.get("merge_mode", "sequential")),
        channel_size=int(defaults_raw.get("channel_size", 256)),
        max_topic_chars=int(defaults_raw.get("max_topic_chars", 2000)),
        output_dir=Path(defaults_raw.get("output_dir", "./output")),
        database=Path(defaults_raw.get("database", "./debate.db")),
    )

    timeouts_raw = raw.get("timeouts", {})
    timeouts = TimeoutsConfig(**{k: float(v) for k, v in timeouts_raw.items()})

    roles: dict[str, RoleConfig] = {}
    for role_name, role_raw in raw["roles"].items():
        model = role_raw["model"]
        override_env = _ROLE_MODEL_ENV.get(role_name)
        override = env.get(override_env, "").strip() if override_env else ""
        if override:
            logger.info("Model for %s overridden by %s: %s", role_name, override_env, override)
            model = override
        roles[role_name] = RoleConfig(
            model=model,
            fallbacks=tuple(role_raw.get("fallbacks", [])),
            temperature=float(role_raw.get("temperature", 0.7)),
            max_tokens=int(role_raw.get("max_tokens", 2048)),
            context_tokens=int(role_raw.get("context_tokens", 6000)),
            reserved_tokens=int(role_raw.get("reserved_tokens", 2048)),
        )

    providers: dict[str, ProviderConfig] = {}
    available_providers: set[str] = set()

    for provider_name, provider_raw in raw["providers"].items():
        api_key = env.get(provider_raw["api_key_env"], "").strip()
        providers[provider_name] = ProviderConfig(
            name=provider_name,
            sdk=provider_raw["sdk"],
            api_key_env=provider_raw["api_key_env"],
            api_key=api_key,
            base_url=provider_raw.get("base_url"),
            stream_usage=bool(provider_raw.get("stream_usage", True)),
        )
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s — set %s in .env",
                provider_name,
                provider_raw["api_key_env"],
            )

    search_raw = dict(raw.get("search", {}))
    search_key_env = search_raw.pop("api_key_env", "TAVILY_API_KEY")
    search = SearchConfig(
        api_key_env=search_key_env,
        api_key=env.get(search_key_env, "").strip(),
        **search_raw,
    )
    if not search.api_key:
        logger.info("Web search disabled (no %s)", search_key_env)

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        side=prompts_raw["side"],
        judge=prompts_raw["judge"],
        history=prompts_raw["history"],
        turn=prompts_raw["turn"],
        search_instruction=prompts_raw.get("search_instruction", ""),
        recovery_notice=prompts_raw.get("recovery_notice", ""),
        stances={k: str(v) for k, v in prompts_raw.get("stances", {}).items()},
        phase_goals={k: str(v) for k, v in prompts_raw.get("phase_goals", {}).items()},
    )

    return AppConfig(
        defaults=defaults,
        roles=roles,
        providers=providers,
        prompts=prompts,
        timeouts=timeouts,
        search=search,
        available_providers=frozenset(available_providers),
    )
