"""Resolve ``provider/model`` identifiers to adapter instances."""

import logging
from collections.abc import Callable

from config.config_loader import ProviderConfig
from ai_debate.providers.anthropic import AnthropicAdapter
from ai_debate.providers.base import ModelAdapter
from ai_debate.providers.gemini import GeminiAdapter
from ai_debate.providers.openai_provider import OpenAIAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[str, ProviderConfig], ModelAdapter]


def _openai_factory(identifier: str, cfg: ProviderConfig) -> ModelAdapter:
    return OpenAIAdapter(identifier, cfg.api_key, cfg.base_url, stream_usage=cfg.stream_usage)


def _anthropic_factory(identifier: str, cfg: ProviderConfig) -> ModelAdapter:
    return AnthropicAdapter(identifier, cfg.api_key, cfg.base_url)


def _gemini_factory(identifier: str, cfg: ProviderConfig) -> ModelAdapter:
    return GeminiAdapter(identifier, cfg.api_key, cfg.base_url)


SDK_FACTORIES: dict[str, AdapterFactory] = {
    "openai": _openai_factory,
    "anthropic": _anthropic_factory,
    "gemini": _gemini_factory,
}


def split_identifier(identifier: str) -> tuple[str, str]:
    """Split ``provider/model``; raises ValueError when either part is empty."""
    provider, sep, model = identifier.partition("/")
    if not sep or not provider or not model:
        raise ValueError(f"Model identifier must look like 'provider/model', got {identifier!r}")
    return provider, model


class AdapterRegistry:
    """Builds adapters on first use and caches them by identifier."""

    def __init__(
        self,
        providers: dict[str, ProviderConfig],
        factories: dict[str, AdapterFactory] | None = None,
    ) -> None:
        self._providers = dict(providers)
        self._factories = dict(SDK_FACTORIES if factories is None else factories)
        self._adapters: dict[str, ModelAdapter] = {}

    def register(self, adapter: ModelAdapter) -> None:
        """Register a pre-built adapter under its own identifier."""
        self._adapters[adapter.name()] = adapter

    def resolve(self, identifier: str) -> ModelAdapter:
        """Return the adapter for an identifier.

        Raises:
            ValueError: If the identifier is malformed, names an unknown
                provider, or the provider's sdk has no adapter.
        """
        if identifier in self._adapters:
            return self._adapters[identifier]
        provider_name, _ = split_identifier(identifier)
        cfg = self._providers.get(provider_name)
        if cfg is None:
            raise ValueError(f"Unknown provider '{provider_name}' in {identifier!r}")
        factory = self._factories.get(cfg.sdk)
        if factory is None:
            raise ValueError(f"No adapter for sdk '{cfg.sdk}' (provider '{provider_name}')")
        adapter = factory(identifier, cfg)
        if not cfg.api_key:
            logger.warning("Adapter %s has no API key (%s); calls will fail over", identifier, cfg.api_key_env)
        self._adapters[identifier] = adapter
        return adapter

    def resolve_chain(self, identifiers: tuple[str, ...]) -> list[ModelAdapter]:
        return [self.resolve(i) for i in identifiers]
