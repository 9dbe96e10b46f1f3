import logging
from typing import Dict, Iterable, List, Optional

from .config import Settings
from .errors import UnknownProviderError
from .providers import (
    AnthropicAdapter,
    BaseProviderAdapter,
    GeminiAdapter,
    GrokAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
)

logger = logging.getLogger(__name__)

# Alternative names accepted by ProviderRegistry.get
PROVIDER_ALIASES = {
    "claude": "anthropic",
    "google": "gemini",
    "xai": "grok",
}


class ProviderRegistry:
    """
    Mapping from provider id to adapter.

    Populated once by the composition root and read-only afterwards, so it
    can be shared between concurrent turns.
    """

    def __init__(self, adapters: Optional[Iterable[BaseProviderAdapter]] = None):
        self._adapters: Dict[str, BaseProviderAdapter] = {}
        for adapter in adapters or ():
            self.register(adapter)

    def register(self, adapter: BaseProviderAdapter) -> None:
        if adapter.provider_id in self._adapters:
            logger.debug("Replacing adapter for %s", adapter.provider_id)
        self._adapters[adapter.provider_id] = adapter

    def get(self, provider_id: str) -> BaseProviderAdapter:
        """
        Look up the adapter for a provider.

        Provider names are case-insensitive; aliases like 'claude' -> 'anthropic'
        are automatically handled.

        Raises:
            UnknownProviderError: If the provider is not registered.
        """
        key = (provider_id or "").lower()
        key = PROVIDER_ALIASES.get(key, key)
        try:
            return self._adapters[key]
        except KeyError:
            raise UnknownProviderError(
                f"Provider '{provider_id}' not configured or not supported.",
                provider=provider_id,
                hint=f"Configured providers: {', '.join(self.ids()) or 'none'}",
            ) from None

    def ids(self) -> List[str]:
        return sorted(self._adapters)

    def __contains__(self, provider_id: object) -> bool:
        return isinstance(provider_id, str) and (
            PROVIDER_ALIASES.get(provider_id.lower(), provider_id.lower()) in self._adapters
        )

    def __len__(self) -> int:
        return len(self._adapters)


def build_registry(settings: Settings) -> ProviderRegistry:
    """
    Create adapters for every provider that has an API key.

    We check each key independently so the registry can work with a subset
    of providers.
    """
    registry = ProviderRegistry()

    if settings.openai.api_key:
        registry.register(OpenAIAdapter(
            api_key=settings.openai.api_key,
            base_url=settings.openai.base_url,
            organization=settings.openai.organization,
        ))

    if settings.anthropic.api_key:
        registry.register(AnthropicAdapter(
            api_key=settings.anthropic.api_key,
            base_url=settings.anthropic.base_url,
        ))

    if settings.gemini.api_key:
        registry.register(GeminiAdapter(
            api_key=settings.gemini.api_key,
            base_url=settings.gemini.base_url,
        ))

    if settings.grok.api_key:
        registry.register(GrokAdapter(
            api_key=settings.grok.api_key,
            base_url=settings.grok.base_url,
        ))

    if settings.openrouter.api_key:
        registry.register(OpenRouterAdapter(
            api_key=settings.openrouter.api_key,
            base_url=settings.openrouter.base_url,
            http_referer=settings.openrouter.http_referer,
            app_title=settings.openrouter.app_title,
        ))

    logger.debug("Registered providers: %s", ", ".join(registry.ids()) or "none")
    return registry
