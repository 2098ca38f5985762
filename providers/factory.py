# providers/factory.py
"""Build provider adapters and rotating pool services from stored configurations."""

from __future__ import annotations

import structlog

from core.errors import UnknownProviderError
from models import (
    BackendConfig,
    BackendPoolConfig,
    BackendProvider,
    GenerationKind,
    is_backend_pool,
)
from storage.backend_repository import BackendRepository

from .base import ProviderAdapter
from .gemini_provider import GeminiAdapter
from .openai_provider import OpenAIAdapter
from .rotating import RotatingPoolService

logger = structlog.get_logger(__name__)

ADAPTER_REGISTRY: dict[BackendProvider, type[ProviderAdapter]] = {
    BackendProvider.GOOGLE: GeminiAdapter,
    BackendProvider.OPENAI: OpenAIAdapter,
}

CacheKey = tuple[BackendProvider, GenerationKind, str]


class ServiceCache:
    """Adapters keyed by provider, generation kind and secret."""

    def __init__(self) -> None:
        self._adapters: dict[CacheKey, ProviderAdapter] = {}

    @staticmethod
    def key_for(config: BackendConfig) -> CacheKey:
        return (config.provider, config.generation_kind, config.secret)

    def get(self, config: BackendConfig) -> ProviderAdapter | None:
        return self._adapters.get(self.key_for(config))

    def put(self, config: BackendConfig, adapter: ProviderAdapter) -> None:
        self._adapters[self.key_for(config)] = adapter

    def __len__(self) -> int:
        return len(self._adapters)

    def values(self) -> list[ProviderAdapter]:
        return list(self._adapters.values())

    def clear(self) -> None:
        self._adapters.clear()


class ServiceFactory:
    """Hand out one adapter per credential, reconfigured on every request."""

    def __init__(
        self,
        cache: ServiceCache | None = None,
        registry: dict[BackendProvider, type[ProviderAdapter]] | None = None,
    ) -> None:
        self.cache = cache if cache is not None else ServiceCache()
        self.registry = registry if registry is not None else dict(ADAPTER_REGISTRY)

    def create(self, config: BackendConfig) -> ProviderAdapter:
        """Return the cached adapter for ``config``'s credential, updated to ``config``."""
        adapter_cls = self.registry.get(config.provider)
        if adapter_cls is None:
            raise UnknownProviderError(f"Unknown provider '{config.provider}'.")

        adapter = self.cache.get(config)
        if adapter is None:
            adapter = adapter_cls(config)
            self.cache.put(config, adapter)
            logger.debug(
                "Created provider adapter.",
                provider=config.provider.value,
                generation_kind=config.generation_kind.value,
                backend_id=config.id,
            )
        else:
            adapter.update_config(config)
        return adapter

    def create_for(
        self, config: BackendConfig | BackendPoolConfig, repository: BackendRepository
    ) -> ProviderAdapter | RotatingPoolService:
        """Adapter for a single credential, rotating service for a pool."""
        if is_backend_pool(config):
            return RotatingPoolService(config, repository, self)
        return self.create(config)

    async def aclose(self) -> None:
        for adapter in self.cache.values():
            await adapter.aclose()
        self.cache.clear()
