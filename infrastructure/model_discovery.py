"""
Model Discovery: Cached Provider Catalogs with Static Fallback

Lists the models a vendor currently offers for a given API key, caching
results per (provider, key prefix) for a configurable TTL. Discovery never
fails outward: unknown providers yield an empty list, and missing keys,
vendor errors or empty listings degrade to a static catalog.

Concurrency: the cache is the only shared mutable structure and is guarded by
an asyncio.Lock. Vendor calls happen outside the lock, so two concurrent
misses for the same key may both hit the network; the later write wins.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from loguru import logger

from config.constants import API_KEY_CACHE_PREFIX_LENGTH, DISCOVERY_CACHE_TTL_SECONDS, FALLBACK_MODEL_CATALOG
from core.enums import ProviderName
from core.models import ModelInfo
from infrastructure.llm_client import AbstractProviderAdapter
from infrastructure.monitoring import MetricsCollector


@dataclass
class CacheEntry:
    """Cached model listing with its expiry instant."""

    models: list[ModelInfo]
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def fallback_models(provider: ProviderName) -> list[ModelInfo]:
    """Static catalog for ``provider``."""
    return [
        ModelInfo(id=model_id, name=name, provider=provider, context_length=context_length)
        for model_id, name, context_length in FALLBACK_MODEL_CATALOG.get(provider, ())
    ]


class ModelDiscoveryService:
    """Per-key cached model listings across all registered adapters."""

    def __init__(
        self,
        adapters: Mapping[ProviderName, AbstractProviderAdapter],
        ttl_seconds: int = DISCOVERY_CACHE_TTL_SECONDS,
        api_key_prefix_length: int = API_KEY_CACHE_PREFIX_LENGTH,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.adapters = dict(adapters)
        self.ttl_seconds = ttl_seconds
        self.api_key_prefix_length = api_key_prefix_length
        self._clock = clock
        self.metrics = metrics

        self._cache: dict[tuple[ProviderName, str], CacheEntry] = {}
        self._lock = asyncio.Lock()

    def _cache_key(self, provider: ProviderName, api_key: str) -> tuple[ProviderName, str]:
        return provider, api_key[: self.api_key_prefix_length]

    def _record(self, provider: ProviderName, event: str) -> None:
        if self.metrics:
            self.metrics.record_discovery_event(provider.value, event)

    async def discover_models(self, provider: str, api_key: Optional[str] = None) -> list[ModelInfo]:
        """
        List models for ``provider``.

        Args:
            provider: Provider name (case-insensitive)
            api_key: Vendor key; without one the static catalog is returned

        Returns:
            Live or fallback models; empty only for unsupported providers
        """
        try:
            name = ProviderName.parse(provider)
        except ValueError:
            logger.warning(f"Model discovery for unsupported provider | provider={provider}")
            return []

        if not api_key or not api_key.strip():
            self._record(name, "fallback")
            return fallback_models(name)

        api_key = api_key.strip()
        cache_key = self._cache_key(name, api_key)

        async with self._lock:
            entry = self._cache.get(cache_key)
            if entry and not entry.is_expired(self._clock()):
                self._record(name, "hit")
                return list(entry.models)

        self._record(name, "miss")
        models = await self._fetch(name, api_key)

        async with self._lock:
            self._cache[cache_key] = CacheEntry(
                models=models, expires_at=self._clock() + self.ttl_seconds
            )
        return list(models)

    async def _fetch(self, provider: ProviderName, api_key: str) -> list[ModelInfo]:
        adapter = self.adapters.get(provider)
        if adapter is None:
            logger.warning(f"No adapter registered for discovery | provider={provider}")
            self._record(provider, "fallback")
            return fallback_models(provider)

        try:
            models = await adapter.list_models(api_key)
        except Exception as e:
            logger.warning(
                f"Model discovery failed, using fallback catalog | provider={provider} | "
                f"error={type(e).__name__}: {getattr(e, 'message', e)}"
            )
            self._record(provider, "fallback")
            return fallback_models(provider)

        if not models:
            logger.info(f"Provider listed no models, using fallback catalog | provider={provider}")
            self._record(provider, "fallback")
            return fallback_models(provider)

        logger.info(f"Discovered models | provider={provider} | count={len(models)}")
        return models

    async def clear_cache(self, provider: Optional[str] = None) -> None:
        """Drop cached listings for one provider, or for all when ``provider`` is None."""
        async with self._lock:
            if provider is None:
                self._cache.clear()
                logger.info("Cleared model discovery cache")
                return

            name = ProviderName.parse(provider)
            for key in [k for k in self._cache if k[0] == name]:
                del self._cache[key]
            logger.info(f"Cleared model discovery cache | provider={name}")

    def get_all_fallback_models(self) -> dict[str, list[ModelInfo]]:
        return {provider.value: fallback_models(provider) for provider in ProviderName}

    @property
    def cache_size(self) -> int:
        return len(self._cache)
