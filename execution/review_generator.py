"""
Review Generator: Provider-Agnostic Generation Orchestrator

Turns a GenerationRequest into scored reviews:
1. Resolve the adapter from the request's provider id
2. Resolve the API key and model (explicit > business config > settings)
3. Render the prompt and call the vendor
4. Discard model-reported scores and re-score every review locally

Stateless apart from injected collaborators, so one instance serves
concurrent requests. API keys travel as explicit arguments to the adapter and
are only ever logged masked.

Architectural Pattern: Strategy (adapter per vendor) + Pipeline
"""

import time
from datetime import datetime
from typing import Mapping, Optional, Sequence

from loguru import logger

from config.settings import LLMSettings, get_settings
from core.enums import ProviderName
from core.exceptions import (
    GenerationFailedError,
    MissingCredentialsError,
    ProviderError,
    UnsupportedProviderError,
)
from core.models import (
    GeneratedReview,
    GenerationRequest,
    GenerationResult,
    ProviderConfig,
    mask_secret,
)
from execution.prompt_builder import build_prompt
from infrastructure.llm_client import AbstractProviderAdapter
from infrastructure.monitoring import MetricsCollector
from intelligence.seo_scorer import compute_seo_score
from knowledge.template_store import TemplateStore


def filter_keywords_used(reported: Sequence[str], requested: Sequence[str]) -> list[str]:
    """
    Keep reported keywords that match a requested keyword (case-insensitive).

    Entries are deduplicated and keep the model's order; the request's
    spelling is used for each match.
    """
    canonical = {keyword.lower(): keyword for keyword in requested}
    kept: list[str] = []
    seen: set[str] = set()
    for keyword in reported:
        normalized = keyword.strip().lower()
        if normalized in canonical and normalized not in seen:
            seen.add(normalized)
            kept.append(canonical[normalized])
    return kept


class ReviewGenerator:
    """Routes generation requests to vendor adapters and scores the output."""

    def __init__(
        self,
        adapters: Mapping[ProviderName, AbstractProviderAdapter],
        template_store: Optional[TemplateStore] = None,
        settings: Optional[LLMSettings] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.adapters = dict(adapters)
        self.template_store = template_store
        self.settings = settings or get_settings().llm
        self.metrics = metrics

        logger.info(
            f"ReviewGenerator initialized | providers={[p.value for p in self.adapters]}"
        )

    def _resolve_adapter(self, provider_id: str) -> tuple[ProviderName, AbstractProviderAdapter]:
        supported = [p.value for p in self.adapters]
        try:
            provider = ProviderName.parse(provider_id)
        except ValueError:
            raise UnsupportedProviderError(provider_id, supported=supported) from None

        adapter = self.adapters.get(provider)
        if adapter is None:
            raise UnsupportedProviderError(provider_id, supported=supported)
        return provider, adapter

    async def _provider_config(
        self, business_id: Optional[str], provider: ProviderName
    ) -> Optional[ProviderConfig]:
        if not business_id or self.template_store is None:
            return None
        config = await self.template_store.get_active_provider_config(business_id)
        if config is None or config.provider != provider:
            return None
        return config

    def _resolve_api_key(
        self,
        provider: ProviderName,
        explicit: Optional[str],
        config: Optional[ProviderConfig],
        business_id: Optional[str],
    ) -> str:
        candidates = (
            explicit,
            config.api_key.get_secret_value() if config else None,
            self.settings.api_key_for(provider),
        )
        for candidate in candidates:
            if candidate and candidate.strip():
                return candidate.strip()
        raise MissingCredentialsError(provider.value, business_id=business_id)

    async def generate_reviews(
        self, request: GenerationRequest, api_key: Optional[str] = None
    ) -> GenerationResult:
        """
        Generate and score reviews for ``request``.

        Args:
            request: Validated generation request
            api_key: Explicit key; overrides business config and settings

        Returns:
            GenerationResult with locally recomputed SEO scores

        Raises:
            UnsupportedProviderError: Unknown provider id
            MissingCredentialsError: No usable key could be resolved
            GenerationFailedError: The vendor call failed (chained to the ProviderError)
        """
        provider, adapter = self._resolve_adapter(request.provider_id)

        try:
            config = await self._provider_config(request.business_id, provider)
            key = self._resolve_api_key(provider, api_key, config, request.business_id)
        except MissingCredentialsError:
            self._record(provider, "rejected")
            raise

        model_id = request.model_id or (config.model_id if config else None) or adapter.default_model
        prompt = build_prompt(request)

        logger.info(
            f"Generating reviews | provider={provider} | model={model_id} | "
            f"count={request.count} | api_key={mask_secret(key)}"
        )

        started = time.perf_counter()
        try:
            raw_reviews = await adapter.generate(
                model_id, prompt, key, self.settings.max_output_tokens
            )
        except ProviderError as e:
            latency = time.perf_counter() - started
            self._record(provider, "failure", latency)
            summary = e.vendor_message or "Unknown error"
            logger.error(
                f"Review generation failed | provider={provider} | model={model_id} | "
                f"error={type(e).__name__} | detail={summary}"
            )
            raise GenerationFailedError(
                summary, provider=provider.value, model_id=model_id, cause=e
            ) from e

        latency = time.perf_counter() - started
        reviews = [self._score(review, request.keywords) for review in raw_reviews]
        self._record(provider, "success", latency, len(reviews))

        logger.success(
            f"Reviews generated | provider={provider} | model={model_id} | "
            f"count={len(reviews)} | latency={latency:.2f}s"
        )
        return GenerationResult(
            reviews=reviews,
            provider=provider,
            model_id=model_id,
            generated_at=datetime.utcnow(),
        )

    @staticmethod
    def _score(review: GeneratedReview, keywords: Sequence[str]) -> GeneratedReview:
        return GeneratedReview(
            text=review.text,
            keywords_used=filter_keywords_used(review.keywords_used, keywords),
            seo_score=compute_seo_score(review.text, keywords),
        )

    def _record(
        self,
        provider: ProviderName,
        outcome: str,
        latency: Optional[float] = None,
        review_count: int = 0,
    ) -> None:
        if self.metrics:
            self.metrics.record_generation(provider.value, outcome, latency, review_count)
