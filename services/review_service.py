"""
Review Service: Engine Facade for Review Generation and Template Pools

Single entry point for callers (HTTP routes, workers, scripts):
- Explicit review generation and SEO scoring
- Model discovery for provider configuration screens
- Template consumption and pool maintenance
- Customer-facing unique reviews with template fallback
- Category batch generation and manual template creation

Design Pattern: Service Layer over injected engine components
"""

import asyncio
import random
from typing import Optional, Sequence

from loguru import logger

from config.constants import (
    MANUAL_TEMPLATE_WORD_COUNT_RANGE,
    REWRITE_KEYWORD_LIMIT,
    VARIATION_ANGLES,
)
from config.settings import LifecycleSettings, get_settings
from core.enums import RegenerationTrigger, TemplateStatus, Tone, UniqueReviewMethod
from core.exceptions import (
    EntityNotFoundError,
    GenerationError,
    MissingCredentialsError,
    NoTemplatesAvailableError,
    ReferenceViolationError,
    StorageError,
)
from core.models import (
    GenerationRequest,
    GenerationResult,
    ModelInfo,
    Template,
    UniqueReview,
)
from execution.prompt_builder import (
    build_rewrite_prompt,
    compose_business_context,
    compose_variation_context,
)
from execution.review_generator import ReviewGenerator
from infrastructure.model_discovery import ModelDiscoveryService
from infrastructure.monitoring import MetricsCollector
from intelligence.seo_scorer import compute_seo_score
from knowledge.template_store import TemplateStore
from orchestration.template_lifecycle import TemplateLifecycleManager, derive_category_keywords


class ReviewService:
    """
    Service layer for the review template engine.

    Generation errors surface to the caller on explicit generation; every
    customer-facing path degrades to an existing template instead.
    """

    def __init__(
        self,
        template_store: TemplateStore,
        review_generator: ReviewGenerator,
        lifecycle_manager: TemplateLifecycleManager,
        model_discovery: ModelDiscoveryService,
        settings: Optional[LifecycleSettings] = None,
        metrics: Optional[MetricsCollector] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = template_store
        self.generator = review_generator
        self.lifecycle = lifecycle_manager
        self.discovery = model_discovery
        self.settings = settings or get_settings().lifecycle
        self.metrics = metrics
        self._random = rng or random.Random()
        logger.debug("ReviewService initialized")

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def generate_reviews(
        self, request: GenerationRequest, api_key: Optional[str] = None
    ) -> GenerationResult:
        """Generate scored reviews; raises GenerationError subclasses on failure."""
        return await self.generator.generate_reviews(request, api_key=api_key)

    async def discover_models(self, provider: str, api_key: Optional[str] = None) -> list[ModelInfo]:
        return await self.discovery.discover_models(provider, api_key)

    async def clear_model_cache(self, provider: Optional[str] = None) -> None:
        await self.discovery.clear_cache(provider)

    def get_all_fallback_models(self) -> dict[str, list[ModelInfo]]:
        return self.discovery.get_all_fallback_models()

    def compute_seo_score(self, text: str, keywords: Sequence[str]) -> int:
        return compute_seo_score(text, keywords)

    async def on_template_consumed(self, template_id: str, business_id: str) -> None:
        """Delete a copied template and replace it in the background."""
        await self.lifecycle.on_template_consumed(template_id, business_id)

    async def ensure_pool_size(self, category_id: str, business_id: str) -> int:
        return await self.lifecycle.ensure_pool_size(category_id, business_id)

    def schedule_pool_check(self, category_id: str, business_id: str) -> asyncio.Task:
        return self.lifecycle.schedule_pool_check(category_id, business_id)

    async def shutdown(self) -> None:
        """Let in-flight background regenerations finish."""
        await self.lifecycle.wait_for_background_tasks()

    # ------------------------------------------------------------------
    # Customer-facing unique reviews
    # ------------------------------------------------------------------

    def pick_fallback_template(self, templates: Sequence[Template]) -> Template:
        """Uniformly random template; the degraded path when AI is unavailable."""
        if not templates:
            raise ValueError("Cannot pick a fallback from an empty template list")
        return self._random.choice(list(templates))

    def _template_review(self, templates: Sequence[Template]) -> UniqueReview:
        template = self.pick_fallback_template(templates)
        return UniqueReview(
            content=template.content, method=UniqueReviewMethod.TEMPLATE, template_id=template.id
        )

    async def generate_unique_review(self, business_id: str) -> UniqueReview:
        """
        Produce a fresh review for a customer by rewriting a random template.

        Falls back to a random active template when no provider is configured,
        generation fails, or the provider returns nothing.

        Raises:
            EntityNotFoundError: Unknown business
            NoTemplatesAvailableError: The business has no active templates
        """
        business = await self.store.get_business(business_id)
        if business is None:
            raise EntityNotFoundError("Business", business_id)

        templates = await self.store.list_active_templates(business_id)
        if not templates:
            raise NoTemplatesAvailableError(business_id)

        config = await self.store.get_active_provider_config(business_id)
        if config is None:
            logger.info(f"No active AI provider, serving template | business_id={business_id}")
            return self._template_review(templates)

        base = self.pick_fallback_template(templates)
        keywords = base.seo_keywords[:REWRITE_KEYWORD_LIMIT] or derive_category_keywords(
            business.name
        )[:REWRITE_KEYWORD_LIMIT]

        request = GenerationRequest(
            business_context=compose_business_context(business),
            keywords=keywords,
            count=1,
            tone=Tone.PROFESSIONAL,
            provider_id=config.provider.value,
            model_id=config.model_id,
            custom_prompt_override=build_rewrite_prompt(base.content, keywords),
            business_id=business_id,
        )

        try:
            result = await self.generator.generate_reviews(request)
        except GenerationError as e:
            logger.warning(
                f"AI rewrite failed, serving template | business_id={business_id} | error={e.message}"
            )
            return self._template_review(templates)

        if not result.reviews:
            logger.warning(f"AI rewrite returned nothing, serving template | business_id={business_id}")
            return self._template_review(templates)

        return UniqueReview(
            content=result.reviews[0].text, method=UniqueReviewMethod.AI, template_id=base.id
        )

    # ------------------------------------------------------------------
    # Template authoring
    # ------------------------------------------------------------------

    async def generate_category_batch(
        self,
        category_id: str,
        business_id: str,
        business_context: str,
        keywords: Sequence[str],
        word_counts: Optional[Sequence[int]] = None,
        tone: Tone = Tone.PROFESSIONAL,
    ) -> list[Template]:
        """
        Generate one template per word count, each with its own variation angle.

        Individual failures are logged and skipped.

        Raises:
            EntityNotFoundError: Unknown category
            ReferenceViolationError: The category belongs to another business
            MissingCredentialsError: The business has no active provider
        """
        category = await self.store.get_category(category_id)
        if category is None:
            raise EntityNotFoundError("Category", category_id)
        if category.business_id != business_id:
            raise ReferenceViolationError("Category", "business", business_id)

        config = await self.store.get_active_provider_config(business_id)
        if config is None:
            raise MissingCredentialsError(
                "none",
                business_id=business_id,
                message="No active AI model configured. Please configure an AI model first.",
            )

        keywords = [k for k in keywords if k and k.strip()] or derive_category_keywords(
            category.name, category.description
        )
        counts = list(word_counts or self.settings.category_batch_word_counts)

        logger.info(
            f"Generating category batch | category_id={category_id} | "
            f"provider={config.provider} | templates={len(counts)}"
        )

        created: list[Template] = []
        for index, word_count in enumerate(counts):
            angle = VARIATION_ANGLES[index % len(VARIATION_ANGLES)]
            try:
                request = GenerationRequest(
                    business_context=compose_variation_context(business_context, word_count, angle),
                    keywords=keywords,
                    count=1,
                    tone=tone,
                    length=word_count,
                    provider_id=config.provider.value,
                    model_id=config.model_id,
                    business_id=business_id,
                )
                result = await self.generator.generate_reviews(request)
                if not result.reviews:
                    raise GenerationError("Provider returned no reviews")

                review = result.reviews[0]
                template = await self.store.insert_template(
                    Template(
                        business_id=business_id,
                        category_id=category_id,
                        content=review.text,
                        seo_keywords=list(request.keywords),
                        seo_score=review.seo_score,
                        word_count_target=word_count,
                        is_manual=False,
                        status=TemplateStatus.ACTIVE,
                    )
                )
            except (GenerationError, StorageError, ValueError) as e:
                logger.error(
                    f"Batch template failed | category_id={category_id} | index={index} | "
                    f"word_count={word_count} | error={getattr(e, 'message', e)}"
                )
                self._record_batch("failure")
                continue

            created.append(template)
            self._record_batch("success")

        logger.info(
            f"Category batch finished | category_id={category_id} | "
            f"created={len(created)} | requested={len(counts)}"
        )
        return created

    def _record_batch(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_regeneration(RegenerationTrigger.CATEGORY_BATCH.value, outcome)

    async def create_manual_template(
        self,
        category_id: str,
        content: str,
        word_count: int,
        keywords: Optional[Sequence[str]] = None,
    ) -> Template:
        """
        Store a hand-written template.

        Raises:
            ValueError: Blank content or word count outside 10..200
            EntityNotFoundError: Unknown category
        """
        low, high = MANUAL_TEMPLATE_WORD_COUNT_RANGE
        if not low <= word_count <= high:
            raise ValueError(f"Word count must be between {low} and {high}, got {word_count}")
        if not content or not content.strip():
            raise ValueError("Template content cannot be empty")

        category = await self.store.get_category(category_id)
        if category is None:
            raise EntityNotFoundError("Category", category_id)

        keywords = [k.strip() for k in (keywords or []) if k and k.strip()] or derive_category_keywords(
            category.name, category.description
        )
        content = content.strip()

        template = await self.store.insert_template(
            Template(
                business_id=category.business_id,
                category_id=category_id,
                content=content,
                seo_keywords=keywords,
                seo_score=compute_seo_score(content, keywords),
                word_count_target=word_count,
                is_manual=True,
                status=TemplateStatus.ACTIVE,
            )
        )
        logger.info(
            f"Manual template created | template_id={template.id} | category_id={category_id} | "
            f"seo_score={template.seo_score}"
        )
        return template
