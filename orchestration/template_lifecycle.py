"""
Template Lifecycle Manager: Self-Healing Template Pools

Keeps each category's pool of ready-to-copy templates near its target size:
- Consumption: a copied template is deleted and exactly one replacement with
  the same word-count target is generated in the background
- Pool checks: a category below target is topped up one template at a time,
  cycling through the word-count ladder

Every path here is best-effort. Provider or storage failures are logged with
category id, word count and provider, then swallowed; the customer-facing call
that triggered the work never waits on or observes them.

Concurrency:
- Background work runs in asyncio tasks that the manager keeps strong
  references to until they finish
- Delete-then-regenerate is not atomic; concurrent regenerations may briefly
  overshoot the target

Architectural Pattern: Event-driven replenishment with fire-and-forget tasks
"""

import asyncio
from typing import Coroutine, Optional

from loguru import logger

from config.constants import (
    BASE_CATEGORY_KEYWORDS,
    MAX_DERIVED_KEYWORDS,
    MAX_TARGET_WORD_COUNT,
    MIN_TARGET_WORD_COUNT,
)
from config.settings import LifecycleSettings, get_settings
from core.enums import RegenerationTrigger, TemplateStatus
from core.exceptions import GenerationError, StorageError
from core.models import Category, GenerationRequest, Template
from execution.prompt_builder import compose_regeneration_context
from execution.review_generator import ReviewGenerator
from infrastructure.monitoring import MetricsCollector
from knowledge.template_store import TemplateStore


def derive_category_keywords(name: str, description: Optional[str] = None) -> list[str]:
    """
    Keywords for auto-generated templates of a category.

    The base keyword set, then name tokens longer than 2 characters, then
    description tokens longer than 3 characters; capped at 10 entries.
    """
    keywords = list(BASE_CATEGORY_KEYWORDS)
    keywords.extend(word for word in name.lower().split() if len(word) > 2)
    if description:
        keywords.extend(word for word in description.lower().split() if len(word) > 3)
    return keywords[:MAX_DERIVED_KEYWORDS]


class TemplateLifecycleManager:
    """Consumption-driven and target-driven template regeneration."""

    def __init__(
        self,
        template_store: TemplateStore,
        review_generator: ReviewGenerator,
        settings: Optional[LifecycleSettings] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = template_store
        self.generator = review_generator
        self.settings = settings or get_settings().lifecycle
        self.metrics = metrics

        self._background_tasks: set[asyncio.Task] = set()

        logger.info(
            f"TemplateLifecycleManager initialized | ladder={self.settings.word_count_ladder}"
        )

    # ------------------------------------------------------------------
    # Background task bookkeeping
    # ------------------------------------------------------------------

    @property
    def pending_tasks(self) -> int:
        return sum(1 for task in self._background_tasks if not task.done())

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_task_done)
        self._update_pending()
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        self._update_pending()
        if task.cancelled():
            logger.warning(f"Background task cancelled | task={task.get_name()}")
        elif task.exception() is not None:
            logger.error(
                f"Background task crashed | task={task.get_name()} | error={task.exception()!r}"
            )

    def _update_pending(self) -> None:
        if self.metrics:
            self.metrics.update_pending_regenerations(self.pending_tasks)

    def _record(self, trigger: RegenerationTrigger, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_regeneration(trigger.value, outcome)

    async def wait_for_background_tasks(self) -> None:
        """Wait until every in-flight regeneration has finished."""
        while True:
            pending = [task for task in self._background_tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    async def on_template_consumed(self, template_id: str, business_id: str) -> None:
        """
        Delete a copied template and schedule one replacement.

        Returns as soon as the replacement is scheduled. Never raises.
        """
        try:
            joined = await self.store.get_template_with_category(template_id)
            if joined is None:
                logger.warning(f"Consumed template not found | template_id={template_id}")
                return
            if joined.template.business_id != business_id:
                logger.warning(
                    f"Consumed template belongs to another business | template_id={template_id} | "
                    f"business_id={business_id}"
                )
                return
            if not await self.store.delete_template(template_id):
                logger.debug(f"Template already consumed | template_id={template_id}")
                return
        except StorageError as e:
            logger.error(
                f"Template consumption failed | template_id={template_id} | error={e.message}"
            )
            return
        except Exception:
            logger.exception(f"Unexpected error consuming template | template_id={template_id}")
            return

        word_count = joined.template.word_count_target
        logger.info(
            f"Template consumed | template_id={template_id} | "
            f"category_id={joined.category.id} | word_count={word_count}"
        )
        self._spawn(
            self.regenerate_template(
                joined.category, business_id, word_count, trigger=RegenerationTrigger.CONSUMPTION
            ),
            name=f"regenerate-template-{joined.category.id}",
        )

    async def regenerate_template(
        self,
        category: Category,
        business_id: str,
        word_count: int,
        trigger: RegenerationTrigger = RegenerationTrigger.CONSUMPTION,
    ) -> Optional[Template]:
        """
        Generate and store one active template for ``category``.

        Returns:
            The inserted template, or None if any step failed
        """
        provider = None
        try:
            config = await self.store.get_active_provider_config(business_id)
            if config is None:
                logger.warning(
                    f"No active AI provider configured, skipping regeneration | "
                    f"business_id={business_id} | category_id={category.id}"
                )
                self._record(trigger, "skipped")
                return None
            provider = config.provider.value

            business = await self.store.get_business(business_id)
            if business is None:
                logger.warning(f"Business not found, skipping regeneration | business_id={business_id}")
                self._record(trigger, "skipped")
                return None

            keywords = derive_category_keywords(category.name, category.description)
            request = GenerationRequest(
                business_context=compose_regeneration_context(business, category, word_count),
                keywords=keywords,
                count=1,
                tone=self.settings.regeneration_tone,
                length=max(MIN_TARGET_WORD_COUNT, min(MAX_TARGET_WORD_COUNT, word_count)),
                provider_id=provider,
                model_id=config.model_id,
                business_id=business_id,
            )
            result = await self.generator.generate_reviews(request)
            if not result.reviews:
                logger.warning(
                    f"Provider returned no reviews | category_id={category.id} | "
                    f"word_count={word_count} | provider={provider}"
                )
                self._record(trigger, "failure")
                return None

            review = result.reviews[0]
            template = await self.store.insert_template(
                Template(
                    business_id=business_id,
                    category_id=category.id,
                    content=review.text,
                    # Target set the score is computed against, not the subset the model reported
                    seo_keywords=keywords,
                    seo_score=review.seo_score,
                    word_count_target=word_count,
                    is_manual=False,
                    status=TemplateStatus.ACTIVE,
                )
            )
        except (GenerationError, StorageError) as e:
            logger.error(
                f"Template regeneration failed | category_id={category.id} | "
                f"word_count={word_count} | provider={provider} | error={e.message}"
            )
            self._record(trigger, "failure")
            return None
        except Exception:
            logger.exception(
                f"Unexpected error during template regeneration | category_id={category.id} | "
                f"word_count={word_count} | provider={provider}"
            )
            self._record(trigger, "failure")
            return None

        logger.success(
            f"Template regenerated | template_id={template.id} | category_id={category.id} | "
            f"word_count={word_count} | seo_score={template.seo_score} | trigger={trigger.value}"
        )
        self._record(trigger, "success")
        return template

    # ------------------------------------------------------------------
    # Pool size maintenance
    # ------------------------------------------------------------------

    async def ensure_pool_size(self, category_id: str, business_id: str) -> int:
        """
        Top a category's pool up to its target size.

        Missing templates are generated one call at a time, cycling through
        the word-count ladder from its first entry. Failed iterations are
        logged and skipped. Never raises.

        Returns:
            Number of templates inserted
        """
        try:
            category = await self.store.get_category(category_id)
            if category is None:
                logger.warning(f"Pool check for unknown category | category_id={category_id}")
                return 0
            if category.business_id != business_id:
                logger.warning(
                    f"Pool check for a category of another business | category_id={category_id} | "
                    f"business_id={business_id}"
                )
                return 0
            current = await self.store.count_active_templates(category_id)
        except StorageError as e:
            logger.error(f"Pool check failed | category_id={category_id} | error={e.message}")
            return 0

        target = (
            category.target_pool_size
            if category.target_pool_size is not None
            else self.settings.default_target_pool_size
        )
        shortfall = target - current
        if shortfall <= 0:
            logger.debug(
                f"Pool at target | category_id={category_id} | count={current} | "
                f"target={target}"
            )
            return 0

        logger.info(
            f"Replenishing template pool | category_id={category_id} | count={current} | "
            f"target={target} | shortfall={shortfall}"
        )

        ladder = self.settings.word_count_ladder
        inserted = 0
        for index in range(shortfall):
            word_count = ladder[index % len(ladder)]
            template = await self.regenerate_template(
                category, business_id, word_count, trigger=RegenerationTrigger.POOL_CHECK
            )
            if template is not None:
                inserted += 1

        logger.info(
            f"Pool replenishment finished | category_id={category_id} | "
            f"inserted={inserted} | shortfall={shortfall}"
        )
        return inserted

    def schedule_pool_check(self, category_id: str, business_id: str) -> asyncio.Task:
        """Run ``ensure_pool_size`` in the background."""
        return self._spawn(
            self.ensure_pool_size(category_id, business_id),
            name=f"pool-check-{category_id}",
        )
