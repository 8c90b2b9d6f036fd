"""
Template Store: Record Access for Businesses, Categories and Templates

Defines the async storage protocol the engine depends on, plus an in-memory
implementation used by tests and local runs. Production deployments inject
their own store implementing ``TemplateStore``.

Contract:
- Getters return None when a record is absent
- Failures raise StorageError (or a subclass)
- Deleting a category cascades to its templates
- Inserting a template for a missing category raises ReferenceViolationError

Design Pattern: Repository Pattern behind a structural Protocol
"""

import asyncio
from typing import Optional, Protocol, runtime_checkable

from loguru import logger

from core.exceptions import EntityNotFoundError, ReferenceViolationError
from core.models import Business, Category, ProviderConfig, Template, TemplateWithCategory


@runtime_checkable
class TemplateStore(Protocol):
    """Async record store consumed by the lifecycle manager and review service."""

    async def get_business(self, business_id: str) -> Optional[Business]: ...

    async def get_category(self, category_id: str) -> Optional[Category]: ...

    async def count_active_templates(self, category_id: str) -> int: ...

    async def insert_template(self, template: Template) -> Template: ...

    async def delete_template(self, template_id: str) -> bool: ...

    async def get_template_with_category(self, template_id: str) -> Optional[TemplateWithCategory]: ...

    async def get_active_provider_config(self, business_id: str) -> Optional[ProviderConfig]: ...

    async def list_active_templates(
        self, business_id: str, category_id: Optional[str] = None
    ) -> list[Template]: ...


class InMemoryTemplateStore:
    """
    Dict-backed TemplateStore.

    Writes are serialized with an asyncio.Lock; records are copied on the way
    in and out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._businesses: dict[str, Business] = {}
        self._categories: dict[str, Category] = {}
        self._templates: dict[str, Template] = {}
        self._provider_configs: dict[str, ProviderConfig] = {}
        self._lock = asyncio.Lock()
        logger.debug("InMemoryTemplateStore initialized")

    # ------------------------------------------------------------------
    # Seeding (outside the engine protocol)
    # ------------------------------------------------------------------

    async def add_business(self, business: Business) -> Business:
        async with self._lock:
            self._businesses[business.id] = business.model_copy()
        return business

    async def add_category(self, category: Category) -> Category:
        async with self._lock:
            if category.business_id not in self._businesses:
                raise ReferenceViolationError("Category", "business", category.business_id)
            self._categories[category.id] = category.model_copy()
        return category

    async def add_provider_config(self, config: ProviderConfig) -> ProviderConfig:
        async with self._lock:
            if config.business_id not in self._businesses:
                raise ReferenceViolationError("ProviderConfig", "business", config.business_id)
            self._provider_configs[config.id] = config.model_copy()
        logger.debug(
            f"Provider config stored | business_id={config.business_id} | "
            f"provider={config.provider} | api_key={config.masked_api_key}"
        )
        return config

    async def delete_category(self, category_id: str) -> int:
        """Delete a category and its templates; returns the number of templates removed."""
        async with self._lock:
            if self._categories.pop(category_id, None) is None:
                raise EntityNotFoundError("Category", category_id)
            orphaned = [tid for tid, t in self._templates.items() if t.category_id == category_id]
            for template_id in orphaned:
                del self._templates[template_id]
        logger.info(f"Category deleted | category_id={category_id} | templates_removed={len(orphaned)}")
        return len(orphaned)

    # ------------------------------------------------------------------
    # TemplateStore protocol
    # ------------------------------------------------------------------

    async def get_business(self, business_id: str) -> Optional[Business]:
        business = self._businesses.get(business_id)
        return business.model_copy() if business else None

    async def get_category(self, category_id: str) -> Optional[Category]:
        category = self._categories.get(category_id)
        return category.model_copy() if category else None

    async def count_active_templates(self, category_id: str) -> int:
        return sum(
            1 for t in self._templates.values() if t.category_id == category_id and t.is_active
        )

    async def insert_template(self, template: Template) -> Template:
        async with self._lock:
            category = self._categories.get(template.category_id)
            if category is None:
                raise ReferenceViolationError("Template", "category", template.category_id)
            if category.business_id != template.business_id:
                raise ReferenceViolationError("Template", "business", template.business_id)
            self._templates[template.id] = template.model_copy()
        return template

    async def delete_template(self, template_id: str) -> bool:
        async with self._lock:
            return self._templates.pop(template_id, None) is not None

    async def get_template(self, template_id: str) -> Optional[Template]:
        template = self._templates.get(template_id)
        return template.model_copy() if template else None

    async def get_template_with_category(self, template_id: str) -> Optional[TemplateWithCategory]:
        template = self._templates.get(template_id)
        if template is None:
            return None
        category = self._categories.get(template.category_id)
        if category is None:
            return None
        return TemplateWithCategory(template=template.model_copy(), category=category.model_copy())

    async def get_active_provider_config(self, business_id: str) -> Optional[ProviderConfig]:
        active = [
            c for c in self._provider_configs.values() if c.business_id == business_id and c.is_active
        ]
        if not active:
            return None
        return max(active, key=lambda c: c.created_at).model_copy()

    async def list_active_templates(
        self, business_id: str, category_id: Optional[str] = None
    ) -> list[Template]:
        templates = [
            t
            for t in self._templates.values()
            if t.business_id == business_id
            and t.is_active
            and (category_id is None or t.category_id == category_id)
        ]
        templates.sort(key=lambda t: t.created_at)
        return [t.model_copy() for t in templates]
