"""
Pytest Configuration and Fixture Library

Shared test infrastructure:
- Deterministic settings (no ambient vendor keys, no retry backoff)
- Seeded in-memory record store
- Scripted provider adapter with call counters and failure injection
- Wired generator / lifecycle manager / service factories

Design Pattern: Test Data Builder + Fixture Factory
"""

import asyncio
import os
import random
from datetime import datetime, timedelta
from typing import Callable, Optional

import pytest
import pytest_asyncio

# Vendor keys must never leak in from the developer's shell
os.environ.update(
    {
        "LLM_OPENAI_API_KEY": "",
        "LLM_ANTHROPIC_API_KEY": "",
        "LLM_GROQ_API_KEY": "",
        "LLM_GOOGLE_API_KEY": "",
    }
)

from config.constants import DEFAULT_MODELS
from config.settings import DiscoverySettings, LifecycleSettings, LLMSettings
from core.enums import ProviderName
from core.exceptions import ProviderUpstreamError
from core.models import Business, Category, GeneratedReview, ModelInfo, ProviderConfig, Template
from execution.review_generator import ReviewGenerator
from infrastructure.model_discovery import ModelDiscoveryService
from infrastructure.monitoring import MetricsCollector
from knowledge.template_store import InMemoryTemplateStore
from orchestration.template_lifecycle import TemplateLifecycleManager
from services.review_service import ReviewService

BUSINESS_API_KEY = "sk-business-key-0123456789abcdef"

SAMPLE_REVIEW_TEXT = (
    "Our kitchen renovation was handled by a professional crew who kept the site tidy. "
    "They explained every step, finished two days early, and the cabinets look superb. "
    "I would hire them again for the bathroom."
)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow-running (>1s)")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")


# ============================================================================
# SCRIPTED PROVIDER
# ============================================================================


class FakeProviderAdapter:
    """
    In-process stand-in for a vendor adapter.

    Every generate() call is recorded. ``fail_every=n`` makes each n-th call
    raise a ProviderUpstreamError; ``delay`` makes calls slow.
    """

    def __init__(
        self,
        provider: ProviderName = ProviderName.OPENAI,
        text: str = SAMPLE_REVIEW_TEXT,
        keywords_used: Optional[list[str]] = None,
        claimed_score: int = 99,
        fail_every: Optional[int] = None,
        delay: float = 0.0,
        models: Optional[list[ModelInfo]] = None,
        list_error: Optional[Exception] = None,
        empty: bool = False,
    ):
        self.provider = provider
        self.default_model = DEFAULT_MODELS[provider]
        self.text = text
        self.keywords_used = keywords_used or []
        self.claimed_score = claimed_score
        self.fail_every = fail_every
        self.delay = delay
        self.models = models if models is not None else []
        self.list_error = list_error
        self.empty = empty

        self.calls: list[dict] = []
        self.list_calls: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def name(self) -> str:
        return self.provider.value

    async def generate(self, model_id, prompt, api_key, max_output_tokens=2000):
        self.calls.append(
            {"model_id": model_id, "prompt": prompt, "api_key": api_key, "max_output_tokens": max_output_tokens}
        )
        call_number = len(self.calls)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_every and call_number % self.fail_every == 0:
            raise ProviderUpstreamError(
                "scripted failure",
                provider=self.name,
                status_code=503,
                vendor_message="Service temporarily unavailable",
            )
        if self.empty:
            return []
        return [
            GeneratedReview(
                text=f"{self.text} (variant {call_number})",
                keywords_used=list(self.keywords_used),
                seo_score=self.claimed_score,
            )
        ]

    async def list_models(self, api_key):
        self.list_calls.append(api_key)
        if self.list_error is not None:
            raise self.list_error
        return list(self.models)

    async def aclose(self):
        return None


# ============================================================================
# SETTINGS FIXTURES
# ============================================================================


@pytest.fixture
def llm_settings() -> LLMSettings:
    return LLMSettings(max_retries=1, retry_wait_min=0.0, retry_wait_max=0.0, request_timeout=5.0)


@pytest.fixture
def lifecycle_settings() -> LifecycleSettings:
    return LifecycleSettings()


@pytest.fixture
def discovery_settings() -> DiscoverySettings:
    return DiscoverySettings()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


# ============================================================================
# DOMAIN DATA FIXTURES
# ============================================================================


@pytest.fixture
def business() -> Business:
    return Business(name="Harbor Renovations", description="Kitchen and bathroom remodeling")


@pytest.fixture
def category(business) -> Category:
    return Category(
        business_id=business.id,
        name="Kitchen Remodeling",
        description="Complete kitchen renovation projects",
        target_pool_size=10,
    )


@pytest.fixture
def provider_config(business) -> ProviderConfig:
    return ProviderConfig(
        business_id=business.id,
        provider=ProviderName.OPENAI,
        api_key=BUSINESS_API_KEY,
        model_id="gpt-4o-mini",
    )


@pytest_asyncio.fixture
async def empty_store(business, category) -> InMemoryTemplateStore:
    """Store with the business and category but no provider configuration."""
    store = InMemoryTemplateStore()
    await store.add_business(business)
    await store.add_category(category)
    return store


@pytest_asyncio.fixture
async def store(empty_store, provider_config) -> InMemoryTemplateStore:
    """Store with business, category and an active OpenAI configuration."""
    await empty_store.add_provider_config(provider_config)
    return empty_store


@pytest.fixture
def make_template(category) -> Callable[..., Template]:
    """Build a template for the seeded category."""

    def _make(content: str = SAMPLE_REVIEW_TEXT, word_count: int = 50, **overrides) -> Template:
        data = {
            "business_id": category.business_id,
            "category_id": category.id,
            "content": content,
            "seo_keywords": ["kitchen", "renovation", "professional"],
            "seo_score": 60,
            "word_count_target": word_count,
            "created_at": datetime.utcnow() - timedelta(minutes=5),
        }
        data.update(overrides)
        return Template(**data)

    return _make


@pytest.fixture
def seed_templates(make_template) -> Callable:
    """Insert ``n`` active templates into a store; returns the inserted templates."""

    async def _seed(target_store: InMemoryTemplateStore, n: int) -> list[Template]:
        inserted = []
        for i in range(n):
            template = make_template(content=f"{SAMPLE_REVIEW_TEXT} Seed {i}.", word_count=20 + i)
            inserted.append(await target_store.insert_template(template))
        return inserted

    return _seed


# ============================================================================
# ENGINE FIXTURES
# ============================================================================


@pytest.fixture
def fake_adapter() -> FakeProviderAdapter:
    return FakeProviderAdapter()


@pytest.fixture
def adapters(fake_adapter) -> dict:
    return {ProviderName.OPENAI: fake_adapter}


@pytest.fixture
def review_generator(adapters, store, llm_settings, metrics) -> ReviewGenerator:
    return ReviewGenerator(adapters, template_store=store, settings=llm_settings, metrics=metrics)


@pytest.fixture
def lifecycle_manager(store, review_generator, lifecycle_settings, metrics) -> TemplateLifecycleManager:
    return TemplateLifecycleManager(
        store, review_generator, settings=lifecycle_settings, metrics=metrics
    )


@pytest.fixture
def model_discovery(adapters, metrics) -> ModelDiscoveryService:
    return ModelDiscoveryService(adapters, metrics=metrics)


@pytest.fixture
def review_service(
    store, review_generator, lifecycle_manager, model_discovery, lifecycle_settings, metrics
) -> ReviewService:
    return ReviewService(
        store,
        review_generator,
        lifecycle_manager,
        model_discovery,
        settings=lifecycle_settings,
        metrics=metrics,
        rng=random.Random(7),
    )


@pytest.fixture
def adapter_factory() -> Callable[..., FakeProviderAdapter]:
    """Build additional scripted adapters inside a test."""
    return FakeProviderAdapter
