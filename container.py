"""
Dependency Injection Container: Engine Object Graph

Wires the review engine with dependency-injector so every component receives
its collaborators explicitly and tests can override any node (record store,
adapter registry, settings) without monkeypatching.

Dependency Graph (DAG):
Settings -> Metrics / HTTP pool -> Adapters -> Discovery / Generator
         -> Lifecycle Manager -> Review Service

Architecture: Container Pattern + Dependency Injection + Singleton Registry
"""

from typing import Optional

import httpx
from dependency_injector import containers, providers
from loguru import logger

from config.settings import Settings, get_settings
from execution.review_generator import ReviewGenerator
from infrastructure.llm_client import build_adapter_registry
from infrastructure.model_discovery import ModelDiscoveryService
from infrastructure.monitoring import MetricsCollector, configure_logging
from knowledge.template_store import InMemoryTemplateStore
from orchestration.template_lifecycle import TemplateLifecycleManager
from services.review_service import ReviewService


class Container(containers.DeclarativeContainer):
    """
    Central dependency injection container.

    Infrastructure, the lifecycle manager (which owns background tasks) and
    the discovery cache are singletons; the service facade is a factory over
    them. Production deployments override ``template_store`` with their own
    TemplateStore implementation.
    """

    # Configuration
    config: providers.Singleton[Settings] = providers.Singleton(get_settings)

    # Infrastructure layer
    metrics: providers.Singleton[MetricsCollector] = providers.Singleton(
        MetricsCollector,
        enabled=config.provided.monitoring.enable_metrics,
    )

    http_client: providers.Singleton[httpx.AsyncClient] = providers.Singleton(
        httpx.AsyncClient,
        timeout=config.provided.llm.request_timeout,
    )

    adapters = providers.Singleton(
        build_adapter_registry,
        settings=config.provided.llm,
        http_client=http_client,
    )

    model_discovery: providers.Singleton[ModelDiscoveryService] = providers.Singleton(
        ModelDiscoveryService,
        adapters=adapters,
        ttl_seconds=config.provided.discovery.cache_ttl_seconds,
        api_key_prefix_length=config.provided.discovery.api_key_prefix_length,
        metrics=metrics,
    )

    # Knowledge layer
    template_store = providers.Singleton(InMemoryTemplateStore)

    # Execution layer
    review_generator: providers.Singleton[ReviewGenerator] = providers.Singleton(
        ReviewGenerator,
        adapters=adapters,
        template_store=template_store,
        settings=config.provided.llm,
        metrics=metrics,
    )

    # Orchestration layer
    lifecycle_manager: providers.Singleton[TemplateLifecycleManager] = providers.Singleton(
        TemplateLifecycleManager,
        template_store=template_store,
        review_generator=review_generator,
        settings=config.provided.lifecycle,
        metrics=metrics,
    )

    # Service layer
    review_service: providers.Factory[ReviewService] = providers.Factory(
        ReviewService,
        template_store=template_store,
        review_generator=review_generator,
        lifecycle_manager=lifecycle_manager,
        model_discovery=model_discovery,
        settings=config.provided.lifecycle,
        metrics=metrics,
    )


# Global container instance
container = Container()


class ContainerManager:
    """
    Container lifecycle manager.

    Configures logging on startup; on shutdown lets background regenerations
    finish before closing the shared HTTP connection pool.
    """

    def __init__(self, target: Optional[Container] = None) -> None:
        self._container: Container = target or container
        self._initialized: bool = False

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("Container already initialized - skipping re-initialization")
            return

        settings = self._container.config()
        configure_logging(settings.monitoring)
        logger.info(
            f"Initializing container | app={settings.app_name} | environment={settings.environment}"
        )
        self._initialized = True

    async def cleanup(self) -> None:
        """
        Drain background work and release network resources.

        Idempotent; cleanup errors are logged so later steps still run.
        """
        if not self._initialized:
            logger.debug("Container not initialized - skipping cleanup")
            return

        logger.info("Cleaning up dependency injection container")

        try:
            await self._container.lifecycle_manager().wait_for_background_tasks()
        except Exception as e:
            logger.error(f"Background task drain failed: {e}")

        try:
            await self._container.http_client().aclose()
            logger.info("HTTP connection pool closed")
        except Exception as e:
            logger.error(f"HTTP client cleanup failed: {e}")

        self._initialized = False

    def get_container(self) -> Container:
        if not self._initialized:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._container


# Global container manager instance
container_manager = ContainerManager()


__all__ = [
    "Container",
    "ContainerManager",
    "container",
    "container_manager",
]
