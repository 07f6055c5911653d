"""
Dependency Injection Container: Explicit Object Graph

Wires the personalization pipeline with dependency-injector. Every shared
service (cache, analytics, resilience wrappers, model selector, side
channel) is a singleton of the container instance and is passed to its
consumers by handle; there are no module-level service singletons.

Architecture: Container Pattern + Dependency Injection
Dependency Graph (DAG):
Settings -> Infrastructure -> Knowledge -> Optimization -> Intelligence -> Execution
"""

from typing import Optional

from dependency_injector import containers, providers
from loguru import logger

from config.settings import Settings, get_settings
from core.enums import Language
from execution.content_generator import PersonalizedContentGenerator
from execution.content_planner import ContentPlanner
from infrastructure.analytics import AnalyticsAggregator
from infrastructure.database import DatabaseManager
from infrastructure.llm_client import LLMClient
from infrastructure.monitoring import MetricsCollector, configure_logging
from infrastructure.resilience import ResilienceWrapper
from infrastructure.side_channel import SideChannel
from intelligence.document_analyzer import DocumentAnalyzer
from intelligence.preference_analyzer import PreferenceAnalyzer
from intelligence.recommendation_engine import RecommendationEngine
from knowledge.activity_repository import ActivityRepository
from knowledge.article_repository import ArticleRepository
from knowledge.document_source import LocalDirectoryDocumentSource
from knowledge.insight_repository import InsightRepository
from optimization.cache_manager import CacheManager
from optimization.model_selector import ModelSelector


class Container(containers.DeclarativeContainer):
    """
    Central dependency injection container.

    Singleton providers hold the shared in-process state; factories build
    the request-scoped services on top of them.
    """

    # Configuration
    config: providers.Singleton[Settings] = providers.Singleton(get_settings)

    content_language = providers.Callable(Language, config.provided.generation.content_language)

    # Infrastructure layer (singletons)
    metrics: providers.Singleton[MetricsCollector] = providers.Singleton(MetricsCollector)

    side_channel: providers.Singleton[SideChannel] = providers.Singleton(
        SideChannel,
        max_size=config.provided.analytics.side_channel_queue_size,
    )

    cache: providers.Singleton[CacheManager] = providers.Singleton(
        CacheManager,
        content_max_entries=config.provided.cache.content_max_entries,
        content_ttl=config.provided.cache.content_ttl,
        profile_max_entries=config.provided.cache.profile_max_entries,
        profile_ttl=config.provided.cache.profile_ttl,
        metrics_collector=metrics,
    )

    analytics: providers.Singleton[AnalyticsAggregator] = providers.Singleton(
        AnalyticsAggregator,
        cache_manager=cache,
        retention_days=config.provided.analytics.retention_days,
        max_alerts=config.provided.analytics.max_alerts,
        cleanup_interval=config.provided.analytics.cleanup_interval,
        insights_interval=config.provided.analytics.insights_interval,
    )

    database: providers.Singleton[DatabaseManager] = providers.Singleton(
        DatabaseManager,
        settings=config.provided.database,
    )

    # One resilience wrapper per external service
    llm_resilience: providers.Singleton[ResilienceWrapper] = providers.Singleton(
        ResilienceWrapper,
        service="llm",
        analytics=analytics,
        metrics_collector=metrics,
        base_delay=config.provided.resilience.base_delay,
        max_retries=config.provided.resilience.max_retries,
        critical_threshold=config.provided.resilience.critical_failure_threshold,
    )

    document_resilience: providers.Singleton[ResilienceWrapper] = providers.Singleton(
        ResilienceWrapper,
        service="document_source",
        analytics=analytics,
        metrics_collector=metrics,
        base_delay=config.provided.resilience.base_delay,
        max_retries=config.provided.resilience.max_retries,
        critical_threshold=config.provided.resilience.critical_failure_threshold,
    )

    llm_client: providers.Singleton[LLMClient] = providers.Singleton(
        LLMClient,
        settings=config.provided.llm,
        resilience=llm_resilience,
    )

    # Knowledge layer
    article_repository: providers.Factory[ArticleRepository] = providers.Factory(
        ArticleRepository, db_manager=database
    )

    activity_repository: providers.Factory[ActivityRepository] = providers.Factory(
        ActivityRepository, db_manager=database
    )

    insight_repository: providers.Factory[InsightRepository] = providers.Factory(
        InsightRepository, db_manager=database
    )

    document_source: providers.Singleton[LocalDirectoryDocumentSource] = providers.Singleton(
        LocalDirectoryDocumentSource,
        root_dir=config.provided.documents.root_dir,
    )

    # Optimization layer
    model_selector: providers.Singleton[ModelSelector] = providers.Singleton(
        ModelSelector,
        cache_manager=cache,
        side_channel=side_channel,
        metrics_collector=metrics,
    )

    # Intelligence layer
    preference_analyzer: providers.Factory[PreferenceAnalyzer] = providers.Factory(
        PreferenceAnalyzer,
        article_repository=article_repository,
        activity_repository=activity_repository,
        cache_manager=cache,
        llm_client=llm_client,
        analytical_temperature=config.provided.llm.analytical_temperature,
    )

    document_analyzer: providers.Factory[DocumentAnalyzer] = providers.Factory(
        DocumentAnalyzer,
        document_source=document_source,
        resilience=document_resilience,
        insight_repository=insight_repository,
        llm_client=llm_client,
        max_documents=config.provided.documents.max_documents,
        max_content_chars=config.provided.documents.max_content_chars,
        retention_days=config.provided.documents.insight_retention_days,
    )

    recommendation_engine: providers.Factory[RecommendationEngine] = providers.Factory(
        RecommendationEngine,
        preference_analyzer=preference_analyzer,
        article_repository=article_repository,
        activity_repository=activity_repository,
        cache_manager=cache,
        model_selector=model_selector,
        llm_client=llm_client,
        side_channel=side_channel,
        metrics_collector=metrics,
        language=content_language,
    )

    # Execution layer
    content_planner: providers.Factory[ContentPlanner] = providers.Factory(
        ContentPlanner,
        cache_manager=cache,
        model_selector=model_selector,
        llm_client=llm_client,
        max_categories=config.provided.generation.max_plan_categories,
        default_category=config.provided.generation.default_category,
        language=content_language,
        temperature=config.provided.llm.analytical_temperature,
    )

    content_generator: providers.Factory[PersonalizedContentGenerator] = providers.Factory(
        PersonalizedContentGenerator,
        preference_analyzer=preference_analyzer,
        content_planner=content_planner,
        model_selector=model_selector,
        llm_client=llm_client,
        article_repository=article_repository,
        insight_repository=insight_repository,
        activity_repository=activity_repository,
        cache_manager=cache,
        document_analyzer=document_analyzer,
        metrics_collector=metrics,
        analytics=analytics,
        pause_seconds=config.provided.generation.pause_seconds,
        max_topic_attempts=config.provided.generation.max_topic_attempts,
        language=content_language,
        temperature=config.provided.llm.creative_temperature,
    )


class ContainerManager:
    """
    Container lifecycle manager.

    Handles async initialization and cleanup of the infrastructure that
    needs it (database engine, analytics housekeeping, side channel, SDK
    clients). Usable as an async context manager.
    """

    def __init__(self, container: Optional[Container] = None, start_background: bool = True) -> None:
        self._container = container or Container()
        self._start_background = start_background
        self._initialized: bool = False

    @property
    def container(self) -> Container:
        return self._container

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Initialize infrastructure dependencies.

        Raises:
            RuntimeError: If the database cannot be initialized
        """
        if self._initialized:
            logger.warning("Container already initialized - skipping re-initialization")
            return

        settings = self._container.config()
        configure_logging(settings.monitoring.log_level, settings.monitoring.log_format)
        logger.info("Initializing dependency injection container")

        try:
            await self._container.database().initialize()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Container initialization failed: {e}")
            raise RuntimeError(f"Failed to initialize dependency injection container: {e}") from e

        if not self._container.llm_client().is_enabled:
            logger.warning("No text-generation provider configured - generation will be unavailable")

        if self._start_background:
            self._container.analytics().start()

        self._initialized = True
        logger.success("Container initialized")

    async def cleanup(self) -> None:
        """
        Release container resources. Idempotent; errors are logged and do
        not stop the remaining cleanup steps.
        """
        if not self._initialized:
            logger.debug("Container not initialized - skipping cleanup")
            return

        logger.info("Cleaning up dependency injection container")
        steps = (
            ("analytics", self._container.analytics().stop),
            ("side_channel", self._container.side_channel().stop),
            ("llm_client", self._container.llm_client().close),
            ("database", self._container.database().close),
        )

        errors = []
        for name, step in steps:
            try:
                await step()
            except Exception as e:
                logger.error(f"{name} cleanup failed: {e}")
                errors.append(name)

        if errors:
            logger.warning(f"Container cleanup completed with errors: {', '.join(errors)}")
        else:
            logger.info("Container cleanup completed successfully")
        self._initialized = False

    def get_container(self) -> Container:
        if not self._initialized:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._container

    async def __aenter__(self) -> Container:
        await self.initialize()
        return self._container

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.cleanup()
