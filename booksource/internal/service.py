"""
Single construction point for the orchestration layer.

Call :func:`create_orchestration_service` once at startup with the provider
adapters; keep the returned service for the life of the process and create
one context per inbound request with :meth:`OrchestrationService.context`.
"""
from typing import Any, Iterable

from aiohttp import ClientSession
from sqlalchemy import Engine

from booksource.internal.capabilities import (
    Capability,
    ProviderAdapter,
    ProviderDescriptor,
)
from booksource.internal.context import CachePolicy, ServiceContext, create_service_context
from booksource.internal.env_settings import Settings
from booksource.internal.orchestrators import (
    BaseOrchestrator,
    BookGenerationOrchestrator,
    CoverFetchOrchestrator,
    EditionVariantOrchestrator,
    ExternalIdOrchestrator,
    FanOutOrchestrator,
    ISBNResolutionOrchestrator,
    MetadataEnrichmentOrchestrator,
    PublicDomainOrchestrator,
    RatingsOrchestrator,
    SequentialFallbackOrchestrator,
)
from booksource.internal.quota import (
    CounterStore,
    InMemoryCounterStore,
    QuotaManager,
    RateLimitPolicy,
    SQLCounterStore,
)
from booksource.internal.registry import ProviderRegistry
from booksource.internal.schemas import Award, SubjectWork, Translation
from booksource.util.cache import ResultCache
from booksource.util.db import create_db_engine, init_db
from booksource.util.exceptions import ConfigurationError
from booksource.util.log import logger, setup_logging


def _award_key(award: Award) -> str:
    return f"{award.name.casefold()}:{award.year}:{(award.category or '').casefold()}"


def _translation_key(translation: Translation) -> str:
    return f"{translation.language.casefold()}:{translation.title.casefold()}"


def _subject_work_key(work: SubjectWork) -> str:
    return work.title


class OrchestrationService:
    """Registry, quota manager, result cache and one orchestrator per capability."""

    settings: Settings
    registry: ProviderRegistry
    quota_manager: QuotaManager
    result_cache: ResultCache[Any]
    orchestrators: dict[Capability, BaseOrchestrator[Any]]

    def __init__(
        self,
        settings: Settings,
        registry: ProviderRegistry,
        quota_manager: QuotaManager,
        result_cache: ResultCache[Any],
    ):
        self.settings = settings
        self.registry = registry
        self.quota_manager = quota_manager
        self.result_cache = result_cache

        o = settings.orchestration
        default = o.default_provider_timeout
        self.isbn_resolution = ISBNResolutionOrchestrator(
            registry,
            timeout=o.isbn_resolution_timeout,
            priority_order=o.isbn_provider_order,
            cache=result_cache,
            threshold=o.resolution_threshold,
        )
        self.cover_fetch = CoverFetchOrchestrator(
            registry,
            timeout=o.cover_fetch_timeout,
            priority_order=o.cover_provider_order,
            cache=result_cache,
        )
        self.book_generation = BookGenerationOrchestrator(
            registry,
            timeout=o.book_generation_timeout,
            threshold=o.deduplication_threshold,
            priority_order=o.generation_provider_order,
        )
        self.metadata_enrichment = MetadataEnrichmentOrchestrator(
            registry,
            timeout=default,
            priority_order=o.metadata_provider_order,
            cache=result_cache,
        )
        self.external_ids = ExternalIdOrchestrator(
            registry,
            timeout=default,
            priority_order=o.external_id_provider_order,
            cache=result_cache,
        )
        self.ratings = RatingsOrchestrator(registry, timeout=default, cache=result_cache)
        self.public_domain = PublicDomainOrchestrator(registry, timeout=default, cache=result_cache)
        self.edition_variants = EditionVariantOrchestrator(registry, timeout=default, cache=result_cache)
        self.author_biography = SequentialFallbackOrchestrator(
            registry, Capability.AUTHOR_BIOGRAPHY, timeout=default, cache=result_cache
        )
        self.series_info = SequentialFallbackOrchestrator(
            registry, Capability.SERIES_INFO, timeout=default, cache=result_cache
        )
        self.awards = FanOutOrchestrator(
            registry, Capability.AWARDS, key=_award_key, exact=True, timeout=default, cache=result_cache
        )
        self.translations = FanOutOrchestrator(
            registry,
            Capability.TRANSLATIONS,
            key=_translation_key,
            exact=True,
            timeout=default,
            cache=result_cache,
        )
        self.subject_browsing = FanOutOrchestrator(
            registry,
            Capability.SUBJECT_BROWSING,
            key=_subject_work_key,
            threshold=o.deduplication_threshold,
            timeout=default,
            cache=result_cache,
        )

        self.orchestrators = {
            Capability.ISBN_RESOLUTION: self.isbn_resolution,
            Capability.COVER_IMAGES: self.cover_fetch,
            Capability.METADATA_ENRICHMENT: self.metadata_enrichment,
            Capability.AUTHOR_BIOGRAPHY: self.author_biography,
            Capability.BOOK_GENERATION: self.book_generation,
            Capability.RATINGS: self.ratings,
            Capability.EDITION_VARIANTS: self.edition_variants,
            Capability.PUBLIC_DOMAIN: self.public_domain,
            Capability.SUBJECT_BROWSING: self.subject_browsing,
            Capability.SERIES_INFO: self.series_info,
            Capability.AWARDS: self.awards,
            Capability.TRANSLATIONS: self.translations,
            Capability.ENHANCED_EXTERNAL_IDS: self.external_ids,
        }

    def orchestrator_for(self, capability: Capability) -> BaseOrchestrator[Any]:
        return self.orchestrators[capability]

    def context(
        self,
        *,
        env: dict[str, str] | None = None,
        priority: str | None = None,
        cache_policy: CachePolicy | str = CachePolicy.READ_WRITE,
        rate_limit_policy: RateLimitPolicy | str = RateLimitPolicy.ENFORCE,
        timeout: float | None = None,
        metadata: dict[str, Any] | None = None,
        http_session: ClientSession | None = None,
        request_id: str | None = None,
    ) -> ServiceContext:
        """New request context bound to this service's quota manager."""
        metadata = dict(metadata or {})
        if priority is not None:
            metadata["priority"] = priority
        return create_service_context(
            env=env,
            quota_manager=self.quota_manager,
            cache_policy=cache_policy,
            rate_limit_policy=rate_limit_policy,
            timeout=timeout,
            metadata=metadata,
            http_session=http_session,
            request_id=request_id,
        )


def _counter_store(settings: Settings, engine: Engine | None) -> CounterStore:
    backend = settings.quota.backend
    if backend == "memory":
        return InMemoryCounterStore()
    if backend == "sql":
        if engine is None:
            engine = create_db_engine(settings)
        init_db(engine)
        return SQLCounterStore(engine)
    raise ConfigurationError(f"Unknown quota backend '{backend}'")


def create_orchestration_service(
    settings: Settings,
    providers: Iterable[tuple[ProviderDescriptor, ProviderAdapter]],
    *,
    counter_store: CounterStore | None = None,
    engine: Engine | None = None,
    configure_logging: bool = False,
) -> OrchestrationService:
    """
    Wire settings, providers, quota manager and orchestrators together.

    Args:
        settings: Loaded settings.
        providers: Every (descriptor, adapter) pair to register.
        counter_store: Overrides the store chosen by ``settings.quota.backend``.
        engine: Engine for the SQL counter store. Built from settings when omitted.
        configure_logging: Apply the logging section of the settings first.
    """
    if configure_logging:
        setup_logging(
            log_level=settings.app.log_level,
            log_format=settings.app.log_format,
            log_file=settings.app.log_file,
            config_dir=settings.app.config_dir,
        )

    registry = ProviderRegistry(availability_timeout=settings.quota.availability_timeout)
    registry.register_all(providers)

    quota_manager = QuotaManager(
        counter_store if counter_store is not None else _counter_store(settings, engine),
        settings.quota.daily_limits,
        soft_ceiling=settings.quota.soft_ceiling,
        hard_ceiling=settings.quota.hard_ceiling,
    )
    result_cache: ResultCache[Any] = ResultCache(
        ttl=settings.orchestration.result_cache_ttl,
        maxsize=settings.orchestration.result_cache_maxsize,
    )

    service = OrchestrationService(settings, registry, quota_manager, result_cache)
    stats = registry.get_stats()
    logger.info(
        "Orchestration service ready",
        providers=stats.total_providers,
        providers_by_type={k.value: v for k, v in stats.count_by_type.items()},
        quota_backend="custom" if counter_store is not None else settings.quota.backend,
        version=settings.app.version,
    )
    for capability in Capability:
        if not registry.has_capability(capability):
            logger.debug("No provider serves capability", capability=capability.value)
    return service
