"""
Orchestration strategies and the per-capability orchestrators built on them.
"""

from booksource.internal.orchestrators.aggregation import AggregationOrchestrator
from booksource.internal.orchestrators.base import (
    AggregatedResult,
    BaseOrchestrator,
    OrchestratorResult,
    ProviderAttempt,
    call_with_timeout,
)
from booksource.internal.orchestrators.book_generation import BookGenerationOrchestrator
from booksource.internal.orchestrators.cover_fetch import CoverFetchOrchestrator
from booksource.internal.orchestrators.edition_variants import EditionVariantOrchestrator
from booksource.internal.orchestrators.external_ids import ExternalIdOrchestrator
from booksource.internal.orchestrators.fan_out import FanOutOrchestrator
from booksource.internal.orchestrators.isbn_resolution import ISBNResolutionOrchestrator
from booksource.internal.orchestrators.metadata_enrichment import MetadataEnrichmentOrchestrator
from booksource.internal.orchestrators.public_domain import PublicDomainOrchestrator
from booksource.internal.orchestrators.ratings import RatingsOrchestrator
from booksource.internal.orchestrators.sequential import (
    FreeFirstOrchestrator,
    PaidFirstOrchestrator,
    SequentialFallbackOrchestrator,
)

__all__ = [
    "AggregatedResult",
    "AggregationOrchestrator",
    "BaseOrchestrator",
    "BookGenerationOrchestrator",
    "CoverFetchOrchestrator",
    "EditionVariantOrchestrator",
    "ExternalIdOrchestrator",
    "FanOutOrchestrator",
    "FreeFirstOrchestrator",
    "ISBNResolutionOrchestrator",
    "MetadataEnrichmentOrchestrator",
    "OrchestratorResult",
    "PaidFirstOrchestrator",
    "ProviderAttempt",
    "PublicDomainOrchestrator",
    "RatingsOrchestrator",
    "SequentialFallbackOrchestrator",
    "call_with_timeout",
]
