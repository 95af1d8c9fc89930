"""
Closed capability model.

Every provider declares which capabilities it serves. Each capability has
exactly one adapter interface, one method, one request shape and one
response shape, recorded in :data:`CAPABILITY_CONTRACTS`. The registry
checks adapters against that table at startup and the orchestrators call
adapters only through :func:`invoke`.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from booksource.internal.schemas import (
    AuthorBiography,
    AuthorQuery,
    Award,
    BookGenerationRequest,
    BookMetadata,
    CoverImage,
    EditionVariant,
    ExternalIds,
    GeneratedBook,
    IsbnQuery,
    PublicDomainStatus,
    Ratings,
    ResolvedISBN,
    SeriesInfo,
    SubjectQuery,
    SubjectWork,
    TitleAuthorQuery,
    Translation,
)

if TYPE_CHECKING:
    from booksource.internal.context import ServiceContext


class Capability(StrEnum):
    ISBN_RESOLUTION = "isbn-resolution"
    COVER_IMAGES = "cover-images"
    METADATA_ENRICHMENT = "metadata-enrichment"
    AUTHOR_BIOGRAPHY = "author-biography"
    BOOK_GENERATION = "book-generation"
    RATINGS = "ratings"
    EDITION_VARIANTS = "edition-variants"
    PUBLIC_DOMAIN = "public-domain"
    SUBJECT_BROWSING = "subject-browsing"
    SERIES_INFO = "series-info"
    AWARDS = "awards"
    TRANSLATIONS = "translations"
    ENHANCED_EXTERNAL_IDS = "enhanced-external-ids"


class ProviderType(StrEnum):
    FREE = "free"
    PAID = "paid"
    AI = "ai"


class ProviderDescriptor(BaseModel):
    """Static description of a provider. Immutable once registered."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    provider_type: ProviderType
    capabilities: frozenset[Capability]

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Provider name must not be blank")
        return value

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities


class ProviderAdapter(ABC):
    """
    Base class for provider adapters.

    Capability methods return a response model or the capability's miss
    (``None`` or ``[]``). They do not raise for expected failures such as a
    404, a timeout or an unparsable payload. Anything else they return is
    discarded by the orchestrators as malformed.

    HTTP-backed adapters can use :func:`booksource.internal.http_client.fetch_json`,
    which already maps transport and payload failures to ``None``.
    """

    @abstractmethod
    async def is_available(self, context: "ServiceContext") -> bool:
        """
        Whether the provider can take a call right now. May do I/O, for
        example look up an API key in ``context.env`` or ask the quota manager.
        """


class ISBNResolver(ProviderAdapter):
    @abstractmethod
    async def resolve_isbn(self, request: TitleAuthorQuery, context: "ServiceContext") -> ResolvedISBN | None: ...


class CoverProvider(ProviderAdapter):
    @abstractmethod
    async def fetch_cover(self, request: IsbnQuery, context: "ServiceContext") -> CoverImage | None: ...


class MetadataProvider(ProviderAdapter):
    @abstractmethod
    async def fetch_metadata(self, request: IsbnQuery, context: "ServiceContext") -> BookMetadata | None: ...


class AuthorBiographyProvider(ProviderAdapter):
    @abstractmethod
    async def fetch_biography(self, request: AuthorQuery, context: "ServiceContext") -> AuthorBiography | None: ...


class BookGenerator(ProviderAdapter):
    @abstractmethod
    async def generate_books(
        self, request: BookGenerationRequest, context: "ServiceContext"
    ) -> list[GeneratedBook]: ...


class RatingsProvider(ProviderAdapter):
    @abstractmethod
    async def fetch_ratings(self, request: IsbnQuery, context: "ServiceContext") -> Ratings | None: ...


class EditionVariantProvider(ProviderAdapter):
    @abstractmethod
    async def fetch_edition_variants(
        self, request: IsbnQuery, context: "ServiceContext"
    ) -> list[EditionVariant]: ...


class PublicDomainProvider(ProviderAdapter):
    @abstractmethod
    async def check_public_domain(
        self, request: IsbnQuery, context: "ServiceContext"
    ) -> PublicDomainStatus | None: ...


class SubjectBrowsingProvider(ProviderAdapter):
    @abstractmethod
    async def browse_subject(self, request: SubjectQuery, context: "ServiceContext") -> list[SubjectWork]: ...


class SeriesProvider(ProviderAdapter):
    @abstractmethod
    async def fetch_series(self, request: IsbnQuery, context: "ServiceContext") -> SeriesInfo | None: ...


class AwardsProvider(ProviderAdapter):
    @abstractmethod
    async def fetch_awards(self, request: IsbnQuery, context: "ServiceContext") -> list[Award]: ...


class TranslationProvider(ProviderAdapter):
    @abstractmethod
    async def fetch_translations(self, request: IsbnQuery, context: "ServiceContext") -> list[Translation]: ...


class ExternalIdProvider(ProviderAdapter):
    @abstractmethod
    async def fetch_external_ids(self, request: IsbnQuery, context: "ServiceContext") -> ExternalIds | None: ...


@dataclass(frozen=True)
class CapabilityContract:
    interface: type[ProviderAdapter]
    method_name: str
    request_type: type[BaseModel]
    response_type: type[BaseModel]
    returns_list: bool = False

    def miss(self) -> list[Any] | None:
        """The value an adapter returns when it has nothing."""
        return [] if self.returns_list else None

    def conform(self, value: Any) -> tuple[Any, int]:
        """
        Keep only what matches the response shape. Returns the kept value
        (the miss when nothing matches) and how many entries were rejected.
        """
        if not self.returns_list:
            if isinstance(value, self.response_type):
                return value, 0
            return None, 1
        if not isinstance(value, list):
            return [], 1
        kept = [item for item in value if isinstance(item, self.response_type)]
        return kept, len(value) - len(kept)


CAPABILITY_CONTRACTS: dict[Capability, CapabilityContract] = {
    Capability.ISBN_RESOLUTION: CapabilityContract(ISBNResolver, "resolve_isbn", TitleAuthorQuery, ResolvedISBN),
    Capability.COVER_IMAGES: CapabilityContract(CoverProvider, "fetch_cover", IsbnQuery, CoverImage),
    Capability.METADATA_ENRICHMENT: CapabilityContract(MetadataProvider, "fetch_metadata", IsbnQuery, BookMetadata),
    Capability.AUTHOR_BIOGRAPHY: CapabilityContract(
        AuthorBiographyProvider, "fetch_biography", AuthorQuery, AuthorBiography
    ),
    Capability.BOOK_GENERATION: CapabilityContract(
        BookGenerator, "generate_books", BookGenerationRequest, GeneratedBook, returns_list=True
    ),
    Capability.RATINGS: CapabilityContract(RatingsProvider, "fetch_ratings", IsbnQuery, Ratings),
    Capability.EDITION_VARIANTS: CapabilityContract(
        EditionVariantProvider, "fetch_edition_variants", IsbnQuery, EditionVariant, returns_list=True
    ),
    Capability.PUBLIC_DOMAIN: CapabilityContract(
        PublicDomainProvider, "check_public_domain", IsbnQuery, PublicDomainStatus
    ),
    Capability.SUBJECT_BROWSING: CapabilityContract(
        SubjectBrowsingProvider, "browse_subject", SubjectQuery, SubjectWork, returns_list=True
    ),
    Capability.SERIES_INFO: CapabilityContract(SeriesProvider, "fetch_series", IsbnQuery, SeriesInfo),
    Capability.AWARDS: CapabilityContract(AwardsProvider, "fetch_awards", IsbnQuery, Award, returns_list=True),
    Capability.TRANSLATIONS: CapabilityContract(
        TranslationProvider, "fetch_translations", IsbnQuery, Translation, returns_list=True
    ),
    Capability.ENHANCED_EXTERNAL_IDS: CapabilityContract(
        ExternalIdProvider, "fetch_external_ids", IsbnQuery, ExternalIds
    ),
}


async def invoke(
    adapter: ProviderAdapter,
    capability: Capability,
    request: BaseModel,
    context: "ServiceContext",
) -> Any:
    """Call the adapter method that serves ``capability``."""
    contract = CAPABILITY_CONTRACTS[capability]
    if not isinstance(request, contract.request_type):
        raise TypeError(
            f"{capability} expects {contract.request_type.__name__}, got {type(request).__name__}"
        )
    method = getattr(adapter, contract.method_name)
    return await method(request, context)
