"""
Open Library adapter serving cover images and metadata enrichment.

Uses the Books API with ``jscmd=data``, which returns one record per
requested bibkey: ``{"ISBN:<isbn>": {...}}``.
"""
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from booksource.internal.capabilities import (
    Capability,
    CoverProvider,
    MetadataProvider,
    ProviderDescriptor,
    ProviderType,
)
from booksource.internal.context import ServiceContext
from booksource.internal.http_client import fetch_json
from booksource.internal.schemas import BookMetadata, CoverImage, IsbnQuery
from booksource.util.exceptions import handle_validation_error

OPEN_LIBRARY_BOOKS_URL = "https://openlibrary.org/api/books"
DEFAULT_USER_AGENT = "booksource/0.1 (metadata orchestration)"


class OpenLibraryNamed(BaseModel):
    name: str = ""


class OpenLibraryCover(BaseModel):
    small: Optional[str] = None
    medium: Optional[str] = None
    large: Optional[str] = None


class OpenLibraryBook(BaseModel):
    """One record of the Books API ``jscmd=data`` response."""
    title: Optional[str] = None
    authors: list[OpenLibraryNamed] = Field(default_factory=list)
    publishers: list[OpenLibraryNamed] = Field(default_factory=list)
    subjects: list[OpenLibraryNamed] = Field(default_factory=list)
    publish_date: Optional[str] = None
    number_of_pages: Optional[int] = None
    cover: Optional[OpenLibraryCover] = None


class OpenLibraryProvider(CoverProvider, MetadataProvider):
    """Free provider; available whenever the context carries an HTTP session."""

    name = "open-library"

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, timeout: float = 10.0):
        self.user_agent = user_agent
        self.timeout = timeout

    @classmethod
    def descriptor(cls) -> ProviderDescriptor:
        return ProviderDescriptor(
            name=cls.name,
            provider_type=ProviderType.FREE,
            capabilities=frozenset({Capability.COVER_IMAGES, Capability.METADATA_ENRICHMENT}),
        )

    async def is_available(self, context: ServiceContext) -> bool:
        return context.http_session is not None

    async def _lookup(self, isbn: str, context: ServiceContext) -> OpenLibraryBook | None:
        if context.http_session is None:
            return None
        bibkey = f"ISBN:{isbn}"
        data = await fetch_json(
            context.http_session,
            OPEN_LIBRARY_BOOKS_URL,
            provider=self.name,
            params={"bibkeys": bibkey, "format": "json", "jscmd": "data"},
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
        )
        if not isinstance(data, dict) or bibkey not in data:
            context.logger.debug("Open Library has no record", isbn=isbn)
            return None
        try:
            return OpenLibraryBook.model_validate(data[bibkey])
        except ValidationError as e:
            handle_validation_error(e, f"{self.name} response", isbn=isbn)
            return None

    async def fetch_cover(self, request: IsbnQuery, context: ServiceContext) -> CoverImage | None:
        book = await self._lookup(request.isbn, context)
        if book is None or book.cover is None:
            return None
        for size in ("large", "medium", "small"):
            url = getattr(book.cover, size)
            if url:
                return CoverImage(url=url, size=size)
        return None

    async def fetch_metadata(self, request: IsbnQuery, context: ServiceContext) -> BookMetadata | None:
        book = await self._lookup(request.isbn, context)
        if book is None:
            return None
        return BookMetadata(
            title=book.title,
            isbn13=request.isbn if len(request.isbn) == 13 else None,
            isbn=request.isbn if len(request.isbn) == 10 else None,
            authors=[a.name for a in book.authors if a.name],
            publisher=book.publishers[0].name if book.publishers else None,
            publish_date=book.publish_date,
            page_count=book.number_of_pages,
            subjects=[s.name for s in book.subjects if s.name],
            cover_url=book.cover.large if book.cover else None,
        )
