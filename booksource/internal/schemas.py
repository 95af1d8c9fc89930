"""
Request and response models, one pair per capability.

Adapters translate whatever their upstream API returns into these shapes;
orchestrators only ever see these shapes.
"""
import re
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ISBN_SEPARATORS = re.compile(r"[\s\-]")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# Requests


class IsbnQuery(_Frozen):
    """Lookup keyed by a single ISBN-10 or ISBN-13."""
    isbn: str

    @field_validator("isbn")
    @classmethod
    def _normalize_isbn(cls, value: str) -> str:
        normalized = _ISBN_SEPARATORS.sub("", value).upper()
        if len(normalized) not in (10, 13):
            raise ValueError(f"ISBN must have 10 or 13 characters, got {value!r}")
        if not normalized[:-1].isdigit() or not (normalized[-1].isdigit() or normalized[-1] == "X"):
            raise ValueError(f"ISBN contains invalid characters: {value!r}")
        return normalized

    def cache_key(self) -> str:
        return self.isbn


class TitleAuthorQuery(_Frozen):
    """Title/author pair to resolve into an identifier."""
    title: str = Field(min_length=1)
    author: str = ""

    def cache_key(self) -> str:
        return f"{self.title.lower().strip()}:{self.author.lower().strip()}"


class AuthorQuery(_Frozen):
    author_key: str = Field(min_length=1)
    name: str | None = None

    def cache_key(self) -> str:
        return self.author_key


class BookGenerationRequest(_Frozen):
    prompt: str = Field(min_length=1)
    count: int = Field(default=10, ge=1)
    """Books requested from each provider"""

    def cache_key(self) -> str:
        return f"{self.count}:{self.prompt}"


class SubjectQuery(_Frozen):
    subject: str = Field(min_length=1)
    limit: int = Field(default=25, ge=1)

    def cache_key(self) -> str:
        return f"{self.subject.lower()}:{self.limit}"


# Responses


class ResolvedISBN(_Frozen):
    isbn: str
    title: str | None = None
    authors: list[str] = Field(default_factory=list)
    confidence: float = Field(default=100.0, ge=0, le=100)


class CoverImage(_Frozen):
    url: str
    size: Literal["small", "medium", "large"] = "large"
    width: Optional[int] = None
    height: Optional[int] = None


class BookMetadata(_Frozen):
    title: str | None = None
    isbn: str | None = None
    isbn13: str | None = None
    authors: list[str] = Field(default_factory=list)
    publisher: str | None = None
    publish_date: str | None = None
    page_count: int | None = None
    subjects: list[str] = Field(default_factory=list)
    description: str | None = None
    language: str | None = None
    cover_url: str | None = None


class AuthorBiography(_Frozen):
    author_key: str
    name: str
    biography: str
    birth_date: str | None = None
    death_date: str | None = None
    wikidata_qid: str | None = None
    wikipedia_url: str | None = None


class GeneratedBook(_Frozen):
    title: str
    author: str
    publisher: str | None = None
    publish_date: str | None = None
    description: str | None = None
    subjects: list[str] = Field(default_factory=list)
    confidence: float = Field(default=50.0, ge=0, le=100)
    source: str | None = None


class Ratings(_Frozen):
    average_rating: float
    ratings_count: int = 0
    confidence: float = Field(default=100.0, ge=0, le=100)


class EditionVariant(_Frozen):
    isbn: str
    format: str | None = None
    """hardcover, paperback, ebook, audiobook, ..."""
    format_description: str | None = None
    publisher: str | None = None
    publish_date: str | None = None
    language: str | None = None


class PublicDomainStatus(_Frozen):
    is_public_domain: bool
    confidence: float = Field(default=50.0, ge=0, le=100)
    reason: Literal["api-verified", "publication-date", "copyright-data", "unknown"] = "unknown"
    download_url: str | None = None


class SubjectWork(_Frozen):
    title: str
    author: str | None = None
    isbn: str | None = None
    work_key: str | None = None


class SeriesInfo(_Frozen):
    series_name: str
    position: float | None = None
    total_books: int | None = None


class Award(_Frozen):
    name: str
    year: int | None = None
    category: str | None = None
    won: bool = True


class Translation(_Frozen):
    language: str
    title: str
    isbn: str | None = None
    translator: str | None = None


class ExternalIds(_Frozen):
    amazon_asin: str | None = None
    goodreads_id: str | None = None
    google_books_id: str | None = None
    librarything_id: str | None = None
    wikidata_qid: str | None = None
    open_library_work_key: str | None = None
    open_library_edition_key: str | None = None
    archive_org_id: str | None = None
    oclc_number: str | None = None
    lccn: str | None = None
    confidence: float = Field(default=50.0, ge=0, le=100)
