"""
Fuzzy title/author matching shared by resolution validation and fan-out deduplication.

Both call sites go through :func:`similarity`, so a title that validates an
ISBN lookup and a title that collapses two generated books are judged by the
same normalization and the same edit-distance ratio. Only the threshold differs.
"""
import re
import unicodedata
from typing import Callable, Iterable, Sequence, TypeVar

from rapidfuzz.distance import Levenshtein

T = TypeVar("T")

RESOLUTION_THRESHOLD = 0.70
"""Minimum (title, author) similarity for accepting a resolved record."""

DEDUPLICATION_THRESHOLD = 0.6
"""Minimum title similarity at which two fan-out results are the same book."""

LEADING_ARTICLES = frozenset({"the", "a", "an"})

_BRACKETED = re.compile(r"[\(\[\{][^\)\]\}]*[\)\]\}]")
_APOSTROPHES = re.compile(r"['’`]")
_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")

_AUTHOR_PREFIXES = ("dr ", "prof ", "mr ", "mrs ", "ms ", "sir ")
_AUTHOR_SUFFIXES = (" phd", " md", " jr", " sr", " ii", " iii")


def _strip_punctuation(text: str) -> str:
    text = _APOSTROPHES.sub("", text)
    text = _NON_WORD.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize_title(title: str | None) -> str:
    """
    Normalize a book title for fuzzy comparison by:
    - Lower-casing (after NFKC so full-width and compatibility forms compare equal)
    - Dropping bracketed qualifiers like "(40th Anniversary)" or "[Unabridged]"
      unless the title is nothing but a qualifier
    - Removing punctuation (Unicode letters and digits are kept)
    - Dropping one leading article ("the", "a", "an")
    - Collapsing whitespace
    """
    if not title:
        return ""

    normalized = unicodedata.normalize("NFKC", title).lower().strip()

    without_qualifiers = _BRACKETED.sub(" ", normalized)
    if _strip_punctuation(without_qualifiers):
        normalized = without_qualifiers

    normalized = _strip_punctuation(normalized)

    words = normalized.split(" ")
    if len(words) > 1 and words[0] in LEADING_ARTICLES:
        words = words[1:]
    return " ".join(words)


def normalize_author_name(name: str | None) -> str:
    """Normalize an author name: lower-case, no honorifics or generational suffixes."""
    if not name:
        return ""

    normalized = _strip_punctuation(unicodedata.normalize("NFKC", name).lower())
    for prefix in _AUTHOR_PREFIXES:
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix):].strip()
    for suffix in _AUTHOR_SUFFIXES:
        if normalized.endswith(suffix):
            normalized = normalized[:-len(suffix)].strip()

    return normalized


def _author_variants(name: str) -> list[str]:
    variants = [normalize_author_name(name)]
    # "Larson, Erik" -> "erik larson"
    if "," in name:
        surname, _, given = name.partition(",")
        reordered = normalize_author_name(f"{given} {surname}")
        if reordered and reordered not in variants:
            variants.append(reordered)
    return [v for v in variants if v]


def ratio(first: str, second: str) -> float:
    """Levenshtein similarity of two already-normalized strings, in [0, 1]."""
    if not first and not second:
        return 1.0
    return Levenshtein.normalized_similarity(first, second)


def similarity(first: str | None, second: str | None) -> float:
    """Normalized edit-distance similarity of two titles, in [0, 1]."""
    return ratio(normalize_title(first), normalize_title(second))


def is_similar(first: str | None, second: str | None, threshold: float = DEDUPLICATION_THRESHOLD) -> bool:
    return similarity(first, second) >= threshold


def author_similarity(query_author: str, candidates: Sequence[str]) -> float:
    """Best similarity between the requested author and any candidate author."""
    query_variants = _author_variants(query_author)
    best = 0.0
    for candidate in candidates:
        for candidate_variant in _author_variants(candidate):
            for query_variant in query_variants:
                best = max(best, ratio(query_variant, candidate_variant))
    return best


def record_similarity(
    query_title: str,
    query_author: str | None,
    title: str | None,
    authors: Sequence[str] = (),
) -> float:
    """
    Similarity between a requested (title, author) and a returned record.

    The author only participates when both sides carry one; the score is then
    the mean of title and author similarity.
    """
    title_score = similarity(query_title, title)
    if not query_author or not authors:
        return title_score
    return (title_score + author_similarity(query_author, authors)) / 2


def deduplicate(
    items: Iterable[T],
    key: Callable[[T], str | None],
    threshold: float = DEDUPLICATION_THRESHOLD,
    on_duplicate: Callable[[T, T, float], None] | None = None,
) -> list[T]:
    """
    Order-stable fuzzy deduplication.

    Each item is compared against every item kept so far; it is dropped when
    any similarity reaches ``threshold``. The earliest item of a cluster wins,
    so callers control precedence by the order they pass items in.
    """
    kept: list[T] = []
    kept_keys: list[str] = []

    for item in items:
        normalized = normalize_title(key(item))
        duplicate_of: T | None = None
        score = 0.0
        for kept_item, kept_key in zip(kept, kept_keys):
            score = ratio(normalized, kept_key)
            if score >= threshold:
                duplicate_of = kept_item
                break

        if duplicate_of is not None:
            if on_duplicate is not None:
                on_duplicate(item, duplicate_of, score)
            continue

        kept.append(item)
        kept_keys.append(normalized)

    return kept
