"""
Exception types and standard error-logging helpers for booksource.

Only startup misconfiguration raises. Everything that can go wrong while a
request is in flight (a provider failing, a quota store hiccup, a malformed
payload) is logged through one of the helpers below and degraded to
"try the next provider" or "return empty".
"""
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from booksource.util.log import logger


class BooksourceError(Exception):
    """Base class for every error raised by booksource."""


class ConfigurationError(BooksourceError, ValueError):
    """Settings or construction arguments are inconsistent."""


class DuplicateProviderError(BooksourceError):
    def __init__(self, name: str):
        super().__init__(f"Provider '{name}' is already registered")
        self.name = name


class UnsupportedCapabilityError(BooksourceError):
    def __init__(self, provider: str, capability: object, reason: str):
        super().__init__(f"Provider '{provider}' cannot serve {capability!r}: {reason}")
        self.provider = provider
        self.capability = capability


def handle_external_api_error(
    error: Exception,
    service: str,
    operation: str,
    **context: Any
) -> None:
    """
    Standard logging for external API failures.

    Args:
        error: The caught exception
        service: Name of the external service (e.g., "open-library", "isbndb")
        operation: What operation was being attempted (e.g., "fetch cover", "search")
        **context: Additional context to log (e.g., isbn=..., title=...)

    Example:
        try:
            payload = await response.json()
        except (ClientError, ValueError) as e:
            handle_external_api_error(e, "open-library", "parse response", isbn=isbn)
            return None
    """
    logger.error(
        f"{service} {operation} failed",
        error=str(error),
        error_type=type(error).__name__,
        service=service,
        operation=operation,
        **context
    )


def handle_provider_error(
    error: BaseException,
    provider: str,
    capability: str,
    **context: Any
) -> None:
    """
    Logging for an adapter that raised although adapters are expected to
    return a miss instead. The orchestrator treats it as a miss and moves on.
    """
    logger.warning(
        "Provider raised during call, treating as miss",
        error=str(error),
        error_type=type(error).__name__,
        provider=provider,
        capability=capability,
        **context
    )


def handle_malformed_response(
    provider: str,
    capability: str,
    expected: str,
    rejected: int,
    **context: Any
) -> None:
    """
    Logging for an adapter that returned something other than the
    capability's response model. The offending value (or list entries) is
    dropped; an empty remainder counts as a miss.
    """
    logger.warning(
        "Provider returned malformed result, discarding",
        provider=provider,
        capability=capability,
        expected=expected,
        rejected=rejected,
        **context
    )


def handle_database_error(
    error: SQLAlchemyError,
    operation: str,
    rollback_session: Any = None,
    **context: Any
) -> None:
    """
    Standard logging and handling for database errors.

    Args:
        error: The caught SQLAlchemy exception
        operation: What database operation was being attempted
        rollback_session: Optional SQLModel Session to rollback
        **context: Additional context to log

    Example:
        try:
            session.add(counter)
            session.commit()
        except SQLAlchemyError as e:
            handle_database_error(e, "write quota counter", rollback_session=session, key=key)
            raise
    """
    logger.error(
        f"Database {operation} failed",
        error=str(error),
        error_type=type(error).__name__,
        operation=operation,
        **context
    )

    if rollback_session is not None:
        try:
            rollback_session.rollback()
        except SQLAlchemyError as rollback_error:
            logger.warning(
                "Failed to rollback session after database error",
                error=str(rollback_error)
            )


def handle_store_error(
    error: Exception,
    operation: str,
    provider_key: str,
    **context: Any
) -> None:
    """
    Logging for quota counter store failures. Callers fail closed: the
    provider is reported unavailable for the rest of the call.
    """
    logger.error(
        f"Quota store {operation} failed, failing closed",
        error=str(error),
        error_type=type(error).__name__,
        operation=operation,
        provider_key=provider_key,
        **context
    )


def handle_validation_error(
    error: ValidationError,
    data_source: str,
    **context: Any
) -> None:
    """
    Standard logging for data validation failures.

    Args:
        error: The caught ValidationError
        data_source: Where the invalid data came from (e.g., "open-library response")
        **context: Additional context to log

    Example:
        try:
            record = BookMetadata.model_validate(data)
        except ValidationError as e:
            handle_validation_error(e, "open-library response", isbn=isbn)
            return None
    """
    logger.error(
        f"{data_source} validation failed",
        error=str(error),
        error_type=type(error).__name__,
        data_source=data_source,
        **context
    )
