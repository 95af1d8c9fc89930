"""
Shared HTTP helper for adapter authors.

Adapters must return a miss instead of raising, so every outbound JSON call
funnels through :func:`fetch_json`, which turns transport errors, non-200
statuses and unparsable bodies into ``None``.
"""
import json
from typing import Any, Mapping, TypeVar, overload

from aiohttp import ClientError, ClientSession, ClientTimeout
from pydantic import BaseModel, ValidationError

from booksource.util.exceptions import handle_external_api_error, handle_validation_error
from booksource.util.log import logger

M = TypeVar("M", bound=BaseModel)

DEFAULT_HTTP_TIMEOUT = 10.0


@overload
async def fetch_json(
    session: ClientSession,
    url: str,
    *,
    provider: str,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    model: None = None,
) -> Any | None: ...


@overload
async def fetch_json(
    session: ClientSession,
    url: str,
    *,
    provider: str,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    model: type[M],
) -> M | None: ...


async def fetch_json(
    session: ClientSession,
    url: str,
    *,
    provider: str,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    model: type[BaseModel] | None = None,
) -> Any | None:
    """
    GET ``url`` and return the decoded JSON body, or ``None`` on any failure.

    Args:
        session: Shared aiohttp session, usually ``context.http_session``.
        url: Endpoint to call.
        provider: Provider name, used in log lines.
        params: Query parameters.
        headers: Extra request headers (API keys).
        timeout: Total request timeout in seconds.
        model: Optional pydantic model the body is validated into.
    """
    try:
        async with session.get(
            url,
            params=params,
            headers=headers,
            timeout=ClientTimeout(total=timeout),
        ) as response:
            if response.status != 200:
                logger.warning(
                    f"{provider} returned {response.status}",
                    provider=provider,
                    url=url,
                    status=response.status,
                )
                return None
            data = await response.json(content_type=None)
    except TimeoutError as e:
        handle_external_api_error(e, provider, "HTTP request timed out", url=url, timeout=timeout)
        return None
    except ClientError as e:
        handle_external_api_error(e, provider, "HTTP request", url=url)
        return None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        handle_external_api_error(e, provider, "parse response", url=url)
        return None

    if model is None:
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        handle_validation_error(e, f"{provider} response", url=url)
        return None
