"""
Request-scoped service context.

One context is created per inbound request or queue message and passed,
unchanged, through the registry, the orchestrators and every adapter call.
"""
import os
from enum import StrEnum
from typing import Any, Mapping, Optional

from aiohttp import ClientSession
from pydantic import BaseModel, ConfigDict, Field

from booksource.internal.quota.manager import Priority, QuotaManager, RateLimitPolicy
from booksource.util.log import request_logger


class CachePolicy(StrEnum):
    READ_WRITE = "read-write"
    READ_ONLY = "read-only"
    WRITE_ONLY = "write-only"
    DISABLED = "disabled"

    @property
    def can_read(self) -> bool:
        return self in (CachePolicy.READ_WRITE, CachePolicy.READ_ONLY)

    @property
    def can_write(self) -> bool:
        return self in (CachePolicy.READ_WRITE, CachePolicy.WRITE_ONLY)


class ServiceContext(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    env: Mapping[str, str] = Field(default_factory=dict)
    """Environment and secrets (API keys) visible to adapters"""
    logger: Any
    """structlog logger bound to this request"""
    quota_manager: Optional[QuotaManager] = None
    cache_policy: CachePolicy = CachePolicy.READ_WRITE
    rate_limit_policy: RateLimitPolicy = RateLimitPolicy.ENFORCE
    timeout: float | None = Field(default=None, gt=0)
    """Overall budget in seconds for one orchestrator call"""
    metadata: dict[str, Any] = Field(default_factory=dict)
    http_session: Optional[ClientSession] = None
    """Shared aiohttp session adapters should use for outbound calls"""

    @property
    def priority(self) -> Priority:
        """Priority tag from metadata; absent or unknown tags are treated as low."""
        raw = self.metadata.get("priority")
        try:
            return Priority(str(raw).lower()) if raw is not None else Priority.LOW
        except ValueError:
            return Priority.LOW

    def bind(self, **fields: Any) -> "ServiceContext":
        """Copy of this context whose logger carries extra fields."""
        return self.model_copy(update={"logger": self.logger.bind(**fields)})

    def with_metadata(self, **items: Any) -> "ServiceContext":
        return self.model_copy(update={"metadata": {**self.metadata, **items}})


def create_service_context(
    *,
    env: Mapping[str, str] | None = None,
    logger: Any = None,
    quota_manager: QuotaManager | None = None,
    cache_policy: CachePolicy | str = CachePolicy.READ_WRITE,
    rate_limit_policy: RateLimitPolicy | str = RateLimitPolicy.ENFORCE,
    timeout: float | None = None,
    metadata: dict[str, Any] | None = None,
    http_session: ClientSession | None = None,
    request_id: str | None = None,
) -> ServiceContext:
    """
    Build the context for one inbound request.

    Without an explicit ``env`` the process environment is snapshotted. Without
    an explicit ``logger`` a request logger carrying a fresh request id is used.
    """
    return ServiceContext(
        env=dict(os.environ) if env is None else env,
        logger=logger if logger is not None else request_logger(request_id),
        quota_manager=quota_manager,
        cache_policy=CachePolicy(cache_policy),
        rate_limit_policy=RateLimitPolicy(rate_limit_policy),
        timeout=timeout,
        metadata=dict(metadata or {}),
        http_session=http_session,
    )
