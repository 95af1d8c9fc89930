"""
Daily quota admission control for metered providers.

Every metered provider has a daily call limit. Two ceilings sit below that
limit: high-priority callers may spend up to the hard ceiling, everybody
else stops at the soft ceiling, leaving headroom for user-facing requests.

Counters live under ``quota:{provider}:{YYYY-MM-DD}`` in UTC, so a new day
starts from an absent key and no reset job is needed. Reads are fail-closed:
if the store cannot be read the provider is treated as exhausted.
"""
import math
from datetime import UTC, datetime, time, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Callable, Mapping

from pydantic import BaseModel, ConfigDict

from booksource.internal.quota.store import CounterStore
from booksource.util.exceptions import ConfigurationError, handle_store_error
from booksource.util.log import logger

if TYPE_CHECKING:
    from booksource.internal.context import ServiceContext

DEFAULT_SOFT_CEILING = 0.70
DEFAULT_HARD_CEILING = 0.85

# Counters are kept this long past the end of their UTC day.
_TTL_MARGIN = timedelta(days=1)


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RateLimitPolicy(StrEnum):
    ENFORCE = "enforce"
    LOG_ONLY = "log-only"
    DISABLED = "disabled"


class QuotaDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    remaining: int
    """Calls left under the ceiling that applied to this decision"""
    reason: str
    """ok, soft-ceiling, hard-ceiling, unknown-provider or store-error"""


class QuotaStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_key: str
    used: int
    limit: int
    soft_ceiling: int
    hard_ceiling: int
    reset_at: datetime
    healthy: bool
    """False when the counter could not be read; the provider then counts as exhausted"""

    @property
    def exhausted(self) -> bool:
        return not self.healthy or self.used >= self.hard_ceiling


def _utcnow() -> datetime:
    return datetime.now(UTC)


class QuotaManager:
    _store: CounterStore
    _limits: dict[str, int]
    _soft_ratio: float
    _hard_ratio: float
    _clock: Callable[[], datetime]

    def __init__(
        self,
        store: CounterStore,
        daily_limits: Mapping[str, int],
        soft_ceiling: float = DEFAULT_SOFT_CEILING,
        hard_ceiling: float = DEFAULT_HARD_CEILING,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            store: Where the daily counters live.
            daily_limits: Daily call limit per provider key.
            soft_ceiling: Share of the limit available to medium and low priority.
            hard_ceiling: Share of the limit available to high priority.
            clock: Returns the current aware UTC time, injectable for tests.
        """
        if not (0 < soft_ceiling <= 1 and 0 < hard_ceiling <= 1):
            raise ConfigurationError("Quota ceilings must be in (0, 1]")
        if soft_ceiling > hard_ceiling:
            raise ConfigurationError(
                f"soft_ceiling ({soft_ceiling}) must not exceed hard_ceiling ({hard_ceiling})"
            )
        for key, limit in daily_limits.items():
            if limit < 0:
                raise ConfigurationError(f"Daily limit for '{key}' must be non-negative")

        self._store = store
        self._limits = dict(daily_limits)
        self._soft_ratio = soft_ceiling
        self._hard_ratio = hard_ceiling
        self._clock = clock

    def _today(self) -> datetime:
        return self._clock().astimezone(UTC)

    def counter_key(self, provider_key: str) -> str:
        return f"quota:{provider_key}:{self._today().strftime('%Y-%m-%d')}"

    def _reset_at(self) -> datetime:
        tomorrow = self._today().date() + timedelta(days=1)
        return datetime.combine(tomorrow, time.min, tzinfo=UTC)

    def _ttl_seconds(self) -> int:
        return math.ceil((self._reset_at() - self._today() + _TTL_MARGIN).total_seconds())

    def knows(self, provider_key: str) -> bool:
        return provider_key in self._limits

    def limit_for(self, provider_key: str) -> int | None:
        return self._limits.get(provider_key)

    def ceiling(self, provider_key: str, priority: Priority = Priority.LOW) -> int:
        """Calls admissible today for ``priority``: floor(limit * ratio)."""
        limit = self._limits.get(provider_key, 0)
        ratio = self._hard_ratio if priority == Priority.HIGH else self._soft_ratio
        return math.floor(limit * ratio + 1e-9)

    async def _evaluate(
        self, provider_key: str, cost: int, priority: Priority | None, reserve: bool
    ) -> QuotaDecision:
        priority = Priority(priority) if priority else Priority.LOW
        if provider_key not in self._limits:
            logger.error("No daily limit configured for provider, denying", provider_key=provider_key)
            return QuotaDecision(allowed=False, remaining=0, reason="unknown-provider")

        key = self.counter_key(provider_key)
        try:
            used = await self._store.get(key) or 0
        except Exception as e:
            handle_store_error(e, "read", provider_key, key=key)
            return QuotaDecision(allowed=False, remaining=0, reason="store-error")

        ceiling = self.ceiling(provider_key, priority)
        if used + cost > ceiling:
            hard = self.ceiling(provider_key, Priority.HIGH)
            reason = "hard-ceiling" if used + cost > hard else "soft-ceiling"
            logger.debug(
                "Quota ceiling reached",
                provider_key=provider_key,
                used=used,
                cost=cost,
                ceiling=ceiling,
                priority=priority.value,
                reason=reason,
            )
            return QuotaDecision(allowed=False, remaining=max(ceiling - used, 0), reason=reason)

        if not reserve:
            return QuotaDecision(allowed=True, remaining=ceiling - used, reason="ok")

        try:
            await self._store.put(key, used + cost, self._ttl_seconds())
        except Exception as e:
            handle_store_error(e, "write", provider_key, key=key)
            return QuotaDecision(allowed=False, remaining=0, reason="store-error")

        return QuotaDecision(allowed=True, remaining=ceiling - used - cost, reason="ok")

    async def check_and_reserve(
        self, provider_key: str, cost: int = 1, priority: Priority | None = Priority.LOW
    ) -> QuotaDecision:
        """Admit and count ``cost`` calls, or deny without touching the counter."""
        return await self._evaluate(provider_key, cost, priority, reserve=True)

    async def check(
        self, provider_key: str, cost: int = 1, priority: Priority | None = Priority.LOW
    ) -> QuotaDecision:
        """Same admission test as :meth:`check_and_reserve`, without counting."""
        return await self._evaluate(provider_key, cost, priority, reserve=False)

    async def status(self, provider_key: str) -> QuotaStatus:
        limit = self._limits.get(provider_key, 0)
        healthy = provider_key in self._limits
        used = 0
        if healthy:
            try:
                used = await self._store.get(self.counter_key(provider_key)) or 0
            except Exception as e:
                handle_store_error(e, "read", provider_key)
                healthy = False

        hard = self.ceiling(provider_key, Priority.HIGH)
        return QuotaStatus(
            provider_key=provider_key,
            # An unreadable counter is reported as spent.
            used=used if healthy else hard,
            limit=limit,
            soft_ceiling=self.ceiling(provider_key, Priority.LOW),
            hard_ceiling=hard,
            reset_at=self._reset_at(),
            healthy=healthy,
        )

    async def record_usage(self, provider_key: str, count: int = 1) -> None:
        """Count calls that were made without a reservation. Never raises."""
        if provider_key not in self._limits:
            logger.error("No daily limit configured for provider, usage not recorded", provider_key=provider_key)
            return
        key = self.counter_key(provider_key)
        try:
            used = await self._store.get(key) or 0
            await self._store.put(key, used + count, self._ttl_seconds())
        except Exception as e:
            handle_store_error(e, "record usage", provider_key, key=key, count=count)

    async def reset(self, provider_key: str) -> None:
        await self._store.put(self.counter_key(provider_key), 0, self._ttl_seconds())
        logger.info("Quota counter reset", provider_key=provider_key)

    async def admit(
        self,
        provider_key: str,
        context: "ServiceContext",
        cost: int = 1,
        reserve: bool = True,
    ) -> bool:
        """
        Admission under the context's priority and rate-limit policy.

        ``enforce`` returns the decision as computed. ``log-only`` logs a
        denial but lets the call through (still counting it when
        ``reserve``). ``disabled`` admits without touching the store.
        """
        policy = RateLimitPolicy(context.rate_limit_policy)
        if policy == RateLimitPolicy.DISABLED:
            return True

        decision = await self._evaluate(provider_key, cost, context.priority, reserve=reserve)
        if decision.allowed:
            return True

        if policy == RateLimitPolicy.LOG_ONLY:
            context.logger.warning(
                "Quota denial ignored under log-only policy",
                provider_key=provider_key,
                reason=decision.reason,
                priority=context.priority.value,
            )
            if reserve and decision.reason != "store-error":
                await self.record_usage(provider_key, cost)
            return True

        context.logger.info(
            "Quota denied provider call",
            provider_key=provider_key,
            reason=decision.reason,
            priority=context.priority.value,
        )
        return False


class MeteredAdapterMixin:
    """
    Quota helpers for adapters of paid or AI providers.

    Set ``quota_key`` to the key configured under the daily limits. Use
    :meth:`quota_allows` inside ``is_available`` and :meth:`reserve_quota`
    right before the outbound call.
    """

    quota_key: str
    quota_cost: int = 1

    async def quota_allows(self, context: "ServiceContext", cost: int | None = None) -> bool:
        if context.quota_manager is None:
            context.logger.debug("No quota manager on context, skipping quota check", provider_key=self.quota_key)
            return True
        return await context.quota_manager.admit(
            self.quota_key, context, cost=self.quota_cost if cost is None else cost, reserve=False
        )

    async def reserve_quota(self, context: "ServiceContext", cost: int | None = None) -> bool:
        if context.quota_manager is None:
            return True
        return await context.quota_manager.admit(
            self.quota_key, context, cost=self.quota_cost if cost is None else cost, reserve=True
        )
