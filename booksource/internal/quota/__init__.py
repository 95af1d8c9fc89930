"""Daily quota admission control and the counter stores behind it."""

from booksource.internal.quota.manager import (
    MeteredAdapterMixin,
    Priority,
    QuotaDecision,
    QuotaManager,
    QuotaStatus,
    RateLimitPolicy,
)
from booksource.internal.quota.store import CounterStore, InMemoryCounterStore, SQLCounterStore

__all__ = [
    "CounterStore",
    "InMemoryCounterStore",
    "MeteredAdapterMixin",
    "Priority",
    "QuotaDecision",
    "QuotaManager",
    "QuotaStatus",
    "RateLimitPolicy",
    "SQLCounterStore",
]
