import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, TypeVar

VT = TypeVar("VT")


class CacheMetrics:
    """Thread-safe cache metrics tracker."""

    hits: int
    misses: int
    evictions: int
    _lock: threading.Lock

    def __init__(self):
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def record_hit(self):
        with self._lock:
            self.hits += 1

    def record_miss(self):
        with self._lock:
            self.misses += 1

    def record_eviction(self):
        with self._lock:
            self.evictions += 1

    def hit_rate(self) -> float:
        """Return cache hit rate as percentage (0-100)."""
        with self._lock:
            total = self.hits + self.misses
            if total == 0:
                return 0.0
            return (self.hits / total) * 100

    def reset(self):
        with self._lock:
            self.hits = 0
            self.misses = 0
            self.evictions = 0


class ResultCache(Generic[VT]):
    """
    In-process TTL cache for orchestrator results with LRU eviction.

    Entries are keyed by ``(namespace, key)`` where the namespace is the
    capability being served. Lookups of expired entries count as misses and
    drop the entry.
    """

    _cache: OrderedDict[tuple[str, Hashable], tuple[float, VT]]
    _lock: threading.Lock
    _ttl: float
    _maxsize: int | None
    _metrics: CacheMetrics
    _clock: Callable[[], float]

    def __init__(
        self,
        ttl: float,
        maxsize: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            ttl: Seconds an entry stays valid.
            maxsize: Maximum number of entries. None = unlimited. Uses LRU eviction.
            clock: Time source, injectable for tests.
        """
        self._cache = OrderedDict()
        self._lock = threading.Lock()
        self._ttl = ttl
        self._maxsize = maxsize
        self._metrics = CacheMetrics()
        self._clock = clock

    def get(self, namespace: str, key: Hashable) -> VT | None:
        with self._lock:
            hit = self._cache.get((namespace, key))
            if hit is None:
                self._metrics.record_miss()
                return None
            cached_at, value = hit
            if cached_at + self._ttl < self._clock():
                del self._cache[(namespace, key)]
                self._metrics.record_miss()
                return None
            self._cache.move_to_end((namespace, key))
            self._metrics.record_hit()
            return value

    def set(self, namespace: str, key: Hashable, value: VT):
        with self._lock:
            if (namespace, key) in self._cache:
                del self._cache[(namespace, key)]
            self._cache[(namespace, key)] = (self._clock(), value)

            if self._maxsize is not None and len(self._cache) > self._maxsize:
                oldest_key = next(iter(self._cache))
                del self._cache[oldest_key]
                self._metrics.record_eviction()

    def invalidate(self, namespace: str, key: Hashable | None = None) -> int:
        """Drop one entry, or every entry of a namespace when no key is given."""
        with self._lock:
            if key is not None:
                return 1 if self._cache.pop((namespace, key), None) is not None else 0
            doomed = [k for k in self._cache if k[0] == namespace]
            for k in doomed:
                del self._cache[k]
            return len(doomed)

    def flush(self):
        with self._lock:
            self._cache = OrderedDict()

    def get_metrics(self) -> CacheMetrics:
        return self._metrics

    def size(self) -> int:
        with self._lock:
            return len(self._cache)
