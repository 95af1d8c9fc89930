"""
Counter stores backing the quota manager.

A store only knows integer values under string keys with an expiry. Absence
of a key means zero; the quota manager puts the UTC date in the key so every
day starts from an absent key.
"""
import threading
import time
from datetime import timedelta
from typing import Callable, Protocol

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from booksource.internal.models import QuotaCounter, utcnow_naive
from booksource.util.exceptions import handle_database_error


class CounterStore(Protocol):
    async def get(self, key: str) -> int | None: ...

    async def put(self, key: str, value: int, ttl_seconds: int) -> None: ...


class InMemoryCounterStore:
    """Process-local store. Counters are lost on restart."""

    _values: dict[str, tuple[int, float]]
    _lock: threading.Lock
    _clock: Callable[[], float]

    def __init__(self, clock: Callable[[], float] = time.time):
        self._values = {}
        self._lock = threading.Lock()
        self._clock = clock

    async def get(self, key: str) -> int | None:
        with self._lock:
            hit = self._values.get(key)
            if hit is None:
                return None
            value, expires_at = hit
            if expires_at <= self._clock():
                del self._values[key]
                return None
            return value

    async def put(self, key: str, value: int, ttl_seconds: int) -> None:
        with self._lock:
            self._values[key] = (value, self._clock() + ttl_seconds)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._values.items() if expires_at <= now]
            for k in expired:
                del self._values[k]
            return len(expired)


class SQLCounterStore:
    """Durable store on the ``quota_counter`` table."""

    _engine: Engine

    def __init__(self, engine: Engine):
        self._engine = engine

    async def get(self, key: str) -> int | None:
        with Session(self._engine) as session:
            counter = session.get(QuotaCounter, key)
            if counter is None or counter.expires_at <= utcnow_naive():
                return None
            return counter.value

    async def put(self, key: str, value: int, ttl_seconds: int) -> None:
        now = utcnow_naive()
        with Session(self._engine) as session:
            try:
                counter = session.get(QuotaCounter, key)
                if counter is None:
                    counter = QuotaCounter(key=key, value=value, expires_at=now + timedelta(seconds=ttl_seconds))
                else:
                    counter.value = value
                    counter.expires_at = now + timedelta(seconds=ttl_seconds)
                    counter.updated_at = now
                session.add(counter)
                session.commit()
            except SQLAlchemyError as e:
                handle_database_error(e, "write quota counter", rollback_session=session, key=key)
                raise

    def purge_expired(self) -> int:
        """Delete rows whose day has passed. Returns the number removed."""
        with Session(self._engine) as session:
            expired = session.exec(
                select(QuotaCounter).where(col(QuotaCounter.expires_at) <= utcnow_naive())
            ).all()
            for counter in expired:
                session.delete(counter)
            session.commit()
            return len(expired)
