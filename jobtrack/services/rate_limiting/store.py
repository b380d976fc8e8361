"""
Storage backends for fixed-window rate limit records.

The limiter only talks to the ``RateLimitStore`` interface, so the in-memory
map can be swapped for a persisted table without touching call sites.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from jobtrack.core.clock import ensure_utc
from jobtrack.models.rate_limit import RateLimitWindow
from jobtrack.utils.error_handler import ErrorCategory, JobTrackError
from jobtrack.utils.logger import get_logger

logger = get_logger(__name__)


class RateLimitStoreError(JobTrackError):
    """Raised when a persisted store cannot be read or written"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.STORAGE, **kwargs)


@dataclass(frozen=True)
class RateLimitRecord:
    """Counter state for one key within its current window."""

    key: str
    window_start: datetime
    count: int
    limit: int
    window_ms: int

    @property
    def window(self) -> timedelta:
        return timedelta(milliseconds=self.window_ms)

    @property
    def reset_at(self) -> datetime:
        return self.window_start + self.window

    def is_expired(self, now: datetime, window_ms: Optional[int] = None) -> bool:
        """
        A window is closed once ``now - window_start >= window``.

        A window_start in the future (clock moved backwards) counts as open.
        """
        window = timedelta(milliseconds=window_ms or self.window_ms)
        return now - self.window_start >= window

    def incremented(self) -> "RateLimitRecord":
        return replace(self, count=self.count + 1)


class RateLimitStore(ABC):
    """Key-value store of rate limit records."""

    @abstractmethod
    def get(self, key: str) -> Optional[RateLimitRecord]:
        ...

    @abstractmethod
    def hit(
        self, key: str, now: datetime, window_ms: int, limit: int
    ) -> RateLimitRecord:
        """
        Count one request against ``key`` as a single atomic step.

        Opens a new window at ``now`` when there is no record or the current
        one has expired, otherwise increments it. Returns the stored record.
        """

    @abstractmethod
    def set(self, record: RateLimitRecord) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        ...


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store."""

    def __init__(self) -> None:
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[RateLimitRecord]:
        return self._records.get(key)

    def hit(
        self, key: str, now: datetime, window_ms: int, limit: int
    ) -> RateLimitRecord:
        with self._lock:
            record = self._records.get(key)
            if record is None or record.is_expired(now, window_ms):
                record = RateLimitRecord(
                    key=key, window_start=now, count=1, limit=limit, window_ms=window_ms
                )
            else:
                record = record.incremented()
            self._records[key] = record
            return record

    def set(self, record: RateLimitRecord) -> None:
        self._records[record.key] = record

    def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    def keys(self) -> List[str]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)


class SqlAlchemyRateLimitStore(RateLimitStore):
    """
    Store backed by the ``rate_limits`` table.

    Rows are read as-is on every lookup, so windows opened before a restart
    keep counting until they expire. ``hit`` increments inside the database,
    so limiters in separate processes sharing the table still agree on one
    counter per key.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _to_record(row: RateLimitWindow) -> RateLimitRecord:
        return RateLimitRecord(
            key=row.key,
            window_start=ensure_utc(row.window_start),
            count=row.count,
            limit=row.limit,
            window_ms=row.window_ms,
        )

    def hit(
        self, key: str, now: datetime, window_ms: int, limit: int
    ) -> RateLimitRecord:
        try:
            return self._hit(key, now, window_ms, limit)
        except RateLimitStoreError as e:
            # Two first hits raced on the insert; the row exists now
            if not isinstance(e.__cause__, IntegrityError):
                raise
            logger.info("rate_limit_insert_race_retried", key_prefix=key.split(":", 1)[0])
            return self._hit(key, now, window_ms, limit)

    def _hit(
        self, key: str, now: datetime, window_ms: int, limit: int
    ) -> RateLimitRecord:
        window_floor = now - timedelta(milliseconds=window_ms)
        with self._session() as db:
            bumped = db.execute(
                update(RateLimitWindow)
                .where(
                    RateLimitWindow.key == key,
                    RateLimitWindow.window_start > window_floor,
                )
                .values(count=RateLimitWindow.count + 1)
                .execution_options(synchronize_session=False)
            ).rowcount

            if not bumped:
                reopened = db.execute(
                    update(RateLimitWindow)
                    .where(
                        RateLimitWindow.key == key,
                        RateLimitWindow.window_start <= window_floor,
                    )
                    .values(window_start=now, count=1, limit=limit, window_ms=window_ms)
                    .execution_options(synchronize_session=False)
                ).rowcount
                if not reopened:
                    db.add(
                        RateLimitWindow(
                            key=key,
                            window_start=now,
                            count=1,
                            limit=limit,
                            window_ms=window_ms,
                        )
                    )
                    db.flush()

            row = db.execute(
                select(RateLimitWindow)
                .where(RateLimitWindow.key == key)
                .execution_options(populate_existing=True)
            ).scalar_one()
            return self._to_record(row)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error("rate_limit_store_transaction_failed", error=str(e))
            raise RateLimitStoreError(f"Rate limit store failure: {e}") from e
        finally:
            db.close()

    def get(self, key: str) -> Optional[RateLimitRecord]:
        with self._session() as db:
            row = db.get(RateLimitWindow, key)
            if row is None:
                return None
            return self._to_record(row)

    def set(self, record: RateLimitRecord) -> None:
        with self._session() as db:
            row = db.get(RateLimitWindow, record.key)
            if row is None:
                row = RateLimitWindow(key=record.key)
                db.add(row)
            row.window_start = record.window_start
            row.count = record.count
            row.limit = record.limit
            row.window_ms = record.window_ms

    def delete(self, key: str) -> bool:
        with self._session() as db:
            deleted = (
                db.query(RateLimitWindow).filter(RateLimitWindow.key == key).delete()
            )
            return bool(deleted)

    def keys(self) -> List[str]:
        with self._session() as db:
            return [key for (key,) in db.query(RateLimitWindow.key).all()]
