"""
Match store: a month-bucketed result cache plus a permanent denylist.

Both live in one key-value backend under separate key prefixes:

    fide-cache-YYYY-MM-<term>   serialized accurate resolution for <term>
    fide-invalid-<term>         JSON list of candidate ids rejected for <term>

<term> is the normalized search term (whitespace removed, case folded). Cache
keys embed the month they were written in, so entries from an earlier month
simply stop matching and are reclaimed by ``purge_stale``. Denylist keys are
never purged.

Every operation is best-effort: backend failures are logged and degrade to a
cache miss or a skipped write, never to an exception for the caller.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Protocol, Set

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .database import Entry, init_database
from .logger import get_logger
from .normalize import normalize_term
from .schema import Resolution, validate_resolution

CACHE_PREFIX = "fide-cache-"
DENYLIST_PREFIX = "fide-invalid-"


class StorageError(Exception):
    """Raised by a backend when a read or write cannot be completed."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove_all(self, predicate: Callable[[str], bool]) -> int: ...

    def keys(self) -> Iterable[str]: ...


class MemoryKeyValueStore:
    """In-process backend. ``capacity`` caps the number of keys to model a full store."""

    def __init__(self, capacity: Optional[int] = None):
        self.data: Dict[str, str] = {}
        self.capacity = capacity

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.capacity is not None and key not in self.data and len(self.data) >= self.capacity:
            raise StorageError(f"Store is full ({self.capacity} keys)")
        self.data[key] = value

    def remove_all(self, predicate: Callable[[str], bool]) -> int:
        doomed = [k for k in self.data if predicate(k)]
        for k in doomed:
            del self.data[k]
        return len(doomed)

    def keys(self) -> Iterable[str]:
        return list(self.data)


class SqlKeyValueStore:
    """SQLite backend through SQLAlchemy."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        try:
            self.engine = init_database(db_path)
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"Cannot open store at {db_path}: {e}") from e
        self.Session = sessionmaker(bind=self.engine)

    def get(self, key: str) -> Optional[str]:
        try:
            with self.Session() as session:
                entry = session.get(Entry, key)
                return entry.value if entry is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Read failed for {key}: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            with self.Session() as session:
                session.merge(Entry(key=key, value=value, updated_at=datetime.now()))
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Write failed for {key}: {e}") from e

    def remove_all(self, predicate: Callable[[str], bool]) -> int:
        try:
            with self.Session() as session:
                doomed = [k for k in session.scalars(select(Entry.key)) if predicate(k)]
                for k in doomed:
                    session.delete(session.get(Entry, k))
                session.commit()
                return len(doomed)
        except SQLAlchemyError as e:
            raise StorageError(f"Bulk delete failed: {e}") from e

    def keys(self) -> Iterable[str]:
        try:
            with self.Session() as session:
                return list(session.scalars(select(Entry.key)))
        except SQLAlchemyError as e:
            raise StorageError(f"Key scan failed: {e}") from e


def time_bucket(moment: datetime) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


def cache_key(term: str, bucket: str) -> str:
    return f"{CACHE_PREFIX}{bucket}-{normalize_term(term)}"


def denylist_key(term: str) -> str:
    return f"{DENYLIST_PREFIX}{normalize_term(term)}"


def bucket_of(key: str) -> Optional[str]:
    """Month bucket embedded in a cache key, or None for any other key."""
    if not key.startswith(CACHE_PREFIX):
        return None
    bucket = key[len(CACHE_PREFIX):len(CACHE_PREFIX) + 7]
    return bucket if len(bucket) == 7 and bucket[4] == "-" else None


class MatchStore:
    def __init__(
        self,
        backend: Optional[KeyValueStore] = None,
        clock: Callable[[], datetime] = datetime.now,
        logger=None,
    ):
        self.backend = backend if backend is not None else MemoryKeyValueStore()
        self.clock = clock
        self.logger = logger or get_logger()

    # Cache

    def get(self, term: str) -> Optional[Resolution]:
        key = cache_key(term, time_bucket(self.clock()))
        try:
            raw = self.backend.get(key)
        except StorageError as e:
            self.logger.warning("Cache read failed", term=term, error=str(e))
            return None
        if raw is None:
            return None

        try:
            entry = json.loads(raw)
            data = entry["data"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            self.logger.warning("Discarding unreadable cache entry", key=key, error=str(e))
            return None
        errors = validate_resolution(data)
        if errors:
            self.logger.warning("Discarding invalid cache entry", key=key, errors=errors)
            return None
        return Resolution.from_dict(data)

    def put(self, term: str, resolution: Resolution) -> bool:
        """Cache an accurate resolution under the current month. Returns True if written."""
        if not resolution.accurate:
            return False
        now = self.clock()
        key = cache_key(term, time_bucket(now))
        payload = json.dumps({
            "timestamp": int(now.timestamp() * 1000),
            "data": resolution.to_dict(),
        })
        return self._write(key, payload, now)

    def evict(self, term: str) -> None:
        key = cache_key(term, time_bucket(self.clock()))
        try:
            self.backend.remove_all(lambda k: k == key)
        except StorageError as e:
            self.logger.warning("Cache eviction failed", term=term, error=str(e))

    def purge_stale(self, now: Optional[datetime] = None) -> int:
        """Remove cache entries written in any month other than ``now``'s."""
        current = time_bucket(now or self.clock())

        def is_stale(key: str) -> bool:
            bucket = bucket_of(key)
            return bucket is not None and bucket != current

        try:
            removed = self.backend.remove_all(is_stale)
        except StorageError as e:
            self.logger.error("Stale cache purge failed", error=str(e))
            return 0
        if removed:
            self.logger.info("Purged stale cache entries", removed=removed, bucket=current)
        return removed

    def cache_size(self) -> int:
        try:
            return sum(1 for k in self.backend.keys() if k.startswith(CACHE_PREFIX))
        except StorageError as e:
            self.logger.warning("Cache scan failed", error=str(e))
            return 0

    # Denylist

    def denylist_list(self, term: str) -> Set[str]:
        try:
            raw = self.backend.get(denylist_key(term))
        except StorageError as e:
            self.logger.warning("Denylist read failed", term=term, error=str(e))
            return set()
        if raw is None:
            return set()
        try:
            ids = json.loads(raw)
        except json.JSONDecodeError as e:
            self.logger.warning("Discarding unreadable denylist", term=term, error=str(e))
            return set()
        return {i for i in ids if isinstance(i, str)} if isinstance(ids, list) else set()

    def denylist_add(self, term: str, candidate_id: str) -> bool:
        """Permanently exclude a candidate for a term and drop the term's cached result."""
        if not candidate_id:
            self.logger.warning("Ignoring denylist entry without a candidate id", term=term)
            return False
        ids = self.denylist_list(term)
        if candidate_id not in ids:
            ids.add(candidate_id)
            if not self._write(denylist_key(term), json.dumps(sorted(ids)), self.clock()):
                return False
            self.logger.info("Candidate denylisted", term=term, candidate_id=candidate_id)
        self.evict(term)
        return True

    def denylist_remove(self, term: str, candidate_id: str) -> bool:
        ids = self.denylist_list(term)
        if candidate_id not in ids:
            return True
        ids.discard(candidate_id)
        return self._write(denylist_key(term), json.dumps(sorted(ids)), self.clock())

    def _write(self, key: str, payload: str, now: datetime) -> bool:
        try:
            self.backend.set(key, payload)
            return True
        except StorageError as e:
            self.logger.warning("Store write failed, purging stale entries", key=key, error=str(e))
        # One retry after reclaiming space from earlier months
        self.purge_stale(now)
        try:
            self.backend.set(key, payload)
            return True
        except StorageError as e:
            self.logger.error("Store write skipped", key=key, error=str(e))
            return False
