"""
Recipe cache with confidence-dependent lifetimes.

Two kinds of entries share one store:
  - validated record lists, keyed by ``request_key(request)``
  - raw provider responses, keyed by ``raw_key(provider, query)``

An entry's expiry is fixed when it is written, from the lifetime table
and the entry's confidence class. Expired entries are misses.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from pydantic import ValidationError

from config import DEFAULT_LIFETIMES, CacheConfig
from models.enums import ConfidenceClass
from models.schema import CacheEntry, ExtractedRecord, SearchRequest

logger = logging.getLogger(__name__)

Payload = Union[List[Dict[str, Any]], Dict[str, Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ------------------------------------------------------------------
# Backends
# ------------------------------------------------------------------

class CacheBackend(ABC):
    """Storage for whole CacheEntry objects."""

    @abstractmethod
    def load(self, key: str) -> Optional[CacheEntry]:
        ...

    @abstractmethod
    def store(self, entry: CacheEntry) -> None:
        """Replace the entry for ``entry.key`` as a single step."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def entries(self) -> Iterator[CacheEntry]:
        ...


class MemoryCacheBackend(CacheBackend):
    """In-process dict guarded by a lock."""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def store(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[entry.key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def entries(self) -> Iterator[CacheEntry]:
        with self._lock:
            snapshot = list(self._entries.values())
        return iter(snapshot)


class FileCacheBackend(CacheBackend):
    """One JSON file per key; writes go to a temp file then ``os.replace``."""

    def __init__(self, cache_dir: Union[str, Path]):
        self._dir = Path(cache_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self._dir / f"{digest}.json"

    def load(self, key: str) -> Optional[CacheEntry]:
        return self._read(self._path(key))

    def store(self, entry: CacheEntry) -> None:
        path = self._path(entry.key)
        with self._lock:
            fd, tmp = tempfile.mkstemp(dir=self._dir, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(entry.model_dump_json())
                os.replace(tmp, path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise

    def delete(self, key: str) -> None:
        with self._lock:
            try:
                self._path(key).unlink()
            except FileNotFoundError:
                pass

    def entries(self) -> Iterator[CacheEntry]:
        for path in sorted(self._dir.glob("*.json")):
            entry = self._read(path)
            if entry is not None:
                yield entry

    @staticmethod
    def _read(path: Path) -> Optional[CacheEntry]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable cache file %s: %s", path.name, exc)
            return None


# ------------------------------------------------------------------
# Cache facade
# ------------------------------------------------------------------

class RecipeCache:
    """
    Usage:
        cache = RecipeCache()
        key = cache.request_key(request)
        entry = cache.get(key)
        if entry is None:
            cache.put(key, [r.model_dump(mode="json") for r in records],
                      ConfidenceClass.HIGH, request=request)
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        lifetimes: Optional[Dict[ConfidenceClass, timedelta]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._backend = backend or MemoryCacheBackend()
        self._lifetimes = dict(lifetimes or DEFAULT_LIFETIMES)
        self._clock = clock
        self.hits = 0
        self.misses = 0

    @classmethod
    def from_config(cls, config: CacheConfig) -> RecipeCache:
        if config.backend == "file":
            backend: CacheBackend = FileCacheBackend(config.cache_dir)
        elif config.backend == "memory":
            backend = MemoryCacheBackend()
        else:
            raise ValueError(f"Unknown cache backend '{config.backend}'")
        return cls(backend=backend, lifetimes=config.lifetimes)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def request_key(request: SearchRequest) -> str:
        """SHA-256 of the canonical JSON of the normalized request."""
        canonical = json.dumps(
            request.normalized(), sort_keys=True, separators=(",", ":")
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @staticmethod
    def raw_key(provider: str, query: str) -> str:
        canonical = f"{provider.lower()}\n{' '.join(query.lower().split())}"
        return "raw:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[CacheEntry]:
        """Entry for key, or None if missing or expired (expired is deleted)."""
        entry = self._backend.load(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.is_expired(self._clock()):
            self._backend.delete(key)
            self.misses += 1
            logger.debug("Cache entry %s expired", key[:16])
            return None
        self.hits += 1
        return entry

    def put(
        self,
        key: str,
        payload: Payload,
        confidence_class: ConfidenceClass,
        request: Optional[SearchRequest] = None,
    ) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(
            key=key,
            payload=payload,
            confidence_class=confidence_class,
            created_at=now,
            expires_at=now + self._lifetimes[confidence_class],
            request=request.normalized() if request is not None else None,
        )
        self._backend.store(entry)
        logger.debug(
            "Cached %s (%s, expires %s)", key[:16], confidence_class.value,
            entry.expires_at.isoformat(),
        )
        return entry

    def get_records(self, request: SearchRequest) -> Optional[List[ExtractedRecord]]:
        entry = self.get(self.request_key(request))
        if entry is None:
            return None
        return entry.records()

    def put_records(
        self,
        request: SearchRequest,
        records: List[ExtractedRecord],
        confidence_class: ConfidenceClass,
    ) -> CacheEntry:
        payload = [r.model_dump(mode="json") for r in records]
        return self.put(self.request_key(request), payload, confidence_class, request=request)

    def sweep(self) -> int:
        """Delete every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [e.key for e in self._backend.entries() if e.is_expired(now)]
        for key in expired:
            self._backend.delete(key)
        if expired:
            logger.info("Cache sweep removed %d entries", len(expired))
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        by_class: Dict[str, int] = {c.value: 0 for c in ConfidenceClass}
        size = 0
        expired = 0
        for entry in self._backend.entries():
            if entry.is_expired(now):
                expired += 1
                continue
            size += 1
            by_class[entry.confidence_class.value] += 1
        return {
            "size": size,
            "expired": expired,
            "by_class": by_class,
            "hits": self.hits,
            "misses": self.misses,
        }

    # ------------------------------------------------------------------
    # Overlap search
    # ------------------------------------------------------------------

    def find_overlapping(self, request: SearchRequest) -> List[ExtractedRecord]:
        """
        Records from unexpired entries answering a compatible request.

        Compatible means: same cuisine (when one is requested), and the
        cached request was at least as strict on dietary restrictions.
        Records containing an excluded ingredient are dropped.
        """
        now = self._clock()
        wanted_diet = set(request.dietary_restrictions)
        topic_words = set(request.topic.lower().split())
        found: List[ExtractedRecord] = []
        seen = set()

        for entry in self._backend.entries():
            if entry.is_expired(now) or entry.request is None:
                continue
            cached = entry.request
            if request.cuisine:
                if cached.get("cuisine") != request.cuisine:
                    continue
            elif not topic_words & set(str(cached.get("topic", "")).split()):
                continue
            if not wanted_diet <= set(cached.get("dietary_restrictions") or []):
                continue

            for record in entry.records():
                if record.source_url in seen or _contains_any(record, request.exclude_ingredients):
                    continue
                seen.add(record.source_url)
                found.append(record)

        return found


def _contains_any(record: ExtractedRecord, terms) -> bool:
    if not terms:
        return False
    names = " ".join(i.name.lower() for i in record.ingredients)
    return any(term in names for term in terms)
