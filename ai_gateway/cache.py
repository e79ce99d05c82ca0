"""
Response Cache
==============
Keyed by a hash of the normalized request plus every option that changes the
response. Entries expire after a TTL and are evicted by LRU or LFU once the
cache is full. Locks are sharded by key hash so unrelated requests never wait
on each other.

An optional SQLite store makes entries survive restarts (write-through; a
memory miss falls back to the store).
"""

from __future__ import annotations

import hashlib
import itertools
import json
import logging
import re
import sqlite3
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class EvictionPolicy(str, Enum):
    LRU = "lru"
    LFU = "lfu"


@dataclass
class CacheEntry:
    key: str
    content: str
    provider: str
    cost: float
    created_at: float
    expires_at: float
    hit_count: int = 0
    last_accessed_at: float = 0.0
    # Monotonic use counter for recency ordering, not persisted
    recency: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    @classmethod
    def from_row(cls, row: tuple[Any, ...]) -> CacheEntry:
        """Create from database row."""
        return cls(
            key=str(row[0]),
            content=str(row[1]),
            provider=str(row[2]),
            cost=float(row[3]),
            created_at=float(row[4]),
            expires_at=float(row[5]),
            hit_count=int(row[6]),
            last_accessed_at=float(row[7]),
        )


class SQLiteCacheStore:
    """SQLite-backed persistence for cache entries."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_db(self) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    cost REAL NOT NULL,
                    created_at REAL NOT NULL,
                    expires_at REAL NOT NULL,
                    hit_count INTEGER NOT NULL DEFAULT 0,
                    last_accessed_at REAL NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_cache_expires
                ON cache_entries(expires_at)
            """)

    def load(self, key: str) -> CacheEntry | None:
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT key, content, provider, cost, created_at, expires_at,
                       hit_count, last_accessed_at
                FROM cache_entries WHERE key = ?
                """,
                (key,),
            ).fetchone()
        return CacheEntry.from_row(row) if row else None

    def save(self, entry: CacheEntry) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cache_entries
                (key, content, provider, cost, created_at, expires_at,
                 hit_count, last_accessed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.key,
                    entry.content,
                    entry.provider,
                    entry.cost,
                    entry.created_at,
                    entry.expires_at,
                    entry.hit_count,
                    entry.last_accessed_at,
                ),
            )

    def delete(self, key: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def purge_expired(self, now: float) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM cache_entries WHERE expires_at <= ?", (now,))
            return cursor.rowcount

    def clear(self) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM cache_entries")


class _Shard:
    def __init__(self) -> None:
        self.entries: dict[str, CacheEntry] = {}
        self.lock = threading.Lock()


class ResponseCache:
    """Sharded TTL cache with LRU or LFU eviction.

    Reads and writes only lock the shard that owns the key. Capacity is
    global: admissions are serialized on one lock, and once the cache holds
    more than ``max_entries`` the victim is chosen across every shard.
    """

    def __init__(
        self,
        max_entries: int = 100,
        ttl: float = 3600.0,
        policy: EvictionPolicy | str = EvictionPolicy.LRU,
        shards: int = 16,
        store: SQLiteCacheStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if shards < 1:
            raise ValueError("shards must be at least 1")
        self.max_entries = max_entries
        self.ttl = ttl
        self.policy = EvictionPolicy(policy)
        self.store = store
        self._clock = clock

        self._shards = [_Shard() for _ in range(shards)]
        self._admission_lock = threading.Lock()
        self._size_lock = threading.Lock()
        self._size = 0
        self._ticks = itertools.count(1)

        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._savings = 0.0

    @staticmethod
    def normalize_request(request: str) -> str:
        return re.sub(r"\s+", " ", request.strip().lower())

    @classmethod
    def make_key(
        cls,
        request: str,
        system_prompt: str | None = None,
        history: list[dict[str, Any]] | None = None,
        use_tools: bool = True,
        specific_tools: list[str] | None = None,
        **extra: Any,
    ) -> str:
        """Hash of everything that changes the response.

        Priority only changes which provider answers, not what the answer
        should be, so it is not part of the key.
        """
        material = {
            "request": cls.normalize_request(request),
            "system_prompt": system_prompt or "",
            "history": history or [],
            "use_tools": use_tools,
            "specific_tools": sorted(specific_tools) if specific_tools else None,
            "extra": extra,
        }
        encoded = json.dumps(material, sort_keys=True, default=str, ensure_ascii=False)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[int(key[:8], 16) % len(self._shards)]

    def _adjust_size(self, delta: int) -> None:
        with self._size_lock:
            self._size += delta

    def get(self, key: str) -> CacheEntry | None:
        shard = self._shard_for(key)
        now = self._clock()
        with shard.lock:
            entry = shard.entries.get(key)
            if entry is not None and entry.is_expired(now):
                del shard.entries[key]
                self._adjust_size(-1)
                entry = None
            if entry is not None:
                self._touch(entry, now)

        if entry is None and self.store is not None:
            entry = self.store.load(key)
            if entry is not None and entry.is_expired(now):
                self.store.delete(key)
                entry = None
            if entry is not None:
                self._touch(entry, now)
                self._admit(entry)

        with self._stats_lock:
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            self._savings += entry.cost
        return entry

    def _touch(self, entry: CacheEntry, now: float) -> None:
        entry.hit_count += 1
        entry.last_accessed_at = now
        entry.recency = next(self._ticks)

    def put(self, key: str, content: str, provider: str, cost: float = 0.0) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(
            key=key,
            content=content,
            provider=provider,
            cost=cost,
            created_at=now,
            expires_at=now + self.ttl,
            last_accessed_at=now,
            recency=next(self._ticks),
        )
        self._admit(entry)
        if self.store is not None:
            self.store.save(entry)
        logger.debug(f"Cached response from {provider} (key {key[:12]})")
        return entry

    def _admit(self, entry: CacheEntry) -> None:
        shard = self._shard_for(entry.key)
        with self._admission_lock:
            with shard.lock:
                added = entry.key not in shard.entries
                shard.entries[entry.key] = entry
            if added:
                self._adjust_size(1)

            while len(self) > self.max_entries:
                if not self._evict_one(exclude=entry.key):
                    break

    def _evict_one(self, exclude: str) -> bool:
        """Remove one entry chosen across all shards. Caller holds the admission lock."""
        now = self._clock()
        victim: CacheEntry | None = None
        victim_rank: tuple[Any, ...] | None = None
        for shard in self._shards:
            with shard.lock:
                for key, entry in shard.entries.items():
                    if key == exclude:
                        continue
                    rank = self._eviction_rank(entry, now)
                    if victim_rank is None or rank < victim_rank:
                        victim, victim_rank = entry, rank
        if victim is None:
            return False

        shard = self._shard_for(victim.key)
        with shard.lock:
            if shard.entries.get(victim.key) is not victim:
                # Removed by a concurrent reader; re-check the size
                return True
            del shard.entries[victim.key]
        self._adjust_size(-1)
        with self._stats_lock:
            self._evictions += 1
        return True

    def _eviction_rank(self, entry: CacheEntry, now: float) -> tuple[Any, ...]:
        # Expired entries go first, then policy order; ties go to the least recent
        live = 0 if entry.is_expired(now) else 1
        if self.policy == EvictionPolicy.LFU:
            return (live, entry.hit_count, entry.recency)
        return (live, entry.recency)

    def invalidate(self, key: str) -> bool:
        shard = self._shard_for(key)
        with shard.lock:
            removed = shard.entries.pop(key, None) is not None
        if removed:
            self._adjust_size(-1)
        if self.store is not None:
            removed = self.store.delete(key) or removed
        return removed

    def purge_expired(self) -> int:
        now = self._clock()
        removed = 0
        for shard in self._shards:
            with shard.lock:
                expired = [k for k, e in shard.entries.items() if e.is_expired(now)]
                for key in expired:
                    del shard.entries[key]
            if expired:
                self._adjust_size(-len(expired))
            removed += len(expired)
        if self.store is not None:
            self.store.purge_expired(now)
        return removed

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                count = len(shard.entries)
                shard.entries.clear()
            self._adjust_size(-count)
        if self.store is not None:
            self.store.clear()
        logger.info("Response cache cleared")

    def __len__(self) -> int:
        with self._size_lock:
            return self._size

    def stats(self) -> dict[str, Any]:
        size = len(self)
        with self._stats_lock:
            lookups = self._hits + self._misses
            return {
                "size": size,
                "max_entries": self.max_entries,
                "shards": len(self._shards),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": self._hits / lookups if lookups else 0.0,
                "cost_savings": round(self._savings, 6),
                "policy": self.policy.value,
            }
