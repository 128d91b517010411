#!/usr/bin/env python3
"""
Cache Manager
=============
SQLite-based, content-addressed cache for endpoint summaries.

Entries are immutable: a fingerprint is written once and never replaced.
A new prompt version or model yields a new fingerprint and so a new entry.
A cache that cannot be opened, read or written never fails the run: it
degrades to always-miss and says so once in the log.
"""

import sqlite3
import json
import time
import hashlib
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Dict
import logging

logger = logging.getLogger("restapisummarizer.cache")

DEFAULT_CACHE_DIR = Path.home() / ".restapisummarizer" / "cache"
DB_FILENAME = "summaries.db"


class CacheUnavailable(Exception):
    """The cache store failed; callers see it only as cache misses."""
    pass


@dataclass
class CacheEntry:
    fingerprint: str
    summary_text: str
    created_at: float
    endpoint_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class CacheManager:
    """
    Persistent cache for AI summaries.

    Cache Strategy:
    - Cache key: SHA256(endpoint id | prompt version | provider | model)
    - Storage: SQLite database (``summaries.db``)
    - TTL: optional (default: entries never expire)
    - Writes: INSERT OR IGNORE, serialized by a lock

    Usage:
        with CacheManager(cache_dir="~/.restapisummarizer/cache") as cache:
            entry = cache.get(fingerprint)
            if entry is None:
                cache.put(fingerprint, "Fetch a user by id")
    """

    def __init__(self, cache_dir: Optional[str] = None, ttl_seconds: Optional[int] = None):
        """
        Initialize cache manager.

        Args:
            cache_dir: Directory for cache database
            ttl_seconds: Time-to-live in seconds (None: never expire)
        """
        self.cache_dir = Path(cache_dir).expanduser() if cache_dir else DEFAULT_CACHE_DIR
        self.db_path = self.cache_dir / DB_FILENAME
        self.ttl_seconds = ttl_seconds

        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self.available = True
        self.last_error: Optional[str] = None

        # Statistics
        self.stats = {"hits": 0, "misses": 0, "writes": 0, "evictions": 0}

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def open(self) -> "CacheManager":
        """Create the directory and schema; failure degrades the cache."""
        if self._conn is not None or not self.available:
            return self
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS summaries (
                    fingerprint TEXT PRIMARY KEY,
                    summary_text TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    endpoint_id TEXT,
                    metadata TEXT
                )
            """)
            # Index for TTL-based cleanup
            conn.execute("CREATE INDEX IF NOT EXISTS idx_created_at ON summaries(created_at)")
            conn.commit()
            self._conn = conn
            logger.info(f"Cache database initialized at {self.db_path}")
        except (sqlite3.Error, OSError) as e:
            self._degrade(CacheUnavailable(f"cannot open {self.db_path}: {e}"))
        return self

    def close(self):
        """Flush and close the database connection."""
        if self._conn is None:
            return
        with self._lock:
            try:
                self._conn.commit()
                self._conn.close()
            except sqlite3.Error as e:
                logger.warning(f"Error closing cache: {e}")
            finally:
                self._conn = None

    def __enter__(self) -> "CacheManager":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _degrade(self, error: CacheUnavailable):
        if self.available:
            logger.warning(f"Cache unavailable, continuing without it: {error}")
        self.available = False
        self.last_error = str(error)

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Run one statement; any store failure becomes CacheUnavailable."""
        if not self.available:
            raise CacheUnavailable(self.last_error or "cache disabled")
        if self._conn is None:
            self.open()
            if self._conn is None:
                raise CacheUnavailable(self.last_error or "cache not open")
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise CacheUnavailable(f"{e}") from e

    def _commit(self):
        try:
            self._conn.commit()
        except sqlite3.Error as e:
            raise CacheUnavailable(f"{e}") from e

    # =========================================================================
    # READ / WRITE
    # =========================================================================

    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        """
        Retrieve an entry.

        Returns:
            CacheEntry, or None if not found, expired or the cache is unavailable
        """
        try:
            with self._lock:
                row = self._execute("""
                    SELECT summary_text, created_at, endpoint_id, metadata
                    FROM summaries
                    WHERE fingerprint = ?
                """, (fingerprint,)).fetchone()

                if row is not None and self._expired(row[1]):
                    # Expired - delete so a fresh summary can take its place
                    self._execute("DELETE FROM summaries WHERE fingerprint = ?", (fingerprint,))
                    self._commit()
                    self.stats["evictions"] += 1
                    logger.debug(f"Cache entry expired: {fingerprint}")
                    row = None
        except CacheUnavailable as e:
            self._degrade(e)
            row = None

        if row is None:
            self.stats["misses"] += 1
            return None

        summary_text, created_at, endpoint_id, metadata_json = row
        try:
            metadata = json.loads(metadata_json) if metadata_json else {}
        except ValueError as e:
            # Unreadable row: a miss, and the store is no longer trusted
            self._degrade(CacheUnavailable(f"corrupt entry {fingerprint}: {e}"))
            self.stats["misses"] += 1
            return None

        self.stats["hits"] += 1
        logger.debug(f"Cache hit: {fingerprint}")
        return CacheEntry(
            fingerprint=fingerprint,
            summary_text=summary_text,
            created_at=created_at,
            endpoint_id=endpoint_id,
            metadata=metadata,
        )

    def put(
        self,
        fingerprint: str,
        summary_text: str,
        endpoint_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Store a summary unless the fingerprint already exists.

        Returns:
            True if a new entry was written
        """
        try:
            with self._lock:
                cursor = self._execute("""
                    INSERT OR IGNORE INTO summaries (fingerprint, summary_text, created_at, endpoint_id, metadata)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    fingerprint,
                    summary_text,
                    time.time(),
                    endpoint_id,
                    json.dumps(metadata, sort_keys=True) if metadata else None,
                ))
                self._commit()
        except CacheUnavailable as e:
            self._degrade(e)
            return False

        written = cursor.rowcount == 1
        if written:
            self.stats["writes"] += 1
            logger.debug(f"Cache put: {fingerprint}")
        return written

    def _expired(self, created_at: float) -> bool:
        return self.ttl_seconds is not None and time.time() - created_at > self.ttl_seconds

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def clear_expired(self) -> int:
        """
        Remove expired entries from cache.

        Returns:
            Number of entries removed
        """
        if self.ttl_seconds is None:
            return 0
        cutoff = time.time() - self.ttl_seconds
        try:
            with self._lock:
                count = self._execute("DELETE FROM summaries WHERE created_at < ?", (cutoff,)).rowcount
                self._commit()
        except CacheUnavailable as e:
            self._degrade(e)
            return 0

        self.stats["evictions"] += count
        logger.info(f"Cleared {count} expired cache entries")
        return count

    def clear_all(self) -> int:
        """Clear entire cache; returns the number of entries removed."""
        try:
            with self._lock:
                count = self._execute("DELETE FROM summaries").rowcount
                self._commit()
        except CacheUnavailable as e:
            self._degrade(e)
            return 0

        logger.info("Cleared all cache entries")
        return count

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics including hit rate
        """
        count, total_size = 0, 0
        try:
            with self._lock:
                count, total_size = self._execute(
                    "SELECT COUNT(*), SUM(LENGTH(summary_text)) FROM summaries"
                ).fetchone()
        except CacheUnavailable as e:
            self._degrade(e)

        lookups = self.stats["hits"] + self.stats["misses"]
        return {
            **self.stats,
            "entries": count or 0,
            "total_size_bytes": total_size or 0,
            "hit_rate": self.stats["hits"] / lookups if lookups > 0 else 0.0,
            "available": self.available,
            "db_path": str(self.db_path),
        }

    @staticmethod
    def generate_key(*parts: Any) -> str:
        """
        Generate cache key from its parts.

        Returns:
            SHA256 hash as hex string
        """
        content = "|".join(str(p) for p in parts)
        return hashlib.sha256(content.encode()).hexdigest()
