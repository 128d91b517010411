"""
Summary Cache
=============

Provides SQLite-based caching for endpoint summaries so unchanged endpoints
are not sent to the AI backend again on the next run.

Usage:
    from cache import CacheManager

    with CacheManager(cache_dir="~/.restapisummarizer/cache") as cache:
        entry = cache.get(fingerprint)
        cache.put(fingerprint, "Fetch a user by id")
"""

__version__ = "1.0.1"

from .cache_manager import CacheManager, CacheEntry, CacheUnavailable

__all__ = ["CacheManager", "CacheEntry", "CacheUnavailable"]
