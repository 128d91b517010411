"""Summary cache: content addressing, immutability, TTL and degradation."""

import pytest

from cache import CacheManager


@pytest.fixture
def cache(tmp_path):
    with CacheManager(cache_dir=str(tmp_path / "cache")) as manager:
        yield manager


def test_put_then_get(cache):
    assert cache.put("fp-1", "Fetch a user by id", endpoint_id="abc", metadata={"model": "m"})
    entry = cache.get("fp-1")
    assert entry.summary_text == "Fetch a user by id"
    assert entry.endpoint_id == "abc"
    assert entry.metadata == {"model": "m"}
    assert cache.get("fp-2") is None


def test_entries_are_immutable(cache):
    assert cache.put("fp", "first")
    assert not cache.put("fp", "second")
    assert cache.get("fp").summary_text == "first"
    assert cache.stats["writes"] == 1


def test_survives_reopen(tmp_path):
    with CacheManager(cache_dir=str(tmp_path)) as cache:
        cache.put("fp", "persisted")
    with CacheManager(cache_dir=str(tmp_path)) as cache:
        assert cache.get("fp").summary_text == "persisted"


def test_ttl_expiry(tmp_path):
    with CacheManager(cache_dir=str(tmp_path), ttl_seconds=60) as cache:
        cache.put("old", "stale")
        cache.put("new", "fresh")
        cache._conn.execute("UPDATE summaries SET created_at = 0 WHERE fingerprint = 'old'")

        assert cache.get("old") is None
        assert cache.get("new").summary_text == "fresh"
        assert cache.stats["evictions"] == 1
        # The expired slot can be filled again
        assert cache.put("old", "regenerated")


def test_clear_expired_without_ttl_is_noop(cache):
    cache.put("fp", "kept")
    assert cache.clear_expired() == 0
    assert cache.get("fp") is not None


def test_clear_all_and_stats(cache):
    cache.put("a", "one")
    cache.put("b", "two")
    cache.get("a")
    cache.get("missing")

    stats = cache.get_stats()
    assert stats["entries"] == 2
    assert stats["total_size_bytes"] == len("one") + len("two")
    assert stats["hit_rate"] == 0.5
    assert stats["available"]

    assert cache.clear_all() == 2
    assert cache.get_stats()["entries"] == 0


def test_unusable_directory_degrades_to_misses(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("occupied")

    cache = CacheManager(cache_dir=str(blocker)).open()

    assert not cache.available
    assert cache.get("fp") is None
    assert cache.put("fp", "text") is False
    assert cache.clear_all() == 0
    assert cache.get_stats()["available"] is False
    cache.close()


def test_corrupt_row_is_a_miss(cache):
    cache.put("fp", "text", metadata={"model": "m"})
    cache._conn.execute("UPDATE summaries SET metadata = '{not json' WHERE fingerprint = 'fp'")
    cache._conn.commit()

    assert cache.get("fp") is None
    assert not cache.available
    assert cache.stats["misses"] == 1
    assert cache.put("other", "text") is False


def test_generate_key():
    key = CacheManager.generate_key("abc", "summary-v1", "mock", "m")
    assert key == CacheManager.generate_key("abc", "summary-v1", "mock", "m")
    assert key != CacheManager.generate_key("abc", "summary-v1", "mock", "other")
    assert len(key) == 64
