"""Unit tests for the concurrency-safe cache."""

import threading

from dsflint.utils.cache import ConcurrentCache


class TestConcurrentCache:
    """Test get_or_create, eviction and cleanup behaviour."""

    def test_get_or_create_computes_once(self):
        calls = []
        cache = ConcurrentCache[str, str]("test")

        def factory(key):
            calls.append(key)
            return key.upper()

        assert cache.get_or_create("a", factory) == "A"
        assert cache.get_or_create("a", factory) == "A"
        assert calls == ["a"]
        assert "a" in cache
        assert cache.size() == 1

    def test_none_is_not_cached(self):
        """Test a factory returning None is retried on the next call."""
        calls = []
        cache = ConcurrentCache[str, str]("test")

        def factory(key):
            calls.append(key)
            return None

        assert cache.get_or_create("missing", factory) is None
        assert cache.get_or_create("missing", factory) is None
        assert len(calls) == 2
        assert cache.is_empty()

    def test_put_replaces_and_cleans_previous(self):
        cleaned = []
        cache = ConcurrentCache[str, str]("test", cleanup=cleaned.append)
        cache.put("k", "v1")
        cache.put("k", "v2")
        assert cache.get("k") == "v2"
        assert cleaned == ["v1"]

    def test_remove_runs_cleanup(self):
        cleaned = []
        cache = ConcurrentCache[str, str]("test", cleanup=cleaned.append)
        cache.put("k", "v")
        assert cache.remove("k") == "v"
        assert cache.remove("k") is None
        assert cleaned == ["v"]

    def test_clear_runs_cleanup_for_each_value(self):
        cleaned = []
        cache = ConcurrentCache[str, str]("test", cleanup=cleaned.append)
        cache.put("a", "1")
        cache.put("b", "2")
        assert cache.clear() == 2
        assert sorted(cleaned) == ["1", "2"]
        assert cache.is_empty()

    def test_failing_cleanup_is_not_fatal(self, caplog):
        """Test a raising cleanup callback is logged and clearing continues."""
        def cleanup(value):
            raise OSError(f"cannot delete {value}")

        cache = ConcurrentCache[str, str]("test", cleanup=cleanup)
        cache.put("a", "1")
        cache.put("b", "2")
        assert cache.clear() == 2
        assert cache.is_empty()
        assert "cannot delete" in caplog.text

    def test_concurrent_get_or_create(self):
        """Test concurrent callers share one computed value."""
        calls = []
        cache = ConcurrentCache[str, object]("test")
        results = []

        def factory(key):
            calls.append(key)
            return object()

        def worker():
            results.append(cache.get_or_create("shared", factory))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(calls) == 1
        assert all(result is results[0] for result in results)
