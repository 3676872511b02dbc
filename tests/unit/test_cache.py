"""Unit tests for the per-studio TTL cache."""
import time

from studio_common.cache import StudioCache


class TestStudioCache:
    """Test the per-studio cache."""

    def test_set_and_get(self):
        cache = StudioCache[str]("test", ttl=60)

        cache.set("studio-1", "value")
        assert cache.get("studio-1") == "value"
        assert cache.get("studio-2") is None

    def test_get_or_load_calls_loader_once(self):
        cache = StudioCache[int]("test", ttl=60)
        calls = []

        def loader():
            calls.append(1)
            return 42

        assert cache.get_or_load("studio-1", loader) == 42
        assert cache.get_or_load("studio-1", loader) == 42
        assert len(calls) == 1

    def test_invalidate_only_touches_one_studio(self):
        cache = StudioCache[str]("test", ttl=60)
        cache.set("a", "1")
        cache.set("b", "2")

        cache.invalidate("a")
        cache.invalidate("missing")

        assert cache.get("a") is None
        assert cache.get("b") == "2"

    def test_namespaces_do_not_collide(self):
        first = StudioCache[str]("first", ttl=60)
        second = StudioCache[str]("second", ttl=60)
        first.set("studio", "one")

        assert second.get("studio") is None

    def test_ttl_expiration(self):
        """Values expire after the TTL."""
        cache = StudioCache[str]("test", ttl=1)

        cache.set("studio", "value")
        time.sleep(1.1)

        assert cache.get("studio") is None

    def test_zero_ttl_disables_caching(self):
        cache = StudioCache[int]("test", ttl=0)
        values = iter([1, 2])

        assert cache.get_or_load("studio", lambda: next(values)) == 1
        assert cache.get_or_load("studio", lambda: next(values)) == 2
        assert len(cache) == 0

    def test_clear(self):
        cache = StudioCache[str]("test", ttl=60)
        cache.set("a", "1")
        cache.set("b", "2")

        cache.clear()

        assert len(cache) == 0

    def test_load_racing_an_invalidation_is_not_stored(self):
        cache = StudioCache[int]("test", ttl=60)

        def stale_loader():
            # The row changes while this load is still running.
            cache.invalidate("studio")
            return 1

        assert cache.get_or_load("studio", stale_loader) == 1
        assert cache.get("studio") is None
        assert cache.get_or_load("studio", lambda: 2) == 2
        assert cache.get("studio") == 2
