"""
Tests for folio.cache module.
"""

import pytest

from folio.cache import QueryCache


@pytest.fixture
def cache():
    return QueryCache()


KEY = ("skills", "user-1")


class TestQueryCache:
    """Tests for the query cache."""

    def test_miss_returns_none(self, cache):
        assert cache.get(KEY) is None
        assert cache.peek(KEY) is None

    def test_store_and_get(self, cache):
        assert cache.store(KEY, [{"id": "1"}], cache.generation(KEY)) is True

        assert cache.get(KEY) == [{"id": "1"}]

    def test_get_returns_a_copy(self, cache):
        cache.store(KEY, [{"id": "1"}], 0)

        cache.get(KEY).append({"id": "2"})

        assert len(cache.get(KEY)) == 1

    def test_invalidate_marks_stale_and_bumps_generation(self, cache):
        cache.store(KEY, [{"id": "1"}], 0)

        cache.invalidate("skills", "user-1")

        assert cache.get(KEY) is None
        assert cache.generation(KEY) == 1

    def test_peek_keeps_last_known_rows_after_invalidate(self, cache):
        cache.store(KEY, [{"id": "1"}], 0)
        cache.invalidate("skills")

        assert cache.peek(KEY) == [{"id": "1"}]

    def test_stale_read_is_discarded(self, cache):
        started_at = cache.generation(KEY)
        cache.invalidate("skills", "user-1")

        assert cache.store(KEY, [{"id": "old"}], started_at) is False
        assert cache.get(KEY) is None

    def test_invalidate_scopes_to_owner(self, cache):
        other = ("skills", "user-2")
        cache.store(KEY, [], 0)
        cache.store(other, [], 0)

        cache.invalidate("skills", "user-1")

        assert cache.get(KEY) is None
        assert cache.get(other) == []

    def test_invalidate_without_owner_covers_table(self, cache):
        other = ("skills", "user-2")
        projects = ("projects", "user-1")
        for key in (KEY, other, projects):
            cache.store(key, [], 0)

        cache.invalidate("skills")

        assert cache.get(KEY) is None
        assert cache.get(other) is None
        assert cache.get(projects) == []

    def test_fetch_reads_through_once(self, cache):
        calls = []

        def loader():
            calls.append(1)
            return [{"id": "1"}]

        assert cache.fetch(KEY, loader) == [{"id": "1"}]
        assert cache.fetch(KEY, loader) == [{"id": "1"}]
        assert len(calls) == 1

    def test_fetch_propagates_loader_errors(self, cache):
        def loader():
            raise RuntimeError("offline")

        with pytest.raises(RuntimeError):
            cache.fetch(KEY, loader)
        assert cache.get(KEY) is None

    def test_clear(self, cache):
        cache.store(KEY, [], 0)
        cache.clear()

        assert cache.get(KEY) is None
        assert cache.generation(KEY) == 0
