"""
Tests for the recipe cache.
"""

from datetime import datetime, timedelta, timezone

import pytest

from cache.store import FileCacheBackend, RecipeCache
from config import CacheConfig
from models.enums import ConfidenceClass
from models.schema import SearchRequest

from conftest import make_record


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return RecipeCache(clock=clock)


def tacos_records():
    return [
        make_record("https://allrecipes.com/r/1", "Black Bean Tacos"),
        make_record("https://allrecipes.com/r/2", "Calabacitas"),
    ]


# ===================================================================
# Keys
# ===================================================================


class TestCacheKeys:

    def test_order_and_case_independent(self):
        a = SearchRequest(topic="Tacos", dietary_restrictions=["Vegan", "gluten-free"])
        b = SearchRequest(topic="tacos", dietary_restrictions=["gluten-free", "vegan"])
        assert RecipeCache.request_key(a) == RecipeCache.request_key(b)

    def test_count_changes_key(self):
        a = SearchRequest(topic="tacos", count=3)
        b = SearchRequest(topic="tacos", count=5)
        assert RecipeCache.request_key(a) != RecipeCache.request_key(b)

    def test_raw_key(self):
        key = RecipeCache.raw_key("Tavily", "Vegan   Tacos")
        assert key.startswith("raw:")
        assert key == RecipeCache.raw_key("tavily", "vegan tacos")
        assert key != RecipeCache.raw_key("serpapi", "vegan tacos")


# ===================================================================
# Expiry
# ===================================================================


class TestCacheExpiry:

    def test_hit_before_expiry(self, cache, clock, mexican_vegan_request):
        cache.put_records(mexican_vegan_request, tacos_records(), ConfidenceClass.LOW)
        clock.advance(hours=3)
        records = cache.get_records(mexican_vegan_request)
        assert [r.title for r in records] == ["Black Bean Tacos", "Calabacitas"]
        assert cache.hits == 1

    def test_expired_entry_is_a_miss(self, cache, clock, mexican_vegan_request):
        cache.put_records(mexican_vegan_request, tacos_records(), ConfidenceClass.LOW)
        clock.advance(hours=4, minutes=1)
        assert cache.get_records(mexican_vegan_request) is None
        assert cache.misses == 1
        assert cache.stats()["size"] == 0

    def test_lifetime_depends_on_class(self, cache):
        low = cache.put("a", {"x": 1}, ConfidenceClass.LOW)
        high = cache.put("b", {"x": 1}, ConfidenceClass.HIGH)
        verified = cache.put("c", {"x": 1}, ConfidenceClass.VERIFIED)
        assert low.expires_at < high.expires_at < verified.expires_at

    def test_sweep(self, cache, clock):
        cache.put("raw:1", {"results": []}, ConfidenceClass.RAW)
        cache.put("k", [], ConfidenceClass.HIGH)
        clock.advance(hours=3)
        assert cache.sweep() == 1
        assert cache.stats()["by_class"]["high"] == 1

    def test_stats(self, cache, clock):
        cache.put("a", {}, ConfidenceClass.RAW)
        cache.put("b", {}, ConfidenceClass.MEDIUM)
        cache.get("a")
        cache.get("missing")
        clock.advance(hours=2, minutes=30)
        stats = cache.stats()
        assert stats["size"] == 1
        assert stats["expired"] == 1
        assert stats["by_class"]["medium"] == 1
        assert (stats["hits"], stats["misses"]) == (1, 1)


# ===================================================================
# Overlap lookup
# ===================================================================


class TestFindOverlapping:

    @pytest.fixture
    def seeded(self, cache):
        stricter = SearchRequest(
            topic="tacos", cuisine="mexican",
            dietary_restrictions=["vegan", "gluten-free"],
        )
        cache.put_records(stricter, tacos_records(), ConfidenceClass.HIGH)
        return cache

    def test_same_cuisine_and_stricter_diet(self, seeded):
        request = SearchRequest(topic="enchiladas", cuisine="mexican", dietary_restrictions=["vegan"])
        assert len(seeded.find_overlapping(request)) == 2

    def test_looser_cached_diet_not_used(self, seeded):
        request = SearchRequest(cuisine="mexican", dietary_restrictions=["vegan", "nut-free"])
        assert seeded.find_overlapping(request) == []

    def test_other_cuisine_not_used(self, seeded):
        assert seeded.find_overlapping(SearchRequest(cuisine="italian")) == []

    def test_exclusions_applied(self, seeded):
        request = SearchRequest(cuisine="mexican", exclude_ingredients=["lime"])
        assert seeded.find_overlapping(request) == []

    def test_topic_overlap_without_cuisine(self, seeded):
        assert len(seeded.find_overlapping(SearchRequest(topic="fish tacos"))) == 2


# ===================================================================
# Backends
# ===================================================================


class TestFileBackend:

    def test_survives_new_instance(self, tmp_path, mexican_vegan_request):
        RecipeCache(backend=FileCacheBackend(tmp_path)).put_records(
            mexican_vegan_request, tacos_records(), ConfidenceClass.HIGH
        )
        reopened = RecipeCache(backend=FileCacheBackend(tmp_path))
        assert len(reopened.get_records(mexican_vegan_request)) == 2

    def test_no_temp_files_left(self, tmp_path):
        RecipeCache(backend=FileCacheBackend(tmp_path)).put("k", {"a": 1}, ConfidenceClass.LOW)
        assert list(tmp_path.glob("*.tmp")) == []
        assert len(list(tmp_path.glob("*.json"))) == 1

    def test_corrupt_file_ignored(self, tmp_path):
        (tmp_path / "garbage.json").write_text("{not json", encoding="utf-8")
        cache = RecipeCache(backend=FileCacheBackend(tmp_path))
        cache.put("k", {"a": 1}, ConfidenceClass.LOW)
        assert cache.stats()["size"] == 1

    def test_from_config(self, tmp_path):
        cache = RecipeCache.from_config(CacheConfig(backend="file", cache_dir=str(tmp_path)))
        cache.put("k", {}, ConfidenceClass.LOW)
        assert cache.get("k") is not None
        with pytest.raises(ValueError):
            RecipeCache.from_config(CacheConfig(backend="redis"))
