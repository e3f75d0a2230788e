import pytest

from myrsspress import categories, category_cache, category_service
from myrsspress.category_cache import CategoryCache
from myrsspress.default_feeds import get_default_feeds
from myrsspress.models import Category, CreateCategoryRequest, CreateFeedRequest


def _category(category_id, order, keywords, locale="en", **extra):
    return CreateCategoryRequest(
        category_id=category_id,
        locale=locale,
        display_name=category_id.title(),
        keywords=keywords,
        order=order,
        **extra,
    )


def _feed(category_id, url, priority):
    return CreateFeedRequest(
        category_id=category_id,
        url=url,
        title=f"Feed {priority}",
        language="en",
        priority=priority,
    )


def test_categories_are_listed_per_locale_in_order(table):
    categories.create_category(_category("science", 4, ["science"]), table)
    categories.create_category(_category("tech", 2, ["tech", "ai"]), table)
    categories.create_category(_category("tech-jp", 1, ["テクノロジー"], locale="ja"), table)

    english = categories.get_categories_by_locale("en", table)

    assert [c.category_id for c in english] == ["tech", "science"]
    item = table.items[("CATEGORY#tech", "METADATA")]
    assert item["GSI1PK"] == "CATEGORY_LOCALE#en"
    assert item["GSI1SK"] == "ORDER#00002"
    assert {c.category_id for c in categories.get_all_categories(table)} == {
        "tech",
        "science",
        "tech-jp",
    }


def test_update_category_moves_index_keys(table):
    categories.create_category(_category("tech", 2, ["tech"]), table)

    updated = categories.update_category("tech", {"order": 7, "locale": "ja"}, table)

    assert updated.order == 7
    item = table.items[("CATEGORY#tech", "METADATA")]
    assert item["GSI1PK"] == "CATEGORY_LOCALE#ja"
    assert item["GSI1SK"] == "ORDER#00007"
    assert categories.update_category("missing", {"order": 1}, table) is None


def test_delete_category_is_soft(table):
    categories.create_category(_category("tech", 2, ["tech"]), table)

    assert categories.delete_category("tech", table) is True
    assert categories.delete_category("missing", table) is False

    assert categories.get_categories_by_locale("en", table) == []
    hidden = categories.get_categories_by_locale("en", table, include_inactive=True)
    assert hidden[0].is_active is False
    assert ("CATEGORY#tech", "METADATA") in table.items


def test_feeds_ordered_by_priority_and_soft_deleted(table):
    categories.create_category(_category("tech", 1, ["tech"]), table)
    categories.create_feed(_feed("tech", "https://b.example.com/rss", 2), table)
    categories.create_feed(_feed("tech", "https://a.example.com/rss", 1), table)

    feeds = categories.get_feeds_by_category("tech", table)
    assert [f.priority for f in feeds] == [1, 2]

    categories.delete_feed("tech", "https://a.example.com/rss", table)

    remaining = categories.get_feeds_by_category("tech", table)
    assert [f.url for f in remaining] == ["https://b.example.com/rss"]
    assert categories.get_feed("tech", "https://a.example.com/rss", table).is_active is False


def test_update_feed_missing_returns_none(table):
    assert categories.update_feed("tech", "https://x.example.com", {"priority": 3}, table) is None


def _built(category_id, keywords, order=1, is_active=True):
    return Category(
        category_id=category_id,
        locale="en",
        display_name=category_id,
        keywords=keywords,
        order=order,
        is_active=is_active,
        created_at="t",
        updated_at="t",
    )


def test_match_category_is_case_insensitive_substring():
    candidates = [_built("tech", ["Tech", "AI"]), _built("sports", ["soccer"])]

    assert category_service.match_category("Latest TECHNOLOGY news", candidates).category_id == "tech"
    assert category_service.match_category("Weekend soccer", candidates).category_id == "sports"
    assert category_service.match_category("Gardening", candidates) is None


def test_theme_lookup_reads_through_cache(table):
    categories.create_category(_category("tech", 1, ["tech"]), table)
    categories.create_category(_category("old", 0, ["tech"], is_active=False), table)

    found = category_service.get_category_by_theme("tech weekly", "en")

    assert found.category_id == "tech"


def test_theme_lookup_with_fallback_swallows_errors(monkeypatch):
    def broken(_theme, _locale):
        raise RuntimeError("dynamo down")

    monkeypatch.setattr(category_service, "get_category_by_theme", broken)

    assert category_service.get_category_by_theme_with_fallback("tech", "en") is None


def test_feeds_fall_back_to_defaults_when_empty(table):
    feeds = category_service.get_feeds_with_fallback("empty", "ja")

    assert [f.url for f in feeds] == [f.url for f in get_default_feeds("ja")]
    assert all(f.category_id == "empty" for f in feeds)


def test_feeds_fall_back_to_defaults_on_error(monkeypatch):
    def broken(_category_id):
        raise RuntimeError("dynamo down")

    monkeypatch.setattr(category_service, "get_feeds_by_category", broken)

    feeds = category_service.get_feeds_with_fallback("tech", "en")

    assert [f.url for f in feeds] == [f.url for f in get_default_feeds("en")]


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class Loader:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def __call__(self, _key):
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def _cache(loader, clock, background=None):
    pending = []
    return (
        CategoryCache(
            loader,
            loader,
            ttl=10,
            clock=clock,
            background=background or pending.append,
        ),
        pending,
    )


def test_cache_hit_does_not_reload():
    clock, loader = Clock(), Loader(["a"])
    cache, _ = _cache(loader, clock)

    assert cache.get_categories("en") == ["a"]
    clock.now = 5
    assert cache.get_categories("en") == ["a"]
    assert loader.calls == 1


def test_expired_entry_served_stale_while_single_refresh_runs():
    clock, loader = Clock(), Loader(["old"], ["new"])
    cache, pending = _cache(loader, clock)
    cache.get_categories("en")

    clock.now = 11
    assert cache.get_categories("en") == ["old"]
    assert cache.get_categories("en") == ["old"]
    assert len(pending) == 1

    pending[0]()
    assert cache.get_categories("en") == ["new"]
    assert loader.calls == 2


def test_failed_refresh_keeps_stale_data():
    clock, loader = Clock(), Loader(["old"], RuntimeError("boom"))
    cache, pending = _cache(loader, clock)
    cache.get_categories("en")

    clock.now = 11
    cache.get_categories("en")
    pending[0]()

    assert cache.get_categories("en") == ["old"]
    # The failed refresh released its slot, so another one is scheduled.
    assert len(pending) == 2


def test_miss_with_failing_loader_raises():
    cache, _ = _cache(Loader(RuntimeError("boom")), Clock())

    with pytest.raises(RuntimeError):
        cache.get_feeds("tech")


def test_invalidate_forces_reload():
    loader = Loader(["a"], ["b"])
    cache, _ = _cache(loader, Clock())
    cache.get_feeds("tech")

    cache.invalidate("feeds:tech")

    assert cache.get_feeds("tech") == ["b"]


def test_preload_tolerates_failures(caplog):
    cache, _ = _cache(Loader(RuntimeError("boom")), Clock())

    cache.preload()

    assert "Error pre-loading categories for en" in caplog.text


def test_invalidate_category_drops_both_locales(table):
    categories.create_category(_category("tech", 1, ["tech"]), table)
    assert [c.category_id for c in category_service.get_categories("en")] == ["tech"]

    categories.create_category(_category("science", 2, ["science"]), table)
    assert len(category_service.get_categories("en")) == 1

    category_service.invalidate_category("science")

    assert len(category_cache.category_cache.get_categories("en")) == 2
