import random
from datetime import date, datetime, timedelta, timezone

import pytest

from myrsspress import dates, historical, newspapers, rss
from myrsspress.default_feeds import DefaultFeedArticles
from myrsspress.models import Article, Newspaper

FEEDS = ["https://one.example.com/feed", "https://two.example.com/feed"]


def _article(index, published, feed=FEEDS[0]):
    return Article(
        title=f"Story number {index} about robots",
        description="Body",
        link=f"https://example.com/{index}",
        pub_date=published,
        feed_source=feed,
    )


@pytest.mark.parametrize(
    "value,error",
    [
        ("2025-01-15", None),
        ("2025-01-08", None),
        ("2025-01-07", "Newspapers older than 7 days are not available"),
        ("2025-01-16", "Future newspapers are not available"),
        ("2025-1-15", "Invalid date format. Use YYYY-MM-DD"),
        ("2025-02-30", "Invalid date format. Use YYYY-MM-DD"),
    ],
)
def test_validate_date_accepts_exactly_last_seven_days(value, error, fixed_now):
    result = dates.validate_date(value, now=fixed_now)
    assert result.valid is (error is None)
    assert result.error == error


def test_validate_date_uses_tokyo_calendar():
    # 16:00 UTC on the 14th is already the 15th in Tokyo.
    now = datetime(2025, 1, 14, 16, 0, tzinfo=timezone.utc)
    assert dates.validate_date("2025-01-15", now=now).valid


def test_day_window_past_day_ends_before_midnight(fixed_now):
    start, end = dates.day_window(date(2025, 1, 10), now=fixed_now)
    assert start.isoformat() == "2025-01-10T00:00:00+09:00"
    assert end.isoformat() == "2025-01-10T23:59:59.999000+09:00"


def test_day_window_today_ends_now(fixed_now):
    start, end = dates.day_window(date(2025, 1, 15), now=fixed_now)
    assert end == fixed_now
    assert start < end


@pytest.fixture
def no_default_feeds(monkeypatch):
    monkeypatch.setattr(
        historical,
        "fetch_default_feed_articles",
        lambda *args, **kwargs: DefaultFeedArticles([], 4, 0),
    )


def test_generates_and_stores_newspaper(table, monkeypatch, fixed_now, no_default_feeds):
    monkeypatch.setenv("USE_MOCK_AI", "true")
    base = datetime(2025, 1, 14, 16, 0, tzinfo=timezone.utc)
    articles = [
        _article(i, base + timedelta(minutes=10 * i), FEEDS[i % 2]) for i in range(10)
    ]
    calls = []

    def fake_fetch(urls, days_back, **_kwargs):
        calls.append(days_back)
        return rss.FetchResult(articles=list(articles), feed_languages={FEEDS[0]: "en-us"})

    monkeypatch.setattr(rss, "fetch_rss_feeds", fake_fetch)

    paper = historical.get_or_create_historical_newspaper(
        "abc", "2025-01-15", FEEDS, "Robots", rng=random.Random(3), now=fixed_now
    )

    assert calls == [7]
    assert 8 <= len(paper.articles) <= 10
    assert paper.name == "Newspaper for 2025-01-15"
    assert paper.user_name == "System"
    assert paper.languages == ["EN"]
    assert paper.summary
    assert all(0 <= a.importance <= 100 for a in paper.articles)
    assert ("NEWSPAPER#abc", "DATE#2025-01-15") in table.items


def test_uses_metadata_name_when_present(table, monkeypatch, fixed_now, no_default_feeds):
    monkeypatch.setenv("USE_MOCK_AI", "true")
    table.put_item(
        Item={
            "PK": "NEWSPAPER#abc",
            "SK": "METADATA",
            "newspaperId": "abc",
            "name": "Robot Weekly",
            "userName": "kai",
            "feedUrls": FEEDS,
            "createdAt": "t",
            "updatedAt": "t",
        }
    )
    base = datetime(2025, 1, 14, 16, 0, tzinfo=timezone.utc)
    monkeypatch.setattr(
        rss,
        "fetch_rss_feeds",
        lambda *a, **k: rss.FetchResult(
            articles=[_article(i, base + timedelta(minutes=i)) for i in range(9)]
        ),
    )

    paper = historical.get_or_create_historical_newspaper(
        "abc", "2025-01-15", FEEDS, "Robots", now=fixed_now
    )

    assert paper.name == "Robot Weekly"
    assert paper.user_name == "kai"


def test_returns_stored_newspaper_without_refetching(table, monkeypatch, fixed_now):
    stored = Newspaper(
        newspaper_id="abc",
        name="Cached",
        feed_urls=FEEDS,
        newspaper_date="2025-01-14",
        summary="cached summary",
        created_at="2025-01-14T00:00:00Z",
        updated_at="2025-01-14T00:00:00Z",
    )
    newspapers.save_historical_newspaper(stored)

    def fail(*_args, **_kwargs):
        raise AssertionError("feeds must not be fetched for a stored date")

    monkeypatch.setattr(rss, "fetch_rss_feeds", fail)

    paper = historical.get_or_create_historical_newspaper(
        "abc", "2025-01-14", FEEDS, "Robots", now=fixed_now
    )

    assert paper.name == "Cached"
    assert paper.summary == "cached summary"


def test_widens_window_when_day_is_sparse(table, monkeypatch, fixed_now):
    target_day = datetime(2025, 1, 12, 3, 0, tzinfo=timezone.utc)
    on_day = [_article(i, target_day) for i in range(2)]
    earlier = [_article(10 + i, target_day - timedelta(days=3)) for i in range(8)]
    calls = []

    def fake_fetch(urls, days_back, **_kwargs):
        calls.append(days_back)
        pool = on_day if days_back == 7 else on_day + earlier
        return rss.FetchResult(articles=list(pool))

    monkeypatch.setattr(rss, "fetch_rss_feeds", fake_fetch)

    result = historical.fetch_articles_for_date(
        FEEDS, "2025-01-12", rng=random.Random(1), now=fixed_now
    )

    assert calls == [7, 14]
    assert 8 <= len(result.articles) <= 10
    assert result.articles[0].pub_date == target_day


def test_no_articles_is_an_error(table, monkeypatch, fixed_now, no_default_feeds):
    monkeypatch.setattr(rss, "fetch_rss_feeds", lambda *a, **k: rss.FetchResult(articles=[]))

    with pytest.raises(historical.NoArticlesError, match="No articles found for this date"):
        historical.get_or_create_historical_newspaper(
            "abc", "2025-01-15", FEEDS, "Robots", now=fixed_now
        )
    assert table.items == {}


def test_invalid_date_raises(table, fixed_now):
    with pytest.raises(dates.HistoricalDateError, match="Future newspapers"):
        historical.get_or_create_historical_newspaper(
            "abc", "2025-02-01", FEEDS, "Robots", now=fixed_now
        )


def test_default_feed_failure_does_not_stop_generation(table, monkeypatch, fixed_now):
    monkeypatch.setenv("USE_MOCK_AI", "true")

    def broken(*_args, **_kwargs):
        raise RuntimeError("default feeds down")

    monkeypatch.setattr(historical, "fetch_default_feed_articles", broken)
    base = datetime(2025, 1, 14, 16, 0, tzinfo=timezone.utc)
    monkeypatch.setattr(
        rss,
        "fetch_rss_feeds",
        lambda *a, **k: rss.FetchResult(
            articles=[_article(i, base + timedelta(minutes=i)) for i in range(9)]
        ),
    )

    paper = historical.get_or_create_historical_newspaper(
        "abc", "2025-01-15", FEEDS, "Robots", now=fixed_now
    )

    assert len(paper.articles) >= 8


def test_default_feed_in_list_is_not_fetched_twice(table, monkeypatch, fixed_now):
    monkeypatch.setenv("USE_MOCK_AI", "true")
    bbc = "https://www.bbc.com/news/world/rss.xml"
    base = datetime(2025, 1, 14, 16, 0, tzinfo=timezone.utc)
    requested = []

    def fake_fetch(urls, days_back, **_kwargs):
        requested.extend(urls)
        articles = [
            Article(
                title=f"Story {i} from {url}",
                description="Body",
                link=f"{url}/{i}",
                pub_date=base + timedelta(minutes=i),
                feed_source=url,
            )
            for url in urls
            for i in range(4)
        ]
        return rss.FetchResult(articles=articles)

    def fake_defaults(*_args, **_kwargs):
        articles = [
            Article(
                title=f"World story {i}",
                description="Body",
                link=f"{bbc}/{i}",
                pub_date=base + timedelta(minutes=30 + i),
                feed_source=bbc,
                is_default_feed=True,
            )
            for i in (3, 2)
        ]
        return DefaultFeedArticles(articles, 4, 1)

    monkeypatch.setattr(rss, "fetch_rss_feeds", fake_fetch)
    monkeypatch.setattr(historical, "fetch_default_feed_articles", fake_defaults)

    paper = historical.get_or_create_historical_newspaper(
        "abc", "2025-01-15", FEEDS + [bbc], "Robots", rng=random.Random(3), now=fixed_now
    )

    links = [a.link for a in paper.articles]
    assert bbc not in requested
    assert len(links) == len(set(links))
    assert paper.feed_urls == FEEDS
