"""Curated fallback feeds and the limiter that keeps them from crowding out user feeds."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

import httpx

from . import rss
from .dates import day_window, now_utc, parse_date
from .models import Article, Feed, FeedSuggestion

logger = logging.getLogger(__name__)

MAX_DEFAULT_ARTICLES_PER_FEED = 2
MIN_ARTICLE_COUNT = 8


@dataclass(frozen=True)
class DefaultFeed:
    url: str
    title: str
    language: str


DEFAULT_FEEDS: Dict[str, List[DefaultFeed]] = {
    "en": [
        DefaultFeed("https://www.bbc.com/news/world/rss.xml", "BBC News", "EN"),
        DefaultFeed("https://rss.nytimes.com/services/xml/rss/nyt/World.xml", "New York Times", "EN"),
        DefaultFeed("https://www.theguardian.com/world/rss", "The Guardian", "EN"),
        DefaultFeed("https://www.reuters.com/rssFeed/worldNews", "Reuters", "EN"),
    ],
    "ja": [
        DefaultFeed("https://www.nhk.or.jp/rss/news/cat0.xml", "NHK News", "JP"),
        DefaultFeed("https://news.yahoo.co.jp/rss/topics/top-picks.xml", "Yahoo News", "JP"),
        DefaultFeed("https://www.asahi.com/rss/asahi/newsheadlines.rdf", "Asahi Shimbun", "JP"),
        DefaultFeed("https://rss.itmedia.co.jp/rss/2.0/news_bursts.xml", "ITmedia", "JP"),
    ],
}

_ALL_DEFAULT_URLS = {feed.url for feeds in DEFAULT_FEEDS.values() for feed in feeds}


@dataclass
class DefaultFeedArticles:
    articles: List[Article]
    total_feeds: int
    successful_feeds: int

    def to_dict(self) -> dict:
        return {
            "articles": [a.to_dict() for a in self.articles],
            "totalFeeds": self.total_feeds,
            "successfulFeeds": self.successful_feeds,
        }


def get_default_feeds(locale: str) -> List[DefaultFeed]:
    return DEFAULT_FEEDS["ja" if locale == "ja" else "en"]


def is_default_feed(url: str) -> bool:
    return url in _ALL_DEFAULT_URLS


def default_feed_suggestions(locale: str) -> List[FeedSuggestion]:
    reasoning = "人気のニュースソース" if locale == "ja" else "Popular news source"
    return [
        FeedSuggestion(url=f.url, title=f.title, reasoning=reasoning, is_default=True)
        for f in get_default_feeds(locale)
    ]


def default_feeds_as_feeds(locale: str, category_id: str = "default") -> List[Feed]:
    """Default feeds shaped as curated Feed records for category fallbacks."""
    now = now_utc().isoformat()
    return [
        Feed(
            category_id=category_id,
            url=f.url,
            title=f.title,
            description=f"Default {locale} news feed",
            language=locale,
            priority=index + 1,
            created_at=now,
            updated_at=now,
        )
        for index, f in enumerate(get_default_feeds(locale))
    ]


def _filter_for_date(
    articles: List[Article], target: str, *, now: Optional[datetime] = None
) -> List[Article]:
    start, end = day_window(parse_date(target), now=now)
    filtered = rss.filter_by_range(articles, start, end)
    if len(filtered) < MAX_DEFAULT_ARTICLES_PER_FEED:
        filtered = rss.filter_by_range(articles, start - timedelta(days=7), end)
    return filtered


def _articles_from_feed(
    feed: DefaultFeed,
    target_date: Optional[str],
    per_feed: int,
    client: Optional[httpx.Client],
    now: Optional[datetime],
) -> List[Article]:
    parsed = rss.parse_feed(feed.url, client=client)
    articles = [
        a.model_copy(update={"feed_title": feed.title, "is_default_feed": True})
        for a in parsed.articles
    ]
    if target_date:
        articles = _filter_for_date(articles, target_date, now=now)
    else:
        articles = rss.filter_by_date(articles, 7, now=now)
    return rss.sort_newest_first(articles)[:per_feed]


def fetch_default_feed_articles(
    locale: str,
    target_date: Optional[str] = None,
    per_feed: int = MAX_DEFAULT_ARTICLES_PER_FEED,
    *,
    client: Optional[httpx.Client] = None,
    now: Optional[datetime] = None,
) -> DefaultFeedArticles:
    """Fetch the newest `per_feed` articles from each default feed of a locale."""
    feeds = get_default_feeds(locale)
    owns_client = client is None
    http = client or rss.build_http_client()
    results: List[Article] = []
    successful = 0
    try:
        with ThreadPoolExecutor(max_workers=len(feeds)) as pool:
            futures = [
                (feed, pool.submit(_articles_from_feed, feed, target_date, per_feed, http, now))
                for feed in feeds
            ]
            for feed, future in futures:
                try:
                    articles = future.result()
                except Exception as exc:
                    logger.warning("Default feed %s failed: %s", feed.title, exc)
                    continue
                if articles:
                    successful += 1
                    results.extend(articles)
    finally:
        if owns_client:
            http.close()

    logger.info(
        "Fetched %s default articles from %s/%s feeds (locale=%s, date=%s)",
        len(results),
        successful,
        len(feeds),
        locale,
        target_date or "last 7 days",
    )
    return DefaultFeedArticles(results, len(feeds), successful)


def limit_default_feed_articles(
    articles: List[Article], default_urls: Iterable[str]
) -> List[Article]:
    """
    Cap each default feed at MAX_DEFAULT_ARTICLES_PER_FEED articles. Extra
    default articles are only added back to reach MIN_ARTICLE_COUNT.
    """
    defaults = set(default_urls)
    by_feed: Dict[str, List[Article]] = {}
    for article in articles:
        by_feed.setdefault(article.feed_source, []).append(article)

    kept: List[Article] = []
    limited: List[Article] = []
    overflow: List[Article] = []
    for feed_url, feed_articles in by_feed.items():
        if feed_url in defaults:
            limited.extend(feed_articles[:MAX_DEFAULT_ARTICLES_PER_FEED])
            overflow.extend(feed_articles[MAX_DEFAULT_ARTICLES_PER_FEED:])
        else:
            kept.extend(feed_articles)

    result = kept + limited
    if len(result) < MIN_ARTICLE_COUNT:
        result.extend(overflow[: MIN_ARTICLE_COUNT - len(result)])
    logger.debug(
        "Article limiter: %s total -> %s after limiting", len(articles), len(result)
    )
    return result
