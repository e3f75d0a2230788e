"""Per-date newspapers: build once from the feeds, then serve the stored copy."""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import httpx
from openai import OpenAI

from . import newspapers, rss
from .article_filter import filter_articles_by_theme
from .dates import HistoricalDateError, day_window, iso_now, parse_date, validate_date
from .default_feeds import (
    fetch_default_feed_articles,
    get_default_feeds,
    is_default_feed,
    limit_default_feed_articles,
)
from .importance import calculate_importance, select_top_articles
from .language import detect_languages, tag_languages
from .models import Article, Newspaper
from .summary import generate_summary

logger = logging.getLogger(__name__)

WIDENED_DAYS_BACK = 14
BALANCE_TARGET = 15
NO_ARTICLES_MESSAGE = (
    "No articles found for this date. Please try a different date or add more RSS feeds."
)


class NoArticlesError(LookupError):
    """No feed produced an article for the requested date."""


def fetch_articles_for_date(
    feed_urls: List[str],
    target_date: str,
    *,
    client: Optional[httpx.Client] = None,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> rss.FetchResult:
    """
    Articles published on the target day. When fewer than MIN_ARTICLES turn up,
    refetch two weeks and accept anything from the preceding week as well.
    """
    rng = rng or random.Random()
    start, end = day_window(parse_date(target_date), now=now)

    result = rss.fetch_rss_feeds(feed_urls, 7, client=client, now=now)
    articles = rss.filter_by_range(result.articles, start, end)
    if len(articles) < rss.MIN_ARTICLES:
        logger.info(
            "Only %s articles on %s, widening the window", len(articles), target_date
        )
        result = rss.fetch_rss_feeds(feed_urls, WIDENED_DAYS_BACK, client=client, now=now)
        articles = rss.filter_by_range(result.articles, start - timedelta(days=7), end)

    newest = rss.sort_newest_first(articles)
    result.articles = newest[: rss.determine_article_count(rng)]
    return result


def _merge_default_articles(
    articles: List[Article],
    locale: str,
    target_date: str,
    *,
    client: Optional[httpx.Client],
    now: Optional[datetime],
) -> List[Article]:
    try:
        defaults = fetch_default_feed_articles(locale, target_date, client=client, now=now)
    except Exception:
        logger.exception("Default feed fetch failed for %s", target_date)
        return articles
    return articles + defaults.articles


def _safe_languages(articles: List[Article], feed_languages: Dict[str, str]) -> List[str]:
    try:
        return detect_languages(articles, feed_languages)
    except Exception:
        logger.exception("Language detection failed")
        return []


def get_or_create_historical_newspaper(
    newspaper_id: str,
    target_date: str,
    feed_urls: List[str],
    theme: str,
    locale: str = "en",
    *,
    http_client: Optional[httpx.Client] = None,
    ai_client: Optional[OpenAI] = None,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
    table=None,
) -> Newspaper:
    """
    Return the stored newspaper for (id, date), generating and saving it on
    first request.

    Raises:
        HistoricalDateError: the date is malformed, in the future or expired.
        NoArticlesError: nothing was published in range by any feed.
    """
    validation = validate_date(target_date, now=now)
    if not validation.valid:
        raise HistoricalDateError(validation.error)

    existing = newspapers.get_newspaper_by_date(newspaper_id, target_date, table)
    if existing is not None:
        logger.info("Serving stored newspaper %s for %s", newspaper_id, target_date)
        return existing

    rng = rng or random.Random()
    # Default feeds are merged in separately below.
    user_feeds = [url for url in feed_urls if not is_default_feed(url)]
    fetched = fetch_articles_for_date(
        user_feeds, target_date, client=http_client, rng=rng, now=now
    )
    articles = _merge_default_articles(
        fetched.articles, locale, target_date, client=http_client, now=now
    )
    articles = rss.balance_articles_across_feeds(articles, BALANCE_TARGET)
    default_urls = [feed.url for feed in get_default_feeds(locale)]
    articles = limit_default_feed_articles(articles, default_urls)
    if not articles:
        raise NoArticlesError(NO_ARTICLES_MESSAGE)

    articles = calculate_importance(
        articles, theme, default_urls, locale=locale, client=ai_client, rng=rng
    )
    articles = filter_articles_by_theme(articles, theme, locale, client=ai_client)
    articles = select_top_articles(articles, rss.determine_article_count(rng))

    languages = _safe_languages(articles, fetched.feed_languages)
    articles = tag_languages(articles, fetched.feed_languages)
    summary = generate_summary(articles, theme, languages, client=ai_client)

    metadata = newspapers.get_newspaper(newspaper_id, table)
    created = iso_now()
    newspaper = Newspaper(
        newspaper_id=newspaper_id,
        name=metadata.name if metadata else f"Newspaper for {target_date}",
        user_name=metadata.user_name if metadata else "System",
        feed_urls=user_feeds,
        articles=articles,
        locale=locale,
        is_public=False,
        summary=summary,
        languages=languages,
        newspaper_date=target_date,
        created_at=created,
        updated_at=created,
    )
    newspapers.save_historical_newspaper(newspaper, table)
    logger.info(
        "Generated newspaper %s for %s with %s articles",
        newspaper_id,
        target_date,
        len(articles),
    )
    return newspaper
