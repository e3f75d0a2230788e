"""RSS fetching and article selection.

Feeds are downloaded with httpx and parsed with feedparser. A failing feed is
logged and skipped so one broken URL never sinks a newspaper.
"""

from __future__ import annotations

import html
import logging
import random
import re
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Iterable, List, Optional

import feedparser
import httpx

from .models import Article

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 5.0
USER_AGENT = "Mozilla/5.0 (compatible; MyRSSPress/1.0; +https://my-rss-press.com)"
DESCRIPTION_LIMIT = 200
MIN_ARTICLES = 8
MAX_ARTICLES = 15

_IMG_SRC = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)
_TAGS = re.compile(r"<[^>]+>")
_SPACES = re.compile(r"\s+")


@dataclass
class ParsedFeed:
    url: str
    articles: List[Article]
    language: Optional[str] = None
    title: Optional[str] = None


@dataclass
class FetchResult:
    articles: List[Article]
    feed_languages: Dict[str, str] = field(default_factory=dict)
    # None marks a feed that failed to download or parse.
    article_counts: Dict[str, Optional[int]] = field(default_factory=dict)
    feed_titles: Dict[str, str] = field(default_factory=dict)


def build_http_client(timeout: float = FETCH_TIMEOUT_SECONDS) -> httpx.Client:
    return httpx.Client(
        follow_redirects=True,
        timeout=timeout,
        headers={"User-Agent": USER_AGENT},
    )


def _strip_html(text: str) -> str:
    return _SPACES.sub(" ", html.unescape(_TAGS.sub(" ", text))).strip()


def _entry_content(entry) -> str:
    content = entry.get("content") or []
    if content:
        return content[0].get("value", "") or ""
    return ""


def _description(entry) -> str:
    raw = entry.get("summary") or _entry_content(entry) or ""
    text = _strip_html(raw)
    if len(text) > DESCRIPTION_LIMIT:
        return text[:DESCRIPTION_LIMIT] + "..."
    return text


def _published(entry) -> datetime:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue
    for key in ("published", "updated"):
        raw = entry.get(key)
        if raw:
            try:
                value = parsedate_to_datetime(raw)
            except (TypeError, ValueError):
                continue
            return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


def extract_image_url(entry) -> Optional[str]:
    """Find an image for an entry: enclosure, media tags, image element, then inline <img>."""
    for enclosure in entry.get("enclosures") or []:
        if (enclosure.get("type") or "").startswith("image/") and enclosure.get("href"):
            return enclosure["href"]
    for key in ("media_content", "media_thumbnail"):
        for media in entry.get(key) or []:
            if media.get("url"):
                return media["url"]
    image = entry.get("image")
    if isinstance(image, dict) and image.get("href"):
        return image["href"]
    body = _entry_content(entry) or entry.get("summary") or ""
    match = _IMG_SRC.search(body)
    if match:
        return match.group(1)
    return None


def parse_feed_text(url: str, text: str) -> ParsedFeed:
    """Parse raw RSS/Atom text into articles attributed to `url`."""
    parsed = feedparser.parse(text)
    if parsed.bozo and not parsed.entries:
        raise ValueError(f"Feed parsing error for {url}: {parsed.get('bozo_exception')}")

    feed_title = parsed.feed.get("title") or None
    articles: List[Article] = []
    for entry in parsed.entries:
        title = (entry.get("title") or "").strip()
        link = (entry.get("link") or "").strip()
        if not title or not link:
            continue
        articles.append(
            Article(
                title=title,
                description=_description(entry),
                link=link,
                pub_date=_published(entry),
                image_url=extract_image_url(entry),
                feed_source=url,
                feed_title=feed_title,
            )
        )
    return ParsedFeed(
        url=url,
        articles=articles,
        language=parsed.feed.get("language") or None,
        title=feed_title,
    )


def parse_feed(url: str, *, client: Optional[httpx.Client] = None) -> ParsedFeed:
    """Download and parse one feed; raises on HTTP or parse failure."""
    owns_client = client is None
    http = client or build_http_client()
    try:
        response = http.get(url)
        response.raise_for_status()
    finally:
        if owns_client:
            http.close()
    parsed = parse_feed_text(url, response.text)
    logger.debug("Extracted %s articles from %s", len(parsed.articles), url)
    return parsed


def filter_by_date(
    articles: Iterable[Article], days_back: int, *, now: Optional[datetime] = None
) -> List[Article]:
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days_back)
    return [a for a in articles if a.pub_date >= cutoff]


def filter_by_range(
    articles: Iterable[Article], start: datetime, end: datetime
) -> List[Article]:
    return [a for a in articles if start <= a.pub_date <= end]


def sort_newest_first(articles: Iterable[Article]) -> List[Article]:
    return sorted(articles, key=lambda a: a.pub_date, reverse=True)


def fetch_rss_feeds(
    feed_urls: List[str],
    days_back: Optional[int] = 7,
    *,
    client: Optional[httpx.Client] = None,
    now: Optional[datetime] = None,
) -> FetchResult:
    """Fetch every feed concurrently; failed feeds contribute no articles."""
    owns_client = client is None
    http = client or build_http_client()
    result = FetchResult(articles=[])
    parsed_by_url: Dict[str, ParsedFeed] = {}
    try:
        with ThreadPoolExecutor(max_workers=min(8, max(1, len(feed_urls)))) as pool:
            futures = {pool.submit(parse_feed, url, client=http): url for url in feed_urls}
            for future in as_completed(futures):
                url = futures[future]
                try:
                    parsed_by_url[url] = future.result()
                except Exception as exc:
                    logger.warning("Failed to fetch feed %s: %s", url, exc)
                    result.article_counts[url] = None
    finally:
        if owns_client:
            http.close()

    # Preserve request order so downstream balancing is stable.
    for url in feed_urls:
        parsed = parsed_by_url.get(url)
        if parsed is None:
            continue
        articles = parsed.articles
        if days_back is not None:
            articles = filter_by_date(articles, days_back, now=now)
        result.articles.extend(articles)
        result.article_counts[url] = len(articles)
        if parsed.language:
            result.feed_languages[url] = parsed.language
        if parsed.title:
            result.feed_titles[url] = parsed.title

    logger.info(
        "Fetched %s articles from %s feeds (%s days back)",
        len(result.articles),
        len(feed_urls),
        days_back,
    )
    return result


def determine_article_count(rng: Optional[random.Random] = None) -> int:
    """Random newspaper size between MIN_ARTICLES and MAX_ARTICLES inclusive."""
    return (rng or random).randint(MIN_ARTICLES, MAX_ARTICLES)


def fetch_articles_for_newspaper(
    feed_urls: List[str],
    *,
    client: Optional[httpx.Client] = None,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> FetchResult:
    """
    Fetch articles for a new newspaper, widening 3 -> 7 -> 14 days until there
    are at least MIN_ARTICLES, then pick the newest 8-15 with image stories first.
    """
    rng = rng or random.Random()
    result = fetch_rss_feeds(feed_urls, 3, client=client, now=now)
    for days_back in (7, 14):
        if len(result.articles) >= MIN_ARTICLES:
            break
        logger.info(
            "Only %s articles found, extending window to %s days",
            len(result.articles),
            days_back,
        )
        result = fetch_rss_feeds(feed_urls, days_back, client=client, now=now)

    newest = sort_newest_first(result.articles)
    selected = newest[: min(determine_article_count(rng), len(newest))]
    with_images = [a for a in selected if a.image_url]
    without_images = [a for a in selected if not a.image_url]
    rng.shuffle(with_images)
    rng.shuffle(without_images)
    result.articles = with_images + without_images
    return result


def balance_articles_across_feeds(articles: List[Article], target: int) -> List[Article]:
    """
    Pick up to `target` articles round robin across feeds, newest first within
    each feed, so no single feed dominates.
    """
    by_feed: "OrderedDict[str, List[Article]]" = OrderedDict()
    for article in sort_newest_first(articles):
        by_feed.setdefault(article.feed_source, []).append(article)

    balanced: List[Article] = []
    depth = 0
    while len(balanced) < target:
        added = False
        for feed_articles in by_feed.values():
            if depth < len(feed_articles):
                balanced.append(feed_articles[depth])
                added = True
                if len(balanced) >= target:
                    break
        if not added:
            break
        depth += 1
    return balanced
