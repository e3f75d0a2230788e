"""Feed usage statistics and automatic promotion into the curated feed list.

Every generated newspaper records, per requested feed, whether the fetch
succeeded and how many articles it produced. Feeds with a clean record are
promoted into their category so later suggestions can skip the LLM.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from . import categories, storage
from .category_service import invalidate_category
from .dates import iso_now
from .models import CreateFeedRequest, FeedUsage

logger = logging.getLogger(__name__)

USAGE_INDEX = "GSI1"
POPULAR_CACHE_TTL_SECONDS = 5 * 60


@dataclass(frozen=True)
class PromotionCriteria:
    min_usage_count: int = 1
    min_success_rate: float = 100.0
    min_average_articles: float = 1.0


PROMOTION_CRITERIA = PromotionCriteria()


def usage_key(url: str, category_id: str) -> Dict[str, str]:
    return {"PK": f"FEED_USAGE#{url}", "SK": f"CATEGORY#{category_id}"}


def _usage_item(usage: FeedUsage) -> dict:
    return {
        **usage.to_dict(),
        **usage_key(usage.url, usage.category_id),
        "GSI1PK": f"FEED_USAGE_CATEGORY#{usage.category_id}",
        "GSI1SK": f"USAGE_COUNT#{usage.usage_count:010d}",
        "entityType": "FEED_USAGE",
    }


def _resolve(table):
    return table if table is not None else storage.get_table()


# --- Repository -------------------------------------------------------------


def get_feed_usage(url: str, category_id: str, table=None) -> Optional[FeedUsage]:
    item = _resolve(table).get_item(Key=usage_key(url, category_id)).get("Item")
    if not item:
        return None
    return FeedUsage.model_validate(storage.from_item(item))


def next_usage(
    existing: Optional[FeedUsage],
    *,
    url: str,
    category_id: str,
    article_count: int,
    success: bool,
    title: Optional[str] = None,
    now: Optional[str] = None,
) -> FeedUsage:
    """Fold one more fetch into the running success rate and average yield."""
    now = now or iso_now()
    if existing is None:
        return FeedUsage(
            url=url,
            category_id=category_id,
            title=title,
            usage_count=1,
            last_used_at=now,
            success_rate=100.0 if success else 0.0,
            average_articles=float(article_count),
            created_at=now,
            updated_at=now,
        )
    count = existing.usage_count + 1
    successes = existing.success_rate * existing.usage_count / 100 + (1 if success else 0)
    average = (existing.average_articles * existing.usage_count + article_count) / count
    return existing.model_copy(
        update={
            "title": title or existing.title,
            "usage_count": count,
            "last_used_at": now,
            "success_rate": successes / count * 100,
            "average_articles": average,
            "updated_at": now,
        }
    )


def save_feed_usage(
    url: str,
    category_id: str,
    article_count: int,
    success: bool,
    title: Optional[str] = None,
    table=None,
) -> FeedUsage:
    table = _resolve(table)
    usage = next_usage(
        get_feed_usage(url, category_id, table),
        url=url,
        category_id=category_id,
        article_count=article_count,
        success=success,
        title=title,
    )
    table.put_item(Item=storage.to_item(_usage_item(usage)))
    return usage


def query_popular_feeds(category_id: str, limit: int = 5, table=None) -> List[FeedUsage]:
    response = _resolve(table).query(
        IndexName=USAGE_INDEX,
        KeyConditionExpression="GSI1PK = :pk",
        ExpressionAttributeValues={":pk": f"FEED_USAGE_CATEGORY#{category_id}"},
        ScanIndexForward=False,
        Limit=limit,
    )
    return [
        FeedUsage.model_validate(storage.from_item(item))
        for item in response.get("Items", [])
    ]


# --- Service ----------------------------------------------------------------

_popular_cache: Dict[str, tuple[float, List[FeedUsage]]] = {}
_popular_lock = threading.Lock()


def record_feed_usage(
    url: str,
    category_id: str,
    article_count: int,
    success: bool,
    title: Optional[str] = None,
) -> Optional[FeedUsage]:
    """Record one fetch; failures are logged and reported as None."""
    try:
        usage = save_feed_usage(url, category_id, article_count, success, title)
    except Exception:
        logger.exception("Failed to record usage for %s", url)
        return None
    clear_popular_cache(category_id)
    logger.info(
        "Recorded usage: %s for %s (%s articles, success=%s)",
        url,
        category_id,
        article_count,
        success,
    )
    return usage


def get_popular_feeds(category_id: str, limit: int = 5) -> List[FeedUsage]:
    """Most-used feeds of a category; cached, and empty when the lookup fails."""
    key = f"popular:{category_id}"
    now = time.monotonic()
    with _popular_lock:
        cached = _popular_cache.get(key)
    if cached is not None and now < cached[0]:
        return cached[1][:limit]
    try:
        feeds = query_popular_feeds(category_id, limit)
    except Exception:
        logger.exception("Failed to get popular feeds for %s", category_id)
        return []
    with _popular_lock:
        _popular_cache[key] = (now + POPULAR_CACHE_TTL_SECONDS, feeds)
    return feeds


def clear_popular_cache(category_id: Optional[str] = None) -> None:
    with _popular_lock:
        if category_id:
            _popular_cache.pop(f"popular:{category_id}", None)
        else:
            _popular_cache.clear()


# --- Learning ---------------------------------------------------------------


def meets_promotion_criteria(
    usage: Optional[FeedUsage], criteria: PromotionCriteria = PROMOTION_CRITERIA
) -> bool:
    if usage is None:
        return False
    return (
        usage.usage_count >= criteria.min_usage_count
        and usage.success_rate >= criteria.min_success_rate
        and usage.average_articles >= criteria.min_average_articles
    )


def promotion_priority(usage: FeedUsage) -> int:
    return max(1, 100 - math.floor(usage.usage_count * (usage.success_rate / 100)))


def promote_feed_if_qualified(
    url: str,
    category_id: str,
    title: str,
    description: Optional[str] = None,
    language: Optional[str] = None,
) -> bool:
    """Add the feed to its category when its usage record qualifies and it is new."""
    try:
        existing = categories.get_feeds_by_category(category_id, include_inactive=True)
        if any(feed.url == url for feed in existing):
            return False
        usage = get_feed_usage(url, category_id)
        if not meets_promotion_criteria(usage):
            return False
        categories.create_feed(
            CreateFeedRequest(
                category_id=category_id,
                url=url,
                title=title[:200] or url,
                description=(
                    description
                    or f"Automatically learned feed with {usage.usage_count} uses "
                    f"and {usage.success_rate:g}% success rate"
                )[:500],
                language=(language or "en")[:2].lower(),
                priority=promotion_priority(usage),
            )
        )
    except Exception:
        logger.exception("Error promoting feed %s", url)
        return False
    logger.info("Promoted feed %s into %s", url, category_id)
    return True


def promote_feeds_if_qualified(
    feed_urls: List[str],
    category_id: str,
    feed_titles: Optional[Mapping[str, str]] = None,
    feed_languages: Optional[Mapping[str, str]] = None,
) -> int:
    """Run promotion for each URL and return how many were added."""
    feed_titles = feed_titles or {}
    feed_languages = feed_languages or {}
    promoted = 0
    for url in feed_urls:
        if promote_feed_if_qualified(
            url,
            category_id,
            feed_titles.get(url) or url,
            language=feed_languages.get(url),
        ):
            promoted += 1
    if promoted:
        invalidate_category(category_id)
    logger.info("Promoted %s/%s feeds in %s", promoted, len(feed_urls), category_id)
    return promoted
