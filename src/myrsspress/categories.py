"""DynamoDB repository for the curated category and feed taxonomy.

Categories live at ``CATEGORY#<id>/METADATA`` and are listed per locale via
GSI1 (``CATEGORY_LOCALE#<locale>`` / ``ORDER#<order>``). Feeds share the
category partition under ``FEED#<url>`` sort keys. Deletes are soft: they
flip ``isActive`` and leave the item in place.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from . import storage
from .config import SUPPORTED_LOCALES
from .dates import iso_now
from .models import (
    Category,
    CreateCategoryRequest,
    CreateFeedRequest,
    Feed,
)

logger = logging.getLogger(__name__)

LOCALE_INDEX = "GSI1"


def category_key(category_id: str) -> Dict[str, str]:
    return {"PK": f"CATEGORY#{category_id}", "SK": "METADATA"}


def feed_key(category_id: str, url: str) -> Dict[str, str]:
    return {"PK": f"CATEGORY#{category_id}", "SK": f"FEED#{url}"}


def _category_item(category: Category) -> Dict[str, Any]:
    return {
        **category.to_dict(),
        **category_key(category.category_id),
        "GSI1PK": f"CATEGORY_LOCALE#{category.locale}",
        "GSI1SK": f"ORDER#{category.order:05d}",
        "entityType": "CATEGORY",
    }


def _feed_item(feed: Feed) -> Dict[str, Any]:
    return {**feed.to_dict(), **feed_key(feed.category_id, feed.url), "entityType": "FEED"}


def _resolve(table):
    return table if table is not None else storage.get_table()


# --- Categories -------------------------------------------------------------


def get_category_by_id(category_id: str, table=None) -> Optional[Category]:
    response = _resolve(table).get_item(Key=category_key(category_id))
    item = response.get("Item")
    if not item:
        return None
    return Category.model_validate(storage.from_item(item))


def get_categories_by_locale(
    locale: str, table=None, *, include_inactive: bool = False
) -> List[Category]:
    """Categories of one locale ordered by their `order` field."""
    items = storage.query_all(
        _resolve(table),
        IndexName=LOCALE_INDEX,
        KeyConditionExpression="GSI1PK = :pk",
        ExpressionAttributeValues={":pk": f"CATEGORY_LOCALE#{locale}"},
        ScanIndexForward=True,
    )
    categories = [Category.model_validate(item) for item in items]
    if not include_inactive:
        categories = [c for c in categories if c.is_active]
    return sorted(categories, key=lambda c: c.order)


def get_all_categories(table=None, *, include_inactive: bool = False) -> List[Category]:
    table = _resolve(table)
    categories: List[Category] = []
    for locale in SUPPORTED_LOCALES:
        categories.extend(
            get_categories_by_locale(locale, table, include_inactive=include_inactive)
        )
    return categories


def create_category(request: CreateCategoryRequest, table=None) -> Category:
    now = iso_now()
    category = Category(**request.model_dump(), created_at=now, updated_at=now)
    _resolve(table).put_item(Item=storage.to_item(_category_item(category)))
    logger.info("Created category %s (%s)", category.category_id, category.locale)
    return category


def update_category(
    category_id: str, changes: Dict[str, Any], table=None
) -> Optional[Category]:
    """Apply `changes` (snake_case fields); GSI keys follow locale/order changes."""
    table = _resolve(table)
    existing = get_category_by_id(category_id, table)
    if existing is None:
        return None
    updated = existing.model_copy(update={**changes, "updated_at": iso_now()})
    updated = Category.model_validate(updated.model_dump())
    table.put_item(Item=storage.to_item(_category_item(updated)))
    return updated


def delete_category(category_id: str, table=None) -> bool:
    """Soft delete. Returns False when the category does not exist."""
    return update_category(category_id, {"is_active": False}, table) is not None


# --- Feeds ------------------------------------------------------------------


def get_feed(category_id: str, url: str, table=None) -> Optional[Feed]:
    response = _resolve(table).get_item(Key=feed_key(category_id, url))
    item = response.get("Item")
    if not item:
        return None
    return Feed.model_validate(storage.from_item(item))


def get_feeds_by_category(
    category_id: str, table=None, *, include_inactive: bool = False
) -> List[Feed]:
    """Feeds of a category ordered by ascending priority."""
    items = storage.query_all(
        _resolve(table),
        KeyConditionExpression="PK = :pk AND begins_with(SK, :sk)",
        ExpressionAttributeValues={":pk": f"CATEGORY#{category_id}", ":sk": "FEED#"},
    )
    feeds = [Feed.model_validate(item) for item in items]
    if not include_inactive:
        feeds = [f for f in feeds if f.is_active]
    return sorted(feeds, key=lambda f: f.priority)


def create_feed(request: CreateFeedRequest, table=None) -> Feed:
    now = iso_now()
    feed = Feed(**request.model_dump(), created_at=now, updated_at=now)
    _resolve(table).put_item(Item=storage.to_item(_feed_item(feed)))
    logger.info("Created feed %s in %s", feed.url, feed.category_id)
    return feed


def update_feed(
    category_id: str, url: str, changes: Dict[str, Any], table=None
) -> Optional[Feed]:
    table = _resolve(table)
    existing = get_feed(category_id, url, table)
    if existing is None:
        return None
    updated = existing.model_copy(update={**changes, "updated_at": iso_now()})
    updated = Feed.model_validate(updated.model_dump())
    table.put_item(Item=storage.to_item(_feed_item(updated)))
    return updated


def delete_feed(category_id: str, url: str, table=None) -> bool:
    """Soft delete. Returns False when the feed does not exist."""
    return update_feed(category_id, url, {"is_active": False}, table) is not None
