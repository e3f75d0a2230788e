"""Read-side category logic on top of the cache, plus fallback wrappers."""

from __future__ import annotations

import logging
from typing import List, Optional

from . import category_cache as cache_module
from .default_feeds import default_feeds_as_feeds
from .models import Category, Feed

logger = logging.getLogger(__name__)


def _cache() -> cache_module.CategoryCache:
    return cache_module.category_cache


def get_categories(locale: str) -> List[Category]:
    """Active categories of a locale in display order."""
    return [c for c in _cache().get_categories(locale) if c.is_active]


def get_feeds_by_category(category_id: str) -> List[Feed]:
    """Active feeds of a category by ascending priority."""
    return [f for f in _cache().get_feeds(category_id) if f.is_active]


def match_category(theme: str, candidates: List[Category]) -> Optional[Category]:
    """First category with a keyword contained (case-insensitively) in the theme."""
    normalized = theme.lower()
    for category in candidates:
        if any(keyword and keyword.lower() in normalized for keyword in category.keywords):
            return category
    return None


def get_category_by_theme(theme: str, locale: str) -> Optional[Category]:
    return match_category(theme, get_categories(locale))


def get_category_by_theme_with_fallback(theme: str, locale: str) -> Optional[Category]:
    try:
        return get_category_by_theme(theme, locale)
    except Exception:
        logger.exception("Category lookup failed for theme %r", theme)
        return None


def get_feeds_with_fallback(category_id: str, locale: str) -> List[Feed]:
    """Curated feeds, or the locale's default feeds when none are available."""
    try:
        feeds = get_feeds_by_category(category_id)
    except Exception:
        logger.exception("Feed lookup failed for category %s", category_id)
        return default_feeds_as_feeds(locale, category_id)
    if not feeds:
        logger.info("No curated feeds for %s, using defaults", category_id)
        return default_feeds_as_feeds(locale, category_id)
    return feeds


def invalidate_category(category_id: str, locale: Optional[str] = None) -> None:
    cache = _cache()
    if locale:
        cache.invalidate(f"categories:{locale}")
    else:
        cache.invalidate("categories:en")
        cache.invalidate("categories:ja")
    cache.invalidate(f"feeds:{category_id}")
