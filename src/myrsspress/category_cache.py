"""In-process TTL cache for categories and feeds with stale-while-refresh reads."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from . import categories
from .models import Category, Feed

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass
class CacheEntry(Generic[T]):
    data: T
    stored_at: float


def _thread_runner(fn: Callable[[], None]) -> None:
    threading.Thread(target=fn, daemon=True).start()


class CategoryCache:
    """
    Expired entries are served stale while a single background refresh per
    key reloads them. A miss loads synchronously; a failed load falls back to
    stale data when there is any and re-raises otherwise.
    """

    def __init__(
        self,
        categories_loader: Callable[[str], List[Category]] = categories.get_categories_by_locale,
        feeds_loader: Callable[[str], List[Feed]] = categories.get_feeds_by_category,
        *,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        background: Callable[[Callable[[], None]], None] = _thread_runner,
    ):
        self._categories_loader = categories_loader
        self._feeds_loader = feeds_loader
        self.ttl = ttl
        self._clock = clock
        self._background = background
        self._categories: Dict[str, CacheEntry[List[Category]]] = {}
        self._feeds: Dict[str, CacheEntry[List[Feed]]] = {}
        self._refresh_in_progress: set[str] = set()
        self._lock = threading.Lock()

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at > self.ttl

    def _get(self, store: Dict[str, CacheEntry], key: str, load: Callable[[], T]) -> T:
        with self._lock:
            cached = store.get(key)
        if cached is not None and not self._expired(cached):
            return cached.data
        if cached is not None:
            logger.info("Cache expired for %s, serving stale data while refreshing", key)
            self._refresh(store, key, load)
            return cached.data

        try:
            data = load()
        except Exception:
            logger.exception("Error loading %s", key)
            # A concurrent load may have filled the entry meanwhile.
            with self._lock:
                cached = store.get(key)
            if cached is not None:
                return cached.data
            raise
        with self._lock:
            store[key] = CacheEntry(data, self._clock())
        return data

    def _refresh(self, store: Dict[str, CacheEntry], key: str, load: Callable[[], T]) -> None:
        with self._lock:
            if key in self._refresh_in_progress:
                return
            self._refresh_in_progress.add(key)

        def run() -> None:
            try:
                data = load()
                with self._lock:
                    store[key] = CacheEntry(data, self._clock())
                logger.info("Background refresh completed for %s", key)
            except Exception:
                logger.exception("Background refresh failed for %s", key)
            finally:
                with self._lock:
                    self._refresh_in_progress.discard(key)

        self._background(run)

    def get_categories(self, locale: str) -> List[Category]:
        return self._get(
            self._categories, f"categories:{locale}", lambda: self._categories_loader(locale)
        )

    def get_feeds(self, category_id: str) -> List[Feed]:
        return self._get(
            self._feeds, f"feeds:{category_id}", lambda: self._feeds_loader(category_id)
        )

    def invalidate(self, key: str) -> None:
        """Drop one entry, e.g. ``categories:en`` or ``feeds:technology``."""
        with self._lock:
            if key.startswith("categories:"):
                self._categories.pop(key, None)
            elif key.startswith("feeds:"):
                self._feeds.pop(key, None)
        logger.debug("Invalidated cache for %s", key)

    def clear(self) -> None:
        with self._lock:
            self._categories.clear()
            self._feeds.clear()

    def preload(self, locales: Optional[List[str]] = None) -> None:
        for locale in locales or ["en", "ja"]:
            try:
                self.get_categories(locale)
            except Exception:
                logger.exception("Error pre-loading categories for %s", locale)


category_cache = CategoryCache()
