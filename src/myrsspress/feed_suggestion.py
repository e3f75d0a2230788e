"""Suggest RSS feeds for a theme.

Curated and popular feeds from the database come first; when they are enough
the LLM is skipped entirely. Otherwise the model proposes feeds, every new URL
is checked to really serve XML, and the result is topped up from the database
and the default feeds.
"""

from __future__ import annotations

import json
import logging
import random
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from openai import OpenAI

from . import ai_client, category_service, feed_usage
from .ai_client import AIServiceError
from .config import get_settings
from .default_feeds import default_feed_suggestions
from .logging_config import AIErrorType, log_ai_error
from .models import FeedSuggestion
from .schema import validate_ai_payload

logger = logging.getLogger(__name__)

SERVICE = "feed_suggestion"
MAX_FEEDS = 15
MAX_AI_FEEDS = 14
FAST_PATH_MIN_FEEDS = 10
VALIDATION_TIMEOUT_SECONDS = 5.0
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_EN_NAME_FORMATS = [
    "The {t} Daily",
    "{t} News",
    "{t} Times",
    "{t} Press",
    "{t} Media",
    "The {t} Post",
]
_JA_NAME_SUFFIXES = ["新聞", "デイリー", "ニュース", "メディア", "タイムズ", "プレス"]

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_FEEDS_ARRAY = re.compile(r'"feeds"\s*:\s*\[([\s\S]*?)\]\s*[,}]')
_FEED_OBJECT = re.compile(
    r'\{\s*"url"\s*:\s*"([^"]+)"\s*,\s*"title"\s*:\s*"([^"]+)"\s*,\s*"reasoning"\s*:\s*"([^"]*)"\s*\}'
)


@dataclass
class FeedSuggestionsResult:
    feeds: List[FeedSuggestion]
    newspaper_name: str


_cache: Dict[str, List[FeedSuggestion]] = {}
_cache_lock = threading.Lock()


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()


def generate_newspaper_name(theme: str, locale: str, rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    if locale == "ja":
        return f"{theme}{rng.choice(_JA_NAME_SUFFIXES)}"
    return rng.choice(_EN_NAME_FORMATS).format(t=theme)


def build_suggestion_prompt(theme: str, locale: str = "en") -> str:
    if locale == "ja":
        return (
            f"「{theme}」に関する日本語のRSSフィードを20個提案してください。\n\n"
            "制約：\n"
            "- 実在するアクティブなRSSフィードのみ\n"
            f"- 「{theme}」専門のメディア、ブログ、サイトを優先\n"
            "- 一般ニュースサイトは避ける\n"
            "- URL形式: /rss, /feed, /rss.xml, /feed.xml, /index.xml\n"
            "- reasoning は20文字以内で簡潔に\n\n"
            "重要: 完全で正しいJSONのみを返してください。説明文や前置きは不要です。\n\n"
            "{\n"
            f'  "newspaperName": "{theme}に関する新聞名",\n'
            '  "feeds": [\n'
            '    {"url": "https://example.jp/feed", "title": "フィード名", "reasoning": "簡潔な理由"}\n'
            "  ]\n"
            "}"
        )
    return (
        f'Suggest 20 RSS feeds about "{theme}".\n\n'
        "Requirements:\n"
        "- Only real, active RSS feeds\n"
        f'- Specialized media/blogs about "{theme}"\n'
        "- Avoid general news sites\n"
        "- URL format: /rss, /feed, /rss.xml, /feed.xml, /index.xml\n"
        "- ALL text in English (titles, reasoning)\n"
        "- Keep reasoning under 20 words\n\n"
        "CRITICAL: Return ONLY complete, valid JSON. No explanations.\n\n"
        "{\n"
        f'  "newspaperName": "Newspaper name about {theme}",\n'
        '  "feeds": [\n'
        '    {"url": "https://example.com/feed", "title": "Feed name in English", "reasoning": "Brief reason"}\n'
        "  ]\n"
        "}"
    )


def _loads(text: str) -> Optional[Dict[str, Any]]:
    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        return None
    return obj if isinstance(obj, dict) else None


def extract_suggestion_payload(content: str) -> Dict[str, Any]:
    """
    Recover the suggestion JSON from model text, trying progressively looser
    strategies: outer braces, cleaned JSON, the feeds array alone, then
    individual feed objects.
    """
    first, last = content.find("{"), content.rfind("}")
    if first == -1 or last <= first:
        raise AIServiceError("No JSON found in response", AIErrorType.PARSE_ERROR)
    candidate = content[first:last + 1]

    parsed = _loads(candidate)
    if parsed is None:
        cleaned = _CONTROL_CHARS.sub("", _TRAILING_COMMA.sub(r"\1", candidate))
        parsed = _loads(cleaned)
    if parsed is None:
        match = _FEEDS_ARRAY.search(content)
        if match:
            parsed = _loads(f'{{"feeds":[{match.group(1)}]}}')
    if parsed is None:
        feeds = [
            {"url": url, "title": title, "reasoning": reasoning}
            for url, title, reasoning in _FEED_OBJECT.findall(content)
        ]
        if feeds:
            parsed = {"feeds": feeds}
    if parsed is None:
        raise AIServiceError("Could not recover feeds from response", AIErrorType.PARSE_ERROR)
    return validate_ai_payload(parsed, "feed_suggestions")


def parse_suggestions(content: str, theme: str, locale: str) -> FeedSuggestionsResult:
    payload = extract_suggestion_payload(content)
    suggestions = [
        FeedSuggestion(
            url=str(feed["url"]).strip(),
            title=feed.get("title") or "Unknown Feed",
            reasoning=feed.get("reasoning") or "",
        )
        for feed in payload["feeds"][:20]
        if str(feed.get("url", "")).strip()
    ]
    name = (payload.get("newspaperName") or "").strip()
    return FeedSuggestionsResult(
        feeds=suggestions, newspaper_name=name or generate_newspaper_name(theme, locale)
    )


def validate_feed_url(url: str, *, client: Optional[httpx.Client] = None) -> bool:
    """True when the URL answers a GET with a non-empty XML document."""
    owns_client = client is None
    http = client or httpx.Client(
        follow_redirects=True,
        timeout=VALIDATION_TIMEOUT_SECONDS,
        headers={
            "User-Agent": BROWSER_USER_AGENT,
            "Accept": "application/rss+xml, application/xml, text/xml, */*",
        },
    )
    try:
        response = http.get(url)
    except httpx.HTTPError as exc:
        logger.debug("Feed validation failed for %s: %s", url, exc)
        return False
    finally:
        if owns_client:
            http.close()

    if not response.is_success:
        return False
    content_type = response.headers.get("content-type", "").lower()
    if not any(marker in content_type for marker in ("xml", "rss", "atom")):
        return False
    body = response.text.strip()
    return bool(body) and body.startswith("<")


def _dedupe(feeds: List[FeedSuggestion]) -> List[FeedSuggestion]:
    seen: set[str] = set()
    unique: List[FeedSuggestion] = []
    for feed in feeds:
        if feed.url not in seen:
            seen.add(feed.url)
            unique.append(feed)
    return unique


def _database_feeds(theme: str, locale: str) -> List[FeedSuggestion]:
    """Popular feeds from usage stats, then curated category feeds, capped at 15."""
    category = category_service.get_category_by_theme_with_fallback(theme, locale)
    if category is None:
        return []

    popular = [
        FeedSuggestion(
            url=usage.url,
            title=usage.title or usage.url,
            reasoning=f"Popular feed (used {usage.usage_count} times, {usage.success_rate:.0f}% success rate)",
        )
        for usage in feed_usage.get_popular_feeds(category.category_id, 5)
    ]
    try:
        curated = [
            FeedSuggestion(
                url=feed.url,
                title=feed.title,
                reasoning=feed.description or f"Feed from {category.display_name} category",
            )
            for feed in category_service.get_feeds_by_category(category.category_id)
        ]
    except Exception:
        logger.exception("Error fetching curated feeds for %s", category.category_id)
        curated = []
    return _dedupe(popular + curated)[:MAX_FEEDS]


def _mock_suggestions(theme: str) -> List[FeedSuggestion]:
    return [
        FeedSuggestion(
            url=feed.url,
            title=feed.title,
            reasoning=f"General news and information relevant to the theme: {theme}",
        )
        for feed in default_feed_suggestions("en")
    ]


def _validate_new_feeds(
    candidates: List[FeedSuggestion], client: Optional[httpx.Client]
) -> List[FeedSuggestion]:
    if not candidates:
        return []
    with ThreadPoolExecutor(max_workers=min(10, len(candidates))) as pool:
        results = list(pool.map(lambda s: validate_feed_url(s.url, client=client), candidates))
    valid = [
        s.model_copy(update={"url": re.sub(r"^http://", "https://", s.url, flags=re.IGNORECASE)})
        for s, ok in zip(candidates, results)
        if ok
    ]
    logger.info("Validated %s/%s suggested feeds", len(valid), len(candidates))
    return valid


def _repeat_defaults(locale: str) -> List[FeedSuggestion]:
    defaults = default_feed_suggestions(locale)
    repeated: List[FeedSuggestion] = []
    while len(repeated) < MAX_FEEDS:
        repeated.extend(defaults[: MAX_FEEDS - len(repeated)])
    return repeated


def suggest_feeds(
    theme: str,
    locale: str = "en",
    *,
    client: Optional[OpenAI] = None,
    http_client: Optional[httpx.Client] = None,
    rng: Optional[random.Random] = None,
) -> FeedSuggestionsResult:
    settings = get_settings()
    cache_key = f"{theme}:{locale}"
    use_cache = settings.is_local and settings.enable_cache
    if use_cache:
        with _cache_lock:
            cached = _cache.get(cache_key)
        if cached:
            return FeedSuggestionsResult(list(cached), f"{theme} Daily")

    if settings.use_mock_ai:
        feeds = _mock_suggestions(theme)
        if use_cache:
            with _cache_lock:
                _cache[cache_key] = feeds
        return FeedSuggestionsResult(feeds, f"{theme} Daily")

    database_feeds = _database_feeds(theme, locale)
    if len(database_feeds) >= FAST_PATH_MIN_FEEDS:
        logger.info("Fast path: %s database feeds for %r", len(database_feeds), theme)
        if use_cache:
            with _cache_lock:
                _cache[cache_key] = database_feeds
        return FeedSuggestionsResult(
            database_feeds[:MAX_FEEDS], generate_newspaper_name(theme, locale, rng)
        )

    try:
        raw = ai_client.call_model(
            build_suggestion_prompt(theme, locale),
            model=settings.editor_model,
            service=SERVICE,
            operation="suggest_feeds",
            client=client,
            max_output_tokens=5000,
        )
        result = parse_suggestions(raw, theme, locale)
    except AIServiceError as exc:
        log_ai_error(
            "Feed suggestion failed; falling back",
            service=SERVICE,
            model_id=settings.editor_model,
            error_type=exc.error_type,
            error=exc,
            context={"theme": theme, "locale": locale},
        )
        if database_feeds:
            return FeedSuggestionsResult(
                database_feeds[:MAX_FEEDS], generate_newspaper_name(theme, locale, rng)
            )
        return FeedSuggestionsResult(
            default_feed_suggestions(locale)[:MAX_FEEDS],
            generate_newspaper_name(theme, locale, rng),
        )

    unique = _dedupe(result.feeds)
    database_urls = {feed.url for feed in database_feeds}
    validated = [s for s in unique if s.url in database_urls]
    validated += _validate_new_feeds([s for s in unique if s.url not in database_urls], http_client)
    top_feeds = validated[:MAX_AI_FEEDS]

    if not top_feeds:
        name = generate_newspaper_name(theme, locale, rng)
        if database_feeds:
            return FeedSuggestionsResult(database_feeds[:MAX_FEEDS], name)
        return FeedSuggestionsResult(_repeat_defaults(locale), name)

    top_urls = {s.url for s in top_feeds}
    top_feeds = [f for f in database_feeds if f.url not in top_urls] + top_feeds

    if len(top_feeds) < MAX_FEEDS:
        extra = (rng or random).choice(default_feed_suggestions(locale))
        if extra.url not in {s.url for s in top_feeds}:
            top_feeds.append(extra)

    if use_cache:
        with _cache_lock:
            _cache[cache_key] = top_feeds
    return FeedSuggestionsResult(top_feeds, result.newspaper_name)
