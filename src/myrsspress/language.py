"""Character-based language detection for articles."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Mapping

from .config import LANGUAGE_EN, LANGUAGE_JP
from .models import Article

# Hiragana, Katakana and CJK unified ideographs.
_JAPANESE_CHARS = re.compile(r"[぀-ゟ゠-ヿ一-龯]")


def detect_language(text: str) -> str:
    """Return JP when more than 10% of characters are Japanese, otherwise EN."""
    if not text:
        return LANGUAGE_EN
    japanese = len(_JAPANESE_CHARS.findall(text))
    return LANGUAGE_JP if japanese > len(text) * 0.1 else LANGUAGE_EN


def normalize_feed_language(code: str) -> str:
    """'ja', 'ja-JP' -> JP; any other declared language -> EN."""
    return LANGUAGE_JP if code.lower().startswith("ja") else LANGUAGE_EN


def article_language(article: Article, feed_languages: Mapping[str, str]) -> str:
    declared = feed_languages.get(article.feed_source)
    if declared:
        return normalize_feed_language(declared)
    return detect_language(f"{article.title} {(article.description or '')[:50]}")


def detect_languages(
    articles: Iterable[Article], feed_languages: Mapping[str, str] | None = None
) -> List[str]:
    """Unique languages across articles, in order of first appearance."""
    feed_languages = feed_languages or {}
    found: Dict[str, None] = {}
    for article in articles:
        found.setdefault(article_language(article, feed_languages), None)
    return list(found)


def tag_languages(
    articles: Iterable[Article], feed_languages: Mapping[str, str] | None = None
) -> List[Article]:
    feed_languages = feed_languages or {}
    return [
        a.model_copy(update={"language": article_language(a, feed_languages)})
        for a in articles
    ]
