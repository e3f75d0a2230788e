"""Drop articles that are off-theme, without ever shrinking a newspaper below 8 stories."""

from __future__ import annotations

import logging
from typing import List, Optional

from openai import OpenAI

from . import ai_client
from .ai_client import AIServiceError
from .config import get_settings
from .logging_config import log_ai_error
from .models import Article
from .schema import validate_ai_payload

logger = logging.getLogger(__name__)

SERVICE = "article_filter"
MIN_FILTERED_ARTICLES = 8
DEFAULT_THRESHOLD = 0.3


def build_filter_prompt(articles: List[Article], theme: str, locale: str = "en") -> str:
    article_list = "\n".join(f"{i}. {a.title}" for i, a in enumerate(articles))
    if locale == "ja":
        return (
            f"テーマ: {theme}\n\n"
            "以下の各記事について、テーマとの関連度を0から1のスコアで評価してください。\n"
            "記事の順番どおりに、記事と同じ数のスコアを返してください。\n\n"
            f"記事リスト:\n{article_list}\n\n"
            "JSON形式で返してください（説明不要）:\n"
            '{"scores": [0.9, 0.2, 0.7, ...]}'
        )
    return (
        f"Theme: {theme}\n\n"
        "Rate how relevant each article below is to the theme on a 0 to 1 scale.\n"
        "Return exactly one score per article, in the same order.\n\n"
        f"Article list:\n{article_list}\n\n"
        "Return JSON only (no explanation):\n"
        '{"scores": [0.9, 0.2, 0.7, ...]}'
    )


def relevant_indices(raw: str, count: int, threshold: float) -> List[int]:
    """
    Read either response shape: per-article `scores` (kept when >= threshold)
    or a legacy `relevantIndices` list.
    """
    payload = validate_ai_payload(ai_client.extract_json_object(raw), "relevance")
    scores = payload.get("scores")
    if scores is not None:
        return [
            i
            for i, score in enumerate(scores[:count])
            if isinstance(score, (int, float)) and score >= threshold
        ]
    seen: dict[int, None] = {}
    for index in payload.get("relevantIndices") or []:
        if 0 <= index < count:
            seen.setdefault(index, None)
    return list(seen)


def filter_articles_by_theme(
    articles: List[Article],
    theme: str,
    locale: str = "en",
    min_threshold: float = DEFAULT_THRESHOLD,
    *,
    client: Optional[OpenAI] = None,
) -> List[Article]:
    """Return the theme-relevant subset, or every article when filtering would leave too few."""
    if len(articles) < MIN_FILTERED_ARTICLES:
        logger.info("Too few articles (%s), skipping filter", len(articles))
        return articles

    settings = get_settings()
    if settings.use_mock_ai:
        return articles

    try:
        raw = ai_client.call_model(
            build_filter_prompt(articles, theme, locale),
            model=settings.scoring_model,
            service=SERVICE,
            operation="filter_articles_by_theme",
            client=client,
            max_output_tokens=1000,
        )
        indices = relevant_indices(raw, len(articles), min_threshold)
    except AIServiceError as exc:
        log_ai_error(
            "Article filtering failed; returning all articles",
            service=SERVICE,
            model_id=settings.scoring_model,
            error_type=exc.error_type,
            error=exc,
            context={"articleCount": len(articles), "theme": theme},
        )
        return articles

    filtered = [articles[i] for i in indices]
    logger.info("Filtered %s/%s articles as relevant", len(filtered), len(articles))
    if len(filtered) < MIN_FILTERED_ARTICLES:
        return articles
    return filtered
