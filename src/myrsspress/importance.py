"""AI importance scoring with a heuristic fallback."""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from openai import OpenAI

from . import ai_client
from .ai_client import AIServiceError
from .config import get_settings
from .logging_config import log_ai_error
from .models import Article
from .schema import validate_ai_payload

logger = logging.getLogger(__name__)

SERVICE = "importance"
DEFAULT_FEED_PENALTY = 30
MISSING_SCORE = 50

_PERSPECTIVES = {
    "en": ["with a fresh eye", "from a different angle", "from a unique standpoint"],
    "ja": ["新鮮な視点で", "異なる角度から", "ユニークな観点で"],
}


def _clamp(value: float) -> int:
    return int(max(0, min(100, round(value))))


def fallback_score(article: Article, rng: Optional[random.Random] = None) -> int:
    """Title length (up to 60) + 40 for an image + random jitter of +/-10."""
    rng = rng or random
    score = min(len(article.title) * 0.6, 60)
    if article.image_url:
        score += 40
    score += rng.uniform(-10, 10)
    return _clamp(score)


def build_importance_prompt(
    articles: List[Article], theme: str, locale: str = "en", rng: Optional[random.Random] = None
) -> str:
    rng = rng or random
    perspective = rng.choice(_PERSPECTIVES["ja" if locale == "ja" else "en"])
    generated_at = datetime.now(timezone.utc).isoformat()
    if locale == "ja":
        lines = "\n".join(
            f"{i + 1}. タイトル: {a.title}, 説明: {a.description[:200]}, 画像: {'あり' if a.image_url else 'なし'}"
            for i, a in enumerate(articles)
        )
        return (
            f"ユーザーは「{theme}」に興味があります。\n"
            f"{perspective}、以下の記事リストからユーザーにとっての重要度を0-100のスコアで評価してください。\n\n"
            "評価基準（合計100点）：\n"
            f"1. テーマ「{theme}」との関連性: 0-60点\n"
            "2. 画像の有無: +20点（画像ありの場合のみ加算）\n"
            "3. タイトルの魅力度と新鮮さ: 0-20点\n\n"
            f"記事リスト：\n{lines}\n\n"
            f"生成時刻: {generated_at}\n\n"
            "各記事の重要度スコア（0-100）をJSON形式で返してください：\n"
            '{"scores": [85, 70, 60, ...]}'
        )
    lines = "\n".join(
        f"{i + 1}. Title: {a.title}, Description: {a.description[:200]}, Image: {'yes' if a.image_url else 'no'}"
        for i, a in enumerate(articles)
    )
    return (
        f'The reader is interested in "{theme}".\n'
        f"Looking {perspective}, rate how important each article below is to them on a 0-100 scale.\n\n"
        "Scoring (100 points total):\n"
        f'1. Relevance to "{theme}": 0-60 points\n'
        "2. Has an image: +20 points\n"
        "3. Headline appeal and freshness: 0-20 points\n\n"
        f"Articles:\n{lines}\n\n"
        f"Generated at: {generated_at}\n\n"
        "Return one score per article, in order, as JSON:\n"
        '{"scores": [85, 70, 60, ...]}'
    )


def parse_importance_response(raw: str, count: int) -> List[int]:
    """Scores clamped to 0-100; missing or non-numeric entries become 50."""
    payload = validate_ai_payload(ai_client.extract_json_object(raw), "importance_scores")
    scores = payload["scores"]
    parsed: List[int] = []
    for index in range(count):
        value = scores[index] if index < len(scores) else None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            parsed.append(_clamp(value))
        else:
            parsed.append(MISSING_SCORE)
    return parsed


def _apply_penalty(article: Article, score: int, default_feed_urls: set[str]) -> int:
    if article.feed_source in default_feed_urls or article.is_default_feed:
        return max(0, score - DEFAULT_FEED_PENALTY)
    return score


def calculate_importance(
    articles: List[Article],
    theme: str,
    default_feed_urls: Optional[Iterable[str]] = None,
    *,
    locale: str = "en",
    client: Optional[OpenAI] = None,
    rng: Optional[random.Random] = None,
) -> List[Article]:
    """
    Attach an importance score to every article. Articles from default feeds
    lose DEFAULT_FEED_PENALTY points so user-selected feeds lead the page.
    """
    if not articles:
        return []
    defaults = set(default_feed_urls or ())
    settings = get_settings()

    scores: List[int]
    if settings.use_mock_ai:
        scores = [fallback_score(a, rng) for a in articles]
    else:
        try:
            raw = ai_client.call_model(
                build_importance_prompt(articles, theme, locale, rng),
                model=settings.scoring_model,
                service=SERVICE,
                operation="calculate_importance",
                client=client,
                max_output_tokens=1024,
            )
            scores = parse_importance_response(raw, len(articles))
        except AIServiceError as exc:
            log_ai_error(
                "Importance scoring failed; using fallback scores",
                service=SERVICE,
                model_id=settings.scoring_model,
                error_type=exc.error_type,
                error=exc,
                context={"articleCount": len(articles), "theme": theme},
            )
            scores = [fallback_score(a, rng) for a in articles]

    return [
        a.model_copy(update={"importance": _apply_penalty(a, score, defaults)})
        for a, score in zip(articles, scores)
    ]


def select_top_articles(
    articles: List[Article], count: int
) -> List[Article]:
    ranked = sorted(articles, key=lambda a: a.importance or 0, reverse=True)
    return ranked[: min(count, len(ranked))]
