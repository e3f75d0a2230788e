"""Three-line newspaper summaries."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from openai import OpenAI

from . import ai_client
from .ai_client import AIServiceError
from .config import DEFAULT_LOCALE, LANGUAGE_EN, LANGUAGE_JP, get_settings
from .logging_config import AIErrorType, log_ai_error
from .models import Article

logger = logging.getLogger(__name__)

SERVICE = "summary"
MIN_SUMMARY_CHARS = 100
MAX_SUMMARY_CHARS = 200
MAX_SUMMARY_LINES = 3
MAX_TITLES = 10


def determine_summary_language(languages: List[str]) -> str:
    """Japanese only for all-Japanese newspapers; mixed or unknown get English."""
    if not languages:
        return DEFAULT_LOCALE
    if LANGUAGE_JP in languages and LANGUAGE_EN not in languages:
        return "ja"
    return "en"


def normalize_summary(text: Optional[str]) -> Optional[str]:
    """
    Keep at most three non-empty lines and cap at 200 characters.
    Anything shorter than 100 characters afterwards is rejected (None).
    """
    if not text:
        return None
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    summary = "\n".join(lines[:MAX_SUMMARY_LINES])
    if len(summary) > MAX_SUMMARY_CHARS:
        summary = summary[:MAX_SUMMARY_CHARS].rstrip()
    if len(summary) < MIN_SUMMARY_CHARS:
        return None
    return summary


def mock_summary(theme: str, language: str) -> str:
    if language == "ja":
        return (
            f"{theme}に関する最新ニュースと重要なトピックをお届けします。業界の最新動向や注目の話題を詳しく解説しています。\n"
            "今後の展開や将来の見通しについても分析を加えています。専門家の意見や市場の反応も紹介しています。\n"
            "読者の皆様に役立つ情報を分かりやすくまとめました。"
        )
    return (
        f"Latest news about {theme} with detailed analysis of the stories that matter.\n"
        "Key developments and trending topics are covered in depth.\n"
        "Stay informed with complete coverage."
    )


def build_summary_prompt(articles: List[Article], theme: str, language: str) -> str:
    titles = "\n".join(f"{i + 1}. {a.title}" for i, a in enumerate(articles[:MAX_TITLES]))
    if language == "ja":
        return (
            f"以下は「{theme}」をテーマにした新聞の記事タイトルです。"
            "この新聞の内容を3行（100-200文字）で要約してください。\n\n"
            f"記事タイトル:\n{titles}\n\n要約（3行、100-200文字）:"
        )
    return (
        f'The following are article titles from a newspaper themed "{theme}". '
        "Please summarize the content of this newspaper in 3 lines (100-200 characters).\n\n"
        f"Article titles:\n{titles}\n\nSummary (3 lines, 100-200 characters):"
    )


def generate_summary(
    articles: List[Article],
    theme: str,
    languages: List[str],
    *,
    client: Optional[OpenAI] = None,
) -> Optional[str]:
    """Return a 100-200 character summary of at most three lines, or None."""
    language = determine_summary_language(languages)
    settings = get_settings()
    if settings.use_mock_ai:
        return normalize_summary(mock_summary(theme, language))

    try:
        raw = ai_client.call_model(
            build_summary_prompt(articles, theme, language),
            model=settings.scoring_model,
            service=SERVICE,
            operation="generate_summary",
            client=client,
            max_output_tokens=300,
        )
    except AIServiceError:
        # call_model already logged the failure.
        return None

    summary = normalize_summary(raw)
    if summary is None:
        log_ai_error(
            "Summary did not meet length constraints",
            service=SERVICE,
            model_id=settings.scoring_model,
            error_type=AIErrorType.VALIDATION_ERROR,
            context={"theme": theme, "languages": languages, "length": len(raw.strip())},
        )
    return summary


def generate_summary_with_retry(
    articles: List[Article],
    theme: str,
    languages: List[str],
    max_retries: int = 3,
    *,
    client: Optional[OpenAI] = None,
    delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[str]:
    """Retry empty or invalid summaries with a linearly growing pause."""
    for attempt in range(1, max_retries + 1):
        summary = generate_summary(articles, theme, languages, client=client)
        if summary:
            return summary
        if attempt < max_retries:
            logger.info("Summary attempt %s/%s failed; retrying", attempt, max_retries)
            sleep(delay * attempt)
    return None
