"""Editorial column written from the day's headlines."""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from openai import OpenAI

from . import ai_client
from .ai_client import AIServiceError
from .config import get_settings
from .logging_config import AIErrorType, log_ai_error
from .models import Article, EditorialColumn

logger = logging.getLogger(__name__)

SERVICE = "editorial"
MAX_ARTICLES = 8

_TITLE = re.compile(r"(?:Title|タイトル)[:：]\s*(.+?)(?:\n|$)", re.IGNORECASE)
_COLUMN = re.compile(r"(?:Column|コラム)[:：]\s*(.+)", re.IGNORECASE | re.DOTALL)
_TITLE_PREFIX = re.compile(r"^(?:Title|タイトル)[:：]\s*", re.IGNORECASE)
_COLUMN_PREFIX = re.compile(r"^(?:Column|コラム)[:：]\s*", re.IGNORECASE)


def build_editorial_prompt(articles: List[Article], theme: str, locale: str) -> str:
    headlines = "\n".join(f"{i + 1}. {a.title}" for i, a in enumerate(articles[:MAX_ARTICLES]))
    if locale == "ja":
        return (
            "あなたは伝統的な新聞コラムを書く思慮深いコラムニストです。\n\n"
            "以下の記事をもとに、簡潔なコラム（300〜400文字程度）を書いてください：\n"
            "1. 今日の記事のテーマを織り交ぜる\n"
            "2. 関連する歴史的逸話や哲学的な引用を含める\n"
            "3. ニュースを、より広い人間のテーマに結びつける\n"
            "4. 思慮深く、内省的なトーンを保つ\n"
            "5. 印象的な洞察で締めくくる\n\n"
            f"テーマ: {theme}\n\n記事:\n{headlines}\n\n"
            "形式:\nタイトル: [詩的または示唆に富むタイトル]\nコラム: [300〜400文字程度のコラム内容]"
        )
    return (
        "You are a thoughtful editorial columnist writing in the style of traditional newspaper editorials.\n\n"
        "Write a brief editorial column (150-200 words) that:\n"
        "1. Weaves together the themes from today's articles\n"
        "2. Includes a relevant historical anecdote or philosophical reference\n"
        "3. Connects the news to broader human themes\n"
        "4. Maintains a thoughtful, reflective tone\n"
        "5. Ends with a memorable insight\n\n"
        f"Theme: {theme}\n\nArticles:\n{headlines}\n\n"
        "Format:\nTitle: [A poetic or thought-provoking title]\nColumn: [150-200 words of editorial content]"
    )


def parse_editorial_response(text: str) -> Optional[EditorialColumn]:
    """Read labelled Title/Column output; otherwise first line is the title."""
    text = (text or "").strip()
    if not text:
        return None
    title_match = _TITLE.search(text)
    column_match = _COLUMN.search(text)
    if title_match and column_match:
        return EditorialColumn(
            title=title_match.group(1).strip(), column=column_match.group(1).strip()
        )

    lines = text.splitlines()
    if len(lines) >= 2:
        title = _TITLE_PREFIX.sub("", lines[0]).strip()
        column = _COLUMN_PREFIX.sub("", "\n".join(lines[1:]).strip()).strip()
        if title and column:
            return EditorialColumn(title=title, column=column)
    return None


def mock_editorial(theme: str, locale: str) -> EditorialColumn:
    if locale == "ja":
        return EditorialColumn(
            title=f"{theme}の行方",
            column=f"古来、人は変化の只中で立ち止まり、考えることで道を見出してきた。今日の{theme}をめぐる記事もまた、私たちに問いを投げかけている。",
        )
    return EditorialColumn(
        title=f"Reading the Signs of {theme}",
        column=(
            f"Heraclitus reminded us that no one steps in the same river twice. "
            f"Today's stories on {theme} carry the same lesson: change is the only constant, "
            "and attention is how we keep pace with it."
        ),
    )


def generate_editorial_column(
    articles: List[Article],
    theme: str,
    locale: str = "en",
    *,
    client: Optional[OpenAI] = None,
) -> Optional[EditorialColumn]:
    if not articles:
        return None
    settings = get_settings()
    if settings.use_mock_ai:
        return mock_editorial(theme, locale)

    try:
        raw = ai_client.call_model(
            build_editorial_prompt(articles, theme, locale),
            model=settings.editor_model,
            service=SERVICE,
            operation="generate_editorial_column",
            client=client,
            max_output_tokens=800,
        )
    except AIServiceError:
        return None

    column = parse_editorial_response(raw)
    if column is None:
        log_ai_error(
            "Editorial column response could not be parsed",
            service=SERVICE,
            model_id=settings.editor_model,
            error_type=AIErrorType.PARSE_ERROR,
            context={"theme": theme, "locale": locale},
        )
    return column
