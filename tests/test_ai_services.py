import random
from datetime import datetime, timezone

import pytest

from myrsspress import ai_client, article_filter, editorial, importance, summary
from myrsspress.ai_client import AIServiceError
from myrsspress.logging_config import AIErrorType
from myrsspress.models import Article


def _articles(count, **overrides):
    published = datetime(2025, 1, 15, tzinfo=timezone.utc)
    return [
        Article(
            title=overrides.get("title", f"Headline {i}"),
            description="Body text",
            link=f"https://example.com/{i}",
            pub_date=published,
            feed_source=overrides.get("feed_source", "https://user.example.com/rss"),
            image_url=overrides.get("image_url"),
        )
        for i in range(count)
    ]


# --- ai_client ----------------------------------------------------------------


def test_extract_json_object_from_fenced_text():
    raw = 'Sure!\n```json\n{"scores": [1, 2]}\n```'

    assert ai_client.extract_json_object(raw) == {"scores": [1, 2]}


@pytest.mark.parametrize("raw", ["", "no json here", "{not json}"])
def test_extract_json_object_rejects_bad_text(raw):
    with pytest.raises(AIServiceError) as excinfo:
        ai_client.extract_json_object(raw)
    assert excinfo.value.error_type is AIErrorType.PARSE_ERROR


def test_with_retries_sleeps_linearly_then_succeeds():
    attempts = []
    sleeps = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise RuntimeError("try again")
        return "ok"

    assert ai_client.with_retries(flaky, sleep=sleeps.append) == "ok"
    assert sleeps == [1.0, 2.0]


def test_with_retries_reraises_last_error():
    def broken():
        raise ValueError("always")

    with pytest.raises(ValueError, match="always"):
        ai_client.with_retries(broken, attempts=2, sleep=lambda _s: None)


def test_call_model_omits_temperature_for_gpt5(dummy_client):
    client = dummy_client("hello")

    ai_client.call_model("hi", model="gpt-5-mini", service="t", operation="op", client=client)
    ai_client.call_model("hi", model="gpt-4.1-nano", service="t", operation="op", client=client)

    first, second = client.responses.calls
    assert "temperature" not in first
    assert second["temperature"] == 0.3
    assert first["input"][-1] == {"role": "user", "content": "hi"}


def test_call_model_wraps_sdk_errors(dummy_client):
    client = dummy_client(RuntimeError("rate limited"))

    with pytest.raises(AIServiceError, match="rate limited"):
        ai_client.call_model("hi", model="m", service="t", operation="op", client=client)


def test_call_model_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")

    with pytest.raises(AIServiceError) as excinfo:
        ai_client.call_model("hi", model="m", service="t", operation="op")
    assert excinfo.value.error_type is AIErrorType.CONFIGURATION_ERROR


# --- summary ------------------------------------------------------------------


def test_normalize_summary_keeps_three_lines_and_caps_length():
    text = "\n".join(["x" * 50, "", "y" * 50, "z" * 50, "dropped line"])

    result = summary.normalize_summary(text)

    assert result.splitlines() == ["x" * 50, "y" * 50, "z" * 50]
    assert summary.normalize_summary("a" * 300) == "a" * 200
    assert summary.normalize_summary("too short") is None


@pytest.mark.parametrize(
    "languages,expected",
    [([], "en"), (["JP"], "ja"), (["EN", "JP"], "en"), (["EN"], "en")],
)
def test_summary_language(languages, expected):
    assert summary.determine_summary_language(languages) == expected


def test_generate_summary_uses_model_output(dummy_client):
    text = "Robots are getting smarter every week.\nChips keep shrinking.\nThe industry is watching closely for the next big move."
    client = dummy_client(text)

    result = summary.generate_summary(_articles(3), "Robots", ["EN"], client=client)

    assert result == text
    assert "Headline 0" in client.responses.calls[0]["input"][-1]["content"]


def test_generate_summary_with_retry_gives_up_after_three(dummy_client):
    client = dummy_client("short")
    sleeps = []

    result = summary.generate_summary_with_retry(
        _articles(3), "Robots", ["EN"], client=client, sleep=sleeps.append
    )

    assert result is None
    assert len(client.responses.calls) == 3
    assert sleeps == [1.0, 2.0]


def test_mock_summary_is_valid_in_both_languages(monkeypatch):
    monkeypatch.setenv("USE_MOCK_AI", "true")

    assert summary.generate_summary(_articles(2), "Robots", ["EN"])
    assert summary.generate_summary(_articles(2), "ロボット", ["JP"])


# --- importance ---------------------------------------------------------------


def test_parse_importance_clamps_and_fills_missing():
    raw = '{"scores": [120, -5, null, 42.4]}'

    assert importance.parse_importance_response(raw, 5) == [100, 0, 50, 42, 50]


def test_calculate_importance_penalizes_default_feeds(dummy_client):
    articles = _articles(2)
    articles[1] = articles[1].model_copy(update={"feed_source": "https://default.example.com"})
    client = dummy_client('{"scores": [80, 80]}')

    scored = importance.calculate_importance(
        articles, "Robots", ["https://default.example.com"], client=client, rng=random.Random(0)
    )

    assert [a.importance for a in scored] == [80, 50]


def test_calculate_importance_falls_back_on_bad_output(dummy_client):
    client = dummy_client('{"ranking": "first"}')
    articles = _articles(3, image_url="https://example.com/a.png")

    scored = importance.calculate_importance(articles, "Robots", client=client, rng=random.Random(1))

    assert all(0 <= a.importance <= 100 for a in scored)
    # Title length and image dominate the heuristic score.
    assert all(a.importance >= 36 for a in scored)


def test_select_top_articles_orders_by_importance():
    articles = [a.model_copy(update={"importance": s}) for a, s in zip(_articles(3), [10, 90, 50])]

    top = importance.select_top_articles(articles, 2)

    assert [a.importance for a in top] == [90, 50]
    assert len(importance.select_top_articles(articles, 10)) == 3


# --- article filter -----------------------------------------------------------


def test_filter_skips_small_batches(dummy_client):
    client = dummy_client('{"scores": []}')
    articles = _articles(7)

    assert article_filter.filter_articles_by_theme(articles, "Robots", client=client) == articles
    assert client.responses.calls == []


def test_filter_keeps_scores_above_threshold(dummy_client):
    scores = [0.9] * 9 + [0.1]
    client = dummy_client('{"scores": %s}' % scores)
    articles = _articles(10)

    filtered = article_filter.filter_articles_by_theme(articles, "Robots", client=client)

    assert len(filtered) == 9
    assert articles[9] not in filtered


def test_filter_returns_all_when_too_few_survive(dummy_client):
    client = dummy_client('{"relevantIndices": [0, 1, 1, 42]}')
    articles = _articles(10)

    assert article_filter.filter_articles_by_theme(articles, "Robots", client=client) == articles


def test_relevant_indices_accepts_legacy_shape():
    raw = '{"relevantIndices": [3, 1, 3, 99]}'

    assert article_filter.relevant_indices(raw, 5, 0.3) == [3, 1]


# --- editorial ----------------------------------------------------------------


def test_parse_labelled_editorial():
    parsed = editorial.parse_editorial_response(
        "Title: The River\nColumn: Heraclitus said...\nMore thoughts."
    )

    assert parsed.title == "The River"
    assert parsed.column == "Heraclitus said...\nMore thoughts."


def test_parse_japanese_editorial():
    parsed = editorial.parse_editorial_response("タイトル：変化の川\nコラム：古来より人は")

    assert parsed.title == "変化の川"
    assert parsed.column == "古来より人は"


def test_parse_unlabelled_editorial_uses_first_line():
    parsed = editorial.parse_editorial_response("A Quiet Revolution\n\nMachines hum along.")

    assert parsed.title == "A Quiet Revolution"
    assert parsed.column == "Machines hum along."
    assert editorial.parse_editorial_response("just one line") is None


def test_generate_editorial_returns_none_on_failure(dummy_client):
    client = dummy_client(RuntimeError("down"))

    assert editorial.generate_editorial_column(_articles(3), "Robots", client=client) is None
    assert editorial.generate_editorial_column([], "Robots") is None
