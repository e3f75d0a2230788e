import pytest

from myrsspress import schema
from myrsspress.ai_client import AIServiceError
from myrsspress.logging_config import AIErrorType


@pytest.mark.parametrize("name", ["feed_suggestions", "importance_scores", "relevance"])
def test_loads_bundled_schemas(name):
    loaded = schema.load_schema(name)
    assert loaded["type"] == "object"
    assert "properties" in loaded


def test_validate_accepts_minimal_suggestion_payload():
    payload = {"feeds": [{"url": "https://example.com/feed"}]}

    assert schema.validate_ai_payload(payload, "feed_suggestions") == payload


def test_validate_rejects_missing_required_field():
    with pytest.raises(AIServiceError) as excinfo:
        schema.validate_ai_payload({"newspaperName": "X"}, "feed_suggestions")
    assert "feeds" in str(excinfo.value)
    assert excinfo.value.error_type is AIErrorType.VALIDATION_ERROR


def test_relevance_accepts_either_shape():
    assert schema.validate_ai_payload({"scores": [0.5, None]}, "relevance")
    assert schema.validate_ai_payload({"relevantIndices": [0, 2]}, "relevance")
    with pytest.raises(AIServiceError):
        schema.validate_ai_payload({"relevantIndices": ["a"]}, "relevance")
