"""Helpers to load and validate the JSON schemas for model responses."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from .ai_client import AIServiceError
from .logging_config import AIErrorType

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"


@lru_cache(maxsize=None)
def load_schema(name: str) -> Dict[str, Any]:
    """Load and cache a schema from the bundled schemas directory."""
    return json.loads((SCHEMA_DIR / f"{name}.json").read_text(encoding="utf-8"))


def format_errors(errors: Iterable[ValidationError]) -> str:
    """Turn jsonschema errors into a concise human-readable string."""
    parts = []
    for err in errors:
        location = ".".join(str(piece) for piece in err.absolute_path) or "<root>"
        parts.append(f"{location}: {err.message}")
    return "; ".join(parts)


def validate_ai_payload(payload: Dict[str, Any], name: str) -> Dict[str, Any]:
    """
    Validate a parsed model response against the named schema.

    Raises AIServiceError (VALIDATION_ERROR) so callers fall back the same way
    they do for API and parse failures.
    """
    validator = Draft202012Validator(load_schema(name))
    errors = list(validator.iter_errors(payload))
    if errors:
        raise AIServiceError(
            f"{name} response failed validation: {format_errors(errors)}",
            AIErrorType.VALIDATION_ERROR,
        )
    return payload
