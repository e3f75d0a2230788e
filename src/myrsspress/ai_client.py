"""Thin wrapper around the OpenAI Responses API shared by the AI services.

Every call goes through `call_model`, which records timing and token usage and
turns any SDK failure into `AIServiceError`. Callers catch that error and fall
back to their non-AI result.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable, Dict, Optional, TypeVar

from openai import OpenAI

from .config import get_settings
from .logging_config import AIErrorType, log_ai_error, log_ai_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class AIServiceError(RuntimeError):
    """Raised when a model call or its response cannot be used."""

    def __init__(self, message: str, error_type: AIErrorType = AIErrorType.API_ERROR):
        super().__init__(message)
        self.error_type = error_type


def build_client(api_key: Optional[str] = None) -> OpenAI:
    """Create an OpenAI client; separated for easier testing."""
    return OpenAI(api_key=api_key)


def _require_api_key(settings) -> str:
    if not settings.openai_api_key:
        raise AIServiceError(
            "OPENAI_API_KEY is required. Set it in the environment or .env file.",
            AIErrorType.CONFIGURATION_ERROR,
        )
    return settings.openai_api_key


def _response_text_or_raise(response: object, *, step: str) -> str:
    """Extract response text or raise a clear error when output is missing."""
    text = getattr(response, "output_text", None)
    if isinstance(text, str) and text.strip():
        return text

    status = getattr(response, "status", None)
    if status == "incomplete":
        details = getattr(response, "incomplete_details", None)
        reason = getattr(details, "reason", None) if details else None
        hint = ""
        if reason == "max_output_tokens":
            hint = " Increase MAX_TOKENS or shorten the prompt."
        raise RuntimeError(f"{step} response incomplete (reason={reason}).{hint}")

    err = getattr(response, "error", None)
    if err:
        raise RuntimeError(f"{step} response error: {err}")

    raise RuntimeError(f"{step} response missing output text.")


def _token_usage(response: object) -> Optional[Dict[str, int]]:
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    input_tokens = getattr(usage, "input_tokens", None)
    output_tokens = getattr(usage, "output_tokens", None)
    if input_tokens is None and output_tokens is None:
        return None
    return {"inputTokens": input_tokens or 0, "outputTokens": output_tokens or 0}


def call_model(
    prompt: str,
    *,
    model: str,
    service: str,
    operation: str,
    system: Optional[str] = None,
    client: Optional[OpenAI] = None,
    max_output_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
) -> str:
    """Send one prompt and return the model's text output."""
    settings = get_settings()
    if client is None:
        try:
            client = build_client(_require_api_key(settings))
        except AIServiceError as exc:
            log_ai_error(
                "OpenAI client is not configured",
                service=service,
                model_id=model,
                error_type=exc.error_type,
                error=exc,
            )
            raise

    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    request_kwargs: Dict[str, Any] = {"model": model, "input": messages}
    tokens = max_output_tokens or settings.max_tokens
    if tokens and tokens > 0:
        request_kwargs["max_output_tokens"] = tokens
    # gpt-5 family rejects the temperature parameter; omit it for compatibility.
    if not model.startswith("gpt-5"):
        request_kwargs["temperature"] = (
            settings.temperature if temperature is None else temperature
        )

    started = time.perf_counter()
    try:
        response = client.responses.create(**request_kwargs)
        text = _response_text_or_raise(response, step=f"{service}.{operation}")
    except Exception as exc:
        elapsed_ms = (time.perf_counter() - started) * 1000
        log_ai_metrics(
            service=service,
            operation=operation,
            model_id=model,
            response_time_ms=elapsed_ms,
            success=False,
            error_type=AIErrorType.API_ERROR,
        )
        log_ai_error(
            f"{operation} call failed",
            service=service,
            model_id=model,
            error_type=AIErrorType.API_ERROR,
            error=exc,
        )
        raise AIServiceError(f"{service}.{operation} failed: {exc}") from exc

    log_ai_metrics(
        service=service,
        operation=operation,
        model_id=model,
        response_time_ms=(time.perf_counter() - started) * 1000,
        success=True,
        tokens=_token_usage(response),
    )
    return text


def extract_json_object(raw: str) -> Dict[str, Any]:
    """Pull the outermost JSON object out of free-form model text."""
    if not raw or not raw.strip():
        raise AIServiceError("Empty AI response", AIErrorType.PARSE_ERROR)
    match = _JSON_OBJECT.search(raw)
    if not match:
        raise AIServiceError("No JSON object found in AI response", AIErrorType.PARSE_ERROR)
    try:
        obj = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise AIServiceError(f"Invalid JSON in AI response: {exc}", AIErrorType.PARSE_ERROR) from exc
    if not isinstance(obj, dict):
        raise AIServiceError("AI response JSON is not an object", AIErrorType.PARSE_ERROR)
    return obj


def with_retries(
    fn: Callable[[], T],
    *,
    attempts: int = 3,
    delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call `fn` up to `attempts` times, sleeping delay * attempt between tries."""
    last_exc: BaseException | None = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            last_exc = exc
            if attempt >= attempts:
                break
            wait = delay * attempt
            logger.warning(
                "Attempt %s/%s failed: %s; retrying in %.1fs", attempt, attempts, exc, wait
            )
            sleep(wait)
    assert last_exc is not None
    raise last_exc
