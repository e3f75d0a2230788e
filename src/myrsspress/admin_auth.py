"""X-API-Key check for the admin routes, backed by AWS Secrets Manager."""

from __future__ import annotations

import hmac
import json
import logging
import threading
import time
from typing import Optional

import boto3
from fastapi import Header, HTTPException, status

from .config import get_settings

logger = logging.getLogger(__name__)

SECRET_CACHE_TTL_SECONDS = 5 * 60

_cached_key: Optional[str] = None
_cached_until = 0.0
_cache_lock = threading.Lock()


class AdminAuthError(RuntimeError):
    """The expected admin key could not be loaded."""


def _fetch_secret(secret_name: str, region: str) -> str:
    client = boto3.client("secretsmanager", region_name=region)
    response = client.get_secret_value(SecretId=secret_name)
    secret = response.get("SecretString")
    if not secret:
        raise AdminAuthError(f"Secret {secret_name} has no string value")
    api_key = json.loads(secret).get("apiKey")
    if not api_key:
        raise AdminAuthError(f"Secret {secret_name} has no apiKey field")
    return api_key


def get_admin_api_key() -> str:
    """Admin key from ADMIN_API_KEY, or from Secrets Manager cached for five minutes."""
    global _cached_key, _cached_until
    settings = get_settings()
    if settings.admin_api_key:
        return settings.admin_api_key

    with _cache_lock:
        if _cached_key and time.monotonic() < _cached_until:
            return _cached_key
        try:
            _cached_key = _fetch_secret(
                settings.admin_api_key_secret_name, settings.aws_region
            )
        except AdminAuthError:
            raise
        except Exception as exc:
            raise AdminAuthError(f"Failed to read admin key secret: {exc}") from exc
        _cached_until = time.monotonic() + SECRET_CACHE_TTL_SECONDS
        return _cached_key


def clear_secret_cache() -> None:
    global _cached_key, _cached_until
    with _cache_lock:
        _cached_key = None
        _cached_until = 0.0


def require_admin_key(x_api_key: Optional[str] = Header(None)) -> None:
    """FastAPI dependency rejecting requests without the admin key."""
    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "UNAUTHORIZED", "message": "Missing X-API-Key header"},
        )
    try:
        expected = get_admin_api_key()
    except AdminAuthError:
        logger.exception("Failed to load admin API key")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "AUTHENTICATION_ERROR",
                "message": "Failed to verify API key",
            },
        )
    if not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        logger.warning("Rejected admin request with invalid API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "FORBIDDEN", "message": "Invalid API key"},
        )
