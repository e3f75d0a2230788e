"""DynamoDB single-table access shared by every repository module."""

from __future__ import annotations

import json
import logging
import time
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable, Dict, Iterator

import boto3

from .config import get_settings

logger = logging.getLogger(__name__)

# DynamoDB BatchWriteItem accepts at most 25 requests per call.
BATCH_WRITE_LIMIT = 25
BATCH_WRITE_ATTEMPTS = 5
BATCH_RETRY_DELAY_SECONDS = 0.2


class UnprocessedItemsError(RuntimeError):
    """BatchWriteItem still returned unprocessed keys after every retry."""


@lru_cache(maxsize=1)
def _resource():
    settings = get_settings()
    kwargs: Dict[str, Any] = {"region_name": settings.aws_region}
    if settings.dynamodb_endpoint:
        kwargs["endpoint_url"] = settings.dynamodb_endpoint
    return boto3.resource("dynamodb", **kwargs)


def get_table():
    """Return the boto3 Table for the configured single table."""
    return _resource().Table(get_settings().dynamodb_table)


def to_item(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a JSON-like dict into DynamoDB-safe values (floats become Decimal)."""
    return json.loads(json.dumps(data, default=str), parse_float=Decimal)


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def from_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a DynamoDB item into plain Python values."""
    return _plain(item)


def query_all(table, **kwargs: Any) -> Iterator[Dict[str, Any]]:
    """Yield every item for a query, following LastEvaluatedKey pagination."""
    while True:
        response = table.query(**kwargs)
        for item in response.get("Items", []):
            yield from_item(item)
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return
        kwargs["ExclusiveStartKey"] = last_key


def batch_delete(
    table,
    keys: list[Dict[str, Any]],
    *,
    attempts: int = BATCH_WRITE_ATTEMPTS,
    delay: float = BATCH_RETRY_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Delete keys in BatchWriteItem calls of at most 25 requests each.

    Unprocessed keys are resent up to `attempts` times per chunk, sleeping
    delay * attempt between tries.
    """
    client = table.meta.client
    deleted = 0
    for start in range(0, len(keys), BATCH_WRITE_LIMIT):
        chunk = keys[start:start + BATCH_WRITE_LIMIT]
        request_items = {
            table.name: [{"DeleteRequest": {"Key": key}} for key in chunk]
        }
        for attempt in range(1, attempts + 1):
            response = client.batch_write_item(RequestItems=request_items)
            request_items = response.get("UnprocessedItems") or {}
            if not request_items:
                break
            if attempt >= attempts:
                pending = sum(len(requests) for requests in request_items.values())
                raise UnprocessedItemsError(
                    f"{pending} deletes still unprocessed after {attempts} attempts"
                )
            wait = delay * attempt
            logger.warning(
                "Batch delete attempt %s/%s left unprocessed keys; retrying in %.1fs",
                attempt,
                attempts,
                wait,
            )
            sleep(wait)
        deleted += len(chunk)
    return deleted
