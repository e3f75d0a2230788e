"""Scheduled deletion of per-date newspapers past the retention window."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from . import storage
from .dates import cutoff_date
from .newspapers import HISTORICAL_PARTITION

logger = logging.getLogger(__name__)


def cleanup_old_newspapers(table=None, now: Optional[datetime] = None) -> int:
    """Delete every per-date newspaper older than the cutoff and return the count."""
    table = table if table is not None else storage.get_table()
    cutoff = cutoff_date(now)
    logger.info("Deleting newspapers dated before %s", cutoff)

    keys = [
        {"PK": item["PK"], "SK": item["SK"]}
        for item in storage.query_all(
            table,
            IndexName="GSI1",
            KeyConditionExpression="GSI1PK = :pk AND GSI1SK < :cutoff",
            ExpressionAttributeValues={
                ":pk": HISTORICAL_PARTITION,
                ":cutoff": f"DATE#{cutoff}",
            },
            ProjectionExpression="PK, SK",
        )
    ]
    if not keys:
        logger.info("No old newspapers to delete")
        return 0

    deleted = storage.batch_delete(table, keys)
    logger.info("Deleted %s old newspapers", deleted)
    return deleted


def handler(event: Any = None, context: Any = None) -> Dict[str, Any]:
    """Entry point for a scheduled invocation."""
    try:
        deleted = cleanup_old_newspapers()
    except Exception as exc:
        logger.exception("Cleanup failed")
        return {
            "statusCode": 500,
            "body": {"message": "Cleanup failed", "error": str(exc)},
        }
    return {
        "statusCode": 200,
        "body": {"message": "Cleanup successful", "deletedCount": deleted},
    }
