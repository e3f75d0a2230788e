"""Newspaper persistence: saved newspapers, public listings and per-date variants."""

from __future__ import annotations

import logging
import os
from itertools import islice
from typing import Dict, List, Literal, Optional

from . import storage
from .dates import iso_now
from .models import Newspaper, SaveNewspaperRequest

logger = logging.getLogger(__name__)

SortOrder = Literal["popular", "recent"]

POPULAR_INDEX = "GSI1"
RECENT_INDEX = "GSI2"
PUBLIC_PARTITION = "PUBLIC"
HISTORICAL_PARTITION = "HISTORICAL"


def metadata_key(newspaper_id: str) -> Dict[str, str]:
    return {"PK": f"NEWSPAPER#{newspaper_id}", "SK": "METADATA"}


def date_key(newspaper_id: str, newspaper_date: str) -> Dict[str, str]:
    return {"PK": f"NEWSPAPER#{newspaper_id}", "SK": f"DATE#{newspaper_date}"}


def views_sort_key(view_count: int, newspaper_id: str) -> str:
    return f"VIEWS#{view_count:010d}#{newspaper_id}"


def new_newspaper_id() -> str:
    return os.urandom(12).hex()


def _resolve(table):
    return table if table is not None else storage.get_table()


def save_newspaper(request: SaveNewspaperRequest, table=None) -> Newspaper:
    """Store a new newspaper; public ones are indexed for popular/recent listings."""
    now = iso_now()
    newspaper = Newspaper(
        newspaper_id=new_newspaper_id(),
        **request.model_dump(),
        view_count=0,
        created_at=now,
        updated_at=now,
    )
    item = {**newspaper.to_dict(), **metadata_key(newspaper.newspaper_id)}
    if newspaper.is_public:
        item.update(
            {
                "GSI1PK": PUBLIC_PARTITION,
                "GSI1SK": views_sort_key(0, newspaper.newspaper_id),
                "GSI2PK": PUBLIC_PARTITION,
                "GSI2SK": f"CREATED#{now}#{newspaper.newspaper_id}",
            }
        )
    _resolve(table).put_item(Item=storage.to_item(item))
    logger.info("Saved newspaper %s (%s)", newspaper.newspaper_id, newspaper.name)
    return newspaper


def get_newspaper(newspaper_id: str, table=None) -> Optional[Newspaper]:
    item = _resolve(table).get_item(Key=metadata_key(newspaper_id)).get("Item")
    if not item:
        return None
    return Newspaper.model_validate(storage.from_item(item))


def get_public_newspapers(
    sort_by: SortOrder = "popular",
    limit: int = 10,
    locale: Optional[str] = None,
    table=None,
) -> List[Newspaper]:
    """Public newspapers, most viewed or newest first, optionally for one locale."""
    index, prefix, sk = (
        (POPULAR_INDEX, "VIEWS#", "GSI1")
        if sort_by == "popular"
        else (RECENT_INDEX, "CREATED#", "GSI2")
    )
    items = storage.query_all(
        _resolve(table),
        IndexName=index,
        KeyConditionExpression=f"{sk}PK = :pk AND begins_with({sk}SK, :sk)",
        ExpressionAttributeValues={":pk": PUBLIC_PARTITION, ":sk": prefix},
        ScanIndexForward=False,
        Limit=limit,
    )
    newspapers = (Newspaper.model_validate(item) for item in items)
    if locale:
        newspapers = (n for n in newspapers if n.locale == locale)
    return list(islice(newspapers, limit))


def increment_view_count(newspaper_id: str, table=None) -> int:
    """Bump the view counter and move the newspaper in the popularity index."""
    table = _resolve(table)
    newspaper = get_newspaper(newspaper_id, table)
    if newspaper is None:
        raise LookupError(f"Newspaper not found: {newspaper_id}")

    count = newspaper.view_count + 1
    expression = "SET viewCount = :count, updatedAt = :now"
    values = {":count": count, ":now": iso_now()}
    if newspaper.is_public:
        expression += ", GSI1SK = :gsi1sk"
        values[":gsi1sk"] = views_sort_key(count, newspaper_id)
    table.update_item(
        Key=metadata_key(newspaper_id),
        UpdateExpression=expression,
        ExpressionAttributeValues=values,
    )
    return count


# --- Per-date variants ------------------------------------------------------


def get_newspaper_by_date(
    newspaper_id: str, newspaper_date: str, table=None
) -> Optional[Newspaper]:
    item = _resolve(table).get_item(Key=date_key(newspaper_id, newspaper_date)).get("Item")
    if not item:
        return None
    return Newspaper.model_validate(storage.from_item(item))


def save_historical_newspaper(newspaper: Newspaper, table=None) -> Newspaper:
    """Store a per-date variant where the cleanup sweep can find it."""
    if not newspaper.newspaper_date:
        raise ValueError("newspaper_date is required for historical newspapers")
    item = {
        **newspaper.to_dict(),
        **date_key(newspaper.newspaper_id, newspaper.newspaper_date),
        "GSI1PK": HISTORICAL_PARTITION,
        "GSI1SK": f"DATE#{newspaper.newspaper_date}#{newspaper.newspaper_id}",
    }
    _resolve(table).put_item(Item=storage.to_item(item))
    return newspaper


def get_available_dates(newspaper_id: str, table=None) -> List[str]:
    """Dates with a stored variant, newest first."""
    items = storage.query_all(
        _resolve(table),
        KeyConditionExpression="PK = :pk AND begins_with(SK, :sk)",
        ExpressionAttributeValues={":pk": f"NEWSPAPER#{newspaper_id}", ":sk": "DATE#"},
        ProjectionExpression="SK",
    )
    dates = [item["SK"].split("#", 1)[1] for item in items]
    return sorted(dates, reverse=True)
