"""Admin routes for maintaining the category and feed taxonomy."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Type, TypeVar

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel, ValidationError

from . import categories
from .admin_auth import require_admin_key
from .category_service import invalidate_category
from .config import SUPPORTED_LOCALES
from .models import (
    Category,
    CreateCategoryRequest,
    CreateFeedRequest,
    UpdateCategoryRequest,
    UpdateFeedRequest,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin_key)])


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": code, "message": message})


@contextmanager
def _failure(code: str, action: str) -> Iterator[None]:
    """Turn unexpected storage errors into a 500 with the given error code."""
    try:
        yield
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Admin request failed: %s", action)
        raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, code, str(exc) or action)


def _validate(model: Type[M], payload: Dict[str, Any]) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "VALIDATION_ERROR",
                "message": "Invalid request body",
                "details": exc.errors(include_url=False, include_context=False),
            },
        )


def _require_category(category_id: str) -> Category:
    category = categories.get_category_by_id(category_id)
    if category is None:
        raise _error(
            status.HTTP_404_NOT_FOUND,
            "CATEGORY_NOT_FOUND",
            f"Category '{category_id}' not found",
        )
    return category


# --- Categories -------------------------------------------------------------


@router.get("/categories")
def list_categories(locale: Optional[str] = Query(None)) -> dict:
    if locale and locale not in SUPPORTED_LOCALES:
        raise _error(
            status.HTTP_400_BAD_REQUEST, "INVALID_LOCALE", 'Locale must be "en" or "ja"'
        )
    with _failure("CATEGORY_LIST_FAILED", "Failed to list categories"):
        if locale:
            found = categories.get_categories_by_locale(locale, include_inactive=True)
        else:
            found = categories.get_all_categories(include_inactive=True)
    return {"categories": [c.to_dict() for c in found]}


@router.post("/categories", status_code=status.HTTP_201_CREATED)
def create_category(payload: Dict[str, Any] = Body(...)) -> dict:
    request = _validate(CreateCategoryRequest, payload)
    with _failure("CATEGORY_CREATE_FAILED", "Failed to create category"):
        category = categories.create_category(request)
        invalidate_category(category.category_id, category.locale)
    return category.to_dict()


@router.get("/categories/{category_id}")
def get_category(category_id: str) -> dict:
    with _failure("CATEGORY_GET_FAILED", "Failed to get category"):
        category = _require_category(category_id)
    return category.to_dict()


@router.put("/categories/{category_id}")
def update_category(category_id: str, payload: Dict[str, Any] = Body(...)) -> dict:
    request = _validate(UpdateCategoryRequest, payload)
    with _failure("CATEGORY_UPDATE_FAILED", "Failed to update category"):
        existing = _require_category(category_id)
        category = categories.update_category(
            category_id, request.model_dump(exclude_unset=True)
        )
        # Invalidate both the old and new locale listings.
        invalidate_category(category_id, existing.locale)
        invalidate_category(category_id, category.locale)
    return category.to_dict()


@router.delete("/categories/{category_id}")
def delete_category(category_id: str) -> dict:
    with _failure("CATEGORY_DELETE_FAILED", "Failed to delete category"):
        existing = _require_category(category_id)
        categories.delete_category(category_id)
        invalidate_category(category_id, existing.locale)
    return {"message": "Category deactivated successfully"}


# --- Feeds ------------------------------------------------------------------


@router.get("/feeds")
def list_feeds(category_id: str = Query(..., alias="categoryId")) -> dict:
    with _failure("FEED_LIST_FAILED", "Failed to list feeds"):
        _require_category(category_id)
        feeds = categories.get_feeds_by_category(category_id, include_inactive=True)
    return {"feeds": [f.to_dict() for f in feeds]}


@router.post("/feeds", status_code=status.HTTP_201_CREATED)
def create_feed(payload: Dict[str, Any] = Body(...)) -> dict:
    request = _validate(CreateFeedRequest, payload)
    with _failure("FEED_CREATE_FAILED", "Failed to create feed"):
        _require_category(request.category_id)
        feed = categories.create_feed(request)
        invalidate_category(request.category_id)
    return feed.to_dict()


@router.put("/feeds/{url:path}")
def update_feed(url: str, payload: Dict[str, Any] = Body(...)) -> dict:
    request = _validate(UpdateFeedRequest, payload)
    changes = request.model_dump(exclude_unset=True, exclude={"category_id"})
    with _failure("FEED_UPDATE_FAILED", "Failed to update feed"):
        _require_category(request.category_id)
        feed = categories.update_feed(request.category_id, url, changes)
        if feed is None:
            raise _error(status.HTTP_404_NOT_FOUND, "FEED_NOT_FOUND", f"Feed '{url}' not found")
        invalidate_category(request.category_id)
    return feed.to_dict()


@router.delete("/feeds/{url:path}")
def delete_feed(url: str, category_id: str = Query(..., alias="categoryId")) -> dict:
    with _failure("FEED_DELETE_FAILED", "Failed to delete feed"):
        _require_category(category_id)
        if not categories.delete_feed(category_id, url):
            raise _error(status.HTTP_404_NOT_FOUND, "FEED_NOT_FOUND", f"Feed '{url}' not found")
        invalidate_category(category_id)
    return {"message": "Feed deactivated successfully"}
