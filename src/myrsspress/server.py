"""FastAPI application serving the MyRSSPress API."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import (
    article_filter,
    category_cache,
    category_service,
    default_feeds,
    editorial,
    feed_suggestion,
    feed_usage,
    historical,
    importance,
    language,
    newspapers,
    rss,
    summary,
)
from .admin import router as admin_router
from .ai_client import with_retries
from .config import DEVELOPMENT_ORIGINS, PRODUCTION_ORIGINS, SUPPORTED_LOCALES, get_settings
from .dates import HistoricalDateError, iso_now, validate_date
from .logging_config import configure_logging
from .models import GenerateNewspaperRequest, Locale, SaveNewspaperRequest, SuggestFeedsRequest
from .rate_limit import (
    api_limiter,
    client_ip,
    generate_limiter,
    rate_limit,
    suggest_limiter,
    too_many_requests_body,
)

logger = logging.getLogger(__name__)

MIN_GENERATED_ARTICLES = 3
SUGGEST_ATTEMPTS = 3


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    category_cache.category_cache.preload()
    yield


app = FastAPI(title="MyRSSPress API", version="0.1.0", lifespan=lifespan)


def _cors_origins() -> List[str]:
    origins_env = os.getenv("CORS_ALLOW_ORIGINS", "")
    origins = [o.strip() for o in origins_env.split(",") if o.strip()]
    if origins:
        return origins
    if get_settings().is_production:
        return list(PRODUCTION_ORIGINS)
    return PRODUCTION_ORIGINS + DEVELOPMENT_ORIGINS


def _add_cors(app: FastAPI) -> None:
    """Allow the web frontend to call the API."""
    allow_credentials = os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() == "true"
    origins = _cors_origins()
    if origins == ["*"] and allow_credentials:
        # Starlette/FastAPI disallow wildcard origins when credentials are enabled.
        allow_credentials = False
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
        max_age=86400,
    )


_add_cors(app)
app.include_router(admin_router)


@app.middleware("http")
async def limit_api_requests(request: Request, call_next):
    if request.url.path.startswith("/api/"):
        retry_after = api_limiter.hit(client_ip(request))
        if retry_after is not None:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=too_many_requests_body(retry_after),
                headers={"Retry-After": str(retry_after)},
            )
    return await call_next(request)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(
        status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation error", "details": jsonable_encoder(exc.errors())},
    )


def _server_error(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


@app.get("/")
def root() -> Dict[str, Any]:
    return {
        "message": "MyRSSPress API",
        "version": app.version,
        "endpoints": {
            "health": "/api/health",
            "suggestFeeds": "POST /api/suggest-feeds",
            "generateNewspaper": "POST /api/generate-newspaper",
            "saveNewspaper": "POST /api/newspapers",
            "getNewspaper": "GET /api/newspapers/:id",
            "getPublicNewspapers": "GET /api/newspapers?sort=popular&limit=10",
            "getAvailableDates": "GET /api/newspapers/:id/dates",
            "getHistoricalNewspaper": "GET /api/newspapers/:id/:date",
            "defaultFeeds": "GET /api/default-feeds?locale=en",
            "categories": "GET /api/categories?locale=en",
        },
    }


@app.get("/api/health")
def health() -> Dict[str, str]:
    return {"status": "ok", "timestamp": iso_now()}


# --- Feed suggestion and generation -----------------------------------------


@app.post("/api/suggest-feeds", dependencies=[Depends(rate_limit(suggest_limiter))])
def suggest_feeds(request: SuggestFeedsRequest) -> Dict[str, Any]:
    try:
        result = with_retries(
            lambda: feed_suggestion.suggest_feeds(request.theme, request.locale),
            attempts=SUGGEST_ATTEMPTS,
        )
    except Exception:
        logger.exception(
            "All %s suggestion attempts failed for %r; returning default feeds",
            SUGGEST_ATTEMPTS,
            request.theme,
        )
        result = feed_suggestion.FeedSuggestionsResult(
            default_feeds.default_feed_suggestions(request.locale),
            feed_suggestion.generate_newspaper_name(request.theme, request.locale),
        )
    return {
        "suggestions": [feed.to_dict() for feed in result.feeds],
        "newspaperName": result.newspaper_name,
    }


def _insufficient_articles_message(count: int, locale: str) -> str:
    if locale == "ja":
        if count == 0:
            return (
                "フィードから記事を取得できませんでした。"
                "フィードURLが正しいか、またはフィードが利用可能か確認してください。"
            )
        return "記事数が不足しています。別のフィードを追加するか、後でもう一度お試しください。"
    if count == 0:
        return "Could not fetch any articles from the feeds. Check that the feed URLs are valid and reachable."
    return "Not enough articles. Add more feeds or try again later."


def _learn_from_feeds(request: GenerateNewspaperRequest, fetched: rss.FetchResult) -> None:
    """Record per-feed usage and promote qualifying feeds into the theme's category."""
    category = category_service.get_category_by_theme_with_fallback(
        request.theme, request.locale
    )
    if category is None:
        return
    for url in request.feed_urls:
        count = fetched.article_counts.get(url)
        feed_usage.record_feed_usage(
            url,
            category.category_id,
            count or 0,
            bool(count),
            fetched.feed_titles.get(url),
        )
    feed_usage.promote_feeds_if_qualified(
        request.feed_urls,
        category.category_id,
        fetched.feed_titles,
        fetched.feed_languages,
    )


@app.post("/api/generate-newspaper", dependencies=[Depends(rate_limit(generate_limiter))])
def generate_newspaper(request: GenerateNewspaperRequest) -> Dict[str, Any]:
    logger.info("Generating newspaper for theme %r", request.theme)
    try:
        fetched = rss.fetch_articles_for_newspaper(request.feed_urls)
    except Exception as exc:
        logger.exception("Article fetch failed")
        raise _server_error("Failed to generate newspaper") from exc

    articles = fetched.articles
    if len(articles) < MIN_GENERATED_ARTICLES:
        logger.error(
            "Insufficient articles: %s (minimum: %s)", len(articles), MIN_GENERATED_ARTICLES
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": _insufficient_articles_message(len(articles), request.locale),
                "articleCount": len(articles),
                "suggestion": "Try using different RSS feeds or check if the feed URLs are accessible.",
            },
        )

    try:
        _learn_from_feeds(request, fetched)
    except Exception:
        logger.exception("Feed usage tracking failed for %r", request.theme)

    articles = article_filter.filter_articles_by_theme(articles, request.theme, request.locale)
    articles = importance.calculate_importance(
        articles, request.theme, request.default_feed_urls, locale=request.locale
    )
    try:
        languages = language.detect_languages(articles, fetched.feed_languages)
        articles = language.tag_languages(articles, fetched.feed_languages)
    except Exception:
        logger.exception("Language detection failed")
        languages = []
    newspaper_summary = summary.generate_summary_with_retry(articles, request.theme, languages)
    column = editorial.generate_editorial_column(articles, request.theme, request.locale)

    return {
        "articles": [a.to_dict() for a in articles],
        "languages": languages,
        "summary": newspaper_summary,
        "editorialColumn": column.to_dict() if column else None,
    }


# --- Newspapers -------------------------------------------------------------


@app.post("/api/newspapers", status_code=status.HTTP_201_CREATED)
def save_newspaper(request: SaveNewspaperRequest) -> Dict[str, str]:
    try:
        newspaper = newspapers.save_newspaper(request)
    except Exception as exc:
        logger.exception("Failed to save newspaper")
        raise _server_error("Failed to save newspaper") from exc
    return {"newspaperId": newspaper.newspaper_id, "createdAt": newspaper.created_at}


@app.get("/api/newspapers")
def list_newspapers(
    sort: Optional[str] = Query(None),
    limit: int = Query(10),
    locale: Optional[str] = Query(None),
) -> Dict[str, Any]:
    sort_by = sort if sort in ("popular", "recent") else "popular"
    limit = max(1, min(100, limit))
    locale = locale if locale in SUPPORTED_LOCALES else None
    try:
        found = newspapers.get_public_newspapers(sort_by, limit, locale)
    except Exception as exc:
        logger.exception("Failed to list public newspapers")
        raise _server_error("Failed to get newspapers") from exc
    return {"newspapers": [n.to_dict() for n in found]}


@app.get("/api/newspapers/{newspaper_id}")
def get_newspaper(newspaper_id: str) -> Dict[str, Any]:
    try:
        newspaper = newspapers.get_newspaper(newspaper_id)
        if newspaper is not None:
            count = newspapers.increment_view_count(newspaper_id)
            newspaper = newspaper.model_copy(update={"view_count": count})
    except Exception as exc:
        logger.exception("Failed to get newspaper %s", newspaper_id)
        raise _server_error("Failed to get newspaper") from exc
    if newspaper is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Newspaper not found")
    return newspaper.to_dict()


@app.get("/api/newspapers/{newspaper_id}/dates")
def get_available_dates(newspaper_id: str) -> Dict[str, Any]:
    try:
        dates = newspapers.get_available_dates(newspaper_id)
    except Exception as exc:
        logger.exception("Failed to list dates for %s", newspaper_id)
        raise _server_error("Failed to get available dates") from exc
    return {"newspaperId": newspaper_id, "dates": dates}


@app.get("/api/newspapers/{newspaper_id}/{newspaper_date}")
def get_historical_newspaper(newspaper_id: str, newspaper_date: str) -> Dict[str, Any]:
    validation = validate_date(newspaper_date)
    if not validation.valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=validation.error)

    try:
        metadata = newspapers.get_newspaper(newspaper_id)
        if metadata is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Newspaper not found"
            )
        newspaper = historical.get_or_create_historical_newspaper(
            newspaper_id,
            newspaper_date,
            metadata.feed_urls,
            metadata.name,
            metadata.locale,
        )
    except HTTPException:
        raise
    except HistoricalDateError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except historical.NoArticlesError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Failed to build newspaper %s for %s", newspaper_id, newspaper_date)
        raise _server_error("Failed to get historical newspaper") from exc
    return newspaper.to_dict()


# --- Default feeds and categories -------------------------------------------


@app.get("/api/default-feeds")
def get_default_feed_articles(
    locale: Locale = Query(...),
    date: Optional[str] = Query(None),
) -> Dict[str, Any]:
    if date:
        validation = validate_date(date)
        if not validation.valid:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=validation.error)
    try:
        result = default_feeds.fetch_default_feed_articles(locale, date)
    except Exception as exc:
        logger.exception("Default feed fetch failed")
        raise _server_error("Failed to fetch default feed articles") from exc
    return result.to_dict()


@app.get("/api/categories")
def list_categories(locale: Optional[Locale] = Query(None)) -> Dict[str, Any]:
    locales = [locale] if locale else list(SUPPORTED_LOCALES)
    try:
        body = []
        for code in locales:
            for category in category_service.get_categories(code):
                feeds = category_service.get_feeds_by_category(category.category_id)
                body.append(
                    {
                        "id": category.category_id,
                        "name": category.display_name,
                        "description": category.parent_category or "",
                        "locale": category.locale,
                        "keywords": category.keywords,
                        "order": category.order,
                        "feedCount": len(feeds),
                    }
                )
    except Exception as exc:
        logger.exception("Failed to fetch categories")
        raise _server_error("Failed to fetch categories") from exc
    return {"categories": body, "totalFeeds": sum(c["feedCount"] for c in body)}


@app.get("/api/categories/{category_id}/feeds")
def list_category_feeds(category_id: str) -> Dict[str, Any]:
    try:
        feeds = category_service.get_feeds_by_category(category_id)
    except Exception as exc:
        logger.exception("Failed to fetch feeds for %s", category_id)
        raise _server_error("Failed to fetch feeds") from exc
    return {
        "feeds": [
            {
                "url": feed.url,
                "title": feed.title,
                "description": feed.description,
                "language": feed.language,
                "priority": feed.priority,
            }
            for feed in feeds
        ]
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "myrsspress.server:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3001")),
        reload=os.getenv("RELOAD", "false").lower() == "true",
    )
