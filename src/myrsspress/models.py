"""Data models for newspapers, articles and the category/feed taxonomy.

Wire and storage formats use camelCase keys; Python code uses snake_case
attributes. Dump with ``by_alias=True`` when writing JSON or DynamoDB items.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Locale = Literal["en", "ja"]


def _check_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid URL: {value}")
    return value


UrlStr = Annotated[str, AfterValidator(_check_url)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Article(CamelModel):
    """A single RSS item as it appears inside a newspaper."""

    title: str
    description: str = ""
    link: str
    pub_date: datetime
    image_url: Optional[str] = None
    feed_source: str = ""
    feed_title: Optional[str] = None
    importance: Optional[int] = Field(None, ge=0, le=100)
    is_default_feed: Optional[bool] = None
    language: Optional[str] = None


class EditorialColumn(CamelModel):
    title: str
    column: str


class Newspaper(CamelModel):
    """Persisted newspaper, either the metadata record or a per-date variant."""

    newspaper_id: str
    name: str
    user_name: str = "Anonymous"
    feed_urls: List[str]
    articles: Optional[List[Article]] = None
    locale: Locale = "en"
    view_count: int = 0
    is_public: bool = True
    summary: Optional[str] = None
    editorial_column: Optional[EditorialColumn] = None
    languages: Optional[List[str]] = None
    newspaper_date: Optional[str] = None
    created_at: str
    updated_at: str


class FeedSuggestion(CamelModel):
    url: str
    title: str
    reasoning: str = ""
    is_default: bool = False


class Category(CamelModel):
    category_id: str
    parent_category: Optional[str] = None
    locale: Locale
    display_name: str
    keywords: List[str]
    order: int
    is_active: bool = True
    created_at: str
    updated_at: str


class Feed(CamelModel):
    category_id: str
    url: str
    title: str
    description: str = ""
    language: str
    priority: int
    is_active: bool = True
    created_at: str
    updated_at: str


class FeedUsage(CamelModel):
    url: str
    category_id: str
    title: Optional[str] = None
    usage_count: int
    last_used_at: str
    success_rate: float
    average_articles: float
    created_at: str
    updated_at: str


# --- Request bodies ---------------------------------------------------------


class SuggestFeedsRequest(CamelModel):
    theme: str = Field(..., min_length=1, max_length=200)
    locale: Locale = "en"


class GenerateNewspaperRequest(CamelModel):
    feed_urls: List[UrlStr] = Field(..., min_length=3, max_length=10)
    theme: str = Field(..., min_length=1)
    default_feed_urls: Optional[List[UrlStr]] = None
    locale: Locale = "en"


class SaveNewspaperRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    user_name: str = Field("Anonymous", min_length=1)
    feed_urls: List[UrlStr] = Field(..., min_length=1, max_length=10)
    articles: Optional[List[Article]] = None
    is_public: bool = True
    locale: Locale = "en"
    summary: Optional[str] = None
    editorial_column: Optional[EditorialColumn] = None
    languages: Optional[List[str]] = None


class CreateCategoryRequest(CamelModel):
    category_id: str = Field(..., min_length=1, max_length=50)
    parent_category: Optional[str] = None
    locale: Locale
    display_name: str = Field(..., min_length=1, max_length=100)
    keywords: List[str] = Field(..., min_length=1)
    order: int = Field(..., ge=0)
    is_active: bool = True


class UpdateCategoryRequest(CamelModel):
    parent_category: Optional[str] = None
    locale: Optional[Locale] = None
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    keywords: Optional[List[str]] = Field(None, min_length=1)
    order: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class CreateFeedRequest(CamelModel):
    category_id: str = Field(..., min_length=1)
    url: UrlStr
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=500)
    language: str = Field(..., min_length=2, max_length=2)
    priority: int = Field(..., ge=0)
    is_active: bool = True


class UpdateFeedRequest(CamelModel):
    category_id: str = Field(..., min_length=1)
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    language: Optional[str] = Field(None, min_length=2, max_length=2)
    priority: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
