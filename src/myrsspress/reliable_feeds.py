"""Curated category/feed taxonomy used to seed an empty table."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from . import categories
from .models import CreateCategoryRequest, CreateFeedRequest

logger = logging.getLogger(__name__)

# Category order decides keyword matching: "entertainment" must be checked
# before "technology" because it contains the substring "ai".
SEED_CATEGORIES: List[CreateCategoryRequest] = [
    CreateCategoryRequest(
        category_id="entertainment",
        parent_category="entertainment",
        locale="en",
        display_name="Entertainment",
        keywords=["entertainment", "movie", "film", "music", "tv", "celebrity", "hollywood"],
        order=1,
    ),
    CreateCategoryRequest(
        category_id="technology",
        parent_category="tech",
        locale="en",
        display_name="Technology",
        keywords=[
            "tech",
            "technology",
            "software",
            "hardware",
            "ai",
            "programming",
            "coding",
            "computer",
            "gadget",
            "startup",
        ],
        order=2,
    ),
    CreateCategoryRequest(
        category_id="business",
        parent_category="business",
        locale="en",
        display_name="Business",
        keywords=["business", "finance", "economy", "market", "stock", "investment", "entrepreneur"],
        order=3,
    ),
    CreateCategoryRequest(
        category_id="science",
        parent_category="science",
        locale="en",
        display_name="Science",
        keywords=["science", "research", "biology", "physics", "chemistry", "space", "astronomy"],
        order=4,
    ),
    CreateCategoryRequest(
        category_id="sports",
        parent_category="sports",
        locale="en",
        display_name="Sports",
        keywords=["sports", "football", "soccer", "basketball", "baseball", "tennis", "olympics"],
        order=5,
    ),
    CreateCategoryRequest(
        category_id="general",
        parent_category="news",
        locale="en",
        display_name="General News",
        keywords=["news", "general", "world", "current events"],
        order=6,
    ),
    CreateCategoryRequest(
        category_id="entertainment-jp",
        parent_category="entertainment",
        locale="ja",
        display_name="エンタメ",
        keywords=["エンタメ", "映画", "音楽", "テレビ", "芸能", "セレブ"],
        order=1,
    ),
    CreateCategoryRequest(
        category_id="technology-jp",
        parent_category="tech",
        locale="ja",
        display_name="テクノロジー",
        keywords=[
            "テクノロジー",
            "テック",
            "ソフトウェア",
            "ハードウェア",
            "プログラミング",
            "コーディング",
            "AI",
            "ガジェット",
            "スタートアップ",
        ],
        order=2,
    ),
    CreateCategoryRequest(
        category_id="business-jp",
        parent_category="business",
        locale="ja",
        display_name="ビジネス",
        keywords=["ビジネス", "経済", "金融", "市場", "株", "投資", "起業"],
        order=3,
    ),
    CreateCategoryRequest(
        category_id="science-jp",
        parent_category="science",
        locale="ja",
        display_name="科学",
        keywords=["科学", "研究", "生物学", "物理学", "化学", "宇宙", "天文学"],
        order=4,
    ),
    CreateCategoryRequest(
        category_id="sports-jp",
        parent_category="sports",
        locale="ja",
        display_name="スポーツ",
        keywords=["スポーツ", "サッカー", "野球", "バスケ", "テニス", "オリンピック"],
        order=5,
    ),
    CreateCategoryRequest(
        category_id="general-jp",
        parent_category="news",
        locale="ja",
        display_name="一般ニュース",
        keywords=["ニュース", "一般", "総合"],
        order=6,
    ),
]

# category id -> (url, title, description)
_FEEDS: Dict[str, List[Tuple[str, str, str]]] = {
    "technology": [
        ("https://feeds.arstechnica.com/arstechnica/index", "Ars Technica", "Technology news and analysis"),
        ("https://www.wired.com/feed/rss", "WIRED", "Technology, science, and culture"),
        ("https://www.theverge.com/rss/index.xml", "The Verge", "Technology and digital culture"),
        ("https://techcrunch.com/feed/", "TechCrunch", "Startup and technology news"),
    ],
    "business": [
        ("https://feeds.bloomberg.com/markets/news.rss", "Bloomberg Markets", "Financial markets and business news"),
        ("https://www.ft.com/?format=rss", "Financial Times", "Global business and financial news"),
        ("https://www.economist.com/rss", "The Economist", "International business and politics"),
    ],
    "science": [
        ("https://www.nature.com/nature.rss", "Nature", "Scientific research and news"),
        ("https://www.sciencedaily.com/rss/all.xml", "Science Daily", "Latest science news"),
        ("https://www.newscientist.com/feed/home", "New Scientist", "Science and technology news"),
    ],
    "sports": [
        ("https://www.espn.com/espn/rss/news", "ESPN", "Sports news and updates"),
        ("https://www.bbc.co.uk/sport/rss.xml", "BBC Sport", "International sports coverage"),
        ("https://www.theguardian.com/sport/rss", "The Guardian Sport", "Sports news and analysis"),
    ],
    "entertainment": [
        ("https://variety.com/feed/", "Variety", "Entertainment industry news"),
        ("https://www.hollywoodreporter.com/feed/", "The Hollywood Reporter", "Film and TV industry news"),
        ("https://deadline.com/feed/", "Deadline", "Entertainment news and analysis"),
    ],
    "general": [
        ("https://feeds.bbci.co.uk/news/rss.xml", "BBC News", "General news and information from BBC"),
        ("https://rss.nytimes.com/services/xml/rss/nyt/HomePage.xml", "The New York Times", "In-depth articles and analysis from NYT"),
        ("https://www.theguardian.com/world/rss", "The Guardian World News", "Global perspective from The Guardian"),
    ],
    "technology-jp": [
        ("https://www.itmedia.co.jp/rss/2.0/news_bursts.xml", "ITmedia NEWS", "テクノロジーとビジネスの情報"),
        ("https://japan.cnet.com/rss/index.rdf", "CNET Japan", "テクノロジーニュース"),
        ("https://www.gizmodo.jp/index.xml", "ギズモード・ジャパン", "テクノロジーとガジェット"),
    ],
    "business-jp": [
        ("https://www.nikkei.com/rss/", "日本経済新聞", "ビジネスと経済のニュース"),
        ("https://diamond.jp/list/feed/rss", "ダイヤモンド・オンライン", "ビジネス情報"),
        ("https://toyokeizai.net/list/feed/rss", "東洋経済オンライン", "経済とビジネスの情報"),
    ],
    "entertainment-jp": [
        ("https://www.cinematoday.jp/rss/news", "シネマトゥデイ", "映画ニュース"),
        ("https://natalie.mu/music/feed/news", "音楽ナタリー", "音楽ニュース"),
        ("https://natalie.mu/eiga/feed/news", "映画ナタリー", "映画ニュース"),
    ],
    "sports-jp": [
        ("https://www.nikkansports.com/rss/index.rdf", "日刊スポーツ", "スポーツニュース"),
        ("https://www.sponichi.co.jp/rss/index.rdf", "スポーツニッポン", "スポーツ情報"),
        ("https://sports.yahoo.co.jp/rss/all-hl.xml", "Yahoo!スポーツ", "スポーツ速報"),
    ],
    "general-jp": [
        ("https://www3.nhk.or.jp/rss/news/cat0.xml", "NHK ニュース", "一般的なニュースと情報"),
        ("https://www.asahi.com/rss/asahi/newsheadlines.rdf", "朝日新聞デジタル", "詳細な記事と分析"),
        ("https://news.yahoo.co.jp/rss/topics/top-picks.xml", "Yahoo!ニュース", "速報とアップデート"),
    ],
}


def seed_feeds() -> List[CreateFeedRequest]:
    language = {c.category_id: c.locale for c in SEED_CATEGORIES}
    return [
        CreateFeedRequest(
            category_id=category_id,
            url=url,
            title=title,
            description=description,
            language=language[category_id],
            priority=index + 1,
        )
        for category_id, feeds in _FEEDS.items()
        for index, (url, title, description) in enumerate(feeds)
    ]


@dataclass
class SeedReport:
    created_categories: List[str] = field(default_factory=list)
    skipped_categories: List[str] = field(default_factory=list)
    created_feeds: int = 0
    skipped_feeds: int = 0
    failures: List[str] = field(default_factory=list)


def seed_taxonomy(table=None, *, dry_run: bool = False) -> SeedReport:
    """Create missing seed categories and feeds; existing records are left alone."""
    report = SeedReport()
    for request in SEED_CATEGORIES:
        try:
            if categories.get_category_by_id(request.category_id, table) is not None:
                report.skipped_categories.append(request.category_id)
                continue
            if not dry_run:
                categories.create_category(request, table)
            report.created_categories.append(request.category_id)
        except Exception as exc:
            logger.exception("Failed to seed category %s", request.category_id)
            report.failures.append(f"{request.category_id}: {exc}")

    for request in seed_feeds():
        try:
            if categories.get_feed(request.category_id, request.url, table) is not None:
                report.skipped_feeds += 1
                continue
            if not dry_run:
                categories.create_feed(request, table)
            report.created_feeds += 1
        except Exception as exc:
            logger.exception("Failed to seed feed %s", request.url)
            report.failures.append(f"{request.url}: {exc}")
    return report
