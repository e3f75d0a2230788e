import copy
import re
from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest

from myrsspress import (
    admin_auth,
    category_cache,
    feed_suggestion,
    feed_usage,
    rate_limit,
    storage,
)

_BEGINS_WITH = re.compile(r"begins_with\((\w+),\s*(:\w+)\)")
_COMPARISON = re.compile(r"(\w+)\s*(<=|>=|=|<|>)\s*(:\w+)")
_OPS = {
    "=": lambda a, b: a == b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}


class FakeBatchClient:
    def __init__(self, table):
        self.table = table
        self.batch_sizes = []

    def batch_write_item(self, RequestItems):
        for requests in RequestItems.values():
            self.batch_sizes.append(len(requests))
            for request in requests:
                key = request["DeleteRequest"]["Key"]
                self.table.items.pop((key["PK"], key["SK"]), None)
        return {"UnprocessedItems": {}}


class FakeTable:
    """Just enough of the boto3 Table resource for single-table queries."""

    def __init__(self, name="newspapers-test", page_size=None):
        self.name = name
        self.items = {}
        self.page_size = page_size
        self.queries = []
        self.meta = SimpleNamespace(client=FakeBatchClient(self))

    def put_item(self, Item):
        self.items[(Item["PK"], Item["SK"])] = copy.deepcopy(Item)
        return {}

    def get_item(self, Key):
        item = self.items.get((Key["PK"], Key["SK"]))
        return {"Item": copy.deepcopy(item)} if item else {}

    def update_item(self, Key, UpdateExpression, ExpressionAttributeValues, **_kwargs):
        item = self.items[(Key["PK"], Key["SK"])]
        assignments = UpdateExpression.split("SET", 1)[1]
        for assignment in assignments.split(","):
            name, placeholder = (part.strip() for part in assignment.split("="))
            item[name] = ExpressionAttributeValues[placeholder]
        return {}

    def _matches(self, item, clauses, values):
        for attr, op, placeholder in clauses:
            if attr not in item:
                return False
            if op == "begins_with":
                if not str(item[attr]).startswith(values[placeholder]):
                    return False
            elif not _OPS[op](item[attr], values[placeholder]):
                return False
        return True

    def query(self, KeyConditionExpression, ExpressionAttributeValues, **kwargs):
        self.queries.append(
            {
                "KeyConditionExpression": KeyConditionExpression,
                "ExpressionAttributeValues": ExpressionAttributeValues,
                **kwargs,
            }
        )
        clauses = []
        for clause in KeyConditionExpression.split(" AND "):
            begins = _BEGINS_WITH.search(clause)
            if begins:
                clauses.append((begins.group(1), "begins_with", begins.group(2)))
                continue
            attr, op, placeholder = _COMPARISON.search(clause).groups()
            clauses.append((attr, op, placeholder))

        index = kwargs.get("IndexName")
        sort_attr = f"{index}SK" if index else "SK"
        matches = [
            item
            for item in self.items.values()
            if self._matches(item, clauses, ExpressionAttributeValues)
        ]
        matches.sort(
            key=lambda item: str(item.get(sort_attr, "")),
            reverse=not kwargs.get("ScanIndexForward", True),
        )

        start = kwargs.get("ExclusiveStartKey")
        if start:
            position = next(
                i
                for i, item in enumerate(matches)
                if item["PK"] == start["PK"] and item["SK"] == start["SK"]
            )
            matches = matches[position + 1:]

        limit = kwargs.get("Limit") or self.page_size
        if self.page_size:
            limit = min(limit, self.page_size)
        page = matches[:limit] if limit else matches
        response = {"Items": [copy.deepcopy(item) for item in page]}
        if limit and len(matches) > limit:
            last = page[-1]
            response["LastEvaluatedKey"] = {"PK": last["PK"], "SK": last["SK"]}

        projection = kwargs.get("ProjectionExpression")
        if projection:
            fields = [f.strip() for f in projection.split(",")]
            response["Items"] = [
                {f: item[f] for f in fields if f in item} for item in response["Items"]
            ]
        return response


class DummyResponse:
    def __init__(self, text, usage=None):
        self.output_text = text
        self.usage = usage


class DummyResponses:
    def __init__(self, outputs):
        self.outputs = list(outputs)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        output = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        if isinstance(output, Exception):
            raise output
        return DummyResponse(output)


class DummyClient:
    """Stand-in for OpenAI() returning canned Responses API output."""

    def __init__(self, *outputs):
        self.responses = DummyResponses(outputs or [""])


@pytest.fixture
def dummy_client():
    return DummyClient


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch):
    for name in (
        "USE_MOCK_AI",
        "DYNAMODB_ENDPOINT",
        "ADMIN_API_KEY",
        "ENVIRONMENT",
        "ENABLE_CACHE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setattr(
        category_cache,
        "category_cache",
        category_cache.CategoryCache(background=lambda fn: fn()),
    )
    feed_usage.clear_popular_cache()
    feed_suggestion.clear_cache()
    admin_auth.clear_secret_cache()
    for limiter in (
        rate_limit.api_limiter,
        rate_limit.suggest_limiter,
        rate_limit.generate_limiter,
    ):
        limiter.reset()
    yield


@pytest.fixture
def table(monkeypatch):
    fake = FakeTable()
    monkeypatch.setattr(storage, "get_table", lambda: fake)
    return fake


@pytest.fixture
def fixed_now():
    # 2025-01-15 12:00 in Tokyo
    return datetime(2025, 1, 15, 3, 0, tzinfo=timezone.utc)


def rss_document(title, items, language="en"):
    entries = "".join(
        f"""
        <item>
          <title>{item['title']}</title>
          <link>{item['link']}</link>
          <description>{item.get('description', 'Story body')}</description>
          <pubDate>{item['pub_date']}</pubDate>
          {item.get('extra', '')}
        </item>"""
        for item in items
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>{title}</title>
    <link>https://example.com</link>
    <description>{title}</description>
    <language>{language}</language>
    {entries}
  </channel>
</rss>"""


@pytest.fixture
def feed_transport():
    """Build an httpx.Client whose responses come from a url -> body mapping."""

    def build(documents):
        def handler(request):
            body = documents.get(str(request.url))
            if body is None:
                return httpx.Response(404, text="missing")
            return httpx.Response(200, text=body)

        return httpx.Client(transport=httpx.MockTransport(handler))

    return build


@pytest.fixture
def rss_doc():
    return rss_document
