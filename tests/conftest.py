"""Shared fixtures: RSS document builder and stub HTTP transport."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime

import httpx
import pytest


def build_rss(items, title: str = "Example Feed", link: str = "https://example.com/") -> bytes:
    """Render an RSS 2.0 document from a list of item dicts.

    Item keys: title, link, guid, description, pub_date (datetime), author.
    Missing keys are left out of the XML entirely.
    """
    parts = []
    for item in items:
        fields = []
        if "title" in item:
            fields.append(f"<title>{item['title']}</title>")
        if "link" in item:
            fields.append(f"<link>{item['link']}</link>")
        if "guid" in item:
            fields.append(f"<guid isPermaLink=\"false\">{item['guid']}</guid>")
        if "description" in item:
            fields.append(f"<description>{item['description']}</description>")
        if "author" in item:
            fields.append(f"<author>{item['author']}</author>")
        if "pub_date" in item:
            fields.append(f"<pubDate>{format_datetime(item['pub_date'])}</pubDate>")
        parts.append("<item>" + "".join(fields) + "</item>")
    body = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>{link}</link><description>Test</description>"
        + "".join(parts)
        + "</channel></rss>"
    )
    return body.encode("utf-8")


def numbered_items(count: int, prefix: str = "post"):
    base = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)
    return [
        {
            "title": f"Post {i}",
            "link": f"https://example.com/{prefix}/{i}",
            "guid": f"{prefix}-{i}",
            "description": f"Body of {prefix} {i}",
            "pub_date": base.replace(hour=8 + i % 12),
        }
        for i in range(count)
    ]


class StubServer:
    """Maps URLs to canned responses for ``httpx.MockTransport``."""

    def __init__(self):
        self.routes: dict[str, object] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, body: bytes | str = b"", status: int = 200, content_type: str = "application/rss+xml"):
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[url] = (status, body, content_type)

    def fail(self, url: str, exc: Exception):
        self.routes[url] = exc

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, content=b"not found")
        if isinstance(route, Exception):
            raise route
        status, body, content_type = route
        return httpx.Response(status, content=body, headers={"Content-Type": content_type})

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler), follow_redirects=True)


@pytest.fixture
def stub_server():
    return StubServer()


@pytest.fixture
def now():
    return datetime(2026, 10, 15, 12, 0, tzinfo=timezone.utc)
