"""Tests for feed parsing, page scraping and the fetcher's fallback chain."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from conftest import build_rss, numbered_items
from feed_hub.config import FetchConfig, ScrapeConfig
from feed_hub.core.errors import ExtractionFailed, FeedParseError, FetchError
from feed_hub.fetch.fetcher import FeedFetcher, fetch_url
from feed_hub.fetch.parser import parse_feed
from feed_hub.fetch.scraper import ContentScraper, html_to_text, scrape_identity


ARTICLE_HTML = """<!DOCTYPE html>
<html>
<head>
  <title>Why Tide Pools Matter | Coastal Notes</title>
  <meta name="author" content="Jane Rivers">
  <meta name="description" content="A short look at tide pool ecology.">
</head>
<body>
  <nav><a href="/">Home</a> <a href="/about">About</a></nav>
  <article>
    <h1>Why Tide Pools Matter</h1>
    <p>Tide pools are small worlds left behind by the retreating ocean, and they host an
    astonishing variety of life that has adapted to constant change in temperature and salinity.</p>
    <p>Researchers have long used these pools as natural laboratories, because the organisms
    living there must cope with waves, predators, and hours of exposure to the open air each day.</p>
    <p>Protecting tide pools means limiting trampling and collection, which are the two largest
    human pressures on these fragile habitats along every populated stretch of coastline.</p>
  </article>
  <footer>Copyright Coastal Notes</footer>
</body>
</html>
"""

EMPTY_HTML = "<!DOCTYPE html><html><head><title></title></head><body></body></html>"


def test_parse_feed_maps_entries(now):
    pub = datetime(2026, 10, 2, 9, 30, tzinfo=timezone.utc)
    data = build_rss(
        [
            {
                "title": "Hello",
                "link": "https://example.com/hello",
                "guid": "id-1",
                "description": "Summary text",
                "pub_date": pub,
                "author": "writer@example.com (Writer)",
            }
        ]
    )

    parsed = parse_feed(data, "https://example.com/feed.xml", now=now)

    assert parsed.title == "Example Feed"
    assert parsed.site_url == "https://example.com/"
    assert parsed.scraped is False
    [entry] = parsed.entries
    assert entry.guid == "id-1"
    assert entry.title == "Hello"
    assert entry.url == "https://example.com/hello"
    assert entry.published_at == pub
    assert entry.summary == "Summary text"
    assert entry.content == "Summary text"


def test_parse_feed_guid_falls_back_to_link_then_random(now):
    data = build_rss(
        [
            {"title": "With link", "link": "https://example.com/only-link"},
            {"title": "Bare", "description": "no link or guid"},
        ]
    )

    first = parse_feed(data, "https://example.com/feed.xml", now=now)
    second = parse_feed(data, "https://example.com/feed.xml", now=now)

    assert first.entries[0].guid == "https://example.com/only-link"
    assert len(first.entries[1].guid) == 32
    # A synthesized guid is fresh on every parse.
    assert first.entries[1].guid != second.entries[1].guid


def test_parse_feed_defaults_missing_title_and_date(now):
    data = build_rss([{"link": "https://example.com/untitled", "description": "x"}])

    [entry] = parse_feed(data, "https://example.com/feed.xml", now=now).entries

    assert entry.title == "Untitled"
    assert entry.published_at == now


def test_parse_feed_rejects_html_pages():
    with pytest.raises(FeedParseError):
        parse_feed(ARTICLE_HTML.encode("utf-8"), "https://example.com/page")


def test_parse_feed_rejects_garbage():
    with pytest.raises(FeedParseError):
        parse_feed(b"\x00\x01 definitely not xml", "https://example.com/blob")


def test_scrape_identity_differs_per_call():
    assert scrape_identity("https://example.com/a", now_ns=1) != scrape_identity("https://example.com/a", now_ns=1)
    assert len(scrape_identity("https://example.com/a")) == 32


def test_html_to_text_drops_scripts():
    html = "<div><script>var x = 1;</script><p> One </p><p>Two</p></div>"
    assert html_to_text(html) == "One\nTwo"


def test_scraper_builds_single_entry(now):
    parsed = ContentScraper().scrape("https://coastal.example/tide-pools", html=ARTICLE_HTML, now=now)

    assert parsed.scraped is True
    assert parsed.site_url == "https://coastal.example/tide-pools"
    [entry] = parsed.entries
    assert entry.url == "https://coastal.example/tide-pools"
    assert entry.published_at == now
    assert "Tide pools are small worlds" in html_to_text(entry.content)
    assert entry.summary
    assert entry.guid


def test_scraper_raises_when_no_content():
    with pytest.raises(ExtractionFailed):
        ContentScraper().scrape("https://coastal.example/empty", html=EMPTY_HTML)


def test_scraper_download_failure_is_extraction_failed(stub_server):
    stub_server.fail("https://coastal.example/down", httpx.ConnectError("refused"))
    scraper = ContentScraper(client=stub_server.client())

    with pytest.raises(ExtractionFailed):
        scraper.scrape("https://coastal.example/down")


def test_fetch_url_sends_user_agent(stub_server):
    stub_server.add("https://example.com/feed.xml", build_rss([]))
    cfg = FetchConfig(user_agent="feed-hub-test/1.0")

    result = fetch_url("https://example.com/feed.xml", cfg, client=stub_server.client())

    assert result.error is None
    assert result.status_code == 200
    assert stub_server.requests[0].headers["User-Agent"] == "feed-hub-test/1.0"


def test_fetch_url_reports_http_errors(stub_server):
    stub_server.add("https://example.com/gone", b"", status=410)

    result = fetch_url("https://example.com/gone", FetchConfig(), client=stub_server.client())

    assert result.content is None
    assert result.error == "HTTP 410"


def test_fetcher_parses_feed(stub_server):
    stub_server.add("https://example.com/feed.xml", build_rss(numbered_items(3)))
    fetcher = FeedFetcher(client=stub_server.client())

    parsed = fetcher.fetch("https://example.com/feed.xml")

    assert len(parsed.entries) == 3
    assert parsed.scraped is False


def test_fetcher_falls_back_to_scraper(stub_server):
    stub_server.add("https://coastal.example/tide-pools", ARTICLE_HTML, content_type="text/html")
    fetcher = FeedFetcher(client=stub_server.client())

    parsed = fetcher.fetch("https://coastal.example/tide-pools")

    assert parsed.scraped is True
    assert len(parsed.entries) == 1
    # The page body is reused; the scraper does not download it again.
    assert len(stub_server.requests) == 1


def test_fetcher_network_error(stub_server):
    stub_server.fail("https://example.com/feed.xml", httpx.ConnectTimeout("timed out"))
    fetcher = FeedFetcher(client=stub_server.client())

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("https://example.com/feed.xml")

    assert excinfo.value.kind == FetchError.NETWORK


def test_fetcher_scrape_failed(stub_server):
    stub_server.add("https://example.com/blank", EMPTY_HTML, content_type="text/html")
    fetcher = FeedFetcher(client=stub_server.client())

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("https://example.com/blank")

    assert excinfo.value.kind == FetchError.SCRAPE_FAILED
    assert "Unable to parse feed or scrape website" in str(excinfo.value)


def test_fetcher_without_scraping_reports_parse_failure(stub_server):
    stub_server.add("https://coastal.example/tide-pools", ARTICLE_HTML, content_type="text/html")
    fetcher = FeedFetcher(scrape_cfg=ScrapeConfig(enabled=False), client=stub_server.client())

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("https://coastal.example/tide-pools")

    assert excinfo.value.kind == FetchError.PARSE_FAILED
