from __future__ import annotations

import asyncio
import json
import time

import httpx
import pytest

from src.services.models import RssArticle, RssSource
from src.services.rss_client import (
    FeedParseError,
    RssClient,
    canonicalize_url,
    finalize_pool,
    parse_date_ms,
    parse_feed_xml,
)


def rss_body(*items: tuple[str, str, str]) -> str:
    entries = "".join(
        f"<item><title>{title}</title><link>{link}</link>"
        + (f"<pubDate>{pub_date}</pubDate>" if pub_date else "")
        + "<description>&lt;p&gt;Body for "
        + title
        + "&lt;/p&gt;</description></item>"
        for title, link, pub_date in items
    )
    return f'<?xml version="1.0"?><rss version="2.0"><channel><title>T</title>{entries}</channel></rss>'


def make_client(handler, **kwargs) -> RssClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("json_proxy", None)
    kwargs.setdefault("relay", None)
    return RssClient(http_client, retry_backoff=0, retry_step=0, **kwargs)


def test_canonicalize_url_strips_tracking_and_fragment() -> None:
    url = "HTTPS://News.Example.com/world/story?id=7&utm_source=x&fbclid=abc#comments"

    assert canonicalize_url(url) == "https://news.example.com/world/story?id=7"


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com",
        "https://example.com/a b?q=hello world&utm_medium=rss",
        "http://example.com/path?x=1&x=2&gclid=zz#frag",
        "not a url",
        "",
    ],
)
def test_canonicalize_url_is_idempotent(url: str) -> None:
    once = canonicalize_url(url)

    assert canonicalize_url(once) == once


def test_parse_date_ms_handles_rfc822_iso_and_garbage() -> None:
    assert parse_date_ms("Tue, 02 Jan 2024 10:00:00 GMT") == parse_date_ms("2024-01-02T10:00:00Z")
    assert parse_date_ms("2024-01-02T10:00:00Z") > 0
    assert parse_date_ms("yesterday-ish") == 0
    assert parse_date_ms("") == 0


def test_finalize_pool_sorts_pre_epoch_dates_before_undated() -> None:
    def article(title: str, pub_date: str) -> RssArticle:
        return RssArticle(
            index=-1, title=title, link=f"https://a.test/{title}", pub_date=pub_date, snippet="", source="A", scope="global"
        )

    pool = finalize_pool(
        [
            article("nodate", "garbage"),
            article("old", "Fri, 01 Jan 1960 00:00:00 GMT"),
            article("recent", "2024-01-02T10:00:00Z"),
        ],
        max_total=10,
    )

    assert [item.title for item in pool] == ["recent", "old", "nodate"]
    assert [item.index for item in pool] == [0, 1, 2]


def test_parse_feed_xml_strips_html_and_canonicalizes_links() -> None:
    body = rss_body(("Hello", "https://a.test/1?utm_campaign=z", "Tue, 02 Jan 2024 10:00:00 GMT"))

    articles = parse_feed_xml(body, "Source A", "global")

    assert len(articles) == 1
    assert articles[0].link == "https://a.test/1"
    assert articles[0].snippet == "Body for Hello"
    assert articles[0].source == "Source A"


def test_parse_feed_xml_rejects_html_pages() -> None:
    with pytest.raises(FeedParseError):
        parse_feed_xml("<!DOCTYPE html><html><body>blocked</body></html>", "S", "global")
    with pytest.raises(FeedParseError):
        parse_feed_xml("   ", "S", "global")


async def test_fetch_rss_pool_dedupes_orders_and_excludes() -> None:
    feeds = {
        "https://a.test/feed": rss_body(
            ("Old story", "https://news.test/old", "Mon, 01 Jan 2024 08:00:00 GMT"),
            ("Shared story", "https://news.test/shared?utm_source=a", "Wed, 03 Jan 2024 08:00:00 GMT"),
            ("Undated story", "https://news.test/undated", ""),
        ),
        "https://b.test/feed": rss_body(
            ("Shared story again", "https://news.test/shared", "Wed, 03 Jan 2024 08:00:00 GMT"),
            ("Newest story", "https://news.test/newest", "Thu, 04 Jan 2024 08:00:00 GMT"),
            ("Excluded story", "https://news.test/excluded", "Fri, 05 Jan 2024 08:00:00 GMT"),
        ),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=feeds[str(request.url)])

    client = make_client(handler)
    sources = [
        RssSource(name="A", url="https://a.test/feed", scope="global"),
        RssSource(name="B", url="https://b.test/feed", scope="global"),
    ]

    pool = await client.fetch_rss_pool(
        scope="global",
        sources=sources,
        per_source_limit=10,
        max_total=50,
        exclude_urls=["https://news.test/excluded#top"],
        min_needed=100,
    )

    links = [article.link for article in pool]
    assert len(links) == len(set(links))
    assert "https://news.test/excluded" not in links
    assert links[0] == "https://news.test/newest"
    assert links[-1] == "https://news.test/undated"
    dates = [parse_date_ms(article.pub_date) for article in pool if article.pub_date]
    assert dates == sorted(dates, reverse=True)
    assert [article.index for article in pool] == list(range(len(pool)))
    await client.client.aclose()


async def test_fetch_rss_pool_tolerates_failing_sources() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "down.test":
            return httpx.Response(503)
        if request.url.host == "html.test":
            return httpx.Response(200, text="<html><body>captcha</body></html>")
        return httpx.Response(200, text=rss_body(("Only story", "https://ok.test/1", "")))

    client = make_client(handler)
    sources = [
        RssSource(name="Down", url="https://down.test/rss", scope="europe"),
        RssSource(name="Html", url="https://html.test/rss", scope="europe"),
        RssSource(name="Ok", url="https://ok.test/rss", scope="europe"),
    ]

    pool = await client.fetch_rss_pool("europe", sources, per_source_limit=5, max_total=10)

    assert [article.link for article in pool] == ["https://ok.test/1"]
    assert pool[0].source == "Ok"
    assert pool[0].scope == "europe"
    await client.client.aclose()


async def test_fetch_feed_items_falls_back_from_json_proxy_to_relay() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        if request.url.host == "proxy.test":
            return httpx.Response(200, json={"status": "error", "message": "rate limited"})
        assert request.url.params["url"] == "https://feed.test/rss"
        return httpx.Response(200, text=rss_body(("Relayed", "https://r.test/1", "")))

    client = make_client(
        handler,
        json_proxy="https://proxy.test/api.json",
        relay="https://relay.test/raw",
    )
    source = RssSource(name="Feed", url="https://feed.test/rss", scope="global")

    items = await client.fetch_feed_items(source, limit=5)

    assert [item.title for item in items] == ["Relayed"]
    assert calls == ["proxy.test", "relay.test"]
    await client.client.aclose()


async def test_fetch_feed_items_reads_json_proxy_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["rss_url"] == "https://feed.test/rss"
        payload = {
            "status": "ok",
            "items": [
                {
                    "title": "Proxy story",
                    "link": "https://p.test/1?utm_source=rss",
                    "pubDate": "2024-01-02 10:00:00",
                    "description": "<b>Bold</b> text",
                }
            ],
        }
        return httpx.Response(200, content=json.dumps(payload).encode())

    client = make_client(handler, json_proxy="https://proxy.test/api.json")
    source = RssSource(name="Feed", url="https://feed.test/rss", scope="global")

    items = await client.fetch_feed_items(source, limit=5)

    assert len(items) == 1
    assert items[0].link == "https://p.test/1"
    assert items[0].snippet == "Bold text"
    await client.client.aclose()


async def test_fetch_rss_pool_prefers_server_pool_when_healthy() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/rss/health":
            return httpx.Response(200, json={"ok": True})
        if request.url.path == "/api/rss/articles":
            assert request.url.params["scope"] == "africa"
            return httpx.Response(
                200,
                json={
                    "items": [
                        {"title": "A", "link": "https://s.test/a", "pubDate": "2024-01-01T00:00:00Z"},
                        {"title": "B", "link": "https://s.test/b", "pubDate": "2024-01-02T00:00:00Z"},
                        {"title": "A dup", "link": "https://s.test/a#x"},
                    ]
                },
            )
        raise AssertionError(f"unexpected request {request.url}")

    client = make_client(handler, aggregator_url="https://agg.test/")
    pool = await client.fetch_rss_pool("africa", [], per_source_limit=10, max_total=10)

    assert [article.link for article in pool] == ["https://s.test/b", "https://s.test/a"]
    assert all(article.scope == "africa" for article in pool)
    await client.client.aclose()


async def test_fetch_rss_pool_stops_dispatch_once_enough_articles() -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.host)
        return httpx.Response(200, text=rss_body((request.url.host, f"https://{request.url.host}/story", "")))

    client = make_client(handler)
    sources = [RssSource(name=str(n), url=f"https://feed{n}.test/rss", scope="global") for n in range(10)]

    pool = await client.fetch_rss_pool("global", sources, per_source_limit=5, max_total=50, min_needed=3, concurrency=1)

    assert requested == ["feed0.test", "feed1.test", "feed2.test"]
    assert len(pool) == 3
    await client.client.aclose()


async def test_fetch_rss_pool_returns_at_deadline_and_drops_late_results() -> None:
    release = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "slow.test":
            await release.wait()
            return httpx.Response(200, text=rss_body(("Late", "https://slow.test/late", "")))
        return httpx.Response(200, text=rss_body(("Fast", "https://fast.test/1", "")))

    client = make_client(handler)
    sources = [
        RssSource(name="Slow", url="https://slow.test/rss", scope="global"),
        RssSource(name="Fast", url="https://fast.test/rss", scope="global"),
    ]

    started = time.monotonic()
    pool = await client.fetch_rss_pool(
        "global", sources, per_source_limit=5, max_total=10, min_needed=10, concurrency=2, time_budget_ms=500
    )
    elapsed = time.monotonic() - started

    assert elapsed < 2.0
    assert [article.link for article in pool] == ["https://fast.test/1"]

    release.set()
    await asyncio.gather(*list(client._stragglers))
    assert [article.link for article in pool] == ["https://fast.test/1"]
    await client.client.aclose()
