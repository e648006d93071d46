"""
Concurrent, time-budgeted RSS aggregation.

Feeds are fetched by a small pool of asyncio workers sharing one cursor over the
source list. Each source is tried through an ordered list of fetch strategies
(JSON proxy, raw XML via a relay, raw XML direct); the first one that yields items
wins. Articles are canonicalized and deduplicated by URL.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Iterable, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import feedparser
import httpx
from bs4 import BeautifulSoup

from src.services.config import DEFAULT_JSON_PROXY, DEFAULT_RELAY, DEFAULT_USER_AGENT
from src.services.models import NEWS_SCOPES, RssArticle, RssSource

LOGGER = logging.getLogger(__name__)

TRACKING_PARAMS = frozenset({"fbclid", "gclid", "igshid", "mc_cid", "mc_eid"})
JSON_PROXY_TIMEOUT = 7.0
RELAY_TIMEOUT = 7.5
DIRECT_TIMEOUT = 7.5
HEALTH_TIMEOUT = 0.9
SERVER_POOL_TIMEOUT = 3.5
MIN_TIME_BUDGET_MS = 500


class FeedParseError(ValueError):
    """Raised when a feed body is empty, HTML, or not a recognizable feed."""


SOURCE_ERRORS = (httpx.HTTPError, FeedParseError, ValueError)

FetchStrategy = Callable[[RssSource, int], Awaitable[list[RssArticle]]]


def canonicalize_url(url: str | None) -> str:
    """Drop fragments and tracking parameters; applying it twice changes nothing."""
    raw = (url or "").strip()
    if not raw:
        return ""
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw.split("#")[0].strip()
    if not parts.scheme or not parts.netloc:
        return raw.split("#")[0].strip()
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.lower().startswith("utm_") and key.lower() not in TRACKING_PARAMS
    ]
    return urlunsplit(
        (
            parts.scheme.lower(),
            parts.netloc.lower(),
            parts.path or "/",
            urlencode(query, doseq=True),
            "",
        )
    )


def strip_html(value: str | None) -> str:
    if not value:
        return ""
    soup = BeautifulSoup(value, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = soup.get_text(" ", strip=True)
    return re.sub(r"\s+", " ", text).strip()


def parse_feed_date(raw: str | None) -> int | None:
    """Epoch milliseconds for RFC 822 or ISO 8601 text; None when unparsable."""
    if not raw or not raw.strip():
        return None
    text = raw.strip()
    parsed: datetime | None = None
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        parsed = None
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            LOGGER.debug("Unable to parse feed date %s", raw)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def parse_date_ms(raw: str | None) -> int:
    """Like ``parse_feed_date`` but 0 when unparsable."""
    parsed = parse_feed_date(raw)
    return parsed if parsed is not None else 0


def _looks_like_html(text: str) -> bool:
    head = text.lstrip()[:256].lower()
    return head.startswith("<!doctype html") or head.startswith("<html")


def parse_feed_xml(text: str, source: str, scope: str) -> list[RssArticle]:
    """Parse an RSS/Atom body with feedparser, rejecting HTML or garbage responses."""
    if not text or not text.strip():
        raise FeedParseError("empty feed body")
    if _looks_like_html(text):
        raise FeedParseError("response is an HTML page, not a feed")
    parsed = feedparser.parse(text)
    if not parsed.entries and (parsed.bozo or not parsed.version):
        raise FeedParseError(f"unparsable feed: {parsed.get('bozo_exception')}")
    articles: list[RssArticle] = []
    for entry in parsed.entries:
        title = (entry.get("title") or "").strip()
        link = canonicalize_url(entry.get("link"))
        if not title or not link:
            continue
        body = entry.get("summary") or ""
        if not body and entry.get("content"):
            body = entry["content"][0].get("value", "")
        articles.append(
            RssArticle(
                index=-1,
                title=title,
                link=link,
                pub_date=(entry.get("published") or entry.get("updated") or "").strip(),
                snippet=strip_html(body),
                source=source,
                scope=scope,
            )
        )
    return articles


def finalize_pool(items: Iterable[RssArticle], max_total: int) -> list[RssArticle]:
    """Newest first (undated last), capped and re-indexed."""

    def sort_key(item: RssArticle) -> tuple[bool, int]:
        published = parse_feed_date(item.pub_date)
        return (published is not None, published or 0)

    ordered = sorted(items, key=sort_key, reverse=True)
    return [
        RssArticle(
            index=index,
            title=item.title,
            link=item.link,
            pub_date=item.pub_date,
            snippet=item.snippet,
            source=item.source,
            scope=item.scope,
        )
        for index, item in enumerate(ordered[:max_total])
    ]


class RssClient:
    """Fetch a deduplicated article pool from many feeds under a soft time budget."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        aggregator_url: str | None = None,
        json_proxy: str | None = DEFAULT_JSON_PROXY,
        relay: str | None = DEFAULT_RELAY,
        user_agent: str = DEFAULT_USER_AGENT,
        relay_attempts: int = 2,
        retry_backoff: float = 0.35,
        retry_step: float = 0.55,
    ) -> None:
        self.client = client
        self.aggregator_url = aggregator_url.rstrip("/") if aggregator_url else None
        self.json_proxy = json_proxy
        self.relay = relay
        self.user_agent = user_agent
        self.relay_attempts = max(1, relay_attempts)
        self.retry_backoff = retry_backoff
        self.retry_step = retry_step
        # Workers still in flight after a deadline; kept referenced until they finish.
        self._stragglers: set[asyncio.Task[None]] = set()

    @property
    def strategies(self) -> list[tuple[str, FetchStrategy]]:
        ordered: list[tuple[str, FetchStrategy]] = []
        if self.json_proxy:
            ordered.append(("json_proxy", self._fetch_via_json_proxy))
        if self.relay:
            ordered.append(("relay", self._fetch_via_relay))
        ordered.append(("direct", self._fetch_direct))
        return ordered

    async def fetch_rss_pool(
        self,
        scope: str,
        sources: Sequence[RssSource],
        per_source_limit: int,
        max_total: int,
        exclude_urls: Iterable[str] | None = None,
        min_needed: int = 1,
        concurrency: int = 4,
        time_budget_ms: int = 3500,
    ) -> list[RssArticle]:
        per_source_limit = max(1, int(per_source_limit))
        max_total = max(1, int(max_total))
        min_needed = max(1, int(min_needed))
        concurrency = max(1, int(concurrency))
        time_budget_ms = max(MIN_TIME_BUDGET_MS, int(time_budget_ms))
        exclude = {canonicalize_url(url) for url in (exclude_urls or ())}
        exclude.discard("")

        server_pool = await self._try_fetch_server_pool(
            scope, per_source_limit, max_total, min(SERVER_POOL_TIMEOUT, time_budget_ms / 1000)
        )
        if server_pool:
            by_link: dict[str, RssArticle] = {}
            for item in server_pool:
                if not item.link or item.link in exclude:
                    continue
                by_link.setdefault(item.link, item)
                if len(by_link) >= max_total:
                    break
            return finalize_pool(by_link.values(), max_total)

        return await self._fetch_with_workers(
            list(sources), per_source_limit, max_total, exclude, min_needed, concurrency, time_budget_ms
        )

    async def _fetch_with_workers(
        self,
        sources: list[RssSource],
        per_source_limit: int,
        max_total: int,
        exclude: set[str],
        min_needed: int,
        concurrency: int,
        time_budget_ms: int,
    ) -> list[RssArticle]:
        started = time.monotonic()
        budget = time_budget_ms / 1000
        by_link: dict[str, RssArticle] = {}
        cursor = iter(sources)
        state = {"stop": False}

        async def worker() -> None:
            while not state["stop"]:
                if time.monotonic() - started > budget:
                    state["stop"] = True
                    break
                source = next(cursor, None)
                if source is None:
                    break
                try:
                    items = await self.fetch_feed_items(source, per_source_limit)
                except SOURCE_ERRORS as exc:
                    LOGGER.debug("Feed %s unavailable: %s", source.name, exc)
                    continue
                for item in items:
                    if not item.title or not item.link or item.link in exclude:
                        continue
                    if item.link in by_link:
                        continue
                    by_link[item.link] = RssArticle(
                        index=-1,
                        title=item.title,
                        link=item.link,
                        pub_date=item.pub_date,
                        snippet=item.snippet,
                        source=(item.source or source.name).strip(),
                        scope=source.scope,
                    )
                    if len(by_link) >= min_needed:
                        state["stop"] = True
                        break

        workers = [asyncio.create_task(worker()) for _ in range(concurrency)]
        done, pending = await asyncio.wait(workers, timeout=budget)
        # Soft deadline: in-flight requests finish in the background, new dispatch stops.
        state["stop"] = True
        for task in pending:
            self._stragglers.add(task)
            task.add_done_callback(self._stragglers.discard)
        for task in done:
            exc = task.exception()
            if exc is not None:
                LOGGER.warning("RSS worker failed: %s", exc)
        snapshot = list(by_link.values())
        LOGGER.debug(
            "RSS pool collected %s unique articles from %s sources in %.2fs",
            len(snapshot),
            len(sources),
            time.monotonic() - started,
        )
        return finalize_pool(snapshot, max_total)

    async def fetch_feed_items(self, source: RssSource, limit: int) -> list[RssArticle]:
        last_error: Exception | None = None
        answered = False
        for name, strategy in self.strategies:
            try:
                items = await strategy(source, limit)
            except SOURCE_ERRORS as exc:
                LOGGER.debug("Strategy %s failed for %s: %s", name, source.url, exc)
                last_error = exc
                continue
            answered = True
            if items:
                return items[:limit]
        if not answered and last_error is not None:
            raise last_error
        return []

    async def _fetch_via_json_proxy(self, source: RssSource, limit: int) -> list[RssArticle]:
        response = await self.client.get(
            self.json_proxy,
            params={"rss_url": source.url, "count": str(limit)},
            headers={"Accept": "application/json", "User-Agent": self.user_agent},
            timeout=JSON_PROXY_TIMEOUT,
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict) or data.get("status") != "ok" or not isinstance(data.get("items"), list):
            raise FeedParseError("json proxy returned an error payload")
        articles: list[RssArticle] = []
        for item in data["items"][:limit]:
            if not isinstance(item, dict):
                continue
            title = str(item.get("title") or "").strip()
            link = canonicalize_url(str(item.get("link") or ""))
            if not title or not link:
                continue
            articles.append(
                RssArticle(
                    index=-1,
                    title=title,
                    link=link,
                    pub_date=str(item.get("pubDate") or item.get("publishedDate") or item.get("date") or "").strip(),
                    snippet=strip_html(str(item.get("description") or item.get("content") or "")),
                    source=source.name,
                    scope=source.scope,
                )
            )
        return articles

    async def _fetch_via_relay(self, source: RssSource, limit: int) -> list[RssArticle]:
        attempt = 0
        while True:
            try:
                response = await self.client.get(
                    self.relay,
                    params={"url": source.url},
                    headers={"Accept": "*/*", "User-Agent": self.user_agent},
                    timeout=RELAY_TIMEOUT,
                )
                response.raise_for_status()
                return parse_feed_xml(response.text, source.name, source.scope)[:limit]
            except SOURCE_ERRORS:
                attempt += 1
                if attempt >= self.relay_attempts:
                    raise
                await asyncio.sleep(self.retry_backoff + (attempt - 1) * self.retry_step)

    async def _fetch_direct(self, source: RssSource, limit: int) -> list[RssArticle]:
        response = await self.client.get(
            source.url,
            headers={"Accept": "application/rss+xml, application/atom+xml, */*", "User-Agent": self.user_agent},
            timeout=DIRECT_TIMEOUT,
            follow_redirects=True,
        )
        response.raise_for_status()
        return parse_feed_xml(response.text, source.name, source.scope)[:limit]

    async def _try_fetch_server_pool(
        self,
        scope: str,
        per_source_limit: int,
        max_total: int,
        timeout: float,
    ) -> list[RssArticle] | None:
        if not self.aggregator_url:
            return None
        try:
            health = await self.client.get(
                f"{self.aggregator_url}/api/rss/health",
                headers={"Accept": "application/json"},
                timeout=min(HEALTH_TIMEOUT, timeout),
            )
            if not health.is_success:
                return None
            response = await self.client.get(
                f"{self.aggregator_url}/api/rss/articles",
                params={"scope": scope, "perSourceLimit": per_source_limit, "maxTotal": max_total},
                headers={"Accept": "application/json"},
                timeout=timeout,
            )
            if not response.is_success:
                return None
            data: Any = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.debug("RSS aggregator unavailable: %s", exc)
            return None
        raw_items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(raw_items, list):
            return None
        articles: list[RssArticle] = []
        for item in raw_items:
            if not isinstance(item, dict):
                continue
            title = str(item.get("title") or "").strip()
            link = canonicalize_url(str(item.get("link") or ""))
            if not title or not link:
                continue
            item_scope = item.get("scope")
            articles.append(
                RssArticle(
                    index=-1,
                    title=title,
                    link=link,
                    pub_date=str(item.get("pubDate") or "").strip(),
                    snippet=str(item.get("snippet") or "").strip(),
                    source=str(item.get("source") or "").strip(),
                    scope=item_scope if item_scope in NEWS_SCOPES else scope,
                )
            )
        return articles
