"""
LLM-backed extraction of geolocated intel signals from RSS articles.

One chat-completion request covers the whole article batch. Whatever the model
returns is coerced into the closed schema: URLs are repaired against the RSS pool,
locations fall back to the capital of the first mentioned country, and evidence is
forced to be a literal substring of the article snippet. Every RSS article yields
exactly one news item, even when the model output is unusable.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

import httpx

from src.services.config import IntelConfig, load_config
from src.services.models import (
    NEWS_CATEGORIES,
    NEWS_SCOPES,
    SEVERITIES,
    SIGNAL_KINDS,
    IntelLocation,
    IntelNewsItem,
    IntelSignal,
    LLMSettings,
    RssArticle,
    SignalBattle,
    SignalInfra,
    SignalMovement,
    SignalUnit,
    clamp01,
    is_valid_lon_lat,
)
from src.services.place_mentions import LocationFallback, build_capital_fallback, extract_city_hints
from src.services.rss_client import RssClient, canonicalize_url
from src.services.rss_sources import sources_for_scope

LOGGER = logging.getLogger(__name__)

CONFIG_ERROR_MESSAGE = "API Endpoint and Key are required. Please configure them in settings."

DEPTH_CANDIDATES = {"initial": (20, 40, 80), "refresh": (10, 20, 40, 80)}
TIME_BUDGET_MS = {"initial": 5500, "refresh": 3500}
# Depth escalation gives up once this many per-attempt budgets have elapsed.
OVERALL_BUDGET_FACTOR = 3
POOL_MAX_TOTAL = 400
POOL_CONCURRENCY = 4
MIN_NEEDED_FACTOR = 6

EVIDENCE_MAX_CHARS = 120
SNIPPET_PROMPT_CHARS = 500
SUMMARY_FALLBACK_CHARS = 220
DESCRIPTION_FALLBACK_CHARS = 300
PREVIEW_CONFIDENCE = 0.05
EMPTY_SIGNALS_CONFIDENCE = 0.1

CATEGORY_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (
        "conflict",
        re.compile(
            r"\b(strike|missile|drone|attack|war|battle|shell|air\s*raid|invasion|ceasefire|hostage|terror|military)"
        ),
    ),
    (
        "politics",
        re.compile(r"\b(election|parliament|president|prime\s*minister|diplomacy|sanction|treaty|protest|policy|vote)"),
    ),
    (
        "economy",
        re.compile(r"\b(market|stocks|inflation|gdp|trade|tariff|bank|interest\s*rate|oil\s*price|jobs|econom)"),
    ),
    ("disaster", re.compile(r"\b(earthquake|hurricane|storm|flood|wildfire|tsunami|eruption|disaster|rescue)")),
    ("health", re.compile(r"\b(outbreak|virus|covid|flu|ebola|vaccine|who\b|health|disease)")),
    (
        "tech",
        re.compile(r"\b(ai\b|chip|semiconductor|software|cyber|hack|iphone|google|microsoft|openai|tech)"),
    ),
    ("science", re.compile(r"\b(nasa|space|rocket|telescope|research|study|science|quantum)")),
    ("energy", re.compile(r"\b(oil|gas|pipeline|refinery|power\s*grid|nuclear|uranium|energy)")),
]


class IntelConfigurationError(ValueError):
    """Raised before any network activity when the LLM endpoint or key is missing."""


@dataclass
class FetchIntelNewsOptions:
    mode: str = "refresh"
    scope: str = "global"
    exclude_urls: Sequence[str] = ()
    target_count: int = 10
    on_preview: Optional[Callable[[list[IntelNewsItem]], None]] = None


@dataclass
class _ArticleContext:
    article: RssArticle
    fallback: LocationFallback
    category: str
    hints: list[str] = field(default_factory=list)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def fnv1a32(value: str) -> int:
    hash_value = 0x811C9DC5
    for char in value:
        hash_value ^= ord(char)
        hash_value = (hash_value * 0x01000193) & 0xFFFFFFFF
    return hash_value


def _to_base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def stable_news_id_from_url(url: str | None) -> str:
    """Deterministic id for a canonical URL, identical across refreshes."""
    value = (url or "").strip()
    if not value:
        return ""
    return f"news:{_to_base36(fnv1a32(value))}"


def as_severity(value: Any) -> str:
    return value if value in SEVERITIES else "medium"


def as_kind(value: Any) -> str:
    return value if value in SIGNAL_KINDS else "event"


def as_category(value: Any) -> str | None:
    text = value.strip().lower() if isinstance(value, str) else ""
    return text if text in NEWS_CATEGORIES else None


def guess_category(text: str | None) -> str:
    lowered = (text or "").lower()
    if not lowered:
        return "other"
    for category, pattern in CATEGORY_PATTERNS:
        if pattern.search(lowered):
            return category
    return "other"


def pick_best_url_from_rss(title: str, articles: Sequence[RssArticle]) -> str:
    wanted = (title or "").lower()
    if not wanted:
        return ""
    for article in articles:
        candidate = (article.title or "").lower()
        if candidate and (candidate == wanted or wanted in candidate or candidate in wanted):
            return article.link
    return ""


def normalize_evidence(evidence: Any, snippet: str) -> str:
    """Return evidence that is a substring of ``snippet``, else a clip of the snippet."""
    text = evidence.strip() if isinstance(evidence, str) else ""
    text = text[:EVIDENCE_MAX_CHARS]
    if not text:
        return snippet[:EVIDENCE_MAX_CHARS]
    if snippet and text in snippet:
        return text
    compact_snippet = re.sub(r"\s+", " ", snippet)
    compact_evidence = re.sub(r"\s+", " ", text)
    if compact_evidence and compact_evidence in compact_snippet:
        return compact_evidence[:EVIDENCE_MAX_CHARS]
    return snippet[:EVIDENCE_MAX_CHARS]


def _coerce_coordinates(value: Any) -> tuple[float, float] | None:
    if not is_valid_lon_lat(value):
        return None
    return (float(value[0]), float(value[1]))


def sanitize_location(raw: Any, fallback: LocationFallback) -> tuple[IntelLocation, bool]:
    """Return the cleaned location and whether the fallback coordinates were used."""
    raw = raw if isinstance(raw, dict) else {}
    name = str(raw.get("name") or "").strip() or fallback.picked or "Unknown"
    country = raw.get("country")
    country = (country.strip() or None) if isinstance(country, str) else fallback.country
    coords = _coerce_coordinates(raw.get("coordinates"))
    if coords is None:
        return IntelLocation(name=name, country=country, coordinates=fallback.coordinates), True
    return IntelLocation(name=name, country=country, coordinates=coords), False


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _coerce_unit(raw: Any) -> SignalUnit | None:
    if not isinstance(raw, dict):
        return None
    return SignalUnit(
        id=_optional_str(raw.get("id")),
        name=_optional_str(raw.get("name")),
        type=_optional_str(raw.get("type")),
        affiliation=_optional_str(raw.get("affiliation")),
    )


def _coerce_infra(raw: Any) -> SignalInfra | None:
    if not isinstance(raw, dict):
        return None
    return SignalInfra(
        name=_optional_str(raw.get("name")),
        type=_optional_str(raw.get("type")),
        status=_optional_str(raw.get("status")),
    )


def _coerce_battle(raw: Any) -> SignalBattle | None:
    if not isinstance(raw, dict):
        return None
    return SignalBattle(type=_optional_str(raw.get("type")))


def _coerce_movement(raw: Any, location: IntelLocation, fallback: LocationFallback) -> SignalMovement | None:
    if not isinstance(raw, dict):
        return None
    origin = None
    if isinstance(raw.get("from"), dict):
        origin, _ = sanitize_location(raw["from"], fallback)
    destination = location
    if isinstance(raw.get("to"), dict):
        destination, _ = sanitize_location(raw["to"], fallback)
    return SignalMovement(to=destination, from_=origin)


def _fallback_location(fallback: LocationFallback) -> IntelLocation:
    return IntelLocation(
        name=fallback.picked or fallback.country or "Unknown",
        country=fallback.country,
        coordinates=fallback.coordinates,
    )


def build_fallback_signal(
    signal_id: str,
    title: str,
    description: str,
    snippet: str,
    fallback: LocationFallback,
    confidence: float,
) -> IntelSignal:
    return IntelSignal(
        id=signal_id,
        kind="event",
        title=title or "Intel Update",
        description=description,
        severity="low",
        location=_fallback_location(fallback),
        evidence=snippet[:EVIDENCE_MAX_CHARS],
        confidence=confidence,
        verified=False,
        location_reliability="capital_fallback",
    )


def build_fallback_item(
    article: RssArticle,
    context: _ArticleContext,
    scope: str,
    confidence: float = PREVIEW_CONFIDENCE,
    is_preview: bool = False,
) -> IntelNewsItem:
    """News item built purely from RSS data when the model gives nothing usable."""
    stable_id = stable_news_id_from_url(article.link) or f"news-fallback-{article.index}"
    snippet = article.snippet or ""
    signal_id = f"sig-{stable_id}-preview" if is_preview else f"sig-{stable_id}-0"
    return IntelNewsItem(
        id=stable_id,
        title=article.title,
        summary=snippet[:SUMMARY_FALLBACK_CHARS],
        source=article.source or "Unknown",
        url=article.link,
        timestamp=article.pub_date or _utc_now_iso(),
        signals=[
            build_fallback_signal(
                signal_id,
                article.title,
                snippet[:DESCRIPTION_FALLBACK_CHARS],
                snippet,
                context.fallback,
                confidence,
            )
        ],
        scope=scope,
        category=context.category,
        is_preview=is_preview,
        mentions=list(context.fallback.mentions),
    )


def parse_model_items(text: str | None) -> list[dict[str, Any]]:
    """Best-effort JSON array extraction; code fences are stripped, failures yield []."""
    if not text:
        return []
    cleaned = text.replace("```json", "").replace("```", "").strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        first_bracket = cleaned.find("[")
        last_bracket = cleaned.rfind("]")
        if first_bracket == -1 or last_bracket <= first_bracket:
            LOGGER.debug("Model output is not JSON.")
            return []
        try:
            payload = json.loads(cleaned[first_bracket : last_bracket + 1])
        except json.JSONDecodeError:
            LOGGER.debug("Failed to parse model output as JSON.", exc_info=True)
            return []
    if not isinstance(payload, list):
        return []
    return [item if isinstance(item, dict) else {} for item in payload]


def build_system_prompt(article_count: int) -> str:
    return "\n".join(
        [
            "You are a real-time intelligence analyst.",
            f"You will be given {article_count} RSS articles about global breaking news from multiple sources.",
            f"Generate exactly {article_count} news items (one per provided RSS article) and return ONLY a valid JSON array (no markdown).",
            "",
            "Each news item MUST be an object with keys:",
            "- id (string)",
            "- title (string)",
            "- summary (string, 1-2 sentences)",
            "- category (string, one of: conflict|politics|economy|disaster|health|tech|science|energy|other)",
            "- source (string, MUST match the source name of the chosen url)",
            "- url (string, MUST be one of the provided RSS links)",
            "- timestamp (string, ISO-like date or best-effort)",
            "- signals (array, at least 1 element)",
            "",
            "Each signal MUST be an object with keys:",
            "- id (string)",
            '- kind ("event" | "movement" | "infrastructure" | "battle" | "unit")',
            "- title (string)",
            "- description (string)",
            '- severity ("low" | "medium" | "high")',
            "- location (object): { name (string), country (string optional), coordinates ([lon, lat]) }",
            "- evidence (string, MUST be copied as a direct substring from the provided article snippet, <= 120 chars)",
            "- confidence (number 0..1)",
            "",
            "Optional keys (use them when relevant):",
            '- movement (object) for kind="movement": { from?: location, to: location }',
            '- unit (object) for kind="movement" or kind="unit": { id?: string, name?: string, type?: "military"|"naval"|"air"|"base", affiliation?: "iran"|"us"|"allied"|"israel"|"other" }',
            '- infra (object) for kind="infrastructure": { name?: string, type?: "oil"|"nuclear"|"military_base"|"civilian", status?: "intact"|"damaged"|"destroyed" }',
            '- battle (object) for kind="battle": { type?: "kill"|"strike"|"capture" }',
            "",
            "Notes:",
            "- coordinates MUST be [longitude, latitude].",
            "- url MUST come from the provided RSS links list. Do not invent URLs.",
            "- Keep url and source exactly as provided for each article.",
            '- If kind="movement", include movement.to (it can be the same as location).',
            "- place_hints lists cities found in the article text; prefer them over guesses.",
            "- If you are unsure about the exact city, use the best country/region mentioned in the article and provide coordinates near its capital.",
            "- Do not include any markdown formatting like ```json.",
        ]
    )


def build_user_payload(contexts: Sequence[_ArticleContext]) -> dict[str, Any]:
    articles = [context.article for context in contexts]
    return {
        "rss": [
            {
                "id": f"rss-{article.index}",
                "title": article.title,
                "url": article.link,
                "timestamp": article.pub_date,
                "snippet": (article.snippet or "")[:SNIPPET_PROMPT_CHARS],
                "source": article.source,
                "scope": article.scope,
                "place_hints": context.hints,
            }
            for article, context in zip(articles, contexts)
        ],
        "allowed_urls": [article.link for article in articles],
        "allowed_sources": sorted({article.source for article in articles if article.source}),
    }


def validate_settings(settings: LLMSettings) -> None:
    if not settings.endpoint or not settings.api_key:
        raise IntelConfigurationError(CONFIG_ERROR_MESSAGE)


class ChatCompletionClient:
    """Minimal OpenAI-compatible ``/chat/completions`` caller."""

    def __init__(self, client: httpx.AsyncClient, settings: LLMSettings) -> None:
        self.client = client
        self.settings = settings

    async def complete(self, system: str, user: str) -> str | None:
        url = f"{self.settings.endpoint.rstrip('/')}/chat/completions"
        try:
            response = await self.client.post(
                url,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.settings.api_key}",
                },
                json={
                    "model": self.settings.model or "gpt-3.5-turbo",
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                },
                timeout=None,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            LOGGER.warning(
                "LLM API error: %s %s",
                exc.response.status_code,
                exc.response.text[:200],
            )
            return None
        except (httpx.HTTPError, ValueError):
            LOGGER.exception("LLM request to %s failed", url)
            return None
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            LOGGER.warning("LLM response missing choices[0].message.content")
            return None
        return content if isinstance(content, str) else None


class IntelExtractionService:
    def __init__(
        self,
        settings: LLMSettings,
        rss_client: RssClient,
        chat_client: ChatCompletionClient,
    ) -> None:
        self.settings = settings
        self.rss_client = rss_client
        self.chat_client = chat_client

    async def fetch_intel_news(self, options: FetchIntelNewsOptions | None = None) -> list[IntelNewsItem]:
        options = options or FetchIntelNewsOptions()
        validate_settings(self.settings)

        target_count = max(1, int(options.target_count))
        mode = "initial" if options.mode == "initial" else "refresh"
        scope = options.scope if options.scope in NEWS_SCOPES else "global"

        articles = await self._collect_articles(options, mode, scope, target_count)
        if not articles:
            # Never invent news when no source material exists.
            LOGGER.info("No RSS articles retrieved for scope=%s; returning empty result.", scope)
            return []

        contexts: dict[str, _ArticleContext] = {}
        for article in articles:
            text_blob = f"{article.title}\n{article.snippet}"
            contexts[article.link] = _ArticleContext(
                article=article,
                fallback=build_capital_fallback(article.title, article.snippet),
                category=guess_category(text_blob),
                hints=extract_city_hints(text_blob),
            )

        if options.on_preview is not None:
            self._emit_preview(options.on_preview, articles, contexts, scope)

        ordered_contexts = [contexts[article.link] for article in articles]
        user_payload = build_user_payload(ordered_contexts)
        content = await self.chat_client.complete(
            build_system_prompt(len(articles)),
            f"RSS_ARTICLES_JSON:\n{json.dumps(user_payload, ensure_ascii=False)}",
        )
        raw_items = parse_model_items(content)
        LOGGER.info("Model returned %s items for %s articles", len(raw_items), len(articles))

        allowed = set(contexts)
        out_by_url: dict[str, IntelNewsItem] = {}
        for position, raw in enumerate(raw_items):
            url = self._resolve_url(raw, position, articles, allowed)
            if not url or url in out_by_url:
                continue
            out_by_url[url] = self._build_item(raw, contexts[url], scope)

        final: list[IntelNewsItem] = []
        for article in articles:
            item = out_by_url.get(article.link)
            if item is None:
                item = build_fallback_item(article, contexts[article.link], scope)
            final.append(item)
        return final[:target_count]

    async def _collect_articles(
        self,
        options: FetchIntelNewsOptions,
        mode: str,
        scope: str,
        target_count: int,
    ) -> list[RssArticle]:
        budget_ms = TIME_BUDGET_MS[mode]
        deadline = time.monotonic() + OVERALL_BUDGET_FACTOR * budget_ms / 1000
        sources = sources_for_scope(scope)
        articles: list[RssArticle] = []
        for depth in DEPTH_CANDIDATES[mode]:
            pool = await self.rss_client.fetch_rss_pool(
                scope=scope,
                sources=sources,
                per_source_limit=depth,
                max_total=POOL_MAX_TOTAL,
                exclude_urls=options.exclude_urls,
                min_needed=target_count * MIN_NEEDED_FACTOR,
                concurrency=POOL_CONCURRENCY,
                time_budget_ms=budget_ms,
            )
            LOGGER.debug("RSS depth %s yielded %s articles", depth, len(pool))
            if len(pool) >= target_count:
                return pool[:target_count]
            articles = pool
            if time.monotonic() >= deadline:
                LOGGER.info("RSS depth escalation stopped at depth %s (time budget)", depth)
                break
        return articles

    @staticmethod
    def _emit_preview(
        callback: Callable[[list[IntelNewsItem]], None],
        articles: Sequence[RssArticle],
        contexts: dict[str, _ArticleContext],
        scope: str,
    ) -> None:
        preview = [
            build_fallback_item(article, contexts[article.link], scope, is_preview=True) for article in articles
        ]
        try:
            callback(preview)
        except Exception:  # noqa: BLE001
            LOGGER.warning("Preview callback failed", exc_info=True)

    @staticmethod
    def _resolve_url(
        raw: dict[str, Any],
        position: int,
        articles: Sequence[RssArticle],
        allowed: set[str],
    ) -> str:
        url = canonicalize_url(str(raw.get("url") or ""))
        if url in allowed:
            return url
        picked = pick_best_url_from_rss(str(raw.get("title") or "").strip(), articles)
        if picked:
            return picked
        if position < len(articles):
            return articles[position].link
        return ""

    def _build_item(self, raw: dict[str, Any], context: _ArticleContext, scope: str) -> IntelNewsItem:
        article = context.article
        url = article.link
        stable_id = stable_news_id_from_url(url) or str(raw.get("id") or f"news-{article.index}").strip()
        snippet = article.snippet or ""
        fallback = context.fallback
        title = str(raw.get("title") or "").strip() or article.title
        summary = str(raw.get("summary") or "").strip()

        signals: list[IntelSignal] = []
        raw_signals = raw.get("signals") if isinstance(raw.get("signals"), list) else []
        for index, raw_signal in enumerate(raw_signals):
            if not isinstance(raw_signal, dict):
                continue
            signals.append(self._build_signal(raw_signal, index, stable_id, title, summary, snippet, fallback))

        if not signals:
            signals.append(
                build_fallback_signal(
                    f"sig-{stable_id}-0",
                    title,
                    summary or snippet[:DESCRIPTION_FALLBACK_CHARS],
                    snippet,
                    fallback,
                    EMPTY_SIGNALS_CONFIDENCE,
                )
            )

        return IntelNewsItem(
            id=stable_id,
            title=title,
            summary=summary or snippet[:SUMMARY_FALLBACK_CHARS],
            source=article.source or str(raw.get("source") or "").strip() or "Unknown",
            url=url,
            timestamp=str(raw.get("timestamp") or "").strip() or article.pub_date or _utc_now_iso(),
            signals=signals,
            scope=scope,
            category=as_category(raw.get("category")) or context.category,
            is_preview=False,
            mentions=list(fallback.mentions),
        )

    @staticmethod
    def _build_signal(
        raw: dict[str, Any],
        index: int,
        stable_id: str,
        title: str,
        summary: str,
        snippet: str,
        fallback: LocationFallback,
    ) -> IntelSignal:
        location, used_fallback = sanitize_location(raw.get("location"), fallback)
        default_id = f"sig-{stable_id}-{index}"
        verified = raw.get("verified")
        return IntelSignal(
            id=str(raw.get("id") or default_id).strip() or default_id,
            kind=as_kind(raw.get("kind")),
            title=str(raw.get("title") or title or "Signal").strip() or "Signal",
            description=str(raw.get("description") or "").strip() or summary,
            severity=as_severity(raw.get("severity")),
            location=location,
            movement=_coerce_movement(raw.get("movement"), location, fallback),
            unit=_coerce_unit(raw.get("unit")),
            infra=_coerce_infra(raw.get("infra")),
            battle=_coerce_battle(raw.get("battle")),
            evidence=normalize_evidence(raw.get("evidence"), snippet),
            confidence=clamp01(raw.get("confidence")),
            verified=verified if isinstance(verified, bool) else None,
            location_reliability="capital_fallback" if used_fallback else "llm_inferred",
        )


async def fetch_intel_news(
    settings: LLMSettings,
    options: FetchIntelNewsOptions | None = None,
    config: IntelConfig | None = None,
) -> list[IntelNewsItem]:
    """Convenience wrapper that owns its HTTP client for one extraction run."""
    validate_settings(settings)
    config = config or load_config()
    async with httpx.AsyncClient() as client:
        rss_client = RssClient(
            client,
            aggregator_url=config.rss_aggregator_url,
            json_proxy=config.rss_json_proxy,
            relay=config.rss_relay,
            user_agent=config.user_agent,
        )
        service = IntelExtractionService(settings, rss_client, ChatCompletionClient(client, settings))
        return await service.fetch_intel_news(options)
