"""
Wiring for a running intel pipeline: one shared HTTP client feeding the RSS client,
the LLM extraction service, the geocode verifier and the fusion engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from src.services.config import IntelConfig
from src.services.fusion import FusionEngine
from src.services.geocoding import GeocodeCache, GeocodeVerifier, RequestScheduler, SQLiteCache
from src.services.intel_extraction import (
    ChatCompletionClient,
    FetchIntelNewsOptions,
    IntelExtractionService,
)
from src.services.models import IntelNewsItem
from src.services.rss_client import RssClient

LOGGER = logging.getLogger(__name__)


@dataclass
class IntelPipeline:
    config: IntelConfig
    client: httpx.AsyncClient
    rss_client: RssClient
    extraction: IntelExtractionService
    verifier: GeocodeVerifier
    engine: FusionEngine
    cache_store: Optional[SQLiteCache] = None
    owns_client: bool = True

    def default_options(self, **overrides) -> FetchIntelNewsOptions:
        options = FetchIntelNewsOptions(scope=self.config.scope, target_count=self.config.target_count)
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options

    async def aclose(self) -> None:
        await self.engine.wait_idle()
        if self.cache_store is not None:
            self.cache_store.close()
        if self.owns_client:
            await self.client.aclose()


def build_pipeline(
    config: IntelConfig,
    client: httpx.AsyncClient | None = None,
    use_aggregator: bool = True,
    persist_cache: bool = True,
) -> IntelPipeline:
    """
    Build every collaborator from ``config``.

    ``use_aggregator=False`` disables the server-pool fast path, which the API
    process needs so it never probes its own endpoints.
    """
    owns_client = client is None
    client = client or httpx.AsyncClient()
    rss_client = RssClient(
        client,
        aggregator_url=config.rss_aggregator_url if use_aggregator else None,
        json_proxy=config.rss_json_proxy,
        relay=config.rss_relay,
        user_agent=config.user_agent,
    )
    extraction = IntelExtractionService(config.llm, rss_client, ChatCompletionClient(client, config.llm))

    cache_store = SQLiteCache(config.geocode_cache_path) if persist_cache else None
    verifier = GeocodeVerifier(
        client,
        cache=GeocodeCache(cache_store),
        scheduler=RequestScheduler(config.geocode_min_interval),
        base_url=config.geocode_base_url,
        user_agent=config.user_agent,
    )

    async def fetch_news(options: FetchIntelNewsOptions | None) -> list[IntelNewsItem]:
        return await extraction.fetch_intel_news(
            options or FetchIntelNewsOptions(scope=config.scope, target_count=config.target_count)
        )

    engine = FusionEngine(fetch_news, verifier)
    LOGGER.debug(
        "Built intel pipeline scope=%s target=%s aggregator=%s",
        config.scope,
        config.target_count,
        rss_client.aggregator_url,
    )
    return IntelPipeline(
        config=config,
        client=client,
        rss_client=rss_client,
        extraction=extraction,
        verifier=verifier,
        engine=engine,
        cache_store=cache_store,
        owns_client=owns_client,
    )
