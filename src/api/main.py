"""
FastAPI app exposing the intel pipeline: the RSS aggregator endpoints probed by the
client fast path, plus refresh and read access to the fused map state.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

import httpx
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from src.services.config import load_config
from src.services.fusion import FusionEngine
from src.services.intel_extraction import FetchIntelNewsOptions, IntelConfigurationError
from src.services.models import NEWS_SCOPES
from src.services.pipeline import IntelPipeline, build_pipeline
from src.services.rss_client import RssClient
from src.services.rss_sources import sources_for_scope

DEFAULT_PER_SOURCE_LIMIT = 20
DEFAULT_MAX_TOTAL = 400
LOGGER = logging.getLogger("intel_api")
if not LOGGER.handlers:
    LOGGER.setLevel(logging.INFO)
    LOG_PATH = Path("logs")
    LOG_PATH.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(LOG_PATH / "api_requests.log")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    file_handler.setFormatter(formatter)
    LOGGER.addHandler(file_handler)

_PIPELINE: Optional[IntelPipeline] = None


# Must run on the event loop thread: the geocode cache's SQLite connection is bound to it.
async def get_pipeline() -> IntelPipeline:
    global _PIPELINE
    if _PIPELINE is None:
        load_dotenv()
        _PIPELINE = build_pipeline(load_config(), use_aggregator=False)
    return _PIPELINE


async def get_engine(pipeline: IntelPipeline = Depends(get_pipeline)) -> FusionEngine:
    return pipeline.engine


async def get_rss_client(pipeline: IntelPipeline = Depends(get_pipeline)) -> RssClient:
    return pipeline.rss_client


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    global _PIPELINE
    if _PIPELINE is not None:
        await _PIPELINE.aclose()
        _PIPELINE = None


class RssArticleOut(BaseModel):
    index: int
    title: str
    link: str
    pubDate: str
    snippet: str
    source: str
    scope: str


class RssPoolOut(BaseModel):
    items: list[RssArticleOut]


class RefreshIn(BaseModel):
    mode: str = Field("refresh", pattern="^(refresh|initial)$")
    scope: Optional[str] = None
    targetCount: Optional[int] = Field(default=None, ge=1, le=50)
    excludeUrls: list[str] = Field(default_factory=list)


class RefreshOut(BaseModel):
    count: int
    latestBatchSize: int
    items: list[dict[str, Any]]


class HotspotOut(BaseModel):
    id: str
    label: str
    center: list[float] = Field(..., description="[longitude, latitude] of the cell's mean position")
    score: float
    count: int
    categories: dict[str, int]


app = FastAPI(title="Intel Fusion API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _check_scope(scope: Optional[str]) -> Optional[str]:
    if scope is not None and scope not in NEWS_SCOPES:
        raise HTTPException(status_code=400, detail=f"scope must be one of {', '.join(NEWS_SCOPES)}")
    return scope


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/rss/health")
def rss_health() -> dict[str, bool]:
    return {"ok": True}


@app.get("/api/rss/articles", response_model=RssPoolOut)
async def get_rss_articles(
    scope: str = Query("global", description="News scope to aggregate."),
    perSourceLimit: int = Query(DEFAULT_PER_SOURCE_LIMIT, ge=1, le=200),
    maxTotal: int = Query(DEFAULT_MAX_TOTAL, ge=1, le=1000),
    rss_client: RssClient = Depends(get_rss_client),
) -> RssPoolOut:
    _check_scope(scope)
    LOGGER.info("Aggregating RSS scope=%s perSourceLimit=%s maxTotal=%s", scope, perSourceLimit, maxTotal)
    pool = await rss_client.fetch_rss_pool(
        scope=scope,
        sources=sources_for_scope(scope),
        per_source_limit=perSourceLimit,
        max_total=maxTotal,
        min_needed=maxTotal,
    )
    return RssPoolOut(items=[RssArticleOut(**article.to_serializable()) for article in pool])


@app.post("/api/intel/refresh", response_model=RefreshOut)
async def refresh_intel(
    payload: RefreshIn,
    engine: FusionEngine = Depends(get_engine),
) -> RefreshOut:
    scope = _check_scope(payload.scope)
    options = FetchIntelNewsOptions(
        mode=payload.mode,
        scope=scope or "global",
        exclude_urls=tuple(payload.excludeUrls),
    )
    if payload.targetCount is not None:
        options.target_count = payload.targetCount
    LOGGER.info("Refreshing intel mode=%s scope=%s", options.mode, options.scope)
    try:
        fresh = await engine.refresh(options)
    except IntelConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return RefreshOut(
        count=len(fresh),
        latestBatchSize=engine.latest_batch_size,
        items=[item.to_serializable() for item in fresh],
    )


@app.get("/api/intel/news")
def get_intel_news(
    limit: int = Query(100, ge=1, le=100),
    engine: FusionEngine = Depends(get_engine),
) -> dict[str, Any]:
    LOGGER.info("Fetching intel news limit=%s", limit)
    return {
        "items": [item.to_serializable() for item in engine.news[:limit]],
        "latestBatchSize": engine.latest_batch_size,
        "error": engine.error,
        "loading": engine.loading,
    }


@app.get("/api/intel/map")
def get_intel_map(engine: FusionEngine = Depends(get_engine)) -> dict[str, Any]:
    snapshot = engine.snapshot()
    snapshot.pop("news", None)
    return snapshot


@app.get("/api/intel/hotspots", response_model=list[HotspotOut])
def get_hotspots(
    cellSizeDeg: int = Query(4, ge=1, le=45),
    maxHotspots: int = Query(12, ge=1, le=100),
    engine: FusionEngine = Depends(get_engine),
) -> list[HotspotOut]:
    hotspots = engine.hotspots(cell_size_deg=cellSizeDeg, max_hotspots=maxHotspots)
    LOGGER.info("Returning %s hotspots", len(hotspots))
    return [HotspotOut(**hotspot.to_serializable()) for hotspot in hotspots]
