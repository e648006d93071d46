"""
Environment-driven configuration for the intel pipeline. Entry points call
``load_dotenv`` before ``load_config`` so a local ``.env`` file is honoured.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from src.services.models import NEWS_SCOPES, LLMSettings

LOGGER = logging.getLogger(__name__)

DEFAULT_LLM_MODEL = "gpt-3.5-turbo"
DEFAULT_JSON_PROXY = "https://api.rss2json.com/v1/api.json"
DEFAULT_RELAY = "https://api.allorigins.win/raw"
DEFAULT_GEOCODE_BASE_URL = "https://nominatim.openstreetmap.org"
DEFAULT_GEOCODE_CACHE = Path("datasets/intel/geocache.sqlite")
DEFAULT_USER_AGENT = "osint-intel-fusion/0.1"


@dataclass
class IntelConfig:
    llm: LLMSettings
    scope: str = "global"
    target_count: int = 10
    rss_aggregator_url: str | None = None
    rss_json_proxy: str = DEFAULT_JSON_PROXY
    rss_relay: str = DEFAULT_RELAY
    geocode_base_url: str = DEFAULT_GEOCODE_BASE_URL
    geocode_cache_path: Path = DEFAULT_GEOCODE_CACHE
    geocode_min_interval: float = 1.1
    user_agent: str = DEFAULT_USER_AGENT


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        LOGGER.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


def load_config() -> IntelConfig:
    scope = os.getenv("INTEL_NEWS_SCOPE", "global").strip().lower()
    if scope not in NEWS_SCOPES:
        LOGGER.warning("Unknown news scope %r; using global.", scope)
        scope = "global"
    return IntelConfig(
        llm=LLMSettings(
            endpoint=os.getenv("INTEL_LLM_ENDPOINT", "").strip(),
            api_key=os.getenv("INTEL_LLM_API_KEY", "").strip(),
            model=os.getenv("INTEL_LLM_MODEL", "").strip() or DEFAULT_LLM_MODEL,
        ),
        scope=scope,
        target_count=max(1, _int_env("INTEL_TARGET_COUNT", 10)),
        rss_aggregator_url=os.getenv("INTEL_RSS_AGGREGATOR_URL", "").strip() or None,
        rss_json_proxy=os.getenv("INTEL_RSS_JSON_PROXY", "").strip() or DEFAULT_JSON_PROXY,
        rss_relay=os.getenv("INTEL_RSS_RELAY", "").strip() or DEFAULT_RELAY,
        geocode_base_url=os.getenv("INTEL_GEOCODE_BASE_URL", "").strip() or DEFAULT_GEOCODE_BASE_URL,
        geocode_cache_path=Path(os.getenv("INTEL_GEOCODE_CACHE", "").strip() or DEFAULT_GEOCODE_CACHE),
        geocode_min_interval=max(0.0, _float_env("INTEL_GEOCODE_MIN_INTERVAL", 1.1)),
        user_agent=os.getenv("INTEL_USER_AGENT", "").strip() or DEFAULT_USER_AGENT,
    )
