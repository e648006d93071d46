from __future__ import annotations

from pathlib import Path

import pytest

from src.services.config import DEFAULT_JSON_PROXY, DEFAULT_LLM_MODEL, load_config

ENV_VARS = (
    "INTEL_LLM_ENDPOINT",
    "INTEL_LLM_API_KEY",
    "INTEL_LLM_MODEL",
    "INTEL_NEWS_SCOPE",
    "INTEL_TARGET_COUNT",
    "INTEL_RSS_AGGREGATOR_URL",
    "INTEL_RSS_JSON_PROXY",
    "INTEL_GEOCODE_CACHE",
    "INTEL_GEOCODE_MIN_INTERVAL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_load_config_defaults() -> None:
    config = load_config()

    assert config.llm.endpoint == ""
    assert config.llm.model == DEFAULT_LLM_MODEL
    assert config.scope == "global"
    assert config.target_count == 10
    assert config.rss_aggregator_url is None
    assert config.rss_json_proxy == DEFAULT_JSON_PROXY
    assert config.geocode_min_interval == 1.1


def test_load_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INTEL_LLM_ENDPOINT", " https://llm.test/v1 ")
    monkeypatch.setenv("INTEL_LLM_API_KEY", "sk-1")
    monkeypatch.setenv("INTEL_NEWS_SCOPE", "Europe")
    monkeypatch.setenv("INTEL_TARGET_COUNT", "25")
    monkeypatch.setenv("INTEL_RSS_AGGREGATOR_URL", "http://localhost:8000")
    monkeypatch.setenv("INTEL_GEOCODE_CACHE", "/tmp/geo.sqlite")
    monkeypatch.setenv("INTEL_GEOCODE_MIN_INTERVAL", "2.5")

    config = load_config()

    assert config.llm.endpoint == "https://llm.test/v1"
    assert config.llm.api_key == "sk-1"
    assert config.scope == "europe"
    assert config.target_count == 25
    assert config.rss_aggregator_url == "http://localhost:8000"
    assert config.geocode_cache_path == Path("/tmp/geo.sqlite")
    assert config.geocode_min_interval == 2.5


def test_load_config_ignores_bad_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INTEL_NEWS_SCOPE", "antarctica")
    monkeypatch.setenv("INTEL_TARGET_COUNT", "lots")
    monkeypatch.setenv("INTEL_GEOCODE_MIN_INTERVAL", "soon")

    config = load_config()

    assert config.scope == "global"
    assert config.target_count == 10
    assert config.geocode_min_interval == 1.1
