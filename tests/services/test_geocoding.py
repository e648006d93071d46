from __future__ import annotations

import time
from pathlib import Path

import httpx

from src.services.geocoding import (
    GeocodeCache,
    GeocodeVerifier,
    RequestScheduler,
    SQLiteCache,
    VerifyResult,
    cache_key,
    includes_loose,
    normalize_text,
    round_coord,
)
from src.services.models import IntelLocation


def make_verifier(handler, cache: GeocodeCache | None = None) -> GeocodeVerifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeocodeVerifier(
        client,
        cache=cache,
        scheduler=RequestScheduler(min_interval=0),
        base_url="https://geo.test",
    )


def test_normalize_text_folds_case_diacritics_and_punctuation() -> None:
    assert normalize_text("  Işfahān,  Province! ") == "isfahan province"
    assert normalize_text(None) == ""
    assert includes_loose("Isfahan Province, Iran", "isfahan")
    assert not includes_loose("Shiraz, Iran", "Isfahan")
    assert not includes_loose("", "Isfahan")


def test_round_coord_and_cache_key_are_stable() -> None:
    location = IntelLocation(name="Isfahan", country="Iran", coordinates=(51.67004, 32.650049))

    assert round_coord(51.67004) == 51.67
    assert round_coord(-12.34561) == -12.3456
    assert round_coord(float("nan")) != round_coord(float("nan"))
    assert cache_key(location) == "v1|isfahan|iran|51.67,32.65"


async def test_reverse_match_verifies_with_rounded_coordinates() -> None:
    requests: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request.url.path)
        assert request.url.path == "/reverse"
        assert request.url.params["format"] == "jsonv2"
        return httpx.Response(
            200,
            json={
                "display_name": "Isfahan, Isfahan Province, Iran",
                "address": {"city": "Isfahan", "state": "Isfahan Province", "country": "Iran"},
            },
        )

    verifier = make_verifier(handler)
    location = IntelLocation(name="Isfahan", country="Iran", coordinates=(51.670012, 32.650033))

    result = await verifier.verify_intel_location(location)

    assert result.verified is True
    assert result.location.coordinates == (51.67, 32.65)
    assert result.location.country == "Iran"
    assert requests == ["/reverse"]
    assert verifier.stats["reverse_hits"] == 1
    await verifier.client.aclose()


async def test_search_fallback_when_reverse_disagrees() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/reverse":
            return httpx.Response(200, json={"display_name": "Qom, Iran", "address": {"city": "Qom", "country": "Iran"}})
        assert request.url.params["q"] == "Tehran, Iran"
        return httpx.Response(200, json=[{"lat": "35.6892", "lon": "51.3890"}])

    verifier = make_verifier(handler)
    location = IntelLocation(name="Tehran", country="Iran", coordinates=(50.88, 34.64))

    result = await verifier.verify_intel_location(location)

    assert result.verified is True
    assert result.location.coordinates == (51.389, 35.6892)
    assert verifier.stats["search_hits"] == 1
    await verifier.client.aclose()


async def test_geocoder_failure_returns_unverified_original() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    verifier = make_verifier(handler)
    location = IntelLocation(name="Nowhere", country=None, coordinates=(10.0, 10.0))

    result = await verifier.verify_intel_location(location)

    assert result.verified is False
    assert result.location.coordinates == (10.0, 10.0)
    assert verifier.stats["failures"] == 1
    await verifier.client.aclose()


async def test_cached_results_skip_network() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(
            200,
            json={"display_name": "Berlin, Germany", "address": {"city": "Berlin", "country": "Germany"}},
        )

    verifier = make_verifier(handler)
    location = IntelLocation(name="Berlin", country="Germany", coordinates=(13.405, 52.52))

    first = await verifier.verify_intel_location(location)
    second = await verifier.verify_intel_location(location)

    assert first == second
    assert calls["count"] == 1
    assert verifier.stats["cache_hits"] == 1
    await verifier.client.aclose()


def test_sqlite_cache_keeps_newest_entries(tmp_path: Path) -> None:
    store = SQLiteCache(tmp_path / "geocache.sqlite", max_entries=3)
    for index in range(5):
        store.save(f"key-{index}", {"index": index})

    keys = [key for key, _ in store.load()]

    assert keys == ["key-2", "key-3", "key-4"]
    store.close()


def test_sqlite_cache_defaults_to_two_hundred_entries(tmp_path: Path) -> None:
    store = SQLiteCache(tmp_path / "geocache.sqlite")
    for index in range(205):
        store.save(f"key-{index}", {"index": index})

    rows = store.load()

    assert len(rows) == 200
    assert rows[0][0] == "key-5"
    store.close()


def test_geocode_cache_reloads_from_store(tmp_path: Path) -> None:
    path = tmp_path / "geocache.sqlite"
    store = SQLiteCache(path)
    cache = GeocodeCache(store)
    result = VerifyResult(
        location=IntelLocation(name="Paris", country="France", coordinates=(2.3522, 48.8566)),
        verified=True,
    )
    cache.put("v1|paris|france|2.3522,48.8566", result)
    store.close()

    reloaded_store = SQLiteCache(path)
    reloaded = GeocodeCache(reloaded_store)

    assert len(reloaded) == 1
    assert reloaded.get("v1|paris|france|2.3522,48.8566") == result
    reloaded_store.close()


async def test_request_scheduler_spaces_calls() -> None:
    scheduler = RequestScheduler(min_interval=0.05)
    stamps: list[float] = []

    async def call() -> None:
        stamps.append(time.monotonic())

    await scheduler.schedule(call)
    await scheduler.schedule(call)

    assert stamps[1] - stamps[0] >= 0.045
