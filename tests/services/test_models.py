from __future__ import annotations

import math

from src.services.models import (
    Arrow,
    IntelLocation,
    SignalMovement,
    SourceRef,
    clamp01,
    is_valid_lon_lat,
    merge_sources,
)
from src.services.tokens import TokenSource


def test_is_valid_lon_lat_rejects_out_of_range_and_non_numbers() -> None:
    assert is_valid_lon_lat([51.67, 32.65])
    assert is_valid_lon_lat((-180, 90))
    assert not is_valid_lon_lat([999, 999])
    assert not is_valid_lon_lat([10.0])
    assert not is_valid_lon_lat([True, 10])
    assert not is_valid_lon_lat(["51", "32"])
    assert not is_valid_lon_lat([math.nan, 0.0])
    assert not is_valid_lon_lat(None)


def test_clamp01() -> None:
    assert clamp01(1.7) == 1.0
    assert clamp01(-3) == 0.0
    assert clamp01("0.25") == 0.25
    assert clamp01("high") == 0.0
    assert clamp01(math.inf) == 0.0


def test_merge_sources_dedupes_by_url() -> None:
    first = SourceRef(name="Wire", url="https://news.test/1", timestamp="t1")
    again = SourceRef(name="Other name", url="https://news.test/1", timestamp="t2")
    second = SourceRef(name="Wire", url="https://news.test/2", timestamp="t3")

    merged = merge_sources(merge_sources([first], again), second)

    assert [source.url for source in merged] == ["https://news.test/1", "https://news.test/2"]
    assert merge_sources(None, first) == [first]


def test_serialization_uses_camel_case_and_from_key() -> None:
    movement = SignalMovement(
        to=IntelLocation(name="B", coordinates=(2.0, 2.0)),
        from_=IntelLocation(name="A", country="X", coordinates=(1.0, 1.0)),
    )
    arrow = Arrow(id="a", start=(1.0, 1.0), end=(2.0, 2.0), news_id="n", location_reliability="verified")

    assert movement.to_serializable() == {
        "from": {"name": "A", "country": "X", "coordinates": [1.0, 1.0]},
        "to": {"name": "B", "coordinates": [2.0, 2.0]},
    }
    payload = arrow.to_serializable()
    assert payload["newsId"] == "n"
    assert payload["locationReliability"] == "verified"
    assert payload["start"] == [1.0, 1.0]
    assert "verified" not in payload


def test_tokens_go_stale_when_a_newer_one_is_issued() -> None:
    source = TokenSource()
    first = source.issue()

    assert first.is_current()
    second = source.issue()
    assert first.is_stale
    assert second.is_current()
    assert second.generation == first.generation + 1
