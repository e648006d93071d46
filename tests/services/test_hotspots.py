from __future__ import annotations

import pytest

from src.services.hotspots import (
    derive_hotspots_from_news,
    hotspot_id_for_coordinates,
    pick_best_signal,
    primary_coordinates_for_news,
    recency_factor,
)
from src.services.models import IntelLocation, IntelNewsItem, IntelSignal, PlaceMention, SignalMovement
from src.services.rss_client import parse_date_ms

NOW = "2024-01-10T12:00:00Z"
NOW_MS = parse_date_ms(NOW)


def make_signal(
    signal_id: str,
    coords: tuple[float, float],
    confidence: float = 0.5,
    severity: str = "medium",
    country: str | None = None,
    movement_to: tuple[float, float] | None = None,
) -> IntelSignal:
    location = IntelLocation(name=f"Place {signal_id}", country=country, coordinates=coords)
    movement = None
    if movement_to is not None:
        movement = SignalMovement(to=IntelLocation(name="Dest", coordinates=movement_to))
    return IntelSignal(
        id=signal_id,
        kind="movement" if movement else "event",
        title=signal_id,
        description="",
        severity=severity,
        location=location,
        evidence="",
        confidence=confidence,
        movement=movement,
    )


def make_item(
    item_id: str,
    signals: list[IntelSignal],
    timestamp: str = NOW,
    category: str = "conflict",
    mention: str | None = None,
) -> IntelNewsItem:
    return IntelNewsItem(
        id=item_id,
        title=item_id,
        summary="",
        source="Wire",
        url=f"https://news.test/{item_id}",
        timestamp=timestamp,
        signals=signals,
        category=category,
        mentions=[PlaceMention(name=mention, country=mention)] if mention else [],
    )


def test_hotspot_id_uses_grid_cells() -> None:
    assert hotspot_id_for_coordinates((51.67, 32.65)) == "hs:4:57:30"
    assert hotspot_id_for_coordinates((-180.0, -90.0), 10) == "hs:10:0:0"
    assert hotspot_id_for_coordinates((0.0, 0.0), 0) == "hs:4:45:22"


def test_primary_coordinates_prefer_movement_destination() -> None:
    item = make_item(
        "a",
        [
            make_signal("low", (10.0, 10.0), confidence=0.2),
            make_signal("high", (20.0, 20.0), confidence=0.9, movement_to=(21.0, 21.0)),
        ],
    )

    assert pick_best_signal(item.signals).id == "high"
    assert primary_coordinates_for_news(item) == (21.0, 21.0)
    assert primary_coordinates_for_news(make_item("empty", [])) is None


def test_recency_factor_halves_every_36_hours() -> None:
    assert recency_factor(NOW_MS, NOW_MS - 36 * 3600 * 1000) == pytest.approx(0.5)
    assert recency_factor(NOW_MS, 0) == 1.0
    assert recency_factor(NOW_MS, NOW_MS + 120_000) == 1.0


def test_derive_hotspots_aggregates_cells_and_ranks_by_score() -> None:
    items = [
        make_item("isfahan-1", [make_signal("s1", (51.6, 32.6), 1.0, "high", "Iran")], mention="Iran", category="conflict"),
        make_item("isfahan-2", [make_signal("s2", (51.8, 32.8), 0.5, "low", "Iran")], mention="Iran", category="energy"),
        make_item(
            "paris",
            [make_signal("s3", (2.35, 48.85), 1.0, "high", "France")],
            timestamp="2024-01-08T12:00:00Z",
            mention="France",
        ),
        make_item("undated", [make_signal("s4", (120.0, 10.0), 0.1, "low")], timestamp=""),
    ]

    hotspots = derive_hotspots_from_news(items, now_ms=NOW_MS)

    assert [hotspot.label for hotspot in hotspots] == ["Iran", "France", "Place s4"]
    iran = hotspots[0]
    assert iran.id == "hs:4:57:30"
    assert iran.count == 2
    assert iran.score == pytest.approx(2.0 + 0.5)
    assert iran.center == pytest.approx((51.7, 32.7))
    assert iran.categories == {"conflict": 1, "energy": 1}
    assert hotspots[1].score == pytest.approx(2.0 * 0.5 ** (48 / 36))
    assert hotspots[2].score == pytest.approx(0.1)


def test_derive_hotspots_respects_max_and_skips_invalid_coordinates() -> None:
    items = [make_item(f"i{n}", [make_signal(f"s{n}", (n * 10.0 - 170.0, 0.0), 0.5)]) for n in range(5)]
    items.append(make_item("bad", [make_signal("bad", (999.0, 0.0), 1.0)]))

    hotspots = derive_hotspots_from_news(items, max_hotspots=3, now_ms=NOW_MS)

    assert len(hotspots) == 3
    assert all(hotspot.count == 1 for hotspot in hotspots)
