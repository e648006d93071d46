"""Grid-cell hotspot summaries over accumulated news items."""

from __future__ import annotations

import math
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional

from src.services.models import Coordinates, Hotspot, IntelNewsItem, IntelSignal, clamp01, is_valid_lon_lat
from src.services.rss_client import parse_date_ms

DEFAULT_CELL_SIZE_DEG = 4
DEFAULT_MAX_HOTSPOTS = 12
HALF_LIFE_MS = 36 * 60 * 60 * 1000
FUTURE_TOLERANCE_MS = 60_000
SEVERITY_FACTORS = {"high": 2.0, "medium": 1.4}


@dataclass
class _Cell:
    id: str
    score: float = 0.0
    count: int = 0
    sum_lon: float = 0.0
    sum_lat: float = 0.0
    labels: Counter = field(default_factory=Counter)
    categories: dict[str, int] = field(default_factory=dict)


def pick_best_signal(signals: Iterable[IntelSignal] | None) -> Optional[IntelSignal]:
    best: Optional[IntelSignal] = None
    best_score = -1.0
    for signal in signals or []:
        confidence = clamp01(signal.confidence)
        if confidence > best_score:
            best_score = confidence
            best = signal
    return best


def primary_coordinates_for_news(item: IntelNewsItem) -> Optional[Coordinates]:
    best = pick_best_signal(item.signals)
    if best is None:
        return None
    coords = best.movement.to.coordinates if best.movement else best.location.coordinates
    return coords if is_valid_lon_lat(coords) else None


def hotspot_id_for_coordinates(coords: Coordinates, cell_size_deg: int = DEFAULT_CELL_SIZE_DEG) -> str:
    size = max(1, int(cell_size_deg or DEFAULT_CELL_SIZE_DEG))
    lon, lat = coords
    x = math.floor((lon + 180) / size)
    y = math.floor((lat + 90) / size)
    return f"hs:{size}:{x}:{y}"


def severity_factor(severity: str | None) -> float:
    return SEVERITY_FACTORS.get(severity or "", 1.0)


def recency_factor(now_ms: int, ts_ms: int) -> float:
    if not ts_ms or ts_ms > now_ms + FUTURE_TOLERANCE_MS:
        return 1.0
    age_ms = max(0, now_ms - ts_ms)
    return 0.5 ** (age_ms / HALF_LIFE_MS)


def _label_for(item: IntelNewsItem, best: IntelSignal) -> str:
    mention = item.mentions[0].name.strip() if item.mentions else ""
    return mention or (best.location.country or "").strip() or (best.location.name or "").strip() or "Unknown"


def derive_hotspots_from_news(
    items: Iterable[IntelNewsItem],
    cell_size_deg: int = DEFAULT_CELL_SIZE_DEG,
    max_hotspots: int = DEFAULT_MAX_HOTSPOTS,
    now_ms: int | None = None,
) -> list[Hotspot]:
    """
    Bucket each news item by the coordinates of its most confident signal.

    A cell's score is the sum of recency (36h half-life) x severity x confidence
    over its items; the label is the most common place name seen in the cell.
    """
    cell_size_deg = max(1, int(cell_size_deg))
    max_hotspots = max(1, int(max_hotspots))
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    cells: dict[str, _Cell] = {}
    for item in items:
        coords = primary_coordinates_for_news(item)
        best = pick_best_signal(item.signals)
        if coords is None or best is None:
            continue

        score = (
            recency_factor(now_ms, parse_date_ms(item.timestamp))
            * severity_factor(best.severity)
            * clamp01(best.confidence)
        )
        cell_id = hotspot_id_for_coordinates(coords, cell_size_deg)
        cell = cells.setdefault(cell_id, _Cell(id=cell_id))
        cell.labels[_label_for(item, best)] += 1
        category = item.category or "other"
        cell.categories[category] = cell.categories.get(category, 0) + 1
        cell.score += score
        cell.count += 1
        cell.sum_lon += coords[0]
        cell.sum_lat += coords[1]

    hotspots = [
        Hotspot(
            id=cell.id,
            # Counter.most_common keeps first-seen order among ties.
            label=cell.labels.most_common(1)[0][0] if cell.labels else "Unknown",
            center=(cell.sum_lon / cell.count, cell.sum_lat / cell.count),
            score=cell.score,
            count=cell.count,
            categories=cell.categories,
        )
        for cell in cells.values()
    ]
    hotspots.sort(key=lambda hotspot: (-hotspot.score, -hotspot.count))
    return hotspots[:max_hotspots]
