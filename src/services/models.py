"""
Shared data model for the intel pipeline: extracted signals, ingested news items and
the map entities fused from them.

Coordinates are always ``(longitude, latitude)`` tuples.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional

Coordinates = tuple[float, float]

SIGNAL_KINDS = ("event", "movement", "infrastructure", "battle", "unit")
SEVERITIES = ("low", "medium", "high")
NEWS_SCOPES = ("global", "americas", "europe", "africa", "middle_east", "asia_pacific")
NEWS_CATEGORIES = (
    "conflict",
    "politics",
    "economy",
    "disaster",
    "health",
    "tech",
    "science",
    "energy",
    "other",
)
UNIT_TYPES = ("military", "naval", "air", "base")
AFFILIATIONS = ("iran", "us", "allied", "israel", "other")
INFRA_TYPES = ("oil", "nuclear", "military_base", "civilian")
INFRA_STATUSES = ("intact", "damaged", "destroyed")
BATTLE_TYPES = ("kill", "strike", "capture")

PATH_HISTORY_LIMIT = 60


def is_valid_lon_lat(coords: Any) -> bool:
    if not isinstance(coords, (list, tuple)) or len(coords) != 2:
        return False
    lon, lat = coords
    if isinstance(lon, bool) or isinstance(lat, bool):
        return False
    if not isinstance(lon, (int, float)) or not isinstance(lat, (int, float)):
        return False
    if not math.isfinite(lon) or not math.isfinite(lat):
        return False
    return -180 <= lon <= 180 and -90 <= lat <= 90


def clamp01(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return max(0.0, min(1.0, number))


def _coords_out(coords: Coordinates | None) -> list[float] | None:
    return [coords[0], coords[1]] if coords else None


def _drop_none(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass
class PlaceMention:
    name: str
    country: Optional[str] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none({"name": self.name, "country": self.country})


@dataclass
class IntelLocation:
    name: str
    coordinates: Coordinates
    country: Optional[str] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none(
            {
                "name": self.name,
                "country": self.country,
                "coordinates": _coords_out(self.coordinates),
            }
        )


@dataclass
class SignalMovement:
    to: IntelLocation
    from_: Optional[IntelLocation] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none(
            {
                "from": self.from_.to_serializable() if self.from_ else None,
                "to": self.to.to_serializable(),
            }
        )


@dataclass
class SignalUnit:
    id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    affiliation: Optional[str] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none(
            {"id": self.id, "name": self.name, "type": self.type, "affiliation": self.affiliation}
        )


@dataclass
class SignalInfra:
    name: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none({"name": self.name, "type": self.type, "status": self.status})


@dataclass
class SignalBattle:
    type: Optional[str] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none({"type": self.type})


@dataclass
class IntelSignal:
    """One atomic, evidence-grounded fact extracted from one article."""

    id: str
    kind: str
    title: str
    description: str
    severity: str
    location: IntelLocation
    evidence: str
    confidence: float
    movement: Optional[SignalMovement] = None
    unit: Optional[SignalUnit] = None
    infra: Optional[SignalInfra] = None
    battle: Optional[SignalBattle] = None
    verified: Optional[bool] = None
    location_reliability: Optional[str] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "kind": self.kind,
                "title": self.title,
                "description": self.description,
                "severity": self.severity,
                "location": self.location.to_serializable(),
                "movement": self.movement.to_serializable() if self.movement else None,
                "unit": self.unit.to_serializable() if self.unit else None,
                "infra": self.infra.to_serializable() if self.infra else None,
                "battle": self.battle.to_serializable() if self.battle else None,
                "evidence": self.evidence,
                "confidence": self.confidence,
                "verified": self.verified,
                "locationReliability": self.location_reliability,
            }
        )


@dataclass
class IntelNewsItem:
    id: str
    title: str
    summary: str
    source: str
    url: str
    timestamp: str
    signals: list[IntelSignal] = field(default_factory=list)
    scope: str = "global"
    category: str = "other"
    is_preview: bool = False
    mentions: list[PlaceMention] = field(default_factory=list)

    def to_serializable(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "source": self.source,
            "url": self.url,
            "timestamp": self.timestamp,
            "signals": [signal.to_serializable() for signal in self.signals],
            "scope": self.scope,
            "category": self.category,
            "isPreview": self.is_preview,
            "mentions": [mention.to_serializable() for mention in self.mentions],
        }


@dataclass
class SourceRef:
    name: str
    url: str
    timestamp: str

    def to_serializable(self) -> dict[str, Any]:
        return {"name": self.name, "url": self.url, "timestamp": self.timestamp}


def merge_sources(existing: list[SourceRef] | None, add: SourceRef) -> list[SourceRef]:
    """Append ``add`` unless a source with the same URL is already listed."""
    out = list(existing or [])
    if not any(source.url == add.url for source in out):
        out.append(add)
    return out


def _provenance(entity: Any) -> dict[str, Any]:
    return {
        "sources": [source.to_serializable() for source in entity.sources],
        "newsId": entity.news_id,
        "confidence": entity.confidence,
        "verified": entity.verified,
        "locationReliability": entity.location_reliability,
    }


@dataclass
class Unit:
    id: str
    name: str
    coordinates: Coordinates
    type: str = "military"
    affiliation: str = "other"
    description: Optional[str] = None
    velocity: Optional[tuple[float, float]] = None
    path_history: list[Coordinates] = field(default_factory=list)
    sources: list[SourceRef] = field(default_factory=list)
    news_id: Optional[str] = None
    confidence: Optional[float] = None
    verified: Optional[bool] = None
    location_reliability: Optional[str] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "name": self.name,
                "type": self.type,
                "affiliation": self.affiliation,
                "description": self.description,
                "coordinates": _coords_out(self.coordinates),
                "velocity": list(self.velocity) if self.velocity else None,
                "pathHistory": [list(point) for point in self.path_history],
                **_provenance(self),
            }
        )


@dataclass
class Event:
    id: str
    title: str
    date: str
    description: str
    severity: str
    coordinates: Coordinates
    sources: list[SourceRef] = field(default_factory=list)
    news_id: Optional[str] = None
    confidence: Optional[float] = None
    verified: Optional[bool] = None
    location_reliability: Optional[str] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "title": self.title,
                "date": self.date,
                "description": self.description,
                "severity": self.severity,
                "coordinates": _coords_out(self.coordinates),
                **_provenance(self),
            }
        )


@dataclass
class Infrastructure:
    id: str
    name: str
    type: str
    country: str
    status: str
    coordinates: Coordinates
    description: Optional[str] = None
    sources: list[SourceRef] = field(default_factory=list)
    news_id: Optional[str] = None
    confidence: Optional[float] = None
    verified: Optional[bool] = None
    location_reliability: Optional[str] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "name": self.name,
                "type": self.type,
                "country": self.country,
                "status": self.status,
                "description": self.description,
                "coordinates": _coords_out(self.coordinates),
                **_provenance(self),
            }
        )


@dataclass
class BattleResult:
    id: str
    title: str
    type: str
    date: str
    description: str
    coordinates: Coordinates
    sources: list[SourceRef] = field(default_factory=list)
    news_id: Optional[str] = None
    confidence: Optional[float] = None
    verified: Optional[bool] = None
    location_reliability: Optional[str] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "title": self.title,
                "type": self.type,
                "date": self.date,
                "description": self.description,
                "coordinates": _coords_out(self.coordinates),
                **_provenance(self),
            }
        )


@dataclass
class Arrow:
    id: str
    start: Coordinates
    end: Coordinates
    color: str = "#06b6d4"
    label: Optional[str] = None
    sources: list[SourceRef] = field(default_factory=list)
    news_id: Optional[str] = None
    confidence: Optional[float] = None
    verified: Optional[bool] = None
    location_reliability: Optional[str] = None

    def to_serializable(self) -> dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "start": _coords_out(self.start),
                "end": _coords_out(self.end),
                "color": self.color,
                "label": self.label,
                **_provenance(self),
            }
        )


@dataclass
class Hotspot:
    id: str
    label: str
    center: Coordinates
    score: float
    count: int
    categories: dict[str, int] = field(default_factory=dict)

    def to_serializable(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "center": _coords_out(self.center),
            "score": self.score,
            "count": self.count,
            "categories": dict(self.categories),
        }


@dataclass
class RssSource:
    name: str
    url: str
    scope: str


@dataclass
class RssArticle:
    index: int
    title: str
    link: str
    pub_date: str
    snippet: str
    source: str
    scope: str

    def to_serializable(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "title": self.title,
            "link": self.link,
            "pubDate": self.pub_date,
            "snippet": self.snippet,
            "source": self.source,
            "scope": self.scope,
        }


@dataclass
class LLMSettings:
    endpoint: str
    api_key: str
    model: str = "gpt-3.5-turbo"
