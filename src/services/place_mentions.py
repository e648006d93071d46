"""
Country/region mention extraction and capital-city fallback resolution.

Used whenever an extracted signal has no usable coordinates: the first country
mentioned in the article resolves to its capital.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Pattern

from geotext import GeoText

from src.services.capitals import CAPITALS_BY_COUNTRY, EXTRA_CAPITALS
from src.services.models import Coordinates, PlaceMention

LOGGER = logging.getLogger(__name__)

MAX_MENTIONS = 8
MAX_CITY_HINTS = 5
# Default map center, used when no mention resolves to a capital.
FALLBACK_COORDINATES: Coordinates = (53.6880, 32.4279)

# Aliases map to canonical names used by CAPITALS_BY_COUNTRY / EXTRA_CAPITALS.
COUNTRY_ALIASES: dict[str, str] = {
    "us": "United States",
    "u s": "United States",
    "u s a": "United States",
    "usa": "United States",
    "united states": "United States",
    "united states of america": "United States",
    "u s of a": "United States",
    "uk": "United Kingdom",
    "u k": "United Kingdom",
    "united kingdom": "United Kingdom",
    "britain": "United Kingdom",
    "great britain": "United Kingdom",
    "russia": "Russia",
    "russian federation": "Russia",
    "iran": "Iran",
    "islamic republic of iran": "Iran",
    "south korea": "South Korea",
    "republic of korea": "South Korea",
    "north korea": "North Korea",
    "dprk": "North Korea",
    "democratic people s republic of korea": "North Korea",
    "prc": "China",
    "people s republic of china": "China",
    "mainland china": "China",
    "eu": "European Union",
    "european union": "European Union",
    "gaza": "Gaza Strip",
    "gaza strip": "Gaza Strip",
}


@dataclass
class CapitalHit:
    name: str
    coordinates: Coordinates


@dataclass
class LocationFallback:
    mentions: list[PlaceMention] = field(default_factory=list)
    picked: str = ""
    coordinates: Coordinates = FALLBACK_COORDINATES
    country: Optional[str] = None


@dataclass
class _AliasPattern:
    alias: str
    canonical: str
    regex: Pattern[str]


def _normalize_key(value: str | None) -> str:
    if not value:
        return ""
    lowered = value.lower().replace(".", "")
    return re.sub(r"[^a-z0-9]+", " ", lowered).strip()


_CANONICAL_BY_KEY = {_normalize_key(name): name for name in CAPITALS_BY_COUNTRY}


def to_canonical_country(value: str | None) -> str:
    key = _normalize_key(value)
    if not key:
        return ""
    if key in COUNTRY_ALIASES:
        return COUNTRY_ALIASES[key]
    return _CANONICAL_BY_KEY.get(key, "")


def _build_alias_patterns() -> list[_AliasPattern]:
    patterns: list[_AliasPattern] = []

    def add(alias: str, canonical: str) -> None:
        alias = alias.strip()
        canonical = canonical.strip()
        if not alias or not canonical:
            return
        # Soft boundaries so "us" never matches inside "thus".
        body = re.escape(alias.lower())
        regex = re.compile(rf"(^|[^a-z0-9]){body}([^a-z0-9]|$)", re.IGNORECASE)
        patterns.append(_AliasPattern(alias=alias, canonical=canonical, regex=regex))

    for name in CAPITALS_BY_COUNTRY:
        add(name, name)
    for region in EXTRA_CAPITALS:
        add(region, region)
    for alias, canonical in COUNTRY_ALIASES.items():
        add(alias, canonical)

    patterns.sort(key=lambda pattern: len(pattern.alias), reverse=True)
    return patterns


ALIAS_PATTERNS = _build_alias_patterns()


def extract_mentions(text: str | None) -> list[PlaceMention]:
    """Return country/region mentions in first-occurrence order, one per canonical name."""
    if not text or not text.strip():
        return []
    hits: list[tuple[int, str]] = []
    for pattern in ALIAS_PATTERNS:
        match = pattern.regex.search(text)
        if match:
            hits.append((match.start(), pattern.canonical))
    hits.sort()

    mentions: list[PlaceMention] = []
    seen: set[str] = set()
    for _, canonical in hits:
        if canonical in seen:
            continue
        seen.add(canonical)
        mentions.append(PlaceMention(name=canonical, country=canonical))
        if len(mentions) >= MAX_MENTIONS:
            break
    return mentions


def resolve_to_capital(country_or_region: str | None) -> CapitalHit | None:
    if not country_or_region:
        return None
    canonical = to_canonical_country(country_or_region) or country_or_region
    row = EXTRA_CAPITALS.get(canonical) or CAPITALS_BY_COUNTRY.get(canonical)
    if not row:
        return None
    name, coordinates = row
    return CapitalHit(name=name, coordinates=coordinates)


def pick_best_mention_for_fallback(mentions: list[PlaceMention]) -> str:
    # Order of appearance: the first mention is usually the most relevant.
    if not mentions:
        return ""
    first = mentions[0]
    return (first.country or first.name or "").strip()


def build_capital_fallback(title: str, snippet: str) -> LocationFallback:
    mentions = extract_mentions(f"{title}\n{snippet}")
    picked = pick_best_mention_for_fallback(mentions)
    capital = resolve_to_capital(picked) if picked else None
    return LocationFallback(
        mentions=mentions,
        picked=picked,
        coordinates=capital.coordinates if capital else FALLBACK_COORDINATES,
        country=picked or None,
    )


def extract_city_hints(text: str | None) -> list[str]:
    """City names found by geotext; passed to the model as hints, never as coordinates."""
    if not text:
        return []
    hints: list[str] = []
    for city in GeoText(text).cities:
        cleaned = city.strip()
        if cleaned and cleaned not in hints:
            hints.append(cleaned)
        if len(hints) >= MAX_CITY_HINTS:
            break
    return hints
