"""
Location verification backed by a capped SQLite cache and a Nominatim-style geocoder.

All outbound geocode calls of one verifier go through a single ``RequestScheduler``
that serializes them and keeps them at least ``min_interval`` seconds apart.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
import sqlite3
import time
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from src.services.config import DEFAULT_GEOCODE_BASE_URL, DEFAULT_USER_AGENT
from src.services.models import IntelLocation, is_valid_lon_lat

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_VERSION = "v1"
CACHE_MAX_ENTRIES = 200
GEOCODE_TIMEOUT = 25
LOCALITY_FIELDS = ("city", "town", "state", "county")
GEOCODE_ERRORS = (httpx.HTTPError, ValueError, TypeError, KeyError)


@dataclass
class VerifyResult:
    location: IntelLocation
    verified: bool

    def to_serializable(self) -> dict[str, Any]:
        return {"location": self.location.to_serializable(), "verified": self.verified}


def _strip_diacritics(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def normalize_text(value: str | None) -> str:
    if not value:
        return ""
    text = _strip_diacritics(value).lower()
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"[\W_]+", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def includes_loose(haystack: str | None, needle: str | None) -> bool:
    hay = normalize_text(haystack)
    pin = normalize_text(needle)
    if not hay or not pin:
        return False
    return pin in hay


def round_coord(value: float, digits: int = 4) -> float:
    if not math.isfinite(value):
        return value
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def cache_key(location: IntelLocation) -> str:
    lon = round_coord(location.coordinates[0])
    lat = round_coord(location.coordinates[1])
    return f"{CACHE_VERSION}|{normalize_text(location.name)}|{normalize_text(location.country)}|{lon},{lat}"


class SQLiteCache:
    """Persistent key -> verification result store that keeps only the newest entries."""

    def __init__(self, db_path: Path, max_entries: int = CACHE_MAX_ENTRIES) -> None:
        self.db_path = db_path
        self.max_entries = max_entries
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS geocache (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                cache_key TEXT UNIQUE,
                payload TEXT,
                fetched_at TEXT
            )
            """
        )
        self.conn.commit()

    def load(self) -> list[tuple[str, dict[str, Any]]]:
        cursor = self.conn.execute("SELECT cache_key, payload FROM geocache ORDER BY seq ASC")
        rows: list[tuple[str, dict[str, Any]]] = []
        for key, payload in cursor.fetchall():
            try:
                rows.append((key, json.loads(payload)))
            except (TypeError, json.JSONDecodeError):
                LOGGER.debug("Dropping corrupt geocache row %s", key)
        return rows

    def save(self, key: str, payload: dict[str, Any]) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM geocache WHERE cache_key = ?", (key,))
            self.conn.execute(
                "INSERT INTO geocache (cache_key, payload, fetched_at) VALUES (?, ?, ?)",
                (key, json.dumps(payload), datetime.now(timezone.utc).isoformat()),
            )
            self.conn.execute(
                """
                DELETE FROM geocache WHERE seq NOT IN (
                    SELECT seq FROM geocache ORDER BY seq DESC LIMIT ?
                )
                """,
                (self.max_entries,),
            )

    def close(self) -> None:
        self.conn.close()


def _result_from_payload(payload: Any) -> VerifyResult | None:
    if not isinstance(payload, dict):
        return None
    location = payload.get("location")
    if not isinstance(location, dict):
        return None
    coords = location.get("coordinates")
    if not isinstance(coords, list) or len(coords) != 2:
        return None
    return VerifyResult(
        location=IntelLocation(
            name=str(location.get("name") or ""),
            country=location.get("country"),
            coordinates=(coords[0], coords[1]),
        ),
        verified=bool(payload.get("verified")),
    )


class GeocodeCache:
    """In-memory cache mirrored to an optional capped SQLite store."""

    def __init__(self, store: SQLiteCache | None = None) -> None:
        self.store = store
        self._entries: dict[str, VerifyResult] = {}
        if store is not None:
            for key, payload in store.load():
                result = _result_from_payload(payload)
                if result is not None:
                    self._entries[key] = result

    def get(self, key: str) -> VerifyResult | None:
        return self._entries.get(key)

    def put(self, key: str, result: VerifyResult) -> None:
        self._entries.pop(key, None)
        self._entries[key] = result
        if self.store is None:
            return
        try:
            self.store.save(key, result.to_serializable())
        except sqlite3.Error:
            LOGGER.warning("Unable to persist geocode cache entry %s", key, exc_info=True)

    def __len__(self) -> int:
        return len(self._entries)


class RequestScheduler:
    """Serialize calls and keep at least ``min_interval`` seconds between them."""

    def __init__(self, min_interval: float = 1.1) -> None:
        self.min_interval = min_interval
        self._lock = asyncio.Lock()
        self._last_request: float | None = None

    async def schedule(self, fn: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            if self._last_request is not None:
                wait = self._last_request + self.min_interval - time.monotonic()
                if wait > 0:
                    await asyncio.sleep(wait)
            try:
                return await fn()
            finally:
                self._last_request = time.monotonic()


class GeocodeVerifier:
    """Confirm or correct an ``IntelLocation`` via reverse, then forward geocoding."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: GeocodeCache | None = None,
        scheduler: RequestScheduler | None = None,
        base_url: str = DEFAULT_GEOCODE_BASE_URL,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.client = client
        self.cache = cache or GeocodeCache()
        self.scheduler = scheduler or RequestScheduler()
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.stats: dict[str, int] = {
            "cache_hits": 0,
            "reverse_hits": 0,
            "search_hits": 0,
            "failures": 0,
        }

    async def verify_intel_location(self, location: IntelLocation) -> VerifyResult:
        key = cache_key(location)
        cached = self.cache.get(key)
        if cached is not None:
            self.stats["cache_hits"] += 1
            return cached
        result = await self._verify(location)
        self.cache.put(key, result)
        return result

    async def _verify(self, location: IntelLocation) -> VerifyResult:
        lon = round_coord(location.coordinates[0])
        lat = round_coord(location.coordinates[1])
        reverse_country: Optional[str] = None

        if is_valid_lon_lat((lon, lat)):
            try:
                reverse = await self._get_json("/reverse", {"format": "jsonv2", "lat": lat, "lon": lon})
            except GEOCODE_ERRORS as exc:
                LOGGER.debug("Reverse geocode failed for %s: %s", location.name, exc)
                reverse = None
            if isinstance(reverse, dict):
                address = reverse.get("address") if isinstance(reverse.get("address"), dict) else {}
                country = address.get("country")
                reverse_country = country if isinstance(country, str) else None
                country_ok = includes_loose(reverse_country, location.country) if location.country else True
                name_ok = includes_loose(str(reverse.get("display_name") or ""), location.name) or any(
                    includes_loose(str(address.get(field) or ""), location.name) for field in LOCALITY_FIELDS
                )
                if country_ok and name_ok:
                    self.stats["reverse_hits"] += 1
                    return VerifyResult(
                        location=IntelLocation(
                            name=location.name,
                            country=location.country or reverse_country,
                            coordinates=(lon, lat),
                        ),
                        verified=True,
                    )

        query = f"{location.name}, {location.country}" if location.country else location.name
        try:
            candidates = await self._get_json("/search", {"format": "jsonv2", "q": query, "limit": 1})
        except GEOCODE_ERRORS as exc:
            LOGGER.debug("Forward geocode failed for %r: %s", query, exc)
            candidates = None
        if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
            first = candidates[0]
            try:
                search_lat = float(first.get("lat"))
                search_lon = float(first.get("lon"))
            except (TypeError, ValueError):
                search_lat = search_lon = float("nan")
            if is_valid_lon_lat((search_lon, search_lat)):
                self.stats["search_hits"] += 1
                return VerifyResult(
                    location=IntelLocation(
                        name=location.name,
                        country=location.country or reverse_country,
                        coordinates=(search_lon, search_lat),
                    ),
                    verified=True,
                )

        self.stats["failures"] += 1
        return VerifyResult(
            location=IntelLocation(
                name=location.name,
                country=location.country or reverse_country,
                coordinates=location.coordinates,
            ),
            verified=False,
        )

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        async def call() -> Any:
            response = await self.client.get(
                f"{self.base_url}{path}",
                params=params,
                headers={"Accept": "application/json", "User-Agent": self.user_agent},
                timeout=GEOCODE_TIMEOUT,
            )
            response.raise_for_status()
            return response.json()

        return await self.scheduler.schedule(call)
